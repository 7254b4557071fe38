"""Dodo Payments service - Integration with Dodo Payments API"""

import logging
from typing import Any, Optional

from dodopayments import AsyncDodoPayments  # type: ignore

from ...config import DODO_ADHOC_PRODUCT_ID, DODO_PAYMENTS_API_KEY, DODO_PAYMENTS_ENVIRONMENT

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """The provider rejected or failed a request"""


class PaymentProviderUnavailable(PaymentProviderError):
    """The provider client is not configured"""


def normalize_dodo_environment(env: Optional[str]) -> str:
    """Normalize Dodo environment value to expected format"""
    value = (env or "test_mode").strip().lower()
    if value in {"live", "production", "prod"}:
        return "live_mode"
    if value in {"test", "sandbox", "staging", "dev", "development"}:
        return "test_mode"
    if value in {"test_mode", "live_mode"}:
        return value
    logger.warning(f"Unknown DODO environment '{env}', defaulting to test_mode")
    return "test_mode"


def read_field(obj: Any, name: str, default=None):
    """SDK responses are models; webhook payloads and test doubles are dicts"""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class DodoPaymentsService:
    """Service for Dodo Payments API operations"""

    def __init__(self, api_key: Optional[str] = None, adhoc_product_id: Optional[str] = None):
        self.api_key = api_key or DODO_PAYMENTS_API_KEY
        self.adhoc_product_id = adhoc_product_id or DODO_ADHOC_PRODUCT_ID
        self.environment = normalize_dodo_environment(DODO_PAYMENTS_ENVIRONMENT)
        self.client = None

        if not self.api_key:
            logger.warning(
                "DODO_PAYMENTS_API_KEY not set; payment endpoints will fail until configured"
            )
        else:
            try:
                self.client = AsyncDodoPayments(
                    bearer_token=self.api_key,
                    environment=self.environment,
                )
                logger.info(f"Dodo Payments client initialized (env={self.environment})")
            except Exception as e:
                logger.error(f"Failed to initialize Dodo client (env={self.environment}): {e}")
                self.client = None

    def is_available(self) -> bool:
        """Check if Dodo Payments client is available"""
        return self.client is not None and bool(self.adhoc_product_id)

    async def create_checkout_session(
        self,
        amount_lowest: int,
        currency: str,
        customer_email: str,
        customer_name: str,
        return_url: str,
        metadata: Optional[dict] = None,
    ) -> dict:
        """Checkout for a dynamic amount through the adhoc pay-what-you-want product"""
        if not self.is_available():
            raise PaymentProviderUnavailable("Dodo Payments client not initialized")

        session_data = {
            "product_cart": [
                {
                    "product_id": self.adhoc_product_id,
                    "quantity": 1,
                    # Dynamic amount in lowest currency unit (e.g., grosze)
                    "amount": amount_lowest,
                }
            ],
            "billing_currency": currency,
            "customer": {"email": customer_email or "", "name": customer_name or ""},
            "metadata": metadata or {},
            "return_url": return_url,
        }

        try:
            session = await self.client.checkout_sessions.create(**session_data)
        except Exception as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise PaymentProviderError(str(e)) from e

        checkout_url = read_field(session, "checkout_url")
        session_id = read_field(session, "session_id")
        if not checkout_url:
            raise PaymentProviderError("Checkout session returned no checkout_url")

        return {"session_id": session_id, "checkout_url": checkout_url}

    async def retrieve_payment(self, payment_id: str) -> dict:
        """Get payment details"""
        if not self.client:
            raise PaymentProviderUnavailable("Dodo Payments client not initialized")

        try:
            payment = await self.client.payments.retrieve(payment_id)
        except Exception as e:
            logger.error(f"Failed to get payment {payment_id}: {e}")
            raise PaymentProviderError(str(e)) from e

        return {
            "payment_id": read_field(payment, "payment_id", payment_id),
            "status": read_field(payment, "status"),
            "total_amount": read_field(payment, "total_amount"),
            "currency": read_field(payment, "currency"),
            "metadata": read_field(payment, "metadata") or {},
        }


_dodo_service: Optional[DodoPaymentsService] = None


def get_dodo_service() -> DodoPaymentsService:
    """Shared provider client; overridden in tests"""
    global _dodo_service
    if _dodo_service is None:
        _dodo_service = DodoPaymentsService()
    return _dodo_service
