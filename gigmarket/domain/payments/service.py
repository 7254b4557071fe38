"""Payment service - checkout creation and payment results for orders"""

import logging
import uuid
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY, FRONTEND_URL
from ...models import Payment, ProductOrder, User, utcnow
from ..checkout.pricing import from_lowest_unit, to_lowest_unit
from ..orders.expiry import expire_order
from ..orders.repository import OrderRepository
from ..orders.status import (
    AWAITING_PAYMENT,
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    PENDING_PAYMENT,
    InvalidStatusTransition,
    ensure_transition,
)
from .dodo_service import DodoPaymentsService, PaymentProviderError, PaymentProviderUnavailable
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = [AWAITING_PAYMENT, PAYMENT_FAILED]

# Provider payment status → success flag; anything else leaves the order alone
PROVIDER_RESULTS = {
    "succeeded": True,
    "failed": False,
    "cancelled": False,
}


class PaymentService:
    """Service layer for order payments"""

    def __init__(self, db: Session, dodo: DodoPaymentsService):
        self.db = db
        self.dodo = dodo
        self.repo = PaymentRepository()
        self.orders = OrderRepository()

    def _get_buyer_order(self, order_id: str, buyer: User) -> ProductOrder:
        order = self.orders.get_buyer_order(self.db, order_id, buyer.id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    def _ensure_deadline(self, order: ProductOrder) -> None:
        if order.payment_deadline and order.payment_deadline <= utcnow():
            expire_order(self.db, order)
            self.db.commit()
            logger.info(f"⏰ Order {order.id} payment deadline passed")
            raise HTTPException(status_code=410, detail="Payment deadline passed")

    async def initiate_payment(self, order_id: str, buyer: User) -> dict:
        """Create a provider checkout for a confirmed order"""
        order = self._get_buyer_order(order_id, buyer)

        if order.status == PENDING_PAYMENT and order.checkout_url:
            logger.info(f"♻️ Reusing checkout session for order {order.id}")
            return self._checkout_response(order)

        if order.status not in PAYABLE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Order cannot be paid in status {order.status}"
            )

        self._ensure_deadline(order)

        if not order.total_amount or order.total_amount <= 0:
            raise HTTPException(status_code=400, detail="Order amount must be greater than 0")

        if not self.dodo.is_available():
            raise HTTPException(status_code=503, detail="Payment system not configured")

        amount_lowest = to_lowest_unit(order.total_amount)
        currency = order.currency or DEFAULT_CURRENCY
        customer_name = " ".join(
            part for part in (order.buyer_first_name, order.buyer_last_name) if part
        ) or (buyer.full_name or "")
        customer_email = order.buyer_email or buyer.email

        try:
            session = await self.dodo.create_checkout_session(
                amount_lowest=amount_lowest,
                currency=currency,
                customer_email=customer_email,
                customer_name=customer_name,
                return_url=f"{FRONTEND_URL}/checkout/success/{order.id}",
                metadata={"order_id": str(order.id), "buyer_id": str(buyer.id)},
            )
        except PaymentProviderUnavailable as e:
            raise HTTPException(status_code=503, detail="Payment system not configured") from e
        except PaymentProviderError as e:
            logger.error(f"❌ Failed to create checkout for order {order.id}: {e}")
            raise HTTPException(status_code=502, detail="Failed to create payment") from e

        self.repo.create_payment(
            self.db,
            order,
            session_id=session["session_id"],
            amount_total=amount_lowest,
            currency=currency,
            customer_email=customer_email,
            customer_name=customer_name,
            status="created",
        )
        ensure_transition(order, PENDING_PAYMENT)
        order.checkout_session_id = session["session_id"]
        order.checkout_url = session["checkout_url"]
        self.db.commit()
        self.db.refresh(order)

        logger.info(f"💳 Checkout created for order {order.id}: {amount_lowest} {currency}")
        return self._checkout_response(order)

    @staticmethod
    def _checkout_response(order: ProductOrder) -> dict:
        return {
            "order_id": order.id,
            "status": order.status,
            "checkout_url": order.checkout_url,
            "session_id": order.checkout_session_id,
            "amount": order.total_amount,
            "currency": order.currency or DEFAULT_CURRENCY,
        }

    async def verify_payment(self, payment_id: str) -> dict:
        try:
            payment = await self.dodo.retrieve_payment(payment_id)
        except PaymentProviderUnavailable as e:
            raise HTTPException(status_code=503, detail="Payment system not configured") from e
        except PaymentProviderError as e:
            raise HTTPException(status_code=502, detail="Failed to verify payment") from e

        return {
            "payment_id": payment["payment_id"],
            "status": payment["status"],
            "amount": from_lowest_unit(payment["total_amount"]),
            "currency": payment["currency"],
            "metadata": payment["metadata"],
        }

    async def sync_order_payment(
        self, order_id: str, user: User, payment_id: Optional[str] = None
    ) -> ProductOrder:
        """Pull the provider's view of the order's payment and apply it"""
        order = self._get_buyer_order(order_id, user)

        payment_id = payment_id or order.payment_id
        if not payment_id:
            latest = self.repo.get_latest_payment(self.db, order.id)
            payment_id = latest.payment_id if latest else None
        if not payment_id:
            return order

        verified = await self.verify_payment(payment_id)
        self._ensure_payment_matches(order, verified)

        success = PROVIDER_RESULTS.get(str(verified.get("status") or "").lower())
        if success is None:
            return order

        try:
            self.apply_payment_result(order, success, payment_id=payment_id)
        except InvalidStatusTransition as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return order

    def _ensure_payment_matches(self, order: ProductOrder, verified: dict) -> None:
        """Provider payment must have been created for this order, amount and currency"""
        metadata_order_id = (verified.get("metadata") or {}).get("order_id")
        if str(metadata_order_id or "") != str(order.id):
            logger.warning(
                f"🚫 Payment {verified.get('payment_id')} not created for order {order.id}"
            )
            raise HTTPException(status_code=400, detail="Payment does not belong to this order")

        amount = verified.get("amount")
        if amount is None or to_lowest_unit(amount) != to_lowest_unit(order.total_amount):
            logger.warning(
                f"🚫 Payment {verified.get('payment_id')} amount {amount} does not match order {order.id}"
            )
            raise HTTPException(status_code=400, detail="Payment amount does not match the order")

        currency = order.currency or DEFAULT_CURRENCY
        if str(verified.get("currency") or "").upper() != currency.upper():
            raise HTTPException(status_code=400, detail="Payment currency does not match the order")

    def apply_payment_result(
        self, order: ProductOrder, success: bool, payment_id: Optional[str] = None
    ) -> bool:
        """
        Record a payment outcome on the order

        Returns:
            bool: False when the same outcome was already recorded
        """
        target = PAYMENT_SUCCEEDED if success else PAYMENT_FAILED
        if order.status == target:
            return False
        if success and order.payment_status == "paid":
            return False

        ensure_transition(order, target)
        if payment_id:
            order.payment_id = payment_id

        payment = self.payment_for(order, payment_id)
        if payment:
            payment.status = "succeeded" if success else "failed"
            if payment_id:
                payment.payment_id = payment_id

        if success:
            order.payment_status = "paid"
            self.orders.set_product_status(
                self.db, order.product_id, "sold", ["reserved", "available"]
            )
            logger.info(f"✅ Order {order.id} paid, product {order.product_id} sold")
        else:
            # Product stays held until the payment deadline
            order.payment_status = "failed"
            logger.info(f"⚠️ Payment failed for order {order.id}")

        self.db.commit()
        self.db.refresh(order)
        return True

    def payment_for(self, order: ProductOrder, payment_id: Optional[str]) -> Optional[Payment]:
        if payment_id:
            payment = self.repo.get_payment_by_payment_id(self.db, payment_id)
            if payment and payment.order_id == order.id:
                return payment
        return self.repo.get_latest_payment(self.db, order.id)

    def abandon_payment(self, order_id: str, buyer: User) -> ProductOrder:
        """Buyer left the provider checkout; the order can be paid again"""
        order = self._get_buyer_order(order_id, buyer)
        if order.status != PENDING_PAYMENT:
            raise HTTPException(
                status_code=400, detail=f"No payment in progress for order in status {order.status}"
            )

        payment = self.repo.get_latest_payment(self.db, order.id)
        if payment and payment.status in ("created", "processing"):
            payment.status = "cancelled"

        ensure_transition(order, AWAITING_PAYMENT)
        order.checkout_url = None
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"↩️ Payment abandoned for order {order.id}")
        return order

    def simulate_payment(self, order_id: str, buyer: User) -> ProductOrder:
        """Complete a test order without the provider"""
        order = self._get_buyer_order(order_id, buyer)
        if order.order_type != "test":
            raise HTTPException(
                status_code=400, detail="Payment simulation is only available for test orders"
            )
        if order.status not in PAYABLE_STATUSES + [PENDING_PAYMENT]:
            raise HTTPException(
                status_code=400, detail=f"Order cannot be paid in status {order.status}"
            )

        self._ensure_deadline(order)

        payment_id = f"sim_{uuid.uuid4().hex}"
        if not self.repo.get_latest_payment(self.db, order.id):
            self.repo.create_payment(
                self.db,
                order,
                payment_id=payment_id,
                amount_total=to_lowest_unit(order.total_amount),
                currency=order.currency or DEFAULT_CURRENCY,
                customer_email=order.buyer_email or buyer.email,
                status="created",
            )
            self.db.flush()

        self.apply_payment_result(order, True, payment_id=payment_id)
        logger.info(f"🧪 Simulated payment for test order {order.id}")
        return order
