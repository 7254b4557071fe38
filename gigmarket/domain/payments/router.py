"""Payments router - FastAPI endpoints for order payments and provider webhooks"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import DODO_PAYMENTS_WEBHOOK_SECRET
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...webhook_security import verify_dodo_webhook
from ..orders.schemas import OrderResponse
from ..orders.service import to_order_response
from .dodo_service import DodoPaymentsService, get_dodo_service
from .schemas import CheckoutResponse, PaymentVerification, WebhookAck
from .service import PaymentService
from .webhook_service import PaymentWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])
webhooks_router = APIRouter(tags=["Webhooks"])

# Rate limiter for the provider webhook (100 requests per minute per IP)
rate_limit_payment_webhook = create_rate_limiter(
    limit=100, window_seconds=60, key_prefix="payment_webhook"
)


def get_payment_service(
    db: Session = Depends(get_db), dodo: DodoPaymentsService = Depends(get_dodo_service)
) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, dodo)


@router.post("/orders/{order_id}/checkout", response_model=CheckoutResponse)
async def create_order_checkout(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a provider checkout for a confirmed order"""
    return await service.initiate_payment(order_id, current_user)


@router.post("/orders/{order_id}/sync", response_model=OrderResponse)
async def sync_order_payment(
    order_id: str,
    payment_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Apply the provider's payment status after the buyer returns from checkout"""
    order = await service.sync_order_payment(order_id, current_user, payment_id)
    return to_order_response(order)


@router.post("/orders/{order_id}/abandon", response_model=OrderResponse)
async def abandon_order_payment(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Buyer left the provider checkout without paying"""
    order = service.abandon_payment(order_id, current_user)
    return to_order_response(order)


@router.post("/orders/{order_id}/simulate", response_model=OrderResponse)
async def simulate_order_payment(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Mark a test order as paid without the provider"""
    order = service.simulate_payment(order_id, current_user)
    return to_order_response(order)


@router.get("/{payment_id}/verify", response_model=PaymentVerification)
async def verify_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Provider status of a payment"""
    return await service.verify_payment(payment_id)


# ============================================================================
# WEBHOOKS
# ============================================================================


async def _handle_payment_webhook(
    request: Request, db: Session, dodo: DodoPaymentsService
) -> dict:
    if not DODO_PAYMENTS_WEBHOOK_SECRET:
        logger.error("❌ DODO_PAYMENTS_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")

    raw_body = await verify_dodo_webhook(request, DODO_PAYMENTS_WEBHOOK_SECRET)

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except ValueError as e:
        logger.error(f"Failed to parse webhook JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    webhook_id = request.headers.get("webhook-id")
    logger.info(f"🔔 Webhook received id={webhook_id} type={event.get('type')}")

    service = PaymentWebhookService(db, dodo)
    return service.handle_event(webhook_id, event, request.headers.get("webhook-timestamp"))


@webhooks_router.post("/webhooks/payments", response_model=WebhookAck)
async def handle_payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    dodo: DodoPaymentsService = Depends(get_dodo_service),
    _: None = Depends(rate_limit_payment_webhook),
):
    """
    Verify signature and apply payment events to orders - Rate limited to 100 requests per minute.

    Headers:
      - 'webhook-signature': 'v1,{base64(hmac_sha256(webhook-id.webhook-timestamp.payload))}'
      - 'webhook-id': Unique webhook ID for idempotency
      - 'webhook-timestamp': Unix timestamp (seconds)
    """
    return await _handle_payment_webhook(request, db, dodo)


@webhooks_router.post("/api/payments/dodo/webhook", response_model=WebhookAck, include_in_schema=False)
async def handle_payment_webhook_alias(
    request: Request,
    db: Session = Depends(get_db),
    dodo: DodoPaymentsService = Depends(get_dodo_service),
    _: None = Depends(rate_limit_payment_webhook),
):
    """Path configured in the provider dashboard"""
    return await _handle_payment_webhook(request, db, dodo)
