"""Payment webhook processing - provider events drive order payment status"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ProductOrder, WebhookEvent, utcnow
from ..orders.repository import OrderRepository
from ..orders.status import InvalidStatusTransition
from .dodo_service import DodoPaymentsService
from .repository import PaymentRepository
from .service import PaymentService

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = ("payment.succeeded",)
FAILURE_EVENTS = ("payment.failed", "payment.cancelled")
PROCESSING_EVENTS = ("payment.processing",)


def parse_webhook_timestamp(value: Optional[str]) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError):
        return None


class PaymentWebhookService:
    """Persist provider events and apply them to orders exactly once"""

    def __init__(self, db: Session, dodo: DodoPaymentsService):
        self.db = db
        self.repo = PaymentRepository()
        self.orders = OrderRepository()
        self.payments = PaymentService(db, dodo)

    def handle_event(self, webhook_id: str, event: dict, webhook_timestamp: Optional[str] = None) -> dict:
        event_type = event.get("type")

        record = self.repo.get_webhook_event(self.db, webhook_id)
        if not record:
            record = self.repo.create_webhook_event(
                self.db,
                webhook_id,
                event_type,
                event,
                created=parse_webhook_timestamp(webhook_timestamp),
            )

        if record.processed:
            logger.info(f"🔄 Webhook {webhook_id} already processed, skipping (idempotency)")
            return {"status": "already_processed", "webhook_id": webhook_id}

        try:
            result = self._dispatch(record, event_type, event.get("data") or {})
        except Exception as e:
            logger.error(f"❌ Error processing webhook {webhook_id} ({event_type}): {e}")
            self.db.rollback()
            record.error = str(e)
            self.db.commit()
            raise

        record.processed = True
        record.processed_at = utcnow()
        self.db.commit()
        return {"status": "processed", "webhook_id": webhook_id, **result}

    def _dispatch(self, record: WebhookEvent, event_type: Optional[str], data: dict) -> dict:
        if event_type not in SUCCESS_EVENTS + FAILURE_EVENTS + PROCESSING_EVENTS:
            logger.info(f"ℹ️ Unhandled webhook event type: {event_type}")
            return {"result": "ignored"}

        order = self.find_order(data)
        if not order:
            logger.warning(f"⚠️ No order found for webhook {record.id} ({event_type})")
            record.error = "Order not found"
            return {"result": "order_not_found"}

        payment_id = data.get("payment_id")

        if event_type in PROCESSING_EVENTS:
            payment = self.payments.payment_for(order, payment_id)
            if payment:
                payment.status = "processing"
                if payment_id:
                    payment.payment_id = payment_id
            logger.info(f"⏳ Payment processing for order {order.id}")
            return {"result": "payment_processing", "order_id": order.id}

        success = event_type in SUCCESS_EVENTS
        try:
            applied = self.payments.apply_payment_result(order, success, payment_id=payment_id)
        except InvalidStatusTransition as e:
            # Acknowledged so the provider does not retry a transition that can never apply
            logger.warning(f"⚠️ Webhook {record.id} for order {order.id} not applied: {e}")
            self.db.rollback()
            record.error = str(e)
            return {"result": "invalid_transition", "order_id": order.id}

        return {
            "result": "applied" if applied else "unchanged",
            "order_id": order.id,
            "order_status": order.status,
        }

    def find_order(self, data: dict) -> Optional[ProductOrder]:
        """Locate the order by metadata, then payment id, then checkout session"""
        meta = data.get("metadata") or {}
        order_id = meta.get("order_id")
        if order_id:
            order = self.orders.get_order(self.db, str(order_id))
            if order:
                return order

        payment_id = data.get("payment_id")
        session_id = data.get("checkout_session_id") or data.get("session_id")

        order = self.orders.get_order_by_payment_reference(self.db, payment_id, session_id)
        if order:
            return order

        if payment_id:
            payment = self.repo.get_payment_by_payment_id(self.db, payment_id)
            if payment:
                return payment.order
        if session_id:
            payment = self.repo.get_payment_by_session_id(self.db, session_id)
            if payment:
                return payment.order
        return None
