"""Payment repository - Database operations for payments and webhook events"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Payment, ProductOrder, WebhookEvent

logger = logging.getLogger(__name__)


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def create_payment(db: Session, order: ProductOrder, **payment_data) -> Payment:
        """Add a payment attempt; committed by the caller together with the order"""
        payment = Payment(order_id=order.id, **payment_data)
        db.add(payment)
        return payment

    @staticmethod
    def get_latest_payment(db: Session, order_id: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.order_id == order_id)
            .order_by(Payment.id.desc())
            .first()
        )

    @staticmethod
    def get_payment_by_payment_id(db: Session, payment_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.payment_id == payment_id).first()

    @staticmethod
    def get_payment_by_session_id(db: Session, session_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.session_id == session_id).first()

    @staticmethod
    def get_webhook_event(db: Session, event_id: str) -> Optional[WebhookEvent]:
        return db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()

    @staticmethod
    def create_webhook_event(
        db: Session,
        event_id: str,
        event_type: Optional[str],
        payload: dict,
        created: Optional[datetime] = None,
    ) -> WebhookEvent:
        """Store a received event; a concurrent delivery of the same id returns the stored row"""
        event = WebhookEvent(
            id=event_id,
            event_type=event_type,
            payload=payload,
            created=created,
            processed=False,
        )
        db.add(event)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = db.get(WebhookEvent, event_id)
            if existing is None:
                raise
            logger.info(f"🔄 Webhook {event_id} stored by a concurrent delivery")
            return existing
        db.refresh(event)
        return event
