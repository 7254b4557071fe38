"""
Reservation sweep
Expires reservations whose window has passed and unpaid orders past their
payment deadline, then puts their products back on sale.
Runs every minute from the ARQ worker and on demand from the orders router.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ProductOrder, utcnow
from .repository import OrderRepository
from .status import RESERVATION_EXPIRED, ensure_transition

logger = logging.getLogger(__name__)


def release_product_if_unheld(
    db: Session, product_id: str, exclude_order_id: Optional[str] = None
) -> bool:
    """reserved → available, unless another active order still holds the product"""
    db.flush()
    if OrderRepository.has_active_order(db, product_id, exclude_order_id):
        return False
    released = OrderRepository.set_product_status(db, product_id, "available", ["reserved"])
    if released:
        logger.info(f"🔓 Product {product_id} released back to available")
    return released


def expire_order(db: Session, order: ProductOrder) -> bool:
    """Mark a single order expired and release its product; no commit"""
    ensure_transition(order, RESERVATION_EXPIRED)
    return release_product_if_unheld(db, order.product_id, exclude_order_id=order.id)


def expire_stale_orders(
    db: Session, now: Optional[datetime] = None, product_id: Optional[str] = None
) -> dict:
    """Expire stale orders (optionally for one product) without committing"""
    now = now or utcnow()
    summary = {
        "reservations_expired": 0,
        "payment_deadlines_expired": 0,
        "products_released": 0,
        "total_updated": 0,
    }

    reservations, unpaid = OrderRepository.get_stale_orders(db, now, product_id)
    product_ids = set()

    for order in reservations:
        ensure_transition(order, RESERVATION_EXPIRED)
        product_ids.add(order.product_id)
        summary["reservations_expired"] += 1

    for order in unpaid:
        ensure_transition(order, RESERVATION_EXPIRED)
        product_ids.add(order.product_id)
        summary["payment_deadlines_expired"] += 1

    for pid in product_ids:
        if release_product_if_unheld(db, pid):
            summary["products_released"] += 1

    summary["total_updated"] = (
        summary["reservations_expired"]
        + summary["payment_deadlines_expired"]
        + summary["products_released"]
    )
    return summary


def cleanup_expired_orders(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Expire stale reservations and unpaid orders

    Returns:
        dict: Summary of status changes made
    """
    try:
        summary = expire_stale_orders(db, now)
        db.commit()

        if summary["total_updated"]:
            logger.info(
                f"⏰ Reservation sweep: {summary['reservations_expired']} reservations expired, "
                f"{summary['payment_deadlines_expired']} payment deadlines passed, "
                f"{summary['products_released']} products released"
            )
        return summary

    except Exception as e:
        logger.error(f"❌ Error during reservation sweep: {e}")
        db.rollback()
        raise
