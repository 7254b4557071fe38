"""Order repository - Database operations for product orders"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import Product, ProductOrder
from .status import ACTIVE_STATUSES, AWAITING_PAYMENT, PAYMENT_FAILED, RESERVED


class OrderRepository:
    """Repository for order database operations"""

    @staticmethod
    def get_order(db: Session, order_id: str) -> Optional[ProductOrder]:
        return db.query(ProductOrder).filter(ProductOrder.id == order_id).first()

    @staticmethod
    def get_buyer_order(db: Session, order_id: str, buyer_id: int) -> Optional[ProductOrder]:
        """Get an order owned by the buyer"""
        return (
            db.query(ProductOrder)
            .filter(ProductOrder.id == order_id, ProductOrder.buyer_id == buyer_id)
            .first()
        )

    @staticmethod
    def get_seller_order(db: Session, order_id: str, seller_id: int) -> Optional[ProductOrder]:
        return (
            db.query(ProductOrder)
            .filter(ProductOrder.id == order_id, ProductOrder.seller_id == seller_id)
            .first()
        )

    @staticmethod
    def get_participant_order(db: Session, order_id: str, user_id: int) -> Optional[ProductOrder]:
        """Get an order visible to the user as buyer or seller"""
        return (
            db.query(ProductOrder)
            .options(joinedload(ProductOrder.product))
            .filter(
                ProductOrder.id == order_id,
                or_(ProductOrder.buyer_id == user_id, ProductOrder.seller_id == user_id),
            )
            .first()
        )

    @staticmethod
    def get_user_orders(db: Session, user_id: int, role: str = "buyer") -> list[ProductOrder]:
        """Orders where the user is the buyer (or seller), newest update first"""
        column = ProductOrder.seller_id if role == "seller" else ProductOrder.buyer_id
        return (
            db.query(ProductOrder)
            .options(joinedload(ProductOrder.product))
            .filter(column == user_id)
            .order_by(ProductOrder.updated_at.desc())
            .all()
        )

    @staticmethod
    def get_latest_reservation(
        db: Session, product_id: str, buyer_id: int
    ) -> Optional[ProductOrder]:
        return (
            db.query(ProductOrder)
            .filter(
                ProductOrder.product_id == product_id,
                ProductOrder.buyer_id == buyer_id,
                ProductOrder.status == RESERVED,
            )
            .order_by(ProductOrder.created_at.desc())
            .first()
        )

    @staticmethod
    def get_buyer_active_order(
        db: Session, product_id: str, buyer_id: int
    ) -> Optional[ProductOrder]:
        return (
            db.query(ProductOrder)
            .filter(
                ProductOrder.product_id == product_id,
                ProductOrder.buyer_id == buyer_id,
                ProductOrder.status.in_(ACTIVE_STATUSES),
            )
            .order_by(ProductOrder.created_at.desc())
            .first()
        )

    @staticmethod
    def get_stale_orders(
        db: Session, now: datetime, product_id: Optional[str] = None
    ) -> tuple[list[ProductOrder], list[ProductOrder]]:
        """Reservations past their window and unpaid orders past their deadline"""
        reservations = db.query(ProductOrder).filter(
            ProductOrder.status == RESERVED,
            ProductOrder.reservation_expires_at.isnot(None),
            ProductOrder.reservation_expires_at <= now,
        )
        unpaid = db.query(ProductOrder).filter(
            ProductOrder.status.in_([AWAITING_PAYMENT, PAYMENT_FAILED]),
            ProductOrder.payment_deadline.isnot(None),
            ProductOrder.payment_deadline <= now,
        )
        if product_id:
            reservations = reservations.filter(ProductOrder.product_id == product_id)
            unpaid = unpaid.filter(ProductOrder.product_id == product_id)
        return reservations.all(), unpaid.all()

    @staticmethod
    def has_active_order(
        db: Session, product_id: str, exclude_order_id: Optional[str] = None
    ) -> bool:
        query = db.query(ProductOrder.id).filter(
            ProductOrder.product_id == product_id,
            ProductOrder.status.in_(ACTIVE_STATUSES),
        )
        if exclude_order_id:
            query = query.filter(ProductOrder.id != exclude_order_id)
        return query.first() is not None

    @staticmethod
    def claim_product(db: Session, product_id: str) -> bool:
        """Atomically move the product from available to reserved"""
        updated = (
            db.query(Product)
            .filter(Product.id == product_id, Product.status == "available")
            .update({"status": "reserved"}, synchronize_session="fetch")
        )
        return updated == 1

    @staticmethod
    def set_product_status(
        db: Session, product_id: str, new_status: str, from_statuses: list[str]
    ) -> bool:
        updated = (
            db.query(Product)
            .filter(Product.id == product_id, Product.status.in_(from_statuses))
            .update({"status": new_status}, synchronize_session="fetch")
        )
        return updated == 1

    @staticmethod
    def create_order(db: Session, **order_data) -> ProductOrder:
        order = ProductOrder(**order_data)
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    @staticmethod
    def count_by_status(db: Session, seller_id: int) -> dict:
        rows = (
            db.query(ProductOrder.status, func.count(ProductOrder.id))
            .filter(ProductOrder.seller_id == seller_id)
            .group_by(ProductOrder.status)
            .all()
        )
        return {status: count for status, count in rows}

    @staticmethod
    def get_order_by_payment_reference(
        db: Session, payment_id: Optional[str] = None, session_id: Optional[str] = None
    ) -> Optional[ProductOrder]:
        if payment_id:
            order = db.query(ProductOrder).filter(ProductOrder.payment_id == payment_id).first()
            if order:
                return order
        if session_id:
            return (
                db.query(ProductOrder)
                .filter(ProductOrder.checkout_session_id == session_id)
                .first()
            )
        return None
