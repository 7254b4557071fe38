"""Order service - Business logic for order management"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import ProductOrder, User
from ..checkout.service import first_product_image
from .expiry import release_product_if_unheld
from .repository import OrderRepository
from .schemas import OrderResponse, OrderStatusUpdate
from .status import CANCELLED, InvalidStatusTransition, ensure_transition, status_label

logger = logging.getLogger(__name__)


def to_order_response(order: ProductOrder) -> OrderResponse:
    product = order.product
    return OrderResponse(
        id=order.id,
        product_id=order.product_id,
        product_title=product.title if product else None,
        product_image=first_product_image(product.image_url if product else None),
        buyer_id=order.buyer_id,
        seller_id=order.seller_id,
        status=order.status,
        status_label=status_label(order.status),
        order_type=order.order_type,
        reservation_expires_at=order.reservation_expires_at,
        payment_deadline=order.payment_deadline,
        product_price=order.product_price,
        delivery_price=order.delivery_price,
        service_fee=order.service_fee,
        discount_value=order.discount_value,
        discount_code=order.discount_code,
        total_amount=order.total_amount or 0,
        currency=order.currency,
        delivery_option_id=order.delivery_option_id,
        shipping_method=order.shipping_method,
        shipping_address=order.shipping_address,
        inpost_point=order.inpost_point,
        tracking_number=order.tracking_number,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        checkout_url=order.checkout_url,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


class OrderService:
    """Service layer for order listing and seller fulfilment"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository()

    def get_orders(self, user: User, role: str = "buyer") -> list[ProductOrder]:
        if role not in ("buyer", "seller"):
            raise HTTPException(status_code=400, detail="role must be 'buyer' or 'seller'")
        return self.repo.get_user_orders(self.db, user.id, role)

    def get_order(self, order_id: str, user: User) -> ProductOrder:
        order = self.repo.get_participant_order(self.db, order_id, user.id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    def update_status(self, order_id: str, data: OrderStatusUpdate, seller: User) -> ProductOrder:
        """Seller moves a paid order through fulfilment"""
        order = self.repo.get_seller_order(self.db, order_id, seller.id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")

        if data.status != order.status:
            try:
                ensure_transition(order, data.status)
            except InvalidStatusTransition as e:
                logger.warning(f"⚠️ Seller {seller.id} rejected transition on order {order.id}: {e}")
                raise HTTPException(status_code=400, detail=str(e)) from e

            if data.status == CANCELLED:
                # A cancelled order puts the product back on sale
                if not release_product_if_unheld(self.db, order.product_id, exclude_order_id=order.id):
                    self.repo.set_product_status(self.db, order.product_id, "available", ["sold"])

        if data.tracking_number is not None:
            order.tracking_number = data.tracking_number
        if data.notes is not None:
            order.notes = data.notes

        self.db.commit()
        self.db.refresh(order)
        logger.info(f"📦 Order {order.id} updated by seller {seller.id}: {order.status}")
        return order

    def get_stats(self, seller: User) -> dict:
        by_status = self.repo.count_by_status(self.db, seller.id)
        return {"total": sum(by_status.values()), "by_status": by_status}
