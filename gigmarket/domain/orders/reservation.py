"""Reservation service - product reservation and order confirmation"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY, PAYMENT_DEADLINE_HOURS, RESERVATION_MINUTES
from ...models import ProductOrder, User, utcnow
from ..checkout.pricing import calculate_totals, get_product_price, resolve_discount_code
from ..checkout.repository import ProductRepository, is_valid_uuid
from ..checkout.schemas import ConfirmOrderRequest
from ..checkout.validation import (
    ensure_delivery_valid,
    format_shipping_address,
    reservation_delivery_option,
)
from .expiry import expire_order, expire_stale_orders, release_product_if_unheld
from .repository import OrderRepository
from .status import (
    AWAITING_PAYMENT,
    BUYER_CANCELLABLE_STATUSES,
    CANCELLED,
    RESERVATION_EXPIRED,
    RESERVED,
    ensure_transition,
)

logger = logging.getLogger(__name__)


class ReservationService:
    """Service layer for reserving products and confirming orders"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository()
        self.products = ProductRepository()

    def initiate_order(self, product_id: str, buyer: User, test_mode: bool = False) -> ProductOrder:
        """Reserve a product for the buyer, or return the buyer's existing active order"""
        if not is_valid_uuid(product_id):
            raise HTTPException(status_code=400, detail="Invalid product id")

        product = self.products.get_product(self.db, product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

        if product.user_id == buyer.id:
            raise HTTPException(status_code=400, detail="You cannot buy your own product")

        now = utcnow()

        # Stale holds on this product (from anyone) are expired before claiming it
        expire_stale_orders(self.db, now, product_id=product.id)
        self.db.commit()

        existing = self.repo.get_buyer_active_order(self.db, product.id, buyer.id)
        if existing:
            logger.info(f"♻️ Returning existing order {existing.id} for buyer {buyer.id}")
            return existing

        if not self.repo.claim_product(self.db, product.id):
            self.db.rollback()
            self.db.refresh(product)
            if product.status == "sold":
                logger.info(f"🚫 Product {product.id} already sold, buyer {buyer.id} rejected")
                raise HTTPException(status_code=409, detail="Product is no longer available")
            logger.info(f"🔒 Product {product.id} already reserved, buyer {buyer.id} rejected")
            raise HTTPException(status_code=409, detail="Product is already reserved")

        option = reservation_delivery_option(list(product.delivery_options))
        product_price = get_product_price(product, test_mode)
        delivery_price = option.price if option else 0
        breakdown = calculate_totals(product_price, delivery_price)

        try:
            order = self.repo.create_order(
                self.db,
                product_id=product.id,
                buyer_id=buyer.id,
                seller_id=product.user_id,
                status=RESERVED,
                order_type="test" if test_mode else "purchase",
                reservation_expires_at=now + timedelta(minutes=RESERVATION_MINUTES),
                product_price=float(breakdown.product_price),
                delivery_price=float(breakdown.delivery_cost),
                delivery_option_id=option.id if option else None,
                shipping_method=option.name if option else None,
                total_amount=float(breakdown.product_price + breakdown.delivery_cost),
                currency=product.currency or DEFAULT_CURRENCY,
            )
        except Exception as e:
            logger.error(f"❌ Failed to create reservation for product {product.id}: {e}")
            self.db.rollback()
            self.repo.set_product_status(self.db, product.id, "available", ["reserved"])
            self.db.commit()
            raise

        logger.info(
            f"✅ Product {product.id} reserved by buyer {buyer.id} until {order.reservation_expires_at}"
        )
        return order

    def get_active_reservation(self, product_id: str, buyer: User) -> Optional[ProductOrder]:
        """Latest unexpired reservation of the buyer for a product"""
        if not is_valid_uuid(product_id):
            raise HTTPException(status_code=400, detail="Invalid product id")

        order = self.repo.get_latest_reservation(self.db, product_id, buyer.id)
        if not order:
            return None

        if order.reservation_expires_at and order.reservation_expires_at <= utcnow():
            self.mark_reservation_expired(order)
            return None

        return order

    def get_buyer_order(self, order_id: str, buyer: User) -> ProductOrder:
        order = self.repo.get_buyer_order(self.db, order_id, buyer.id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    def confirm_order(self, order_id: str, buyer: User, form: ConfirmOrderRequest) -> ProductOrder:
        """Lock in delivery, discount and pricing; the buyer then has a payment deadline"""
        order = self.get_buyer_order(order_id, buyer)

        if order.status == RESERVATION_EXPIRED:
            raise HTTPException(status_code=410, detail="Reservation expired")
        if order.status != RESERVED:
            raise HTTPException(
                status_code=400, detail=f"Order cannot be confirmed in status {order.status}"
            )

        now = utcnow()
        if order.reservation_expires_at and order.reservation_expires_at <= now:
            self.mark_reservation_expired(order)
            raise HTTPException(status_code=410, detail="Reservation expired")

        product = order.product
        option = self.products.get_product_delivery_option(product, form.delivery_option_id)
        ensure_delivery_valid(form, option)

        discount = resolve_discount_code(self.db, form.discount_code) if form.discount_code else None
        breakdown = calculate_totals(
            get_product_price(product, order.order_type == "test"),
            option.price,
            discount,
        )

        ensure_transition(order, AWAITING_PAYMENT)
        order.payment_deadline = now + timedelta(hours=PAYMENT_DEADLINE_HOURS)
        order.delivery_option_id = option.id
        order.shipping_method = option.name
        order.shipping_address = format_shipping_address(form, option)
        order.inpost_point = form.inpost_point or None
        order.payment_method = form.payment_method
        order.notes = form.comments
        order.buyer_first_name = form.first_name
        order.buyer_last_name = form.last_name
        order.buyer_email = form.email
        order.buyer_phone = form.phone
        order.product_price = float(breakdown.product_price)
        order.delivery_price = float(breakdown.delivery_cost)
        order.service_fee = float(breakdown.service_fee)
        order.discount_value = float(breakdown.discount_value)
        order.discount_code = breakdown.discount_code
        order.total_amount = float(breakdown.total)

        self.db.commit()
        self.db.refresh(order)
        logger.info(f"✅ Order {order.id} confirmed, total {order.total_amount} {order.currency}")
        return order

    def cancel_order(self, order_id: str, buyer: User) -> ProductOrder:
        order = self.get_buyer_order(order_id, buyer)
        if order.status not in BUYER_CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Order cannot be cancelled in status {order.status}"
            )

        ensure_transition(order, CANCELLED)
        release_product_if_unheld(self.db, order.product_id, exclude_order_id=order.id)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"🚫 Order {order.id} cancelled by buyer {buyer.id}")
        return order

    def mark_reservation_expired(self, order: ProductOrder) -> ProductOrder:
        expire_order(self.db, order)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"⏰ Order {order.id} reservation expired")
        return order

    def release_product(self, product_id: str) -> bool:
        released = self.repo.set_product_status(self.db, product_id, "available", ["reserved"])
        self.db.commit()
        return released
