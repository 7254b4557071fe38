import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="seller")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    testing_price = Column(Float, nullable=True)  # Price charged for test orders
    currency = Column(String(3), nullable=True)
    status = Column(String(20), default="available", nullable=False, index=True)  # available, reserved, sold
    image_url = Column(JSON, nullable=True)  # list of URLs or a single URL
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    seller = relationship("User", back_populates="products")
    delivery_options = relationship(
        "DeliveryOption",
        secondary="product_delivery_options",
        order_by="DeliveryOption.price",
        lazy="selectin",
    )


class DeliveryOption(Base):
    __tablename__ = "delivery_options"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)  # Kurier, Paczkomat InPost, Odbiór osobisty
    price = Column(Float, nullable=False, default=0)


class ProductDeliveryOption(Base):
    __tablename__ = "product_delivery_options"

    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    delivery_option_id = Column(
        String(36), ForeignKey("delivery_options.id", ondelete="CASCADE"), primary_key=True
    )


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    discount_type = Column(String(20), nullable=False)  # percentage, delivery, fee
    value = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ProductOrder(Base):
    __tablename__ = "product_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="reserved", index=True)
    order_type = Column(String(20), nullable=False, default="purchase")  # purchase, test

    # Deadlines
    reservation_expires_at = Column(DateTime, nullable=True)
    payment_deadline = Column(DateTime, nullable=True)

    # Price breakdown
    product_price = Column(Float, nullable=True)
    delivery_price = Column(Float, nullable=True)
    service_fee = Column(Float, nullable=True)
    discount_value = Column(Float, nullable=True)
    discount_code = Column(String(50), nullable=True)
    total_amount = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=True)

    # Delivery
    delivery_option_id = Column(String(36), ForeignKey("delivery_options.id"), nullable=True)
    shipping_address = Column(String(500), nullable=True)
    shipping_method = Column(String(100), nullable=True)
    inpost_point = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)

    # Buyer contact captured at confirmation
    buyer_first_name = Column(String(100), nullable=True)
    buyer_last_name = Column(String(100), nullable=True)
    buyer_email = Column(String(255), nullable=True)
    buyer_phone = Column(String(50), nullable=True)

    # Payment
    payment_method = Column(String(50), nullable=True)
    payment_status = Column(String(30), nullable=True)  # paid, failed
    payment_id = Column(String(255), nullable=True, index=True)
    checkout_session_id = Column(String(255), nullable=True, index=True)
    checkout_url = Column(String(1000), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("Product")
    delivery_option = relationship("DeliveryOption")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])
    payments = relationship(
        "Payment", back_populates="order", order_by="Payment.id", cascade="all, delete-orphan"
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(36), ForeignKey("product_orders.id"), nullable=False, index=True)
    session_id = Column(String(255), nullable=True, index=True)
    payment_id = Column(String(255), nullable=True, index=True)
    amount_total = Column(Integer, nullable=False)  # lowest currency unit
    currency = Column(String(3), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default="created")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    order = relationship("ProductOrder", back_populates="payments")


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String(255), primary_key=True)  # webhook-id header
    event_type = Column(String(100), nullable=True)
    payload = Column(JSON, nullable=False)
    created = Column(DateTime, nullable=True)  # provider timestamp
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime, default=utcnow)
