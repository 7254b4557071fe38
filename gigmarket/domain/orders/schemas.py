"""Orders domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .status import FULFILMENT_STATUSES


class ReserveRequest(BaseModel):
    """Schema for reserving a product"""

    product_id: str
    test_mode: bool = False


class OrderStatusUpdate(BaseModel):
    """Seller fulfilment update"""

    status: str
    tracking_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in FULFILMENT_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(FULFILMENT_STATUSES)}")
        return v


class OrderResponse(BaseModel):
    id: str
    product_id: str
    product_title: Optional[str] = None
    product_image: Optional[str] = None
    buyer_id: int
    seller_id: int
    status: str
    status_label: str
    order_type: str
    reservation_expires_at: Optional[datetime] = None
    payment_deadline: Optional[datetime] = None
    product_price: Optional[float] = None
    delivery_price: Optional[float] = None
    service_fee: Optional[float] = None
    discount_value: Optional[float] = None
    discount_code: Optional[str] = None
    total_amount: float
    currency: Optional[str] = None
    delivery_option_id: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    inpost_point: Optional[str] = None
    tracking_number: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    checkout_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]


class ExpirySweepResponse(BaseModel):
    reservations_expired: int
    payment_deadlines_expired: int
    products_released: int
    total_updated: int
