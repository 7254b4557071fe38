"""Payments domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel


class CheckoutResponse(BaseModel):
    """Provider checkout created for an order"""

    order_id: str
    status: str
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None
    amount: float
    currency: str


class PaymentVerification(BaseModel):
    payment_id: str
    status: Optional[str] = None
    amount: float
    currency: Optional[str] = None
    metadata: dict = {}


class WebhookAck(BaseModel):
    status: str
    webhook_id: str
    result: Optional[str] = None
    order_id: Optional[str] = None
    order_status: Optional[str] = None
