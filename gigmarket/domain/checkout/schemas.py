"""Checkout domain schemas - Pydantic models for validation"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\d{9}$")
POSTAL_CODE_RE = re.compile(r"^\d{2}-\d{3}$")

COURIER = "Kurier"
INPOST = "Paczkomat InPost"
PERSONAL_PICKUP = "Odbiór osobisty"


class CheckoutStep(str, Enum):
    PERSONAL = "personal"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    SUMMARY = "summary"


STEP_ORDER = [CheckoutStep.PERSONAL, CheckoutStep.DELIVERY, CheckoutStep.PAYMENT, CheckoutStep.SUMMARY]


class PersonalDataForm(BaseModel):
    """Buyer contact details"""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_required(cls, v: str, info) -> str:
        v = (v or "").strip()
        if not v:
            label = "First name" if info.field_name == "first_name" else "Last name"
            raise ValueError(f"{label} is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Email is required")
        if not EMAIL_RE.match(v):
            raise ValueError("Enter a valid email address")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        digits = re.sub(r"\s+", "", v or "")
        if not digits:
            raise ValueError("Phone is required")
        if not PHONE_RE.match(digits):
            raise ValueError("Enter a valid 9-digit phone number")
        return digits


class DeliveryForm(BaseModel):
    """Delivery details; which fields are required depends on the delivery option"""

    delivery_option_id: Optional[str] = None
    address: str = ""
    city: str = ""
    postal_code: str = ""
    inpost_point: str = ""
    comments: Optional[str] = None


class PaymentForm(BaseModel):
    payment_method: str = ""
    blik_code: str = ""

    @model_validator(mode="after")
    def validate_payment(self):
        if not self.payment_method:
            raise ValueError("Select a payment method")
        if self.payment_method == "blik" and len(self.blik_code or "") != 6:
            raise ValueError("Enter a valid 6-digit BLIK code")
        return self


class ConfirmOrderRequest(PersonalDataForm, DeliveryForm, PaymentForm):
    """Everything the buyer submits to confirm a reservation"""

    discount_code: Optional[str] = None
    agree_to_terms: bool = False

    @field_validator("agree_to_terms")
    @classmethod
    def validate_terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must accept the terms to continue")
        return v


class StepValidationRequest(BaseModel):
    step: CheckoutStep
    form: dict = {}


class StepValidationResponse(BaseModel):
    valid: bool
    step: CheckoutStep
    next_step: CheckoutStep
    errors: list[str] = []


class DeliveryOptionResponse(BaseModel):
    id: str
    name: str
    price: float


class PriceBreakdownResponse(BaseModel):
    product_price: float
    delivery_cost: float
    service_fee: float
    discount_value: float
    discount_code: Optional[str] = None
    total: float


class CheckoutQuoteResponse(BaseModel):
    product_id: str
    title: str
    seller_id: int
    status: str
    is_available: bool
    image: str
    currency: str
    test_mode: bool
    delivery_options: list[DeliveryOptionResponse]
    selected_delivery_option: Optional[DeliveryOptionResponse] = None
    pricing: PriceBreakdownResponse
