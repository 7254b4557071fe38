"""Checkout service - quotes and step validation for the checkout flow"""

import json
import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY
from ...models import DeliveryOption, Product
from .pricing import calculate_totals, get_product_price, resolve_discount_code
from .repository import ProductRepository, is_valid_uuid
from .schemas import CheckoutStep
from .validation import default_delivery_option, next_step

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "/placeholder.svg"


def first_product_image(image_url) -> str:
    """image_url may hold a JSON-encoded list, a list or a plain URL"""
    if not image_url:
        return PLACEHOLDER_IMAGE
    if isinstance(image_url, list):
        return image_url[0] if image_url else PLACEHOLDER_IMAGE
    if isinstance(image_url, str):
        if image_url.startswith("["):
            try:
                parsed = json.loads(image_url)
            except ValueError:
                return image_url
            if isinstance(parsed, list):
                return parsed[0] if parsed else PLACEHOLDER_IMAGE
        return image_url
    return PLACEHOLDER_IMAGE


def serialize_delivery_option(option: Optional[DeliveryOption]) -> Optional[dict]:
    if option is None:
        return None
    return {"id": option.id, "name": option.name, "price": float(option.price or 0)}


class CheckoutService:
    """Service layer for checkout quotes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepository()

    def get_product(self, product_id: str) -> Product:
        if not is_valid_uuid(product_id):
            raise HTTPException(status_code=400, detail="Invalid product id")
        product = self.repo.get_product(self.db, product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    def select_delivery_option(
        self, product: Product, option_id: Optional[str]
    ) -> Optional[DeliveryOption]:
        if option_id:
            option = self.repo.get_product_delivery_option(product, option_id)
            if not option:
                raise HTTPException(status_code=400, detail="Delivery option not available for this product")
            return option
        return default_delivery_option(list(product.delivery_options))

    def get_quote(
        self,
        product_id: str,
        test_mode: bool = False,
        delivery_option_id: Optional[str] = None,
        discount_code: Optional[str] = None,
    ) -> dict:
        product = self.get_product(product_id)
        option = self.select_delivery_option(product, delivery_option_id)
        discount = resolve_discount_code(self.db, discount_code) if discount_code else None

        breakdown = calculate_totals(
            get_product_price(product, test_mode),
            option.price if option else 0,
            discount,
        )

        return {
            "product_id": product.id,
            "title": product.title,
            "seller_id": product.user_id,
            "status": product.status,
            "is_available": product.status == "available",
            "image": first_product_image(product.image_url),
            "currency": product.currency or DEFAULT_CURRENCY,
            "test_mode": test_mode,
            "delivery_options": [serialize_delivery_option(o) for o in product.delivery_options],
            "selected_delivery_option": serialize_delivery_option(option),
            "pricing": breakdown.as_dict(),
        }

    def validate_step(self, product_id: str, step: CheckoutStep, form: dict) -> dict:
        option = None
        if step == CheckoutStep.DELIVERY:
            product = self.get_product(product_id)
            option = self.repo.get_product_delivery_option(product, form.get("delivery_option_id"))

        new_step, errors = next_step(step, form, option)
        return {"valid": not errors, "step": step, "next_step": new_step, "errors": errors}
