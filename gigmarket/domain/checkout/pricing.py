"""Checkout pricing - product price, delivery cost, service fee and discounts"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import SERVICE_FEE_PERCENTAGE
from ...models import DiscountCode, Product

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Codes available out of the box; seeded into discount_codes on start-up
BUILTIN_DISCOUNT_CODES = [
    {"code": "RABAT10", "discount_type": "percentage", "value": 10},
    {"code": "RABAT20", "discount_type": "percentage", "value": 20},
    {"code": "DOSTAWA", "discount_type": "delivery", "value": 100},
    {"code": "BEZPROWIZJI", "discount_type": "fee", "value": 100},
]


def to_money(value) -> Decimal:
    """Quantize any numeric input to 2 decimal places"""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_lowest_unit(amount) -> int:
    """Convert a major-unit amount (e.g. 12.34 PLN) to the lowest unit (1234 grosze)"""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_lowest_unit(amount: Optional[int]) -> float:
    if amount is None:
        return 0.0
    return float((Decimal(amount) / 100).quantize(CENT))


@dataclass
class PriceBreakdown:
    product_price: Decimal
    delivery_cost: Decimal
    service_fee: Decimal
    discount_value: Decimal
    discount_code: Optional[str]
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "product_price": float(self.product_price),
            "delivery_cost": float(self.delivery_cost),
            "service_fee": float(self.service_fee),
            "discount_value": float(self.discount_value),
            "discount_code": self.discount_code,
            "total": float(self.total),
        }


def get_product_price(product: Product, test_mode: bool = False) -> Decimal:
    """Testing price applies only to test orders, and only when the product defines one"""
    if test_mode and product.testing_price:
        return to_money(product.testing_price)
    return to_money(product.price)


def get_service_fee(product_price, delivery_cost) -> Decimal:
    subtotal = to_money(product_price) + to_money(delivery_cost)
    return to_money(subtotal * Decimal(str(SERVICE_FEE_PERCENTAGE)))


def compute_discount(
    discount: Optional[DiscountCode], product_price, delivery_cost, service_fee
) -> Decimal:
    """Amount taken off the order for a resolved discount code"""
    if discount is None:
        return Decimal("0.00")

    if discount.discount_type == "percentage":
        return to_money(to_money(product_price) * Decimal(str(discount.value)) / 100)
    if discount.discount_type == "delivery":
        return to_money(delivery_cost)
    if discount.discount_type == "fee":
        return to_money(service_fee)

    logger.warning(f"⚠️ Unknown discount type '{discount.discount_type}' for code {discount.code}")
    return Decimal("0.00")


def calculate_totals(
    product_price, delivery_cost, discount: Optional[DiscountCode] = None
) -> PriceBreakdown:
    product_price = to_money(product_price)
    delivery_cost = to_money(delivery_cost)
    service_fee = get_service_fee(product_price, delivery_cost)
    discount_value = compute_discount(discount, product_price, delivery_cost, service_fee)

    total = product_price + delivery_cost + service_fee - discount_value
    if total < 0:
        total = Decimal("0.00")

    return PriceBreakdown(
        product_price=product_price,
        delivery_cost=delivery_cost,
        service_fee=service_fee,
        discount_value=discount_value,
        discount_code=discount.code if discount else None,
        total=to_money(total),
    )


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def resolve_discount_code(db: Session, code: Optional[str]) -> DiscountCode:
    """Look up an active discount code, raising 400 for empty or unknown codes"""
    normalized = normalize_code(code)
    if not normalized:
        raise HTTPException(status_code=400, detail="Discount code is required")

    discount = (
        db.query(DiscountCode)
        .filter(DiscountCode.code == normalized, DiscountCode.is_active.is_(True))
        .first()
    )
    if not discount:
        logger.info(f"🚫 Rejected discount code: {normalized}")
        raise HTTPException(status_code=400, detail="Invalid discount code")

    return discount


def seed_discount_codes(db: Session) -> int:
    """Insert built-in discount codes that are not present yet"""
    existing = {code for (code,) in db.query(DiscountCode.code).all()}
    created = 0
    for entry in BUILTIN_DISCOUNT_CODES:
        if entry["code"] in existing:
            continue
        db.add(DiscountCode(**entry))
        created += 1

    if created:
        db.commit()
        logger.info(f"🏷️ Seeded {created} discount codes")
    return created
