"""Checkout repository - Database operations for products and delivery options"""

import uuid
from typing import Optional

from sqlalchemy.orm import Session

from ...models import DeliveryOption, Product


def is_valid_uuid(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class ProductRepository:
    """Repository for product lookups during checkout"""

    @staticmethod
    def get_product(db: Session, product_id: str) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    @staticmethod
    def get_product_delivery_option(
        product: Product, option_id: Optional[str]
    ) -> Optional[DeliveryOption]:
        """Delivery option only if it is offered for this product"""
        if not option_id:
            return None
        for option in product.delivery_options:
            if option.id == option_id:
                return option
        return None
