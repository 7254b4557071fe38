"""Checkout router - FastAPI endpoints for checkout quotes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import CheckoutQuoteResponse, StepValidationRequest, StepValidationResponse
from .service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


def get_checkout_service(db: Session = Depends(get_db)) -> CheckoutService:
    """Dependency injection for CheckoutService"""
    return CheckoutService(db)


@router.get("/{product_id}", response_model=CheckoutQuoteResponse)
async def get_checkout_quote(
    product_id: str,
    test_mode: bool = Query(False),
    delivery_option_id: Optional[str] = Query(None),
    discount_code: Optional[str] = Query(None),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Product, delivery options and server-computed price breakdown"""
    return service.get_quote(product_id, test_mode, delivery_option_id, discount_code)


@router.post("/{product_id}/steps/validate", response_model=StepValidationResponse)
async def validate_checkout_step(
    product_id: str,
    data: StepValidationRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Validate the current checkout step and return the step to show next"""
    return service.validate_step(product_id, data.step, data.form)
