"""Checkout form validation and step navigation"""

import logging
from typing import Optional

from fastapi import HTTPException
from pydantic import ValidationError

from ...models import DeliveryOption
from .schemas import (
    COURIER,
    INPOST,
    PERSONAL_PICKUP,
    POSTAL_CODE_RE,
    STEP_ORDER,
    CheckoutStep,
    DeliveryForm,
    PaymentForm,
    PersonalDataForm,
)

logger = logging.getLogger(__name__)


def _error_messages(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        msg = error.get("msg", "")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        messages.append(msg)
    return messages


def validate_personal_data(form: dict) -> list[str]:
    try:
        PersonalDataForm(**form)
    except ValidationError as e:
        return _error_messages(e)
    return []


def validate_delivery_data(
    delivery: DeliveryForm, option: Optional[DeliveryOption]
) -> list[str]:
    """Required delivery fields depend on the chosen option's name"""
    if option is None:
        return ["Select a delivery option"]

    errors = []
    if option.name == COURIER:
        if not (delivery.address or "").strip():
            errors.append("Address is required")
        if not (delivery.city or "").strip():
            errors.append("City is required")
        postal_code = (delivery.postal_code or "").strip()
        if not postal_code:
            errors.append("Postal code is required")
        elif not POSTAL_CODE_RE.match(postal_code):
            errors.append("Postal code must look like 00-000")
    elif option.name == INPOST:
        if not (delivery.inpost_point or "").strip():
            errors.append("Select an InPost parcel locker")
    return errors


def validate_payment_data(form: dict) -> list[str]:
    try:
        PaymentForm(**form)
    except ValidationError as e:
        return _error_messages(e)
    return []


def validate_step(
    step: CheckoutStep, form: dict, option: Optional[DeliveryOption] = None
) -> list[str]:
    if step == CheckoutStep.PERSONAL:
        return validate_personal_data(form)
    if step == CheckoutStep.DELIVERY:
        try:
            delivery = DeliveryForm(**form)
        except ValidationError as e:
            return _error_messages(e)
        return validate_delivery_data(delivery, option)
    if step == CheckoutStep.PAYMENT:
        return validate_payment_data(form)
    return []


def next_step(
    step: CheckoutStep, form: dict, option: Optional[DeliveryOption] = None
) -> tuple[CheckoutStep, list[str]]:
    """Advance one step when the current one is valid; stays put otherwise"""
    errors = validate_step(step, form, option)
    if errors:
        return step, errors
    index = STEP_ORDER.index(step)
    return STEP_ORDER[min(index + 1, len(STEP_ORDER) - 1)], []


def previous_step(step: CheckoutStep) -> CheckoutStep:
    index = STEP_ORDER.index(step)
    return STEP_ORDER[max(index - 1, 0)]


def ensure_delivery_valid(delivery: DeliveryForm, option: Optional[DeliveryOption]) -> None:
    errors = validate_delivery_data(delivery, option)
    if errors:
        logger.info(f"🚫 Delivery data rejected: {errors}")
        raise HTTPException(status_code=422, detail=errors[0])


def default_delivery_option(options: list[DeliveryOption]) -> Optional[DeliveryOption]:
    """First option that is not personal pickup, falling back to the first option"""
    if not options:
        return None
    for option in options:
        if option.name != PERSONAL_PICKUP:
            return option
    return options[0]


def reservation_delivery_option(options: list[DeliveryOption]) -> Optional[DeliveryOption]:
    """Reservations start with courier delivery when the product offers it"""
    for option in options:
        if option.name == COURIER:
            return option
    return default_delivery_option(options)


def format_shipping_address(delivery: DeliveryForm, option: Optional[DeliveryOption]) -> Optional[str]:
    if option is None:
        return None
    if option.name == COURIER:
        return f"{delivery.address.strip()}, {delivery.postal_code.strip()} {delivery.city.strip()}"
    if option.name == INPOST:
        return f"{INPOST}: {delivery.inpost_point.strip()}"
    return None
