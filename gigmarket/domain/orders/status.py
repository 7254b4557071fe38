"""
Order status machine
Reservation → payment → fulfilment transitions for product orders
"""

import logging

from ...models import ProductOrder

logger = logging.getLogger(__name__)

RESERVED = "reserved"
AWAITING_PAYMENT = "awaiting_payment"
PENDING_PAYMENT = "pending_payment"
PAYMENT_SUCCEEDED = "payment_succeeded"
PAYMENT_FAILED = "payment_failed"
RESERVATION_EXPIRED = "reservation_expired"
ACCEPTED = "accepted"
READY_FOR_SHIPMENT = "ready_for_shipment"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

VALID_TRANSITIONS = {
    RESERVED: [AWAITING_PAYMENT, RESERVATION_EXPIRED, CANCELLED],
    AWAITING_PAYMENT: [PENDING_PAYMENT, PAYMENT_SUCCEEDED, RESERVATION_EXPIRED, CANCELLED],
    PENDING_PAYMENT: [PAYMENT_SUCCEEDED, PAYMENT_FAILED, AWAITING_PAYMENT, RESERVATION_EXPIRED],
    PAYMENT_FAILED: [PENDING_PAYMENT, PAYMENT_SUCCEEDED, RESERVATION_EXPIRED, CANCELLED],
    PAYMENT_SUCCEEDED: [ACCEPTED, CANCELLED],
    ACCEPTED: [READY_FOR_SHIPMENT, SHIPPED, CANCELLED],
    READY_FOR_SHIPMENT: [SHIPPED, CANCELLED],
    SHIPPED: [DELIVERED],
    DELIVERED: [],  # Terminal state
    RESERVATION_EXPIRED: [],  # Terminal state
    CANCELLED: [],  # Terminal state
}

# Statuses that keep the product held for the buyer
ACTIVE_STATUSES = [RESERVED, AWAITING_PAYMENT, PENDING_PAYMENT, PAYMENT_FAILED]

# Statuses a buyer may cancel from (nothing has been paid yet)
BUYER_CANCELLABLE_STATUSES = [RESERVED, AWAITING_PAYMENT, PAYMENT_FAILED]

# Statuses the seller drives after payment
FULFILMENT_STATUSES = [ACCEPTED, READY_FOR_SHIPMENT, SHIPPED, DELIVERED, CANCELLED]

STATUS_LABELS = {
    RESERVED: "Zarezerwowane",
    AWAITING_PAYMENT: "Oczekuje na płatność",
    PENDING_PAYMENT: "Płatność w toku",
    PAYMENT_SUCCEEDED: "Płatność zatwierdzona",
    PAYMENT_FAILED: "Błąd płatności",
    RESERVATION_EXPIRED: "Rezerwacja wygasła",
    ACCEPTED: "Przyjęte do realizacji",
    READY_FOR_SHIPMENT: "Gotowe do wysyłki",
    SHIPPED: "Wysłane",
    DELIVERED: "Dostarczone",
    CANCELLED: "Anulowane",
}


class InvalidStatusTransition(Exception):
    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(f"Invalid status transition: {current_status} → {new_status}")


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a status transition is allowed

    Args:
        current_status: Current order status
        new_status: Desired new status

    Returns:
        bool: True if transition is valid
    """
    return new_status in VALID_TRANSITIONS.get(current_status, [])


def ensure_transition(order: ProductOrder, new_status: str) -> None:
    """Move the order to new_status or raise InvalidStatusTransition"""
    if not validate_status_transition(order.status, new_status):
        raise InvalidStatusTransition(order.status, new_status)
    logger.info(f"🔄 Order {order.id} transitioned: {order.status} → {new_status}")
    order.status = new_status


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)
