"""Orders router - FastAPI endpoints for reservations and order management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ..checkout.schemas import ConfirmOrderRequest
from .expiry import cleanup_expired_orders
from .reservation import ReservationService
from .schemas import (
    ExpirySweepResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    ReserveRequest,
)
from .service import OrderService, to_order_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    return OrderService(db)


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    """Dependency injection for ReservationService"""
    return ReservationService(db)


# ============================================================================
# RESERVATIONS
# ============================================================================


@router.post("/reserve", response_model=OrderResponse)
async def reserve_product(
    data: ReserveRequest,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Reserve a product for the current user"""
    order = service.initiate_order(data.product_id, current_user, data.test_mode)
    return to_order_response(order)


@router.get("/reservations/{product_id}", response_model=Optional[OrderResponse])
async def get_active_reservation(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Current user's unexpired reservation for a product, or null"""
    order = service.get_active_reservation(product_id, current_user)
    return to_order_response(order) if order else None


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: str,
    data: ConfirmOrderRequest,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Confirm delivery, discount and pricing for a reservation"""
    order = service.confirm_order(order_id, current_user, data)
    return to_order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Buyer cancels an unpaid order"""
    order = service.cancel_order(order_id, current_user)
    return to_order_response(order)


# ============================================================================
# ORDER MANAGEMENT
# ============================================================================


@router.get("", response_model=list[OrderResponse])
async def get_orders(
    role: str = Query("buyer"),
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Orders of the current user as buyer or seller"""
    orders = service.get_orders(current_user, role)
    return [to_order_response(o) for o in orders]


@router.get("/stats/summary", response_model=OrderStatsResponse)
async def get_order_stats(
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Count of the seller's orders by status"""
    return service.get_stats(current_user)


@router.post("/maintenance/expire", response_model=ExpirySweepResponse)
async def run_expiry_sweep(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Manually trigger the reservation sweep"""
    logger.info(f"🔧 Reservation sweep triggered by user {current_user.id}")
    return cleanup_expired_orders(db)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Order details for its buyer or seller"""
    order = service.get_order(order_id, current_user)
    return to_order_response(order)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Seller updates fulfilment status, tracking number and notes"""
    order = service.update_status(order_id, data, current_user)
    return to_order_response(order)
