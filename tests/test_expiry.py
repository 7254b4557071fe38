from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from gigmarket.domain.orders.expiry import cleanup_expired_orders
from gigmarket.models import ProductOrder, utcnow


def _order(db, product, buyer, status, **fields):
    order = ProductOrder(
        product_id=product.id,
        buyer_id=buyer.id,
        seller_id=product.user_id,
        status=status,
        total_amount=120,
        **fields,
    )
    db.add(order)
    db.commit()
    return order


def test_expired_reservation_releases_product(db_session, product, buyer):
    product.status = "reserved"
    order = _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() - timedelta(seconds=5))

    summary = cleanup_expired_orders(db_session)

    assert summary == {
        "reservations_expired": 1,
        "payment_deadlines_expired": 0,
        "products_released": 1,
        "total_updated": 2,
    }
    db_session.refresh(order)
    db_session.refresh(product)
    assert order.status == "reservation_expired"
    assert product.status == "available"


def test_unpaid_orders_past_deadline_expire(db_session, product, buyer, other_buyer):
    product.status = "reserved"
    past = utcnow() - timedelta(minutes=1)
    awaiting = _order(db_session, product, buyer, "awaiting_payment", payment_deadline=past)
    failed = _order(db_session, product, other_buyer, "payment_failed", payment_deadline=past)

    summary = cleanup_expired_orders(db_session)

    assert summary["payment_deadlines_expired"] == 2
    assert summary["products_released"] == 1
    db_session.refresh(awaiting)
    db_session.refresh(failed)
    assert awaiting.status == "reservation_expired"
    assert failed.status == "reservation_expired"


def test_fresh_orders_are_untouched(db_session, product, buyer):
    product.status = "reserved"
    order = _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() + timedelta(minutes=5))

    summary = cleanup_expired_orders(db_session)

    assert summary["total_updated"] == 0
    db_session.refresh(order)
    assert order.status == "reserved"


def test_pending_payment_is_left_to_the_provider(db_session, product, buyer):
    product.status = "reserved"
    order = _order(db_session, product, buyer, "pending_payment", payment_deadline=utcnow() - timedelta(hours=1))

    cleanup_expired_orders(db_session)

    db_session.refresh(order)
    assert order.status == "pending_payment"


def test_product_held_by_another_active_order_stays_reserved(db_session, product, buyer, other_buyer):
    product.status = "reserved"
    _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() - timedelta(minutes=1))
    _order(db_session, product, other_buyer, "awaiting_payment", payment_deadline=utcnow() + timedelta(hours=2))

    summary = cleanup_expired_orders(db_session)

    assert summary["reservations_expired"] == 1
    assert summary["products_released"] == 0
    db_session.refresh(product)
    assert product.status == "reserved"


def test_sold_product_is_not_released(db_session, product, buyer):
    product.status = "sold"
    _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() - timedelta(minutes=1))

    summary = cleanup_expired_orders(db_session)

    assert summary["products_released"] == 0
    db_session.refresh(product)
    assert product.status == "sold"


def test_explicit_now_expires_future_reservations(db_session, product, buyer):
    product.status = "reserved"
    _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() + timedelta(minutes=5))

    summary = cleanup_expired_orders(db_session, now=utcnow() + timedelta(minutes=10))

    assert summary["reservations_expired"] == 1


def test_sweep_rolls_back_and_reraises_on_error():
    db = MagicMock()
    with patch(
        "gigmarket.domain.orders.expiry.OrderRepository.get_stale_orders",
        side_effect=RuntimeError("database went away"),
    ):
        with pytest.raises(RuntimeError):
            cleanup_expired_orders(db)

    db.rollback.assert_called_once()
    db.commit.assert_not_called()


def test_sweep_endpoint(client, login, db_session, product, buyer):
    product.status = "reserved"
    _order(db_session, product, buyer, "reserved", reservation_expires_at=utcnow() - timedelta(minutes=1))
    login(buyer)

    response = client.post("/orders/maintenance/expire")

    assert response.status_code == 200
    assert response.json()["reservations_expired"] == 1
