import json
import uuid
from unittest.mock import patch

import pytest
import redis

from gigmarket.domain.orders.reservation import ReservationService
from gigmarket.models import Product


@pytest.fixture
def paid_order(db_session, product, buyer):
    order = ReservationService(db_session).initiate_order(product.id, buyer)
    order.status = "payment_succeeded"
    order.payment_status = "paid"
    product.status = "sold"
    db_session.commit()
    return order


def test_unauthenticated_requests_are_rejected(client):
    response = client.get("/orders")
    assert response.status_code == 401


def test_reserve_then_second_buyer_conflicts(client, login, product, buyer, other_buyer):
    login(buyer)
    response = client.post("/orders/reserve", json={"product_id": product.id})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "reserved"
    assert body["status_label"] == "Zarezerwowane"
    assert body["product_title"] == "Fender Stratocaster"
    assert body["product_image"] == "https://cdn.example.com/strat-1.jpg"
    assert body["total_amount"] == 120

    login(other_buyer)
    response = client.post("/orders/reserve", json={"product_id": product.id})
    assert response.status_code == 409


def test_active_reservation_lookup(client, login, product, buyer, other_buyer):
    login(buyer)
    order_id = client.post("/orders/reserve", json={"product_id": product.id}).json()["id"]

    assert client.get(f"/orders/reservations/{product.id}").json()["id"] == order_id

    login(other_buyer)
    response = client.get(f"/orders/reservations/{product.id}")
    assert response.status_code == 200
    assert response.json() is None


def test_confirm_and_cancel_through_api(client, login, db_session, product, buyer, confirm_form):
    login(buyer)
    order_id = client.post("/orders/reserve", json={"product_id": product.id}).json()["id"]

    response = client.post(f"/orders/{order_id}/confirm", json=confirm_form(discount_code="dostawa"))
    assert response.status_code == 200
    assert response.json()["status"] == "awaiting_payment"
    # Delivery is free: 100 + 20 + 1.80 - 20
    assert response.json()["total_amount"] == 101.8

    response = client.post(f"/orders/{order_id}/cancel")
    assert response.json()["status"] == "cancelled"
    db_session.refresh(product)
    assert product.status == "available"


def test_confirm_with_invalid_email_is_422(client, login, product, buyer, confirm_form):
    login(buyer)
    order_id = client.post("/orders/reserve", json={"product_id": product.id}).json()["id"]

    response = client.post(f"/orders/{order_id}/confirm", json=confirm_form(email="jan@"))

    assert response.status_code == 422


def test_orders_list_by_role(client, login, product, seller, buyer):
    login(buyer)
    client.post("/orders/reserve", json={"product_id": product.id})

    assert len(client.get("/orders").json()) == 1
    assert client.get("/orders", params={"role": "seller"}).json() == []

    login(seller)
    assert len(client.get("/orders", params={"role": "seller"}).json()) == 1
    assert client.get("/orders", params={"role": "admin"}).status_code == 400


@pytest.mark.parametrize(
    "image_url,expected",
    [
        (None, "/placeholder.svg"),
        ([], "/placeholder.svg"),
        ('["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]', "https://cdn.example.com/a.jpg"),
        ("https://cdn.example.com/single.jpg", "https://cdn.example.com/single.jpg"),
    ],
)
def test_order_product_image(client, login, db_session, seller, buyer, image_url, expected):
    item = Product(user_id=seller.id, title="Pedal", price=50, currency="PLN", image_url=image_url)
    db_session.add(item)
    db_session.commit()
    login(buyer)

    response = client.post("/orders/reserve", json={"product_id": item.id})

    assert response.json()["product_image"] == expected


def test_order_visible_to_participants_only(client, login, product, seller, buyer, other_buyer):
    login(buyer)
    order_id = client.post("/orders/reserve", json={"product_id": product.id}).json()["id"]

    assert client.get(f"/orders/{order_id}").status_code == 200
    login(seller)
    assert client.get(f"/orders/{order_id}").status_code == 200
    login(other_buyer)
    assert client.get(f"/orders/{order_id}").status_code == 404


def test_seller_moves_order_through_fulfilment(client, login, seller, paid_order):
    login(seller)

    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "accepted"})
    assert response.json()["status"] == "accepted"

    response = client.patch(
        f"/orders/{paid_order.id}/status",
        json={"status": "shipped", "tracking_number": "INP123456789", "notes": "Wysłane rano"},
    )
    body = response.json()
    assert body["status"] == "shipped"
    assert body["status_label"] == "Wysłane"
    assert body["tracking_number"] == "INP123456789"
    assert body["notes"] == "Wysłane rano"

    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "cancelled"})
    assert response.status_code == 400


def test_tracking_update_without_status_change(client, login, seller, paid_order):
    login(seller)
    client.patch(f"/orders/{paid_order.id}/status", json={"status": "accepted"})

    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "accepted", "tracking_number": "X1"})

    assert response.status_code == 200
    assert response.json()["tracking_number"] == "X1"


def test_seller_cancel_relists_sold_product(client, login, db_session, product, seller, paid_order):
    login(seller)

    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "cancelled"})

    assert response.json()["status"] == "cancelled"
    db_session.refresh(product)
    assert product.status == "available"


def test_only_seller_updates_status(client, login, buyer, paid_order):
    login(buyer)
    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "accepted"})
    assert response.status_code == 404


def test_status_update_rejects_payment_statuses(client, login, seller, paid_order):
    login(seller)
    response = client.patch(f"/orders/{paid_order.id}/status", json={"status": "payment_succeeded"})
    assert response.status_code == 422


def test_seller_stats(client, login, db_session, product, seller, buyer, paid_order):
    login(seller)

    response = client.get("/orders/stats/summary")

    assert response.json() == {"total": 1, "by_status": {"payment_succeeded": 1}}


# ----------------------------------------------------------------------------
# Checkout quote
# ----------------------------------------------------------------------------


def test_quote_defaults_to_cheapest_shipped_option(client, product):
    response = client.get(f"/checkout/{product.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["is_available"] is True
    assert body["image"] == "https://cdn.example.com/strat-1.jpg"
    assert [o["name"] for o in body["delivery_options"]] == ["Odbiór osobisty", "Paczkomat InPost", "Kurier"]
    assert body["selected_delivery_option"]["name"] == "Paczkomat InPost"
    assert body["pricing"] == {
        "product_price": 100.0,
        "delivery_cost": 12.99,
        "service_fee": 1.69,
        "discount_value": 0.0,
        "discount_code": None,
        "total": 114.68,
    }


def test_quote_with_option_and_discount(client, product, delivery_options):
    response = client.get(
        f"/checkout/{product.id}",
        params={"delivery_option_id": delivery_options["courier"].id, "discount_code": " rabat20 "},
    )

    pricing = response.json()["pricing"]
    assert pricing["discount_code"] == "RABAT20"
    assert pricing["discount_value"] == 20.0
    assert pricing["total"] == 101.8


def test_quote_in_test_mode(client, product, delivery_options):
    response = client.get(
        f"/checkout/{product.id}",
        params={"test_mode": True, "delivery_option_id": delivery_options["pickup"].id},
    )

    pricing = response.json()["pricing"]
    assert pricing["product_price"] == 1.0
    assert pricing["service_fee"] == 0.02
    assert pricing["total"] == 1.02


def test_quote_errors(client, product):
    assert client.get(f"/checkout/{uuid.uuid4()}").status_code == 404
    assert client.get("/checkout/not-a-uuid").status_code == 400

    response = client.get(f"/checkout/{product.id}", params={"discount_code": "FAKE50"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid discount code"

    response = client.get(f"/checkout/{product.id}", params={"delivery_option_id": str(uuid.uuid4())})
    assert response.status_code == 400


def test_step_validation_endpoint(client, product, delivery_options):
    response = client.post(
        f"/checkout/{product.id}/steps/validate",
        json={"step": "delivery", "form": {"delivery_option_id": delivery_options["courier"].id, "city": "Kraków"}},
    )

    body = response.json()
    assert body["valid"] is False
    assert body["next_step"] == "delivery"
    assert body["errors"] == ["Address is required", "Postal code is required"]

    response = client.post(
        f"/checkout/{product.id}/steps/validate",
        json={"step": "payment", "form": {"payment_method": "blik", "blik_code": "123456"}},
    )
    assert response.json() == {"valid": True, "step": "payment", "next_step": "summary", "errors": []}


@pytest.mark.parametrize("address", [None, 12, ["ul. Długa 5"]])
def test_step_validation_reports_mistyped_delivery_fields(client, product, delivery_options, address):
    response = client.post(
        f"/checkout/{product.id}/steps/validate",
        json={"step": "delivery", "form": {"delivery_option_id": delivery_options["courier"].id, "address": address}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["next_step"] == "delivery"
    assert body["errors"] == ["Input should be a valid string"]


# ----------------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------------


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").status_code == 200


def test_redis_health_reports_outage(client):
    with patch("gigmarket.main.get_redis_client", side_effect=redis.ConnectionError("refused")):
        response = client.get("/health/redis")

    assert response.json()["status"] == "unhealthy"
    assert response.json()["redis"]["connected"] is False


def test_json_string_image_is_parsed():
    from gigmarket.domain.checkout.service import first_product_image

    assert first_product_image(json.dumps([])) == "/placeholder.svg"
    assert first_product_image("[not json") == "[not json"
