import base64
import hashlib
import hmac
import importlib
import json
import os
import time
from unittest.mock import patch

import pytest

from gigmarket.domain.orders.reservation import ReservationService
from gigmarket.domain.payments.repository import PaymentRepository
from gigmarket.domain.payments.webhook_service import PaymentWebhookService
from gigmarket.models import Payment, WebhookEvent
from gigmarket.webhook_security import (
    WebhookSignatureError,
    compute_signature,
    extract_signing_key,
    verify_standard_webhook,
    verify_timestamp,
)

# The package re-exports the APIRouter under the submodule name
payments_router_module = importlib.import_module("gigmarket.domain.payments.router")

SECRET = os.environ["DODO_PAYMENTS_WEBHOOK_SECRET"]
WEBHOOK_SIGNING_KEY = base64.b64decode(SECRET[len("whsec_"):])


def sign(webhook_id: str, timestamp: str, body: bytes, key: bytes = WEBHOOK_SIGNING_KEY) -> str:
    message = f"{webhook_id}.{timestamp}.".encode() + body
    return "v1," + base64.b64encode(hmac.new(key, message, hashlib.sha256).digest()).decode()


def post_webhook(client, event: dict, webhook_id: str = "msg_1", timestamp=None, path="/webhooks/payments", **headers):
    body = json.dumps(event).encode()
    timestamp = timestamp or str(int(time.time()))
    signed = {
        "webhook-id": webhook_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": sign(webhook_id, timestamp, body),
        "content-type": "application/json",
    }
    signed.update(headers)
    return client.post(path, content=body, headers=signed)


def payment_event(event_type: str, order_id=None, payment_id="pay_wh_1", **data) -> dict:
    payload = {"payment_id": payment_id, **data}
    if order_id:
        payload["metadata"] = {"order_id": order_id}
    return {"type": event_type, "data": payload}


@pytest.fixture
def pending_order(client, login, db_session, product, buyer, confirm_request):
    """Order with a provider checkout in progress"""
    reservations = ReservationService(db_session)
    order = reservations.initiate_order(product.id, buyer)
    reservations.confirm_order(order.id, buyer, confirm_request())
    login(buyer)
    assert client.post(f"/payments/orders/{order.id}/checkout").status_code == 200
    db_session.refresh(order)
    return order


def test_payment_succeeded_marks_order_paid(client, db_session, product, pending_order):
    response = post_webhook(client, payment_event("payment.succeeded", pending_order.id))

    assert response.status_code == 200
    assert response.json() == {
        "status": "processed",
        "webhook_id": "msg_1",
        "result": "applied",
        "order_id": pending_order.id,
        "order_status": "payment_succeeded",
    }
    db_session.refresh(pending_order)
    db_session.refresh(product)
    assert pending_order.payment_status == "paid"
    assert pending_order.payment_id == "pay_wh_1"
    assert product.status == "sold"

    record = db_session.get(WebhookEvent, "msg_1")
    assert record.processed is True
    assert record.event_type == "payment.succeeded"
    assert record.created is not None


def test_duplicate_delivery_is_skipped(client, db_session, pending_order):
    event = payment_event("payment.succeeded", pending_order.id)
    post_webhook(client, event)

    response = post_webhook(client, event)

    assert response.status_code == 200
    assert response.json()["status"] == "already_processed"
    assert db_session.query(WebhookEvent).count() == 1


def test_payment_failed_keeps_product_reserved(client, db_session, product, pending_order):
    response = post_webhook(client, payment_event("payment.failed", pending_order.id))

    assert response.json()["order_status"] == "payment_failed"
    db_session.refresh(product)
    assert product.status == "reserved"
    assert db_session.query(Payment).one().status == "failed"


def test_payment_processing_updates_attempt_only(client, db_session, pending_order):
    response = post_webhook(client, payment_event("payment.processing", pending_order.id))

    assert response.json()["result"] == "payment_processing"
    db_session.refresh(pending_order)
    assert pending_order.status == "pending_payment"
    payment = db_session.query(Payment).one()
    assert payment.status == "processing"
    assert payment.payment_id == "pay_wh_1"


def test_order_found_by_checkout_session(client, db_session, pending_order):
    event = payment_event("payment.succeeded", checkout_session_id="cks_test_123")

    response = post_webhook(client, event)

    assert response.json()["order_id"] == pending_order.id
    assert response.json()["result"] == "applied"


def test_order_found_by_payment_id_of_attempt(client, db_session, pending_order):
    db_session.query(Payment).one().payment_id = "pay_known"
    db_session.commit()

    response = post_webhook(client, payment_event("payment.succeeded", payment_id="pay_known"))

    assert response.json()["order_id"] == pending_order.id


def test_unknown_order_is_acknowledged(client, db_session):
    response = post_webhook(client, payment_event("payment.succeeded", "missing-order"))

    assert response.status_code == 200
    assert response.json()["result"] == "order_not_found"
    record = db_session.get(WebhookEvent, "msg_1")
    assert record.error == "Order not found"
    assert record.processed is True


def test_unhandled_event_type_is_ignored(client):
    response = post_webhook(client, {"type": "subscription.active", "data": {}})

    assert response.json()["result"] == "ignored"


def test_invalid_transition_is_acknowledged_without_changes(client, db_session, product, buyer):
    order = ReservationService(db_session).initiate_order(product.id, buyer)

    response = post_webhook(client, payment_event("payment.succeeded", order.id))

    assert response.status_code == 200
    assert response.json()["result"] == "invalid_transition"
    db_session.refresh(order)
    db_session.refresh(product)
    assert order.status == "reserved"
    assert product.status == "reserved"
    assert "reserved" in db_session.get(WebhookEvent, "msg_1").error


def test_alias_path(client, pending_order):
    response = post_webhook(
        client, payment_event("payment.succeeded", pending_order.id), path="/api/payments/dodo/webhook"
    )

    assert response.status_code == 200
    assert response.json()["result"] == "applied"


def test_bad_signature_is_rejected(client, db_session, pending_order):
    response = post_webhook(
        client, payment_event("payment.succeeded", pending_order.id), **{"webhook-signature": "v1,Zm9yZ2Vk"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid webhook signature"
    db_session.refresh(pending_order)
    assert pending_order.status == "pending_payment"


def test_stale_timestamp_is_rejected(client, pending_order):
    stale = str(int(time.time()) - 600)

    response = post_webhook(client, payment_event("payment.succeeded", pending_order.id), timestamp=stale)

    assert response.status_code == 401
    assert response.json()["detail"] == "Webhook timestamp expired"


def test_missing_headers_are_rejected(client):
    response = client.post("/webhooks/payments", content=b"{}")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing webhook id"


def test_signed_non_json_body_is_rejected(client):
    timestamp = str(int(time.time()))
    body = b"not json"

    response = client.post(
        "/webhooks/payments",
        content=body,
        headers={
            "webhook-id": "msg_raw",
            "webhook-timestamp": timestamp,
            "webhook-signature": sign("msg_raw", timestamp, body),
        },
    )

    assert response.status_code == 400


def test_missing_secret_is_server_error(client, monkeypatch):
    monkeypatch.setattr(payments_router_module, "DODO_PAYMENTS_WEBHOOK_SECRET", None)

    response = post_webhook(client, {"type": "payment.succeeded", "data": {}})

    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook not configured"


def _store_event(db, webhook_id: str, processed: bool):
    # Core insert keeps the row out of the session, as a write from another worker would
    db.execute(
        WebhookEvent.__table__.insert().values(
            id=webhook_id, event_type="payment.succeeded", payload={}, processed=processed
        )
    )
    db.commit()


def test_unprocessed_event_is_retried_on_redelivery(client, db_session, product, pending_order):
    _store_event(db_session, "msg_1", processed=False)

    response = post_webhook(client, payment_event("payment.succeeded", pending_order.id))

    assert response.json()["status"] == "processed"
    assert response.json()["result"] == "applied"
    assert db_session.query(WebhookEvent).count() == 1
    assert db_session.get(WebhookEvent, "msg_1").processed is True
    db_session.refresh(product)
    assert product.status == "sold"


def test_concurrent_delivery_of_processed_event_is_skipped(db_session, fake_dodo):
    _store_event(db_session, "msg_race", processed=True)
    service = PaymentWebhookService(db_session, fake_dodo)

    # Both deliveries looked the id up before either stored it
    with patch.object(PaymentRepository, "get_webhook_event", return_value=None):
        result = service.handle_event("msg_race", {"type": "payment.succeeded", "data": {}})

    assert result == {"status": "already_processed", "webhook_id": "msg_race"}
    assert db_session.query(WebhookEvent).count() == 1


def test_concurrent_delivery_of_unprocessed_event_processes_stored_row(db_session, fake_dodo):
    _store_event(db_session, "msg_race", processed=False)
    service = PaymentWebhookService(db_session, fake_dodo)

    with patch.object(PaymentRepository, "get_webhook_event", return_value=None):
        result = service.handle_event("msg_race", {"type": "subscription.active", "data": {}})

    assert result["status"] == "processed"
    assert result["result"] == "ignored"
    assert db_session.get(WebhookEvent, "msg_race").processed is True


def test_processing_error_is_recorded_and_raised(db_session, fake_dodo):
    service = PaymentWebhookService(db_session, fake_dodo)

    with patch.object(PaymentWebhookService, "_dispatch", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            service.handle_event("msg_err", {"type": "payment.succeeded", "data": {}})

    record = db_session.get(WebhookEvent, "msg_err")
    assert record.error == "boom"
    assert record.processed is False


# ----------------------------------------------------------------------------
# Signature primitives
# ----------------------------------------------------------------------------


def test_signing_key_is_decoded_from_secret():
    assert extract_signing_key(SECRET) == WEBHOOK_SIGNING_KEY
    assert extract_signing_key("plain secret!") == b"plain secret!"


def test_compute_signature_matches_reference():
    body = b'{"type":"payment.succeeded"}'
    assert "v1," + compute_signature(SECRET, "msg_1", "1700000000", body) == sign("msg_1", "1700000000", body)


def test_any_listed_signature_may_match():
    body = b"{}"
    valid = sign("msg_1", "1700000000", body)

    verify_standard_webhook(SECRET, "msg_1", "1700000000", f"v1,b2xk {valid}", body, now=1700000010)

    with pytest.raises(WebhookSignatureError):
        verify_standard_webhook(SECRET, "msg_1", "1700000000", "v2," + valid[3:], body, now=1700000010)


def test_tampered_body_fails():
    valid = sign("msg_1", "1700000000", b'{"amount":100}')

    with pytest.raises(WebhookSignatureError, match="Invalid webhook signature"):
        verify_standard_webhook(SECRET, "msg_1", "1700000000", valid, b'{"amount":1}', now=1700000000)


@pytest.mark.parametrize(
    "timestamp,now,expected",
    [
        ("1700000000", 1700000299, True),
        ("1700000000", 1700000301, False),
        ("1700000300", 1700000000, True),
        ("1700000400", 1700000000, False),
        ("yesterday", 1700000000, False),
        ("", 1700000000, False),
    ],
)
def test_timestamp_tolerance(timestamp, now, expected):
    assert verify_timestamp(timestamp, now=now) is expected
