"""API tests for cancelling an order with ``PUT /api/orders/<id>/``."""

import uuid

import pytest

from apps.orders import adapters
from apps.orders.domain import PaymentResult, PaymentStatus
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"


def create(client, items=(("product-1", 1),)):
    body = {
        "member_id": "member-1",
        "items": [{"product_id": p, "quantity": q} for p, q in items],
        "payment_method": "BANK_TRANSFER",
    }
    return client.post(CREATE_URL, data=body, content_type="application/json")


def cancel(client, order_id, status="CANCELLED"):
    return client.put(f"/api/orders/{order_id}/", data={"status": status}, content_type="application/json")


@pytest.mark.django_db
def test_cancel_confirmed_order_refunds(client):
    created = create(client).json()
    r = cancel(client, created["id"])
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "CANCELLED"
    assert body["transaction_id"] == created["transaction_id"]
    assert body["refund_transaction_id"]

    row = OrderModel.objects.get(id=created["id"])
    assert row.status == OrderModel.Status.CANCELLED
    assert row.refund_transaction_id == body["refund_transaction_id"]


@pytest.mark.django_db
def test_cancel_twice_is_invalid_status(client, monkeypatch):
    created = create(client).json()
    assert cancel(client, created["id"]).status_code == 200

    refunds = []
    monkeypatch.setattr(adapters.PaymentsStub, "refund_payment", lambda self, tx, amount: refunds.append(tx))
    r = cancel(client, created["id"])
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_ORDER_STATUS"
    assert refunds == []


@pytest.mark.django_db
def test_only_cancelled_target_is_accepted(client):
    created = create(client).json()
    r = cancel(client, created["id"], status="CONFIRMED")
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_ORDER_STATUS"


@pytest.mark.django_db
def test_cancelled_order_rejects_confirmed_target(client):
    created = create(client).json()
    assert cancel(client, created["id"]).status_code == 200

    r = cancel(client, created["id"], status="CONFIRMED")
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_ORDER_STATUS"
    assert OrderModel.objects.get(id=created["id"]).status == OrderModel.Status.CANCELLED
    assert OrderModel.objects.get(id=created["id"]).status == OrderModel.Status.CONFIRMED


@pytest.mark.django_db
def test_unknown_target_status_is_validation_error(client):
    created = create(client).json()
    r = cancel(client, created["id"], status="SHIPPED")
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"
    assert "status" in r.json()["field_errors"]


@pytest.mark.django_db
def test_cancel_unknown_order(client):
    r = cancel(client, uuid.uuid4())
    assert r.status_code == 404
    assert r.json()["error"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_cancel_payment_failed_order(client, monkeypatch):
    assert create(client, items=(("product-1", 100), ("product-2", 100))).status_code == 422
    row = OrderModel.objects.get()

    refunds = []
    monkeypatch.setattr(adapters.PaymentsStub, "refund_payment", lambda self, tx, amount: refunds.append(tx))
    r = cancel(client, row.id)
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert refunds == []


@pytest.mark.django_db
def test_refund_failure_does_not_block_cancel(client, monkeypatch):
    created = create(client).json()
    monkeypatch.setattr(
        adapters.PaymentsStub,
        "refund_payment",
        lambda self, tx, amount: PaymentResult(status=PaymentStatus.FAILED.value),
    )
    r = cancel(client, created["id"])
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert r.json()["refund_transaction_id"] is None
