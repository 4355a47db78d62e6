"""API tests for the create-order endpoint.

These tests exercise the orders HTTP API for the main scenarios: successful
creation, member and product rejections, payment failure, payload validation
and the common error body. They rely on the in-process stubs from
``apps.orders.adapters`` for deterministic behavior.
"""
from uuid import UUID

import pytest

from apps.orders import adapters
from apps.orders.errors import ServiceUnavailable
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"


def payload(member_id="member-1", items=(("product-1", 2),), method="CREDIT_CARD"):
    return {
        "member_id": member_id,
        "items": [{"product_id": p, "quantity": q} for p, q in items],
        "payment_method": method,
    }


def post(client, body, **extra):
    return client.post(CREATE_URL, data=body, content_type="application/json", **extra)


@pytest.mark.django_db
def test_create_order_ok(client):
    r = post(client, payload())
    assert r.status_code == 201
    body = r.json()
    UUID(body["id"])
    assert body["status"] == "CONFIRMED"
    assert body["member_id"] == "member-1"
    assert body["payment_method"] == "CREDIT_CARD"
    assert body["total_amount"] == "199.98"
    assert body["transaction_id"]
    assert body["refund_transaction_id"] is None
    assert isinstance(body["number"], int)
    assert body["items"] == [
        {
            "product_id": "product-1",
            "product_name": "Mock Product product-1",
            "quantity": 2,
            "unit_price": "99.99",
            "subtotal": "199.98",
        }
    ]
    assert r.headers.get("Idempotent-Replay") is None


@pytest.mark.django_db
@pytest.mark.parametrize(
    "body, status, code",
    [
        (payload(member_id="not-found"), 404, "MEMBER_NOT_FOUND"),
        (payload(member_id="inactive-member"), 400, "MEMBER_INACTIVE"),
        (payload(items=(("not-found", 1),)), 404, "PRODUCT_NOT_FOUND"),
        (payload(items=(("discontinued", 1),)), 400, "PRODUCT_UNAVAILABLE"),
        (payload(items=(("out-of-stock", 1),)), 400, "INSUFFICIENT_STOCK"),
    ],
)
def test_rejections_before_payment(client, body, status, code):
    r = post(client, body)
    assert r.status_code == status
    assert r.json()["error"] == code
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_create_order_payment_failed(client):
    """Returns 422 and keeps a PAYMENT_FAILED row when the charge is declined."""
    r = post(client, payload(items=(("product-1", 100), ("product-2", 100))))
    assert r.status_code == 422
    assert r.json()["error"] == "PAYMENT_FAILED"

    row = OrderModel.objects.get()
    assert row.status == OrderModel.Status.PAYMENT_FAILED
    assert row.payment_transaction_id is None
    assert row.items.count() == 2


@pytest.mark.django_db
def test_create_order_service_unavailable(client, monkeypatch):
    def down(self, member_id):
        raise ServiceUnavailable("member service unavailable")

    monkeypatch.setattr(adapters.MemberStub, "get_member", down)
    r = post(client, payload())
    assert r.status_code == 503
    assert r.json()["error"] == "SERVICE_UNAVAILABLE"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize(
    "body, field",
    [
        (payload(items=()), "items"),
        (payload(items=(("product-1", 0),)), "items.0.quantity"),
        (payload(method="CASH"), "payment_method"),
        (payload(member_id="   "), "member_id"),
        ({"items": [{"product_id": "p", "quantity": 1}], "payment_method": "CREDIT_CARD"}, "member_id"),
        (payload(items=[("product-1", 1)] * 51), "items"),
    ],
)
def test_create_order_validation_error(client, body, field):
    """Returns 400 with per-field messages when the payload fails DTO validation."""
    r = post(client, body)
    assert r.status_code == 400
    err = r.json()
    assert err["error"] == "VALIDATION_ERROR"
    assert field in err["field_errors"]
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_error_body_carries_timestamp_and_trace_id(client):
    r = post(client, payload(member_id="not-found"), HTTP_X_REQUEST_ID="trace-123")
    body = r.json()
    assert set(body) == {"error", "message", "timestamp", "trace_id"}
    assert body["trace_id"] == "trace-123"
    assert r["X-Request-ID"] == "trace-123"
    assert body["message"]


@pytest.mark.django_db
def test_malformed_json_is_validation_error(client):
    r = client.post(CREATE_URL, data="{not json", content_type="application/json")
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_payload_too_large(client, settings):
    settings.API_MAX_BYTES = 16
    r = post(client, payload())
    assert r.status_code == 413
    assert r.json()["error"] == "PAYLOAD_TOO_LARGE"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nothing-here/")
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"
