"""Unit tests for the HTTP adapters to the member, product and payment services.

These tests verify that the HTTP clients map success, business rejections and
network errors correctly by monkeypatching ``httpx.Client.request`` and
asserting the adapter behavior.
"""
import uuid
from decimal import Decimal

import httpx
import pytest

from apps.orders.domain import Member, PaymentMethod, PaymentRequest, PaymentStatus, Product, Stock
from apps.orders.errors import MemberNotFound, ProductNotFound, ServiceUnavailable
from apps.orders.http_adapters import HttpMemberClient, HttpPaymentsClient, HttpProductClient
from gateway.middleware import REQUEST_ID_CTX


class DummyResp:
    """Minimal httpx-like response stub for adapter tests.

    Args:
        status_code (int): HTTP status code to simulate.
        json_data (dict | None): JSON body to return from ``json()``.
    """
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("no body")
        return self._json


def fake_request(responses, seen=None):
    """Return a ``Client.request`` replacement serving ``responses`` in order."""
    queue = list(responses)

    def _request(self, method, url, json=None, headers=None, **kw):
        if seen is not None:
            seen.append({"method": method, "url": url, "json": json, "headers": dict(headers or {})})
        out = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(out, Exception):
            raise out
        return out

    return _request


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def test_get_member_ok(monkeypatch):
    seen = []
    monkeypatch.setattr(
        httpx.Client, "request",
        fake_request([DummyResp(200, {"id": "m-1", "status": "ACTIVE", "grade": "GOLD"})], seen),
    )
    member = HttpMemberClient(base_url="http://members:8081").get_member("m-1")
    assert member == Member(id="m-1", status="ACTIVE", grade="GOLD")
    assert seen[0]["method"] == "GET"
    assert seen[0]["url"] == "http://members:8081/members/m-1"


def test_get_member_404_is_member_not_found(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", fake_request([DummyResp(404)]))
    with pytest.raises(MemberNotFound):
        HttpMemberClient(base_url="http://x").get_member("ghost")


def test_get_member_unreadable_body_is_none(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", fake_request([DummyResp(200, None)]))
    assert HttpMemberClient(base_url="http://x").get_member("m-1") is None


def test_get_product_and_stock(monkeypatch):
    monkeypatch.setattr(
        httpx.Client, "request",
        fake_request([
            DummyResp(200, {"id": "p-1", "name": "Widget", "price": "12.5000", "status": "AVAILABLE"}),
            DummyResp(200, {"quantity": 10, "reserved": 3, "available": 7}),
        ]),
    )
    client = HttpProductClient(base_url="http://x")
    assert client.get_product("p-1") == Product(id="p-1", name="Widget", price=Decimal("12.5"), status="AVAILABLE")
    assert client.get_stock("p-1") == Stock(quantity=10, reserved=3, available=7)


def test_get_product_404_and_malformed(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", fake_request([DummyResp(404)]))
    with pytest.raises(ProductNotFound):
        HttpProductClient(base_url="http://x").get_product("ghost")

    monkeypatch.setattr(httpx.Client, "request", fake_request([DummyResp(200, {"id": "p-1", "price": "abc"})]))
    assert HttpProductClient(base_url="http://x").get_product("p-1") is None


def test_create_payment_ok_sends_idempotency_and_request_id(monkeypatch):
    seen = []
    tx = str(uuid.uuid4())
    monkeypatch.setattr(
        httpx.Client, "request",
        fake_request([DummyResp(200, {"status": "COMPLETED", "transaction_id": tx})], seen),
    )
    order_id = uuid.uuid4()
    token = REQUEST_ID_CTX.set("req-42")
    try:
        result = HttpPaymentsClient(base_url="http://pay").create_payment(
            PaymentRequest(order_id=order_id, amount=Decimal("199.98"), method=PaymentMethod.CREDIT_CARD)
        )
    finally:
        REQUEST_ID_CTX.reset(token)

    assert result.status == PaymentStatus.COMPLETED.value
    assert result.transaction_id == tx
    call = seen[0]
    assert call["url"] == "http://pay/payments"
    assert call["json"] == {"order_id": str(order_id), "amount": "199.98", "method": "CREDIT_CARD"}
    assert call["headers"]["Idempotency-Key"] == f"order-{order_id}"
    assert call["headers"]["X-Request-ID"] == "req-42"


def test_create_payment_declined(monkeypatch):
    monkeypatch.setattr(httpx.Client, "request", fake_request([DummyResp(402, {"detail": "declined"})]))
    result = HttpPaymentsClient(base_url="http://pay").create_payment(
        PaymentRequest(order_id=uuid.uuid4(), amount=Decimal("1.00"), method=PaymentMethod.BANK_TRANSFER)
    )
    assert result.status == PaymentStatus.FAILED.value
    assert result.transaction_id is None


def test_refund_payment(monkeypatch):
    seen = []
    monkeypatch.setattr(
        httpx.Client, "request",
        fake_request([DummyResp(200, {"status": "REFUNDED", "transaction_id": "rf-1"})], seen),
    )
    result = HttpPaymentsClient(base_url="http://pay").refund_payment("tx-1", Decimal("10.00"))
    assert result.status == PaymentStatus.REFUNDED.value
    assert result.transaction_id == "rf-1"
    assert seen[0]["url"] == "http://pay/payments/tx-1/refund"
    assert seen[0]["headers"]["Idempotency-Key"] == "refund-tx-1"


def test_network_error_becomes_service_unavailable(monkeypatch):
    seen = []
    monkeypatch.setattr(httpx.Client, "request", fake_request([httpx.ConnectError("boom")], seen))
    with pytest.raises(ServiceUnavailable):
        HttpPaymentsClient(base_url="http://pay").create_payment(
            PaymentRequest(order_id=uuid.uuid4(), amount=Decimal("1.00"), method=PaymentMethod.DEBIT_CARD)
        )
    # HTTP_RETRY_MAX is the total number of attempts
    assert len(seen) == 2
