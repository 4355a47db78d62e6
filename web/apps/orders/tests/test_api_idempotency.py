import pytest

from apps.orders import adapters
from apps.orders.errors import ServiceUnavailable
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"

PAYLOAD = {
    "member_id": "member-1",
    "items": [{"product_id": "product-1", "quantity": 2}],
    "payment_method": "CREDIT_CARD",
}
DECLINED = {
    "member_id": "member-1",
    "items": [{"product_id": "product-1", "quantity": 100}, {"product_id": "product-2", "quantity": 100}],
    "payment_method": "CREDIT_CARD",
}


def post(client, body, key=None):
    extra = {"HTTP_IDEMPOTENCY_KEY": key} if key else {}
    return client.post(CREATE_URL, data=body, content_type="application/json", **extra)


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_order_on_retry(client):
    r1 = post(client, PAYLOAD, "idem-same-1")
    assert r1.status_code == 201
    body1 = r1.json()

    r2 = post(client, PAYLOAD, "idem-same-1")
    assert r2.status_code == 200
    assert r2.json() == body1
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_without_key_every_request_creates_an_order(client):
    r1 = post(client, PAYLOAD)
    r2 = post(client, PAYLOAD)
    assert r1.status_code == r2.status_code == 201
    assert r1.json()["id"] != r2.json()["id"]
    assert OrderModel.objects.count() == 2


@pytest.mark.django_db
def test_distinct_keys_create_distinct_orders(client):
    assert post(client, PAYLOAD, "idem-a").status_code == 201
    assert post(client, PAYLOAD, "idem-b").status_code == 201
    assert OrderModel.objects.count() == 2


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client):
    key = "idem-conflict-1"
    r1 = post(client, PAYLOAD, key)
    assert r1.status_code == 201

    other = {**PAYLOAD, "items": [{"product_id": "product-1", "quantity": 3}]}
    r2 = post(client, other, key)
    assert r2.status_code == 409
    assert r2.json()["error"] == "IDEMPOTENCY_CONFLICT"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_idempotent_replay_preserves_payment_failure(client):
    r1 = post(client, DECLINED, "idem-422")
    assert r1.status_code == 422

    r2 = post(client, DECLINED, "idem-422")
    assert r2.status_code == 422
    assert r2.json()["error"] == r1.json()["error"] == "PAYMENT_FAILED"
    assert r2.json()["message"] == r1.json()["message"]
    # the retry did not create a second PAYMENT_FAILED row
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_transient_failure_is_retried_under_same_key(client, monkeypatch):
    original = adapters.MemberStub.get_member
    calls = {"n": 0}

    def flaky(self, member_id):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ServiceUnavailable("member service unavailable")
        return original(self, member_id)

    monkeypatch.setattr(adapters.MemberStub, "get_member", flaky)

    r1 = post(client, PAYLOAD, "idem-503")
    assert r1.status_code == 503
    r2 = post(client, PAYLOAD, "idem-503")
    assert r2.status_code == 201
    assert r2.headers.get("Idempotent-Replay") is None
    assert OrderModel.objects.count() == 1
