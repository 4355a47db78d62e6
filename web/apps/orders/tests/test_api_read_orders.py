import uuid

import pytest

CREATE_URL = "/api/orders/"
LIST_URL = "/api/orders/"


def create(client, quantity=1, member_id="member-1"):
    body = {
        "member_id": member_id,
        "items": [{"product_id": "product-1", "quantity": quantity}],
        "payment_method": "DEBIT_CARD",
    }
    r = client.post(CREATE_URL, data=body, content_type="application/json")
    assert r.status_code == 201
    return r.json()


@pytest.mark.django_db
def test_retrieve_order_matches_create_response(client):
    created = create(client, quantity=3)
    r = client.get(f"/api/orders/{created['id']}/")
    assert r.status_code == 200
    assert r.json() == created


@pytest.mark.django_db
def test_retrieve_unknown_order_is_404(client):
    r = client.get(f"/api/orders/{uuid.uuid4()}/")
    assert r.status_code == 404
    assert r.json()["error"] == "ORDER_NOT_FOUND"


def test_retrieve_with_malformed_id_is_404(client):
    r = client.get("/api/orders/not-a-uuid/")
    assert r.status_code == 404


@pytest.mark.django_db
def test_list_orders_paginated_newest_first(client):
    ids = [create(client, quantity=q)["id"] for q in (1, 2, 3)]

    r = client.get(LIST_URL, {"page": 1, "page_size": 2})
    assert r.status_code == 200
    data = r.json()
    assert data["count"] == 3
    assert data["page"] == 1
    assert data["page_size"] == 2
    assert [o["id"] for o in data["results"]] == [ids[2], ids[1]]

    data = client.get(LIST_URL, {"page": 2, "page_size": 2}).json()
    assert [o["id"] for o in data["results"]] == [ids[0]]


@pytest.mark.django_db
def test_list_orders_sorting(client):
    for q in (3, 1, 2):
        create(client, quantity=q)

    data = client.get(LIST_URL, {"sort_by": "total_amount", "sort_dir": "ASC"}).json()
    assert [o["total_amount"] for o in data["results"]] == ["99.99", "199.98", "299.97"]

    data = client.get(LIST_URL, {"sort_by": "number", "sort_dir": "asc"}).json()
    numbers = [o["number"] for o in data["results"]]
    assert numbers == sorted(numbers)


@pytest.mark.django_db
@pytest.mark.parametrize(
    "params, field",
    [
        ({"sort_by": "member_id"}, "sort_by"),
        ({"sort_dir": "sideways"}, "sort_dir"),
        ({"page": 0}, "page"),
        ({"page_size": 1000}, "page_size"),
    ],
)
def test_list_orders_rejects_bad_query(client, params, field):
    r = client.get(LIST_URL, params)
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert field in body["field_errors"]


@pytest.mark.django_db
def test_list_empty(client):
    data = client.get(LIST_URL).json()
    assert data == {"count": 0, "page": 1, "page_size": 20, "results": []}
