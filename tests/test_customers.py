import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from pymongo.errors import DuplicateKeyError

from customers import find_prefill, upsert_customer
from tests.helpers import line, order_body


def test_upsert_creates_customer_with_defaults(db):
    customer = upsert_customer(
        db, " Olena@Example.com ", "063-123-45-67", "Sadova St, 12", " Olena "
    )

    assert customer["email"] == "olena@example.com"
    assert customer["phone"] == "0631234567"
    assert customer["name"] == "Olena"
    assert customer["default_address"] == "Sadova St, 12"
    assert customer["timezone"] == "Europe/Kyiv"
    assert customer["last_seen_at"] is not None
    assert db["customer"].count_documents({}) == 1


def test_upsert_matches_on_normalized_identity(db):
    upsert_customer(db, "OLENA@EXAMPLE.COM", "063-123-45-67", "Sadova St, 12", "Olena")
    upsert_customer(db, "olena@example.com", "0631234567", "Rynok Sq, 1")

    assert db["customer"].count_documents({}) == 1
    stored = db["customer"].find_one()
    assert stored["default_address"] == "Rynok Sq, 1"
    assert stored["name"] == "Olena"


def test_upsert_never_blanks_a_stored_name(db):
    upsert_customer(db, "olena@example.com", "0631234567", "Sadova St, 12", "Olena")
    upsert_customer(db, "olena@example.com", "0631234567", "Sadova St, 12", "   ")

    assert db["customer"].find_one()["name"] == "Olena"


def test_different_phone_is_a_different_customer(db):
    upsert_customer(db, "olena@example.com", "0631234567", "Sadova St, 12")
    upsert_customer(db, "olena@example.com", "0671234567", "Sadova St, 12")

    assert db["customer"].count_documents({}) == 2


def test_upsert_recovers_when_a_concurrent_insert_wins(db, monkeypatch):
    collection_cls = type(db["customer"])
    original = collection_cls.find_one_and_update
    calls = []

    def racing(self, filter, update, *args, **kwargs):
        calls.append(filter)
        if len(calls) == 1:
            self.insert_one(
                {"email": filter["email"], "phone": filter["phone"], "timezone": "Europe/Kyiv"}
            )
            raise DuplicateKeyError("E11000 duplicate key error")
        return original(self, filter, update, *args, **kwargs)

    monkeypatch.setattr(collection_cls, "find_one_and_update", racing)

    customer = upsert_customer(db, "a@example.com", "0631234567", "Sadova St, 12", "Anna")

    assert len(calls) == 2
    assert customer["name"] == "Anna"
    assert db["customer"].count_documents({}) == 1


def test_unique_index_rejects_duplicate_identity(db):
    db["customer"].insert_one({"email": "a@example.com", "phone": "0631234567"})

    with pytest.raises(DuplicateKeyError):
        db["customer"].insert_one({"email": "a@example.com", "phone": "0631234567"})


def test_find_prefill(db):
    upsert_customer(db, "olena@example.com", "0631234567", "Sadova St, 12", "Olena")

    assert find_prefill(db, "Olena@Example.com", "063 123 45 67") == {
        "name": "Olena",
        "email": "olena@example.com",
        "phone": "0631234567",
        "defaultAddress": "Sadova St, 12",
        "timezone": "Europe/Kyiv",
    }
    assert find_prefill(db, "nobody@example.com", "0631234567") is None


def test_prefill_endpoint(client, db):
    upsert_customer(db, "olena@example.com", "0631234567", "Sadova St, 12")

    found = client.post(
        "/api/customers/prefill", json={"email": "olena@example.com", "phone": "063-123-45-67"}
    )
    missing = client.post(
        "/api/customers/prefill", json={"email": "other@example.com", "phone": "0631234567"}
    )
    invalid = client.post("/api/customers/prefill", json={"email": "olena", "phone": "1"})

    assert found.status_code == 200
    assert found.json()["name"] is None
    assert found.json()["defaultAddress"] == "Sadova St, 12"
    assert missing.status_code == 200
    assert missing.json() is None
    assert invalid.status_code == 400
    assert {d["path"] for d in invalid.json()["details"]} == {"email", "phone"}


def test_concurrent_first_orders_create_one_customer(client, db, make_shop, make_product):
    product_id = make_product(make_shop())
    barrier = threading.Barrier(2)

    def place(email, phone):
        body = order_body([line(product_id)], email=email, phone=phone)
        barrier.wait()
        return client.post("/api/orders", json=body).status_code

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(place, "A@B.COM", "063-123-45-67"),
            pool.submit(place, "a@b.com", "0631234567"),
        ]
        statuses = [f.result(timeout=30) for f in futures]

    assert statuses == [201, 201]
    assert db["customer"].count_documents({}) == 1
    assert db["customer"].find_one({}, {"_id": 0, "email": 1, "phone": 1}) == {
        "email": "a@b.com",
        "phone": "0631234567",
    }
    assert db["order"].count_documents({}) == 2
