import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app, get_db
from schemas import Product, Shop


@pytest.fixture()
def db():
    client = mongomock.MongoClient()
    test_db = client["shop_test"]
    database.ensure_indexes(test_db)
    yield test_db
    client.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_shop(db):
    def _make(name="Flower Corner", address="Khreshchatyk St, 1, Kyiv"):
        return database.create_document(db, "shop", Shop(name=name, address=address))

    return _make


@pytest.fixture()
def make_product(db):
    def _make(shop_id, name="Rose", price_cents=1500, **extra):
        product = Product(shop_id=shop_id, name=name, price_cents=price_cents, **extra)
        return database.create_document(db, "product", product)

    return _make
