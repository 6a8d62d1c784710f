from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from main import app, get_repository
from repository import InMemoryStoreRepository
from schemas import Product, User


def make_product(pid, name, price, category="Home", created="2024-01-01", description=""):
    return Product(
        id=pid,
        name=name,
        description=description,
        category=category,
        price=price,
        stock_quantity=10,
        created_at=datetime.fromisoformat(created).replace(tzinfo=timezone.utc),
    )


@pytest.fixture
def mugs():
    return [
        make_product("p1", "Red Mug", 10, created="2024-01-01"),
        make_product("p2", "Blue Mug", 25, created="2024-06-01"),
    ]


@pytest.fixture
def products():
    return [
        make_product("p1", "Red Mug", 10, created="2024-01-01", description="Stoneware"),
        make_product("p2", "Blue Mug", 25, created="2024-06-01"),
        make_product("p3", "Classic Tee", 19.99, category="Apparel", created="2024-03-15",
                     description="Soft cotton unisex t-shirt"),
        make_product("p4", "backpack", 49.0, category="Bags", created="2024-02-10"),
        make_product("p5", "Wireless Earbuds", 59.99, category="Electronics", created="2024-05-20",
                     description="Noise-isolating MUG-free audio"),
    ]


@pytest.fixture
def user():
    return User(id="u1", email="shopper@shop.io")


@pytest.fixture
def repo(products, user):
    r = InMemoryStoreRepository(products)
    r.add_session("token-1", user)
    return r


@pytest.fixture
def client(repo):
    app.dependency_overrides[get_repository] = lambda: repo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"Authorization": "Bearer token-1"}
