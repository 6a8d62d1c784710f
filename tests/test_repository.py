"""
Tests for the Mongo repository against mocked collections.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import create_document
from errors import StoreError
from repository import MongoStoreRepository, to_str_id
from schemas import Order, OrderItem, ShippingAddress

PRODUCT_ID = ObjectId()
USER_ID = ObjectId()


def product_doc():
    return {
        "_id": PRODUCT_ID,
        "name": "Ceramic Mug",
        "description": "12oz matte finish mug",
        "category": "Home",
        "price": 12.5,
        "stock_quantity": 80,
        "image_url": "",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


@pytest.fixture
def db():
    return {name: MagicMock() for name in ("product", "cart", "order", "order_item", "user", "session")}


def test_to_str_id():
    assert to_str_id({"_id": PRODUCT_ID, "name": "x"}) == {"id": str(PRODUCT_ID), "name": "x"}
    assert to_str_id(None) is None


def test_get_product_with_malformed_id(db):
    assert MongoStoreRepository(db).get_product("not-an-object-id") is None
    db["product"].find_one.assert_not_called()


def test_get_product(db):
    db["product"].find_one.return_value = product_doc()
    product = MongoStoreRepository(db).get_product(str(PRODUCT_ID))
    assert product.id == str(PRODUCT_ID)
    assert product.price == 12.5


def test_cart_join_keeps_lines_without_product(db):
    db["cart"].find.return_value = [
        {"_id": ObjectId(), "user_id": "u1", "product_id": str(PRODUCT_ID), "quantity": 2},
        {"_id": ObjectId(), "user_id": "u1", "product_id": "broken", "quantity": 1},
    ]
    db["product"].find.return_value = [product_doc()]

    items = MongoStoreRepository(db).list_cart_items_for_user("u1")

    assert [i.quantity for i in items] == [2, 1]
    assert items[0].product.name == "Ceramic Mug"
    assert items[1].product is None


def test_current_user(db):
    db["session"].find_one.return_value = {"token": "t", "user_id": str(USER_ID)}
    db["user"].find_one.return_value = {"_id": USER_ID, "email": "shopper@shop.io"}
    user = MongoStoreRepository(db).get_current_user("t")
    assert user.id == str(USER_ID)


def test_unknown_session(db):
    db["session"].find_one.return_value = None
    assert MongoStoreRepository(db).get_current_user("t") is None


def test_backend_failure_becomes_store_error(db):
    db["cart"].delete_many.side_effect = PyMongoError("connection refused")
    with pytest.raises(StoreError):
        MongoStoreRepository(db).clear_cart_for_user("u1")


def test_create_document_stamps_created_at(db):
    new_id = ObjectId()
    db["order"].insert_one.return_value.inserted_id = new_id

    assert create_document("order", {"total": 3}, database=db) == str(new_id)

    doc = db["order"].insert_one.call_args.args[0]
    assert doc["total"] == 3
    assert isinstance(doc["created_at"], datetime)


def test_list_products_newest_first(db):
    db["product"].find.return_value.sort.return_value = [product_doc()]

    products = MongoStoreRepository(db).list_products()

    db["product"].find.assert_called_once_with({})
    db["product"].find.return_value.sort.assert_called_once_with("created_at", -1)
    assert [p.name for p in products] == ["Ceramic Mug"]


def test_insert_cart_item(db):
    new_id = ObjectId()
    db["cart"].insert_one.return_value.inserted_id = new_id

    item = MongoStoreRepository(db).insert_cart_item("u1", str(PRODUCT_ID), 2)

    assert item.id == str(new_id)
    doc = db["cart"].insert_one.call_args.args[0]
    assert {k: doc[k] for k in ("user_id", "product_id", "quantity")} == {
        "user_id": "u1", "product_id": str(PRODUCT_ID), "quantity": 2,
    }
    assert "product" not in doc and "id" not in doc


def test_add_cart_item_quantity_is_a_single_upsert(db):
    db["cart"].find_one_and_update.return_value = {"user_id": "u1", "product_id": "p1", "quantity": 5}

    assert MongoStoreRepository(db).add_cart_item_quantity("u1", "p1", 2) == 5

    args, kwargs = db["cart"].find_one_and_update.call_args
    assert args[0] == {"user_id": "u1", "product_id": "p1"}
    assert args[1]["$inc"] == {"quantity": 2}
    assert "created_at" in args[1]["$setOnInsert"]
    assert kwargs == {"upsert": True, "return_document": ReturnDocument.AFTER}


def test_cart_index_is_unique(db):
    MongoStoreRepository(db).ensure_indexes()
    args, kwargs = db["cart"].create_index.call_args
    assert args[0] == [("user_id", 1), ("product_id", 1)]
    assert kwargs == {"unique": True}


def test_update_cart_item_quantity(db):
    MongoStoreRepository(db).update_cart_item_quantity("u1", "p1", 4)
    db["cart"].update_one.assert_called_once_with(
        {"user_id": "u1", "product_id": "p1"}, {"$set": {"quantity": 4}},
    )


def make_order():
    return Order(
        user_id="u1",
        total_amount=25.0,
        shipping_address=ShippingAddress(
            full_name="Ada Shopper", address_line_1="1 Market St",
            city="Springfield", state="IL", postal_code="62701",
        ),
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


def test_insert_order_and_items(db):
    new_id = ObjectId()
    db["order"].insert_one.return_value.inserted_id = new_id
    repo = MongoStoreRepository(db)

    order = repo.insert_order(make_order())
    repo.insert_order_items([OrderItem(order_id=order.id, product_id="p1", quantity=2, price=12.5)])

    assert order.id == str(new_id)
    doc = db["order"].insert_one.call_args.args[0]
    assert doc["status"] == "pending"
    assert doc["shipping_address"]["city"] == "Springfield"
    db["order_item"].insert_many.assert_called_once_with([
        {"order_id": str(new_id), "product_id": "p1", "quantity": 2, "price": 12.5},
    ])


def test_insert_no_order_items_skips_write(db):
    MongoStoreRepository(db).insert_order_items([])
    db["order_item"].insert_many.assert_not_called()


def test_delete_order(db):
    order_id = str(ObjectId())
    MongoStoreRepository(db).delete_order(order_id)
    db["order"].delete_one.assert_called_once_with({"_id": ObjectId(order_id)})
    db["order_item"].delete_many.assert_called_once_with({"order_id": order_id})


def test_list_orders_newest_first(db):
    doc = {"_id": ObjectId(), **make_order().model_dump(exclude={"id"})}
    db["order"].find.return_value.sort.return_value = [doc]

    orders = MongoStoreRepository(db).list_orders_for_user("u1")

    db["order"].find.assert_called_once_with({"user_id": "u1"})
    db["order"].find.return_value.sort.assert_called_once_with("created_at", -1)
    assert [o.id for o in orders] == [str(doc["_id"])]
