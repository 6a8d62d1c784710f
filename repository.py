"""
Store repository.

The cart and checkout services and the HTTP layer only see
`StoreRepository`. `MongoStoreRepository` is the production store;
`InMemoryStoreRepository` keeps everything in process memory (tests, local
demos without a database).
"""

import functools
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from database import create_document
from errors import StoreError
from schemas import CartItem, Order, OrderItem, Product, User

logger = logging.getLogger(__name__)


class StoreRepository(ABC):

    @abstractmethod
    def get_current_user(self, token: str) -> Optional[User]:
        """Return the user owning the session token, or None."""

    @abstractmethod
    def list_products(self) -> List[Product]:
        """Return every product in the catalog, newest first."""

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        """Return a product by id, or None if not found."""

    @abstractmethod
    def list_cart_items_for_user(self, user_id: str) -> List[CartItem]:
        """Return the user's cart lines joined with their products."""

    @abstractmethod
    def insert_cart_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        ...

    @abstractmethod
    def add_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> int:
        """Atomically add `quantity` to the (user, product) line, creating it if
        missing, and return the line's new quantity."""

    @abstractmethod
    def update_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> None:
        ...

    @abstractmethod
    def delete_cart_item(self, user_id: str, product_id: str) -> None:
        ...

    @abstractmethod
    def clear_cart_for_user(self, user_id: str) -> int:
        """Delete every cart line of the user and return how many went."""

    @abstractmethod
    def insert_order(self, order: Order) -> Order:
        """Persist an order and return it with its id set."""

    @abstractmethod
    def insert_order_items(self, items: List[OrderItem]) -> None:
        ...

    @abstractmethod
    def delete_order(self, order_id: str) -> None:
        """Remove an order and any items already written for it."""

    @abstractmethod
    def list_orders_for_user(self, user_id: str) -> List[Order]:
        """Return the user's orders, newest first."""

    # Seeding

    @abstractmethod
    def count_products(self) -> int:
        ...

    @abstractmethod
    def delete_all_products(self) -> None:
        ...

    @abstractmethod
    def insert_products(self, products: List[Product]) -> int:
        ...


# ---------------- MongoDB ----------------

def to_str_id(doc: dict):
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _object_id(value) -> Optional[ObjectId]:
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def wrap_store_errors(func):
    """Re-raise pymongo failures as StoreError."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as e:
            logger.exception("[STORE_ERROR] %s failed", func.__name__)
            raise StoreError(f"{func.__name__} failed: {e}") from e
    return wrapper


class MongoStoreRepository(StoreRepository):

    def __init__(self, db):
        self.db = db

    @wrap_store_errors
    def ensure_indexes(self) -> None:
        """One cart line per (user, product); concurrent upserts rely on it."""
        self.db["cart"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)

    @wrap_store_errors
    def get_current_user(self, token: str) -> Optional[User]:
        session = self.db["session"].find_one({"token": token})
        if not session:
            return None
        _id = _object_id(session.get("user_id"))
        user = self.db["user"].find_one({"_id": _id}) if _id else None
        if not user:
            logger.warning("[SESSION_ORPHAN] session without user user_id=%s", session.get("user_id"))
            return None
        return User(**to_str_id(user))

    @wrap_store_errors
    def list_products(self) -> List[Product]:
        docs = self.db["product"].find({}).sort("created_at", -1)
        return [Product(**to_str_id(d)) for d in docs]

    @wrap_store_errors
    def get_product(self, product_id: str) -> Optional[Product]:
        _id = _object_id(product_id)
        if _id is None:
            return None
        doc = self.db["product"].find_one({"_id": _id})
        return Product(**to_str_id(doc)) if doc else None

    @wrap_store_errors
    def list_cart_items_for_user(self, user_id: str) -> List[CartItem]:
        lines = list(self.db["cart"].find({"user_id": user_id}))
        ids = [oid for oid in (_object_id(line.get("product_id")) for line in lines) if oid]
        products = {
            str(doc["_id"]): Product(**to_str_id(doc))
            for doc in self.db["product"].find({"_id": {"$in": ids}})
        } if ids else {}
        return [
            CartItem(
                id=str(line["_id"]),
                user_id=line["user_id"],
                product_id=line["product_id"],
                quantity=int(line.get("quantity", 1)),
                product=products.get(line["product_id"]),
            )
            for line in lines
        ]

    @wrap_store_errors
    def insert_cart_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        doc_id = create_document("cart", item.model_dump(exclude={"id", "product"}), database=self.db)
        return item.model_copy(update={"id": doc_id})

    @wrap_store_errors
    def add_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> int:
        doc = self.db["cart"].find_one_and_update(
            {"user_id": user_id, "product_id": product_id},
            {"$inc": {"quantity": quantity}, "$setOnInsert": {"created_at": datetime.now(timezone.utc)}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["quantity"])

    @wrap_store_errors
    def update_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> None:
        self.db["cart"].update_one(
            {"user_id": user_id, "product_id": product_id},
            {"$set": {"quantity": quantity}},
        )

    @wrap_store_errors
    def delete_cart_item(self, user_id: str, product_id: str) -> None:
        self.db["cart"].delete_one({"user_id": user_id, "product_id": product_id})

    @wrap_store_errors
    def clear_cart_for_user(self, user_id: str) -> int:
        return self.db["cart"].delete_many({"user_id": user_id}).deleted_count

    @wrap_store_errors
    def insert_order(self, order: Order) -> Order:
        order_id = create_document("order", order, database=self.db)
        return order.model_copy(update={"id": order_id})

    @wrap_store_errors
    def insert_order_items(self, items: List[OrderItem]) -> None:
        if items:
            self.db["order_item"].insert_many([i.model_dump() for i in items])

    @wrap_store_errors
    def delete_order(self, order_id: str) -> None:
        _id = _object_id(order_id)
        if _id is not None:
            self.db["order"].delete_one({"_id": _id})
        self.db["order_item"].delete_many({"order_id": order_id})

    @wrap_store_errors
    def list_orders_for_user(self, user_id: str) -> List[Order]:
        docs = self.db["order"].find({"user_id": user_id}).sort("created_at", -1)
        return [Order(**to_str_id(d)) for d in docs]

    @wrap_store_errors
    def count_products(self) -> int:
        return self.db["product"].count_documents({})

    @wrap_store_errors
    def delete_all_products(self) -> None:
        self.db["product"].delete_many({})

    @wrap_store_errors
    def insert_products(self, products: List[Product]) -> int:
        res = self.db["product"].insert_many([p.model_dump(exclude={"id"}) for p in products])
        return len(res.inserted_ids)


# ---------------- In memory ----------------

class InMemoryStoreRepository(StoreRepository):

    def __init__(self, products: Optional[List[Product]] = None):
        self._lock = threading.Lock()
        self._products: Dict[str, Product] = {}
        self._cart: Dict[Tuple[str, str], CartItem] = {}
        self._orders: List[Order] = []
        self.order_items: List[OrderItem] = []
        self._sessions: Dict[str, User] = {}
        if products:
            self.insert_products(products)

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    def add_session(self, token: str, user: User) -> None:
        with self._lock:
            self._sessions[token] = user

    def get_current_user(self, token: str) -> Optional[User]:
        return self._sessions.get(token)

    def list_products(self) -> List[Product]:
        with self._lock:
            products = list(self._products.values())
        return sorted(products, key=lambda p: p.created_at, reverse=True)

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def list_cart_items_for_user(self, user_id: str) -> List[CartItem]:
        with self._lock:
            lines = [line for (uid, _), line in self._cart.items() if uid == user_id]
            return [
                line.model_copy(update={"product": self._products.get(line.product_id)})
                for line in lines
            ]

    def insert_cart_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        item = CartItem(id=self._new_id(), user_id=user_id, product_id=product_id, quantity=quantity)
        with self._lock:
            self._cart[(user_id, product_id)] = item
        return item

    def add_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> int:
        with self._lock:
            line = self._cart.get((user_id, product_id))
            if line is None:
                line = CartItem(id=self._new_id(), user_id=user_id, product_id=product_id, quantity=quantity)
            else:
                line = line.model_copy(update={"quantity": line.quantity + quantity})
            self._cart[(user_id, product_id)] = line
        return line.quantity

    def update_cart_item_quantity(self, user_id: str, product_id: str, quantity: int) -> None:
        with self._lock:
            line = self._cart.get((user_id, product_id))
            if line is not None:
                self._cart[(user_id, product_id)] = line.model_copy(update={"quantity": quantity})

    def delete_cart_item(self, user_id: str, product_id: str) -> None:
        with self._lock:
            self._cart.pop((user_id, product_id), None)

    def clear_cart_for_user(self, user_id: str) -> int:
        with self._lock:
            keys = [k for k in self._cart if k[0] == user_id]
            for k in keys:
                del self._cart[k]
        return len(keys)

    def insert_order(self, order: Order) -> Order:
        saved = order.model_copy(update={"id": self._new_id()})
        with self._lock:
            self._orders.append(saved)
        return saved

    def insert_order_items(self, items: List[OrderItem]) -> None:
        with self._lock:
            self.order_items.extend(items)

    def delete_order(self, order_id: str) -> None:
        with self._lock:
            self._orders = [o for o in self._orders if o.id != order_id]
            self.order_items = [i for i in self.order_items if i.order_id != order_id]

    def list_orders_for_user(self, user_id: str) -> List[Order]:
        with self._lock:
            orders = [o for o in self._orders if o.user_id == user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def count_products(self) -> int:
        return len(self._products)

    def delete_all_products(self) -> None:
        with self._lock:
            self._products.clear()

    def insert_products(self, products: List[Product]) -> int:
        with self._lock:
            for p in products:
                pid = p.id or self._new_id()
                self._products[pid] = p.model_copy(update={"id": pid})
        return len(products)
