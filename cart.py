"""
Cart use cases for a signed-in user.

Store failures are logged and re-raised so the client sees them.
"""

import logging
from typing import List

from catalog import aggregate_cart
from errors import NotFoundError, ValidationError
from repository import StoreRepository
from schemas import CartItem, CartSummary, User

logger = logging.getLogger(__name__)


class CartService:
    def __init__(self, repository: StoreRepository):
        self.repository = repository

    def get_items(self, user: User) -> List[CartItem]:
        return self.repository.list_cart_items_for_user(user.id)

    def summary(self, user: User) -> CartSummary:
        items = self.get_items(user)
        totals = aggregate_cart(items)
        return CartSummary(items=items, total=round(totals.total, 2), count=totals.count)

    def _find_line(self, user: User, product_id: str):
        return next((i for i in self.get_items(user) if i.product_id == product_id), None)

    def add(self, user: User, product_id: str, quantity: int = 1) -> CartSummary:
        """Add `quantity` units, merging into an existing line for the same product."""
        if quantity < 1:
            raise ValidationError("Quantity must be positive")
        product = self.repository.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if product.stock_quantity < 1:
            raise ValidationError("Product is out of stock")

        new_qty = self.repository.add_cart_item_quantity(user.id, product_id, quantity)
        logger.info("[CART_ADD] user=%s product=%s qty=%s", user.id, product_id, new_qty)
        return self.summary(user)

    def update_quantity(self, user: User, product_id: str, quantity: int) -> CartSummary:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if self._find_line(user, product_id) is None:
            raise NotFoundError("Product is not in the cart")
        self.repository.update_cart_item_quantity(user.id, product_id, quantity)
        logger.info("[CART_UPDATE] user=%s product=%s qty=%s", user.id, product_id, quantity)
        return self.summary(user)

    def remove(self, user: User, product_id: str) -> CartSummary:
        self.repository.delete_cart_item(user.id, product_id)
        logger.info("[CART_REMOVE] user=%s product=%s", user.id, product_id)
        return self.summary(user)

    def clear(self, user: User) -> int:
        deleted = self.repository.clear_cart_for_user(user.id)
        logger.info("[CART_CLEAR] user=%s deleted=%s", user.id, deleted)
        return deleted
