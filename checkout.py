import logging
from typing import List

from catalog import aggregate_cart
from errors import StoreError, ValidationError
from repository import StoreRepository
from schemas import Order, OrderItem, ShippingAddress, User

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(self, repository: StoreRepository):
        self.repository = repository

    def place_order(self, user: User, shipping_address: ShippingAddress) -> Order:
        """Create a pending order from the user's cart, then empty the cart."""
        items = self.repository.list_cart_items_for_user(user.id)
        if not items:
            raise ValidationError("Cart is empty")

        total = round(aggregate_cart(items).total, 2)
        order = self.repository.insert_order(Order(
            user_id=user.id,
            total_amount=total,
            status="pending",
            shipping_address=shipping_address,
        ))

        order_items: List[OrderItem] = [
            OrderItem(
                order_id=order.id,
                product_id=it.product_id,
                quantity=it.quantity,
                price=it.product.price if it.product is not None else 0.0,
            )
            for it in items
        ]
        try:
            self.repository.insert_order_items(order_items)
        except StoreError:
            logger.error("[ORDER_ROLLBACK] user=%s order=%s items not written", user.id, order.id)
            self.repository.delete_order(order.id)
            raise
        self.repository.clear_cart_for_user(user.id)

        logger.info("[ORDER_PLACED] user=%s order=%s items=%s total=%s",
                    user.id, order.id, len(order_items), total)
        return order

    def list_orders(self, user: User) -> List[Order]:
        return self.repository.list_orders_for_user(user.id)
