"""
Database Schemas

Pydantic models for the storefront collections and for the values the
catalog query engine works with.

Collections used by the Mongo repository:
- Product -> "product" collection
- CartItem -> "cart" collection
- Order -> "order" collection
- OrderItem -> "order_item" collection
- User -> "user" collection (sessions live in "session")
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(BaseModel):
    """
    Products collection schema.
    Read model: values are taken as the store returns them.
    """
    id: Optional[str] = Field(None, description="Product id as string")
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    category: str = Field(..., description="Product category")
    price: float = Field(..., description="Price in dollars")
    stock_quantity: int = Field(0, description="Units in stock")
    image_url: str = Field("", description="Image URL")
    created_at: datetime = Field(default_factory=utcnow)


class CartItem(BaseModel):
    """One line of a user's cart, joined with its product when available."""
    id: Optional[str] = None
    user_id: str = Field(..., description="Owner of the cart")
    product_id: str = Field(..., description="Product id as string")
    quantity: int = Field(1, description="Quantity of the product")
    product: Optional[Product] = Field(None, description="Product snapshot, None if the join failed")


class SortKey(str, Enum):
    NAME = "name"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    NEWEST = "newest"

    @classmethod
    def parse(cls, value) -> "SortKey":
        """Unknown keys fall back to sorting by name."""
        try:
            return cls(value)
        except (ValueError, TypeError):
            return cls.NAME


class QueryParams(BaseModel):
    term: str = ""
    category: str = ""
    price_min: float = 0
    price_max: float = 1000
    sort_by: SortKey = SortKey.NAME

    @field_validator("sort_by", mode="before")
    @classmethod
    def _coerce_sort_key(cls, value):
        return SortKey.parse(value)


class CartTotals(BaseModel):
    total: float = 0.0
    count: int = 0


class CartSummary(BaseModel):
    items: List[CartItem]
    total: float
    count: int


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address_line_1: str = Field(..., min_length=1)
    address_line_2: Optional[str] = ""
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = "United States"


class OrderItem(BaseModel):
    order_id: str
    product_id: str
    quantity: int
    price: float


class Order(BaseModel):
    id: Optional[str] = None
    user_id: str
    total_amount: float
    status: str = "pending"
    shipping_address: ShippingAddress
    created_at: datetime = Field(default_factory=utcnow)


class User(BaseModel):
    id: str
    email: EmailStr
