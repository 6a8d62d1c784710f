"""
Catalog query engine.

Pure functions over in-memory products and cart lines: category listing,
filtering, sorting and cart totals. Nothing here touches the store, and no
input collection is ever modified.
"""

from typing import Iterable, List

from schemas import CartItem, CartTotals, Product, QueryParams, SortKey


def derive_categories(products: Iterable[Product]) -> List[str]:
    """Distinct categories, in the order they first appear."""
    return list(dict.fromkeys(p.category for p in products))


def _matches(product: Product, params: QueryParams) -> bool:
    term = params.term.lower()
    matches_search = term in product.name.lower() or term in product.description.lower()
    matches_category = not params.category or product.category == params.category
    matches_price = params.price_min <= product.price <= params.price_max
    return matches_search and matches_category and matches_price


def filter_products(products: Iterable[Product], params: QueryParams) -> List[Product]:
    return [p for p in products if _matches(p, params)]


def sort_products(products: Iterable[Product], sort_key) -> List[Product]:
    """
    Return a new list ordered by `sort_key` (a SortKey or its string value).
    Unknown keys sort by name. sorted() is stable, including with
    reverse=True, so products with equal keys keep their input order.
    """
    key = SortKey.parse(sort_key)
    if key is SortKey.PRICE_ASC:
        return sorted(products, key=lambda p: p.price)
    if key is SortKey.PRICE_DESC:
        return sorted(products, key=lambda p: p.price, reverse=True)
    if key is SortKey.NEWEST:
        return sorted(products, key=lambda p: p.created_at, reverse=True)
    return sorted(products, key=lambda p: p.name.casefold())


def query_products(products: Iterable[Product], params: QueryParams) -> List[Product]:
    return sort_products(filter_products(products, params), params.sort_by)


def aggregate_cart(items: Iterable[CartItem]) -> CartTotals:
    """Total price and item count of a cart. Lines without a product count as free."""
    total = 0.0
    count = 0
    for item in items:
        price = item.product.price if item.product is not None else 0.0
        total += price * item.quantity
        count += item.quantity
    return CartTotals(total=total, count=count)
