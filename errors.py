"""
Custom errors raised by the store repository and the cart/checkout services.
Route handlers in main.py turn them into HTTP responses.
"""


class StoreError(Exception):
    """Generic storefront error (backend unreachable, write failed...)."""
    status_code = 503


class NotFoundError(StoreError):
    """Product or cart line does not exist."""
    status_code = 404


class ValidationError(StoreError):
    """Missing or invalid data (e.g. quantity below 1, empty cart)."""
    status_code = 400


class AuthenticationError(StoreError):
    """No session, or the session token is unknown."""
    status_code = 401
