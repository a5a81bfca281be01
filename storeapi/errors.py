"""Domain errors raised by the catalog, the idempotency ledger and the auth layer.

Every error carries the HTTP status and ``errorCode`` it is reported with; the
exception handlers in :mod:`storeapi.main` turn them into error bodies.
"""

from __future__ import annotations

from typing import List, Optional


class StoreError(Exception):
    """Base class for errors that map to a fixed status and error code."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.message = message
        self.details = details or []
        super().__init__(message)


class ProductNotFound(StoreError):
    status_code = 404
    error_code = "PRODUCT_NOT_FOUND"

    @classmethod
    def by_id(cls, product_id: int) -> "ProductNotFound":
        return cls(f"Product not found with id: {product_id}")

    @classmethod
    def by_sku(cls, sku: str) -> "ProductNotFound":
        return cls(f"Product not found with sku: {sku}")


class ProductAlreadyExists(StoreError):
    status_code = 409
    error_code = "PRODUCT_ALREADY_EXISTS"

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product already exists with sku: {sku}")


class DuplicateIdempotencyKey(StoreError):
    """The (key, owner) pair has already been admitted once."""

    status_code = 409
    error_code = "IDEMPOTENCY_KEY_REUSED"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Idempotency key has already been used: {key}")


class InvalidIdempotencyKey(StoreError):
    status_code = 400
    error_code = "BAD_REQUEST"


class AuthenticationFailed(StoreError):
    status_code = 401
    error_code = "AUTHENTICATION_FAILED"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class AccessDenied(StoreError):
    status_code = 403
    error_code = "ACCESS_DENIED"

    def __init__(self, message: str = "Access is denied"):
        super().__init__(message)
