# Overview: Service error taxonomy shared by all services and mapped to HTTP by routes.

"""
Every failure raised by the service layer carries a machine-readable ``code``
and a human message. Services never know about HTTP; ``status_code`` is only a
default mapping consumed by the route layer.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected service-layer failures."""

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details or None,
        }


class InvalidInputError(ServiceError, ValueError):
    code = "INVALID_INPUT"
    status_code = 400


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class SkuNotFoundError(NotFoundError):
    code = "SKU_NOT_FOUND"

    def __init__(self, message: str = "SKU not found", details: dict | None = None):
        super().__init__(message, details)


class ProductNotFoundError(NotFoundError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, message: str = "Product not found", details: dict | None = None):
        super().__init__(message, details)


class OrderNotFoundError(NotFoundError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, message: str = "Order not found", details: dict | None = None):
        super().__init__(message, details)


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, message: str = "User not found", details: dict | None = None):
        super().__init__(message, details)


class InsufficientStockError(ServiceError):
    """Requested deduction would drive a SKU's stock below zero."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class DuplicateBarcodeError(ServiceError):
    code = "DUPLICATE_BARCODE"
    status_code = 409


class DuplicateSkuError(ServiceError):
    code = "DUPLICATE_SKU"
    status_code = 409


class BarcodeGenerationError(ServiceError):
    """Raised when no unique barcode could be allocated."""

    code = "SERVER_ERROR"
    status_code = 500
