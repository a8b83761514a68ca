"""
Error taxonomy for the storefront.

Services raise these; the app-level error handler in ``storefront.main`` turns
any ``StorefrontError`` into a JSON body of the form
``{"error": <message>, "kind": <kind>}`` with the class's HTTP status.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base class for every error a caller can be told about."""

    kind = "storefront_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class ValidationError(StorefrontError):
    kind = "validation_error"
    status_code = 400


class OrderNotFound(StorefrontError):
    kind = "order_not_found"
    status_code = 404

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ProductNotFound(StorefrontError):
    kind = "product_not_found"
    status_code = 404

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class CouponNotFound(StorefrontError):
    kind = "coupon_not_found"
    status_code = 404

    def __init__(self, coupon_id: int) -> None:
        self.coupon_id = coupon_id
        super().__init__(f"Coupon {coupon_id} not found")


class InsufficientStock(StorefrontError):
    """Raised when a product's ledger holds fewer lines than requested."""

    kind = "insufficient_stock"
    status_code = 400

    def __init__(
        self,
        required: int,
        available: int,
        product_id: Optional[int] = None,
        product_name: Optional[str] = None,
    ) -> None:
        self.required = required
        self.available = available
        self.product_id = product_id
        self.product_name = product_name
        label = product_name or (f"product {product_id}" if product_id is not None else "product")
        super().__init__(
            f"Not enough stock for {label}. Need {required}, have {available}."
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update(
            {
                "productId": self.product_id,
                "productName": self.product_name,
                "required": self.required,
                "available": self.available,
            }
        )
        return body


class ExternalStatusCheckFailed(StorefrontError):
    """The payment gateway could not be reached or answered with garbage."""

    kind = "external_status_check_failed"
    status_code = 502


class PersistenceFailure(StorefrontError):
    kind = "persistence_failure"
    status_code = 500


class FeatureDisabled(StorefrontError):
    kind = "feature_disabled"
    status_code = 404


class Unauthorized(StorefrontError):
    kind = "unauthorized"
    status_code = 401


class InvalidCredentials(Unauthorized):
    kind = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


__all__ = [
    "StorefrontError",
    "ValidationError",
    "OrderNotFound",
    "ProductNotFound",
    "CouponNotFound",
    "InsufficientStock",
    "ExternalStatusCheckFailed",
    "PersistenceFailure",
    "FeatureDisabled",
    "Unauthorized",
    "InvalidCredentials",
]
