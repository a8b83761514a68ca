from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional

from flask import Blueprint, g, jsonify, request

from storefront.database import get_db
from storefront.exceptions import Unauthorized
from storefront.services.auth_service import AdminAuthService, default_token_store
from storefront.services.catalog_service import CatalogService
from storefront.services.coupon_service import CouponService
from storefront.services.dashboard_service import DashboardService
from storefront.services.order_service import OrderService
from storefront.services.settings_service import EDITABLE_FIELDS, SettingsService

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

auth_service = AdminAuthService(default_token_store)


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        token = _bearer_token()
        username = auth_service.authenticate(token)
        if username is None:
            raise Unauthorized("Admin authentication required")
        g.admin_token = token
        g.admin_username = username
        return view(*args, **kwargs)

    return wrapper


def _get_order_service() -> OrderService:
    return OrderService(get_db())


def _get_catalog_service() -> CatalogService:
    return CatalogService(get_db())


# ---------------------------
# Session
# ---------------------------


@admin_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    token = auth_service.login(payload.get("username"), payload.get("password"))
    return jsonify({"token": token})


@admin_bp.route("/logout", methods=["POST"])
@admin_required
def logout():
    auth_service.logout(g.admin_token)
    return jsonify({"success": True})


# ---------------------------
# Orders
# ---------------------------


@admin_bp.route("/orders", methods=["GET"])
@admin_required
def list_orders():
    orders = _get_order_service().list_orders()
    return jsonify({"orders": [OrderService.to_dict(order) for order in orders]})


@admin_bp.route("/orders/<int:order_id>/approve", methods=["POST"])
@admin_required
def approve_order(order_id: int):
    return jsonify(_get_order_service().approve_order(order_id).to_dict())


@admin_bp.route("/orders/<int:order_id>/gateway-charge", methods=["POST"])
@admin_required
def attach_gateway_charge(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = _get_order_service().attach_gateway_charge(
        order_id, payload.get("gatewayOrderId") or payload.get("gateway_order_id")
    )
    return jsonify(OrderService.to_dict(order))


@admin_bp.route("/orders/<int:order_id>", methods=["DELETE"])
@admin_required
def delete_order(order_id: int):
    _get_order_service().delete_order(order_id)
    return jsonify({"success": True})


# ---------------------------
# Products
# ---------------------------


@admin_bp.route("/products", methods=["GET"])
@admin_required
def list_products():
    products = _get_catalog_service().list_products()
    return jsonify(
        {"products": [CatalogService.to_dict(product, include_stock=True) for product in products]}
    )


@admin_bp.route("/products", methods=["POST"])
@admin_required
def create_product():
    product = _get_catalog_service().create_product(_product_fields(request.get_json(silent=True) or {}))
    return jsonify(CatalogService.to_dict(product, include_stock=True)), 201


@admin_bp.route("/products/<int:product_id>", methods=["PUT"])
@admin_required
def update_product(product_id: int):
    product = _get_catalog_service().update_product(
        product_id, _product_fields(request.get_json(silent=True) or {})
    )
    return jsonify(CatalogService.to_dict(product, include_stock=True))


@admin_bp.route("/products/<int:product_id>", methods=["DELETE"])
@admin_required
def delete_product(product_id: int):
    _get_catalog_service().delete_product(product_id)
    return jsonify({"success": True})


# ---------------------------
# Coupons
# ---------------------------


@admin_bp.route("/coupons", methods=["GET"])
@admin_required
def list_coupons():
    coupons = CouponService(get_db()).list_coupons()
    return jsonify({"coupons": [_serialize_coupon(coupon) for coupon in coupons]})


@admin_bp.route("/coupons", methods=["POST"])
@admin_required
def create_coupon():
    payload = request.get_json(silent=True) or {}
    coupon = CouponService(get_db()).create_coupon(
        payload.get("code"),
        payload.get("discountPercent", payload.get("discount_percent")),
        active=payload.get("active", True),
    )
    return jsonify(_serialize_coupon(coupon)), 201


@admin_bp.route("/coupons/<int:coupon_id>", methods=["DELETE"])
@admin_required
def delete_coupon(coupon_id: int):
    CouponService(get_db()).delete_coupon(coupon_id)
    return jsonify({"success": True})


# ---------------------------
# Settings and dashboard
# ---------------------------


@admin_bp.route("/settings", methods=["GET"])
@admin_required
def get_settings():
    service = SettingsService(get_db())
    return jsonify(service.to_dict(service.get_settings(), include_secrets=True))


@admin_bp.route("/settings", methods=["PUT"])
@admin_required
def update_settings():
    payload = request.get_json(silent=True) or {}
    changes = {field: payload.get(_camel(field), payload.get(field)) for field in EDITABLE_FIELDS}
    service = SettingsService(get_db())
    settings = service.update_settings(**changes)
    return jsonify(service.to_dict(settings, include_secrets=True))


@admin_bp.route("/dashboard", methods=["GET"])
@admin_required
def dashboard():
    return jsonify(DashboardService(get_db()).summary())


# ---------------------------
# Helpers
# ---------------------------

_PRODUCT_FIELDS = (
    "name",
    "description",
    "image_url",
    "category",
    "instructions",
    "warranty",
    "original_price",
    "current_price",
    "stock",
    "active",
)


def _camel(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _product_fields(payload: dict) -> dict:
    """Accept camelCase or snake_case keys; absent keys stay absent."""
    fields = {}
    for field in _PRODUCT_FIELDS:
        camel = _camel(field)
        if camel in payload:
            fields[field] = payload[camel]
        elif field in payload:
            fields[field] = payload[field]
    return fields


def _serialize_coupon(coupon) -> dict:
    return {
        "id": coupon.couponID,
        "code": coupon.code,
        "discountPercent": coupon.discount_percent,
        "active": coupon.active,
        "createdAt": coupon.created_at.isoformat() if coupon.created_at else None,
    }
