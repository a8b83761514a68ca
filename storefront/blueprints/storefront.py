from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, jsonify, request

from storefront.database import get_db
from storefront.exceptions import ValidationError
from storefront.services.catalog_service import CatalogService
from storefront.services.coupon_service import CouponService
from storefront.services.order_service import OrderService, format_money
from storefront.services.settings_service import SettingsService

storefront_bp = Blueprint("storefront", __name__)


def _get_order_service() -> OrderService:
    return OrderService(get_db())


@storefront_bp.route("/api/products", methods=["GET"])
def list_products():
    products = CatalogService(get_db()).list_products(active_only=True)
    return jsonify({"products": [CatalogService.to_dict(product) for product in products]})


@storefront_bp.route("/api/products/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    product = CatalogService(get_db()).get_product(product_id, active_only=True)
    return jsonify(CatalogService.to_dict(product))


@storefront_bp.route("/api/settings", methods=["GET"])
def public_settings():
    return jsonify(SettingsService(get_db()).public_view())


@storefront_bp.route("/api/coupons/validate", methods=["GET"])
def validate_coupon():
    result = CouponService(get_db()).validate(request.args.get("code"))
    return jsonify(result.to_dict())


@storefront_bp.route("/api/orders", methods=["POST"])
def create_order():
    payload = request.get_json(silent=True) or {}
    order = _get_order_service().create_order(
        email=payload.get("email"),
        whatsapp=payload.get("whatsapp"),
        items=_extract_items(payload.get("items")),
        coupon_code=payload.get("couponCode") or payload.get("coupon_code"),
    )
    pix_key = SettingsService(get_db()).get_settings().pix_key
    return (
        jsonify(
            {
                "id": order.orderID,
                "status": order.status.value,
                "totalAmount": format_money(order.total_amount),
                "discountAmount": format_money(order.discount_amount),
                "pixKey": pix_key,
            }
        ),
        201,
    )


@storefront_bp.route("/api/orders/<int:order_id>/status", methods=["GET"])
def order_status(order_id: int):
    return jsonify(_get_order_service().get_order_status(order_id).to_dict())


@storefront_bp.route("/api/orders/<int:order_id>/simulate-payment", methods=["POST"])
def simulate_payment(order_id: int):
    return jsonify(_get_order_service().simulate_payment(order_id).to_dict())


# ---------------------------
# Helpers
# ---------------------------


def _extract_items(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    items: List[Dict[str, Any]] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object")
        items.append(
            {
                "product_id": entry.get("productId", entry.get("product_id")),
                "quantity": entry.get("quantity", 1),
            }
        )
    return items
