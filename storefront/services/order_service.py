from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.exceptions import (
    ExternalStatusCheckFailed,
    FeatureDisabled,
    OrderNotFound,
    PersistenceFailure,
    ValidationError,
)
from storefront.models import Order, OrderItem, OrderStatus, PaymentMethod, Product
from storefront.observability import increment_counter, record_event
from storefront.services.coupon_service import CouponService, ZERO, apply_discount, compute_discount
from storefront.services.fulfillment_service import FulfillmentResult, FulfillmentService
from storefront.services.payment_service import PagSeguroStatusClient
from storefront.services.settings_service import SettingsService


@dataclass(frozen=True)
class OrderStatusView:
    order_id: int
    status: OrderStatus
    delivered_content: Optional[str] = None

    @classmethod
    def from_fulfillment(cls, result: FulfillmentResult) -> "OrderStatusView":
        return cls(result.order_id, result.status, result.delivered_content)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status.value}
        if self.status == OrderStatus.PAID:
            body["deliveredContent"] = self.delivered_content
        return body


def format_money(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))


class OrderService:
    """Checkout, status polling and the admin order operations."""

    def __init__(
        self,
        db_session: Session,
        config: type[Config] = Config,
        coupon_service: Optional[CouponService] = None,
        fulfillment_service: Optional[FulfillmentService] = None,
        settings_service: Optional[SettingsService] = None,
        gateway_client_factory: Optional[Callable[[], Optional[PagSeguroStatusClient]]] = None,
    ) -> None:
        self.db = db_session
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.coupon_service = coupon_service or CouponService(db_session)
        self.fulfillment_service = fulfillment_service or FulfillmentService(db_session)
        self.settings_service = settings_service or SettingsService(db_session, config=config)
        self.gateway_client_factory = gateway_client_factory or self.settings_service.build_gateway_client

    # ------------------------------------------------------------------
    # Customer flows
    # ------------------------------------------------------------------
    def create_order(
        self,
        email: Optional[str],
        whatsapp: Optional[str],
        items: Iterable[Dict[str, Any]],
        coupon_code: Optional[str] = None,
    ) -> Order:
        """
        Place a pending order, pricing every line from the catalog.

        Product name and current price are copied onto each OrderItem so the
        order stays accurate if the product is edited or deleted later.
        """
        email = (email or "").strip()
        whatsapp = (whatsapp or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        if not whatsapp:
            raise ValidationError("A WhatsApp contact is required")

        requested = self._parse_items(items)
        products = {
            product.productID: product
            for product in self.db.query(Product)
            .filter(Product.productID.in_(sorted({product_id for product_id, _ in requested})))
            .all()
        }

        order_items: List[OrderItem] = []
        subtotal = ZERO
        for product_id, quantity in requested:
            product = products.get(product_id)
            if product is None or not product.active:
                raise ValidationError(f"Product {product_id} is not available")
            price = Decimal(product.current_price)
            subtotal += price * quantity
            order_items.append(
                OrderItem(
                    productID=product.productID,
                    product_name=product.name,
                    price=price,
                    quantity=quantity,
                )
            )

        discount = None
        applied_code = None
        if coupon_code and coupon_code.strip():
            validation = self.coupon_service.validate(coupon_code)
            if not validation.valid:
                raise ValidationError("Coupon is not valid")
            discount = compute_discount(subtotal, validation.discount_percent)
            applied_code = validation.code

        order = Order(
            email=email,
            whatsapp=whatsapp,
            status=OrderStatus.PENDING,
            payment_method=PaymentMethod.PIX_MANUAL,
            total_amount=apply_discount(subtotal, discount or ZERO),
            coupon_code=applied_code,
            discount_amount=discount,
            created_at=datetime.now(timezone.utc),
        )
        order.items = order_items
        self.db.add(order)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.exception("Failed to create order for %s", email)
            raise PersistenceFailure("Failed to create order") from exc
        self.db.refresh(order)

        increment_counter("orders_created_total")
        record_event(
            "order_created",
            {"order_id": order.orderID, "items": len(order_items), "coupon": applied_code},
        )
        self.logger.info(
            "Order %s created",
            order.orderID,
            extra={"item_count": len(order_items), "total": format_money(order.total_amount)},
        )
        return order

    def get_order_status(self, order_id: int) -> OrderStatusView:
        """
        Report an order's status, confirming payment at the gateway if possible.

        A pending order with a gateway charge reference is checked once per
        poll; only a successful PAID answer triggers fulfillment. Gateway
        failures leave the order pending; the client's next poll retries.
        """
        order = self._get_order(order_id)
        if order.is_paid:
            return OrderStatusView(order.orderID, OrderStatus.PAID, order.delivered_content)

        pending = OrderStatusView(order.orderID, OrderStatus.PENDING)
        if not order.gateway_order_id:
            return pending

        client = self.gateway_client_factory()
        if client is None:
            return pending

        try:
            paid = client.is_charge_paid(order.gateway_order_id)
        except ExternalStatusCheckFailed as exc:
            increment_counter("order_status_checks_failed_total")
            self.logger.warning(
                "Payment status check failed for order %s: %s",
                order_id,
                exc.message,
                extra={"gateway_order_id": order.gateway_order_id},
            )
            return pending

        if not paid:
            return pending

        result = self.fulfillment_service.fulfill(order_id, source="gateway_poll")
        return OrderStatusView.from_fulfillment(result)

    def simulate_payment(self, order_id: int) -> OrderStatusView:
        if not self.config.ALLOW_SIMULATED_PAYMENTS:
            raise FeatureDisabled("Simulated payments are disabled")
        self._get_order(order_id)
        result = self.fulfillment_service.fulfill(order_id, source="simulated")
        return OrderStatusView.from_fulfillment(result)

    # ------------------------------------------------------------------
    # Admin flows
    # ------------------------------------------------------------------
    def approve_order(self, order_id: int) -> OrderStatusView:
        result = self.fulfillment_service.fulfill(order_id, source="admin_approval")
        return OrderStatusView.from_fulfillment(result)

    def attach_gateway_charge(self, order_id: int, gateway_order_id: Optional[str]) -> Order:
        """Link a pending order to a gateway charge so status polls can confirm it."""
        reference = (gateway_order_id or "").strip()
        if not reference:
            raise ValidationError("gateway_order_id is required")
        order = self._get_order(order_id)
        if order.is_paid:
            raise ValidationError(f"Order {order_id} is already paid")
        order.gateway_order_id = reference
        order.payment_method = PaymentMethod.PIX_AUTO
        self.db.commit()
        self.db.refresh(order)
        self.logger.info("Order %s linked to gateway charge %s", order_id, reference)
        return order

    def list_orders(self) -> List[Order]:
        return self.db.query(Order).order_by(Order.created_at.desc(), Order.orderID.desc()).all()

    def delete_order(self, order_id: int) -> None:
        """Remove an order and its items. Consumed stock is not restored."""
        order = self._get_order(order_id)
        was_paid = order.is_paid
        self.db.delete(order)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"Failed to delete order {order_id}") from exc
        increment_counter("orders_deleted_total", labels={"paid": str(was_paid).lower()})
        self.logger.info("Order %s deleted", order_id, extra={"was_paid": was_paid})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).filter_by(orderID=order_id).populate_existing().first()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    @staticmethod
    def _parse_items(items: Iterable[Dict[str, Any]]) -> List[tuple]:
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("At least one item is required")
        parsed = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValidationError(f"Item {index} is malformed")
            try:
                product_id = int(item.get("product_id"))
                quantity = int(item.get("quantity", 1))
            except (TypeError, ValueError):
                raise ValidationError(f"Item {index} has an invalid product or quantity")
            if quantity < 1:
                raise ValidationError(f"Item {index} quantity must be at least 1")
            parsed.append((product_id, quantity))
        return parsed

    @staticmethod
    def to_dict(order: Order, include_content: bool = True) -> Dict[str, Any]:
        body = {
            "id": order.orderID,
            "email": order.email,
            "whatsapp": order.whatsapp,
            "status": OrderStatus(order.status).value,
            "paymentMethod": PaymentMethod(order.payment_method).value,
            "totalAmount": format_money(order.total_amount),
            "couponCode": order.coupon_code,
            "discountAmount": format_money(order.discount_amount),
            "gatewayOrderId": order.gateway_order_id,
            "createdAt": order.created_at.isoformat() if order.created_at else None,
            "paidAt": order.paid_at.isoformat() if order.paid_at else None,
            "items": [
                {
                    "productId": item.productID,
                    "productName": item.product_name,
                    "price": format_money(item.price),
                    "quantity": item.quantity,
                }
                for item in order.items
            ],
        }
        if include_content:
            body["deliveredContent"] = order.delivered_content
        return body


__all__ = ["OrderService", "OrderStatusView", "format_money"]
