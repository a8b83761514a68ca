from __future__ import annotations

from decimal import Decimal

import pytest

from storefront.exceptions import (
    ExternalStatusCheckFailed,
    FeatureDisabled,
    InsufficientStock,
    OrderNotFound,
    ValidationError,
)
from storefront.models import Order, OrderItem, OrderStatus, PaymentMethod, Product
from storefront.services.coupon_service import CouponService
from storefront.services.order_service import OrderService


class _StubGateway:
    def __init__(self, paid: bool = False, fail: bool = False):
        self.paid = paid
        self.fail = fail
        self.calls = []

    def is_charge_paid(self, gateway_order_id):
        self.calls.append(gateway_order_id)
        if self.fail:
            raise ExternalStatusCheckFailed("gateway down")
        return self.paid


class _StubConfig:
    ALLOW_SIMULATED_PAYMENTS = False
    GATEWAY_TIMEOUT_SECONDS = 1.0
    DEFAULT_STORE_NAME = "Test Store"
    DEFAULT_THEME_COLOR = "#000000"
    DEFAULT_TEXT_COLOR = "#FFFFFF"
    DEFAULT_PIX_KEY = ""
    DEFAULT_SUPPORT_EMAIL = "help@example.com"


def _service(db_session, gateway=None, **kwargs):
    return OrderService(db_session, gateway_client_factory=lambda: gateway, **kwargs)


def test_checkout_snapshots_names_and_prices(db_session, make_product, fetch):
    product = make_product(name="Antivirus", stock="K1\nK2", price="19.90")

    order = _service(db_session).create_order(
        email="buyer@example.com",
        whatsapp="+5511988887777",
        items=[{"product_id": product.productID, "quantity": 2}],
    )

    product.name = "Antivirus Pro"
    product.current_price = Decimal("99.00")
    db_session.commit()

    stored = fetch(Order, order.orderID)
    assert stored.status == OrderStatus.PENDING
    assert stored.payment_method == PaymentMethod.PIX_MANUAL
    assert stored.total_amount == Decimal("39.80")
    assert stored.delivered_content is None
    item = db_session.query(OrderItem).filter_by(orderID=order.orderID).one()
    assert (item.product_name, item.price, item.quantity) == ("Antivirus", Decimal("19.90"), 2)
    # Stock is only consumed on payment
    assert fetch(Product, product.productID).stock == "K1\nK2"


def test_checkout_applies_coupon_with_floor(db_session, make_product):
    product = make_product(stock="K1", price="33.33")
    CouponService(db_session).create_coupon("SAVE15", 15)

    order = _service(db_session).create_order(
        "buyer@example.com", "+55", [{"product_id": product.productID, "quantity": 1}], coupon_code="save15"
    )

    assert order.coupon_code == "SAVE15"
    assert order.discount_amount == Decimal("4.99")
    assert order.total_amount == Decimal("28.34")


def test_checkout_rejects_invalid_input(db_session, make_product):
    product = make_product(stock="K1")
    hidden = make_product(name="Hidden", stock="K1", active=False)
    service = _service(db_session)
    line = [{"product_id": product.productID, "quantity": 1}]

    with pytest.raises(ValidationError):
        service.create_order("not-an-email", "+55", line)
    with pytest.raises(ValidationError):
        service.create_order("buyer@example.com", "", line)
    with pytest.raises(ValidationError):
        service.create_order("buyer@example.com", "+55", [])
    with pytest.raises(ValidationError):
        service.create_order("buyer@example.com", "+55", [{"product_id": product.productID, "quantity": 0}])
    with pytest.raises(ValidationError):
        service.create_order("buyer@example.com", "+55", [{"product_id": hidden.productID, "quantity": 1}])
    with pytest.raises(ValidationError):
        service.create_order("buyer@example.com", "+55", line, coupon_code="UNKNOWN")
    assert db_session.query(Order).count() == 0


def test_poll_without_gateway_reference_stays_pending(db_session, make_product, make_order):
    order = make_order((make_product(stock="K1"), 1))
    gateway = _StubGateway(paid=True)

    view = _service(db_session, gateway).get_order_status(order.orderID)

    assert view.to_dict() == {"status": "pending"}
    assert gateway.calls == []


def test_poll_unpaid_charge_touches_nothing(db_session, make_product, make_order, fetch):
    product = make_product(stock="K1\nK2")
    order = make_order((product, 1), gateway_order_id="ORDE_123")
    gateway = _StubGateway(paid=False)

    view = _service(db_session, gateway).get_order_status(order.orderID)

    assert view.to_dict() == {"status": "pending"}
    assert gateway.calls == ["ORDE_123"]
    assert fetch(Product, product.productID).stock == "K1\nK2"


def test_poll_gateway_failure_reports_pending(db_session, make_product, make_order, fetch):
    product = make_product(stock="K1")
    order = make_order((product, 1), gateway_order_id="ORDE_500")

    view = _service(db_session, _StubGateway(fail=True)).get_order_status(order.orderID)

    assert view.status == OrderStatus.PENDING
    assert fetch(Order, order.orderID).status == OrderStatus.PENDING
    assert fetch(Product, product.productID).stock == "K1"


def test_poll_paid_charge_fulfills_once(db_session, make_product, make_order, fetch):
    product = make_product(stock="K1\nK2\nK3")
    order = make_order((product, 2), gateway_order_id="ORDE_OK")
    gateway = _StubGateway(paid=True)
    service = _service(db_session, gateway)

    first = service.get_order_status(order.orderID)
    second = service.get_order_status(order.orderID)

    assert first.to_dict() == {"status": "paid", "deliveredContent": "K1\nK2"}
    assert second.to_dict() == first.to_dict()
    # The gateway is not asked again once the order is paid
    assert gateway.calls == ["ORDE_OK"]
    assert fetch(Product, product.productID).stock == "K3"


def test_poll_paid_charge_without_stock_surfaces_the_shortfall(db_session, make_product, make_order, fetch):
    product = make_product(stock="K1")
    order = make_order((product, 3), gateway_order_id="ORDE_SHORT")

    with pytest.raises(InsufficientStock):
        _service(db_session, _StubGateway(paid=True)).get_order_status(order.orderID)

    assert fetch(Order, order.orderID).status == OrderStatus.PENDING


def test_simulated_payment_respects_the_flag(db_session, make_product, make_order):
    order = make_order((make_product(stock="K1"), 1))

    with pytest.raises(FeatureDisabled):
        _service(db_session, config=_StubConfig).simulate_payment(order.orderID)

    view = _service(db_session).simulate_payment(order.orderID)
    assert view.to_dict() == {"status": "paid", "deliveredContent": "K1"}


def test_attach_gateway_charge(db_session, make_product, make_order):
    order = make_order((make_product(stock="K1"), 1))
    service = _service(db_session)

    updated = service.attach_gateway_charge(order.orderID, "  ORDE_9  ")

    assert updated.gateway_order_id == "ORDE_9"
    assert updated.payment_method == PaymentMethod.PIX_AUTO
    service.approve_order(order.orderID)
    with pytest.raises(ValidationError):
        service.attach_gateway_charge(order.orderID, "ORDE_10")


def test_deleting_an_order_does_not_restore_stock(db_session, make_product, make_order, fetch):
    product = make_product(stock="K1\nK2")
    order = make_order((product, 1))
    service = _service(db_session)
    service.approve_order(order.orderID)

    service.delete_order(order.orderID)

    assert fetch(Order, order.orderID) is None
    assert db_session.query(OrderItem).filter_by(orderID=order.orderID).count() == 0
    assert fetch(Product, product.productID).stock == "K2"
    with pytest.raises(OrderNotFound):
        service.get_order_status(order.orderID)


def test_order_serialization_uses_camel_case(db_session, make_product, make_order):
    order = make_order((make_product(name="Key", stock="K1", price="5.00"), 2))

    body = OrderService.to_dict(order, include_content=False)

    assert body["status"] == "pending"
    assert body["totalAmount"] == "10.00"
    assert body["items"][0] == {"productId": order.items[0].productID, "productName": "Key", "price": "5.00", "quantity": 2}
    assert "deliveredContent" not in body
