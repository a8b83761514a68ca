# tests/conftest.py
"""
Shared fixtures for service and API tests.

The application reads its configuration at import time, so the environment is
pinned here before anything from ``storefront`` is imported. A file-backed
SQLite database is used (rather than ``:memory:``) so that separate sessions
get separate connections, which the concurrency tests rely on. Point
TEST_DATABASE_URL at PostgreSQL to run the suite against a real server.
"""
import os
import tempfile
from decimal import Decimal

import pytest

_TEST_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'storefront_test.db')}"
)
os.environ["APP_ENV"] = "testing"
os.environ["FLASK_TESTING"] = "true"
os.environ["ALLOW_SIMULATED_PAYMENTS"] = "true"
os.environ["STRUCTURED_LOGS_ENABLED"] = "false"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "s3cret-test-pass"

from storefront.database import Base, SessionLocal, engine, init_db  # noqa: E402
from storefront.models import Coupon, Order, OrderItem, OrderStatus, PaymentMethod, Product, StoreSettings  # noqa: E402
from storefront.observability.metrics import reset_metrics  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_state():
    reset_metrics()
    yield
    session = SessionLocal()
    try:
        # Children before parents
        for model in (OrderItem, Order, Product, Coupon, StoreSettings):
            session.query(model).delete(synchronize_session=False)
        session.commit()
    finally:
        session.close()


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_product(db_session):
    def _make(name="License Key", stock="", price="10.00", active=True):
        product = Product(
            name=name,
            description=f"{name} description",
            category="Software",
            original_price=Decimal(price),
            current_price=Decimal(price),
            stock=stock,
            active=active,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_order(db_session):
    """Create a pending order directly, bypassing checkout validation."""

    def _make(*lines, email="buyer@example.com", gateway_order_id=None):
        order = Order(
            email=email,
            whatsapp="+5511999999999",
            status=OrderStatus.PENDING,
            payment_method=PaymentMethod.PIX_AUTO if gateway_order_id else PaymentMethod.PIX_MANUAL,
            total_amount=Decimal("0.00"),
            gateway_order_id=gateway_order_id,
        )
        total = Decimal("0.00")
        for product, quantity in lines:
            price = Decimal(product.current_price)
            total += price * quantity
            order.items.append(
                OrderItem(
                    productID=product.productID,
                    product_name=product.name,
                    price=price,
                    quantity=quantity,
                )
            )
        order.total_amount = total
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def fetch():
    """Read a row back through a fresh session so no identity-map state leaks in."""

    def _fetch(model, primary_key):
        session = SessionLocal()
        try:
            return session.get(model, primary_key)
        finally:
            session.close()

    return _fetch
