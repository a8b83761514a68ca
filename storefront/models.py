from enum import Enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    ForeignKey,
    Boolean,
    Text,
    Enum as SAEnum,
)
from sqlalchemy.orm import relationship

# Single shared Base so every table lands in the same metadata
from storefront.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, Enum):
    PIX_MANUAL = "pix_manual"
    PIX_AUTO = "pix_auto"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Product(Base):
    __tablename__ = 'Product'

    productID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    image_url = Column(String(512))
    category = Column(String(120), default="Outros")
    instructions = Column(Text)
    warranty = Column(Text)
    original_price = Column(Numeric(10, 2), nullable=False)
    current_price = Column(Numeric(10, 2), nullable=False)
    # Newline-separated fulfillment lines; list position is delivery order
    stock = Column(Text, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class Order(Base):
    __tablename__ = 'StoreOrder'

    orderID = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    whatsapp = Column(String(40))
    status = Column(
        SAEnum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            validate_strings=True,
            values_callable=_enum_values,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    payment_method = Column(
        SAEnum(
            PaymentMethod,
            name="payment_method",
            native_enum=False,
            validate_strings=True,
            values_callable=_enum_values,
        ),
        default=PaymentMethod.PIX_MANUAL,
        nullable=False,
    )
    total_amount = Column(Numeric(10, 2), nullable=False)
    pix_code = Column(Text)
    gateway_order_id = Column(String(120))
    delivered_content = Column(Text)
    coupon_code = Column(String(64))
    discount_amount = Column(Numeric(10, 2))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    paid_at = Column(DateTime)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.orderItemID",
    )

    _VALID_TRANSITIONS = {
        OrderStatus.PENDING: {OrderStatus.PAID},
        OrderStatus.PAID: set(),
    }

    @property
    def is_paid(self) -> bool:
        return OrderStatus(self.status) == OrderStatus.PAID

    def can_transition(self, new_status: OrderStatus) -> bool:
        allowed = self._VALID_TRANSITIONS.get(OrderStatus(self.status), set())
        return new_status in allowed

    def transition_to(self, new_status: OrderStatus) -> None:
        if not self.can_transition(new_status):
            raise ValueError(f"Invalid order status transition from {self.status} to {new_status}")
        self.status = new_status


class OrderItem(Base):
    __tablename__ = 'OrderItem'

    orderItemID = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('StoreOrder.orderID', ondelete="CASCADE"), nullable=False)
    # Weak reference: the product may be edited or deleted after purchase
    productID = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="items")


class Coupon(Base):
    __tablename__ = 'Coupon'

    couponID = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False)
    discount_percent = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class StoreSettings(Base):
    __tablename__ = 'StoreSettings'

    settingsID = Column(Integer, primary_key=True, autoincrement=True)
    store_name = Column(String(255), nullable=False, default="Digital Store")
    logo_url = Column(String(512))
    theme_color = Column(String(16), nullable=False, default="#3B82F6")
    text_color = Column(String(16), nullable=False, default="#FFFFFF")
    pix_key = Column(String(255), default="")
    support_email = Column(String(255))
    whatsapp_contact = Column(String(40))
    gateway_token = Column(String(512))
    gateway_api_url = Column(String(512))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    @property
    def gateway_configured(self) -> bool:
        return bool(self.gateway_token and self.gateway_api_url)
