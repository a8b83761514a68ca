"""
Inventory ledger for line-oriented digital stock.

A product's ``stock`` column holds one deliverable unit (license key,
credential, ...) per line. Blank and whitespace-only lines are ignored on
read and never written back. Units are handed out from the front of the
list: the first listed line is delivered first.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.exceptions import InsufficientStock
from storefront.models import Product
from storefront.observability import increment_counter, record_event, set_gauge

logger = logging.getLogger(__name__)

LINE_SEPARATOR = "\n"


@dataclass(frozen=True)
class TakeResult:
    """Outcome of drawing units from the front of a ledger."""

    delivered: List[str]
    remaining: str

    @property
    def delivered_text(self) -> str:
        return LINE_SEPARATOR.join(self.delivered)

    @property
    def remaining_count(self) -> int:
        return count_units(self.remaining)


def parse_stock_lines(stock: Optional[str]) -> List[str]:
    """Split a stock field into its units, dropping blank lines but keeping content as-is."""
    if not stock:
        return []
    return [line for line in stock.split(LINE_SEPARATOR) if line.strip()]


def serialize_stock_lines(lines: List[str]) -> str:
    return LINE_SEPARATOR.join(lines)


def normalize_stock(stock: Optional[str]) -> str:
    return serialize_stock_lines(parse_stock_lines(stock))


def count_units(stock: Optional[str]) -> int:
    return len(parse_stock_lines(stock))


def take(
    stock: Optional[str],
    quantity: int,
    product_id: Optional[int] = None,
    product_name: Optional[str] = None,
) -> TakeResult:
    """
    Draw ``quantity`` units from the front of ``stock``.

    Pure function: the caller decides whether and when to persist
    ``TakeResult.remaining``. Raises InsufficientStock, naming the product
    when given, if the ledger holds fewer units than requested.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")

    lines = parse_stock_lines(stock)
    if quantity > len(lines):
        raise InsufficientStock(
            required=quantity,
            available=len(lines),
            product_id=product_id,
            product_name=product_name,
        )

    return TakeResult(
        delivered=lines[:quantity],
        remaining=serialize_stock_lines(lines[quantity:]),
    )


class InventoryService:
    """
    Read-side helpers over product ledgers plus post-consumption bookkeeping.

    Ledger writes themselves belong to the fulfillment engine; this service
    only reports on them.
    """

    def __init__(self, db_session: Session, threshold: Optional[int] = None) -> None:
        self.db = db_session
        self.threshold = Config.LOW_STOCK_THRESHOLD if threshold is None else threshold
        self.logger = logging.getLogger(__name__)

    def get_low_stock_products(self) -> List[Dict[str, object]]:
        """Active products whose ledger is at or below the alert threshold, emptiest first."""
        products = self.db.query(Product).filter(Product.active.is_(True)).all()
        alerts = []
        for product in products:
            units = count_units(product.stock)
            if units <= self.threshold:
                alerts.append(
                    {
                        "product_id": product.productID,
                        "product_name": product.name,
                        "current_stock": units,
                        "threshold": self.threshold,
                    }
                )
        alerts.sort(key=lambda alert: alert["current_stock"])
        return alerts

    def record_consumption(
        self,
        product_id: int,
        product_name: str,
        old_units: int,
        new_units: int,
        order_id: int,
    ) -> None:
        """Publish metrics and a low-stock warning after a committed ledger write."""
        consumed = old_units - new_units
        set_gauge("stock_units", new_units, labels={"product_id": product_id})
        increment_counter("stock_units_consumed_total", amount=consumed, labels={"product_id": product_id})
        record_event(
            "inventory_consumed",
            {
                "product_id": product_id,
                "order_id": order_id,
                "old_units": old_units,
                "new_units": new_units,
            },
        )
        if new_units <= self.threshold:
            increment_counter("low_stock_alerts_total", labels={"product_id": product_id})
            self.logger.warning(
                "Low stock alert: %s (ID: %d) has %d units (threshold: %d)",
                product_name,
                product_id,
                new_units,
                self.threshold,
            )


__all__ = [
    "TakeResult",
    "InventoryService",
    "parse_stock_lines",
    "serialize_stock_lines",
    "normalize_stock",
    "count_units",
    "take",
]
