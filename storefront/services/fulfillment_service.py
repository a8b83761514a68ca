"""
Order fulfillment engine.

Turns a pending order into a paid one by drawing the ordered quantity from
each product's ledger and recording exactly what was drawn as the order's
delivered content.

Guarantees:
- all-or-nothing: every item is planned against in-memory copies of the
  ledgers before anything is written, so a shortfall on a later item leaves
  earlier ledgers untouched;
- no double delivery: fulfillments of one order id are serialized by a
  process-wide lock, and the order row is claimed with
  ``UPDATE ... WHERE status = 'pending'`` so a second writer in another
  process sees zero rows and returns the first writer's result;
- no overselling: each ledger is written with a compare-and-swap on the
  stock value that was read; a lost race rolls back and replans;
- content is only returned after the single commit succeeds.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.exceptions import InsufficientStock, OrderNotFound, PersistenceFailure, ValidationError
from storefront.models import Order, OrderItem, OrderStatus, Product
from storefront.observability import increment_counter, record_event, timed
from storefront.services.inventory_service import InventoryService, count_units, parse_stock_lines, take


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class OrderLockRegistry:
    """One mutex per order id, created on demand and dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[int, _LockEntry] = {}

    @contextmanager
    def hold(self, order_id: int) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(order_id, _LockEntry())
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(order_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_order_locks = OrderLockRegistry()


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: int
    status: OrderStatus
    delivered_content: str
    already_paid: bool = False

    def to_dict(self) -> dict:
        return {"status": self.status.value, "deliveredContent": self.delivered_content}


@dataclass(frozen=True)
class LedgerWrite:
    product_id: int
    product_name: str
    original_stock: str
    remaining_stock: str

    @property
    def old_units(self) -> int:
        return count_units(self.original_stock)

    @property
    def new_units(self) -> int:
        return count_units(self.remaining_stock)


@dataclass(frozen=True)
class FulfillmentPlan:
    order_id: int
    delivered_content: str
    writes: List[LedgerWrite]
    skipped_product_ids: List[int]


class StaleLedger(Exception):
    """A ledger changed between read and write; the attempt must be replanned."""

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Stock for product {product_id} changed during fulfillment")


class FulfillmentService:
    """Executes ``pending -> paid`` for an order; the only writer of product ledgers."""

    def __init__(
        self,
        db_session: Session,
        inventory_service: Optional[InventoryService] = None,
        lock_registry: Optional[OrderLockRegistry] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)
        self.inventory_service = inventory_service or InventoryService(db_session)
        self.locks = lock_registry or _order_locks
        self.max_attempts = max(1, max_attempts or Config.FULFILLMENT_MAX_ATTEMPTS)

    def fulfill(self, order_id: int, source: str = "admin_approval") -> FulfillmentResult:
        """
        Fulfill ``order_id`` and return the delivered content.

        Re-invoking on a paid order is a no-op returning the stored content.
        Raises OrderNotFound, InsufficientStock, ValidationError or PersistenceFailure.
        """
        labels = {"source": source}
        with timed("fulfillment_latency_ms", labels), self.locks.hold(order_id):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    result = self._attempt(order_id)
                except StaleLedger as exc:
                    self.db.rollback()
                    increment_counter("fulfillment_retries_total", labels=labels)
                    self.logger.warning(
                        "Ledger changed while fulfilling order %s (attempt %d/%d)",
                        order_id,
                        attempt,
                        self.max_attempts,
                        extra={"product_id": exc.product_id},
                    )
                    continue
                except InsufficientStock as exc:
                    increment_counter("fulfillment_failures_total", labels={**labels, "kind": exc.kind})
                    self.logger.warning(
                        "Order %s cannot be fulfilled: %s",
                        order_id,
                        exc.message,
                        extra={"product_id": exc.product_id, "required": exc.required, "available": exc.available},
                    )
                    raise

                outcome = "noop" if result.already_paid else "paid"
                increment_counter("fulfillment_attempts_total", labels={**labels, "outcome": outcome})
                return result

        increment_counter("fulfillment_failures_total", labels={**labels, "kind": PersistenceFailure.kind})
        raise PersistenceFailure(
            f"Stock kept changing while fulfilling order {order_id}; gave up after {self.max_attempts} attempts"
        )

    # ------------------------------------------------------------------
    # Attempt = load, plan, commit
    # ------------------------------------------------------------------
    def _attempt(self, order_id: int) -> FulfillmentResult:
        try:
            order = self._load_order(order_id)
            if order is None:
                self.db.rollback()
                raise OrderNotFound(order_id)

            if order.is_paid:
                result = self._stored_result(order)
                self.db.rollback()
                return result

            if not order.can_transition(OrderStatus.PAID):
                self.db.rollback()
                raise ValidationError(f"Order {order_id} cannot move from {order.status} to paid")

            plan = self.plan(order)
        except InsufficientStock:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.exception("Failed to load order %s for fulfillment", order_id)
            raise PersistenceFailure(f"Could not load order {order_id} for fulfillment") from exc

        return self._commit(plan)

    def plan(self, order: Order) -> FulfillmentPlan:
        """
        Draw every item from working copies of the ledgers without writing anything.

        A missing product, or one whose ledger is empty, is skipped: its item
        contributes no content and does not block the rest of the order.
        """
        items = (
            self.db.query(OrderItem)
            .filter_by(orderID=order.orderID)
            .order_by(OrderItem.orderItemID)
            .all()
        )
        products = self._load_products({item.productID for item in items})

        working: Dict[int, str] = {}
        chunks: List[str] = []
        skipped: List[int] = []
        for item in items:
            product = products.get(item.productID)
            stock = working.get(item.productID, product.stock if product else None)
            if product is None or not parse_stock_lines(stock):
                skipped.append(item.productID)
                self.logger.warning(
                    "Skipping item %s of order %s: product %s has no stock to deliver",
                    item.orderItemID,
                    order.orderID,
                    item.productID,
                )
                continue

            drawn = take(stock, item.quantity, product_id=product.productID, product_name=product.name)
            working[item.productID] = drawn.remaining
            chunks.append(drawn.delivered_text)

        writes = [
            LedgerWrite(
                product_id=product_id,
                product_name=products[product_id].name,
                original_stock=products[product_id].stock,
                remaining_stock=remaining,
            )
            for product_id, remaining in working.items()
        ]
        return FulfillmentPlan(
            order_id=order.orderID,
            delivered_content="\n".join(chunks).rstrip(),
            writes=writes,
            skipped_product_ids=skipped,
        )

    def _commit(self, plan: FulfillmentPlan) -> FulfillmentResult:
        try:
            claimed = self.db.execute(
                update(Order)
                .where(Order.orderID == plan.order_id, Order.status == OrderStatus.PENDING)
                .values(
                    status=OrderStatus.PAID,
                    delivered_content=plan.delivered_content,
                    paid_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed == 0:
                self.db.rollback()
                return self._result_after_lost_claim(plan.order_id)

            for write in plan.writes:
                swapped = self.db.execute(
                    update(Product)
                    .where(Product.productID == write.product_id, Product.stock == write.original_stock)
                    .values(stock=write.remaining_stock)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if swapped == 0:
                    raise StaleLedger(write.product_id)

            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.exception("Failed to persist fulfillment of order %s", plan.order_id)
            raise PersistenceFailure(f"Could not save fulfillment of order {plan.order_id}") from exc

        for write in plan.writes:
            self.inventory_service.record_consumption(
                product_id=write.product_id,
                product_name=write.product_name,
                old_units=write.old_units,
                new_units=write.new_units,
                order_id=plan.order_id,
            )
        record_event(
            "order_fulfilled",
            {
                "order_id": plan.order_id,
                "products": [write.product_id for write in plan.writes],
                "skipped_products": plan.skipped_product_ids,
            },
        )
        self.logger.info(
            "Order %s fulfilled",
            plan.order_id,
            extra={"products": [write.product_id for write in plan.writes]},
        )
        return FulfillmentResult(
            order_id=plan.order_id,
            status=OrderStatus.PAID,
            delivered_content=plan.delivered_content,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load_order(self, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter_by(orderID=order_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _load_products(self, product_ids) -> Dict[int, Product]:
        if not product_ids:
            return {}
        # Lock in id order so concurrent fulfillments cannot deadlock on each other
        rows = (
            self.db.query(Product)
            .filter(Product.productID.in_(sorted(product_ids)))
            .order_by(Product.productID)
            .with_for_update()
            .populate_existing()
            .all()
        )
        return {product.productID: product for product in rows}

    def _result_after_lost_claim(self, order_id: int) -> FulfillmentResult:
        order = self.db.query(Order).filter_by(orderID=order_id).populate_existing().first()
        if order is None:
            raise OrderNotFound(order_id)
        if not order.is_paid:
            raise PersistenceFailure(f"Order {order_id} could not be claimed for fulfillment")
        self.logger.info("Order %s was fulfilled by a concurrent request", order_id)
        return self._stored_result(order)

    @staticmethod
    def _stored_result(order: Order) -> FulfillmentResult:
        return FulfillmentResult(
            order_id=order.orderID,
            status=OrderStatus.PAID,
            delivered_content=order.delivered_content or "",
            already_paid=True,
        )


__all__ = [
    "FulfillmentPlan",
    "FulfillmentResult",
    "FulfillmentService",
    "LedgerWrite",
    "OrderLockRegistry",
    "StaleLedger",
]
