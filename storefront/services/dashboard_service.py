from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.models import Order, OrderStatus
from storefront.services.inventory_service import InventoryService
from storefront.services.order_service import OrderService


class DashboardService:
    """Read-only numbers for the admin landing page."""

    def __init__(
        self,
        db_session: Session,
        config: type[Config] = Config,
        inventory_service: Optional[InventoryService] = None,
    ) -> None:
        self.db = db_session
        self.config = config
        self.inventory_service = inventory_service or InventoryService(
            db_session, threshold=config.LOW_STOCK_THRESHOLD
        )

    def summary(self) -> Dict[str, Any]:
        total_orders = self.db.query(func.count(Order.orderID)).scalar() or 0
        pending_orders = (
            self.db.query(func.count(Order.orderID))
            .filter(Order.status == OrderStatus.PENDING)
            .scalar()
            or 0
        )
        revenue = (
            self.db.query(func.coalesce(func.sum(Order.total_amount), 0))
            .filter(Order.status == OrderStatus.PAID)
            .scalar()
        )
        recent = (
            self.db.query(Order)
            .order_by(Order.created_at.desc(), Order.orderID.desc())
            .limit(self.config.RECENT_ORDERS_LIMIT)
            .all()
        )
        return {
            "totalOrders": int(total_orders),
            "pendingOrders": int(pending_orders),
            "paidRevenue": str(Decimal(revenue or 0).quantize(Decimal("0.01"))),
            "currency": self.config.CURRENCY,
            "lowStock": [
                {
                    "productId": alert["product_id"],
                    "productName": alert["product_name"],
                    "stockCount": alert["current_stock"],
                }
                for alert in self.inventory_service.get_low_stock_products()
            ],
            "lowStockThreshold": self.inventory_service.threshold,
            "recentOrders": [OrderService.to_dict(order, include_content=False) for order in recent],
        }


__all__ = ["DashboardService"]
