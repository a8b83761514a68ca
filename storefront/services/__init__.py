from .inventory_service import InventoryService
from .coupon_service import CouponService
from .fulfillment_service import FulfillmentService
from .payment_service import PagSeguroStatusClient
from .settings_service import SettingsService
from .order_service import OrderService
from .catalog_service import CatalogService
from .auth_service import AdminAuthService, InMemoryTokenStore
from .dashboard_service import DashboardService

__all__ = [
    "InventoryService",
    "CouponService",
    "FulfillmentService",
    "PagSeguroStatusClient",
    "SettingsService",
    "OrderService",
    "CatalogService",
    "AdminAuthService",
    "InMemoryTokenStore",
    "DashboardService",
]
