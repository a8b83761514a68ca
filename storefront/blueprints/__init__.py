from .admin import admin_bp
from .storefront import storefront_bp

__all__ = ["admin_bp", "storefront_bp"]
