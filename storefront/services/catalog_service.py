from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

import bleach
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.exceptions import ProductNotFound, ValidationError
from storefront.models import Product
from storefront.services.inventory_service import count_units, normalize_stock

TEXT_FIELDS = ("name", "description", "category", "instructions", "warranty")


class CatalogService:
    """Admin product management and the public catalog listing."""

    def __init__(self, db_session: Session, config: type[Config] = Config) -> None:
        self.db = db_session
        self.config = config
        self.logger = logging.getLogger(__name__)

    def list_products(self, active_only: bool = False) -> List[Product]:
        query = self.db.query(Product)
        if active_only:
            query = query.filter(Product.active.is_(True))
        return query.order_by(Product.productID.desc()).all()

    def get_product(self, product_id: int, active_only: bool = False) -> Product:
        product = self.db.query(Product).filter_by(productID=product_id).first()
        if product is None or (active_only and not product.active):
            raise ProductNotFound(product_id)
        return product

    def create_product(self, data: Dict[str, Any]) -> Product:
        fields = self._clean(data, partial=False)
        product = Product(**fields)
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        self.logger.info(
            "Created product %s",
            product.productID,
            extra={"units": count_units(product.stock)},
        )
        return product

    def update_product(self, product_id: int, data: Dict[str, Any]) -> Product:
        product = self.get_product(product_id)
        fields = self._clean(data, partial=True)
        for key, value in fields.items():
            setattr(product, key, value)
        self.db.commit()
        self.db.refresh(product)
        self.logger.info("Updated product %s", product_id, extra={"fields": sorted(fields)})
        return product

    def delete_product(self, product_id: int) -> None:
        """Delete a product. Existing orders keep their item snapshots."""
        product = self.get_product(product_id)
        self.db.delete(product)
        self.db.commit()
        self.logger.info("Deleted product %s", product_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _clean(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        for key in TEXT_FIELDS:
            if key in data and data[key] is not None:
                fields[key] = self.sanitize_text(str(data[key]))

        if not partial or "name" in fields:
            if not fields.get("name"):
                raise ValidationError("Product name is required")
        if not partial and not fields.get("category"):
            fields["category"] = self.config.DEFAULT_CATEGORY

        for key in ("original_price", "current_price"):
            if key in data and data[key] is not None:
                fields[key] = self._parse_price(key, data[key])
            elif not partial:
                raise ValidationError(f"{key} is required")

        if "image_url" in data:
            fields["image_url"] = (data["image_url"] or "").strip() or None
        # Stock lines are opaque deliverables: only blank lines are dropped
        if "stock" in data:
            fields["stock"] = normalize_stock(data["stock"])
        elif not partial:
            fields["stock"] = ""
        if "active" in data and data["active"] is not None:
            if not isinstance(data["active"], bool):
                raise ValidationError("active must be true or false")
            fields["active"] = data["active"]
        return fields

    @staticmethod
    def sanitize_text(value: str) -> str:
        return bleach.clean(value, tags=[], strip=True).strip()

    @staticmethod
    def _parse_price(key: str, value: Any) -> Decimal:
        try:
            price = Decimal(str(value)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{key} must be a decimal amount")
        if price < 0:
            raise ValidationError(f"{key} cannot be negative")
        return price

    @staticmethod
    def to_dict(product: Product, include_stock: bool = False) -> Dict[str, Any]:
        body = {
            "id": product.productID,
            "name": product.name,
            "description": product.description,
            "imageUrl": product.image_url,
            "category": product.category,
            "instructions": product.instructions,
            "warranty": product.warranty,
            "originalPrice": str(product.original_price),
            "currentPrice": str(product.current_price),
            "stockCount": count_units(product.stock),
            "active": product.active,
        }
        if include_stock:
            body["stock"] = product.stock
        return body


__all__ = ["CatalogService"]
