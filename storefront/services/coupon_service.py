from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.exceptions import CouponNotFound, ValidationError
from storefront.models import Coupon
from storefront.observability import increment_counter

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    discount_percent: Optional[int] = None
    code: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.valid:
            return {"valid": False}
        return {"valid": True, "discountPercent": self.discount_percent}


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def compute_discount(subtotal: Decimal, discount_percent: int) -> Decimal:
    """Percentage of ``subtotal``, floored to the cent."""
    raw = Decimal(subtotal) * Decimal(discount_percent) / Decimal(100)
    return raw.quantize(CENT, rounding=ROUND_FLOOR)


def apply_discount(subtotal: Decimal, discount: Decimal) -> Decimal:
    """Order total after discount; never negative."""
    return max(ZERO, Decimal(subtotal) - Decimal(discount)).quantize(CENT)


class CouponService:
    """Looks up discount codes at checkout and manages them for admins."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def validate(self, code: Optional[str]) -> CouponValidation:
        normalized = normalize_code(code)
        if not normalized:
            return CouponValidation(valid=False)

        coupon = self.db.query(Coupon).filter_by(code=normalized).first()
        if coupon is None or not coupon.active:
            increment_counter("coupon_validations_total", labels={"valid": "false"})
            return CouponValidation(valid=False)

        increment_counter("coupon_validations_total", labels={"valid": "true"})
        return CouponValidation(
            valid=True,
            discount_percent=coupon.discount_percent,
            code=coupon.code,
        )

    # ------------------------------------------------------------------
    # Admin flows
    # ------------------------------------------------------------------
    def list_coupons(self) -> List[Coupon]:
        return self.db.query(Coupon).order_by(Coupon.couponID.desc()).all()

    def create_coupon(self, code: Optional[str], discount_percent, active: bool = True) -> Coupon:
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Coupon code is required")
        try:
            percent = int(discount_percent)
        except (TypeError, ValueError):
            raise ValidationError("Discount percent must be an integer")
        if not 0 <= percent <= 100:
            raise ValidationError("Discount must be between 0 and 100 percent")
        if not isinstance(active, bool):
            raise ValidationError("active must be true or false")

        coupon = Coupon(code=normalized, discount_percent=percent, active=active)
        self.db.add(coupon)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(f"Coupon {normalized} already exists")
        self.db.refresh(coupon)
        self.logger.info("Created coupon %s (%d%%)", coupon.code, percent)
        return coupon

    def delete_coupon(self, coupon_id: int) -> None:
        coupon = self.db.query(Coupon).filter_by(couponID=coupon_id).first()
        if coupon is None:
            raise CouponNotFound(coupon_id)
        self.db.delete(coupon)
        self.db.commit()
        self.logger.info("Deleted coupon %s", coupon_id)


__all__ = [
    "CouponService",
    "CouponValidation",
    "apply_discount",
    "compute_discount",
    "normalize_code",
]
