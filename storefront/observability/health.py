from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.database import engine
from storefront.models import StoreSettings


def check_database_health() -> Dict[str, str]:
    """Attempt a lightweight DB query to ensure connectivity."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"status": "UP"}
    except SQLAlchemyError as exc:
        return {"status": "DOWN", "detail": str(exc)}


def check_gateway_configuration(db_session: Session) -> Dict[str, Any]:
    """Report whether automatic payment confirmation can run; never calls the gateway."""
    try:
        settings = db_session.query(StoreSettings).first()
    except SQLAlchemyError as exc:
        return {"status": "UNKNOWN", "detail": str(exc)}
    configured = bool(settings and settings.gateway_configured)
    return {"status": "CONFIGURED" if configured else "MANUAL_ONLY"}
