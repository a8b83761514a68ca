from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.models import StoreSettings
from storefront.services.payment_service import PagSeguroStatusClient

EDITABLE_FIELDS = (
    "store_name",
    "logo_url",
    "theme_color",
    "text_color",
    "pix_key",
    "support_email",
    "whatsapp_contact",
    "gateway_token",
    "gateway_api_url",
)


class SettingsService:
    """Single-row store configuration: branding, PIX key and gateway credentials."""

    def __init__(self, db_session: Session, config: type[Config] = Config) -> None:
        self.db = db_session
        self.config = config
        self.logger = logging.getLogger(__name__)

    def get_settings(self) -> StoreSettings:
        settings = self.db.query(StoreSettings).order_by(StoreSettings.settingsID).first()
        if settings is None:
            settings = StoreSettings(
                store_name=self.config.DEFAULT_STORE_NAME,
                theme_color=self.config.DEFAULT_THEME_COLOR,
                text_color=self.config.DEFAULT_TEXT_COLOR,
                pix_key=self.config.DEFAULT_PIX_KEY,
                support_email=self.config.DEFAULT_SUPPORT_EMAIL,
            )
            self.db.add(settings)
            self.db.commit()
            self.db.refresh(settings)
            self.logger.info("Default store settings created")
        return settings

    def update_settings(self, **changes: Any) -> StoreSettings:
        """Apply non-empty values; empty or missing fields keep their current value."""
        settings = self.get_settings()
        applied = []
        for field_name in EDITABLE_FIELDS:
            value = changes.get(field_name)
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            setattr(settings, field_name, value)
            applied.append(field_name)
        self.db.commit()
        self.db.refresh(settings)
        self.logger.info("Store settings updated", extra={"fields": applied})
        return settings

    def to_dict(self, settings: StoreSettings, include_secrets: bool = False) -> Dict[str, Any]:
        body = {
            "storeName": settings.store_name,
            "logoUrl": settings.logo_url,
            "themeColor": settings.theme_color,
            "textColor": settings.text_color,
            "pixKey": settings.pix_key,
            "supportEmail": settings.support_email,
            "whatsappContact": settings.whatsapp_contact,
            "gatewayApiUrl": settings.gateway_api_url,
            "gatewayConfigured": settings.gateway_configured,
        }
        if include_secrets:
            body["gatewayToken"] = settings.gateway_token
        return body

    def public_view(self) -> Dict[str, Any]:
        return self.to_dict(self.get_settings(), include_secrets=False)

    def build_gateway_client(self) -> Optional[PagSeguroStatusClient]:
        settings = self.get_settings()
        if not settings.gateway_configured:
            return None
        return PagSeguroStatusClient(
            api_url=settings.gateway_api_url,
            token=settings.gateway_token,
            timeout=self.config.GATEWAY_TIMEOUT_SECONDS,
        )


__all__ = ["SettingsService", "EDITABLE_FIELDS"]
