from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from storefront.config import Config
from storefront.exceptions import ExternalStatusCheckFailed
from storefront.observability import increment_counter, observe_latency

PAID_CHARGE_STATUS = "PAID"


class PagSeguroStatusClient:
    """
    Asks the payment gateway whether the charge behind an order has been paid.

    Only the status of the first charge is read; anything else about the
    gateway protocol is out of scope. Every failure mode (timeout, network
    error, non-2xx, unparseable body) surfaces as ExternalStatusCheckFailed
    so callers can keep the order pending.
    """

    def __init__(
        self,
        api_url: str,
        token: str,
        timeout: Optional[float] = None,
        http: Any = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = Config.GATEWAY_TIMEOUT_SECONDS if timeout is None else timeout
        # requests module or a requests.Session; both expose .get()
        self.http = http or requests
        self.logger = logging.getLogger(__name__)

    def fetch_order(self, gateway_order_id: str) -> Dict[str, Any]:
        url = f"{self.api_url}/orders/{gateway_order_id}"
        try:
            response = self.http.get(
                url,
                headers={"Authorization": f"Bearer {self.token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            self._record_failure("timeout")
            raise ExternalStatusCheckFailed(
                f"Payment gateway timed out after {self.timeout}s for {gateway_order_id}"
            ) from exc
        except requests.RequestException as exc:
            self._record_failure("network")
            raise ExternalStatusCheckFailed(f"Payment gateway unreachable: {exc}") from exc

        elapsed = getattr(response, "elapsed", None)
        if elapsed is not None:
            observe_latency("gateway_status_latency_ms", elapsed.total_seconds() * 1000)

        if not 200 <= response.status_code < 300:
            self._record_failure("http_status")
            raise ExternalStatusCheckFailed(
                f"Payment gateway answered HTTP {response.status_code} for {gateway_order_id}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            self._record_failure("unparseable")
            raise ExternalStatusCheckFailed("Payment gateway returned a non-JSON body") from exc

        if not isinstance(payload, dict):
            self._record_failure("unparseable")
            raise ExternalStatusCheckFailed("Payment gateway returned an unexpected JSON document")
        return payload

    def is_charge_paid(self, gateway_order_id: str) -> bool:
        payload = self.fetch_order(gateway_order_id)
        charges = payload.get("charges") or []
        if not isinstance(charges, list) or not charges or not isinstance(charges[0], dict):
            return False
        status = charges[0].get("status")
        paid = status == PAID_CHARGE_STATUS
        increment_counter("gateway_status_checks_total", labels={"paid": str(paid).lower()})
        self.logger.info(
            "Gateway charge status for %s: %s",
            gateway_order_id,
            status,
        )
        return paid

    @staticmethod
    def _record_failure(reason: str) -> None:
        increment_counter("gateway_status_check_failures_total", labels={"reason": reason})


__all__ = ["PagSeguroStatusClient", "PAID_CHARGE_STATUS"]
