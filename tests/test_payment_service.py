from datetime import timedelta

import pytest
import requests

from storefront.exceptions import ExternalStatusCheckFailed
from storefront.observability.metrics import get_counter_value
from storefront.services.payment_service import PagSeguroStatusClient


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, raise_on_json=False):
        self.status_code = status_code
        self._payload = payload
        self._raise_on_json = raise_on_json
        self.elapsed = timedelta(milliseconds=12)

    def json(self):
        if self._raise_on_json:
            raise ValueError("No JSON object could be decoded")
        return self._payload


@pytest.fixture
def captured(monkeypatch):
    calls = {}

    def _install(response=None, error=None):
        def fake_get(url, headers=None, timeout=None):
            calls.update(url=url, headers=headers, timeout=timeout)
            if error is not None:
                raise error
            return response

        monkeypatch.setattr(requests, "get", fake_get)
        return calls

    return _install


def _client():
    return PagSeguroStatusClient("https://gateway.example.com/", "tok-123", timeout=3)


def test_paid_charge(captured):
    calls = captured(_FakeResponse(payload={"id": "ORDE_1", "charges": [{"status": "PAID"}]}))

    assert _client().is_charge_paid("ORDE_1") is True
    assert calls["url"] == "https://gateway.example.com/orders/ORDE_1"
    assert calls["headers"]["Authorization"] == "Bearer tok-123"
    assert calls["timeout"] == 3


@pytest.mark.parametrize(
    "payload",
    [
        {"charges": [{"status": "WAITING"}]},
        {"charges": []},
        {"charges": "PAID"},
        {},
    ],
)
def test_anything_but_a_paid_first_charge_is_unpaid(captured, payload):
    captured(_FakeResponse(payload=payload))
    assert _client().is_charge_paid("ORDE_1") is False


def test_only_the_first_charge_counts(captured):
    captured(_FakeResponse(payload={"charges": [{"status": "DECLINED"}, {"status": "PAID"}]}))
    assert _client().is_charge_paid("ORDE_1") is False


def test_non_2xx_fails(captured):
    captured(_FakeResponse(status_code=503, payload={"error": "unavailable"}))

    with pytest.raises(ExternalStatusCheckFailed):
        _client().is_charge_paid("ORDE_1")
    assert get_counter_value("gateway_status_check_failures_total", {"reason": "http_status"}) == 1


def test_timeout_fails(captured):
    captured(error=requests.Timeout("read timed out"))

    with pytest.raises(ExternalStatusCheckFailed) as excinfo:
        _client().is_charge_paid("ORDE_1")
    assert excinfo.value.status_code == 502
    assert get_counter_value("gateway_status_check_failures_total", {"reason": "timeout"}) == 1


def test_connection_error_fails(captured):
    captured(error=requests.ConnectionError("refused"))

    with pytest.raises(ExternalStatusCheckFailed):
        _client().is_charge_paid("ORDE_1")


@pytest.mark.parametrize(
    "response",
    [_FakeResponse(raise_on_json=True), _FakeResponse(payload=["not", "a", "dict"])],
)
def test_unparseable_body_fails(captured, response):
    captured(response)

    with pytest.raises(ExternalStatusCheckFailed):
        _client().fetch_order("ORDE_1")
