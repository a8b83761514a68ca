import json
import logging

import pytest

from storefront.observability.logging_config import JsonFormatter
from storefront.observability.metrics import (
    get_counter_value,
    get_metrics_snapshot,
    increment_counter,
    observe_latency,
    record_event,
    reset_metrics,
    set_gauge,
    timed,
)


def test_metrics_snapshot_accumulates_counts():
    reset_metrics()
    increment_counter("test_counter")
    increment_counter("test_counter", amount=2, labels={"route": "/example"})
    set_gauge("stock_units", 5, labels={"product_id": 3})
    observe_latency("test_latency", 100, labels={"route": "/example"})
    observe_latency("test_latency", 50, labels={"route": "/example"})

    snapshot = get_metrics_snapshot()
    counters = snapshot["counters"]["test_counter"]
    assert len(counters) == 2
    assert get_counter_value("test_counter", {"route": "/example"}) == 2

    gauges = snapshot["gauges"]["stock_units"]
    assert gauges[0] == {"labels": {"product_id": "3"}, "value": 5}

    hist = snapshot["histograms"]["test_latency"][0]["stats"]
    assert hist["count"] == 2
    assert hist["max"] == 100


def test_timed_records_even_on_error():
    reset_metrics()
    with pytest.raises(RuntimeError):
        with timed("fulfillment_latency_ms", {"source": "test"}):
            raise RuntimeError("boom")

    stats = get_metrics_snapshot()["histograms"]["fulfillment_latency_ms"][0]["stats"]
    assert stats["count"] == 1


def test_event_log_is_bounded():
    reset_metrics()
    for index in range(250):
        record_event("order_fulfilled", {"order_id": index})

    events = get_metrics_snapshot()["events"]
    assert len(events) == 200
    assert events[-1]["payload"] == {"order_id": 249}


def test_json_formatter_carries_extra_fields():
    record = logging.LogRecord("storefront.test", logging.WARNING, __file__, 1, "Order %s fulfilled", (7,), None)
    record.products = [1, 2]

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Order 7 fulfilled"
    assert payload["level"] == "WARNING"
    assert payload["extra"] == {"products": [1, 2]}
