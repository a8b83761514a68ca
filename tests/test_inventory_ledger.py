import pytest

from storefront.exceptions import InsufficientStock
from storefront.observability.metrics import get_counter_value
from storefront.services.inventory_service import (
    InventoryService,
    count_units,
    normalize_stock,
    parse_stock_lines,
    take,
)


def test_parse_drops_blank_lines_and_keeps_content():
    stock = "A1\n\n   \nB2  \n\tC3\n"
    assert parse_stock_lines(stock) == ["A1", "B2  ", "\tC3"]
    assert count_units(stock) == 3
    assert parse_stock_lines(None) == []
    assert count_units("") == 0


def test_carriage_returns_are_preserved():
    assert parse_stock_lines("K1\r\nK2\r\n") == ["K1\r", "K2\r"]


def test_take_draws_from_the_front():
    result = take("A1\nB2\nC3\nD4", 2)
    assert result.delivered == ["A1", "B2"]
    assert result.delivered_text == "A1\nB2"
    assert result.remaining == "C3\nD4"
    assert result.remaining_count == 2


def test_take_everything_leaves_empty_ledger():
    result = take("A1\n\nB2\n", 2)
    assert result.delivered == ["A1", "B2"]
    assert result.remaining == ""


def test_take_shortfall_names_the_product():
    with pytest.raises(InsufficientStock) as excinfo:
        take("A1\nB2", 3, product_id=7, product_name="Game Key")

    error = excinfo.value
    assert (error.required, error.available) == (3, 2)
    assert error.product_id == 7
    assert "Game Key" in error.message
    assert error.to_dict()["kind"] == "insufficient_stock"


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
def test_take_rejects_non_positive_integer_quantities(quantity):
    with pytest.raises(ValueError):
        take("A1\nB2", quantity)


def test_normalize_stock_is_stable():
    messy = "\nA1\n \nB2\n\n"
    assert normalize_stock(messy) == "A1\nB2"
    assert normalize_stock(normalize_stock(messy)) == "A1\nB2"


def test_low_stock_products_sorted_emptiest_first(db_session, make_product):
    make_product(name="Plenty", stock="\n".join(f"K{i}" for i in range(10)))
    make_product(name="Two Left", stock="K1\nK2")
    make_product(name="Empty", stock="")
    make_product(name="Hidden", stock="", active=False)

    alerts = InventoryService(db_session, threshold=5).get_low_stock_products()

    assert [alert["product_name"] for alert in alerts] == ["Empty", "Two Left"]
    assert alerts[1]["current_stock"] == 2
    assert alerts[0]["threshold"] == 5


def test_record_consumption_publishes_low_stock_alert(db_session):
    service = InventoryService(db_session, threshold=3)

    service.record_consumption(product_id=1, product_name="Key", old_units=10, new_units=8, order_id=5)
    assert get_counter_value("low_stock_alerts_total", {"product_id": 1}) == 0

    service.record_consumption(product_id=1, product_name="Key", old_units=8, new_units=2, order_id=6)
    assert get_counter_value("low_stock_alerts_total", {"product_id": 1}) == 1
    assert get_counter_value("stock_units_consumed_total", {"product_id": 1}) == 8
