"""
Unit tests for the quote pricing calculator.

Covers line totals, half-up rounding, GST on and off, and item validation.
The GST relationship is also checked over a spread of generated item lists.
"""

import random
from decimal import Decimal

import pytest

from tradiehub.core.config import settings
from tradiehub.core.errors import ValidationError
from tradiehub.services.pricingCalculator import (
    LineItem,
    calculate_gst,
    calculate_line_total,
    calculate_quote,
    round_money,
)


def _item(quantity, unit_price) -> LineItem:
    return LineItem(quantity=Decimal(str(quantity)), unit_price=Decimal(str(unit_price)))


# ---------------------------------------------------------------------------
# calculate_quote
# ---------------------------------------------------------------------------


class TestCalculateQuote:

    def test_single_item_with_gst(self):
        result = calculate_quote([_item(2, 50)], gst_enabled=True)
        assert result.subtotal == Decimal("100.00")
        assert result.gst_amount == Decimal("10.00")
        assert result.total_amount == Decimal("110.00")
        assert result.gst_rate == Decimal("0.10")

    def test_gst_disabled(self):
        result = calculate_quote([_item(2, 50)], gst_enabled=False)
        assert result.gst_amount == Decimal("0.00")
        assert result.total_amount == Decimal("100.00")
        assert result.gst_rate == Decimal("0.00")

    def test_multiple_items_sum_line_totals(self):
        result = calculate_quote(
            [_item(3, "19.99"), _item("1.5", 80), _item(1, 0)],
            gst_enabled=True,
        )
        assert result.line_totals == [Decimal("59.97"), Decimal("120.00"), Decimal("0.00")]
        assert result.subtotal == Decimal("179.97")
        assert result.gst_amount == Decimal("18.00")
        assert result.total_amount == Decimal("197.97")

    def test_total_is_subtotal_plus_gst(self):
        result = calculate_quote([_item("7.25", "13.33"), _item(2, "0.05")], gst_enabled=True)
        assert result.total_amount == result.subtotal + result.gst_amount

    def test_accepts_dict_items(self):
        result = calculate_quote([{"quantity": "2", "unit_price": "50"}], gst_enabled=True)
        assert result.total_amount == Decimal("110.00")

    def test_custom_gst_rate(self):
        result = calculate_quote([_item(1, 100)], gst_enabled=True, gst_rate=Decimal("0.15"))
        assert result.gst_amount == Decimal("15.00")
        assert result.total_amount == Decimal("115.00")


def _generated_item_lists(count: int, seed: int = 20240611) -> list[list[LineItem]]:
    rng = random.Random(seed)
    lists = []
    for _ in range(count):
        items = []
        for _ in range(rng.randint(1, 12)):
            quantity = Decimal(rng.randint(1, 40000)) / 100
            unit_price = Decimal(rng.randint(0, 2500000)) / 1000
            items.append(LineItem(quantity=quantity, unit_price=unit_price))
        lists.append(items)
    return lists


_EDGE_ITEM_LISTS = [
    [_item("0.01", "0.05")],
    [_item(1, "0.04"), _item(1, "0.01")],
    [_item(3, "0.125")],
    [_item(1, 0)],
    [_item("99999.99", "999999.99")],
]


class TestGstProperty:

    @pytest.mark.parametrize("items", _EDGE_ITEM_LISTS + _generated_item_lists(60))
    def test_gst_total_is_rounded_ex_gst_total_times_rate(self, items):
        with_gst = calculate_quote(items, gst_enabled=True)
        without_gst = calculate_quote(items, gst_enabled=False)

        assert with_gst.subtotal == without_gst.subtotal
        assert without_gst.total_amount == without_gst.subtotal
        assert with_gst.total_amount == round_money(
            without_gst.total_amount * (1 + settings.gst_rate)
        )
        assert with_gst.total_amount == with_gst.subtotal + with_gst.gst_amount

    @pytest.mark.parametrize("items", _generated_item_lists(20, seed=7))
    def test_item_order_does_not_change_totals(self, items):
        forward = calculate_quote(items, gst_enabled=True)
        backward = calculate_quote(list(reversed(items)), gst_enabled=True)
        assert forward.total_amount == backward.total_amount


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


class TestRounding:

    def test_line_total_rounds_half_up(self):
        # 3 * 0.125 = 0.375 -> 0.38
        assert calculate_line_total(Decimal("3"), Decimal("0.125")) == Decimal("0.38")

    def test_gst_rounds_half_up(self):
        # 0.05 * 0.10 = 0.005 -> 0.01
        assert calculate_gst(Decimal("0.05"), True) == Decimal("0.01")

    def test_round_money_two_places(self):
        assert round_money(Decimal("10.004")) == Decimal("10.00")
        assert round_money(Decimal("10.005")) == Decimal("10.01")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_quote([], gst_enabled=True)
        assert exc_info.value.errors[0].field == "items"

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_quote([_item(0, 10)], gst_enabled=True)
        assert exc_info.value.errors[0].field == "items[0].quantity"

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_quote([_item(1, 10), _item(1, -5)], gst_enabled=True)
        assert exc_info.value.errors[0].field == "items[1].unit_price"

    def test_every_bad_field_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_quote([_item(-1, -1)], gst_enabled=True)
        fields = {error.field for error in exc_info.value.errors}
        assert fields == {"items[0].quantity", "items[0].unit_price"}

    def test_non_numeric_quantity_rejected(self):
        with pytest.raises(ValidationError):
            calculate_quote([{"quantity": "lots", "unit_price": "10"}], gst_enabled=True)

    def test_too_many_items_rejected(self):
        with pytest.raises(ValidationError):
            calculate_quote([_item(1, 1)] * 51, gst_enabled=True)

    def test_error_code(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_quote([], gst_enabled=True)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400
