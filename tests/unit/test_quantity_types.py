"""Tests for quantity parsing and quantization helpers."""

from decimal import Decimal

import pytest

from inventory_ledger.db.types import quantize, to_positive_quantity, to_quantity
from inventory_ledger.exceptions import InvalidQuantityError


class TestToQuantity:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (Decimal("12.5"), Decimal("12.50")),
            (3, Decimal("3.00")),
            ("0.25", Decimal("0.25")),
            (1.5, Decimal("1.50")),
            (Decimal("-4"), Decimal("-4.00")),
        ],
    )
    def test_accepts(self, raw, expected):
        assert to_quantity(raw) == expected
        assert to_quantity(raw).as_tuple().exponent == -2

    @pytest.mark.parametrize("raw", ["abc", None, object(), True])
    def test_rejects_non_numbers(self, raw):
        with pytest.raises(InvalidQuantityError):
            to_quantity(raw)

    @pytest.mark.parametrize("raw", [Decimal("NaN"), Decimal("Infinity")])
    def test_rejects_non_finite(self, raw):
        with pytest.raises(InvalidQuantityError):
            to_quantity(raw)

    def test_rejects_excess_precision(self):
        with pytest.raises(InvalidQuantityError) as exc_info:
            to_quantity(Decimal("1.005"), "quantity")

        assert exc_info.value.field == "quantity"
        assert "decimal places" in exc_info.value.reason


class TestToPositiveQuantity:
    @pytest.mark.parametrize("raw", [0, Decimal("-1"), "-0.01"])
    def test_rejects_zero_and_negative(self, raw):
        with pytest.raises(InvalidQuantityError):
            to_positive_quantity(raw)

    def test_accepts_smallest_unit(self):
        assert to_positive_quantity("0.01") == Decimal("0.01")


def test_quantize_rounds_half_up():
    assert quantize(Decimal("2.345")) == Decimal("2.35")
    assert quantize(Decimal("1.23455"), 4) == Decimal("1.2346")
