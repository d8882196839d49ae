"""Tests for the read-only StockAvailabilityChecker."""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import BAGUETTE, BUTTER, CROISSANT, NOW, TEST_ACTOR_ID, TODAY
from inventory_ledger.domain.stock_status import AvailabilityStatus, ValidationType
from inventory_ledger.exceptions import InvalidQuantityError
from inventory_ledger.selectors.stock_availability import StockAvailabilityChecker, StockRequest

TOMORROW = TODAY + timedelta(days=1)
YESTERDAY = TODAY - timedelta(days=1)


@pytest.fixture
def checker(session, clock):
    return StockAvailabilityChecker(session, clock)


class TestStockCheck:
    def test_future_date_is_advisory(self, checker, stock, store):
        stock(CROISSANT, TODAY, 30)

        result = checker.check(TOMORROW, [StockRequest(CROISSANT, Decimal("50"))])

        item = result.items[0]
        assert result.validation_type is ValidationType.FUTURE_DATE
        assert item.available == Decimal("30")
        assert item.projected is True
        assert item.status is AvailabilityStatus.INSUFFICIENT
        assert item.shortage == Decimal("20")
        assert result.is_valid is False
        assert result.should_block is False
        # Read-only: no row was created for the projected date
        assert store.find(CROISSANT, TOMORROW) is None

    def test_same_day_shortage_blocks(self, checker, stock):
        stock(CROISSANT, TODAY, 30)

        result = checker.check(TODAY, [StockRequest(CROISSANT, Decimal("50"))])

        assert result.validation_type is ValidationType.SAME_DAY
        assert result.items[0].projected is False
        assert result.should_block is True

    def test_past_date_never_blocks(self, checker, stock):
        stock(CROISSANT, YESTERDAY, 1)

        result = checker.check(YESTERDAY, [StockRequest(CROISSANT, 5)])

        assert result.validation_type is ValidationType.PAST_DATE
        assert result.should_block is False

    def test_product_without_history_is_out_of_stock(self, checker):
        result = checker.check(TODAY, [StockRequest(BUTTER, 1)])

        item = result.items[0]
        assert item.available == Decimal("0")
        assert item.status is AvailabilityStatus.OUT_OF_STOCK
        assert result.should_block is True

    def test_summary_counts(self, checker, stock):
        stock(CROISSANT, TODAY, 100)
        stock(BAGUETTE, TODAY, 8, minimum_stock=Decimal("10"))

        result = checker.check(
            TODAY,
            [
                StockRequest(CROISSANT, 10),
                StockRequest(BAGUETTE, 2),
                StockRequest(BUTTER, 1),
            ],
        )

        assert [item.status for item in result.items] == [
            AvailabilityStatus.SUFFICIENT,
            AvailabilityStatus.LOW_STOCK,
            AvailabilityStatus.OUT_OF_STOCK,
        ]
        summary = result.summary
        assert (summary.total_items, summary.sufficient, summary.low_stock) == (3, 1, 1)
        assert (summary.insufficient, summary.out_of_stock) == (0, 1)
        assert result.is_valid is False

    def test_all_sufficient_is_valid(self, checker, stock):
        stock(CROISSANT, TODAY, 100)

        result = checker.check(TODAY, [StockRequest(CROISSANT, 100)])

        assert result.is_valid is True
        assert result.should_block is False

    def test_bad_quantity(self, checker):
        with pytest.raises(InvalidQuantityError):
            checker.check(TODAY, [StockRequest(CROISSANT, Decimal("0"))])

    def test_retired_row_is_ignored(self, checker, stock, store):
        stock(CROISSANT, YESTERDAY, 30)
        store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)
        store.update_settings(CROISSANT, TODAY, TEST_ACTOR_ID, minimum_stock=Decimal("50"))
        store.retire_row(CROISSANT, TODAY, TEST_ACTOR_ID, NOW)

        item = checker.check(TODAY, [StockRequest(CROISSANT, 10)]).items[0]

        assert item.projected is True
        assert item.available == Decimal("30")
        assert item.minimum_stock is None
        assert item.status is AvailabilityStatus.SUFFICIENT
