"""Tests for LedgerStore: seeding, registration, deltas and settings."""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import BAGUETTE, CROISSANT, NOW, TEST_ACTOR_ID, TODAY
from inventory_ledger.exceptions import (
    InsufficientStockError,
    LedgerRowExistsError,
    LedgerRowInUseError,
    LedgerRowNotFoundError,
    NegativeAccumulatorError,
)
from inventory_ledger.models.ledger_row import LedgerColumn, LedgerRow


class TestGetOrCreate:
    def test_first_row_opens_at_zero_and_logs_gap(self, store, captured_logs):
        row = store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)

        assert row.id is not None
        assert row.opening_stock == Decimal("0")
        assert row.closing_stock == Decimal("0")
        assert row.created_by == TEST_ACTOR_ID
        messages = [r["message"] for r in captured_logs()]
        assert "ledger_gap_seeded_zero" in messages
        assert "ledger_row_created" in messages

    def test_seeded_from_previous_closing(self, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=1), 80, minimum_stock=Decimal("10"))

        row = store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)

        assert row.opening_stock == Decimal("80")
        assert row.minimum_stock == Decimal("10")

    def test_seeded_across_a_gap(self, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=5), 40)

        row = store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)

        assert row.opening_stock == Decimal("40")

    def test_existing_row_is_returned(self, store, stock):
        existing = stock(CROISSANT, TODAY, 12)

        assert store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID).id == existing.id

    def test_products_are_independent(self, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=1), 80)

        row = store.get_or_create(BAGUETTE, TODAY, TEST_ACTOR_ID)

        assert row.opening_stock == Decimal("0")


class TestRegisterRow:
    def test_duplicate_rejected(self, stock):
        stock(CROISSANT, TODAY, 10)

        with pytest.raises(LedgerRowExistsError):
            stock(CROISSANT, TODAY, 20)

    def test_backdated_registration_shifts_later_rows(self, store, stock):
        later = store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)
        assert later.opening_stock == Decimal("0")

        stock(CROISSANT, TODAY - timedelta(days=2), 50)

        assert store.find(CROISSANT, TODAY).opening_stock == Decimal("50")

    def test_registration_between_rows_shifts_by_difference(self, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=3), 30)
        store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)

        # physical count on a day in between found 45 instead of 30
        stock(CROISSANT, TODAY - timedelta(days=1), 45)

        assert store.find(CROISSANT, TODAY).opening_stock == Decimal("45")

    def test_lower_count_cannot_uncover_a_later_sale(self, store, stock, recorder):
        stock(CROISSANT, TODAY - timedelta(days=3), 10)
        recorder.record_sale(CROISSANT, 10, 7, TODAY, actor_id=TEST_ACTOR_ID)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock(CROISSANT, TODAY - timedelta(days=1), 4)

        assert exc_info.value.requested == Decimal("6")
        assert exc_info.value.available == Decimal("0")
        assert store.find(CROISSANT, TODAY).opening_stock == Decimal("10")


class TestRetireRow:
    def test_retired_row_is_skipped_by_lookups(self, store, stock, captured_logs):
        stock(CROISSANT, TODAY - timedelta(days=2), 10)
        store.get_or_create(CROISSANT, TODAY - timedelta(days=1), TEST_ACTOR_ID)

        store.retire_row(CROISSANT, TODAY - timedelta(days=1), TEST_ACTOR_ID, NOW)

        assert store.find(CROISSANT, TODAY - timedelta(days=1)) is None
        retired = store.find(CROISSANT, TODAY - timedelta(days=1), include_retired=True)
        assert retired.deleted_at is not None
        assert retired.updated_by == TEST_ACTOR_ID
        assert store.find_previous(CROISSANT, TODAY).business_date == TODAY - timedelta(days=2)
        with pytest.raises(LedgerRowNotFoundError):
            store.require(CROISSANT, TODAY - timedelta(days=1))
        assert "ledger_row_retired" in [r["message"] for r in captured_logs()]

    def test_row_with_transactions_stays(self, store, stock, recorder):
        stock(CROISSANT, TODAY - timedelta(days=1), 10)
        recorder.record_sale(CROISSANT, 3, 7, TODAY, actor_id=TEST_ACTOR_ID)
        recorder.reverse_sale(7, CROISSANT, 3, TODAY, actor_id=TEST_ACTOR_ID)

        with pytest.raises(LedgerRowInUseError) as exc_info:
            store.retire_row(CROISSANT, TODAY, TEST_ACTOR_ID, NOW)

        assert exc_info.value.code == "LEDGER_ROW_IN_USE"
        assert store.find(CROISSANT, TODAY) is not None

    def test_row_with_own_stock_stays(self, store, stock):
        stock(CROISSANT, TODAY, 10)

        with pytest.raises(LedgerRowInUseError):
            store.retire_row(CROISSANT, TODAY, TEST_ACTOR_ID, NOW)

    def test_get_or_create_revives_with_current_carry(self, store, stock, recorder, captured_logs):
        day0 = TODAY - timedelta(days=2)
        stock(CROISSANT, day0, 10)
        retired = store.get_or_create(CROISSANT, day0 + timedelta(days=1), TEST_ACTOR_ID)
        store.retire_row(CROISSANT, retired.business_date, TEST_ACTOR_ID, NOW)
        recorder.adjust_stock(CROISSANT, day0, 5, "recount", actor_id=TEST_ACTOR_ID)

        row = store.get_or_create(CROISSANT, retired.business_date, TEST_ACTOR_ID)

        assert row.id == retired.id
        assert row.deleted_at is None
        assert row.opening_stock == Decimal("15")
        assert "ledger_row_revived" in [r["message"] for r in captured_logs()]

    def test_register_row_revives(self, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=1), 10)
        retired = store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)
        store.retire_row(CROISSANT, TODAY, TEST_ACTOR_ID, NOW)

        row = stock(CROISSANT, TODAY, 25, notes="recount")

        assert row.id == retired.id
        assert row.deleted_at is None
        assert row.opening_stock == Decimal("25")
        assert row.notes == "recount"


class TestApplyDelta:
    def test_returns_signed_closing_effect(self, store, stock):
        row = stock(CROISSANT, TODAY, 100)

        assert store.apply_delta(row, LedgerColumn.GOODS_IN, Decimal("5"), TEST_ACTOR_ID) == Decimal("5")
        assert store.apply_delta(row, LedgerColumn.RESERVED_OUT, Decimal("7"), TEST_ACTOR_ID) == Decimal("-7")
        assert row.closing_stock == Decimal("98")
        assert row.updated_by == TEST_ACTOR_ID

    def test_negative_accumulator_rejected(self, store, stock):
        row = stock(CROISSANT, TODAY, 100)

        with pytest.raises(NegativeAccumulatorError) as exc_info:
            store.apply_delta(row, LedgerColumn.SAMPLE_OUT, Decimal("-1"), TEST_ACTOR_ID)

        assert exc_info.value.column == "sample_out"
        assert row.sample_out == Decimal("0")

    def test_opening_stock_may_go_negative(self, store, stock):
        row = stock(CROISSANT, TODAY, 1)

        store.apply_delta(row, LedgerColumn.OPENING_STOCK, Decimal("-3"), TEST_ACTOR_ID)

        assert row.opening_stock == Decimal("-2")


class TestRequireAndSettings:
    def test_require_missing_row(self, store):
        with pytest.raises(LedgerRowNotFoundError) as exc_info:
            store.require(CROISSANT, TODAY)

        assert exc_info.value.code == "LEDGER_ROW_NOT_FOUND"

    def test_update_settings_leaves_quantities(self, store, stock):
        stock(CROISSANT, TODAY, 25, minimum_stock=Decimal("5"))

        row = store.update_settings(
            CROISSANT,
            TODAY,
            TEST_ACTOR_ID,
            maximum_stock=Decimal("300"),
            notes="display fridge",
        )

        assert row.minimum_stock == Decimal("5")
        assert row.maximum_stock == Decimal("300")
        assert row.notes == "display fridge"
        assert row.closing_stock == Decimal("25")

    def test_update_settings_clears_threshold(self, store, stock):
        stock(CROISSANT, TODAY, 25, minimum_stock=Decimal("5"))

        row = store.update_settings(CROISSANT, TODAY, TEST_ACTOR_ID, minimum_stock=None, is_active=False)

        assert row.minimum_stock is None
        assert row.is_active is False

    def test_seed_opening_stock_is_read_only(self, session, store, stock):
        stock(CROISSANT, TODAY - timedelta(days=1), 9)

        assert store.seed_opening_stock(CROISSANT, TODAY) == Decimal("9")
        assert session.query(LedgerRow).filter_by(business_date=TODAY).count() == 0
