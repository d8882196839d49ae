"""Tests for the ledger, transaction and sample selectors."""

from dataclasses import FrozenInstanceError
from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import BAGUETTE, BUTTER, CROISSANT, NOW, TEST_ACTOR_ID, TODAY
from inventory_ledger.domain.stock_status import StockLevel
from inventory_ledger.models import SampleStatus, TransactionStatus, TransactionType
from inventory_ledger.selectors import LedgerSelector, SampleSelector, TransactionSelector

YESTERDAY = TODAY - timedelta(days=1)


class TestLedgerSelector:
    def test_history_in_date_order(self, session, stock, recorder):
        stock(CROISSANT, YESTERDAY, 10)
        recorder.record_production(CROISSANT, 5, "B1", TODAY, actor_id=TEST_ACTOR_ID)

        history = LedgerSelector(session).history(CROISSANT)

        assert [(r.business_date, r.closing_stock) for r in history] == [
            (YESTERDAY, Decimal("10")),
            (TODAY, Decimal("15")),
        ]
        assert LedgerSelector(session).history(CROISSANT, start_date=TODAY)[0].goods_in == Decimal("5")

    def test_dto_is_frozen(self, session, stock):
        stock(CROISSANT, TODAY, 10)

        dto = LedgerSelector(session).get_row(CROISSANT, TODAY)

        with pytest.raises(FrozenInstanceError):
            dto.opening_stock = Decimal("0")

    def test_retired_rows_hidden(self, session, stock, store):
        stock(CROISSANT, YESTERDAY, 10)
        store.get_or_create(CROISSANT, TODAY, TEST_ACTOR_ID)
        store.retire_row(CROISSANT, TODAY, TEST_ACTOR_ID, NOW)

        selector = LedgerSelector(session)
        assert selector.get_row(CROISSANT, TODAY) is None
        assert [r.business_date for r in selector.history(CROISSANT)] == [YESTERDAY]

    def test_low_stock(self, session, stock):
        stock(CROISSANT, TODAY, 5, minimum_stock=Decimal("10"))
        stock(BAGUETTE, TODAY, 50, minimum_stock=Decimal("10"))
        stock(BUTTER, TODAY, 1)

        low = LedgerSelector(session).low_stock(TODAY)

        assert [r.product_id for r in low] == [CROISSANT]
        assert low[0].stock_status is StockLevel.LOW_STOCK

    def test_summary(self, session, stock, recorder):
        stock(CROISSANT, TODAY, 100)
        stock(BAGUETTE, TODAY, 0)
        recorder.record_sale(CROISSANT, 40, 1, TODAY, actor_id=TEST_ACTOR_ID)

        summary = LedgerSelector(session).summary(TODAY)

        assert summary.product_count == 2
        assert summary.opening_stock == Decimal("100")
        assert summary.reserved_out == Decimal("40")
        assert summary.closing_stock == Decimal("60")
        assert summary.status_counts == {
            StockLevel.AVAILABLE: 1,
            StockLevel.OUT_OF_STOCK: 1,
        }


class TestTransactionSelector:
    def test_for_order_includes_reversal(self, session, stock, recorder):
        stock(CROISSANT, TODAY, 100)
        sale = recorder.record_sale(CROISSANT, 30, 7, TODAY, actor_id=TEST_ACTOR_ID)
        recorder.reverse_sale(7, CROISSANT, 30, TODAY, actor_id=TEST_ACTOR_ID)

        txns = TransactionSelector(session).for_order(7)

        assert [t.status for t in txns] == [TransactionStatus.COMPLETED, TransactionStatus.CANCELLED]
        assert txns[0].transaction_number == sale.transaction_number
        assert [t.quantity for t in txns] == [Decimal("-30"), Decimal("30")]

    def test_for_product_filters_types(self, session, stock, recorder):
        stock(CROISSANT, TODAY, 100)
        recorder.record_production(CROISSANT, 10, "B1", TODAY, actor_id=TEST_ACTOR_ID)
        recorder.record_sale(CROISSANT, 5, 1, TODAY, actor_id=TEST_ACTOR_ID)

        selector = TransactionSelector(session)
        sales = selector.for_product(CROISSANT, types=[TransactionType.SALE])

        assert [t.transaction_type for t in sales] == [TransactionType.SALE]
        assert len(selector.for_product(CROISSANT, start_date=TODAY, end_date=TODAY)) == 2

    def test_by_number(self, session, recorder):
        result = recorder.record_production(CROISSANT, 10, "B1", TODAY, actor_id=TEST_ACTOR_ID)

        selector = TransactionSelector(session)

        assert selector.by_number(result.transaction_number).balance_after == Decimal("10")
        assert selector.by_number("TRX-19990101-001") is None


class TestSampleSelector:
    def test_outstanding_and_follow_up(self, session, stock, recorder):
        stock(CROISSANT, TODAY, 10)
        due = recorder.record_sample_out(
            CROISSANT,
            1,
            "Cafe Rosa",
            "promotion",
            TODAY,
            actor_id=TEST_ACTOR_ID,
            follow_up_date=TODAY,
        )
        later = recorder.record_sample_out(
            CROISSANT,
            1,
            "Hotel Mawar",
            "partnership",
            TODAY,
            actor_id=TEST_ACTOR_ID,
            follow_up_date=TODAY + timedelta(days=14),
        )
        returned = recorder.record_sample_out(
            CROISSANT, 1, "Expo", "event", TODAY, actor_id=TEST_ACTOR_ID, follow_up_date=TODAY
        )
        recorder.record_sample_return(
            returned.sample_tracking_id, 1, "returned", actor_id=TEST_ACTOR_ID
        )

        selector = SampleSelector(session)

        assert [s.id for s in selector.outstanding()] == [
            due.sample_tracking_id,
            later.sample_tracking_id,
        ]
        assert [s.id for s in selector.due_for_follow_up(TODAY)] == [due.sample_tracking_id]
        assert selector.by_number(returned.sample_number).status is SampleStatus.RETURNED
        assert selector.get(due.sample_tracking_id).recipient_name == "Cafe Rosa"
        assert selector.get(999) is None
