"""Tests for repacking through TransactionRecorder.record_repacking."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tests.conftest import CROISSANT, FLOUR_1KG, FLOUR_25KG, TEST_ACTOR_ID, TODAY
from inventory_ledger.exceptions import InsufficientStockError, InvalidRepackingError
from inventory_ledger.models import InventoryTransaction, RepackingRecord, TransactionType


class TestRepacking:
    def test_four_to_one(self, recorder, stock, store):
        stock(FLOUR_1KG, TODAY, 4)
        stock(FLOUR_25KG, TODAY, 2)

        result = recorder.record_repacking(
            FLOUR_1KG, Decimal("4"), FLOUR_25KG, Decimal("1"), TODAY, actor_id=TEST_ACTOR_ID
        )

        calc = result.calculation
        assert calc.conversion_ratio == Decimal("4.0000")
        assert calc.expected_target_quantity == Decimal("1.00")
        assert calc.loss_quantity == Decimal("0.00")
        assert calc.loss_percentage == Decimal("0.00")

        source = store.find(FLOUR_1KG, TODAY)
        target = store.find(FLOUR_25KG, TODAY)
        assert source.repack_out == Decimal("4")
        assert source.closing_stock == Decimal("0")
        assert target.goods_in == Decimal("1")
        assert target.closing_stock == Decimal("3")

        assert result.source.transaction_type is TransactionType.REPACK_OUT
        assert result.source.quantity == Decimal("-4")
        assert result.target.transaction_type is TransactionType.REPACK_IN
        assert result.target.quantity == Decimal("1")

    def test_record_links_both_transactions(self, recorder, stock, session):
        stock(FLOUR_25KG, TODAY, 3)

        result = recorder.record_repacking(
            FLOUR_25KG, 1, FLOUR_1KG, 24, TODAY, actor_id=TEST_ACTOR_ID, reason="retail packs"
        )

        record = session.get(RepackingRecord, result.repacking_id)
        assert result.repacking_number == "RPK-20260310-001"
        assert record.source_transaction_id == result.source.transaction_id
        assert record.target_transaction_id == result.target.transaction_id
        assert record.conversion_ratio == result.calculation.conversion_ratio

        linked = session.execute(
            select(InventoryTransaction.id).where(
                InventoryTransaction.repacking_id == result.repacking_id
            )
        ).scalars().all()
        assert sorted(linked) == sorted([result.source.transaction_id, result.target.transaction_id])

    def test_same_product_rejected(self, recorder, stock):
        stock(CROISSANT, TODAY, 10)

        with pytest.raises(InvalidRepackingError):
            recorder.record_repacking(CROISSANT, 2, CROISSANT, 1, TODAY, actor_id=TEST_ACTOR_ID)

    @pytest.mark.parametrize("source_qty, target_qty", [(0, 1), (4, 0), (-1, 1)])
    def test_non_positive_quantities_rejected(self, recorder, source_qty, target_qty):
        with pytest.raises(InvalidRepackingError):
            recorder.record_repacking(
                FLOUR_1KG, source_qty, FLOUR_25KG, target_qty, TODAY, actor_id=TEST_ACTOR_ID
            )

    def test_insufficient_source_writes_nothing(self, recorder, stock, store, session):
        stock(FLOUR_1KG, TODAY, 3)

        with pytest.raises(InsufficientStockError):
            recorder.record_repacking(FLOUR_1KG, 4, FLOUR_25KG, 1, TODAY, actor_id=TEST_ACTOR_ID)

        assert store.find(FLOUR_1KG, TODAY).repack_out == Decimal("0")
        assert store.find(FLOUR_25KG, TODAY) is None
        assert session.execute(select(func.count()).select_from(RepackingRecord)).scalar_one() == 0

    def test_source_checked_against_later_dates(self, recorder, stock, store):
        stock(FLOUR_25KG, TODAY, 2)
        recorder.record_repacking(
            FLOUR_25KG, 2, FLOUR_1KG, 50, TODAY + timedelta(days=1), actor_id=TEST_ACTOR_ID
        )

        with pytest.raises(InsufficientStockError) as exc_info:
            recorder.record_repacking(FLOUR_25KG, 1, FLOUR_1KG, 25, TODAY, actor_id=TEST_ACTOR_ID)

        assert exc_info.value.product_id == FLOUR_25KG
        assert exc_info.value.available == Decimal("0")
        assert store.find(FLOUR_25KG, TODAY).repack_out == Decimal("0")
