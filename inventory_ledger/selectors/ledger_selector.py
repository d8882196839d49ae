"""
Module: inventory_ledger.selectors.ledger_selector
Responsibility: Read-only queries over daily ledger rows: single rows,
    per-product history, low-stock lists and daily summaries.
Architecture position: Selectors.  Imports models/ and domain/.

Invariants enforced:
    - closing_stock in every DTO is derived from the row's accumulators.
    - Retired rows (deleted_at set) are excluded.

Failure modes:
    - Returns None / empty results when no rows match.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from inventory_ledger.db.types import ZERO
from inventory_ledger.domain.stock_status import StockLevel
from inventory_ledger.models.ledger_row import LedgerRow
from inventory_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerRowDTO:
    """Snapshot of one ledger row with its derived figures."""

    id: int
    product_id: int
    business_date: date
    opening_stock: Decimal
    goods_in: Decimal
    reserved_out: Decimal
    repack_out: Decimal
    sample_out: Decimal
    production_material_out: Decimal
    closing_stock: Decimal
    minimum_stock: Decimal | None
    maximum_stock: Decimal | None
    stock_status: StockLevel
    stock_utilization: Decimal | None
    is_active: bool
    notes: str | None

    @classmethod
    def from_row(cls, row: LedgerRow) -> "LedgerRowDTO":
        return cls(
            id=row.id,
            product_id=row.product_id,
            business_date=row.business_date,
            opening_stock=row.opening_stock,
            goods_in=row.goods_in,
            reserved_out=row.reserved_out,
            repack_out=row.repack_out,
            sample_out=row.sample_out,
            production_material_out=row.production_material_out,
            closing_stock=row.closing_stock,
            minimum_stock=row.minimum_stock,
            maximum_stock=row.maximum_stock,
            stock_status=row.stock_status,
            stock_utilization=row.stock_utilization,
            is_active=row.is_active,
            notes=row.notes,
        )


@dataclass(frozen=True)
class DailySummary:
    """Column totals and status counts for one business date."""

    business_date: date
    product_count: int
    opening_stock: Decimal
    goods_in: Decimal
    reserved_out: Decimal
    repack_out: Decimal
    sample_out: Decimal
    production_material_out: Decimal
    closing_stock: Decimal
    status_counts: dict[StockLevel, int] = field(default_factory=dict)


class LedgerSelector(BaseSelector[LedgerRow]):
    """
    Selector for daily ledger rows.

    Non-goals:
        - Does not project rows for dates that have none; see
          StockAvailabilityChecker for projected availability.
    """

    def _visible(self):
        return select(LedgerRow).where(LedgerRow.deleted_at.is_(None))

    def get_row(self, product_id: int, business_date: date) -> LedgerRowDTO | None:
        row = self.session.execute(
            self._visible().where(
                LedgerRow.product_id == product_id,
                LedgerRow.business_date == business_date,
            )
        ).scalar_one_or_none()
        return LedgerRowDTO.from_row(row) if row is not None else None

    def history(
        self,
        product_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerRowDTO]:
        """Rows of one product ordered by business date, bounds inclusive."""
        stmt = self._visible().where(LedgerRow.product_id == product_id)
        if start_date is not None:
            stmt = stmt.where(LedgerRow.business_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerRow.business_date <= end_date)
        rows = self.session.execute(stmt.order_by(LedgerRow.business_date)).scalars()
        return [LedgerRowDTO.from_row(row) for row in rows]

    def rows_for_date(self, business_date: date) -> list[LedgerRowDTO]:
        rows = self.session.execute(
            self._visible()
            .where(LedgerRow.business_date == business_date)
            .order_by(LedgerRow.product_id)
        ).scalars()
        return [LedgerRowDTO.from_row(row) for row in rows]

    def low_stock(self, business_date: date) -> list[LedgerRowDTO]:
        """Active rows of the date whose closing stock is at or below their minimum."""
        rows = self.session.execute(
            self._visible()
            .where(
                LedgerRow.business_date == business_date,
                LedgerRow.is_active.is_(True),
                LedgerRow.minimum_stock.is_not(None),
                LedgerRow.minimum_stock > 0,
                LedgerRow.closing_stock <= LedgerRow.minimum_stock,
            )
            .order_by(LedgerRow.product_id)
        ).scalars()
        return [LedgerRowDTO.from_row(row) for row in rows]

    def summary(self, business_date: date) -> DailySummary:
        rows = self.rows_for_date(business_date)
        totals = {
            name: sum((getattr(row, name) for row in rows), ZERO)
            for name in (
                "opening_stock",
                "goods_in",
                "reserved_out",
                "repack_out",
                "sample_out",
                "production_material_out",
                "closing_stock",
            )
        }
        return DailySummary(
            business_date=business_date,
            product_count=len(rows),
            status_counts=dict(Counter(row.stock_status for row in rows)),
            **totals,
        )
