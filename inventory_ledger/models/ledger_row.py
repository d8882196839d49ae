"""
Module: inventory_ledger.models.ledger_row
Responsibility: ORM model for the daily inventory ledger -- one row per product
    per business date.
Architecture position: Models.  Inherits TrackedBase.  Products are referenced
    by integer id with NO foreign key (the catalog lives outside the ledger).

Invariants enforced:
    - (product_id, business_date) is unique.
    - The five movement accumulators are non-negative (CHECK constraints).
    - closing_stock is derived, never stored:
        opening_stock + goods_in - reserved_out - repack_out
                      - sample_out - production_material_out
      It is a hybrid property, so it is recomputed on every Python read and
      usable in SQL filters and ordering.

Failure modes:
    - IntegrityError on duplicate (product_id, business_date) -- the ledger
      store absorbs this when two writers race to create the same row.
    - IntegrityError on a negative accumulator (services validate first).

Audit relevance:
    Rows are never hard-deleted (db/immutability.py plus a PostgreSQL
    trigger); ``deleted_at`` is the soft-delete marker.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Index, Text, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import TrackedBase
from inventory_ledger.db.types import Quantity
from inventory_ledger.domain.stock_status import (
    StockLevel,
    classify_stock_level,
    stock_utilization,
)


class LedgerColumn(str, Enum):
    """
    Mutable quantity columns of a ledger row.

    ``closing_sign`` is the direction an increment of the column moves the
    closing stock.
    """

    OPENING_STOCK = "opening_stock"
    GOODS_IN = "goods_in"
    RESERVED_OUT = "reserved_out"
    REPACK_OUT = "repack_out"
    SAMPLE_OUT = "sample_out"
    PRODUCTION_MATERIAL_OUT = "production_material_out"

    @property
    def closing_sign(self) -> int:
        if self in (LedgerColumn.OPENING_STOCK, LedgerColumn.GOODS_IN):
            return 1
        return -1

    @property
    def is_accumulator(self) -> bool:
        return self is not LedgerColumn.OPENING_STOCK


ACCUMULATOR_COLUMNS: tuple[LedgerColumn, ...] = tuple(
    c for c in LedgerColumn if c.is_accumulator
)


class LedgerRow(TrackedBase):
    """
    Stock accounting row for one product on one business date.

    Contract:
        Callers mutate quantities only through LedgerStore, which locks the
        row and validates the result.  closing_stock is never assigned.

    Guarantees:
        - closing_stock always equals the accounting formula over the
          current column values.
        - stock_status follows classify_stock_level.
    """

    __tablename__ = "daily_inventory"

    __table_args__ = (
        UniqueConstraint("product_id", "business_date", name="uq_daily_inventory_product_date"),
        Index("idx_daily_inventory_business_date", "business_date"),
        Index("idx_daily_inventory_is_active", "is_active"),
        CheckConstraint("goods_in >= 0", name="ck_daily_inventory_goods_in"),
        CheckConstraint("reserved_out >= 0", name="ck_daily_inventory_reserved_out"),
        CheckConstraint("repack_out >= 0", name="ck_daily_inventory_repack_out"),
        CheckConstraint("sample_out >= 0", name="ck_daily_inventory_sample_out"),
        CheckConstraint(
            "production_material_out >= 0",
            name="ck_daily_inventory_production_material_out",
        ),
    )

    business_date: Mapped[date] = mapped_column(nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    # Carried-forward stock at the start of the business date
    opening_stock: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
        comment="Stock carried forward from the previous business date",
    )

    goods_in: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
        comment="Production, purchases, repack-in and sample returns",
    )

    reserved_out: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
        comment="Quantity reserved by sales orders",
    )

    repack_out: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
    )

    sample_out: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
    )

    production_material_out: Mapped[Quantity] = mapped_column(
        nullable=False, default=Decimal("0.00"),
        comment="Materials consumed by production batches",
    )

    minimum_stock: Mapped[Quantity | None] = mapped_column(nullable=True)

    maximum_stock: Mapped[Quantity | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @hybrid_property
    def closing_stock(self) -> Decimal:
        return (
            self.opening_stock
            + self.goods_in
            - self.reserved_out
            - self.repack_out
            - self.sample_out
            - self.production_material_out
        )

    @property
    def stock_status(self) -> StockLevel:
        return classify_stock_level(self.closing_stock, self.minimum_stock, self.maximum_stock)

    @property
    def stock_utilization(self) -> Decimal | None:
        return stock_utilization(self.closing_stock, self.maximum_stock)

    def quantity_of(self, column: LedgerColumn) -> Decimal:
        return getattr(self, column.value)

    def __repr__(self) -> str:
        return (
            f"<LedgerRow product={self.product_id} date={self.business_date} "
            f"closing={self.closing_stock}>"
        )
