"""
Module: inventory_ledger.models.inventory_transaction
Responsibility: ORM model for the append-only movement history.  Every ledger
    mutation writes exactly one InventoryTransaction per affected ledger row.
Architecture position: Models.  Inherits TrackedBase.

Invariants enforced:
    - transaction_number is unique ({PREFIX}-{YYYYMMDD}-{seq}).
    - quantity is the signed effect on closing stock of business_date:
      IN types positive, OUT types negative, adjustment is the signed delta,
      and a cancelled sale (reversal) carries the quantity given back.
    - Rows are never updated or deleted after INSERT (db/immutability.py and
      a PostgreSQL trigger).  Only updated_at/updated_by may change.

Failure modes:
    - IntegrityError on duplicate transaction_number.  The recorder retries
      the whole unit of work on this.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import TrackedBase
from inventory_ledger.db.types import DocumentNumber, Quantity, ShortCode


class TransactionType(str, Enum):
    """Kind of stock movement."""

    PRODUCTION_IN = "production_in"
    PURCHASE = "purchase"
    REPACK_IN = "repack_in"
    SAMPLE_RETURN = "sample_return"
    SALE = "sale"
    REPACK_OUT = "repack_out"
    SAMPLE_OUT = "sample_out"
    PRODUCTION_MATERIAL_OUT = "production_material_out"
    WASTE = "waste"
    ADJUSTMENT = "adjustment"


STOCK_IN_TYPES = frozenset({
    TransactionType.PRODUCTION_IN,
    TransactionType.PURCHASE,
    TransactionType.REPACK_IN,
    TransactionType.SAMPLE_RETURN,
})

STOCK_OUT_TYPES = frozenset({
    TransactionType.SALE,
    TransactionType.REPACK_OUT,
    TransactionType.SAMPLE_OUT,
    TransactionType.PRODUCTION_MATERIAL_OUT,
    TransactionType.WASTE,
})


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InventoryTransaction(TrackedBase):
    """
    Immutable record of one stock movement.

    Guarantees:
        - balance_after is the closing stock of (product_id, business_date)
          immediately after this movement was applied.
    """

    __tablename__ = "inventory_transactions"

    __table_args__ = (
        Index("idx_inv_txn_product_date", "product_id", "business_date"),
        Index("idx_inv_txn_type", "transaction_type"),
        Index("idx_inv_txn_order", "order_id"),
        Index("idx_inv_txn_batch", "production_batch_number"),
    )

    transaction_number: Mapped[DocumentNumber] = mapped_column(
        nullable=False,
        unique=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(40),
        nullable=False,
    )

    # Ledger date the movement was applied to
    business_date: Mapped[date] = mapped_column(nullable=False)

    # Wall-clock time the movement was recorded
    transaction_date: Mapped[datetime] = mapped_column(nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    balance_after: Mapped[Quantity] = mapped_column(nullable=False)

    order_id: Mapped[int | None] = mapped_column(nullable=True)

    repacking_id: Mapped[int | None] = mapped_column(
        ForeignKey("repacking_records.id"),
        nullable=True,
    )

    sample_tracking_id: Mapped[int | None] = mapped_column(
        ForeignKey("sample_tracking.id"),
        nullable=True,
    )

    production_batch_number: Mapped[ShortCode | None] = mapped_column(nullable=True)

    reference_number: Mapped[ShortCode | None] = mapped_column(nullable=True)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    performed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def is_stock_in(self) -> bool:
        return self.quantity > 0

    @property
    def is_stock_out(self) -> bool:
        return self.quantity < 0

    @property
    def absolute_quantity(self) -> Decimal:
        return abs(self.quantity)

    @property
    def is_reversal(self) -> bool:
        return (
            self.transaction_type == TransactionType.SALE
            and self.status == TransactionStatus.CANCELLED
        )

    def __repr__(self) -> str:
        return f"<InventoryTransaction {self.transaction_number} {self.transaction_type} {self.quantity}>"
