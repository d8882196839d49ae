"""
Module: inventory_ledger.models.repacking_record
Responsibility: ORM model for one repacking conversion (source product into
    target product) and its computed ratio and loss figures.
Architecture position: Models.  Inherits TrackedBase.

Invariants enforced:
    - repacking_number is unique (RPK-{YYYYMMDD}-{seq}).
    - Links to exactly one repack_out and one repack_in transaction.  The
      foreign keys point both ways; the record's links are created after the
      transactions and may be set only once.
    - Conversion figures are fixed at INSERT.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import TrackedBase
from inventory_ledger.db.types import DocumentNumber, Percentage, Quantity, Ratio


class RepackingStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RepackingRecord(TrackedBase):
    """Conversion of a quantity of one product into another."""

    __tablename__ = "repacking_records"

    __table_args__ = (
        Index("idx_repacking_business_date", "business_date"),
        Index("idx_repacking_source_product", "source_product_id"),
        Index("idx_repacking_target_product", "target_product_id"),
    )

    repacking_number: Mapped[DocumentNumber] = mapped_column(nullable=False, unique=True)

    business_date: Mapped[date] = mapped_column(nullable=False)

    repacking_date: Mapped[datetime] = mapped_column(nullable=False)

    source_product_id: Mapped[int] = mapped_column(nullable=False)

    target_product_id: Mapped[int] = mapped_column(nullable=False)

    source_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    target_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    conversion_ratio: Mapped[Ratio] = mapped_column(nullable=False)

    expected_target_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    loss_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    loss_percentage: Mapped[Percentage] = mapped_column(nullable=False)

    status: Mapped[RepackingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RepackingStatus.COMPLETED,
    )

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    performed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    source_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey(
            "inventory_transactions.id",
            use_alter=True,
            name="fk_repacking_source_transaction",
        ),
        nullable=True,
    )

    target_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey(
            "inventory_transactions.id",
            use_alter=True,
            name="fk_repacking_target_transaction",
        ),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<RepackingRecord {self.repacking_number} "
            f"{self.source_product_id}x{self.source_quantity} -> "
            f"{self.target_product_id}x{self.target_quantity}>"
        )
