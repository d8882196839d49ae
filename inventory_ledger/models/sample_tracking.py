"""
Module: inventory_ledger.models.sample_tracking
Responsibility: ORM model for one sample distribution event and its follow-up
    lifecycle (returned, converted to a sale, or closed as lost/damaged).
Architecture position: Models.  Inherits TrackedBase.

Invariants enforced:
    - sample_number is unique (SMP-{YYYYMMDD}-{seq}).
    - Status transitions start at DISTRIBUTED; RETURNED, CONVERTED and CLOSED
      are terminal.
    - out_transaction_id is set once at distribution; return_transaction_id
      is set at most once, on a stock-returning return.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.db.base import TrackedBase
from inventory_ledger.db.types import DocumentNumber, Quantity


class SamplePurpose(str, Enum):
    PROMOTION = "promotion"
    DEMO = "demo"
    QUALITY_TEST = "quality_test"
    PARTNERSHIP = "partnership"
    EVENT = "event"
    OTHER = "other"


class SampleStatus(str, Enum):
    DISTRIBUTED = "distributed"
    RETURNED = "returned"
    CONVERTED = "converted"
    CLOSED = "closed"


class SampleReturnOutcome(str, Enum):
    """How a distributed sample came back, as reported by the caller."""

    RETURNED = "returned"
    LOST = "lost"
    DAMAGED = "damaged"


class SampleTrackingRecord(TrackedBase):
    """One sample handed to a recipient."""

    __tablename__ = "sample_tracking"

    __table_args__ = (
        Index("idx_sample_product", "product_id"),
        Index("idx_sample_status", "status"),
        Index("idx_sample_follow_up", "follow_up_date"),
    )

    sample_number: Mapped[DocumentNumber] = mapped_column(nullable=False, unique=True)

    business_date: Mapped[date] = mapped_column(nullable=False)

    sample_date: Mapped[datetime] = mapped_column(nullable=False)

    product_id: Mapped[int] = mapped_column(nullable=False)

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)

    recipient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    recipient_email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    purpose: Mapped[SamplePurpose] = mapped_column(String(30), nullable=False)

    event_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    expected_return: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    follow_up_date: Mapped[date | None] = mapped_column(nullable=True)

    return_date: Mapped[datetime | None] = mapped_column(nullable=True)

    return_quantity: Mapped[Quantity | None] = mapped_column(nullable=True)

    converted_to_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    order_id: Mapped[int | None] = mapped_column(nullable=True)

    status: Mapped[SampleStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SampleStatus.DISTRIBUTED,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    distributed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    out_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey(
            "inventory_transactions.id",
            use_alter=True,
            name="fk_sample_out_transaction",
        ),
        nullable=True,
    )

    return_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey(
            "inventory_transactions.id",
            use_alter=True,
            name="fk_sample_return_transaction",
        ),
        nullable=True,
    )

    def is_overdue_for_follow_up(self, today: date) -> bool:
        return (
            self.follow_up_date is not None
            and self.follow_up_date < today
            and self.status == SampleStatus.DISTRIBUTED
        )

    @property
    def return_rate(self) -> Decimal:
        """Returned quantity as a percentage of the distributed quantity."""
        if not self.return_quantity or not self.quantity:
            return Decimal("0.00")
        return (self.return_quantity / self.quantity * 100).quantize(Decimal("0.01"))

    def __repr__(self) -> str:
        return f"<SampleTrackingRecord {self.sample_number} {self.status}>"
