"""
Module: inventory_ledger.selectors.sample_selector
Responsibility: Read-only queries over sample tracking records: lookup,
    outstanding samples and follow-up lists.
Architecture position: Selectors.  Imports models/ only.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select

from inventory_ledger.models.sample_tracking import (
    SamplePurpose,
    SampleStatus,
    SampleTrackingRecord,
)
from inventory_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class SampleDTO:
    id: int
    sample_number: str
    business_date: date
    sample_date: datetime
    product_id: int
    quantity: Decimal
    recipient_name: str
    purpose: SamplePurpose
    status: SampleStatus
    expected_return: bool
    follow_up_date: date | None
    return_quantity: Decimal | None
    converted_to_sale: bool
    order_id: int | None
    out_transaction_id: int | None
    return_transaction_id: int | None
    return_rate: Decimal

    @classmethod
    def from_model(cls, sample: SampleTrackingRecord) -> "SampleDTO":
        return cls(
            id=sample.id,
            sample_number=sample.sample_number,
            business_date=sample.business_date,
            sample_date=sample.sample_date,
            product_id=sample.product_id,
            quantity=sample.quantity,
            recipient_name=sample.recipient_name,
            purpose=SamplePurpose(sample.purpose),
            status=SampleStatus(sample.status),
            expected_return=sample.expected_return,
            follow_up_date=sample.follow_up_date,
            return_quantity=sample.return_quantity,
            converted_to_sale=sample.converted_to_sale,
            order_id=sample.order_id,
            out_transaction_id=sample.out_transaction_id,
            return_transaction_id=sample.return_transaction_id,
            return_rate=sample.return_rate,
        )


class SampleSelector(BaseSelector[SampleTrackingRecord]):
    """Selector for distributed samples."""

    def get(self, sample_tracking_id: int) -> SampleDTO | None:
        sample = self.session.get(SampleTrackingRecord, sample_tracking_id)
        return SampleDTO.from_model(sample) if sample is not None else None

    def by_number(self, sample_number: str) -> SampleDTO | None:
        sample = self.session.execute(
            select(SampleTrackingRecord).where(SampleTrackingRecord.sample_number == sample_number)
        ).scalar_one_or_none()
        return SampleDTO.from_model(sample) if sample is not None else None

    def outstanding(self, product_id: int | None = None) -> list[SampleDTO]:
        """Samples still in DISTRIBUTED status, oldest first."""
        stmt = select(SampleTrackingRecord).where(
            SampleTrackingRecord.status == SampleStatus.DISTRIBUTED.value
        )
        if product_id is not None:
            stmt = stmt.where(SampleTrackingRecord.product_id == product_id)
        rows = self.session.execute(
            stmt.order_by(SampleTrackingRecord.business_date, SampleTrackingRecord.id)
        ).scalars()
        return [SampleDTO.from_model(sample) for sample in rows]

    def due_for_follow_up(self, today: date) -> list[SampleDTO]:
        """Distributed samples whose follow-up date is on or before ``today``."""
        rows = self.session.execute(
            select(SampleTrackingRecord)
            .where(
                SampleTrackingRecord.status == SampleStatus.DISTRIBUTED.value,
                SampleTrackingRecord.follow_up_date.is_not(None),
                SampleTrackingRecord.follow_up_date <= today,
            )
            .order_by(SampleTrackingRecord.follow_up_date, SampleTrackingRecord.id)
        ).scalars()
        return [SampleDTO.from_model(sample) for sample in rows]
