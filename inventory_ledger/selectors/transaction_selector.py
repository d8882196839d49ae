"""
Module: inventory_ledger.selectors.transaction_selector
Responsibility: Read-only access to the append-only transaction log.
Architecture position: Selectors.  Imports models/ only.

Invariants enforced:
    - Results are ordered by business_date, then id (insertion order), so a
      product's history reads the way it was written.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select

from inventory_ledger.models.inventory_transaction import (
    InventoryTransaction,
    TransactionStatus,
    TransactionType,
)
from inventory_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransactionDTO:
    id: int
    transaction_number: str
    transaction_type: TransactionType
    status: TransactionStatus
    business_date: date
    transaction_date: datetime
    product_id: int
    quantity: Decimal
    balance_after: Decimal
    order_id: int | None
    repacking_id: int | None
    sample_tracking_id: int | None
    production_batch_number: str | None
    reference_number: str | None
    reason: str | None
    created_by: int

    @classmethod
    def from_model(cls, txn: InventoryTransaction) -> "TransactionDTO":
        return cls(
            id=txn.id,
            transaction_number=txn.transaction_number,
            transaction_type=TransactionType(txn.transaction_type),
            status=TransactionStatus(txn.status),
            business_date=txn.business_date,
            transaction_date=txn.transaction_date,
            product_id=txn.product_id,
            quantity=txn.quantity,
            balance_after=txn.balance_after,
            order_id=txn.order_id,
            repacking_id=txn.repacking_id,
            sample_tracking_id=txn.sample_tracking_id,
            production_batch_number=txn.production_batch_number,
            reference_number=txn.reference_number,
            reason=txn.reason,
            created_by=txn.created_by,
        )


class TransactionSelector(BaseSelector[InventoryTransaction]):
    """Selector for inventory transactions."""

    def _ordered(self, stmt) -> list[TransactionDTO]:
        rows = self.session.execute(
            stmt.order_by(InventoryTransaction.business_date, InventoryTransaction.id)
        ).scalars()
        return [TransactionDTO.from_model(txn) for txn in rows]

    def by_number(self, transaction_number: str) -> TransactionDTO | None:
        txn = self.session.execute(
            select(InventoryTransaction).where(
                InventoryTransaction.transaction_number == transaction_number
            )
        ).scalar_one_or_none()
        return TransactionDTO.from_model(txn) if txn is not None else None

    def for_order(self, order_id: int) -> list[TransactionDTO]:
        """Sale and sale-reversal transactions of one order."""
        return self._ordered(
            select(InventoryTransaction).where(InventoryTransaction.order_id == order_id)
        )

    def for_product(
        self,
        product_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
        types: Iterable[TransactionType] | None = None,
    ) -> list[TransactionDTO]:
        stmt = select(InventoryTransaction).where(InventoryTransaction.product_id == product_id)
        if start_date is not None:
            stmt = stmt.where(InventoryTransaction.business_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(InventoryTransaction.business_date <= end_date)
        if types is not None:
            stmt = stmt.where(
                InventoryTransaction.transaction_type.in_([TransactionType(t).value for t in types])
            )
        return self._ordered(stmt)

    def for_repacking(self, repacking_id: int) -> list[TransactionDTO]:
        return self._ordered(
            select(InventoryTransaction).where(InventoryTransaction.repacking_id == repacking_id)
        )

    def for_sample(self, sample_tracking_id: int) -> list[TransactionDTO]:
        return self._ordered(
            select(InventoryTransaction).where(
                InventoryTransaction.sample_tracking_id == sample_tracking_id
            )
        )
