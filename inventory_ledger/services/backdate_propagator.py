"""
BackdatePropagator -- forward a closing-stock change to later business dates.

Responsibility:
    When a mutation changes the closing stock of (product, D), every existing
    row of that product dated after D must open with the corrected figure.
    This service adds the delta to ``opening_stock`` of those rows in one
    bulk UPDATE.  Accumulators are never touched and nothing is replayed.

Architecture position:
    Services -- called by TransactionRecorder and LedgerStore inside the
    unit of work of the mutation that caused the change.

Invariants enforced:
    - After propagation, closing(D) == opening(next existing row) still
      holds for the product, given it held before.
    - Rows are locked in ascending business_date order before the UPDATE,
      so two overlapping propagations cannot deadlock on scan order.
    - Missing days are not fabricated.  A row created later is seeded from
      the nearest earlier row and so already includes the correction.
    - Retired rows (deleted_at set) are skipped; reviving one re-seeds it.

Failure modes:
    - Lock wait on later rows held by a concurrent writer.  Deadlocks, if
      any, surface as OperationalError and are retried by the recorder.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import select, update

from inventory_ledger.logging_config import get_logger
from inventory_ledger.models.ledger_row import LedgerRow
from inventory_ledger.services.base import BaseService

logger = get_logger("services.backdate_propagator")


class BackdatePropagator(BaseService[LedgerRow]):
    """
    Shifts opening stock of all later rows of one product.

    Callers lowering stock on D take the later rows from ``lock_later_rows``
    first and check every closing stock on them, since a shift that fits on
    D can still drive a later row negative.

    Non-goals:
        - Does not create missing rows.
        - Does not itself reject a shift that leaves a later row negative.
    """

    def lock_later_rows(self, product_id: int, after_date: date) -> list[LedgerRow]:
        """Live rows of the product dated after ``after_date``, locked, ascending by date."""
        return list(
            self.session.execute(
                select(LedgerRow)
                .where(
                    LedgerRow.product_id == product_id,
                    LedgerRow.business_date > after_date,
                    LedgerRow.deleted_at.is_(None),
                )
                .order_by(LedgerRow.business_date)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def propagate(
        self,
        product_id: int,
        from_date: date,
        delta: Decimal,
        actor_id: int,
    ) -> int:
        """
        Add ``delta`` to opening_stock of every row with business_date > from_date.

        Args:
            product_id: Product whose later rows are shifted.
            from_date: Business date of the mutated row (exclusive bound).
            delta: Signed change of the mutated row's closing stock.
            actor_id: User recorded as updated_by on shifted rows.

        Returns:
            Number of rows shifted (0 for a zero delta).
        """
        if delta == 0:
            return 0

        later_ids = [row.id for row in self.lock_later_rows(product_id, from_date)]
        if not later_ids:
            return 0

        self.session.execute(
            update(LedgerRow)
            .where(LedgerRow.id.in_(later_ids))
            .values(
                opening_stock=LedgerRow.opening_stock + delta,
                updated_by=actor_id,
            )
            .execution_options(synchronize_session="fetch")
        )

        logger.info(
            "backdate_propagated",
            extra={
                "product_id": product_id,
                "from_date": from_date,
                "delta": delta,
                "rows_affected": len(later_ids),
            },
        )
        return len(later_ids)
