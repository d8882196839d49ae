"""
DailyRolloverService -- open the ledger rows of a new business day.

Responsibility:
    Called once per day by an external scheduler (see
    ``scripts/open_business_day.py``).  Ensures every product that has
    ledger history gets a row for the new date, opened with the closing
    stock of its nearest earlier row.

Architecture position:
    Services -- thin wrapper around LedgerStore.get_or_create.

Invariants enforced:
    - Idempotent: rows that already exist are returned unchanged.
    - Products are processed in ascending id, matching the recorder's lock
      order.
"""

from datetime import date

from sqlalchemy import select

from inventory_ledger.domain.product_reference import ProductReference
from inventory_ledger.logging_config import LogContext, get_logger
from inventory_ledger.models.ledger_row import LedgerRow
from inventory_ledger.services.base import BaseService
from inventory_ledger.services.ledger_store import LedgerStore

logger = get_logger("services.rollover")


class DailyRolloverService(BaseService[LedgerRow]):
    """
    Opens business days.

    Non-goals:
        - Does not backfill skipped days; a gap stays a gap and the next row
          is seeded from the nearest earlier one.
    """

    def __init__(self, session, products: ProductReference | None = None):
        super().__init__(session)
        self._products = products
        self._store = LedgerStore(session)

    def products_with_history(self, business_date: date) -> list[int]:
        """Active product ids with at least one row dated before ``business_date``."""
        return list(
            self.session.execute(
                select(LedgerRow.product_id)
                .where(
                    LedgerRow.business_date < business_date,
                    LedgerRow.is_active.is_(True),
                    LedgerRow.deleted_at.is_(None),
                )
                .distinct()
                .order_by(LedgerRow.product_id)
            ).scalars()
        )

    def open_business_day(
        self,
        business_date: date,
        actor_id: int,
        product_ids: list[int] | None = None,
    ) -> list[LedgerRow]:
        """
        Get or create the row of ``business_date`` for each product.

        Args:
            business_date: Day to open.
            actor_id: User (or system account) recorded as creator.
            product_ids: Restrict to these products.  Defaults to every
                product with earlier history.

        Returns:
            The rows of ``business_date``, ordered by product id.
        """
        candidates = sorted(set(product_ids)) if product_ids is not None else (
            self.products_with_history(business_date)
        )

        rows = []
        skipped = []
        with LogContext.bind(
            operation="open_business_day",
            actor_id=actor_id,
            business_date=business_date.isoformat(),
        ):
            for product_id in candidates:
                if self._products is not None:
                    info = self._products.get_product(product_id)
                    if info is None or not info.is_active:
                        skipped.append(product_id)
                        continue
                rows.append(self._store.get_or_create(product_id, business_date, actor_id))

            logger.info(
                "business_day_opened",
                extra={
                    "rows": len(rows),
                    "skipped_products": skipped,
                },
            )
        return rows
