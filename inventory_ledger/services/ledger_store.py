"""
LedgerStore -- load, create and mutate daily ledger rows.

Responsibility:
    Owns every write to ``daily_inventory``.  Rows are returned locked
    (``SELECT ... FOR UPDATE``) so the caller's check-then-mutate sequence is
    atomic with respect to other writers of the same (product, date).

Architecture position:
    Services -- called by TransactionRecorder and DailyRolloverService.

Invariants enforced:
    - A new row opens with the nearest earlier row's current closing stock,
      or 0 when the product has no earlier row (logged as a gap).
    - Accumulators never go negative.
    - Closing stock is never written; LedgerRow.closing_stock derives it.
    - Retired rows (deleted_at set) are skipped by every lookup and seed,
      and only rows carrying nothing of their own can be retired.

Failure modes:
    - IntegrityError on concurrent creation of the same row: absorbed with a
      savepoint and a locked re-read of the winner's row.
    - NegativeAccumulatorError if a delta would drive an accumulator < 0.
    - LedgerRowExistsError when registering an initial row that exists.
    - LedgerRowNotFoundError from ``require``, ``update_settings`` and
      ``retire_row``.
    - LedgerRowInUseError when retiring a row with transactions or stock.

Audit relevance:
    Every mutation stamps updated_by with the acting user.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_ledger.db.types import ZERO, to_quantity
from inventory_ledger.exceptions import (
    InsufficientStockError,
    LedgerRowExistsError,
    LedgerRowInUseError,
    LedgerRowNotFoundError,
    NegativeAccumulatorError,
)
from inventory_ledger.logging_config import get_logger
from inventory_ledger.models.inventory_transaction import InventoryTransaction
from inventory_ledger.models.ledger_row import ACCUMULATOR_COLUMNS, LedgerColumn, LedgerRow
from inventory_ledger.services.backdate_propagator import BackdatePropagator
from inventory_ledger.services.base import BaseService

logger = get_logger("services.ledger_store")

_UNSET = object()


class LedgerStore(BaseService[LedgerRow]):
    """
    Write-side access to ledger rows.

    Contract:
        All methods flush; none commit.  Rows returned by ``get_or_create``
        and ``require`` stay locked until the caller's transaction ends.

    Guarantees:
        - ``apply_delta`` returns the signed effect on closing stock, which
          the caller hands to BackdatePropagator.
    """

    def __init__(self, session: Session, propagator: BackdatePropagator | None = None):
        super().__init__(session)
        self._propagator = propagator or BackdatePropagator(session)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(
        self,
        product_id: int,
        business_date: date,
        *,
        lock: bool = False,
        include_retired: bool = False,
    ) -> LedgerRow | None:
        stmt = select(LedgerRow).where(
            LedgerRow.product_id == product_id,
            LedgerRow.business_date == business_date,
        )
        if not include_retired:
            stmt = stmt.where(LedgerRow.deleted_at.is_(None))
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_previous(
        self, product_id: int, business_date: date, *, lock: bool = False
    ) -> LedgerRow | None:
        """Nearest live row of the product dated strictly before ``business_date``."""
        stmt = (
            select(LedgerRow)
            .where(
                LedgerRow.product_id == product_id,
                LedgerRow.business_date < business_date,
                LedgerRow.deleted_at.is_(None),
            )
            .order_by(LedgerRow.business_date.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def require(self, product_id: int, business_date: date) -> LedgerRow:
        """
        Return the locked row, or raise.

        Raises:
            LedgerRowNotFoundError: No row for the product on that date.
        """
        row = self.find(product_id, business_date, lock=True)
        if row is None:
            raise LedgerRowNotFoundError(product_id, business_date)
        return row

    def seed_opening_stock(self, product_id: int, business_date: date) -> Decimal:
        """Opening stock a new row on ``business_date`` would get."""
        previous = self.find_previous(product_id, business_date)
        return previous.closing_stock if previous is not None else ZERO

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def get_or_create(self, product_id: int, business_date: date, actor_id: int) -> LedgerRow:
        """
        Return the locked row for (product, date), creating it if absent.

        A new row's opening stock is the current closing stock of the
        nearest earlier row (locked while read, so a concurrent backdated
        write cannot slip between the read and the insert).  Thresholds are
        carried over from that row.

        A retired row on the date is revived instead: it opens again with
        the nearest earlier row's closing stock.

        Postconditions:
            - The returned row exists in the database, is live and is locked.
        """
        row = self.find(product_id, business_date, lock=True, include_retired=True)
        if row is not None:
            if row.deleted_at is not None:
                previous = self.find_previous(product_id, business_date, lock=True)
                self._revive(
                    row,
                    previous.closing_stock if previous is not None else ZERO,
                    actor_id,
                )
            return row

        previous = self.find_previous(product_id, business_date, lock=True)
        if previous is None:
            opening = ZERO
            logger.warning(
                "ledger_gap_seeded_zero",
                extra={"product_id": product_id, "business_date": business_date},
            )
        else:
            opening = previous.closing_stock

        savepoint = self.session.begin_nested()
        try:
            row = self._new_row(
                product_id,
                business_date,
                opening_stock=opening,
                minimum_stock=previous.minimum_stock if previous is not None else None,
                maximum_stock=previous.maximum_stock if previous is not None else None,
                actor_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "ledger_row_creation_race",
                extra={"product_id": product_id, "business_date": business_date},
            )
            savepoint.rollback()
            row = self.find(product_id, business_date, lock=True)
            if row is None:
                raise
            return row

        logger.info(
            "ledger_row_created",
            extra={
                "product_id": product_id,
                "business_date": business_date,
                "opening_stock": opening,
                "seeded_from": previous.business_date if previous is not None else None,
            },
        )
        return row

    def register_row(
        self,
        product_id: int,
        business_date: date,
        opening_stock: Decimal,
        actor_id: int,
        *,
        minimum_stock: Decimal | None = None,
        maximum_stock: Decimal | None = None,
        notes: str | None = None,
    ) -> LedgerRow:
        """
        Explicitly create a row with a given opening stock.

        Used for onboarding a product or recording a physical count on a
        date with no row yet.  Rows already dated after ``business_date`` are
        shifted by the difference between the given opening stock and the
        value the row would have been seeded with.

        A retired row on the date is revived with the given values.

        Raises:
            LedgerRowExistsError: A live row for (product, date) already exists.
            InsufficientStockError: The lower opening stock would leave a
                later row negative.
            InvalidQuantityError: Malformed quantities.
        """
        opening = to_quantity(opening_stock, "opening_stock")
        minimum = to_quantity(minimum_stock, "minimum_stock") if minimum_stock is not None else None
        maximum = to_quantity(maximum_stock, "maximum_stock") if maximum_stock is not None else None

        existing = self.find(product_id, business_date, lock=True, include_retired=True)
        if existing is not None and existing.deleted_at is None:
            raise LedgerRowExistsError(product_id, business_date)

        previous = self.find_previous(product_id, business_date, lock=True)
        seeded = previous.closing_stock if previous is not None else ZERO
        if opening < seeded:
            later = self._propagator.lock_later_rows(product_id, business_date)
            if later:
                available = min(r.closing_stock for r in later)
                if available < seeded - opening:
                    raise InsufficientStockError(
                        product_id, business_date, seeded - opening, available
                    )

        if existing is not None:
            row = existing
            self._revive(row, opening, actor_id)
            row.minimum_stock = minimum
            row.maximum_stock = maximum
            row.notes = notes
            self.session.flush()
        else:
            row = self._new_row(
                product_id,
                business_date,
                opening_stock=opening,
                minimum_stock=minimum,
                maximum_stock=maximum,
                actor_id=actor_id,
                notes=notes,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(row)
                self.session.flush()
                savepoint.commit()
            except IntegrityError as exc:
                savepoint.rollback()
                raise LedgerRowExistsError(product_id, business_date) from exc

        shifted = self._propagator.propagate(product_id, business_date, opening - seeded, actor_id)
        logger.info(
            "ledger_row_registered",
            extra={
                "product_id": product_id,
                "business_date": business_date,
                "opening_stock": opening,
                "later_rows_shifted": shifted,
            },
        )
        return row

    def retire_row(
        self,
        product_id: int,
        business_date: date,
        actor_id: int,
        retired_at: datetime,
    ) -> LedgerRow:
        """
        Soft-delete a row that carries nothing of its own.

        Only a row without transactions whose closing stock equals what it
        was seeded with can go, so the rows around it stay continuous.  A
        retired row is invisible to lookups, seeding, propagation, stock
        checks and the read side until ``get_or_create`` or
        ``register_row`` revives it.

        Raises:
            LedgerRowNotFoundError: No live row on that date.
            LedgerRowInUseError: The row has transactions or its own stock.
        """
        row = self.require(product_id, business_date)

        has_transactions = self.session.execute(
            select(
                exists().where(
                    InventoryTransaction.product_id == product_id,
                    InventoryTransaction.business_date == business_date,
                )
            )
        ).scalar()
        if has_transactions:
            raise LedgerRowInUseError(product_id, business_date, "transactions recorded")

        carried = self.seed_opening_stock(product_id, business_date)
        if row.closing_stock != carried:
            raise LedgerRowInUseError(
                product_id,
                business_date,
                f"closing stock {row.closing_stock} differs from carried-over {carried}",
            )

        row.deleted_at = retired_at
        row.updated_by = actor_id
        self.session.flush()
        logger.info(
            "ledger_row_retired",
            extra={"product_id": product_id, "business_date": business_date},
        )
        return row

    def _revive(self, row: LedgerRow, opening_stock: Decimal, actor_id: int) -> None:
        row.deleted_at = None
        row.opening_stock = opening_stock
        for column in ACCUMULATOR_COLUMNS:
            setattr(row, column.value, ZERO)
        row.updated_by = actor_id
        self.session.flush()
        logger.info(
            "ledger_row_revived",
            extra={
                "product_id": row.product_id,
                "business_date": row.business_date,
                "opening_stock": opening_stock,
            },
        )

    def _new_row(
        self,
        product_id: int,
        business_date: date,
        *,
        opening_stock: Decimal,
        minimum_stock: Decimal | None,
        maximum_stock: Decimal | None,
        actor_id: int,
        notes: str | None = None,
    ) -> LedgerRow:
        return LedgerRow(
            product_id=product_id,
            business_date=business_date,
            opening_stock=opening_stock,
            goods_in=ZERO,
            reserved_out=ZERO,
            repack_out=ZERO,
            sample_out=ZERO,
            production_material_out=ZERO,
            minimum_stock=minimum_stock,
            maximum_stock=maximum_stock,
            is_active=True,
            notes=notes,
            created_by=actor_id,
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_delta(
        self,
        row: LedgerRow,
        column: LedgerColumn,
        delta: Decimal,
        actor_id: int,
    ) -> Decimal:
        """
        Add ``delta`` to one quantity column of a locked row.

        Args:
            row: Row previously returned by get_or_create/require.
            column: Column to change.  Accumulators must stay >= 0;
                opening_stock may take any value.
            delta: Signed amount to add.
            actor_id: Acting user.

        Returns:
            Signed change of the row's closing stock.

        Raises:
            NegativeAccumulatorError: If an accumulator would drop below 0.
        """
        new_value = row.quantity_of(column) + delta
        if column.is_accumulator and new_value < 0:
            raise NegativeAccumulatorError(row.product_id, row.business_date, column.value, new_value)

        setattr(row, column.value, new_value)
        row.updated_by = actor_id
        self.session.flush()

        logger.debug(
            "ledger_delta_applied",
            extra={
                "product_id": row.product_id,
                "business_date": row.business_date,
                "column": column.value,
                "delta": delta,
                "closing_stock": row.closing_stock,
            },
        )
        return delta * column.closing_sign

    def update_settings(
        self,
        product_id: int,
        business_date: date,
        actor_id: int,
        *,
        minimum_stock: Decimal | None | object = _UNSET,
        maximum_stock: Decimal | None | object = _UNSET,
        notes: str | None | object = _UNSET,
        is_active: bool | object = _UNSET,
    ) -> LedgerRow:
        """
        Change thresholds, notes or the active flag of an existing row.

        Quantities cannot be changed here; use the recorder operations.
        Arguments left unset keep their current value; ``None`` clears a
        threshold.
        """
        row = self.require(product_id, business_date)

        if minimum_stock is not _UNSET:
            row.minimum_stock = (
                to_quantity(minimum_stock, "minimum_stock") if minimum_stock is not None else None
            )
        if maximum_stock is not _UNSET:
            row.maximum_stock = (
                to_quantity(maximum_stock, "maximum_stock") if maximum_stock is not None else None
            )
        if notes is not _UNSET:
            row.notes = notes
        if is_active is not _UNSET:
            row.is_active = bool(is_active)

        row.updated_by = actor_id
        self.session.flush()
        return row
