"""
TransactionRecorder -- every stock movement as one atomic unit of work.

Responsibility:
    Turns business operations (production, purchase, sale, sale reversal,
    repacking, sample distribution and return, material consumption, waste,
    manual adjustment) into signed ledger mutations plus immutable
    InventoryTransaction records.

Architecture position:
    Services -- the orchestrator.  Uses LedgerStore, BackdatePropagator,
    SequenceService and the pure repacking calculator.  Callers own the
    outer transaction; each operation runs inside its own SAVEPOINT.

Invariants enforced:
    - No oversell: stock-consuming operations check the closing stock of the
      locked ledger row and of every later row of the product before
      mutating, so neither the date nor any later date goes negative.
    - All-or-nothing: a failed check or write rolls back the savepoint, so
      no ledger row, record or transaction of the operation survives.
    - closing(D) == opening(next row) is preserved: every mutation's effect
      on closing stock is forwarded to later-dated rows.
    - Lock order: ledger rows of the operation date (ascending product id),
      later rows of each product (ascending date), then record counters
      (RPK/SMP), then the TRX counter.  Deadlocks left over are retried.

Failure modes:
    - ProductNotFoundError / ProductInactiveError from the product reference.
    - InsufficientStockError, InvalidQuantityError, InvalidRepackingError,
      ReversalExceedsReservedError, SampleStateError, LedgerRowNotFoundError,
      SampleNotFoundError: raised before anything is kept.
    - Unique-key races, deadlocks and serialization failures: the whole unit
      is retried up to RetryPolicy.max_attempts with randomized backoff, then
      TransactionNumberConflictError.
    - Any other storage failure: LedgerStorageError (fatal).

Audit relevance:
    Every operation logs one ``*_recorded`` event with the transaction
    numbers it wrote, or one ``*_rejected`` event carrying the error code
    and figures.  The transaction rows are the audit trail; they are
    never updated or deleted.
"""

import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_ledger.config import LedgerSettings
from inventory_ledger.db.types import to_positive_quantity, to_quantity
from inventory_ledger.domain.clock import Clock, SystemClock
from inventory_ledger.domain.product_reference import ProductReference
from inventory_ledger.domain.repacking import RepackingCalculation, calculate_repacking
from inventory_ledger.exceptions import (
    InsufficientStockError,
    InvalidOperationError,
    InvalidQuantityError,
    InvalidRepackingError,
    InventoryLedgerError,
    LedgerStorageError,
    ReversalExceedsReservedError,
    SampleNotFoundError,
    SampleStateError,
    TransactionNumberConflictError,
)
from inventory_ledger.logging_config import LogContext, get_logger
from inventory_ledger.models.inventory_transaction import (
    InventoryTransaction,
    TransactionStatus,
    TransactionType,
)
from inventory_ledger.models.ledger_row import LedgerColumn, LedgerRow
from inventory_ledger.models.repacking_record import RepackingRecord
from inventory_ledger.models.sample_tracking import (
    SamplePurpose,
    SampleReturnOutcome,
    SampleStatus,
    SampleTrackingRecord,
)
from inventory_ledger.services.backdate_propagator import BackdatePropagator
from inventory_ledger.services.base import BaseService
from inventory_ledger.services.ledger_store import LedgerStore
from inventory_ledger.services.retry_policy import RetryPolicy, is_retryable_conflict
from inventory_ledger.services.sequence_service import SequenceService

logger = get_logger("services.transaction_recorder")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerMutationResult:
    """One transaction written against one ledger row."""

    transaction_id: int
    transaction_number: str
    transaction_type: TransactionType
    status: TransactionStatus
    product_id: int
    business_date: date
    quantity: Decimal
    balance_after: Decimal
    rows_propagated: int


@dataclass(frozen=True)
class RepackingResult:
    repacking_id: int
    repacking_number: str
    calculation: RepackingCalculation
    source: LedgerMutationResult
    target: LedgerMutationResult


@dataclass(frozen=True)
class SampleOutResult:
    sample_tracking_id: int
    sample_number: str
    transaction: LedgerMutationResult


@dataclass(frozen=True)
class SampleReturnResult:
    sample_tracking_id: int
    status: SampleStatus
    returned_quantity: Decimal
    transaction: LedgerMutationResult | None


@dataclass(frozen=True)
class MaterialLine:
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class MaterialConsumptionResult:
    batch_number: str
    transactions: tuple[LedgerMutationResult, ...]


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------


class TransactionRecorder(BaseService[InventoryTransaction]):
    """
    Records stock movements against the daily ledger.

    Contract:
        Each public ``record_*`` / ``reverse_sale`` / ``adjust_stock``
        method either completes fully inside the caller's transaction or
        raises with no effect.  The caller commits.

    Guarantees:
        - Quantities are validated as positive Decimals with at most 2
          decimal places before any database work.
        - Returned results are frozen dataclasses, safe to use after the
          session closes.

    Non-goals:
        - Permission checks and notification delivery belong to callers.
        - Does not commit.
    """

    def __init__(
        self,
        session: Session,
        products: ProductReference,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        """
        Args:
            session: SQLAlchemy session; the caller owns its transaction.
            products: Product reference used to validate product ids.
            clock: Time source (defaults to SystemClock in the configured
                business timezone).
            settings: Numbering prefixes and retry defaults.
            retry_policy: Overrides the policy derived from settings.
            sleep: Backoff sleep function (injectable for tests).
            rng: Random source for backoff jitter.
        """
        super().__init__(session)
        settings = settings or LedgerSettings()
        self._products = products
        self._clock = clock or SystemClock(settings.timezone)
        self._numbering = settings.numbering
        self._retry = retry_policy or RetryPolicy.from_settings(settings.retry)
        self._sleep = sleep
        self._rng = rng
        self._propagator = BackdatePropagator(session)
        self._store = LedgerStore(session, self._propagator)
        self._sequences = SequenceService(
            session,
            sources={
                self._numbering.transaction_prefix: InventoryTransaction.transaction_number,
                self._numbering.repacking_prefix: RepackingRecord.repacking_number,
                self._numbering.sample_prefix: SampleTrackingRecord.sample_number,
            },
            width=self._numbering.sequence_width,
        )

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run_unit(
        self,
        operation: str,
        actor_id: int,
        work: Callable[[], T],
        describe: Callable[[T], dict],
        **context,
    ) -> T:
        """
        Run ``work`` in a SAVEPOINT, retrying transient write conflicts.

        On success logs ``<operation>_recorded`` with the fields returned by
        ``describe(result)``.  A rejected operation (any InventoryLedgerError)
        is logged as ``<operation>_rejected`` with the error attached.

        Raises:
            TransactionNumberConflictError: Conflicts persisted for every attempt.
            LedgerStorageError: Non-retryable storage failure.
        """
        with LogContext.bind(operation=operation, actor_id=actor_id, **context):
            attempt = 0
            while True:
                attempt += 1
                savepoint = self.session.begin_nested()
                try:
                    result = work()
                    savepoint.commit()
                except Exception as exc:
                    savepoint.rollback()
                    if isinstance(exc, DBAPIError) and is_retryable_conflict(exc):
                        if attempt >= self._retry.max_attempts:
                            logger.error(
                                "unit_of_work_conflict_exhausted",
                                extra={"attempts": attempt},
                            )
                            raise TransactionNumberConflictError(operation, attempt) from exc
                        delay = self._retry.backoff_seconds(self._rng)
                        logger.warning(
                            "unit_of_work_retry",
                            extra={
                                "attempt": attempt,
                                "max_attempts": self._retry.max_attempts,
                                "delay_ms": round(delay * 1000),
                                "conflict": type(exc.orig).__name__,
                            },
                        )
                        self._sleep(delay)
                        continue
                    if isinstance(exc, SQLAlchemyError):
                        logger.error("unit_of_work_storage_failure", exc_info=True)
                        raise LedgerStorageError(operation, str(exc)) from exc
                    if isinstance(exc, InventoryLedgerError):
                        logger.info(f"{operation}_rejected", exc_info=True)
                    raise
                logger.info(f"{operation}_recorded", extra=describe(result))
                return result

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _available(self, row: LedgerRow) -> Decimal:
        """
        Stock that can leave ``row`` without any row of the product going negative.

        A decrease on D is forwarded to every later row, so the figure is the
        smallest closing stock of D and the later rows.  The later rows are
        locked here and stay locked for the propagation that follows.
        """
        later = self._propagator.lock_later_rows(row.product_id, row.business_date)
        return min([row.closing_stock, *(r.closing_stock for r in later)])

    def _ensure_available(self, row: LedgerRow, requested: Decimal) -> None:
        available = self._available(row)
        if available < requested:
            raise InsufficientStockError(row.product_id, row.business_date, requested, available)

    def _mutate(self, row: LedgerRow, column: LedgerColumn, delta: Decimal, actor_id: int) -> int:
        """Apply ``delta`` to ``column`` and forward the closing effect.  Returns rows shifted."""
        effect = self._store.apply_delta(row, column, delta, actor_id)
        return self._propagator.propagate(row.product_id, row.business_date, effect, actor_id)

    def _write_transaction(
        self,
        row: LedgerRow,
        transaction_type: TransactionType,
        quantity: Decimal,
        actor_id: int,
        *,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        order_id: int | None = None,
        repacking_id: int | None = None,
        sample_tracking_id: int | None = None,
        production_batch_number: str | None = None,
        reference_number: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        performed_by: str | None = None,
    ) -> InventoryTransaction:
        number = self._sequences.next_number(
            self._numbering.transaction_prefix, row.business_date
        )
        txn = InventoryTransaction(
            transaction_number=number,
            transaction_type=transaction_type,
            business_date=row.business_date,
            transaction_date=self._clock.now(),
            product_id=row.product_id,
            quantity=quantity,
            balance_after=row.closing_stock,
            order_id=order_id,
            repacking_id=repacking_id,
            sample_tracking_id=sample_tracking_id,
            production_batch_number=production_batch_number,
            reference_number=reference_number,
            status=status,
            reason=reason,
            notes=notes,
            performed_by=performed_by,
            created_by=actor_id,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    @staticmethod
    def _result(txn: InventoryTransaction, rows_propagated: int) -> LedgerMutationResult:
        return LedgerMutationResult(
            transaction_id=txn.id,
            transaction_number=txn.transaction_number,
            transaction_type=TransactionType(txn.transaction_type),
            status=TransactionStatus(txn.status),
            product_id=txn.product_id,
            business_date=txn.business_date,
            quantity=txn.quantity,
            balance_after=txn.balance_after,
            rows_propagated=rows_propagated,
        )

    def _lock_sample(self, sample_tracking_id: int) -> SampleTrackingRecord:
        sample = self.session.execute(
            select(SampleTrackingRecord)
            .where(SampleTrackingRecord.id == sample_tracking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sample is None:
            raise SampleNotFoundError(sample_tracking_id)
        return sample

    def _simple_movement(
        self,
        operation: str,
        product_id: int,
        business_date: date,
        column: LedgerColumn,
        quantity: Decimal,
        transaction_type: TransactionType,
        actor_id: int,
        *,
        required: Decimal | None,
        **transaction_fields,
    ) -> LedgerMutationResult:
        """Single-row movement: lock, check ``required`` stock, mutate, propagate, record."""
        self._products.require_active(product_id)
        signed = quantity * column.closing_sign

        def work() -> LedgerMutationResult:
            row = self._store.get_or_create(product_id, business_date, actor_id)
            if required is not None:
                self._ensure_available(row, required)
            propagated = self._mutate(row, column, quantity, actor_id)
            txn = self._write_transaction(row, transaction_type, signed, actor_id, **transaction_fields)
            return self._result(txn, propagated)

        return self._run_unit(
            operation,
            actor_id,
            work,
            lambda result: {
                "transaction_number": result.transaction_number,
                "quantity": result.quantity,
                "balance_after": result.balance_after,
                "rows_propagated": result.rows_propagated,
            },
            product_id=product_id,
            business_date=business_date.isoformat(),
        )

    # ------------------------------------------------------------------
    # Stock in
    # ------------------------------------------------------------------

    def record_production(
        self,
        product_id: int,
        quantity: Decimal,
        batch_number: str,
        business_date: date,
        *,
        actor_id: int,
        notes: str | None = None,
        performed_by: str | None = None,
    ) -> LedgerMutationResult:
        """
        Record finished goods coming off a production batch.

        ``goods_in += quantity``.  No stock check.
        """
        qty = to_positive_quantity(quantity)
        return self._simple_movement(
            "production",
            product_id,
            business_date,
            LedgerColumn.GOODS_IN,
            qty,
            TransactionType.PRODUCTION_IN,
            actor_id,
            required=None,
            production_batch_number=batch_number,
            notes=notes,
            performed_by=performed_by,
        )

    def record_purchase(
        self,
        product_id: int,
        quantity: Decimal,
        business_date: date,
        *,
        actor_id: int,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> LedgerMutationResult:
        """Record purchased stock received.  ``goods_in += quantity``."""
        qty = to_positive_quantity(quantity)
        return self._simple_movement(
            "purchase",
            product_id,
            business_date,
            LedgerColumn.GOODS_IN,
            qty,
            TransactionType.PURCHASE,
            actor_id,
            required=None,
            reference_number=reference_number,
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(
        self,
        product_id: int,
        quantity: Decimal,
        order_id: int,
        invoice_date: date,
        *,
        actor_id: int,
        notes: str | None = None,
    ) -> LedgerMutationResult:
        """
        Reserve stock for a sales order.

        The ledger date is the order's invoice date, which may be in the
        future.  ``reserved_out += quantity``.

        Raises:
            InsufficientStockError: closing stock of invoice_date, or of any
                later row, is below quantity.
        """
        qty = to_positive_quantity(quantity)
        return self._simple_movement(
            "sale",
            product_id,
            invoice_date,
            LedgerColumn.RESERVED_OUT,
            qty,
            TransactionType.SALE,
            actor_id,
            required=qty,
            order_id=order_id,
            notes=notes,
        )

    def reverse_sale(
        self,
        order_id: int,
        product_id: int,
        quantity: Decimal,
        invoice_date: date,
        *,
        actor_id: int,
        reason: str | None = None,
    ) -> LedgerMutationResult:
        """
        Release stock reserved by a cancelled order.

        ``reserved_out -= quantity``.  The original sale transaction is left
        untouched; a new sale transaction with status CANCELLED and a
        positive quantity records the reversal.

        Raises:
            LedgerRowNotFoundError: No ledger row on invoice_date.
            ReversalExceedsReservedError: reserved_out < quantity.
        """
        qty = to_positive_quantity(quantity)
        self._products.require_active(product_id)

        def work() -> LedgerMutationResult:
            row = self._store.require(product_id, invoice_date)
            if row.reserved_out < qty:
                raise ReversalExceedsReservedError(product_id, invoice_date, qty, row.reserved_out)
            propagated = self._mutate(row, LedgerColumn.RESERVED_OUT, -qty, actor_id)
            txn = self._write_transaction(
                row,
                TransactionType.SALE,
                qty,
                actor_id,
                status=TransactionStatus.CANCELLED,
                order_id=order_id,
                reason=reason,
            )
            return self._result(txn, propagated)

        return self._run_unit(
            "sale_reversal",
            actor_id,
            work,
            lambda result: {
                "order_id": order_id,
                "transaction_number": result.transaction_number,
                "quantity": result.quantity,
                "balance_after": result.balance_after,
            },
            product_id=product_id,
            business_date=invoice_date.isoformat(),
        )

    # ------------------------------------------------------------------
    # Repacking
    # ------------------------------------------------------------------

    def record_repacking(
        self,
        source_product_id: int,
        source_quantity: Decimal,
        target_product_id: int,
        target_quantity: Decimal,
        business_date: date,
        *,
        actor_id: int,
        reason: str | None = None,
        notes: str | None = None,
        performed_by: str | None = None,
    ) -> RepackingResult:
        """
        Convert stock of one product into another.

        ``repack_out(source) += source_quantity`` and
        ``goods_in(target) += target_quantity``, with a RepackingRecord and
        one repack_out plus one repack_in transaction linked both ways.

        Raises:
            InvalidRepackingError: Same product, or non-positive quantities.
            InsufficientStockError: closing stock of the source on business_date,
                or on any later row, is below source_quantity.
        """
        if source_product_id == target_product_id:
            raise InvalidRepackingError("source and target product must differ")
        try:
            source_qty = to_positive_quantity(source_quantity, "source_quantity")
            target_qty = to_positive_quantity(target_quantity, "target_quantity")
        except InvalidQuantityError as exc:
            raise InvalidRepackingError(str(exc)) from exc
        calculation = calculate_repacking(source_qty, target_qty)

        self._products.require_active(source_product_id)
        self._products.require_active(target_product_id)

        def work() -> RepackingResult:
            rows = {
                pid: self._store.get_or_create(pid, business_date, actor_id)
                for pid in sorted((source_product_id, target_product_id))
            }
            source_row = rows[source_product_id]
            target_row = rows[target_product_id]

            self._ensure_available(source_row, source_qty)
            source_propagated = self._mutate(source_row, LedgerColumn.REPACK_OUT, source_qty, actor_id)
            target_propagated = self._mutate(target_row, LedgerColumn.GOODS_IN, target_qty, actor_id)

            record = RepackingRecord(
                repacking_number=self._sequences.next_number(
                    self._numbering.repacking_prefix, business_date
                ),
                business_date=business_date,
                repacking_date=self._clock.now(),
                source_product_id=source_product_id,
                target_product_id=target_product_id,
                source_quantity=source_qty,
                target_quantity=target_qty,
                conversion_ratio=calculation.conversion_ratio,
                expected_target_quantity=calculation.expected_target_quantity,
                loss_quantity=calculation.loss_quantity,
                loss_percentage=calculation.loss_percentage,
                reason=reason,
                notes=notes,
                performed_by=performed_by,
                created_by=actor_id,
            )
            self.session.add(record)
            self.session.flush()

            out_txn = self._write_transaction(
                source_row,
                TransactionType.REPACK_OUT,
                -source_qty,
                actor_id,
                repacking_id=record.id,
                reason=reason,
                performed_by=performed_by,
            )
            in_txn = self._write_transaction(
                target_row,
                TransactionType.REPACK_IN,
                target_qty,
                actor_id,
                repacking_id=record.id,
                reason=reason,
                performed_by=performed_by,
            )

            record.source_transaction_id = out_txn.id
            record.target_transaction_id = in_txn.id
            self.session.flush()

            return RepackingResult(
                repacking_id=record.id,
                repacking_number=record.repacking_number,
                calculation=calculation,
                source=self._result(out_txn, source_propagated),
                target=self._result(in_txn, target_propagated),
            )

        return self._run_unit(
            "repacking",
            actor_id,
            work,
            lambda result: {
                "repacking_number": result.repacking_number,
                "source_product_id": source_product_id,
                "target_product_id": target_product_id,
                "conversion_ratio": calculation.conversion_ratio,
                "loss_quantity": calculation.loss_quantity,
                "source_transaction": result.source.transaction_number,
                "target_transaction": result.target.transaction_number,
            },
            business_date=business_date.isoformat(),
        )

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def record_sample_out(
        self,
        product_id: int,
        quantity: Decimal,
        recipient: str,
        purpose: SamplePurpose | str,
        business_date: date,
        *,
        actor_id: int,
        recipient_phone: str | None = None,
        recipient_email: str | None = None,
        event_name: str | None = None,
        expected_return: bool = False,
        follow_up_date: date | None = None,
        notes: str | None = None,
        distributed_by: str | None = None,
    ) -> SampleOutResult:
        """
        Hand out product samples.

        ``sample_out += quantity``; creates a DISTRIBUTED sample tracking
        record and a sample_out transaction referencing each other.

        Raises:
            InsufficientStockError: closing stock of business_date, or of any
                later row, is below quantity.
        """
        qty = to_positive_quantity(quantity)
        sample_purpose = self._parse_enum(SamplePurpose, purpose, "sample purpose")
        if not recipient:
            raise InvalidOperationError("Sample recipient is required")
        self._products.require_active(product_id)

        def work() -> SampleOutResult:
            row = self._store.get_or_create(product_id, business_date, actor_id)
            self._ensure_available(row, qty)
            propagated = self._mutate(row, LedgerColumn.SAMPLE_OUT, qty, actor_id)

            sample = SampleTrackingRecord(
                sample_number=self._sequences.next_number(
                    self._numbering.sample_prefix, business_date
                ),
                business_date=business_date,
                sample_date=self._clock.now(),
                product_id=product_id,
                quantity=qty,
                recipient_name=recipient,
                recipient_phone=recipient_phone,
                recipient_email=recipient_email,
                purpose=sample_purpose,
                event_name=event_name,
                expected_return=expected_return,
                follow_up_date=follow_up_date,
                converted_to_sale=False,
                status=SampleStatus.DISTRIBUTED,
                notes=notes,
                distributed_by=distributed_by,
                created_by=actor_id,
            )
            self.session.add(sample)
            self.session.flush()

            txn = self._write_transaction(
                row,
                TransactionType.SAMPLE_OUT,
                -qty,
                actor_id,
                sample_tracking_id=sample.id,
                notes=notes,
                performed_by=distributed_by,
            )
            sample.out_transaction_id = txn.id
            self.session.flush()

            return SampleOutResult(
                sample_tracking_id=sample.id,
                sample_number=sample.sample_number,
                transaction=self._result(txn, propagated),
            )

        return self._run_unit(
            "sample_out",
            actor_id,
            work,
            lambda result: {
                "sample_number": result.sample_number,
                "transaction_number": result.transaction.transaction_number,
                "quantity": qty,
                "purpose": sample_purpose,
            },
            product_id=product_id,
            business_date=business_date.isoformat(),
        )

    def record_sample_return(
        self,
        sample_tracking_id: int,
        returned_quantity: Decimal,
        outcome: SampleReturnOutcome | str,
        *,
        actor_id: int,
        business_date: date | None = None,
        notes: str | None = None,
    ) -> SampleReturnResult:
        """
        Close out a distributed sample.

        Outcome ``returned`` marks the sample RETURNED and, for a positive
        quantity, puts the stock back (``goods_in += returned_quantity``) on
        ``business_date`` (default: today).  Outcomes ``lost`` and
        ``damaged`` mark it CLOSED with no ledger effect.

        Raises:
            SampleNotFoundError: Unknown sample.
            SampleStateError: Sample is not DISTRIBUTED.
            InvalidQuantityError: Quantity negative or above the sample quantity.
        """
        qty = to_quantity(returned_quantity, "returned_quantity")
        if qty < 0:
            raise InvalidQuantityError("returned_quantity", returned_quantity, "must not be negative")
        return_outcome = self._parse_enum(SampleReturnOutcome, outcome, "sample return outcome")
        target_date = business_date or self._clock.today()

        def work() -> SampleReturnResult:
            sample = self._lock_sample(sample_tracking_id)
            if sample.status != SampleStatus.DISTRIBUTED:
                raise SampleStateError(sample.id, SampleStatus(sample.status).value, "return")
            if qty > sample.quantity:
                raise InvalidQuantityError(
                    "returned_quantity",
                    returned_quantity,
                    f"exceeds distributed quantity {sample.quantity}",
                )

            sample.return_date = self._clock.now()
            sample.return_quantity = qty
            sample.updated_by = actor_id
            if notes:
                sample.notes = f"{sample.notes}\n{notes}" if sample.notes else notes

            mutation = None
            if return_outcome is SampleReturnOutcome.RETURNED:
                sample.status = SampleStatus.RETURNED
                if qty > 0:
                    self._products.require_active(sample.product_id)
                    row = self._store.get_or_create(sample.product_id, target_date, actor_id)
                    propagated = self._mutate(row, LedgerColumn.GOODS_IN, qty, actor_id)
                    txn = self._write_transaction(
                        row,
                        TransactionType.SAMPLE_RETURN,
                        qty,
                        actor_id,
                        sample_tracking_id=sample.id,
                        notes=notes,
                    )
                    sample.return_transaction_id = txn.id
                    mutation = self._result(txn, propagated)
            else:
                sample.status = SampleStatus.CLOSED

            self.session.flush()
            return SampleReturnResult(
                sample_tracking_id=sample.id,
                status=SampleStatus(sample.status),
                returned_quantity=qty,
                transaction=mutation,
            )

        return self._run_unit(
            "sample_return",
            actor_id,
            work,
            lambda result: {
                "sample_tracking_id": sample_tracking_id,
                "outcome": return_outcome,
                "sample_status": result.status,
                "returned_quantity": qty,
                "transaction_number": (
                    result.transaction.transaction_number if result.transaction else None
                ),
            },
            business_date=target_date.isoformat(),
        )

    def convert_sample_to_sale(
        self,
        sample_tracking_id: int,
        order_id: int,
        *,
        actor_id: int,
    ) -> SampleReturnResult:
        """
        Mark a distributed sample as converted into a sales order.

        No ledger effect: the sample quantity already left stock.

        Raises:
            SampleNotFoundError: Unknown sample.
            SampleStateError: Sample is not DISTRIBUTED.
        """

        def work() -> SampleReturnResult:
            sample = self._lock_sample(sample_tracking_id)
            if sample.status != SampleStatus.DISTRIBUTED:
                raise SampleStateError(sample.id, SampleStatus(sample.status).value, "convert")
            sample.status = SampleStatus.CONVERTED
            sample.converted_to_sale = True
            sample.order_id = order_id
            sample.updated_by = actor_id
            self.session.flush()
            return SampleReturnResult(
                sample_tracking_id=sample.id,
                status=SampleStatus.CONVERTED,
                returned_quantity=Decimal("0.00"),
                transaction=None,
            )

        return self._run_unit(
            "sample_conversion",
            actor_id,
            work,
            lambda result: {"sample_tracking_id": sample_tracking_id, "order_id": order_id},
        )

    # ------------------------------------------------------------------
    # Production materials, waste and adjustments
    # ------------------------------------------------------------------

    def record_material_consumption(
        self,
        batch_number: str,
        materials: Sequence[MaterialLine],
        business_date: date,
        *,
        actor_id: int,
        notes: str | None = None,
    ) -> MaterialConsumptionResult:
        """
        Consume raw materials for a production batch, all or nothing.

        For every line, ``production_material_out += quantity`` after a
        stock check.  Lines are processed in ascending product id.

        Raises:
            InvalidOperationError: No material lines.
            InsufficientStockError: Any material short; nothing is consumed.
        """
        if not materials:
            raise InvalidOperationError("Material consumption needs at least one material line")
        lines = sorted(
            (
                MaterialLine(line.product_id, to_positive_quantity(line.quantity))
                for line in materials
            ),
            key=lambda line: line.product_id,
        )
        for line in lines:
            self._products.require_active(line.product_id)

        def work() -> MaterialConsumptionResult:
            rows = [
                (line, self._store.get_or_create(line.product_id, business_date, actor_id))
                for line in lines
            ]
            results = []
            for line, row in rows:
                self._ensure_available(row, line.quantity)
                propagated = self._mutate(
                    row, LedgerColumn.PRODUCTION_MATERIAL_OUT, line.quantity, actor_id
                )
                txn = self._write_transaction(
                    row,
                    TransactionType.PRODUCTION_MATERIAL_OUT,
                    -line.quantity,
                    actor_id,
                    production_batch_number=batch_number,
                    notes=notes,
                )
                results.append(self._result(txn, propagated))
            return MaterialConsumptionResult(batch_number=batch_number, transactions=tuple(results))

        return self._run_unit(
            "material_consumption",
            actor_id,
            work,
            lambda result: {
                "batch_number": batch_number,
                "transaction_numbers": [t.transaction_number for t in result.transactions],
            },
            business_date=business_date.isoformat(),
        )

    def record_waste(
        self,
        product_id: int,
        quantity: Decimal,
        business_date: date,
        reason: str,
        *,
        actor_id: int,
    ) -> LedgerMutationResult:
        """
        Write off spoiled or damaged stock.

        Waste has no accumulator of its own, so like an adjustment it lowers
        ``opening_stock`` of the date and is propagated forward.

        Raises:
            InsufficientStockError: closing stock of business_date, or of any
                later row, is below quantity.
        """
        qty = to_positive_quantity(quantity)
        return self._simple_movement(
            "waste",
            product_id,
            business_date,
            LedgerColumn.OPENING_STOCK,
            -qty,
            TransactionType.WASTE,
            actor_id,
            required=qty,
            reason=reason,
        )

    def adjust_stock(
        self,
        product_id: int,
        business_date: date,
        delta: Decimal,
        reason: str,
        *,
        actor_id: int,
    ) -> LedgerMutationResult:
        """
        Manually correct stock on a date (e.g. after a physical count).

        ``opening_stock += delta`` on the row for ``business_date``, then the
        delta is propagated to every later row.  The adjustment transaction's
        quantity is the signed delta.

        Raises:
            InvalidQuantityError: Zero or malformed delta.
            InsufficientStockError: The adjustment would make closing stock
                of ``business_date`` or of a later row negative.
        """
        signed = to_quantity(delta, "delta")
        if signed == 0:
            raise InvalidQuantityError("delta", delta, "must not be zero")
        self._products.require_active(product_id)

        def work() -> LedgerMutationResult:
            row = self._store.get_or_create(product_id, business_date, actor_id)
            if signed < 0:
                self._ensure_available(row, -signed)
            propagated = self._mutate(row, LedgerColumn.OPENING_STOCK, signed, actor_id)
            txn = self._write_transaction(
                row, TransactionType.ADJUSTMENT, signed, actor_id, reason=reason
            )
            return self._result(txn, propagated)

        return self._run_unit(
            "adjustment",
            actor_id,
            work,
            lambda result: {
                "transaction_number": result.transaction_number,
                "delta": signed,
                "reason": reason,
                "balance_after": result.balance_after,
                "rows_propagated": result.rows_propagated,
            },
            product_id=product_id,
            business_date=business_date.isoformat(),
        )

    @staticmethod
    def _parse_enum(enum_cls, value, label: str):
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise InvalidOperationError(f"Unknown {label}: {value!r}") from exc
