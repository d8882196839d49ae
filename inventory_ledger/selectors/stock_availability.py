"""
Module: inventory_ledger.selectors.stock_availability
Responsibility: Answer "can these quantities be taken on this date?" for an
    order form before anything is recorded.
Architecture position: Selectors.  Uses domain/ classification and the
    injected Clock for "today".

Invariants enforced:
    - Read-only: a date without a ledger row is projected from the nearest
      earlier row's closing stock (0 when none); no row is created.
    - Only SAME_DAY checks can block.  Future and past dates are advisory,
      because stock may still arrive (or already has) before they are
      recorded.

Failure modes:
    - InvalidQuantityError for malformed requested quantities.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from inventory_ledger.db.types import ZERO, to_positive_quantity
from inventory_ledger.domain.clock import Clock
from inventory_ledger.domain.stock_status import (
    AvailabilityStatus,
    ValidationType,
    classify_availability,
    classify_validation_type,
)
from inventory_ledger.models.ledger_row import LedgerRow
from inventory_ledger.selectors.base import BaseSelector

_BLOCKING = frozenset({AvailabilityStatus.INSUFFICIENT, AvailabilityStatus.OUT_OF_STOCK})


@dataclass(frozen=True)
class StockRequest:
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class ItemAvailability:
    product_id: int
    requested: Decimal
    available: Decimal
    minimum_stock: Decimal | None
    status: AvailabilityStatus
    shortage: Decimal
    projected: bool


@dataclass(frozen=True)
class StockCheckSummary:
    total_items: int
    sufficient: int
    low_stock: int
    insufficient: int
    out_of_stock: int


@dataclass(frozen=True)
class StockCheckResult:
    business_date: date
    validation_type: ValidationType
    items: tuple[ItemAvailability, ...]
    should_block: bool
    is_valid: bool
    summary: StockCheckSummary


class StockAvailabilityChecker(BaseSelector[LedgerRow]):
    """
    Read-only availability check for a list of requested items.

    Contract:
        ``is_valid`` is True when no item is insufficient or out of stock;
        ``should_block`` is True only when additionally the date is today.
    """

    def __init__(self, session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def _row_or_previous(self, product_id: int, business_date: date) -> tuple[LedgerRow | None, bool]:
        row = self.session.execute(
            select(LedgerRow).where(
                LedgerRow.product_id == product_id,
                LedgerRow.business_date == business_date,
                LedgerRow.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if row is not None:
            return row, False
        previous = self.session.execute(
            select(LedgerRow)
            .where(
                LedgerRow.product_id == product_id,
                LedgerRow.business_date < business_date,
                LedgerRow.deleted_at.is_(None),
            )
            .order_by(LedgerRow.business_date.desc())
            .limit(1)
        ).scalar_one_or_none()
        return previous, True

    def check_item(self, business_date: date, request: StockRequest) -> ItemAvailability:
        requested = to_positive_quantity(request.quantity)
        row, projected = self._row_or_previous(request.product_id, business_date)
        available = row.closing_stock if row is not None else ZERO
        minimum = row.minimum_stock if row is not None else None
        return ItemAvailability(
            product_id=request.product_id,
            requested=requested,
            available=available,
            minimum_stock=minimum,
            status=classify_availability(available, requested, minimum),
            shortage=max(ZERO, requested - available),
            projected=projected,
        )

    def check(self, business_date: date, items: Sequence[StockRequest]) -> StockCheckResult:
        validation_type = classify_validation_type(business_date, self._clock.today())
        checked = tuple(self.check_item(business_date, item) for item in items)

        counts = {status: 0 for status in AvailabilityStatus}
        for item in checked:
            counts[item.status] += 1

        is_valid = not any(item.status in _BLOCKING for item in checked)
        return StockCheckResult(
            business_date=business_date,
            validation_type=validation_type,
            items=checked,
            should_block=validation_type is ValidationType.SAME_DAY and not is_valid,
            is_valid=is_valid,
            summary=StockCheckSummary(
                total_items=len(checked),
                sufficient=counts[AvailabilityStatus.SUFFICIENT],
                low_stock=counts[AvailabilityStatus.LOW_STOCK],
                insufficient=counts[AvailabilityStatus.INSUFFICIENT],
                out_of_stock=counts[AvailabilityStatus.OUT_OF_STOCK],
            ),
        )
