"""
Stock classification rules.

Pure functions that turn stock figures into the statuses shown on the
ledger and returned by the availability checker.  No I/O, no ORM.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class StockLevel(str, Enum):
    """Status of a ledger row's closing stock against its thresholds."""

    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    AVAILABLE = "available"
    OVERSTOCK = "overstock"


class AvailabilityStatus(str, Enum):
    """Status of a requested quantity against projected closing stock."""

    SUFFICIENT = "sufficient"
    LOW_STOCK = "low_stock"
    INSUFFICIENT = "insufficient"
    OUT_OF_STOCK = "out_of_stock"


class ValidationType(str, Enum):
    """Where the checked date sits relative to the business date today."""

    SAME_DAY = "same_day"
    FUTURE_DATE = "future_date"
    PAST_DATE = "past_date"


def classify_stock_level(
    closing_stock: Decimal,
    minimum_stock: Decimal | None,
    maximum_stock: Decimal | None,
) -> StockLevel:
    """
    Classify closing stock against minimum/maximum thresholds.

    Unset (None) or non-positive thresholds are ignored.
    """
    if closing_stock <= ZERO:
        return StockLevel.OUT_OF_STOCK
    if minimum_stock is not None and minimum_stock > ZERO and closing_stock <= minimum_stock:
        return StockLevel.LOW_STOCK
    if maximum_stock is not None and maximum_stock > ZERO and closing_stock >= maximum_stock:
        return StockLevel.OVERSTOCK
    return StockLevel.AVAILABLE


def classify_availability(
    available: Decimal,
    requested: Decimal,
    minimum_stock: Decimal | None,
) -> AvailabilityStatus:
    """
    Classify a requested quantity against available stock.

    Order matters: out-of-stock wins over insufficient, which wins over low.
    """
    if available <= ZERO:
        return AvailabilityStatus.OUT_OF_STOCK
    if requested > available:
        return AvailabilityStatus.INSUFFICIENT
    if minimum_stock is not None and available <= minimum_stock:
        return AvailabilityStatus.LOW_STOCK
    return AvailabilityStatus.SUFFICIENT


def classify_validation_type(target_date: date, today: date) -> ValidationType:
    if target_date == today:
        return ValidationType.SAME_DAY
    if target_date > today:
        return ValidationType.FUTURE_DATE
    return ValidationType.PAST_DATE


def stock_utilization(closing_stock: Decimal, maximum_stock: Decimal | None) -> Decimal | None:
    """Closing stock as a percentage of maximum, or None when no maximum is set."""
    if maximum_stock is None or maximum_stock <= ZERO:
        return None
    return (closing_stock / maximum_stock * 100).quantize(Decimal("0.01"))
