"""
Pure domain layer.

Clock, product reference, stock classification and repacking arithmetic.
No ORM, no database, no I/O beyond SystemClock.
"""

from inventory_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_ledger.domain.product_reference import (
    ProductInfo,
    ProductReference,
    StaticProductReference,
)
from inventory_ledger.domain.repacking import RepackingCalculation, calculate_repacking
from inventory_ledger.domain.stock_status import (
    AvailabilityStatus,
    StockLevel,
    ValidationType,
    classify_availability,
    classify_stock_level,
    classify_validation_type,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ProductInfo",
    "ProductReference",
    "StaticProductReference",
    "RepackingCalculation",
    "calculate_repacking",
    "AvailabilityStatus",
    "StockLevel",
    "ValidationType",
    "classify_availability",
    "classify_stock_level",
    "classify_validation_type",
]
