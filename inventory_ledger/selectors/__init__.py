"""Read-only selectors returning frozen DTOs."""

from inventory_ledger.selectors.ledger_selector import (
    DailySummary,
    LedgerRowDTO,
    LedgerSelector,
)
from inventory_ledger.selectors.sample_selector import SampleDTO, SampleSelector
from inventory_ledger.selectors.stock_availability import (
    ItemAvailability,
    StockAvailabilityChecker,
    StockCheckResult,
    StockCheckSummary,
    StockRequest,
)
from inventory_ledger.selectors.transaction_selector import (
    TransactionDTO,
    TransactionSelector,
)

__all__ = [
    "DailySummary",
    "ItemAvailability",
    "LedgerRowDTO",
    "LedgerSelector",
    "SampleDTO",
    "SampleSelector",
    "StockAvailabilityChecker",
    "StockCheckResult",
    "StockCheckSummary",
    "StockRequest",
    "TransactionDTO",
    "TransactionSelector",
]
