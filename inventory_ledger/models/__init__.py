"""ORM models for the inventory ledger."""

from inventory_ledger.models.inventory_transaction import (
    STOCK_IN_TYPES,
    STOCK_OUT_TYPES,
    InventoryTransaction,
    TransactionStatus,
    TransactionType,
)
from inventory_ledger.models.ledger_row import ACCUMULATOR_COLUMNS, LedgerColumn, LedgerRow
from inventory_ledger.models.repacking_record import RepackingRecord, RepackingStatus
from inventory_ledger.models.sample_tracking import (
    SamplePurpose,
    SampleReturnOutcome,
    SampleStatus,
    SampleTrackingRecord,
)

__all__ = [
    "LedgerRow",
    "LedgerColumn",
    "ACCUMULATOR_COLUMNS",
    "InventoryTransaction",
    "TransactionType",
    "TransactionStatus",
    "STOCK_IN_TYPES",
    "STOCK_OUT_TYPES",
    "RepackingRecord",
    "RepackingStatus",
    "SampleTrackingRecord",
    "SamplePurpose",
    "SampleStatus",
    "SampleReturnOutcome",
]
