"""
Write-side services.

Services flush inside the caller's transaction and never commit.
"""

from inventory_ledger.services.backdate_propagator import BackdatePropagator
from inventory_ledger.services.ledger_store import LedgerStore
from inventory_ledger.services.retry_policy import RetryPolicy
from inventory_ledger.services.rollover_service import DailyRolloverService
from inventory_ledger.services.sequence_service import (
    SequenceCounter,
    SequenceService,
    format_document_number,
)
from inventory_ledger.services.transaction_recorder import (
    LedgerMutationResult,
    MaterialConsumptionResult,
    MaterialLine,
    RepackingResult,
    SampleOutResult,
    SampleReturnResult,
    TransactionRecorder,
)

__all__ = [
    "BackdatePropagator",
    "DailyRolloverService",
    "LedgerMutationResult",
    "LedgerStore",
    "MaterialConsumptionResult",
    "MaterialLine",
    "RepackingResult",
    "RetryPolicy",
    "SampleOutResult",
    "SampleReturnResult",
    "SequenceCounter",
    "SequenceService",
    "TransactionRecorder",
    "format_document_number",
]
