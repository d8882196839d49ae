"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock history must be tamper-proof.  A wrong movement is corrected with a new
movement (reversal, adjustment), never by editing or deleting the old one.

  Layer 1: THIS FILE (ORM before_flush listener)
    - Catches modifications made through SQLAlchemy objects
    - Fires BEFORE any SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk statements, direct psql access

Both layers enforce the same rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|-----------------------------------------------------
InventoryTransaction   | No field changes after INSERT, no DELETE
LedgerRow              | No DELETE (soft-delete via deleted_at)
RepackingRecord        | Figures fixed; transaction links set once; no DELETE
SampleTrackingRecord   | No DELETE

updated_at / updated_by are audit metadata and may always change.

Bulk ``session.execute(update(...))`` statements do not pass through the unit
of work, so this layer does not see them.  The only bulk statement in the
package (backdate propagation) touches daily_inventory.opening_stock, which
is not protected.

===============================================================================
USAGE
===============================================================================

    from inventory_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; done by init_engine_from_url

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from inventory_ledger.exceptions import ImmutabilityViolationError
from inventory_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by"})

REPACKING_LINK_FIELDS = frozenset({"source_transaction_id", "target_transaction_id"})


def _changed_attributes(obj) -> dict[str, tuple]:
    """Return {attribute: previous values} for every column attribute with pending changes."""
    state = inspect(obj)
    changed = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.has_changes():
            changed[attr.key] = tuple(history.deleted)
    return changed


def _violation(obj, operation: str, reason: str) -> ImmutabilityViolationError:
    entity_type = type(obj).__name__
    entity_id = str(obj.id)
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(entity_type, entity_id, reason)


def _check_deletions(session: Session) -> None:
    from inventory_ledger.models import (
        InventoryTransaction,
        LedgerRow,
        RepackingRecord,
        SampleTrackingRecord,
    )

    protected = (InventoryTransaction, LedgerRow, RepackingRecord, SampleTrackingRecord)
    for obj in list(session.deleted):
        if isinstance(obj, protected):
            raise _violation(obj, "DELETE", f"{type(obj).__name__} rows cannot be deleted")


def _check_inventory_transaction(obj) -> None:
    changed = set(_changed_attributes(obj)) - AUDIT_FIELDS
    if changed:
        raise _violation(
            obj,
            "UPDATE",
            f"inventory transactions are append-only; attempted to change {sorted(changed)}",
        )


def _check_repacking_record(obj) -> None:
    changed = _changed_attributes(obj)
    for key, previous in changed.items():
        if key in AUDIT_FIELDS:
            continue
        if key in REPACKING_LINK_FIELDS and all(v is None for v in previous):
            continue
        raise _violation(
            obj,
            "UPDATE",
            f"repacking record field '{key}' cannot change once set",
        )


def _check_immutability_before_flush(session, flush_context, instances):
    """
    Reject deletes and illegal updates of protected entities.

    Runs in SessionEvents.before_flush, before the flush plan is finalized,
    so nothing reaches the database when a check fails.
    """
    from inventory_ledger.models import InventoryTransaction, RepackingRecord

    _check_deletions(session)

    for obj in list(session.dirty):
        if isinstance(obj, InventoryTransaction):
            _check_inventory_transaction(obj)
        elif isinstance(obj, RepackingRecord):
            _check_repacking_record(obj)


def register_immutability_listeners() -> None:
    """Register the before_flush listener on all sessions (idempotent)."""
    if not event.contains(Session, "before_flush", _check_immutability_before_flush):
        event.listen(Session, "before_flush", _check_immutability_before_flush)


def unregister_immutability_listeners() -> None:
    """Remove the listener.  FOR TESTING ONLY."""
    if event.contains(Session, "before_flush", _check_immutability_before_flush):
        event.remove(Session, "before_flush", _check_immutability_before_flush)
