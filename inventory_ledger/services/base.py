"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit it.  The caller (request handler, script, or test
    harness) owns commit/rollback.  Services that need an atomic sub-unit
    use a SAVEPOINT (``session.begin_nested()``), which the caller's
    rollback still undoes.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all write-side services.

    Non-goals:
        - Does NOT manage the outer transaction lifecycle.
        - Does NOT provide read-only query methods -- those belong in
          ``inventory_ledger/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
