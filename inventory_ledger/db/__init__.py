"""Database layer - engine, base classes, types and immutability enforcement."""

from inventory_ledger.db.base import Base, TrackedBase
from inventory_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from inventory_ledger.db.types import Percentage, Quantity, Ratio

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "Quantity",
    "Ratio",
    "Percentage",
]
