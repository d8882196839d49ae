"""
Module: inventory_ledger.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the integer primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for audit timestamps and actors.
Architecture position: DB layer.  This is the lowest-level import target in the
    package.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Auto-increment integer primary keys on every table.
    - Quantity precision: type_annotation_map maps Python Decimal to
      Numeric(14, 2), the ledger's stock precision.  NEVER use float for
      quantities.
    - Audit fields: TrackedBase provides created_at, updated_at, created_by
      and updated_by on every tracked entity.

Audit relevance:
    updated_at/updated_by are audit metadata, not stock data.  They are the
    only columns allowed to change on otherwise-immutable inventory
    transactions (see db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGSERIAL on PostgreSQL; SQLite only auto-increments INTEGER PRIMARY KEY.
IdentityKey = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase).  Base provides an
        auto-increment integer primary key and a type_annotation_map that
        keeps column types consistent across the schema.

    Guarantees:
        - Decimal maps to Numeric(14, 2).
        - datetime maps to DateTime(timezone=True).
        - date maps to Date.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 2),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[int] = mapped_column(
        IdentityKey,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set on INSERT and refreshed on every UPDATE.
        - created_by is required -- every record has a creator.
        - updated_by is nullable (unset until the first modification).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    updated_by: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )
