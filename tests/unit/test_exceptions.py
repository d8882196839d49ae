"""Tests for the typed exception hierarchy."""

from datetime import date
from decimal import Decimal

import pytest

from inventory_ledger import exceptions as exc_module
from inventory_ledger.exceptions import (
    ConcurrencyError,
    InsufficientStockError,
    InventoryLedgerError,
    InvalidOperationError,
    NotFoundError,
    ReversalExceedsReservedError,
    SampleStateError,
    TransactionNumberConflictError,
)


def _all_error_classes():
    return [
        obj
        for obj in vars(exc_module).values()
        if isinstance(obj, type) and issubclass(obj, InventoryLedgerError)
    ]


def test_every_error_has_a_unique_code():
    codes = [cls.code for cls in _all_error_classes()]

    assert all(codes)
    assert len(codes) == len(set(codes))


def test_insufficient_stock_carries_shortage():
    err = InsufficientStockError(1, date(2026, 3, 10), Decimal("50"), Decimal("30"))

    assert err.shortage == Decimal("20")
    assert err.code == "INSUFFICIENT_STOCK"
    assert "2026-03-10" in str(err)


def test_shortage_never_negative():
    err = InsufficientStockError(1, date(2026, 3, 10), Decimal("5"), Decimal("30"))

    assert err.shortage == Decimal("0")


@pytest.mark.parametrize(
    "error, base",
    [
        (ReversalExceedsReservedError(1, date(2026, 3, 10), Decimal("5"), Decimal("1")), InvalidOperationError),
        (SampleStateError(4, "returned", "return"), InvalidOperationError),
        (TransactionNumberConflictError("sale", 3), ConcurrencyError),
    ],
)
def test_hierarchy(error, base):
    assert isinstance(error, base)
    assert isinstance(error, InventoryLedgerError)
    assert not isinstance(error, NotFoundError)
