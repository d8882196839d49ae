"""
Concurrent sales against one ledger row (PostgreSQL only).

Each thread runs its own session and commits for real, so row locks and
unique constraints are exercised the way production sees them.  SQLite
serializes writers on the whole file and cannot show these races.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tests.conftest import CROISSANT, NOW, TEST_ACTOR_ID, TODAY
from inventory_ledger.domain.clock import DeterministicClock
from inventory_ledger.exceptions import InsufficientStockError
from inventory_ledger.models import InventoryTransaction, LedgerRow
from inventory_ledger.services.ledger_store import LedgerStore
from inventory_ledger.services.transaction_recorder import TransactionRecorder

pytestmark = [pytest.mark.postgres, pytest.mark.slow_locks]

THREADS = 10


def _seed(pg_session_factory, quantity):
    session = pg_session_factory()
    LedgerStore(session).register_row(CROISSANT, TODAY, Decimal(quantity), TEST_ACTOR_ID)
    session.commit()
    session.close()


def _run_concurrently(pg_session_factory, products, work):
    barrier = threading.Barrier(THREADS)
    outcomes = []
    lock = threading.Lock()

    def worker(index):
        session = pg_session_factory()
        recorder = TransactionRecorder(session, products, DeterministicClock(NOW))
        barrier.wait()
        try:
            result = work(recorder, index)
            session.commit()
            outcome = result
        except Exception as exc:
            session.rollback()
            outcome = exc
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_concurrent_sales_never_oversell(pg_session_factory, products):
    _seed(pg_session_factory, "35")

    outcomes = _run_concurrently(
        pg_session_factory,
        products,
        lambda recorder, i: recorder.record_sale(
            CROISSANT, 10, 1000 + i, TODAY, actor_id=TEST_ACTOR_ID
        ),
    )

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    rejections = [o for o in outcomes if isinstance(o, InsufficientStockError)]
    assert len(successes) == 3
    assert len(rejections) == THREADS - 3

    check = pg_session_factory()
    row = check.execute(
        select(LedgerRow).where(LedgerRow.product_id == CROISSANT, LedgerRow.business_date == TODAY)
    ).scalar_one()
    assert row.reserved_out == Decimal("30")
    assert row.closing_stock == Decimal("5")
    check.close()


def test_concurrent_writers_get_unique_numbers(pg_session_factory, products):
    _seed(pg_session_factory, "0")

    outcomes = _run_concurrently(
        pg_session_factory,
        products,
        lambda recorder, i: recorder.record_production(
            CROISSANT, 1, f"BATCH-{i}", TODAY, actor_id=TEST_ACTOR_ID
        ),
    )

    numbers = [o.transaction_number for o in outcomes]
    assert len(set(numbers)) == THREADS
    assert sorted(numbers) == [f"TRX-20260310-{n:03d}" for n in range(1, THREADS + 1)]

    check = pg_session_factory()
    total = check.execute(select(func.count()).select_from(InventoryTransaction)).scalar_one()
    balances = sorted(
        check.execute(select(InventoryTransaction.balance_after)).scalars().all()
    )
    assert total == THREADS
    assert balances == [Decimal(n) for n in range(1, THREADS + 1)]
    check.close()
