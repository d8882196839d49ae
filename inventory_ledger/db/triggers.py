"""
Module: inventory_ledger.db.triggers
Responsibility: Loading, installing and verifying PostgreSQL immutability
    triggers (layer 2 of 2).  This is the database-level complement to the
    ORM listeners in db/immutability.py.
Architecture position: DB layer.  May import from db/ only.

Invariants enforced (via PostgreSQL triggers across 4 SQL files):
    - inventory_transactions: no UPDATE of stock data, no DELETE.
    - daily_inventory: no DELETE (soft-delete via deleted_at only).
    - repacking_records: conversion figures fixed; transaction links set
      once; no DELETE.
    - sample_tracking: no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaces as
      IntegrityError or InternalError through SQLAlchemy).
    - FileNotFoundError if SQL files are missing from the sql/ directory.

Audit relevance:
    Even if the ORM layer is bypassed (raw SQL, bulk statements, direct
    psql access), the triggers keep movement history intact.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

# Installed in this order
TRIGGER_FILES = [
    "01_inventory_transactions.sql",
    "02_daily_inventory.sql",
    "03_repacking_records.sql",
    "04_sample_tracking.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_inventory_transaction_immutability_update",
    "trg_inventory_transaction_immutability_delete",
    "trg_daily_inventory_delete",
    "trg_repacking_record_immutability_update",
    "trg_repacking_record_immutability_delete",
    "trg_sample_tracking_delete",
]


def _load_sql_file(filename: str) -> str:
    """
    Load SQL content from a file in the sql/ directory.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Load and concatenate all trigger SQL files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all).
        Engine must be connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Trigger functions use CREATE OR REPLACE, so this is idempotent.
    """
    sql_content = _load_all_trigger_sql()

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    Only for migrations and test teardown.  Re-install immediately afterwards.
    """
    sql_content = _load_sql_file(DROP_FILE)

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Return the names of installed immutability triggers, sorted."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        result = conn.execute(text(check_sql))
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    """Return trigger names that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
