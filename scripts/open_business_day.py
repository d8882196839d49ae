#!/usr/bin/env python3
"""
Open a business day: create the ledger row of every product with history.

Meant to run once shortly after midnight in the business timezone, from
cron or any other scheduler.  Safe to re-run; rows that already exist are
left as they are.

Usage:
  python3 scripts/open_business_day.py [--date YYYY-MM-DD] [--actor-id ID]
                                       [--product-id ID ...] [--config FILE]
                                       [--db-url URL] [--create-tables]

Database URL resolution: --db-url, else INVENTORY_LEDGER_DATABASE_URL /
DATABASE_URL, else the settings file, else the built-in default.
"""

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SYSTEM_ACTOR_ID = 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Open the daily inventory ledger for a business date")
    p.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Business date to open (default: today in the configured business timezone)",
    )
    p.add_argument(
        "--actor-id",
        type=int,
        default=SYSTEM_ACTOR_ID,
        help=f"User id recorded as creator (default: {SYSTEM_ACTOR_ID}, the system account)",
    )
    p.add_argument(
        "--product-id",
        type=int,
        action="append",
        dest="product_ids",
        help="Only open these products (repeatable)",
    )
    p.add_argument("--config", default=None, help="YAML settings file")
    p.add_argument("--db-url", default=None, help="Database URL")
    p.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables (and PostgreSQL triggers) first",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from inventory_ledger.config import load_settings
    from inventory_ledger.db.engine import create_tables, init_engine_from_url, session_scope
    from inventory_ledger.domain.clock import SystemClock
    from inventory_ledger.logging_config import configure_logging
    from inventory_ledger.services.rollover_service import DailyRolloverService

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: invalid settings: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    database_url = args.db_url or settings.database_url
    business_date = args.date or SystemClock(settings.timezone).today()

    try:
        init_engine_from_url(
            database_url,
            echo=settings.echo,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: could not initialize database: {exc}", file=sys.stderr)
        return 1

    if args.create_tables:
        create_tables(install_triggers=True)

    with session_scope() as session:
        rows = DailyRolloverService(session).open_business_day(
            business_date,
            args.actor_id,
            product_ids=args.product_ids,
        )
        summary = [(row.product_id, row.opening_stock) for row in rows]

    print(f"  Opened {business_date.isoformat()}: {len(summary)} product row(s)")
    for product_id, opening in summary:
        print(f"    product {product_id}: opening {opening}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
