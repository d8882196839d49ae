"""
Inventory Ledger - daily stock ledger and transaction engine

A per-product, per-business-date stock ledger with:
- Derived closing stock (never stored)
- Immutable, append-only movement history
- Backdated corrections propagated forward
- Collision-free transaction numbering under concurrency
- Row-locked stock checks (no oversell)
"""

__version__ = "0.1.0"
