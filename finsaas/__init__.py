"""
FinanSaaS - Ledger Core Package

The consistency-critical core of a personal / small-business finance
tracker: accounts, transactions, bills and the balance bookkeeping
that ties them together.

DESIGN PRINCIPLES:
1. An account balance is a materialized view, never a source of truth
2. Balances are always recomputed in full, never patched with deltas
3. A bill is settled exactly once, and only through the settlement flow
4. Fail early, fail visibly - errors propagate to the caller
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinanSaaS Team"
