"""
Settlement Kernel - commission settlement and financial ledger engine

A pharmacy-marketplace settlement core with:
- Period bucketing by calendar month or ISO week
- Oldest-period-first partial payments
- Legacy/numeric paid-amount reconciliation
- Append-only, replayable financial ledger
"""

__version__ = "0.1.0"
