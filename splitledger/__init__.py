"""
SplitLedger - Source Package

A settlement engine that tracks who paid for whom and reduces the
resulting web of debts to the fewest possible payments.

DESIGN PRINCIPLES:
1. Balances and settlement edges are always recomputed, never cached
2. The transaction write is the only thing that must succeed
3. Settling is a one-way door
4. Every change to the ledger is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SplitLedger Team"
