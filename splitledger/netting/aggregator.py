"""
Balance Aggregator

DESIGN DECISION: Aggregation is a PURE function of the transactions it is given.
No storage access, no caching, no normalization.

Usernames are normalized when a transaction is written, so the keys seen
here are already canonical. The caller decides the scope (everyone, or one
user's transactions) by choosing which transactions to pass in.

GUARANTEE: the net amounts of the returned balances always sum to zero.
"""

from decimal import Decimal
from typing import Iterable

from splitledger.models.ledger import Balance, Transaction


def compute_balances(transactions: Iterable[Transaction]) -> list[Balance]:
    """
    Fold transactions into one net balance per participant.

    The payer is credited and the payee debited by the amount. Rows with a
    blank payer or payee are skipped. Every participant touched is returned,
    zero-net included, in the order they were first seen.
    """
    totals: dict[str, Decimal] = {}

    for tx in transactions:
        payer = tx.payer_username
        payee = tx.payee_username
        if not payer or not payer.strip() or not payee or not payee.strip():
            continue

        totals[payer] = totals.get(payer, Decimal("0")) + tx.amount
        totals[payee] = totals.get(payee, Decimal("0")) - tx.amount

    return [Balance(username=name, net_amount=net) for name, net in totals.items()]


def net_balance_total(balances: Iterable[Balance]) -> Decimal:
    """Sum of every net amount. Zero for any well-formed ledger."""
    return sum((b.net_amount for b in balances), Decimal("0"))
