"""
Debt-Netting Optimizer

Turns a set of net balances into payment instructions using greedy
largest-first matching:

1. Split participants into creditors (owed money) and debtors (owe money).
   Anyone at exactly zero is left out.
2. Sort creditors largest first, debtors most negative first.
3. Walk both lists at once, moving min(creditor, |debtor|) from the debtor
   to the creditor each step, and advance whichever side reaches zero.

Each step zeroes at least one participant, so the number of edges is at
most creditors + debtors - 1.

DESIGN DECISION: Ties are broken by username.
Creditors sort on (-amount, username) and debtors on (amount, username),
so the same balances always produce the same edges in the same order.

The per-user view only ever filters the global edges. It never builds
edges out of stored obligations, so an old snapshot can't resurface as a
current instruction.
"""

from decimal import Decimal
from typing import Iterable

from splitledger.models.ledger import Balance, SettlementEdge


DEFAULT_CURRENCY_SYMBOL = "$"


def compute_settlement_edges(balances: Iterable[Balance]) -> list[SettlementEdge]:
    """Greedy netting of a balance set into directed payment edges."""
    balances = list(balances)

    # [username, remaining] pairs, mutated as the merge runs
    creditors = [[b.username, b.net_amount] for b in balances if b.net_amount > 0]
    debtors = [[b.username, b.net_amount] for b in balances if b.net_amount < 0]
    creditors.sort(key=lambda c: (-c[1], c[0]))
    debtors.sort(key=lambda d: (d[1], d[0]))

    edges: list[SettlementEdge] = []
    i = j = 0
    while i < len(creditors) and j < len(debtors):
        creditor = creditors[i]
        debtor = debtors[j]
        transfer = min(creditor[1], -debtor[1])

        edges.append(SettlementEdge(
            from_user=debtor[0],
            to_user=creditor[0],
            amount=transfer,
        ))

        creditor[1] -= transfer
        debtor[1] += transfer

        if creditor[1] == 0:
            i += 1
        if debtor[1] == 0:
            j += 1

    return edges


def edges_for_user(edges: Iterable[SettlementEdge], username: str) -> list[SettlementEdge]:
    """Global edges where the user pays or gets paid."""
    return [edge for edge in edges if edge.touches(username)]


def format_amount(amount: Decimal, currency_symbol: str = DEFAULT_CURRENCY_SYMBOL) -> str:
    """$1,234.50 style: symbol, thousands separator, two decimals."""
    if amount < 0:
        return f"-{currency_symbol}{-amount:,.2f}"
    return f"{currency_symbol}{amount:,.2f}"


def render_instructions(
    edges: Iterable[SettlementEdge],
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
) -> list[str]:
    """Global view: "alice pays $10.00 to bob"."""
    return [
        f"{edge.from_user} pays {format_amount(edge.amount, currency_symbol)} to {edge.to_user}"
        for edge in edges
    ]


def render_instructions_for_user(
    edges: Iterable[SettlementEdge],
    username: str,
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
) -> list[str]:
    """
    Personal view, phrased from the user's side.

    "Pay $10.00 to bob" for edges the user pays,
    "bob should pay you $10.00" for edges the user receives.
    Edges not touching the user are ignored.
    """
    instructions = []
    for edge in edges:
        amount = format_amount(edge.amount, currency_symbol)
        if edge.from_user == username:
            instructions.append(f"Pay {amount} to {edge.to_user}")
        elif edge.to_user == username:
            instructions.append(f"{edge.from_user} should pay you {amount}")
    return instructions
