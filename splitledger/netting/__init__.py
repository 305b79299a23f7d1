"""Netting engine: balances in, payment instructions out."""

from splitledger.netting.aggregator import compute_balances, net_balance_total
from splitledger.netting.optimizer import (
    compute_settlement_edges,
    edges_for_user,
    format_amount,
    render_instructions,
    render_instructions_for_user,
)

__all__ = [
    "compute_balances",
    "compute_settlement_edges",
    "edges_for_user",
    "format_amount",
    "net_balance_total",
    "render_instructions",
    "render_instructions_for_user",
]
