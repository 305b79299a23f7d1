"""
Tests for the netting engine (aggregator + optimizer).
"""

import random
from decimal import Decimal

import pytest

from splitledger.models.ledger import Balance, SettlementEdge
from splitledger.netting import (
    compute_balances,
    compute_settlement_edges,
    edges_for_user,
    format_amount,
    net_balance_total,
    render_instructions,
    render_instructions_for_user,
)


def _as_dict(balances):
    return {b.username: b.net_amount for b in balances}


def _edge_net(edges, username):
    inbound = sum((e.amount for e in edges if e.to_user == username), Decimal("0"))
    outbound = sum((e.amount for e in edges if e.from_user == username), Decimal("0"))
    return inbound - outbound


def _random_ledger(seed, make_tx, people=6, count=40):
    rng = random.Random(seed)
    names = [f"user{i}" for i in range(people)]
    txs = []
    for _ in range(count):
        payer, payee = rng.sample(names, 2)
        cents = rng.randint(-5000, 50000)
        txs.append(make_tx(payer, payee, Decimal(cents) / 100))
    return txs


class TestBalanceAggregator:
    """Tests for compute_balances."""

    def test_payer_credited_payee_debited(self, make_tx):
        """Payer gains, payee loses the amount."""
        balances = _as_dict(compute_balances([make_tx("alice", "bob", "30")]))
        assert balances == {"alice": Decimal("30"), "bob": Decimal("-30")}

    def test_blank_sides_skipped(self, make_tx):
        """Rows missing a payer or payee don't count."""
        txs = [
            make_tx("alice", None, "10"),
            make_tx(None, "bob", "10"),
            make_tx("  ", "bob", "10"),
            make_tx("alice", "bob", "5"),
        ]
        assert _as_dict(compute_balances(txs)) == {"alice": Decimal("5"), "bob": Decimal("-5")}

    def test_zero_net_participants_kept(self, make_tx):
        """Participants who net to zero are still returned."""
        txs = [make_tx("alice", "bob", "10"), make_tx("bob", "alice", "10")]
        balances = _as_dict(compute_balances(txs))
        assert balances == {"alice": Decimal("0"), "bob": Decimal("0")}

    def test_first_seen_order(self, make_tx):
        """Output follows the order participants first appear."""
        txs = [make_tx("carol", "alice", "1"), make_tx("bob", "carol", "1")]
        assert [b.username for b in compute_balances(txs)] == ["carol", "alice", "bob"]

    def test_negative_amounts(self, make_tx):
        """A negative amount flips the direction."""
        balances = _as_dict(compute_balances([make_tx("alice", "bob", "-4.25")]))
        assert balances == {"alice": Decimal("-4.25"), "bob": Decimal("4.25")}

    def test_empty_input(self):
        assert compute_balances([]) == []

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024])
    def test_conservation(self, seed, make_tx):
        """Net balances always sum to zero."""
        balances = compute_balances(_random_ledger(seed, make_tx))
        assert net_balance_total(balances) == 0


class TestDebtNettingOptimizer:
    """Tests for compute_settlement_edges."""

    def test_cycle_nets_to_nothing(self, make_tx):
        """A -> B -> C -> A of equal amounts needs no payments."""
        txs = [
            make_tx("a", "b", "30"),
            make_tx("b", "c", "30"),
            make_tx("c", "a", "30"),
        ]
        balances = compute_balances(txs)
        assert all(b.net_amount == 0 for b in balances)
        assert compute_settlement_edges(balances) == []

    def test_two_creditors_one_debtor(self, make_tx):
        """A pays B 50, C pays B 20: B pays A 50 and C 20."""
        txs = [make_tx("a", "b", "50"), make_tx("c", "b", "20")]
        balances = compute_balances(txs)
        assert _as_dict(balances) == {
            "a": Decimal("50"),
            "b": Decimal("-70"),
            "c": Decimal("20"),
        }

        edges = compute_settlement_edges(balances)
        assert edges == [
            SettlementEdge(from_user="b", to_user="a", amount=Decimal("50")),
            SettlementEdge(from_user="b", to_user="c", amount=Decimal("20")),
        ]

    def test_largest_first_matching(self):
        """Biggest creditor is paid by the biggest debtor first."""
        balances = [
            Balance(username="small", net_amount=Decimal("10")),
            Balance(username="big", net_amount=Decimal("90")),
            Balance(username="d1", net_amount=Decimal("-60")),
            Balance(username="d2", net_amount=Decimal("-40")),
        ]
        edges = compute_settlement_edges(balances)
        assert [(e.from_user, e.to_user, e.amount) for e in edges] == [
            ("d1", "big", Decimal("60")),
            ("d2", "big", Decimal("30")),
            ("d2", "small", Decimal("10")),
        ]

    def test_ties_broken_by_username(self):
        """Equal balances are ordered by username, whatever the input order."""
        forward = [
            Balance(username="zed", net_amount=Decimal("10")),
            Balance(username="amy", net_amount=Decimal("10")),
            Balance(username="yan", net_amount=Decimal("-10")),
            Balance(username="bea", net_amount=Decimal("-10")),
        ]
        expected = [
            SettlementEdge(from_user="bea", to_user="amy", amount=Decimal("10")),
            SettlementEdge(from_user="yan", to_user="zed", amount=Decimal("10")),
        ]
        assert compute_settlement_edges(forward) == expected
        assert compute_settlement_edges(list(reversed(forward))) == expected

    def test_zero_balances_excluded(self):
        """Participants at zero never appear in an edge."""
        balances = [
            Balance(username="zero", net_amount=Decimal("0")),
            Balance(username="a", net_amount=Decimal("5")),
            Balance(username="b", net_amount=Decimal("-5")),
        ]
        edges = compute_settlement_edges(balances)
        assert len(edges) == 1
        assert not any(e.touches("zero") for e in edges)

    def test_accepts_generator(self):
        """Balances may be any iterable."""
        balances = (
            Balance(username=name, net_amount=Decimal(amount))
            for name, amount in (("a", "5"), ("b", "-5"))
        )
        assert len(compute_settlement_edges(balances)) == 1

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024, 99])
    def test_edge_conservation(self, seed, make_tx):
        """Each user's inbound minus outbound equals their balance."""
        balances = compute_balances(_random_ledger(seed, make_tx))
        edges = compute_settlement_edges(balances)
        for balance in balances:
            assert _edge_net(edges, balance.username) == balance.net_amount

    @pytest.mark.parametrize("seed", [3, 11, 123])
    def test_edge_count_bound(self, seed, make_tx):
        """Never more than creditors + debtors - 1 edges."""
        balances = compute_balances(_random_ledger(seed, make_tx, people=10, count=80))
        creditors = sum(1 for b in balances if b.is_creditor)
        debtors = sum(1 for b in balances if b.is_debtor)
        edges = compute_settlement_edges(balances)
        if creditors and debtors:
            assert len(edges) <= creditors + debtors - 1
        assert all(e.amount > 0 for e in edges)


class TestUserView:
    """Tests for edges_for_user."""

    def test_filters_to_touching_edges(self):
        edges = [
            SettlementEdge(from_user="a", to_user="b", amount=Decimal("1")),
            SettlementEdge(from_user="c", to_user="d", amount=Decimal("2")),
            SettlementEdge(from_user="d", to_user="a", amount=Decimal("3")),
        ]
        assert edges_for_user(edges, "a") == [edges[0], edges[2]]

    def test_untouched_user_gets_nothing(self):
        """No global edge touches the user, so the view is empty."""
        edges = [SettlementEdge(from_user="a", to_user="b", amount=Decimal("1"))]
        assert edges_for_user(edges, "zoe") == []


class TestRendering:
    """Tests for instruction text."""

    def test_format_amount(self):
        assert format_amount(Decimal("1234.5")) == "$1,234.50"
        assert format_amount(Decimal("7"), "€") == "€7.00"
        assert format_amount(Decimal("-3")) == "-$3.00"

    def test_global_instructions(self):
        edges = [SettlementEdge(from_user="b", to_user="a", amount=Decimal("50"))]
        assert render_instructions(edges) == ["b pays $50.00 to a"]

    def test_personal_instructions(self):
        """Phrased from the user's side, other edges ignored."""
        edges = [
            SettlementEdge(from_user="me", to_user="a", amount=Decimal("5")),
            SettlementEdge(from_user="b", to_user="me", amount=Decimal("2.5")),
            SettlementEdge(from_user="x", to_user="y", amount=Decimal("1")),
        ]
        assert render_instructions_for_user(edges, "me") == [
            "Pay $5.00 to a",
            "b should pay you $2.50",
        ]
