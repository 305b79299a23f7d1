"""
Tests for SplitLedger models

Test strategy:
1. Unit tests for individual components (models, builders)
2. Service tests run against in-memory storage
3. No real API calls in tests (Sheets is exercised through a fake worksheet)
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from splitledger.models.ledger import (
    Balance,
    NotificationView,
    PersonalSettlement,
    SettlementEdge,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from splitledger.models.audit import (
    AuditAction,
    AuditEntry,
    AuditEntryBuilder,
)


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_transaction_is_immutable(self):
        """Transactions can't be edited after creation."""
        tx = Transaction(payer_username="alice", payee_username="bob", amount=Decimal("10"))
        with pytest.raises(ValidationError):
            tx.amount = Decimal("20")

    def test_transaction_preserves_scale(self):
        """Amounts keep their decimal places."""
        tx = Transaction(payer_username="alice", payee_username="bob", amount=Decimal("10.50"))
        assert str(tx.amount) == "10.50"

    def test_transaction_rejects_nan(self):
        """Non-finite amounts are rejected."""
        with pytest.raises(ValidationError):
            Transaction(payer_username="alice", payee_username="bob", amount=Decimal("NaN"))

    def test_transaction_involves_creator(self):
        """The creator counts as involved."""
        tx = Transaction(
            payer_username="alice",
            payee_username="bob",
            amount=Decimal("1"),
            created_by="carol",
        )
        assert tx.involves("carol")
        assert not tx.involves("dave")

    def test_balance_sign(self):
        """Positive is a creditor, negative a debtor."""
        assert Balance(username="a", net_amount=Decimal("5")).is_creditor
        assert Balance(username="b", net_amount=Decimal("-5")).is_debtor
        zero = Balance(username="c", net_amount=Decimal("0"))
        assert not zero.is_creditor and not zero.is_debtor

    def test_edge_requires_positive_amount(self):
        """Edges never carry zero or negative amounts."""
        with pytest.raises(ValidationError):
            SettlementEdge(from_user="a", to_user="b", amount=Decimal("0"))


class TestPersonalSettlement:
    """Tests for the obligation lifecycle."""

    def test_defaults(self):
        """New obligations are open and registered."""
        ps = PersonalSettlement(from_user="alice", to_user="bob", amount=Decimal("10"))
        assert ps.settled is False
        assert ps.settled_at is None
        assert ps.recipient_registered is True
        assert ps.notify_only is False

    def test_open_obligation_cannot_have_settled_by(self):
        """settled_by without settled is rejected."""
        with pytest.raises(ValidationError):
            PersonalSettlement(
                from_user="alice",
                to_user="bob",
                amount=Decimal("10"),
                settled_by="alice",
            )

    def test_mark_settled_returns_copy(self):
        """Settling returns a new settled copy."""
        ps = PersonalSettlement(from_user="alice", to_user="bob", amount=Decimal("10"))
        settled = ps.mark_settled("bob")
        assert settled.settled is True
        assert settled.settled_by == "bob"
        assert settled.settled_at is not None
        assert ps.settled is False

    def test_mark_settled_twice_keeps_first(self):
        """Settling again never changes who or when."""
        first_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ps = PersonalSettlement(
            from_user="alice", to_user="bob", amount=Decimal("10"),
        ).mark_settled("alice", settled_at=first_time)

        again = ps.mark_settled("bob")
        assert again.settled_by == "alice"
        assert again.settled_at == first_time


class TestAuditModels:
    """Tests for audit-related models."""

    def test_transaction_created_payload(self):
        """CREATED payload snapshots the transaction."""
        tx = Transaction(
            payer_username="alice",
            payee_username="bob",
            amount=Decimal("12.30"),
            description="lunch",
            timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            created_by="alice",
        )
        entry = AuditEntryBuilder.transaction_created(tx, performed_by="alice")

        assert entry.action == AuditAction.CREATED
        assert entry.source_transaction_id == tx.id
        assert entry.payload["id"] == str(tx.id)
        assert entry.payload["amount"] == "12.30"
        assert entry.payload["description"] == "lunch"
        assert entry.payload["timestamp"] == "2024-05-01T12:00:00+00:00"
        assert entry.payload["recorded_at"] == entry.timestamp.isoformat()

    def test_personal_settlement_totals(self):
        """Snapshot payload totals what the user gives and receives."""
        edges = [
            SettlementEdge(from_user="bob", to_user="alice", amount=Decimal("50")),
            SettlementEdge(from_user="alice", to_user="carol", amount=Decimal("5")),
        ]
        entry = AuditEntryBuilder.personal_settlement("alice", edges)

        assert entry.action == AuditAction.PERSONAL_SETTLEMENT
        assert entry.performed_by == "alice"
        assert entry.source_transaction_id is None
        assert entry.payload["total_give"] == "5"
        assert entry.payload["total_receive"] == "50"
        assert entry.payload["entries"][0] == {"from": "bob", "to": "alice", "amount": "50"}

    def test_mentions_searches_nested_payload(self):
        """Usernames are found inside nested lists and dicts."""
        entry = AuditEntry(
            action=AuditAction.PERSONAL_SETTLEMENT,
            payload={"entries": [{"from": "bob", "to": "alice"}]},
            performed_by="alice",
        )
        assert entry.belongs_to("bob")
        assert entry.belongs_to("alice")
        assert not entry.belongs_to("carol")

    def test_mentions_requires_whole_value(self):
        """A username contained in a longer string doesn't match."""
        entry = AuditEntry(action=AuditAction.CREATED, payload={"description": "paid bob back"})
        assert not entry.mentions("bob")

    def test_to_log_dict(self):
        """Log dict is flat and string-friendly."""
        tx_id = uuid4()
        entry = AuditEntry(action=AuditAction.DELETED, source_transaction_id=tx_id)
        log_dict = entry.to_log_dict()
        assert log_dict["action"] == "DELETED"
        assert log_dict["source_transaction_id"] == str(tx_id)


class TestResultModels:
    """Tests for view and validation models."""

    def test_notification_totals(self):
        """Totals sum each side."""
        view = NotificationView(
            owe=[PersonalSettlement(from_user="a", to_user="b", amount=Decimal("3"))],
            receive=[
                PersonalSettlement(from_user="c", to_user="a", amount=Decimal("4")),
                PersonalSettlement(from_user="d", to_user="a", amount=Decimal("1.5")),
            ],
        )
        assert view.count == 3
        assert view.total_owe == Decimal("3")
        assert view.total_receive == Decimal("5.5")

    def test_validation_result_has_errors(self):
        """Errors make the result invalid."""
        result = ValidationResult(issues=[
            ValidationIssue(field="amount", issue_type="missing", message="x", severity="error"),
            ValidationIssue(field="payee", issue_type="missing", message="y", severity="warning"),
        ])
        assert result.has_errors
        assert result.error_count == 1
        assert result.error_messages() == ["x"]

    def test_validation_result_warnings_only(self):
        """Warnings alone keep the result valid."""
        result = ValidationResult(issues=[
            ValidationIssue(field="payee", issue_type="missing", message="y", severity="warning"),
        ])
        assert result.is_valid

    def test_validation_issue_rejects_unknown_severity(self):
        with pytest.raises(ValidationError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")
