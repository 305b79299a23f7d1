"""
Tests for the audit logger.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitledger.audit import AuditLogger
from splitledger.models.audit import AuditAction, AuditEntry
from splitledger.models.ledger import SettlementEdge
from splitledger.services.storage import InMemoryAuditStorage, StorageError


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


def _failing_storage():
    storage = MagicMock()
    storage.append_entry.side_effect = StorageError("sheet offline")
    return storage


class TestAuditLogger:
    """Tests for writing entries."""

    def test_log_persists(self, audit_logger, audit_storage):
        entry = AuditEntry(action=AuditAction.CREATED, performed_by="alice")
        assert audit_logger.log(entry) is True
        assert audit_storage.list_entries() == [entry]

    def test_local_only_logger(self):
        """Without storage, logging still succeeds and history is empty."""
        audit_logger = AuditLogger()
        assert audit_logger.log(AuditEntry(action=AuditAction.CREATED)) is True
        assert audit_logger.list_history() == []
        assert audit_logger.clear() == 0

    def test_storage_failure_swallowed(self):
        audit_logger = AuditLogger(_failing_storage())
        assert audit_logger.log(AuditEntry(action=AuditAction.CREATED)) is False

    def test_required_entry_propagates_failure(self):
        audit_logger = AuditLogger(_failing_storage())
        with pytest.raises(StorageError):
            audit_logger.log(AuditEntry(action=AuditAction.CREATED), required=True)

    def test_snapshot_failure_propagates(self):
        audit_logger = AuditLogger(_failing_storage())
        with pytest.raises(StorageError):
            audit_logger.log_settlement_snapshot("alice", [])

    def test_transaction_entries(self, audit_logger, make_tx):
        tx = make_tx("alice", "bob", "5")
        audit_logger.log_transaction_created(tx, performed_by="alice")
        audit_logger.log_transaction_deleted(tx, performed_by="bob")

        actions = [e.action for e in audit_logger.find_for_transaction(tx.id)]
        assert actions == [AuditAction.DELETED, AuditAction.CREATED]


class TestHistory:
    """Tests for reading entries back."""

    def test_newest_first(self, audit_logger):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for minutes in (5, 1, 10):
            audit_logger.log(AuditEntry(
                action=AuditAction.CREATED,
                timestamp=base + timedelta(minutes=minutes),
            ))

        stamps = [e.timestamp for e in audit_logger.list_history()]
        assert stamps == sorted(stamps, reverse=True)

    def test_limit(self, audit_logger):
        for _ in range(5):
            audit_logger.log(AuditEntry(action=AuditAction.CREATED))
        assert len(audit_logger.list_history(limit=3)) == 3

    def test_per_user_filter(self, audit_logger, make_tx):
        """Performer or anyone named in the payload sees the entry."""
        audit_logger.log_transaction_created(make_tx("alice", "bob", "5"), performed_by="alice")
        audit_logger.log_transaction_created(make_tx("carol", "dave", "5"), performed_by="carol")
        audit_logger.log_settlement_snapshot("erin", [
            SettlementEdge(from_user="bob", to_user="erin", amount=Decimal("1")),
        ])

        assert len(audit_logger.list_history_for_user("alice")) == 1
        assert len(audit_logger.list_history_for_user("bob")) == 2
        assert len(audit_logger.list_history_for_user("erin")) == 1
        assert audit_logger.list_history_for_user("zoe") == []

    def test_snapshots_for_user(self, audit_logger, make_tx):
        audit_logger.log_transaction_created(make_tx("alice", "bob", "5"), performed_by="alice")
        snapshot = audit_logger.log_settlement_snapshot("alice", [])
        audit_logger.log_settlement_snapshot("bob", [])

        assert audit_logger.list_snapshots_for_user("alice") == [snapshot]

    def test_read_failure_is_empty(self):
        storage = MagicMock()
        storage.list_entries.side_effect = StorageError("down")
        assert AuditLogger(storage).list_history() == []

    def test_clear(self, audit_logger):
        audit_logger.log(AuditEntry(action=AuditAction.CREATED))
        audit_logger.log(AuditEntry(action=AuditAction.DELETED))
        assert audit_logger.clear() == 2
        assert audit_logger.list_history() == []


def test_equal_timestamps_keep_latest_append_first():
    storage = InMemoryAuditStorage()
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    first = AuditEntry(action=AuditAction.CREATED, timestamp=stamp)
    second = AuditEntry(action=AuditAction.DELETED, timestamp=stamp)
    storage.append_entry(first)
    storage.append_entry(second)
    assert storage.list_entries() == [second, first]
