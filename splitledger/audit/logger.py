"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Complete traceability of created and deleted transactions
2. Debugging capability
3. Users can see the history of everything they took part in
4. Saved settlement snapshots to look back at

The audit logger:
- Gracefully handles failures (doesn't crash the app if logging fails)
- Lets the caller mark an entry as required when the entry IS the result
- Filters history per participant by looking inside the payload
"""

from typing import Optional
from uuid import UUID

import structlog

from splitledger.models.audit import AuditAction, AuditEntry, AuditEntryBuilder
from splitledger.models.ledger import SettlementEdge, Transaction
from splitledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs entries both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and user-visible history)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    def log(self, entry: AuditEntry, required: bool = False) -> bool:
        """
        Log an audit entry.

        Always logs locally. Persists to storage if available.

        Args:
            entry: The entry to record
            required: Re-raise storage failures instead of swallowing them

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        self._logger.info("audit_entry", **entry.to_log_dict())

        # Persist to storage if available
        if self._storage:
            try:
                return self._storage.append_entry(entry)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    entry_id=str(entry.id),
                    action=entry.action.value,
                )
                if required:
                    raise
                return False

        return True

    def log_transaction_created(
        self,
        tx: Transaction,
        performed_by: Optional[str],
    ) -> bool:
        """Log a new transaction."""
        entry = AuditEntryBuilder.transaction_created(tx, performed_by=performed_by)
        return self.log(entry)

    def log_transaction_deleted(
        self,
        tx: Transaction,
        performed_by: Optional[str],
    ) -> bool:
        """Log a deletion, keeping the transaction as it was before removal."""
        entry = AuditEntryBuilder.transaction_deleted(tx, performed_by=performed_by)
        return self.log(entry)

    def log_settlement_snapshot(
        self,
        username: str,
        edges: list[SettlementEdge],
    ) -> AuditEntry:
        """
        Record a user's settlement snapshot.

        The entry is the snapshot itself, so a storage failure propagates.
        """
        entry = AuditEntryBuilder.personal_settlement(username, edges)
        self.log(entry, required=True)
        return entry

    def list_history(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """All entries, newest first. Empty when storage is unavailable."""
        if not self._storage:
            return []
        try:
            return self._storage.list_entries(limit=limit)
        except Exception as e:
            self._logger.error("audit_read_failed", error=str(e))
            return []

    def list_history_for_user(
        self,
        username: str,
        limit: Optional[int] = None,
    ) -> list[AuditEntry]:
        """
        Entries the user performed or appears in, newest first.

        The limit applies after filtering.
        """
        entries = [e for e in self.list_history() if e.belongs_to(username)]
        return entries[:limit] if limit is not None else entries

    def list_snapshots_for_user(self, username: str) -> list[AuditEntry]:
        """Settlement snapshots the user saved, newest first."""
        return [
            e for e in self.list_history()
            if e.action == AuditAction.PERSONAL_SETTLEMENT
            and e.performed_by == username
        ]

    def find_for_transaction(self, transaction_id: UUID) -> list[AuditEntry]:
        """Every entry about one transaction, newest first."""
        return [
            e for e in self.list_history()
            if e.source_transaction_id == transaction_id
        ]

    def clear(self) -> int:
        """
        Administrative bulk-clear.

        The only way entries ever leave the log.
        """
        if not self._storage:
            return 0
        count = self._storage.delete_all()
        self._logger.warning("audit_log_cleared", removed=count)
        return count
