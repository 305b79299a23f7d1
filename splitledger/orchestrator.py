"""
Main Orchestrator for SplitLedger

This module ties together all the components and defines the
operations the presentation shell calls:
1. Ledger writes (record / delete a transaction)
2. Netting reads (balances, edges, instructions)
3. Personal settlements (snapshot, notifications, comparison, settle)
4. History (audit log, per user)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Caller identity is always an explicit argument, never ambient state
- Usernames are normalized here, once, before anything is stored or compared
- Balances and edges are recomputed from storage on every call
- Only the primary write of an operation may fail it; audit entries and
  derived obligations are attempted, logged on failure, and moved past

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import structlog

from splitledger.audit import AuditLogger
from splitledger.config import LedgerSettings, get_settings
from splitledger.models.audit import AuditEntry
from splitledger.models.ledger import (
    Balance,
    NotificationView,
    PersonalSettlement,
    SettlementComparison,
    SettlementEdge,
    SettlementResult,
    Transaction,
    utc_now,
)
from splitledger.netting import (
    compute_balances,
    compute_settlement_edges,
    edges_for_user,
    render_instructions,
    render_instructions_for_user,
)
from splitledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityDirectory,
    GoogleSheetsObligationStorage,
    GoogleSheetsTransactionStorage,
    IdentityDirectoryInterface,
    InMemoryAuditStorage,
    InMemoryObligationStorage,
    InMemoryTransactionStorage,
    ObligationStorageInterface,
    TransactionStorageInterface,
)
from splitledger.settlements import PersonalSettlementTracker
from splitledger.validation import TransactionValidator, normalize_username, parse_amount


logger = structlog.get_logger(__name__)


class InvalidTransactionError(ValueError):
    """A transaction write was refused by validation."""

    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__("; ".join(messages))


def _timestamp_sort_key(tx: Transaction) -> tuple:
    # Rows without a timestamp sort after every dated row
    return (tx.timestamp is not None, tx.timestamp or datetime.min)


class LedgerService:
    """
    Every operation the shell can call on the ledger.

    Stateless between calls: nothing is cached, every read goes back to
    storage.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        obligation_storage: ObligationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        directory: Optional[IdentityDirectoryInterface] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._transactions = transaction_storage
        self._audit = audit_logger or AuditLogger()
        self._tracker = PersonalSettlementTracker(obligation_storage, directory)
        self._validator = TransactionValidator()
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def record_transaction(
        self,
        acting_user: Optional[str],
        payer: Optional[str],
        payee: Optional[str],
        amount: Any,
        description: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        create_obligation: bool = True,
    ) -> Transaction:
        """
        Save a transaction, then audit it and create its linked obligation.

        A blank payer defaults to the acting user. The audit entry and the
        obligation are best-effort; only the save itself can fail this call.

        Raises:
            InvalidTransactionError: If validation finds an error
            StorageError: If the transaction can't be saved
        """
        acting = normalize_username(acting_user)
        payer_name = normalize_username(payer) or acting
        payee_name = normalize_username(payee)

        result = self._validator.validate_transaction(payer_name, payee_name, amount, description)
        if result.has_errors:
            logger.warning(
                "transaction_rejected",
                acting_user=acting,
                issues=result.error_messages(),
            )
            raise InvalidTransactionError(result.error_messages())

        if timestamp is None:
            timestamp = utc_now()
        elif timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        tx = Transaction(
            description=description,
            amount=parse_amount(amount),
            timestamp=timestamp,
            payer_username=payer_name,
            payee_username=payee_name,
            created_by=acting,
        )

        saved = self._transactions.save_transaction(tx)

        self._audit.log_transaction_created(saved, performed_by=acting)
        if create_obligation:
            self._tracker.create_for_transaction(saved)

        return saved

    def delete_transaction(
        self,
        transaction_id: UUID,
        acting_user: Optional[str],
    ) -> bool:
        """
        Delete a transaction and every obligation linked to it.

        A DELETED entry holding the transaction as it was is written only
        once the row is actually gone.

        Returns:
            False if no such transaction exists
        """
        tx = self._transactions.get_transaction_by_id(transaction_id)
        if tx is None:
            return False

        deleted = self._transactions.delete_transaction(transaction_id)
        if deleted:
            self._audit.log_transaction_deleted(tx, performed_by=normalize_username(acting_user))
            self._tracker.delete_for_transaction(transaction_id)
        return deleted

    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            return self._transactions.get_transaction_by_id(transaction_id)
        except Exception as e:
            logger.error("transaction_lookup_failed", transaction_id=str(transaction_id), error=str(e))
            return None

    def list_transactions(self) -> list[Transaction]:
        """Every transaction. Empty if storage can't be read."""
        try:
            return self._transactions.list_transactions()
        except Exception as e:
            logger.error("transaction_listing_failed", error=str(e))
            return []

    def list_transactions_for_user(self, username: Optional[str]) -> list[Transaction]:
        """
        Transactions the user paid, received or recorded, newest first.

        Merges exact and case-insensitive matches, keeping one copy of each.
        """
        name = normalize_username(username)
        if name is None:
            return []

        queries = (
            lambda: self._transactions.list_by_participant(name),
            lambda: self._transactions.list_by_participant(name, ignore_case=True),
            lambda: self._transactions.list_by_creator(name),
            lambda: self._transactions.list_by_creator(name, ignore_case=True),
        )

        merged: dict[UUID, Transaction] = {}
        for query in queries:
            try:
                for tx in query():
                    merged.setdefault(tx.id, tx)
            except Exception as e:
                logger.error("transaction_listing_failed", username=name, error=str(e))

        return sorted(merged.values(), key=_timestamp_sort_key, reverse=True)

    # =========================================================================
    # NETTING
    # =========================================================================

    def compute_balances(self) -> list[Balance]:
        """Net balance of everyone who appears in any transaction."""
        return compute_balances(self.list_transactions())

    def compute_balances_for_user(self, username: Optional[str]) -> list[Balance]:
        """Balances computed only from the user's own transactions."""
        return compute_balances(self.list_transactions_for_user(username))

    def compute_edges(self) -> list[SettlementEdge]:
        return compute_settlement_edges(self.compute_balances())

    def compute_edges_for_user(self, username: Optional[str]) -> list[SettlementEdge]:
        """Global edges touching the user. Empty if none do."""
        name = normalize_username(username)
        if name is None:
            return []
        return edges_for_user(self.compute_edges(), name)

    def optimize_instructions(self) -> list[str]:
        return render_instructions(self.compute_edges(), self._settings.currency_symbol)

    def optimize_instructions_for_user(self, username: Optional[str]) -> list[str]:
        name = normalize_username(username)
        if name is None:
            return []
        return render_instructions_for_user(
            self.compute_edges_for_user(name),
            name,
            self._settings.currency_symbol,
        )

    # =========================================================================
    # PERSONAL SETTLEMENTS
    # =========================================================================

    def save_snapshot(
        self,
        username: Optional[str],
        notify_only: bool = False,
    ) -> AuditEntry:
        """
        Capture the user's current netting edges.

        Writes one PERSONAL_SETTLEMENT audit entry, then one obligation per
        edge. The audit entry is the result, so its failure propagates;
        the obligations are best-effort.

        Raises:
            ValueError: If no username is given
            StorageError: If the audit entry can't be stored
        """
        name = normalize_username(username)
        if name is None:
            raise ValueError("A username is required to save a snapshot")

        edges = self.compute_edges_for_user(name)
        entry = self._audit.log_settlement_snapshot(name, edges)
        self._tracker.save_snapshot_obligations(
            edges,
            notify_only=notify_only,
            created_at=entry.timestamp,
        )
        return entry

    def list_obligations_for_user(self, username: Optional[str]) -> list[PersonalSettlement]:
        return self._tracker.list_for_user(normalize_username(username))

    def list_unsettled_for_user(self, username: Optional[str]) -> list[PersonalSettlement]:
        return self._tracker.list_unsettled_for_user(normalize_username(username))

    def list_notifications(self, username: Optional[str]) -> NotificationView:
        """Fresh owe/receive instructions for the user."""
        name = normalize_username(username)
        if name is None:
            return NotificationView()
        return self._tracker.build_notifications(name, self.compute_edges())

    def compare_raw_vs_optimized(self, username: Optional[str]) -> SettlementComparison:
        name = normalize_username(username)
        if name is None:
            return SettlementComparison()
        return self._tracker.compare(
            name,
            self.list_transactions_for_user(name),
            self.list_notifications(name),
        )

    def mark_settled(
        self,
        obligation_id: Optional[UUID],
        acting_user: Optional[str],
    ) -> SettlementResult:
        return self._tracker.mark_settled(obligation_id, normalize_username(acting_user))

    def settle_ad_hoc(
        self,
        from_user: Optional[str],
        to_user: Optional[str],
        amount: Any,
        acting_user: Optional[str],
    ) -> SettlementResult:
        """
        Settle a payment that has no stored obligation.

        Missing or unusable input is refused before anything is written.
        """
        result = self._validator.validate_ad_hoc_settlement(from_user, to_user, amount)
        if result.has_errors:
            return SettlementResult(
                success=False,
                message="; ".join(result.error_messages()),
            )

        return self._tracker.settle_ad_hoc(
            normalize_username(from_user),
            normalize_username(to_user),
            parse_amount(amount),
            settled_by=normalize_username(acting_user) or "unknown",
        )

    def create_notify_only_obligation(
        self,
        from_user: Optional[str],
        to_user: Optional[str],
        amount: Any,
        transaction_id: Optional[UUID] = None,
    ) -> Optional[PersonalSettlement]:
        """Alert-only obligation. None if it could not be created."""
        from_name = normalize_username(from_user)
        to_name = normalize_username(to_user)
        if from_name is None or to_name is None:
            return None
        return self._tracker.create_notify_only(
            from_name,
            to_name,
            parse_amount(amount),
            transaction_id=transaction_id,
        )

    # =========================================================================
    # HISTORY
    # =========================================================================

    def list_history(self, limit: Optional[int] = None) -> list[AuditEntry]:
        return self._audit.list_history(limit=limit or self._settings.history_limit)

    def list_history_for_user(
        self,
        username: Optional[str],
        limit: Optional[int] = None,
    ) -> list[AuditEntry]:
        name = normalize_username(username)
        if name is None:
            return []
        return self._audit.list_history_for_user(
            name,
            limit=limit or self._settings.history_limit,
        )

    def list_snapshots_for_user(self, username: Optional[str]) -> list[AuditEntry]:
        name = normalize_username(username)
        if name is None:
            return []
        return self._audit.list_snapshots_for_user(name)

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def clear_all(self, acting_user: Optional[str]) -> dict[str, int]:
        """
        Wipe transactions, obligations and history.

        Raises:
            PermissionError: If the caller is not the configured admin
        """
        acting = normalize_username(acting_user)
        if acting != self._settings.admin_username:
            logger.warning("clear_all_refused", acting_user=acting)
            raise PermissionError("Only the administrator can clear the ledger")

        removed = {
            "transactions": self._transactions.delete_all(),
            "obligations": self._tracker.clear(),
            "history": self._audit.clear(),
        }
        logger.warning("ledger_cleared", acting_user=acting, **removed)
        return removed


def create_app_components(
    use_storage: bool = True,
) -> tuple[LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage when the
                    settings select it. Set to False for testing without it.

    Returns:
        (ledger_service, sheets_client)
    """
    settings = get_settings().ledger
    sheets_client = None

    if use_storage and settings.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            service = LedgerService(
                transaction_storage=GoogleSheetsTransactionStorage(sheets_client),
                obligation_storage=GoogleSheetsObligationStorage(sheets_client),
                audit_logger=AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
                directory=GoogleSheetsIdentityDirectory(sheets_client),
                settings=settings,
            )
            return service, sheets_client
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    service = LedgerService(
        transaction_storage=InMemoryTransactionStorage(),
        obligation_storage=InMemoryObligationStorage(),
        audit_logger=AuditLogger(InMemoryAuditStorage()),
        settings=settings,
    )
    return service, sheets_client
