"""
In-Memory Storage Implementation

Used for tests and local runs where no spreadsheet is configured.
Follows the same abstract interface as the Google Sheets backend, so the
settlement engine cannot tell them apart.

Each store guards its rows with a lock so a single read-modify-write
(e.g. settling one obligation) is atomic.
"""

import threading
from typing import Optional
from uuid import UUID

from splitledger.models.ledger import PersonalSettlement, Transaction
from splitledger.models.audit import AuditEntry
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    IdentityDirectoryInterface,
    ObligationStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


def _same(a: Optional[str], b: str, ignore_case: bool) -> bool:
    if a is None:
        return False
    if ignore_case:
        return a.strip().lower() == b.strip().lower()
    return a == b


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in a dict, in insertion order."""

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}
        self._lock = threading.Lock()

    def save_transaction(self, tx: Transaction) -> Transaction:
        with self._lock:
            if tx.id in self._rows:
                raise DuplicateError(f"Transaction already exists: {tx.id}")
            self._rows[tx.id] = tx
        return tx

    def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        with self._lock:
            return self._rows.get(transaction_id)

    def list_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._rows.values())

    def delete_transaction(self, transaction_id: UUID) -> bool:
        with self._lock:
            return self._rows.pop(transaction_id, None) is not None

    def list_by_participant(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        return [
            tx for tx in self.list_transactions()
            if _same(tx.payer_username, username, ignore_case)
            or _same(tx.payee_username, username, ignore_case)
        ]

    def list_by_creator(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        return [
            tx for tx in self.list_transactions()
            if _same(tx.created_by, username, ignore_case)
        ]

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._rows)
            self._rows.clear()
        return count


class InMemoryObligationStorage(ObligationStorageInterface):
    """Personal settlements kept in a dict keyed by id."""

    def __init__(self):
        self._rows: dict[UUID, PersonalSettlement] = {}
        self._lock = threading.Lock()

    def save_obligation(self, obligation: PersonalSettlement) -> PersonalSettlement:
        with self._lock:
            existing = self._rows.get(obligation.id)
            if existing is not None and existing.settled and not obligation.settled:
                raise StorageError(f"Obligation {obligation.id} is settled and cannot be reopened")
            self._rows[obligation.id] = obligation
        return obligation

    def get_obligation_by_id(self, obligation_id: UUID) -> Optional[PersonalSettlement]:
        with self._lock:
            return self._rows.get(obligation_id)

    def _newest_first(self, rows: list[PersonalSettlement]) -> list[PersonalSettlement]:
        return sorted(rows, key=lambda ps: ps.created_at, reverse=True)

    def list_for_user(self, username: str) -> list[PersonalSettlement]:
        with self._lock:
            rows = [ps for ps in self._rows.values() if ps.involves(username)]
        return self._newest_first(rows)

    def list_unsettled_from_user(self, username: str) -> list[PersonalSettlement]:
        with self._lock:
            rows = [
                ps for ps in self._rows.values()
                if ps.from_user == username and not ps.settled
            ]
        return self._newest_first(rows)

    def list_by_transaction_id(self, transaction_id: UUID) -> list[PersonalSettlement]:
        with self._lock:
            return [
                ps for ps in self._rows.values()
                if ps.source_transaction_id == transaction_id
            ]

    def delete_all_by_transaction_id(self, transaction_id: UUID) -> int:
        with self._lock:
            doomed = [
                key for key, ps in self._rows.items()
                if ps.source_transaction_id == transaction_id
            ]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._rows)
            self._rows.clear()
        return count


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit entries."""

    def __init__(self):
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def append_entry(self, entry: AuditEntry) -> bool:
        with self._lock:
            self._entries.append(entry)
        return True

    def list_entries(self, limit: Optional[int] = None) -> list[AuditEntry]:
        with self._lock:
            # stable sort keeps later appends first among equal timestamps
            entries = sorted(
                reversed(self._entries),
                key=lambda e: e.timestamp,
                reverse=True,
            )
        return entries[:limit] if limit is not None else entries

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count


class InMemoryIdentityDirectory(IdentityDirectoryInterface):
    """
    Registered users and their phone numbers.

    Lookups are case-insensitive, like the account table they stand in for.
    """

    def __init__(self, users: Optional[dict[str, Optional[str]]] = None):
        self._users: dict[str, Optional[str]] = {}
        for username, phone in (users or {}).items():
            self.register(username, phone)

    def register(self, username: str, phone: Optional[str] = None) -> None:
        self._users[username.strip().lower()] = phone

    def is_registered(self, username: str) -> bool:
        if not username or not username.strip():
            return False
        return username.strip().lower() in self._users

    def find_contact_info(self, username: str) -> Optional[str]:
        if not username or not username.strip():
            return None
        return self._users.get(username.strip().lower())
