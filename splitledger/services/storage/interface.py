"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the Google Sheets backend in production
2. Use in-memory storage for testing
3. Swap in a relational database later
4. Keep the netting engine decoupled from storage implementation

The interface is intentionally narrow - we're not building a full ORM.
Just the reads and writes the settlement engine needs.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from splitledger.models.ledger import PersonalSettlement, Transaction
from splitledger.models.audit import AuditEntry


class TransactionStorageInterface(ABC):
    """
    Abstract interface for raw transaction storage.

    Transactions are created and deleted, never updated in place.
    """

    @abstractmethod
    def save_transaction(self, tx: Transaction) -> Transaction:
        """
        Save a transaction.

        Returns:
            The stored transaction

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by its ID, or None if unknown."""
        pass

    @abstractmethod
    def list_transactions(self) -> list[Transaction]:
        """Return every transaction in insertion order."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a transaction was deleted, False if none matched
        """
        pass

    @abstractmethod
    def list_by_participant(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        """Transactions where the user is payer or payee."""
        pass

    @abstractmethod
    def list_by_creator(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        """Transactions recorded by the user."""
        pass

    @abstractmethod
    def delete_all(self) -> int:
        """Remove every transaction. Returns how many were removed."""
        pass


class ObligationStorageInterface(ABC):
    """
    Abstract interface for personal settlement storage.

    Obligations are only ever mutated to flip `settled` to True.
    """

    @abstractmethod
    def save_obligation(self, obligation: PersonalSettlement) -> PersonalSettlement:
        """
        Insert or update an obligation (matched by id).

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    def get_obligation_by_id(self, obligation_id: UUID) -> Optional[PersonalSettlement]:
        pass

    @abstractmethod
    def list_for_user(self, username: str) -> list[PersonalSettlement]:
        """
        Obligations where the user is either side.

        Returns:
            Matching obligations, newest first
        """
        pass

    @abstractmethod
    def list_unsettled_from_user(self, username: str) -> list[PersonalSettlement]:
        """Open obligations the user owes, newest first."""
        pass

    @abstractmethod
    def list_by_transaction_id(self, transaction_id: UUID) -> list[PersonalSettlement]:
        pass

    @abstractmethod
    def delete_all_by_transaction_id(self, transaction_id: UUID) -> int:
        """Remove every obligation linked to the transaction."""
        pass

    @abstractmethod
    def delete_all(self) -> int:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never modify them.
    """

    @abstractmethod
    def append_entry(self, entry: AuditEntry) -> bool:
        """
        Append an audit entry to the log.

        Returns:
            True if logged successfully

        Raises:
            StorageError: If the backend rejects the write
        """
        pass

    @abstractmethod
    def list_entries(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """
        Get audit entries.

        Args:
            limit: Maximum number of entries to return

        Returns:
            Entries newest first
        """
        pass

    @abstractmethod
    def delete_all(self) -> int:
        """Administrative bulk-clear. Returns how many entries were removed."""
        pass


class IdentityDirectoryInterface(ABC):
    """
    Read-only view of registered accounts.

    Only used to annotate obligations. The netting algorithm never
    depends on it.
    """

    @abstractmethod
    def is_registered(self, username: str) -> bool:
        pass

    @abstractmethod
    def find_contact_info(self, username: str) -> Optional[str]:
        """Raw phone number on file for the user, if any."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
