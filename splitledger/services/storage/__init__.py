"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a Google Sheets backend; both are swappable.
"""

from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    IdentityDirectoryInterface,
    ObligationStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from splitledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryIdentityDirectory,
    InMemoryObligationStorage,
    InMemoryTransactionStorage,
)
from splitledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityDirectory,
    GoogleSheetsObligationStorage,
    GoogleSheetsTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "IdentityDirectoryInterface",
    "ObligationStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryIdentityDirectory",
    "InMemoryObligationStorage",
    "InMemoryTransactionStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsIdentityDirectory",
    "GoogleSheetsObligationStorage",
    "GoogleSheetsTransactionStorage",
]
