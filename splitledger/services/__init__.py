"""Services package."""

from splitledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    IdentityDirectoryInterface,
    ObligationStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "IdentityDirectoryInterface",
    "ObligationStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]
