"""
Data Models Package

This package contains all Pydantic models used in SplitLedger.
All data flowing through the system must conform to these schemas.
"""

from splitledger.models.ledger import (
    Balance,
    NotificationView,
    PersonalSettlement,
    SettlementComparison,
    SettlementEdge,
    SettlementResult,
    Transaction,
    ValidationIssue,
    ValidationResult,
    utc_now,
)
from splitledger.models.audit import (
    AuditAction,
    AuditEntry,
    AuditEntryBuilder,
)

__all__ = [
    # Ledger models
    "Balance",
    "NotificationView",
    "PersonalSettlement",
    "SettlementComparison",
    "SettlementEdge",
    "SettlementResult",
    "Transaction",
    "ValidationIssue",
    "ValidationResult",
    "utc_now",
    # Audit models
    "AuditAction",
    "AuditEntry",
    "AuditEntryBuilder",
]
