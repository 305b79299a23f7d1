"""
Audit Models for SplitLedger

Every change to the ledger is recorded for audit purposes.
This provides:
1. Complete traceability of created and deleted transactions
2. A pre-deletion snapshot of anything that was removed
3. Saved settlement snapshots users can look back at
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never modify them.
The only deletion is an explicit administrative bulk-clear.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from splitledger.models.ledger import SettlementEdge, Transaction, utc_now


class AuditAction(str, Enum):
    """Types of events we audit."""
    CREATED = "CREATED"
    DELETED = "DELETED"
    PERSONAL_SETTLEMENT = "PERSONAL_SETTLEMENT"


class AuditEntry(BaseModel):
    """
    A single audit entry.

    The payload is a structured snapshot, not a human message, so that
    history can be parsed and filtered by participant.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry identifier"
    )
    source_transaction_id: Optional[UUID] = Field(
        default=None,
        description="Transaction this entry is about, if any"
    )
    action: AuditAction
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured snapshot of the subject"
    )
    performed_by: Optional[str] = None
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the entry was recorded (UTC)"
    )

    def mentions(self, username: str) -> bool:
        """Does the username appear anywhere inside the payload?"""
        return _contains_value(self.payload, username)

    def belongs_to(self, username: str) -> bool:
        """Entries belong to whoever performed them and to every participant."""
        return self.performed_by == username or self.mentions(username)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "entry_id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "source_transaction_id": (
                str(self.source_transaction_id) if self.source_transaction_id else None
            ),
            "performed_by": self.performed_by,
            "payload": self.payload,
        }


def _contains_value(node: Any, needle: str) -> bool:
    if isinstance(node, dict):
        return any(_contains_value(value, needle) for value in node.values())
    if isinstance(node, (list, tuple)):
        return any(_contains_value(item, needle) for item in node)
    return isinstance(node, str) and node == needle


class AuditEntryBuilder:
    """
    Helper class to build audit entries with common patterns.

    Usage:
        entry = AuditEntryBuilder.transaction_created(tx, performed_by="alice")
        entry = AuditEntryBuilder.personal_settlement("alice", edges)
    """

    @staticmethod
    def transaction_payload(tx: Transaction, recorded_at: datetime) -> dict[str, Any]:
        # amount is kept as a string so its scale survives JSON round trips
        return {
            "id": str(tx.id),
            "payer_username": tx.payer_username or "",
            "payee_username": tx.payee_username or "",
            "amount": str(tx.amount),
            "description": tx.description or "",
            "timestamp": tx.timestamp.isoformat() if tx.timestamp else None,
            "created_by": tx.created_by or "",
            "recorded_at": recorded_at.isoformat(),
        }

    @staticmethod
    def transaction_created(
        tx: Transaction,
        performed_by: Optional[str],
    ) -> AuditEntry:
        recorded_at = utc_now()
        return AuditEntry(
            source_transaction_id=tx.id,
            action=AuditAction.CREATED,
            payload=AuditEntryBuilder.transaction_payload(tx, recorded_at),
            performed_by=performed_by,
            timestamp=recorded_at,
        )

    @staticmethod
    def transaction_deleted(
        tx: Transaction,
        performed_by: Optional[str],
    ) -> AuditEntry:
        recorded_at = utc_now()
        return AuditEntry(
            source_transaction_id=tx.id,
            action=AuditAction.DELETED,
            payload=AuditEntryBuilder.transaction_payload(tx, recorded_at),
            performed_by=performed_by,
            timestamp=recorded_at,
        )

    @staticmethod
    def personal_settlement(
        username: str,
        edges: list[SettlementEdge],
        snapshot_at: Optional[datetime] = None,
    ) -> AuditEntry:
        """
        Snapshot of every netting edge touching the user.

        total_give sums edges the user pays, total_receive edges they are paid.
        """
        snapshot_at = snapshot_at or utc_now()
        total_give = Decimal("0")
        total_receive = Decimal("0")
        for edge in edges:
            if edge.from_user == username:
                total_give += edge.amount
            elif edge.to_user == username:
                total_receive += edge.amount

        return AuditEntry(
            action=AuditAction.PERSONAL_SETTLEMENT,
            payload={
                "snapshot_at": snapshot_at.isoformat(),
                "username": username,
                "total_give": str(total_give),
                "total_receive": str(total_receive),
                "entries": [
                    {
                        "from": edge.from_user,
                        "to": edge.to_user,
                        "amount": str(edge.amount),
                    }
                    for edge in edges
                ],
            },
            performed_by=username,
            timestamp=snapshot_at,
        )
