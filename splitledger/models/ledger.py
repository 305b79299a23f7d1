"""
Core Data Models for SplitLedger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Keep money exact (Decimal everywhere, scale preserved)
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Balances and settlement edges are DERIVED models.
They are recomputed from transactions on every read and never persisted.
Only transactions, personal settlements and audit entries are stored.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# RAW LEDGER
# =============================================================================

class Transaction(BaseModel):
    """
    A single raw transaction between two participants.

    The payer is owed `amount` by the payee. Transactions are immutable
    once created; the only other thing that can happen to one is deletion.

    Usernames are stored already normalized (trimmed, lowercase).
    Normalization happens at the write boundary, not here.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        allow_inf_nan=False,
        description="Signed amount; the payer is owed this much by the payee"
    )
    timestamp: Optional[datetime] = Field(
        default=None,
        description="When the transaction happened"
    )
    payer_username: Optional[str] = None
    payee_username: Optional[str] = None
    created_by: Optional[str] = Field(
        default=None,
        description="User who recorded the transaction"
    )

    def involves(self, username: str) -> bool:
        """Is the user the payer, the payee or the creator?"""
        return username in (self.payer_username, self.payee_username, self.created_by)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class Balance(BaseModel):
    """
    Net position of one participant.

    Positive means others owe this user; negative means this user owes others.
    """

    username: str
    net_amount: Decimal

    @property
    def is_creditor(self) -> bool:
        return self.net_amount > 0

    @property
    def is_debtor(self) -> bool:
        return self.net_amount < 0


class SettlementEdge(BaseModel):
    """One payment instruction: `from_user` pays `to_user` the `amount`."""
    model_config = ConfigDict(frozen=True)

    from_user: str = Field(..., min_length=1, description="Debtor")
    to_user: str = Field(..., min_length=1, description="Creditor")
    amount: Decimal = Field(..., gt=0)

    def touches(self, username: str) -> bool:
        return username == self.from_user or username == self.to_user


# =============================================================================
# PERSONAL SETTLEMENTS (OBLIGATIONS)
# =============================================================================

class PersonalSettlement(BaseModel):
    """
    A persisted, actionable obligation between two specific users.

    Created either per transaction (linked via source_transaction_id) or
    as part of a netting snapshot (unlinked).

    CRITICAL: `settled` only ever goes from False to True.
    Once settled, settled_at and settled_by never change.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique obligation ID"
    )
    from_user: str = Field(
        ...,
        description="User who owes money"
    )
    to_user: str = Field(
        ...,
        description="User who should receive"
    )
    amount: Decimal = Field(..., allow_inf_nan=False)

    # Settlement state
    settled: bool = False
    settled_at: Optional[datetime] = None
    settled_by: Optional[str] = None

    # Provenance
    source_transaction_id: Optional[UUID] = Field(
        default=None,
        description="Transaction this obligation was derived from, if any"
    )
    derived_from_transaction: bool = Field(
        default=False,
        description="True when created for a concrete transaction, False for snapshots"
    )
    recipient_registered: bool = Field(
        default=True,
        description="Did the counterparty have an account when this was created?"
    )
    notify_only: bool = Field(
        default=False,
        description="Only alert the user; keep out of balance and graph views"
    )
    created_at: datetime = Field(default_factory=utc_now)

    # Contact annotations, filled in on read and never persisted
    from_user_phone: Optional[str] = None
    to_user_phone: Optional[str] = None

    @model_validator(mode='after')
    def validate_settlement_state(self) -> 'PersonalSettlement':
        """An open obligation cannot carry settlement details."""
        if not self.settled and (self.settled_at or self.settled_by):
            raise ValueError("Unsettled obligation cannot have settled_at or settled_by")
        return self

    def involves(self, username: str) -> bool:
        return username == self.from_user or username == self.to_user

    def mark_settled(self, settled_by: str, settled_at: Optional[datetime] = None) -> 'PersonalSettlement':
        """
        Return a settled copy of this obligation.

        Already-settled obligations are returned unchanged.
        """
        if self.settled:
            return self
        return self.model_copy(update={
            "settled": True,
            "settled_at": settled_at or utc_now(),
            "settled_by": settled_by,
        })


# =============================================================================
# RESULT MODELS
# =============================================================================

class NotificationView(BaseModel):
    """
    What a user should do right now, derived from the current netting run.

    `owe` holds payments the user must make, `receive` payments they should
    get. Both are built fresh from the optimizer, not from stored history.
    """

    owe: list[PersonalSettlement] = Field(default_factory=list)
    receive: list[PersonalSettlement] = Field(default_factory=list)
    is_optimized: bool = True

    @property
    def count(self) -> int:
        return len(self.owe) + len(self.receive)

    @property
    def total_owe(self) -> Decimal:
        return sum((ps.amount for ps in self.owe), Decimal("0"))

    @property
    def total_receive(self) -> Decimal:
        return sum((ps.amount for ps in self.receive), Decimal("0"))


class SettlementComparison(BaseModel):
    """Raw counterparties versus optimized notifications for one user."""

    raw_owe_people: list[str] = Field(
        default_factory=list,
        description="People who paid for the user"
    )
    raw_receive_people: list[str] = Field(
        default_factory=list,
        description="People the user paid for"
    )
    optimized_owe: list[PersonalSettlement] = Field(default_factory=list)
    optimized_receive: list[PersonalSettlement] = Field(default_factory=list)
    raw_count: int = Field(default=0, ge=0)
    optimized_count: int = Field(default=0, ge=0)
    savings: int = Field(
        default=0,
        ge=0,
        description="Payments avoided by netting"
    )


class SettlementResult(BaseModel):
    """
    Outcome of a settle operation.

    Settling never raises for expected failures (unknown id, caller not a
    party, bad input, storage error); it reports them here instead.
    """

    success: bool
    message: Optional[str] = None
    obligation: Optional[PersonalSettlement] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Result of validating one write request."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
