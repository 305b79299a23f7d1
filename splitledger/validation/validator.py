"""
Write-Boundary Validation

DESIGN DECISION: Validation happens once, where data enters the ledger.

Every username is normalized (trimmed, lowercase) here and nowhere else,
so the aggregator and optimizer can treat usernames as already canonical.

Issues come in two levels:
- ERROR: the write is refused before anything is stored
- WARNING: the write goes ahead, the caller may want to surface it

IMPORTANT: Validation NEVER silently fixes issues beyond normalizing names.
It reports them.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from splitledger.models.ledger import ValidationIssue, ValidationResult


DESCRIPTION_MAX_LENGTH = 500


def normalize_username(value: Optional[str]) -> Optional[str]:
    """Canonical form of a username, or None when blank."""
    if value is None:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount without going through float.

    Returns None when the value is missing, unparseable or not finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class TransactionValidator:
    """Validates transaction writes and ad-hoc settlements."""

    def _check_amount(self, raw: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
            return None

        amount = parse_amount(raw)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Amount '{raw}' is not a valid number",
                severity="error",
            ))
        return amount

    def validate_transaction(
        self,
        payer: Optional[str],
        payee: Optional[str],
        amount: Any,
        description: Optional[str] = None,
    ) -> ValidationResult:
        """
        Check a transaction before it is saved.

        A missing payer or payee is only a warning: the row is stored but
        the aggregator will skip it.
        """
        issues: list[ValidationIssue] = []

        parsed = self._check_amount(amount, issues)
        if parsed is not None and parsed == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero and will not change any balance",
                severity="warning",
            ))

        if description and len(description) > DESCRIPTION_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description exceeds {DESCRIPTION_MAX_LENGTH} characters",
                severity="error",
            ))

        payer_name = normalize_username(payer)
        payee_name = normalize_username(payee)

        for field, name in (("payer_username", payer_name), ("payee_username", payee_name)):
            if name is None:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field} is blank; this transaction will not count toward balances",
                    severity="warning",
                ))

        if payer_name and payer_name == payee_name:
            issues.append(ValidationIssue(
                field="payee_username",
                issue_type="self_payment",
                message="Payer and payee are the same person",
                severity="warning",
            ))

        return ValidationResult(issues=issues)

    def validate_ad_hoc_settlement(
        self,
        from_user: Optional[str],
        to_user: Optional[str],
        amount: Any,
    ) -> ValidationResult:
        """All three of from, to and amount must be present and usable."""
        issues: list[ValidationIssue] = []

        if normalize_username(from_user) is None:
            issues.append(ValidationIssue(
                field="from_user",
                issue_type="missing",
                message="Missing from_user",
                severity="error",
            ))
        if normalize_username(to_user) is None:
            issues.append(ValidationIssue(
                field="to_user",
                issue_type="missing",
                message="Missing to_user",
                severity="error",
            ))

        self._check_amount(amount, issues)

        return ValidationResult(issues=issues)

    def get_summary(self, result: ValidationResult) -> str:
        """One line per problem, errors first."""
        if not result.issues:
            return "All checks passed."

        lines = [f"Error: {issue.message}" for issue in result.issues if issue.severity == "error"]
        lines.extend(
            f"Warning: {issue.message}"
            for issue in result.issues
            if issue.severity == "warning"
        )
        return "\n".join(lines)
