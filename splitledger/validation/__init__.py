"""Validation package."""

from splitledger.validation.validator import (
    TransactionValidator,
    normalize_username,
    parse_amount,
)

__all__ = ["TransactionValidator", "normalize_username", "parse_amount"]
