"""Personal settlement tracking package."""

from splitledger.settlements.tracker import (
    PersonalSettlementTracker,
    dedup_key,
    dedupe_obligations,
    normalize_phone_number,
)

__all__ = [
    "PersonalSettlementTracker",
    "dedup_key",
    "dedupe_obligations",
    "normalize_phone_number",
]
