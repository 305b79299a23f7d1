"""
Personal Settlement Tracker

Maintains the durable, actionable obligations between pairs of users,
separate from the netting edges that are recomputed on every read.

Obligations come from four places:
1. Per transaction: payer -> payee, linked to the transaction id
2. Snapshot: one unlinked obligation per netting edge touching the user
3. Notify-only: a single alert for one user, kept out of balance views
4. Ad-hoc settle: created and settled in one step

DESIGN DECISION: The tracker favors availability over completeness.
Failures while creating, enriching or listing obligations are logged and
turn into "nothing to show". The two settle operations are the exception:
they report failure explicitly through SettlementResult.

CRITICAL: Settling is one-way. Nothing in here ever writes settled=False
over a settled row.
"""

import re
import threading
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from splitledger.models.ledger import (
    NotificationView,
    PersonalSettlement,
    SettlementComparison,
    SettlementEdge,
    SettlementResult,
    Transaction,
    utc_now,
)
from splitledger.services.storage import (
    IdentityDirectoryInterface,
    ObligationStorageInterface,
)


logger = structlog.get_logger(__name__)

_PHONE_NOISE = re.compile(r"[^0-9+]")


# =============================================================================
# HELPERS
# =============================================================================

def normalize_phone_number(raw: Optional[str]) -> Optional[str]:
    """Keep digits and '+'. Returns None if nothing usable is left."""
    if raw is None:
        return None
    cleaned = _PHONE_NOISE.sub("", raw.strip())
    return cleaned or None


def _amount_key(amount: Decimal) -> str:
    # 10, 10.0 and 10.00 are the same obligation
    return format(amount.normalize(), "f")


def dedup_key(ps: PersonalSettlement) -> tuple:
    """
    Identity of an obligation for listing purposes.

    Unlinked obligations also key on created_at so separate snapshot runs
    with identical edges stay separate.
    """
    key = (
        ps.from_user.strip().lower(),
        ps.to_user.strip().lower(),
        _amount_key(ps.amount),
        str(ps.source_transaction_id) if ps.source_transaction_id else "-",
        ps.notify_only,
        ps.recipient_registered,
    )
    if ps.source_transaction_id is None:
        key += (ps.created_at.isoformat(),)
    return key


def dedupe_obligations(entries: Iterable[PersonalSettlement]) -> list[PersonalSettlement]:
    """Collapse duplicates, keeping the first occurrence and the input order."""
    seen: dict[tuple, PersonalSettlement] = {}
    for ps in entries:
        seen.setdefault(dedup_key(ps), ps)
    return list(seen.values())


def _same_user(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


# =============================================================================
# TRACKER
# =============================================================================

class PersonalSettlementTracker:
    """
    Creates, lists and settles personal settlement obligations.

    The identity directory is optional. Without one every counterparty
    counts as registered and no contact details are attached.
    """

    def __init__(
        self,
        storage: ObligationStorageInterface,
        directory: Optional[IdentityDirectoryInterface] = None,
    ):
        self._storage = storage
        self._directory = directory
        self._settle_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Identity lookups
    # -------------------------------------------------------------------------

    def is_registered(self, username: Optional[str]) -> bool:
        if not username or not username.strip():
            return False
        if self._directory is None:
            return True
        try:
            return self._directory.is_registered(username.strip())
        except Exception as e:
            logger.warning("registration_lookup_failed", username=username, error=str(e))
            return False

    def _phone_for(self, username: str) -> Optional[str]:
        if self._directory is None or not username or not username.strip():
            return None
        try:
            return normalize_phone_number(self._directory.find_contact_info(username.strip()))
        except Exception as e:
            logger.warning("contact_lookup_failed", username=username, error=str(e))
            return None

    def attach_contact_details(
        self,
        entries: list[PersonalSettlement],
    ) -> list[PersonalSettlement]:
        """Copies of the entries with both parties' phone numbers filled in."""
        if self._directory is None:
            return entries
        return [
            ps.model_copy(update={
                "from_user_phone": self._phone_for(ps.from_user),
                "to_user_phone": self._phone_for(ps.to_user),
            })
            for ps in entries
        ]

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_for_transaction(self, tx: Transaction) -> Optional[PersonalSettlement]:
        """
        Linked obligation for a freshly saved transaction.

        Best-effort: returns None if the transaction has a blank side or the
        write fails.
        """
        if not tx.payer_username or not tx.payee_username:
            return None
        try:
            obligation = PersonalSettlement(
                from_user=tx.payer_username,
                to_user=tx.payee_username,
                amount=tx.amount,
                source_transaction_id=tx.id,
                derived_from_transaction=True,
                notify_only=False,
                recipient_registered=self.is_registered(tx.payee_username),
            )
            return self._storage.save_obligation(obligation)
        except Exception as e:
            logger.error(
                "transaction_obligation_failed",
                transaction_id=str(tx.id),
                error=str(e),
            )
            return None

    def save_snapshot_obligations(
        self,
        edges: list[SettlementEdge],
        notify_only: bool = False,
        created_at: Optional[datetime] = None,
    ) -> list[PersonalSettlement]:
        """
        One unlinked obligation per edge, all sharing a creation time.

        Best-effort: stops at the first failed write and returns what was saved.
        """
        created_at = created_at or utc_now()
        saved = []
        try:
            for edge in edges:
                saved.append(self._storage.save_obligation(PersonalSettlement(
                    from_user=edge.from_user,
                    to_user=edge.to_user,
                    amount=edge.amount,
                    notify_only=notify_only,
                    recipient_registered=self.is_registered(edge.to_user),
                    created_at=created_at,
                )))
        except Exception as e:
            logger.error(
                "snapshot_obligations_failed",
                saved=len(saved),
                expected=len(edges),
                error=str(e),
            )
        return saved

    def create_notify_only(
        self,
        from_user: str,
        to_user: str,
        amount: Optional[Decimal],
        transaction_id: Optional[UUID] = None,
    ) -> Optional[PersonalSettlement]:
        """A single alert-only obligation. Returns None if it can't be saved."""
        try:
            obligation = PersonalSettlement(
                from_user=from_user,
                to_user=to_user,
                amount=amount if amount is not None else Decimal("0"),
                source_transaction_id=transaction_id,
                notify_only=True,
                recipient_registered=self.is_registered(to_user),
            )
            return self._storage.save_obligation(obligation)
        except Exception as e:
            logger.error(
                "notify_only_obligation_failed",
                from_user=from_user,
                to_user=to_user,
                error=str(e),
            )
            return None

    # -------------------------------------------------------------------------
    # Settling
    # -------------------------------------------------------------------------

    def settle_ad_hoc(
        self,
        from_user: str,
        to_user: str,
        amount: Decimal,
        settled_by: str,
    ) -> SettlementResult:
        """Record a payment that had no stored obligation, already settled."""
        now = utc_now()
        try:
            obligation = PersonalSettlement(
                from_user=from_user,
                to_user=to_user,
                amount=amount,
                recipient_registered=self.is_registered(to_user),
                created_at=now,
            ).mark_settled(settled_by, settled_at=now)
            saved = self._storage.save_obligation(obligation)
        except Exception as e:
            logger.error(
                "ad_hoc_settle_failed",
                from_user=from_user,
                to_user=to_user,
                error=str(e),
            )
            return SettlementResult(success=False, message=f"Failed to persist settlement: {e}")

        logger.info(
            "obligation_settled",
            obligation_id=str(saved.id),
            settled_by=settled_by,
            ad_hoc=True,
        )
        return SettlementResult(success=True, obligation=saved)

    def mark_settled(
        self,
        obligation_id: Optional[UUID],
        acting_user: Optional[str],
    ) -> SettlementResult:
        """
        Confirm a stored obligation as settled.

        Only the debtor or the creditor may do this. Settling twice is a
        no-op that still reports success.
        """
        if obligation_id is None or not acting_user:
            return SettlementResult(success=False, message="Obligation id and user are required")

        with self._settle_lock:
            try:
                obligation = self._storage.get_obligation_by_id(obligation_id)
            except Exception as e:
                logger.error("obligation_lookup_failed", obligation_id=str(obligation_id), error=str(e))
                return SettlementResult(success=False, message=str(e))

            if obligation is None:
                return SettlementResult(success=False, message="Obligation not found")

            if not obligation.involves(acting_user):
                logger.warning(
                    "settle_refused",
                    obligation_id=str(obligation_id),
                    acting_user=acting_user,
                )
                return SettlementResult(
                    success=False,
                    message="Only the payer or the recipient can settle this",
                )

            if obligation.settled:
                return SettlementResult(
                    success=True,
                    message="Already settled",
                    obligation=obligation,
                )

            try:
                saved = self._storage.save_obligation(obligation.mark_settled(acting_user))
            except Exception as e:
                logger.error("settle_write_failed", obligation_id=str(obligation_id), error=str(e))
                return SettlementResult(success=False, message=str(e))

        logger.info("obligation_settled", obligation_id=str(saved.id), settled_by=acting_user)
        return SettlementResult(success=True, obligation=saved)

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def list_for_user(self, username: Optional[str]) -> list[PersonalSettlement]:
        """Every obligation the user is part of, deduplicated, newest first."""
        if not username:
            return []
        try:
            entries = dedupe_obligations(self._storage.list_for_user(username))
            return self.attach_contact_details(entries)
        except Exception as e:
            logger.error("obligation_listing_failed", username=username, error=str(e))
            return []

    def list_unsettled_for_user(self, username: Optional[str]) -> list[PersonalSettlement]:
        """Open obligations the user still has to pay, newest first."""
        if not username:
            return []
        try:
            return self._storage.list_unsettled_from_user(username)
        except Exception as e:
            logger.error("obligation_listing_failed", username=username, error=str(e))
            return []

    def _settled_for_user(self, username: str) -> list[PersonalSettlement]:
        try:
            return [ps for ps in self._storage.list_for_user(username) if ps.settled]
        except Exception as e:
            logger.error("settled_lookup_failed", username=username, error=str(e))
            return []

    def build_notifications(
        self,
        username: Optional[str],
        edges: list[SettlementEdge],
    ) -> NotificationView:
        """
        What the user should do right now.

        Takes the current global edges, drops any that match an obligation
        the user already settled, and splits the rest into owe and receive.
        Receive entries from unregistered counterparties are dropped; owe
        entries are always kept.
        """
        if not username:
            return NotificationView()

        settled = self._settled_for_user(username)
        now = utc_now()
        owe: list[PersonalSettlement] = []
        receive: list[PersonalSettlement] = []

        for edge in edges:
            already_settled = any(
                _same_user(ps.from_user, edge.from_user)
                and _same_user(ps.to_user, edge.to_user)
                and ps.amount == edge.amount
                for ps in settled
            )
            if already_settled:
                continue

            if _same_user(username, edge.from_user):
                owe.append(PersonalSettlement(
                    from_user=edge.from_user,
                    to_user=edge.to_user,
                    amount=edge.amount,
                    recipient_registered=self.is_registered(edge.to_user),
                    created_at=now,
                ))
            elif _same_user(username, edge.to_user):
                receive.append(PersonalSettlement(
                    from_user=edge.from_user,
                    to_user=edge.to_user,
                    amount=edge.amount,
                    recipient_registered=self.is_registered(edge.from_user),
                    created_at=now,
                ))

        receive = [ps for ps in receive if ps.recipient_registered]

        return NotificationView(
            owe=self.attach_contact_details(owe),
            receive=self.attach_contact_details(receive),
        )

    def compare(
        self,
        username: Optional[str],
        transactions: list[Transaction],
        notifications: NotificationView,
    ) -> SettlementComparison:
        """
        Raw counterparties versus optimized notifications.

        Raw counts each distinct person the user paid, plus each distinct
        person who paid the user.
        """
        if not username:
            return SettlementComparison()

        raw_owe_people: list[str] = []
        raw_receive_people: list[str] = []

        for tx in transactions:
            payer = tx.payer_username
            payee = tx.payee_username
            if payer and _same_user(username, payer) and payee:
                if payee not in raw_receive_people:
                    raw_receive_people.append(payee)
            if payee and _same_user(username, payee) and payer:
                if payer not in raw_owe_people:
                    raw_owe_people.append(payer)

        raw_count = len(raw_owe_people) + len(raw_receive_people)
        optimized_count = notifications.count

        return SettlementComparison(
            raw_owe_people=raw_owe_people,
            raw_receive_people=raw_receive_people,
            optimized_owe=notifications.owe,
            optimized_receive=notifications.receive,
            raw_count=raw_count,
            optimized_count=optimized_count,
            savings=max(0, raw_count - optimized_count),
        )

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    def delete_for_transaction(self, transaction_id: UUID) -> int:
        """Prune obligations linked to a deleted transaction. Best-effort."""
        try:
            return self._storage.delete_all_by_transaction_id(transaction_id)
        except Exception as e:
            logger.error(
                "obligation_prune_failed",
                transaction_id=str(transaction_id),
                error=str(e),
            )
            return 0

    def clear(self) -> int:
        """Administrative bulk-clear."""
        return self._storage.delete_all()
