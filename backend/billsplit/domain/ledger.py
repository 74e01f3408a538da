# backend/billsplit/domain/ledger.py
"""
Inputs for the balance ledger: who pays by default, what each split does to
running balances, and how far a split has been settled.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Sequence

from billsplit.domain.models import InvalidParticipantSet, ModelValidationError, SplitResult
from billsplit.domain.split_logic import canonical_order


@dataclass(frozen=True)
class Contact:
    """
    A resolved participant from the contact directory.
    Only used to pick a default payer; the money math never looks at it.
    """
    id: str
    display_name: str
    is_current_user: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ModelValidationError("Contact.id must be a non-empty string")
        if not isinstance(self.display_name, str) or not self.display_name.strip():
            raise ModelValidationError("Contact.display_name must be a non-empty string")


def select_default_payer(contacts: Sequence[Contact], current_user_id: Optional[str] = None) -> str:
    """
    Pick who paid when the user has not chosen yet.

    current_user_id wins when it is one of the contacts, then a contact
    flagged is_current_user, then the first contact in canonical id order.
    """
    if not contacts:
        raise InvalidParticipantSet("cannot pick a payer from an empty participant set")

    ids = {c.id for c in contacts}
    if current_user_id is not None and current_user_id in ids:
        return current_user_id

    flagged = canonical_order(c.id for c in contacts if c.is_current_user)
    if flagged:
        return flagged[0]
    return canonical_order(ids)[0]


def balance_deltas(result: SplitResult, payer_id: str) -> Dict[str, int]:
    """
    Signed balance changes for one split.

    Every participant other than the payer owes their amount (negative
    delta); the payer is owed everyone else's amounts (positive delta). The
    payer's own share cancels out. Deltas always sum to zero.
    """
    if not result.details:
        raise InvalidParticipantSet("cannot compute balance deltas for an empty split")
    if not isinstance(payer_id, str) or not payer_id.strip():
        raise ModelValidationError("payer_id must be a non-empty string")

    deltas: Dict[str, int] = {}
    owed_to_payer = 0
    for pid in canonical_order(result.details):
        if pid == payer_id:
            continue
        amount = result.details[pid].amount_cents
        deltas[pid] = -amount
        owed_to_payer += amount

    deltas[payer_id] = owed_to_payer
    return deltas


@dataclass(frozen=True)
class SettlementSummary:
    total_settled_cents: int
    total_pending_cents: int
    settled_count: int
    pending_count: int

    @property
    def is_fully_settled(self) -> bool:
        return self.pending_count == 0

    @property
    def progress(self) -> Decimal:
        """Settled share of the total, 0..1 to four places."""
        total = self.total_settled_cents + self.total_pending_cents
        if total == 0:
            return Decimal(1) if self.is_fully_settled else Decimal(0)
        return (Decimal(self.total_settled_cents) / Decimal(total)).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_settled_cents": self.total_settled_cents,
            "total_pending_cents": self.total_pending_cents,
            "settled_count": self.settled_count,
            "pending_count": self.pending_count,
            "is_fully_settled": self.is_fully_settled,
            "progress": str(self.progress),
        }


def settlement_summary(result: SplitResult, paid_ids: Iterable[str]) -> SettlementSummary:
    """
    How much of a split has been paid back.

    paid_ids not in the split are ignored.
    """
    paid = set(paid_ids)
    settled = [d.amount_cents for pid, d in result.details.items() if pid in paid]
    pending = [d.amount_cents for pid, d in result.details.items() if pid not in paid]
    return SettlementSummary(
        total_settled_cents=sum(settled),
        total_pending_cents=sum(pending),
        settled_count=len(settled),
        pending_count=len(pending),
    )
