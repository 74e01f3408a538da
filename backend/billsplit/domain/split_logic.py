# backend/billsplit/domain/split_logic.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Sequence, Tuple


class SplitLogicError(ValueError):
    """Raised when split inputs are invalid."""


@dataclass(frozen=True)
class Allocation:
    """
    Integer allocation of total_cents across participants.

    amounts_cents is ordered to match the provided participants order.
    """
    total_cents: int
    participants: Tuple[str, ...]
    amounts_cents: Tuple[int, ...]

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(self.participants, self.amounts_cents, strict=True))


def canonical_order(participants: Iterable[Hashable]) -> Tuple[str, ...]:
    """
    Unique participant ids sorted by their string form.

    Every remainder rule in this package walks participants in this order, so
    the same set always yields the same allocation no matter how it was built.
    """
    return tuple(sorted({str(p) for p in participants}))


def check_total_cents(total_cents: int) -> None:
    # bool is an int subclass; True cents is a caller bug
    if not isinstance(total_cents, int) or isinstance(total_cents, bool):
        raise SplitLogicError("total_cents must be an int")
    if total_cents < 0:
        raise SplitLogicError("total_cents must be >= 0")


def _check_participants(participants: Sequence[str]) -> List[str]:
    if not isinstance(participants, (list, tuple)):
        raise SplitLogicError("participants must be a sequence")

    if len(participants) == 0:
        raise SplitLogicError("participants must contain at least 1 participant")

    norm: List[str] = []
    for p in participants:
        if not isinstance(p, str):
            raise SplitLogicError("participant ids must be strings")
        if p.strip() == "":
            raise SplitLogicError("participant ids must be non-empty strings")
        norm.append(p)
    return norm


def split_cents_penny_perfect(total_cents: int, participants: Sequence[str]) -> Allocation:
    """
    Split an integer number of cents evenly:

      base = total_cents // m
      remainder = total_cents % m
      first 'remainder' participants get base + 1, rest get base

    Returns an Allocation whose amounts align to the participants order.
    Callers wanting a repeatable assignment pass canonical_order(...).
    """
    check_total_cents(total_cents)
    norm = _check_participants(participants)

    m = len(norm)
    base = total_cents // m
    remainder = total_cents % m

    amounts = [base + 1 if i < remainder else base for i in range(m)]
    # Safety: ensure penny-perfect sum
    if sum(amounts) != total_cents:
        raise SplitLogicError("internal error: allocation does not sum to total")

    return Allocation(
        total_cents=total_cents,
        participants=tuple(norm),
        amounts_cents=tuple(amounts),
    )


def split_cents_by_weights(
    total_cents: int,
    participants: Sequence[str],
    weights: Sequence[int],
) -> Allocation:
    """
    Split cents proportionally to positive integer weights.

    Every participant except the last gets floor(weight * total / total_weight);
    the last one absorbs whatever the floors left over, so the amounts always
    add back up to total_cents.
    """
    check_total_cents(total_cents)
    norm = _check_participants(participants)

    if len(weights) != len(norm):
        raise SplitLogicError("weights must align with participants")
    for w in weights:
        if not isinstance(w, int) or isinstance(w, bool) or w < 1:
            raise SplitLogicError("weights must be ints >= 1")

    total_weight = sum(weights)
    amounts = [w * total_cents // total_weight for w in weights[:-1]]
    amounts.append(total_cents - sum(amounts))

    if amounts[-1] < 0:
        raise SplitLogicError("internal error: last allocation is negative")

    return Allocation(
        total_cents=total_cents,
        participants=tuple(norm),
        amounts_cents=tuple(amounts),
    )
