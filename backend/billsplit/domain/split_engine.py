# backend/billsplit/domain/split_engine.py
"""
Split allocation engine.

Pure functions from (total, participants, strategy, raw inputs) to a
SplitResult. Nothing here keeps state or mutates its arguments: the update
helpers return a new raw-input mapping and the caller recomputes.

Equal and Shares always reconstruct the total exactly. Exact amounts and
Percentages report imbalance instead of correcting the caller's numbers.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from fractions import Fraction
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from billsplit.domain.models import (
    DEFAULT_LIMITS,
    AllocationStrategy,
    RawInput,
    SplitDetail,
    SplitInput,
    SplitLimits,
    SplitResult,
)
from billsplit.domain.money import (
    HUNDRED,
    cents_to_str,
    percentage_of_cents,
    ratio_to_percentage,
    round_half_up,
    to_percentage,
)
from billsplit.domain.split_logic import (
    SplitLogicError,
    check_total_cents,
    canonical_order,
    split_cents_by_weights,
    split_cents_penny_perfect,
)

logger = logging.getLogger(__name__)

RawInputs = Mapping[str, RawInput]


def calculate(split_input: SplitInput, *, limits: SplitLimits = DEFAULT_LIMITS) -> SplitResult:
    """
    Allocate split_input.total_cents among its participants.

    An empty participant set yields an empty (balanced) result. A negative
    total is a caller bug and raises SplitLogicError.
    """
    check_total_cents(split_input.total_cents)
    ordered = canonical_order(split_input.participants)
    if not ordered:
        return SplitResult(strategy=split_input.strategy, total_cents=split_input.total_cents, details={})

    handler = _HANDLERS[split_input.strategy]
    result = handler(split_input, ordered, limits)
    logger.debug(
        "split %s total=%d participants=%d allocated=%d balanced=%s",
        split_input.strategy.value,
        split_input.total_cents,
        len(ordered),
        result.allocated_cents,
        result.is_balanced,
    )
    return result


def calculate_split(
    total_cents: int,
    participants: Iterable[str],
    strategy: AllocationStrategy,
    raw_inputs: Optional[RawInputs] = None,
    *,
    limits: SplitLimits = DEFAULT_LIMITS,
) -> SplitResult:
    split_input = SplitInput(
        total_cents=total_cents,
        participants=frozenset(participants),
        strategy=strategy,
        raw_inputs=raw_inputs or {},
    )
    return calculate(split_input, limits=limits)


def is_balanced(
    total_cents: int,
    participants: Iterable[str],
    strategy: AllocationStrategy,
    raw_inputs: Optional[RawInputs] = None,
    *,
    limits: SplitLimits = DEFAULT_LIMITS,
) -> bool:
    return calculate_split(total_cents, participants, strategy, raw_inputs, limits=limits).is_balanced


def remaining_amount(
    total_cents: int,
    participants: Iterable[str],
    strategy: AllocationStrategy,
    raw_inputs: Optional[RawInputs] = None,
    *,
    limits: SplitLimits = DEFAULT_LIMITS,
) -> int:
    """Unallocated minor units; always 0 for Equal, Shares and Adjustments."""
    return calculate_split(total_cents, participants, strategy, raw_inputs, limits=limits).remaining_cents


# ---------------------------------------------------------------------------
# strategies
# ---------------------------------------------------------------------------

def _equal(split_input: SplitInput, ordered: Tuple[str, ...], limits: SplitLimits) -> SplitResult:
    alloc = split_cents_penny_perfect(split_input.total_cents, ordered)
    percentage = ratio_to_percentage(1, len(ordered))
    details = {
        pid: SplitDetail(amount_cents=cents, percentage=percentage)
        for pid, cents in alloc.as_dict().items()
    }
    return SplitResult(strategy=split_input.strategy, total_cents=split_input.total_cents, details=details)


def _exact_amounts(split_input: SplitInput, ordered: Tuple[str, ...], limits: SplitLimits) -> SplitResult:
    total = split_input.total_cents
    details: Dict[str, SplitDetail] = {}
    for pid in ordered:
        amount = split_input.raw_for(pid).amount_cents or 0
        details[pid] = SplitDetail(amount_cents=amount, percentage=ratio_to_percentage(amount, total))

    allocated = sum(d.amount_cents for d in details.values())
    remaining = max(0, total - allocated)
    return SplitResult(
        strategy=split_input.strategy,
        total_cents=total,
        details=details,
        is_balanced=allocated == total,
        remaining_cents=remaining,
        remaining_percentage=ratio_to_percentage(remaining, total),
        over_allocated_cents=max(0, allocated - total),
    )


def _percentages(split_input: SplitInput, ordered: Tuple[str, ...], limits: SplitLimits) -> SplitResult:
    # Each amount is rounded on its own; the rounded amounts may miss the
    # total by a few cents and that drift is reported, not corrected.
    total = split_input.total_cents
    details: Dict[str, SplitDetail] = {}
    percentage_sum = Decimal(0)
    for pid in ordered:
        percentage = split_input.raw_for(pid).percentage
        if percentage is None:
            percentage = Decimal(0)
        percentage_sum += percentage
        details[pid] = SplitDetail(
            amount_cents=percentage_of_cents(percentage, total),
            percentage=percentage,
        )

    missing = max(Decimal(0), HUNDRED - percentage_sum)
    excess = max(Decimal(0), percentage_sum - HUNDRED)
    return SplitResult(
        strategy=split_input.strategy,
        total_cents=total,
        details=details,
        is_balanced=abs(percentage_sum - HUNDRED) < limits.percentage_tolerance,
        remaining_cents=percentage_of_cents(missing, total),
        remaining_percentage=missing,
        over_allocated_cents=percentage_of_cents(excess, total),
    )


def _shares(split_input: SplitInput, ordered: Tuple[str, ...], limits: SplitLimits) -> SplitResult:
    shares = [split_input.raw_for(pid).shares or 1 for pid in ordered]
    total_shares = sum(shares)
    alloc = split_cents_by_weights(split_input.total_cents, ordered, shares)
    details = {
        pid: SplitDetail(
            amount_cents=cents,
            percentage=ratio_to_percentage(share, total_shares),
            shares=share,
        )
        for pid, cents, share in zip(alloc.participants, alloc.amounts_cents, shares, strict=True)
    }
    return SplitResult(strategy=split_input.strategy, total_cents=split_input.total_cents, details=details)


def _adjustments(split_input: SplitInput, ordered: Tuple[str, ...], limits: SplitLimits) -> SplitResult:
    # Reported as balanced even when clamping at zero makes the amounts
    # overshoot the total (e.g. one adjustment far below the base).
    total = split_input.total_cents
    adjustments = {pid: split_input.raw_for(pid).adjustment_cents or 0 for pid in ordered}
    base = Fraction(total - sum(adjustments.values()), len(ordered))

    details: Dict[str, SplitDetail] = {}
    for pid in ordered:
        amount = max(0, round_half_up(base + adjustments[pid]))
        details[pid] = SplitDetail(
            amount_cents=amount,
            percentage=ratio_to_percentage(amount, total),
            adjustment_cents=adjustments[pid],
        )
    return SplitResult(strategy=split_input.strategy, total_cents=total, details=details)


_HANDLERS: Dict[AllocationStrategy, Callable[[SplitInput, Tuple[str, ...], SplitLimits], SplitResult]] = {
    AllocationStrategy.EQUAL: _equal,
    AllocationStrategy.EXACT_AMOUNTS: _exact_amounts,
    AllocationStrategy.PERCENTAGES: _percentages,
    AllocationStrategy.SHARES: _shares,
    AllocationStrategy.ADJUSTMENTS: _adjustments,
}


# ---------------------------------------------------------------------------
# raw input staging
# ---------------------------------------------------------------------------

def initialize_defaults(
    participants: Iterable[str],
    strategy: AllocationStrategy,
    total_cents: int,
    raw_inputs: Optional[RawInputs] = None,
) -> Dict[str, RawInput]:
    """
    Seed starting values for the strategy without touching values already set.

    Exact amounts get the penny-perfect equal split of the total and
    percentages an equal split of 100.00, so a freshly seeded split is
    balanced. Shares start at 1, adjustments at 0.
    """
    check_total_cents(total_cents)
    strategy = AllocationStrategy(strategy)
    seeded: Dict[str, RawInput] = {str(k): v for k, v in (raw_inputs or {}).items()}
    ordered = canonical_order(participants)
    if not ordered:
        return seeded

    if strategy is AllocationStrategy.EXACT_AMOUNTS:
        equal = split_cents_penny_perfect(total_cents, ordered).as_dict()
        defaults = {pid: {"amount_cents": equal[pid]} for pid in ordered}
    elif strategy is AllocationStrategy.PERCENTAGES:
        # hundredths of a percent, so the seeded percentages add up to 100 exactly
        basis_points = split_cents_penny_perfect(10_000, ordered).as_dict()
        defaults = {pid: {"percentage": Decimal(basis_points[pid]).scaleb(-2)} for pid in ordered}
    elif strategy is AllocationStrategy.SHARES:
        defaults = {pid: {"shares": 1} for pid in ordered}
    elif strategy is AllocationStrategy.ADJUSTMENTS:
        defaults = {pid: {"adjustment_cents": 0} for pid in ordered}
    else:
        defaults = {pid: {} for pid in ordered}

    for pid in ordered:
        existing = seeded.get(pid)
        if existing is None:
            seeded[pid] = RawInput(**defaults[pid])
        elif existing.value_for(strategy) is None and defaults[pid]:
            seeded[pid] = replace(existing, **defaults[pid])
    return seeded


def _update(raw_inputs: Optional[RawInputs], participant_id: str, **changes) -> Dict[str, RawInput]:
    updated: Dict[str, RawInput] = dict(raw_inputs or {})
    current = updated.get(str(participant_id)) or RawInput()
    updated[str(participant_id)] = replace(current, **changes)
    return updated


def set_exact_amount(raw_inputs: Optional[RawInputs], participant_id: str, amount_cents: int) -> Dict[str, RawInput]:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise SplitLogicError("amount_cents must be an int")
    return _update(raw_inputs, participant_id, amount_cents=max(0, amount_cents))


def set_percentage(raw_inputs: Optional[RawInputs], participant_id: str, percentage) -> Dict[str, RawInput]:
    value = to_percentage(percentage)
    return _update(raw_inputs, participant_id, percentage=max(Decimal(0), min(HUNDRED, value)))


def set_shares(
    raw_inputs: Optional[RawInputs],
    participant_id: str,
    shares: int,
    *,
    limits: SplitLimits = DEFAULT_LIMITS,
) -> Dict[str, RawInput]:
    if not isinstance(shares, int) or isinstance(shares, bool):
        raise SplitLogicError("shares must be an int")
    return _update(raw_inputs, participant_id, shares=max(limits.min_shares, min(limits.max_shares, shares)))


def set_adjustment(raw_inputs: Optional[RawInputs], participant_id: str, adjustment_cents: int) -> Dict[str, RawInput]:
    if not isinstance(adjustment_cents, int) or isinstance(adjustment_cents, bool):
        raise SplitLogicError("adjustment_cents must be an int")
    return _update(raw_inputs, participant_id, adjustment_cents=adjustment_cents)


# ---------------------------------------------------------------------------
# display
# ---------------------------------------------------------------------------

def _format_percentage(value: Decimal) -> str:
    text = f"{value:.2f}"
    return text.rstrip("0").rstrip(".")


def validation_message(result: SplitResult, *, symbol: str = "$") -> str:
    """Short status line shown under the split editor."""
    strategy = result.strategy
    details = result.details

    if strategy is AllocationStrategy.EQUAL:
        per_person = result.total_cents // len(details) if details else 0
        return f"Split equally: {cents_to_str(per_person, symbol=symbol)} each"

    if strategy is AllocationStrategy.EXACT_AMOUNTS:
        if result.is_balanced:
            return "Amounts match total"
        if result.remaining_cents > 0:
            return f"{cents_to_str(result.remaining_cents, symbol=symbol)} remaining"
        return f"{cents_to_str(result.over_allocated_cents, symbol=symbol)} over"

    if strategy is AllocationStrategy.PERCENTAGES:
        if result.is_balanced:
            return "Percentages add up to 100%"
        total = sum((d.percentage for d in details.values()), Decimal(0))
        return f"Total: {_format_percentage(total)}% / 100%"

    if strategy is AllocationStrategy.SHARES:
        total_shares = sum(d.shares for d in details.values())
        return f"{total_shares} share{'' if total_shares == 1 else 's'} total"

    total_adjustments = sum(d.adjustment_cents for d in details.values())
    sign = "+" if total_adjustments >= 0 else "-"
    return f"Adjustments: {sign}{cents_to_str(abs(total_adjustments), symbol=symbol)}"
