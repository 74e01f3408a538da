# backend/billsplit/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from billsplit.domain.money import HUNDRED, MoneyError, to_percentage


class ModelValidationError(ValueError):
    """Raised when request/response models fail basic validation."""


class InvalidParticipantSet(ValueError):
    """Raised when an operation needs at least one participant and gets none."""


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class AllocationStrategy(str, Enum):
    """How a total is divided among participants."""

    EQUAL = "equal"
    EXACT_AMOUNTS = "exact_amounts"
    PERCENTAGES = "percentages"
    SHARES = "shares"
    ADJUSTMENTS = "adjustments"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def requires_reconciliation(self) -> bool:
        """Caller-supplied values may not add up; a save must wait for balance."""
        return self in (AllocationStrategy.EXACT_AMOUNTS, AllocationStrategy.PERCENTAGES)


_LABELS = {
    AllocationStrategy.EQUAL: "Split Equally",
    AllocationStrategy.EXACT_AMOUNTS: "Exact Amounts",
    AllocationStrategy.PERCENTAGES: "Percentages",
    AllocationStrategy.SHARES: "Shares",
    AllocationStrategy.ADJUSTMENTS: "Adjustments",
}

_DESCRIPTIONS = {
    AllocationStrategy.EQUAL: "Divide total equally among all participants",
    AllocationStrategy.EXACT_AMOUNTS: "Specify exact amount for each person",
    AllocationStrategy.PERCENTAGES: "Assign percentage of total to each person",
    AllocationStrategy.SHARES: "Use share ratios (e.g., 2:1:1)",
    AllocationStrategy.ADJUSTMENTS: "Start equal, then adjust individual amounts",
}


@dataclass(frozen=True)
class SplitLimits:
    """
    Clamp bounds used by the setter operations and the balance check.

    These come from the UI rather than the money math, so they are
    configuration (see config.split_limits), not engine constants.
    """
    min_shares: int = 1
    max_shares: int = 99
    percentage_tolerance: Decimal = Decimal("0.1")

    def __post_init__(self) -> None:
        if not _is_int(self.min_shares) or self.min_shares < 1:
            raise ModelValidationError("SplitLimits.min_shares must be an int >= 1")
        if not _is_int(self.max_shares) or self.max_shares < self.min_shares:
            raise ModelValidationError("SplitLimits.max_shares must be an int >= min_shares")
        if not isinstance(self.percentage_tolerance, Decimal) or self.percentage_tolerance < 0:
            raise ModelValidationError("SplitLimits.percentage_tolerance must be a Decimal >= 0")


DEFAULT_LIMITS = SplitLimits()


@dataclass(frozen=True)
class RawInput:
    """
    One participant's raw value for the non-equal strategies.

    Unset fields are None and resolve to the neutral value of the strategy
    reading them: 0 cents, 0%, 1 share, 0 adjustment.
    """
    amount_cents: Optional[int] = None
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None
    adjustment_cents: Optional[int] = None

    def __post_init__(self) -> None:
        if self.amount_cents is not None:
            if not _is_int(self.amount_cents) or self.amount_cents < 0:
                raise ModelValidationError("RawInput.amount_cents must be an int >= 0")
        if self.percentage is not None:
            if not isinstance(self.percentage, Decimal):
                # frozen: normalise 33.3 / "33.3" through object.__setattr__
                try:
                    object.__setattr__(self, "percentage", to_percentage(self.percentage))
                except MoneyError as e:
                    raise ModelValidationError(str(e)) from e
            if self.percentage < 0 or self.percentage > HUNDRED:
                raise ModelValidationError("RawInput.percentage must be between 0 and 100")
        if self.shares is not None:
            if not _is_int(self.shares) or self.shares < 1:
                raise ModelValidationError("RawInput.shares must be an int >= 1")
        if self.adjustment_cents is not None and not _is_int(self.adjustment_cents):
            raise ModelValidationError("RawInput.adjustment_cents must be an int")

    def value_for(self, strategy: AllocationStrategy) -> Any:
        """The field a strategy reads, or None when it is unset/irrelevant."""
        if strategy is AllocationStrategy.EXACT_AMOUNTS:
            return self.amount_cents
        if strategy is AllocationStrategy.PERCENTAGES:
            return self.percentage
        if strategy is AllocationStrategy.SHARES:
            return self.shares
        if strategy is AllocationStrategy.ADJUSTMENTS:
            return self.adjustment_cents
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount_cents": self.amount_cents,
            "percentage": None if self.percentage is None else str(self.percentage),
            "shares": self.shares,
            "adjustment_cents": self.adjustment_cents,
        }


@dataclass(frozen=True)
class SplitInput:
    """
    Everything one split computation needs.

    Built transiently by the caller; participants is a set, so the engine
    decides its own (canonical) order.
    """
    total_cents: int
    participants: FrozenSet[str]
    strategy: AllocationStrategy
    raw_inputs: Mapping[str, RawInput] = field(default_factory=dict)

    def __post_init__(self) -> None:
        participants = tuple(self.participants)
        for pid in participants:
            if not isinstance(pid, str) or not pid.strip():
                raise ModelValidationError("participant ids must be non-empty strings")
        object.__setattr__(self, "participants", frozenset(participants))
        object.__setattr__(
            self,
            "raw_inputs",
            MappingProxyType({str(k): v for k, v in self.raw_inputs.items()}),
        )
        if not isinstance(self.strategy, AllocationStrategy):
            object.__setattr__(self, "strategy", AllocationStrategy(self.strategy))
        for pid, raw in self.raw_inputs.items():
            if not isinstance(raw, RawInput):
                raise ModelValidationError(f"raw input for {pid} must be a RawInput")

    def raw_for(self, participant_id: str) -> RawInput:
        return self.raw_inputs.get(participant_id) or RawInput()


@dataclass(frozen=True)
class SplitDetail:
    """
    One participant's allocation.

    percentage is informational; shares and adjustment_cents echo the input
    for display.
    """
    amount_cents: int
    percentage: Decimal
    shares: int = 1
    adjustment_cents: int = 0

    def __post_init__(self) -> None:
        if not _is_int(self.amount_cents) or self.amount_cents < 0:
            raise ModelValidationError("SplitDetail.amount_cents must be an int >= 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount_cents": self.amount_cents,
            "percentage": str(self.percentage),
            "shares": self.shares,
            "adjustment_cents": self.adjustment_cents,
        }


@dataclass(frozen=True)
class SplitResult:
    """
    Output of one split computation.

    remaining_cents / remaining_percentage report what is still unallocated
    when the caller's numbers fall short; over_allocated_cents reports the
    opposite. Neither is corrected by the engine.
    """
    strategy: AllocationStrategy
    total_cents: int
    details: Mapping[str, SplitDetail]
    is_balanced: bool = True
    remaining_cents: int = 0
    remaining_percentage: Decimal = Decimal(0)
    over_allocated_cents: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))
        if not _is_int(self.total_cents) or self.total_cents < 0:
            raise ModelValidationError("SplitResult.total_cents must be an int >= 0")
        if self.remaining_cents < 0 or self.over_allocated_cents < 0:
            raise ModelValidationError("remaining/over-allocated cents must be >= 0")

    @property
    def allocated_cents(self) -> int:
        return sum(d.amount_cents for d in self.details.values())

    @property
    def participants(self) -> FrozenSet[str]:
        return frozenset(self.details)

    def amounts(self) -> Dict[str, int]:
        return {pid: d.amount_cents for pid, d in sorted(self.details.items())}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "total_cents": self.total_cents,
            "allocated_cents": self.allocated_cents,
            "is_balanced": self.is_balanced,
            "remaining_cents": self.remaining_cents,
            "remaining_percentage": str(self.remaining_percentage),
            "over_allocated_cents": self.over_allocated_cents,
            "details": {pid: d.to_dict() for pid, d in sorted(self.details.items())},
        }
