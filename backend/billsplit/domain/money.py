# backend/billsplit/domain/money.py
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from fractions import Fraction
from typing import Union

Number = Union[int, str, Decimal, float]

PERCENT_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal(100)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "$",
    "AUD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
}


class MoneyError(ValueError):
    """Raised when currency/money parsing or formatting fails."""


@dataclass(frozen=True)
class Money:
    """
    Simple money value object using integer minor units (USD by default).
    No floats anywhere.
    """
    cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.cents, int):
            raise MoneyError("Money.cents must be an int")
        if not isinstance(self.currency, str) or not self.currency.strip():
            raise MoneyError("Money.currency must be a non-empty string")

    def format(self, symbol: str = "$") -> str:
        """
        Format cents as a string like "$12.34".
        """
        sign = "-" if self.cents < 0 else ""
        abs_cents = abs(self.cents)
        dollars = abs_cents // 100
        cents = abs_cents % 100
        return f"{sign}{symbol}{dollars}.{cents:02d}"


def cents_to_str(cents: int, *, symbol: str = "$") -> str:
    """
    Convert integer cents to a display string like "$12.34".
    """
    if not isinstance(cents, int):
        raise MoneyError("cents must be an int")
    return Money(cents=cents).format(symbol=symbol)


def currency_symbol(code: str) -> str:
    """
    Display symbol for an ISO currency code. Unknown codes are shown as a
    prefix, e.g. "CHF 12.34".
    """
    if not isinstance(code, str) or not code.strip():
        raise MoneyError("currency code must be a non-empty string")
    code = code.strip().upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def decimal_to_cents(
    value: str | Decimal,
    *,
    rounding=ROUND_HALF_UP,
    max_abs_cents: int = 10_000_000_00,
) -> int:
    """
    Convert a decimal-like display value to cents with explicit rounding.

    This is the UI boundary: typed amounts come in as "12.34" and leave as
    integer cents.

    Examples:
      "12.34" -> 1234
      "12.345" -> 1235 (half-up)
    """
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise MoneyError(f"invalid decimal value: {value}") from e
    if not d.is_finite():
        raise MoneyError(f"invalid decimal value: {value}")

    cents_decimal = (d * Decimal(100)).quantize(Decimal("1"), rounding=rounding)
    cents = int(cents_decimal)

    if abs(cents) > max_abs_cents:
        raise MoneyError("amount exceeds safety limit")

    return cents


def to_percentage(value: Number) -> Decimal:
    """
    Parse a percentage (e.g. 33.3, "33.3", Decimal("33.3")) into a Decimal.

    Floats go through str() so 33.3 stays 33.3 instead of its binary
    approximation.
    """
    if isinstance(value, bool):
        raise MoneyError("percentage must be a number")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise MoneyError(f"invalid percentage: {value}") from e
    if not d.is_finite():
        raise MoneyError(f"invalid percentage: {value}")
    return d


def round_half_up(value: Decimal | Fraction) -> int:
    """
    Round to the nearest integer, ties going up (towards +infinity).
    """
    if isinstance(value, Decimal):
        value = Fraction(value)
    return math.floor(value + Fraction(1, 2))


def ratio_to_percentage(part: int | Fraction, whole: int | Fraction) -> Decimal:
    """
    part / whole * 100 as a Decimal quantized to 0.0001; 0 when whole is 0.
    """
    if whole == 0:
        return Decimal(0).quantize(PERCENT_QUANTUM)
    ratio = Fraction(part) / Fraction(whole) * 100
    return (Decimal(ratio.numerator) / Decimal(ratio.denominator)).quantize(
        PERCENT_QUANTUM, rounding=ROUND_HALF_UP
    )


def percentage_of_cents(percentage: Decimal, total_cents: int) -> int:
    """
    round_half_up(percentage / 100 * total_cents), computed exactly.
    """
    return round_half_up(Fraction(percentage) * total_cents / 100)

