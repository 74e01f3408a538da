from __future__ import annotations

import os
from decimal import Decimal
from typing import Any, Mapping

from billsplit.domain.models import SplitLimits


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    CURRENCY = os.getenv("CURRENCY", "USD")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    SPLIT_MIN_SHARES = int(os.getenv("SPLIT_MIN_SHARES", "1"))
    SPLIT_MAX_SHARES = int(os.getenv("SPLIT_MAX_SHARES", "99"))
    SPLIT_PERCENTAGE_TOLERANCE = Decimal(os.getenv("SPLIT_PERCENTAGE_TOLERANCE", "0.1"))


def split_limits(config: Mapping[str, Any]) -> SplitLimits:
    """
    Build SplitLimits from a Flask config (or any mapping with the SPLIT_* keys).
    Missing keys fall back to the Config defaults.
    """
    return SplitLimits(
        min_shares=int(config.get("SPLIT_MIN_SHARES", Config.SPLIT_MIN_SHARES)),
        max_shares=int(config.get("SPLIT_MAX_SHARES", Config.SPLIT_MAX_SHARES)),
        percentage_tolerance=Decimal(
            str(config.get("SPLIT_PERCENTAGE_TOLERANCE", Config.SPLIT_PERCENTAGE_TOLERANCE))
        ),
    )
