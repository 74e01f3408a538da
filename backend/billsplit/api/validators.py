from __future__ import annotations

from typing import Dict, List
from uuid import UUID

from billsplit.domain.models import AllocationStrategy, ModelValidationError, RawInput, SplitInput
from billsplit.domain.money import MoneyError, decimal_to_cents

_RAW_INPUT_FIELDS = ("amount_cents", "percentage", "shares", "adjustment_cents")


class ApiValidationError(ValueError):
    """Raised when request payload validation fails."""


def is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (ValueError, TypeError, AttributeError):
        return False
    return True


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_total_cents(data: dict) -> int:
    """
    Accept either 'total_cents' (int) or 'total' (decimal string like "12.34").
    """
    if "total_cents" in data:
        total_cents = data["total_cents"]
        if not _is_int(total_cents) or total_cents < 0:
            raise ApiValidationError("'total_cents' must be an int >= 0.")
        return total_cents

    if "total" in data:
        total = data["total"]
        if not isinstance(total, str):
            raise ApiValidationError("'total' must be a decimal string like \"12.34\".")
        try:
            total_cents = decimal_to_cents(total)
        except MoneyError as e:
            raise ApiValidationError(f"'total' is not a valid amount: {total}") from e
        if total_cents < 0:
            raise ApiValidationError("'total' must be >= 0.")
        return total_cents

    raise ApiValidationError("Missing field: total_cents")


def parse_unique_participant_ids(raw_participants: object, *, require_uuid: bool = False) -> List[str]:
    if not isinstance(raw_participants, list) or not raw_participants:
        raise ApiValidationError(
            "'participants' must be a non-empty list of participant ids."
        )

    participant_ids: List[str] = []
    seen_participant_ids: set[str] = set()
    for pid in raw_participants:
        if not isinstance(pid, str) or not pid.strip():
            raise ApiValidationError("Each participant id must be a non-empty string.")
        if require_uuid and not is_uuid(pid):
            raise ApiValidationError("Each participant id must be a valid UUID string.")
        if pid in seen_participant_ids:
            raise ApiValidationError("Participant ids must be unique.")
        seen_participant_ids.add(pid)
        participant_ids.append(pid)

    return participant_ids


def parse_strategy(raw_strategy: object) -> AllocationStrategy:
    if raw_strategy is None:
        return AllocationStrategy.EQUAL
    try:
        return AllocationStrategy(raw_strategy)
    except ValueError as e:
        allowed = ", ".join(s.value for s in AllocationStrategy)
        raise ApiValidationError(f"'strategy' must be one of: {allowed}.") from e


def parse_raw_inputs(raw_inputs: object, participant_ids: List[str]) -> Dict[str, RawInput]:
    if raw_inputs is None:
        return {}
    if not isinstance(raw_inputs, dict):
        raise ApiValidationError("'raw_inputs' must be an object mapping participant_id -> values.")

    known = set(participant_ids)
    parsed: Dict[str, RawInput] = {}
    for pid, values in raw_inputs.items():
        if pid not in known:
            raise ApiValidationError(f"raw_inputs references unknown participant id: {pid}")
        if not isinstance(values, dict):
            raise ApiValidationError(f"raw_inputs for {pid} must be an object.")
        unknown = sorted(set(values) - set(_RAW_INPUT_FIELDS))
        if unknown:
            raise ApiValidationError(f"raw_inputs for {pid} has unknown fields: {', '.join(unknown)}")
        try:
            parsed[pid] = RawInput(**{k: values.get(k) for k in _RAW_INPUT_FIELDS})
        except ModelValidationError as e:
            raise ApiValidationError(f"raw_inputs for {pid}: {e}") from e

    return parsed


def parse_split_input(data: object, *, require_uuid: bool = False) -> SplitInput:
    if not isinstance(data, dict):
        raise ApiValidationError("Request body must be a JSON object.")

    total_cents = parse_total_cents(data)
    participant_ids = parse_unique_participant_ids(data.get("participants"), require_uuid=require_uuid)
    strategy = parse_strategy(data.get("strategy"))
    raw_inputs = parse_raw_inputs(data.get("raw_inputs"), participant_ids)

    return SplitInput(
        total_cents=total_cents,
        participants=frozenset(participant_ids),
        strategy=strategy,
        raw_inputs=raw_inputs,
    )
