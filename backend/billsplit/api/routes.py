from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from billsplit.api.validators import (
    ApiValidationError,
    is_uuid,
    parse_raw_inputs,
    parse_split_input,
    parse_strategy,
    parse_total_cents,
    parse_unique_participant_ids,
)
from billsplit.config import split_limits
from billsplit.db.repository import BalanceLedgerRepository
from billsplit.domain.ledger import Contact, select_default_payer, settlement_summary
from billsplit.domain.models import InvalidParticipantSet, SplitLimits
from billsplit.domain.money import cents_to_str, currency_symbol
from billsplit.domain.split_engine import calculate, initialize_defaults, validation_message
from billsplit.domain.split_logic import SplitLogicError

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _json_error(message: str, *, status: int = 400, code: str = "bad_request"):
    return jsonify({"error": {"code": code, "message": message}}), status


def _repo() -> BalanceLedgerRepository:
    return BalanceLedgerRepository(current_app.config.get("DATABASE_URL", ""))


def _limits() -> SplitLimits:
    return split_limits(current_app.config)


def _symbol() -> str:
    return currency_symbol(current_app.config.get("CURRENCY", "USD"))


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


@api_bp.post("/splits/calculate")
def calculate_endpoint():
    """
    JSON:
      - total_cents: int (or total: "12.34")
      - participants: [participant_id, ...]
      - strategy: equal | exact_amounts | percentages | shares | adjustments
      - raw_inputs: {participant_id: {amount_cents, percentage, shares, adjustment_cents}}
    Response:
      - SplitResult fields plus a display 'message'
    """
    data = request.get_json(silent=True)
    if data is None:
        return _json_error("Request body must be JSON.", status=400)

    try:
        split_input = parse_split_input(data)
        result = calculate(split_input, limits=_limits())
    except ApiValidationError as e:
        return _json_error(str(e), status=400)
    except SplitLogicError as e:
        return _json_error(str(e), status=422, code="split_failed")

    body = result.to_dict()
    body["message"] = validation_message(result, symbol=_symbol())
    return jsonify(body), 200


@api_bp.post("/splits/defaults")
def defaults_endpoint():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("Request body must be JSON.", status=400)

    try:
        total_cents = parse_total_cents(data)
        participant_ids = parse_unique_participant_ids(data.get("participants"))
        strategy = parse_strategy(data.get("strategy"))
        existing = parse_raw_inputs(data.get("raw_inputs"), participant_ids)
    except ApiValidationError as e:
        return _json_error(str(e), status=400)

    seeded = initialize_defaults(participant_ids, strategy, total_cents, existing)
    return jsonify(
        {
            "strategy": strategy.value,
            "label": strategy.label,
            "description": strategy.description,
            "requires_reconciliation": strategy.requires_reconciliation,
            "raw_inputs": {pid: seeded[pid].to_dict() for pid in sorted(seeded)},
        }
    ), 200


@api_bp.post("/splits")
def create_split_endpoint():
    """
    Same payload as /splits/calculate plus:
      - title: string
      - payer_id: uuid (optional; defaults to the current user or first participant)
      - contacts: [{id, display_name, is_current_user}] (optional, for payer selection)
      - current_user_id: string (optional, preferred default payer)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("Request body must be JSON.", status=400)

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        return _json_error("Missing field 'title'.", status=400)

    try:
        split_input = parse_split_input(data, require_uuid=True)
        result = calculate(split_input, limits=_limits())
    except ApiValidationError as e:
        return _json_error(str(e), status=400)
    except SplitLogicError as e:
        return _json_error(str(e), status=422, code="split_failed")

    if not result.is_balanced:
        logger.warning(
            "rejected unbalanced %s split: %d cents remaining, %d over",
            result.strategy.value,
            result.remaining_cents,
            result.over_allocated_cents,
        )
        return jsonify(
            {
                "error": {"code": "unbalanced", "message": validation_message(result, symbol=_symbol())},
                "remaining_cents": result.remaining_cents,
                "remaining_percentage": str(result.remaining_percentage),
                "over_allocated_cents": result.over_allocated_cents,
            }
        ), 422

    payer_id = data.get("payer_id")
    if payer_id is None:
        contacts = _parse_contacts(data.get("contacts"), sorted(split_input.participants))
        if contacts is None:
            return _json_error("Each contact must include 'id' and 'display_name'.", status=400)
        current_user_id = data.get("current_user_id")
        if current_user_id is not None and not isinstance(current_user_id, str):
            return _json_error("'current_user_id' must be a string.", status=400)
        payer_id = select_default_payer(contacts, current_user_id)
    elif not isinstance(payer_id, str) or not is_uuid(payer_id):
        return _json_error("'payer_id' must be a valid UUID string.", status=400)

    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        split_id, deltas = repo.save_split(title=title.strip(), payer_id=payer_id, result=result)
    except InvalidParticipantSet as e:
        return _json_error(str(e), status=400)
    except LookupError as e:
        return _json_error(str(e), status=404, code="not_found")
    except Exception:
        logger.exception("failed to persist split")
        return _json_error("Failed to persist split.", status=500, code="db_error")

    return jsonify(
        {
            "split_id": split_id,
            "payer_id": payer_id,
            "split": result.to_dict(),
            "balance_deltas": deltas,
        }
    ), 201


def _parse_contacts(raw_contacts: object, participant_ids):
    if raw_contacts is None:
        return [Contact(id=pid, display_name=pid) for pid in participant_ids]
    if not isinstance(raw_contacts, list):
        return None

    contacts = []
    for raw in raw_contacts:
        if not isinstance(raw, dict) or raw.get("id") not in participant_ids:
            return None
        display_name = raw.get("display_name")
        if not isinstance(display_name, str) or not display_name.strip():
            return None
        contacts.append(
            Contact(id=raw["id"], display_name=display_name.strip(), is_current_user=bool(raw.get("is_current_user")))
        )
    return contacts or [Contact(id=pid, display_name=pid) for pid in participant_ids]


@api_bp.get("/balances")
def balances_endpoint():
    raw_ids = request.args.get("ids", "")
    participant_ids = [pid.strip() for pid in raw_ids.split(",") if pid.strip()]
    if not participant_ids:
        return _json_error("Query parameter 'ids' is required.", status=400)
    if not all(is_uuid(pid) for pid in participant_ids):
        return _json_error("Each participant id must be a valid UUID string.", status=400)

    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        rows = repo.get_balances(participant_ids=participant_ids)
    except Exception:
        logger.exception("failed to load balances")
        return _json_error("Failed to load balances.", status=500, code="db_error")

    symbol = _symbol()
    return jsonify(
        {
            "balances": [
                {
                    "id": r.id,
                    "display_name": r.display_name,
                    "balance_cents": r.balance_cents,
                    "balance": cents_to_str(r.balance_cents, symbol=symbol),
                }
                for r in rows
            ]
        }
    ), 200


@api_bp.post("/splits/<split_id>/participants/<participant_id>/paid")
def mark_paid_endpoint(split_id: str, participant_id: str):
    if not is_uuid(split_id) or not is_uuid(participant_id):
        return _json_error("Split and participant ids must be valid UUIDs.", status=400)

    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        saved = repo.get_split(split_id=split_id)
        if saved is None:
            return _json_error("Split not found.", status=404, code="not_found")
        if not repo.mark_participant_paid(split_id=split_id, participant_id=participant_id):
            return _json_error("Participant is not part of this split.", status=404, code="not_found")
        paid_ids = repo.get_paid_participant_ids(split_id=split_id)
    except Exception:
        logger.exception("failed to mark participant paid")
        return _json_error("Failed to update settlement.", status=500, code="db_error")

    summary = settlement_summary(saved.result, paid_ids)
    return jsonify({"split_id": split_id, "settlement": summary.to_dict()}), 200
