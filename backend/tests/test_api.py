from decimal import Decimal

import pytest
from flask import Flask

from billsplit.api.routes import api_bp
from billsplit.db.repository import SavedSplit
from billsplit.domain.ledger import balance_deltas
from billsplit.domain.models import AllocationStrategy
from billsplit.domain.split_engine import calculate_split

A = "11111111-1111-1111-1111-111111111111"
B = "22222222-2222-2222-2222-222222222222"
C = "33333333-3333-3333-3333-333333333333"
SPLIT_ID = "99999999-9999-9999-9999-999999999999"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.register_blueprint(api_bp)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok"}


def test_calculate_equal_split(client):
    r = client.post(
        "/api/splits/calculate",
        json={"total_cents": 100, "participants": [C, A, B], "strategy": "equal"},
    )

    assert r.status_code == 200
    body = r.get_json()
    assert {pid: d["amount_cents"] for pid, d in body["details"].items()} == {A: 34, B: 33, C: 33}
    assert body["details"][A]["percentage"] == "33.3333"
    assert body["allocated_cents"] == 100
    assert body["is_balanced"] is True
    assert body["message"] == "Split equally: $0.33 each"


def test_calculate_accepts_decimal_total_and_defaults_to_equal(client):
    r = client.post("/api/splits/calculate", json={"total": "1.00", "participants": [A, B]})
    assert r.status_code == 200
    assert r.get_json()["total_cents"] == 100
    assert r.get_json()["strategy"] == "equal"


def test_calculate_exact_amounts_reports_unbalanced(client):
    r = client.post(
        "/api/splits/calculate",
        json={
            "total_cents": 100,
            "participants": [A, B],
            "strategy": "exact_amounts",
            "raw_inputs": {A: {"amount_cents": 40}, B: {"amount_cents": 40}},
        },
    )

    assert r.status_code == 200
    body = r.get_json()
    assert body["is_balanced"] is False
    assert body["remaining_cents"] == 20
    assert body["message"] == "$0.20 remaining"


def test_calculate_percentages_from_json_numbers(client):
    r = client.post(
        "/api/splits/calculate",
        json={
            "total_cents": 100,
            "participants": [A, B, C],
            "strategy": "percentages",
            "raw_inputs": {A: {"percentage": 33.3}, B: {"percentage": 33.3}, C: {"percentage": 33.4}},
        },
    )

    assert r.status_code == 200
    body = r.get_json()
    assert body["is_balanced"] is True
    assert body["details"][C]["percentage"] == "33.4"


@pytest.mark.parametrize(
    "payload, fragment",
    [
        ({"participants": [A]}, "total_cents"),
        ({"total_cents": -1, "participants": [A]}, "total_cents"),
        ({"total_cents": 10, "participants": []}, "participants"),
        ({"total_cents": 10, "participants": [A, A]}, "unique"),
        ({"total_cents": 10, "participants": [A], "strategy": "thirds"}, "strategy"),
        ({"total_cents": 10, "participants": [A], "raw_inputs": {B: {"shares": 2}}}, "unknown participant"),
        ({"total_cents": 10, "participants": [A], "raw_inputs": {A: {"percentage": 120}}}, "percentage"),
        ({"total_cents": 10, "participants": [A], "raw_inputs": {A: {"tip": 1}}}, "unknown fields"),
    ],
)
def test_calculate_validates_payload(client, payload, fragment):
    r = client.post("/api/splits/calculate", json=payload)
    assert r.status_code == 400
    assert fragment in r.get_json()["error"]["message"]


def test_calculate_requires_json(client):
    r = client.post("/api/splits/calculate", data="nope", content_type="text/plain")
    assert r.status_code == 400


def test_defaults_fill_missing_values_only(client):
    r = client.post(
        "/api/splits/defaults",
        json={
            "total_cents": 100,
            "participants": [A, B, C],
            "strategy": "percentages",
            "raw_inputs": {A: {"percentage": "50"}},
        },
    )

    assert r.status_code == 200
    raw = r.get_json()["raw_inputs"]
    assert raw[A]["percentage"] == "50"
    assert raw[B]["percentage"] == "33.33"
    assert raw[C]["percentage"] == "33.33"


def test_create_split_rejects_unbalanced(client):
    r = client.post(
        "/api/splits",
        json={
            "title": "Dinner",
            "total_cents": 100,
            "participants": [A, B],
            "strategy": "exact_amounts",
            "raw_inputs": {A: {"amount_cents": 40}, B: {"amount_cents": 40}},
        },
    )

    assert r.status_code == 422
    body = r.get_json()
    assert body["error"]["code"] == "unbalanced"
    assert body["remaining_cents"] == 20


def test_create_split_requires_uuid_participants(client):
    r = client.post("/api/splits", json={"title": "Dinner", "total_cents": 100, "participants": ["ann", "bob"]})
    assert r.status_code == 400
    assert "UUID" in r.get_json()["error"]["message"]


def test_create_split_requires_db(client):
    r = client.post("/api/splits", json={"title": "Dinner", "total_cents": 100, "participants": [A, B]})
    assert r.status_code == 503
    assert r.get_json()["error"]["code"] == "db_unavailable"


def test_create_split_persists_and_returns_deltas(client, monkeypatch):
    captured = {}

    class FakeRepo:
        enabled = True

        def save_split(self, *, title, payer_id, result):
            captured["title"] = title
            captured["payer_id"] = payer_id
            captured["amounts"] = result.amounts()
            return SPLIT_ID, balance_deltas(result, payer_id)

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.post(
        "/api/splits",
        json={"title": " Dinner ", "total_cents": 100, "participants": [A, B, C], "payer_id": A},
    )

    assert r.status_code == 201
    body = r.get_json()
    assert body["split_id"] == SPLIT_ID
    assert body["balance_deltas"] == {A: 66, B: -33, C: -33}
    assert captured == {"title": "Dinner", "payer_id": A, "amounts": {A: 34, B: 33, C: 33}}


def test_create_split_picks_current_user_as_default_payer(client, monkeypatch):
    class FakeRepo:
        enabled = True

        def save_split(self, *, title, payer_id, result):
            return SPLIT_ID, balance_deltas(result, payer_id)

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.post(
        "/api/splits",
        json={
            "title": "Groceries",
            "total_cents": 1000,
            "participants": [A, B],
            "strategy": "shares",
            "raw_inputs": {B: {"shares": 3}},
            "contacts": [
                {"id": A, "display_name": "Ann"},
                {"id": B, "display_name": "Me", "is_current_user": True},
            ],
        },
    )

    assert r.status_code == 201
    body = r.get_json()
    assert body["payer_id"] == B
    assert body["balance_deltas"] == {A: -250, B: 250}


def test_create_split_unknown_person_is_404(client, monkeypatch):
    class FakeRepo:
        enabled = True

        def save_split(self, *, title, payer_id, result):
            raise LookupError(f"unknown people: {C}")

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.post("/api/splits", json={"title": "Taxi", "total_cents": 10, "participants": [A, C], "payer_id": A})
    assert r.status_code == 404
    assert r.get_json()["error"]["code"] == "not_found"


def test_balances(client, monkeypatch):
    class Row:
        def __init__(self, person_id, display_name, balance_cents):
            self.id = person_id
            self.display_name = display_name
            self.balance_cents = balance_cents

    class FakeRepo:
        enabled = True

        def get_balances(self, *, participant_ids):
            assert participant_ids == [A, B]
            return [Row(A, "Ann", 66), Row(B, "Bob", -33)]

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.get(f"/api/balances?ids={A},{B}")
    assert r.status_code == 200
    assert r.get_json() == {
        "balances": [
            {"id": A, "display_name": "Ann", "balance_cents": 66, "balance": "$0.66"},
            {"id": B, "display_name": "Bob", "balance_cents": -33, "balance": "-$0.33"},
        ]
    }


def test_balances_requires_ids(client):
    r = client.get("/api/balances")
    assert r.status_code == 400


def test_mark_paid_returns_settlement(client, monkeypatch):
    result = calculate_split(100, [A, B, C], AllocationStrategy.EQUAL)

    class FakeRepo:
        enabled = True

        def get_split(self, *, split_id):
            assert split_id == SPLIT_ID
            return SavedSplit(id=SPLIT_ID, title="Dinner", payer_id=A, result=result)

        def mark_participant_paid(self, *, split_id, participant_id):
            return participant_id == B

        def get_paid_participant_ids(self, *, split_id):
            return [B]

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.post(f"/api/splits/{SPLIT_ID}/participants/{B}/paid")
    assert r.status_code == 200
    assert r.get_json()["settlement"] == {
        "total_settled_cents": 33,
        "total_pending_cents": 67,
        "settled_count": 1,
        "pending_count": 2,
        "is_fully_settled": False,
        "progress": "0.3300",
    }

    r = client.post(f"/api/splits/{SPLIT_ID}/participants/{C}/paid")
    assert r.status_code == 404


def test_create_app_wires_config_and_blueprint(monkeypatch):
    from billsplit import create_app
    from billsplit.config import Config, split_limits

    monkeypatch.setattr(Config, "SPLIT_MAX_SHARES", 10)
    app = create_app()

    assert app.config["CURRENCY"] == "USD"
    assert split_limits(app.config).max_shares == 10
    assert app.test_client().get("/api/health").status_code == 200


def test_split_limits_fall_back_to_defaults():
    from billsplit.config import split_limits

    limits = split_limits({"SPLIT_PERCENTAGE_TOLERANCE": "0.5"})
    assert limits.min_shares == 1
    assert limits.max_shares == 99
    assert limits.percentage_tolerance == Decimal("0.5")


@pytest.mark.parametrize("tolerance, balanced", [("0.1", False), ("0.5", True)])
def test_calculate_uses_configured_percentage_tolerance(app, tolerance, balanced):
    app.config["SPLIT_PERCENTAGE_TOLERANCE"] = tolerance
    r = app.test_client().post(
        "/api/splits/calculate",
        json={
            "total_cents": 1000,
            "participants": [A, B],
            "strategy": "percentages",
            "raw_inputs": {A: {"percentage": "49.9"}, B: {"percentage": "50"}},
        },
    )

    assert r.status_code == 200
    assert r.get_json()["is_balanced"] is balanced


def test_messages_and_balances_use_configured_currency(app, monkeypatch):
    app.config["CURRENCY"] = "EUR"
    client = app.test_client()

    r = client.post("/api/splits/calculate", json={"total_cents": 100, "participants": [A, B, C]})
    assert r.get_json()["message"] == "Split equally: €0.33 each"

    class Row:
        id = A
        display_name = "Ann"
        balance_cents = -66

    class FakeRepo:
        enabled = True

        def get_balances(self, *, participant_ids):
            return [Row()]

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.get(f"/api/balances?ids={A}")
    assert r.get_json()["balances"][0]["balance"] == "-€0.66"


def test_unbalanced_save_message_uses_configured_currency(app):
    app.config["CURRENCY"] = "GBP"
    r = app.test_client().post(
        "/api/splits",
        json={
            "title": "Dinner",
            "total_cents": 100,
            "participants": [A, B],
            "strategy": "exact_amounts",
            "raw_inputs": {A: {"amount_cents": 40}, B: {"amount_cents": 40}},
        },
    )

    assert r.status_code == 422
    assert r.get_json()["error"]["message"] == "£0.20 remaining"


@pytest.mark.parametrize("current_user_id", [[], {"id": A}, 7, True])
def test_create_split_rejects_non_string_current_user(client, monkeypatch, current_user_id):
    class FakeRepo:
        enabled = True

        def save_split(self, *, title, payer_id, result):
            raise AssertionError("should not be saved")

    monkeypatch.setattr("billsplit.api.routes._repo", lambda: FakeRepo())

    r = client.post(
        "/api/splits",
        json={
            "title": "Dinner",
            "total_cents": 100,
            "participants": [A, B],
            "current_user_id": current_user_id,
        },
    )

    assert r.status_code == 400
    assert "current_user_id" in r.get_json()["error"]["message"]


@pytest.mark.parametrize(
    "strategy, label, reconcile",
    [
        ("equal", "Split Equally", False),
        ("exact_amounts", "Exact Amounts", True),
        ("percentages", "Percentages", True),
        ("shares", "Shares", False),
        ("adjustments", "Adjustments", False),
    ],
)
def test_defaults_describe_the_strategy(client, strategy, label, reconcile):
    r = client.post(
        "/api/splits/defaults",
        json={"total_cents": 100, "participants": [A, B], "strategy": strategy},
    )

    assert r.status_code == 200
    body = r.get_json()
    assert body["strategy"] == strategy
    assert body["label"] == label
    assert body["requires_reconciliation"] is reconcile
    assert body["description"]
