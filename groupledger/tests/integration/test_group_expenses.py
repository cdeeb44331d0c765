"""
tests/integration/test_group_expenses.py — Recording and reading group expenses.

Endpoints covered:
  POST /groups/:id/expenses   → 201 updated group + recorded expense
  GET  /groups/:id/expenses   → 200 page of expenses, newest first
  GET  /expenses              → 200 caller's ledger entries

Properties verified:
  - Equal split divides among all current members; lines sum to the amount
  - A rejected custom split leaves the group exactly as it was
  - A storage fault mid-write leaves no expense, no total change and no
    ledger entries behind
  - One ledger entry per split line, described "<desc> (Group: <name>)"
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from groupledger.app.extensions import db
from groupledger.app.models.group import Group
from groupledger.app.services import ledger_service, split_service

from .conftest import (
    add_expense,
    auth_headers,
    get_group,
    make_group,
    make_user,
)


def _expenses(client, token, group_id, query: str = "") -> dict:
    resp = client.get(f"/api/v1/groups/{group_id}/expenses{query}", headers=auth_headers(token))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def _ledger(client, token, query: str = "") -> list[dict]:
    resp = client.get(f"/api/v1/expenses/{query}", headers=auth_headers(token))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def _state(client, token, group_id) -> tuple:
    """Everything a rejected or failed write must leave untouched."""
    group = get_group(client, token, group_id).get_json()["data"]
    return group, _expenses(client, token, group_id), _ledger(client, token)


class TestEqualSplit:

    def test_dinner_for_three(self, trio, client):
        asha, ben, chen, group = trio

        resp = add_expense(client, asha["token"], group["id"], "300.00", description="Dinner")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["id"] == group["id"]
        assert data["total_expense"] == "300.00"
        assert len(data["members"]) == 3

        expense = data["expense"]
        assert expense["description"] == "Dinner"
        assert expense["amount"] == "300.00"
        assert expense["split_type"] == "equal"
        assert expense["paid_by_user_id"] == asha["id"]
        assert expense["paid_by_name"] == "Asha"
        assert [(s["user_id"], s["amount"]) for s in expense["split_among"]] == [
            (asha["id"], "100.00"),
            (ben["id"], "100.00"),
            (chen["id"], "100.00"),
        ]

    def test_uneven_amount(self, trio, client):
        asha, _, _, group = trio

        data = add_expense(client, asha["token"], group["id"], "100.00").get_json()["data"]

        assert data["total_expense"] == "100.00"
        shares = [Decimal(s["amount"]) for s in data["expense"]["split_among"]]
        assert shares == [Decimal("33.33")] * 3

    def test_any_member_can_record(self, trio, client):
        _, ben, _, group = trio

        resp = add_expense(client, ben["token"], group["id"], "45.00", description="Cab")

        assert resp.status_code == 201
        assert resp.get_json()["data"]["expense"]["paid_by_user_id"] == ben["id"]

    def test_totals_accumulate(self, trio, client):
        asha, ben, _, group = trio
        add_expense(client, asha["token"], group["id"], "10.50")
        data = add_expense(client, ben["token"], group["id"], "4.25").get_json()["data"]

        assert data["total_expense"] == "14.75"

    def test_split_among_not_allowed(self, trio, client):
        asha, _, _, group = trio

        resp = add_expense(
            client, asha["token"], group["id"], "30.00",
            split_type="equal",
            split_among=[{"user_id": asha["id"], "amount": "30.00"}],
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "SPLITS_SENT_FOR_EQUAL_MODE"


class TestCustomSplit:

    def test_exact_lines_accepted(self, trio, client):
        asha, ben, _, group = trio

        resp = add_expense(
            client, asha["token"], group["id"], "150.00",
            split_type="custom",
            split_among=[
                {"user_id": asha["id"], "amount": "50.00"},
                {"user_id": ben["id"], "amount": "100.00"},
            ],
        )

        assert resp.status_code == 201
        lines = resp.get_json()["data"]["expense"]["split_among"]
        assert [(s["user_id"], s["amount"]) for s in lines] == [
            (asha["id"], "50.00"),
            (ben["id"], "100.00"),
        ]

    def test_mismatch_rejected_and_nothing_changes(self, trio, client):
        asha, ben, _, group = trio
        add_expense(client, asha["token"], group["id"], "30.00")
        before = _state(client, asha["token"], group["id"])

        resp = add_expense(
            client, asha["token"], group["id"], "150.00",
            split_type="custom",
            split_among=[
                {"user_id": asha["id"], "amount": "50.00"},
                {"user_id": ben["id"], "amount": "60.00"},
            ],
        )

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "INVALID_SPLIT"
        assert _state(client, asha["token"], group["id"]) == before

    def test_line_for_non_member_rejected(self, app, trio, client):
        asha, _, _, group = trio
        outsider = make_user(app, "Omar")

        resp = add_expense(
            client, asha["token"], group["id"], "20.00",
            split_type="custom",
            split_among=[
                {"user_id": asha["id"], "amount": "10.00"},
                {"user_id": outsider["id"], "amount": "10.00"},
            ],
        )

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SPLIT_USER_NOT_MEMBER"
        assert _expenses(client, asha["token"], group["id"])["count"] == 0

    def test_duplicate_user_rejected(self, trio, client):
        asha, _, _, group = trio

        resp = add_expense(
            client, asha["token"], group["id"], "20.00",
            split_type="custom",
            split_among=[
                {"user_id": asha["id"], "amount": "10.00"},
                {"user_id": asha["id"], "amount": "10.00"},
            ],
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "DUPLICATE_SPLIT_USER"


class TestRejectedInput:

    def test_precision(self, trio, client):
        asha, _, _, group = trio
        resp = add_expense(client, asha["token"], group["id"], "10.005")

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_AMOUNT_PRECISION"
        assert error["field"] == "amount"

    def test_amount_too_large_for_storage(self, trio, client):
        asha, _, _, group = trio
        resp = add_expense(client, asha["token"], group["id"], "10000000000.00")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "amount"
        assert _expenses(client, asha["token"], group["id"])["count"] == 0

    def test_group_total_would_overflow(self, app, trio, client):
        asha, _, _, group = trio
        near_limit = split_service.MAX_GROUP_TOTAL - 5
        with app.app_context():
            db.session.execute(
                update(Group).where(Group.id == group["id"]).values(total_expense=near_limit)
            )
            db.session.commit()
        before = _state(client, asha["token"], group["id"])

        resp = add_expense(client, asha["token"], group["id"], "10.00")

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_INPUT"
        assert error["field"] == "amount"
        assert _state(client, asha["token"], group["id"]) == before

        assert add_expense(client, asha["token"], group["id"], "4.99").status_code == 201

    def test_missing_description(self, trio, client):
        asha, _, _, group = trio
        resp = client.post(
            f"/api/v1/groups/{group['id']}/expenses",
            json={"amount": "10.00"},
            headers=auth_headers(asha["token"]),
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"

    def test_unknown_split_type(self, trio, client):
        asha, _, _, group = trio
        resp = add_expense(client, asha["token"], group["id"], "10.00", split_type="shares")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_SPLIT_MODE"

    def test_non_member_cannot_record(self, app, trio, client):
        _, _, _, group = trio
        outsider = make_user(app, "Omar")

        resp = add_expense(client, outsider["token"], group["id"], "10.00")

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"

    def test_deleted_group(self, trio, client):
        asha, _, _, group = trio
        client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(asha["token"]))

        resp = add_expense(client, asha["token"], group["id"], "10.00")
        assert resp.status_code == 404


class TestAtomicity:

    def test_storage_fault_leaves_no_trace(self, trio, client, monkeypatch):
        asha, _, _, group = trio
        add_expense(client, asha["token"], group["id"], "30.00")
        before = _state(client, asha["token"], group["id"])

        def _fail(*args, **kwargs):
            raise OperationalError("INSERT INTO ledger_entries", {}, Exception("disk full"))

        monkeypatch.setattr(ledger_service, "_materialize_ledger_entries", _fail)

        resp = add_expense(client, asha["token"], group["id"], "90.00", description="Hotel")

        assert resp.status_code == 503
        assert resp.get_json()["error"]["code"] == "PERSISTENCE_FAILURE"

        monkeypatch.undo()
        assert _state(client, asha["token"], group["id"]) == before

    def test_write_succeeds_after_fault_cleared(self, trio, client, monkeypatch):
        asha, _, _, group = trio

        def _fail(*args, **kwargs):
            raise OperationalError("INSERT INTO ledger_entries", {}, Exception("disk full"))

        monkeypatch.setattr(ledger_service, "_materialize_ledger_entries", _fail)
        assert add_expense(client, asha["token"], group["id"], "90.00").status_code == 503

        monkeypatch.undo()
        resp = add_expense(client, asha["token"], group["id"], "90.00")

        assert resp.status_code == 201
        assert resp.get_json()["data"]["total_expense"] == "90.00"


class TestListExpenses:

    def test_newest_first_with_total(self, trio, client):
        asha, ben, _, group = trio
        add_expense(client, asha["token"], group["id"], "10.00", description="Breakfast")
        add_expense(client, ben["token"], group["id"], "20.00", description="Lunch")
        add_expense(client, asha["token"], group["id"], "30.00", description="Dinner")

        data = _expenses(client, ben["token"], group["id"])

        assert data["total_expense"] == "60.00"
        assert data["count"] == 3
        assert [e["description"] for e in data["expenses"]] == ["Dinner", "Lunch", "Breakfast"]

    def test_paging(self, trio, client):
        asha, _, _, group = trio
        for i in range(5):
            add_expense(client, asha["token"], group["id"], f"{i + 1}.00", description=f"E{i}")

        data = _expenses(client, asha["token"], group["id"], "?limit=2&offset=1")

        assert data["count"] == 5
        assert data["limit"] == 2
        assert [e["description"] for e in data["expenses"]] == ["E3", "E2"]

    def test_limit_is_capped(self, app, trio, client):
        asha, _, _, group = trio
        data = _expenses(client, asha["token"], group["id"], "?limit=100000")
        assert data["limit"] == app.config["EXPENSE_PAGE_SIZE_MAX"]

    def test_non_member(self, app, trio, client):
        _, _, _, group = trio
        outsider = make_user(app, "Omar")

        resp = client.get(f"/api/v1/groups/{group['id']}/expenses", headers=auth_headers(outsider["token"]))
        assert resp.status_code == 404


class TestLedgerEntries:

    def test_one_entry_per_split_line(self, trio, client):
        asha, ben, chen, group = trio
        expense = add_expense(
            client, asha["token"], group["id"], "300.00", description="Dinner",
        ).get_json()["data"]["expense"]

        for user in (asha, ben, chen):
            entries = _ledger(client, user["token"])
            assert len(entries) == 1
            entry = entries[0]
            assert entry["user_id"] == user["id"]
            assert entry["amount"] == "100.00"
            assert entry["description"] == "Dinner (Group: Goa trip)"
            assert entry["category"] == "others"
            assert entry["is_group_expense"] is True
            assert entry["group_id"] == group["id"]
            assert entry["group_expense_id"] == expense["id"]

    def test_custom_zero_share_still_materialized(self, trio, client):
        asha, ben, _, group = trio
        add_expense(
            client, asha["token"], group["id"], "40.00",
            split_type="custom",
            split_among=[
                {"user_id": asha["id"], "amount": "0"},
                {"user_id": ben["id"], "amount": "40.00"},
            ],
        )

        assert [e["amount"] for e in _ledger(client, asha["token"])] == ["0.00"]
        assert [e["amount"] for e in _ledger(client, ben["token"])] == ["40.00"]

    def test_filter_by_group(self, app, client):
        asha = make_user(app, "Asha")
        flat = make_group(client, asha["token"], name="Flat")
        trip = make_group(client, asha["token"], name="Trip")
        add_expense(client, asha["token"], flat["id"], "12.00", description="Milk")
        add_expense(client, asha["token"], trip["id"], "80.00", description="Fuel")

        assert len(_ledger(client, asha["token"])) == 2
        only_trip = _ledger(client, asha["token"], f"?group_id={trip['id']}")
        assert [e["description"] for e in only_trip] == ["Fuel (Group: Trip)"]
