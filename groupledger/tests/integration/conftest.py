"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"). The
    testing config uses in-memory SQLite unless TEST_DATABASE_URL points at
    PostgreSQL.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Users are inserted directly: they belong to the identity service, which
    also issues the bearer tokens. make_user() mints an HS256 token with the
    testing JWT secret, the same way that service would.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)        → {"id", "name", "email", "token"}
  - auth_headers(token)        → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)    → group dict
  - add_member(...)            → HTTP response
  - add_expense(...)           → HTTP response
  - get_balance(...)           → balance payload dict

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import jwt
import pytest
from sqlalchemy import text

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.app.models.user import User


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once for the session."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.

    Children first: ledger entries and split lines reference expenses,
    expenses and memberships reference groups, and everything references users.
    """
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM ledger_entries"))
            conn.execute(text("DELETE FROM split_lines"))
            conn.execute(text("DELETE FROM group_expenses"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def mint_token(app, user_id: int) -> str:
    return jwt.encode(
        {"sub": str(user_id)},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def make_user(app, name: str = "Asha", email: str | None = None) -> dict:
    """Inserts a user row and returns it with a valid bearer token."""
    if email is None:
        email = f"{name.lower()}@test.com"

    with app.app_context():
        user = User(name=name, email=email)
        _db.session.add(user)
        _db.session.commit()
        user_id = user.id

    return {
        "id": user_id,
        "name": name,
        "email": email,
        "token": mint_token(app, user_id),
    }


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Trip", description: str | None = None) -> dict:
    """Creates a group; the token owner becomes its admin and first member."""
    payload: dict = {"name": name}
    if description is not None:
        payload["description"] = description

    resp = client.post("/api/v1/groups/", json=payload, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, user_id: int, role: str | None = None):
    """Adds a user to a group (admin token required). Returns the HTTP response."""
    payload: dict = {"user_id": user_id}
    if role is not None:
        payload["role"] = role
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=payload,
        headers=auth_headers(token),
    )


def add_expense(
        client,
        token: str,
        group_id: int,
        amount,
        description: str = "Dinner",
        split_type: str | None = None,
        split_among: list[dict] | None = None,
):
    """
    Records an expense paid by the token owner and returns the HTTP response.
    Leave split_among as None for equal mode.
    """
    payload: dict = {"description": description, "amount": amount}
    if split_type is not None:
        payload["split_type"] = split_type
    if split_among is not None:
        payload["split_among"] = split_among

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def get_group(client, token: str, group_id: int):
    return client.get(f"/api/v1/groups/{group_id}", headers=auth_headers(token))


def get_balance(client, token: str, group_id: int) -> dict:
    resp = client.get(f"/api/v1/groups/{group_id}/balance", headers=auth_headers(token))
    assert resp.status_code == 200, f"get_balance failed: {resp.get_json()}"
    return resp.get_json()["data"]


@pytest.fixture
def trio(app, client):
    """Asha (admin), Ben and Chen in one group, in that membership order."""
    asha = make_user(app, "Asha")
    ben = make_user(app, "Ben")
    chen = make_user(app, "Chen")
    group = make_group(client, asha["token"], name="Goa trip")
    for user in (ben, chen):
        resp = add_member(client, asha["token"], group["id"], user["id"])
        assert resp.status_code == 201, resp.get_json()
    return asha, ben, chen, group
