# tests/test_request_authenticator.py
"""
Tests for the request authenticator and the identity middleware.

The authenticator never raises for bad credentials; every outcome is an
Identity. Endpoints decide afterwards whether an unauthenticated caller is
acceptable.
"""
from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from wine_api.auth.identity import (
    REASON_EXPIRED_TOKEN,
    REASON_INVALID_SIGNATURE,
    REASON_LOOKUP_FAILED,
    REASON_MALFORMED_TOKEN,
    REASON_MISSING_TOKEN,
    REASON_USER_NOT_FOUND,
    Identity,
)
from wine_api.core.security import get_token_service
from wine_api.middleware import identity as identity_middleware
from wine_api.middleware.identity import (
    RequestAuthenticator,
    extract_bearer_token,
    register_identity_middleware,
)


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("Bearer", None),
        ("Bearer ", None),
        ("Basic dXNlcjpwYXNz", None),
        ("bearer abc.def.ghi", None),
        ("Bearer abc.def ghi", None),
        ("Bearer abc.def.ghi", "abc.def.ghi"),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


# ---------------------------------------------------------------------------
# RequestAuthenticator
# ---------------------------------------------------------------------------


@pytest.fixture
def authenticator(make_token_service, clock):
    return RequestAuthenticator(make_token_service(ttl=timedelta(hours=1), clock=clock))


def test_valid_token_authenticates(db_session, make_user, authenticator):
    user = make_user(email="ana@example.com")
    token = authenticator.token_service.issue(user.id)

    identity = authenticator.authenticate(f"Bearer {token}", db_session)

    assert identity == Identity.authenticated(user.id, email="ana@example.com")


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer"])
def test_missing_or_foreign_header_is_missing_token(db_session, authenticator, header):
    identity = authenticator.authenticate(header, db_session)

    assert identity.is_authenticated is False
    assert identity.reason == REASON_MISSING_TOKEN


def test_expired_token(db_session, make_user, authenticator, clock):
    user = make_user()
    token = authenticator.token_service.issue(user.id)
    clock.advance(timedelta(hours=1, seconds=1))

    identity = authenticator.authenticate(f"Bearer {token}", db_session)

    assert identity.reason == REASON_EXPIRED_TOKEN


def test_token_from_other_secret(db_session, make_user, make_token_service, authenticator, clock):
    user = make_user()
    foreign = make_token_service(secret="a_completely_different_secret_of_32_bytes", clock=clock)

    identity = authenticator.authenticate(f"Bearer {foreign.issue(user.id)}", db_session)

    assert identity.reason == REASON_INVALID_SIGNATURE


def test_malformed_token(db_session, authenticator):
    identity = authenticator.authenticate("Bearer not-a-jwt", db_session)

    assert identity.reason == REASON_MALFORMED_TOKEN


def test_token_for_deleted_user(db_session, authenticator):
    token = authenticator.token_service.issue("00000000-0000-0000-0000-000000000000")

    identity = authenticator.authenticate(f"Bearer {token}", db_session)

    assert identity.reason == REASON_USER_NOT_FOUND


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _echo_app(*, registrations: int = 1, factory=get_token_service) -> FastAPI:
    app = FastAPI()
    for _ in range(registrations):
        register_identity_middleware(app, token_service_factory=factory)

    @app.get("/whoami")
    def whoami(request: Request):
        return request.state.identity.to_debug_dict()

    return app


@pytest.fixture
def patched_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(identity_middleware.database, "SessionLocal", session_factory)


def test_middleware_attaches_authenticated_identity(patched_sessions, make_user, auth_headers):
    user = make_user()

    with TestClient(_echo_app()) as client:
        res = client.get("/whoami", headers=auth_headers(user))

    assert res.status_code == 200
    assert res.json() == {
        "user_id": user.id,
        "email": "ana@example.com",
        "is_authenticated": True,
        "reason": None,
    }


def test_middleware_never_blocks_bad_tokens(patched_sessions):
    with TestClient(_echo_app()) as client:
        res = client.get("/whoami", headers={"Authorization": "Bearer garbage"})

    assert res.status_code == 200
    assert res.json()["is_authenticated"] is False
    assert res.json()["reason"] == REASON_MALFORMED_TOKEN


def test_middleware_without_header_skips_token_service(patched_sessions):
    def exploding_factory():
        raise AssertionError("token service must not be built without a bearer token")

    with TestClient(_echo_app(factory=exploding_factory)) as client:
        res = client.get("/whoami")

    assert res.status_code == 200
    assert res.json()["reason"] == REASON_MISSING_TOKEN


def test_middleware_runs_once_when_registered_twice(patched_sessions, make_user, auth_headers):
    user = make_user()
    calls = {"n": 0}

    def counting_factory():
        calls["n"] += 1
        return get_token_service()

    with TestClient(_echo_app(registrations=2, factory=counting_factory)) as client:
        res = client.get("/whoami", headers=auth_headers(user))

    assert res.json()["user_id"] == user.id
    assert calls["n"] == 1


def test_identity_does_not_leak_between_requests(patched_sessions, make_user, auth_headers):
    ana = make_user(email="ana@example.com")
    bob = make_user(email="bob@example.com", display_name="Bob")

    with TestClient(_echo_app()) as client:
        first = client.get("/whoami", headers=auth_headers(ana)).json()
        second = client.get("/whoami", headers=auth_headers(bob)).json()
        third = client.get("/whoami").json()

    assert first["user_id"] == ana.id
    assert second["user_id"] == bob.id
    assert third["is_authenticated"] is False


def test_lookup_failure_is_unauthenticated(monkeypatch, patched_sessions, make_user, auth_headers):
    user = make_user()

    def broken_lookup(db, user_id):
        raise OperationalError("SELECT", {}, Exception("database is unavailable"))

    monkeypatch.setattr(identity_middleware, "get_user_by_id", broken_lookup)

    with TestClient(_echo_app()) as client:
        res = client.get("/whoami", headers=auth_headers(user))

    assert res.status_code == 200
    assert res.json()["reason"] == REASON_LOOKUP_FAILED
