"""
tests/test_dependencies.py -- Tests for the authorization gates in auth/dependencies.py.

The gates are exercised through a small FastAPI app that reuses the real
exception handlers from api.main, so the assertions cover the full
status-code + message contract a client sees.

Coverage:
  - authenticate: missing token, invalid, expired, user gone, store failure (500), success
  - optional_authenticate: every failure proceeds anonymously; good token attaches the user
  - require_admin / require_verified: 401 without authenticate, 403 without flag, 200 with it
  - a reset challenge token is rejected as a bearer token
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from api.main import auth_error_handler
from auth.dependencies import (
    authenticate,
    get_current_user,
    optional_authenticate,
    require_admin,
    require_verified,
)
from auth.errors import AuthError
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService


def _build_app(store: UserStore, tokens: TokenService) -> FastAPI:
    gate_app = FastAPI()
    gate_app.state.user_store = store
    gate_app.state.token_service = tokens
    gate_app.add_exception_handler(AuthError, auth_error_handler)

    @gate_app.get("/protected")
    def protected(request: Request, user: User = Depends(get_current_user)) -> dict:
        return {"id": user.id, "token_attached": request.state.token is not None}

    @gate_app.get("/optional")
    def optional(user: User | None = Depends(optional_authenticate)) -> dict:
        return {"id": user.id if user else None}

    @gate_app.get("/admin", dependencies=[Depends(authenticate), Depends(require_admin)])
    def admin_only() -> dict:
        return {"ok": True}

    @gate_app.get("/verified", dependencies=[Depends(authenticate), Depends(require_verified)])
    def verified_only() -> dict:
        return {"ok": True}

    @gate_app.get("/admin-unwired", dependencies=[Depends(require_admin)])
    def admin_without_authenticate() -> dict:
        return {"ok": True}

    @gate_app.get("/verified-unwired", dependencies=[Depends(require_verified)])
    def verified_without_authenticate() -> dict:
        return {"ok": True}

    return gate_app


@pytest.fixture
def gate_client(store, tokens):
    with TestClient(_build_app(store, tokens)) as client:
        yield client


@pytest.fixture
def account(store) -> User:
    user = User(email="a@x.com", username="annlee", first_name="Ann", last_name="Lee", hashed_password="x")
    user.id = store.create_user(user)
    return user


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _error(resp) -> dict:
    return resp.json()["error"]


class TestAuthenticate:
    def test_missing_token(self, gate_client) -> None:
        resp = gate_client.get("/protected")
        assert resp.status_code == 401
        assert _error(resp)["message"] == "No authentication token provided"

    def test_non_bearer_scheme_counts_as_missing(self, gate_client) -> None:
        resp = gate_client.get("/protected", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401
        assert _error(resp)["message"] == "No authentication token provided"

    def test_invalid_token(self, gate_client) -> None:
        resp = gate_client.get("/protected", headers=_bearer("not.a.jwt"))
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Invalid token"

    def test_expired_token(self, gate_client, account: User, settings) -> None:
        moment = datetime.now(timezone.utc) - timedelta(days=8)
        expired = TokenService(settings.jwt_secret, clock=lambda: moment).issue_session(account)
        resp = gate_client.get("/protected", headers=_bearer(expired))
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Token expired"

    def test_deleted_user(self, gate_client, account: User, tokens: TokenService, store: UserStore) -> None:
        token = tokens.issue_session(account)
        store.delete_user(account.id)
        resp = gate_client.get("/protected", headers=_bearer(token))
        assert resp.status_code == 401
        assert _error(resp)["message"] == "User not found"

    def test_reset_challenge_rejected(self, gate_client, account: User, tokens: TokenService) -> None:
        resp = gate_client.get("/protected", headers=_bearer(tokens.issue_reset_challenge(account.id)))
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Invalid token"

    def test_valid_token_attaches_user(self, gate_client, account: User, tokens: TokenService) -> None:
        resp = gate_client.get("/protected", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 200
        assert resp.json() == {"id": account.id, "token_attached": True}

    def test_store_failure_is_500_with_detail(self, store, tokens: TokenService, account: User) -> None:
        broken = MagicMock()
        broken.get_by_id.side_effect = RuntimeError("connection refused")
        with TestClient(_build_app(broken, tokens)) as client:
            resp = client.get("/protected", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 500
        assert _error(resp)["code"] == "authentication_failed"
        assert _error(resp)["message"] == "Authentication failed"
        assert _error(resp)["detail"] == "connection refused"


class TestOptionalAuthenticate:
    @pytest.mark.parametrize("headers", [{}, _bearer("garbage"), {"Authorization": "Token abc"}])
    def test_failures_proceed_anonymously(self, gate_client, headers: dict) -> None:
        resp = gate_client.get("/optional", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"id": None}

    def test_expired_token_proceeds_anonymously(self, gate_client, account: User, settings) -> None:
        moment = datetime.now(timezone.utc) - timedelta(days=8)
        expired = TokenService(settings.jwt_secret, clock=lambda: moment).issue_session(account)
        assert gate_client.get("/optional", headers=_bearer(expired)).json() == {"id": None}

    def test_deleted_user_proceeds_anonymously(self, gate_client, account: User, tokens, store) -> None:
        token = tokens.issue_session(account)
        store.delete_user(account.id)
        assert gate_client.get("/optional", headers=_bearer(token)).json() == {"id": None}

    def test_valid_token_attaches_user(self, gate_client, account: User, tokens: TokenService) -> None:
        resp = gate_client.get("/optional", headers=_bearer(tokens.issue_session(account)))
        assert resp.json() == {"id": account.id}


class TestRoleGates:
    def test_admin_gate_needs_authenticate(self, gate_client) -> None:
        resp = gate_client.get("/admin-unwired")
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Authentication required"

    def test_verified_gate_needs_authenticate(self, gate_client) -> None:
        resp = gate_client.get("/verified-unwired")
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Authentication required"

    def test_non_admin_forbidden(self, gate_client, account: User, tokens: TokenService) -> None:
        resp = gate_client.get("/admin", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 403
        assert _error(resp)["message"] == "Admin access required"

    def test_admin_allowed(self, gate_client, account: User, tokens: TokenService, store: UserStore) -> None:
        store.update_user(account.id, is_admin=True)
        resp = gate_client.get("/admin", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 200

    def test_unverified_forbidden(self, gate_client, account: User, tokens: TokenService) -> None:
        resp = gate_client.get("/verified", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 403
        assert _error(resp)["message"] == "Email verification required"

    def test_verified_allowed(self, gate_client, account: User, tokens: TokenService, store: UserStore) -> None:
        store.update_user(account.id, is_verified=True)
        resp = gate_client.get("/verified", headers=_bearer(tokens.issue_session(account)))
        assert resp.status_code == 200

    def test_admin_gate_short_circuits_on_bad_token(self, gate_client) -> None:
        resp = gate_client.get("/admin", headers=_bearer("garbage"))
        assert resp.status_code == 401
        assert _error(resp)["message"] == "Invalid token"
