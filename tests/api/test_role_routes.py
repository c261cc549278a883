"""
Tests for the role routes, route guards and operator preview endpoints.

Requests go through RoleResolutionMiddleware with real Supabase-style JWTs
and an in-memory role store.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.middleware import RoleResolutionMiddleware
from api import debug as debug_api
from api import roles as roles_api
from api.admin import role_preview
from core.metrics import get_counter
from core.rbac import (
    RoleSessionRegistry,
    SessionState,
    configure_resolver,
    configure_session_registry,
    get_session_registry,
)
from core.rbac.identity import configure_identity_resolver


JWT_SECRET = "test-secret-key-12345"
OPERATOR_KEY = "op-key-789"


# ============================================================================
# Fixtures
# ============================================================================

def make_token(user_id, session_id=None):
    payload = {
        "sub": user_id,
        "email": f"{user_id}@example.com",
        "aud": "authenticated",
        "session_id": session_id or f"sess-{user_id}",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth(user_id, operator_key=None):
    headers = {"Authorization": f"Bearer {make_token(user_id)}"}
    if operator_key:
        headers["X-Operator-Key"] = operator_key
    return headers


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "service-key")
    monkeypatch.delenv("OPERATOR_API_KEY", raising=False)
    monkeypatch.delenv("ROLE_OVERRIDE_ENABLED", raising=False)
    return monkeypatch


@pytest.fixture
def operator_env(env):
    env.setenv("OPERATOR_API_KEY", OPERATOR_KEY)
    env.setenv("ROLE_OVERRIDE_ENABLED", "true")
    return env


@pytest.fixture
def client(env, role_store):
    configure_identity_resolver(JWT_SECRET)
    configure_resolver(store=role_store, timeout_seconds=1.0)

    app = FastAPI()
    app.add_middleware(RoleResolutionMiddleware)
    app.include_router(roles_api.router)
    app.include_router(role_preview.router)
    app.include_router(debug_api.router)

    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# /me/role
# ============================================================================

class TestMyRole:

    def test_anonymous_is_unauthorized(self, client):
        response = client.get("/me/role")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "unauthenticated"

    def test_invalid_token_is_anonymous(self, client):
        response = client.get("/me/role", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_primary_admin(self, client):
        body = client.get("/me/role", headers=auth("u1")).json()
        assert body["role"] == "admin"
        assert body["source"] == "user_roles"
        assert body["is_primary_admin"] is True
        assert body["display_name"] == "RAYN Admin"
        assert body["source_label"] == "RAYN Admin Role"
        assert body["dashboard"] == "rayn"
        assert body["capabilities"]["is_administrator"] is True
        assert body["state"] == "resolved"

    def test_licensed_user(self, client):
        body = client.get("/me/role", headers=auth("u2")).json()
        assert body["role"] == "user"
        assert body["source"] == "product_license_assignments"
        assert body["scope_id"] == "org-9"
        assert body["dashboard"] == "personal"
        assert body["source_label"] == "Product License Assignment"

    def test_default_user(self, client):
        body = client.get("/me/role", headers=auth("u3")).json()
        assert body["source"] == "default"
        assert body["scope_id"] is None
        assert body["capabilities"]["is_manager_or_above"] is False

    def test_legacy_moderator_is_manager(self, client):
        body = client.get("/me/role", headers=auth("u4")).json()
        assert body["role"] == "manager"
        assert body["display_name"] == "Manager"
        assert body["dashboard"] == "staff"

    def test_session_reused_across_requests(self, client):
        client.get("/me/role", headers=auth("u2"))
        client.get("/me/role", headers=auth("u2"))
        assert len(get_session_registry()) == 1
        assert get_counter("rbac.resolutions") == 1

    def test_refresh_picks_up_store_changes(self, client, role_store):
        client.get("/me/role", headers=auth("u3"))
        role_store.assignments["u3"] = ("manager", "L2")

        assert client.get("/me/role", headers=auth("u3")).json()["role"] == "user"
        body = client.post("/me/role/refresh", headers=auth("u3")).json()
        assert body["role"] == "manager"
        assert body["scope_id"] == "org-3"

    def test_resolving_session_answers_503(self, client):
        session = get_session_registry().get_or_create("sess-u2")
        session.user_id = "u2"
        session.state = SessionState.RESOLVING

        response = client.get("/me/role", headers=auth("u2"))
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"


class TestAdminCheck:

    def test_primary_admin_allowed(self, client):
        response = client.get("/me/admin-check", headers=auth("u1"))
        assert response.status_code == 200
        assert response.json() == {"admin": True, "primary": True, "scope_id": None}

    def test_client_admin_allowed(self, client):
        response = client.get("/me/admin-check", headers=auth("u5"))
        assert response.status_code == 200
        assert response.json()["scope_id"] == "org-9"

    def test_user_forbidden(self, client):
        response = client.get("/me/admin-check", headers=auth("u2"))
        assert response.status_code == 403
        assert response.json()["detail"]["capability"] == "admin"
        assert get_counter("rbac.audit.denials") == 1
        assert get_counter("rbac.denied.by_route", labels={"route": "/me/admin-check"}) == 1

    def test_store_outage_denies(self, client, role_store):
        role_store.failures["get_primary_admin_role"] = RuntimeError("store down")
        assert client.get("/me/admin-check", headers=auth("u1")).status_code == 403


class TestSignOut:

    def test_sign_out_drops_session(self, client):
        client.get("/me/role", headers=auth("u2"))
        response = client.post("/auth/sign-out", headers=auth("u2"))
        assert response.status_code == 200
        assert response.json() == {"signed_out": True}
        assert get_session_registry().get("sess-u2") is None

    def test_anonymous_sign_out(self, client):
        assert client.post("/auth/sign-out").status_code == 401


# ============================================================================
# Operator routes
# ============================================================================

class TestOperatorGating:

    def test_hidden_without_operator_key(self, client):
        response = client.get("/debug/role/presets", headers=auth("u2", "anything"))
        assert response.status_code == 404
        assert client.get("/debug/metrics", headers=auth("u2", "anything")).status_code == 404

    def test_hidden_when_preview_disabled(self, client, env):
        env.setenv("OPERATOR_API_KEY", OPERATOR_KEY)
        assert client.get("/debug/role/presets", headers=auth("u2", OPERATOR_KEY)).status_code == 404
        assert client.get("/debug/metrics", headers=auth("u2", OPERATOR_KEY)).status_code == 200

    def test_wrong_key_forbidden(self, client, operator_env):
        response = client.get("/debug/role/presets", headers=auth("u2", "wrong"))
        assert response.status_code == 403
        assert get_counter("rbac.audit.denials") == 1

    def test_anonymous_operator(self, client, operator_env):
        response = client.get("/debug/role/presets", headers={"X-Operator-Key": OPERATOR_KEY})
        assert response.status_code == 401


class TestRolePreview:

    def test_presets(self, client, operator_env):
        response = client.get("/debug/role/presets", headers=auth("u2", OPERATOR_KEY))
        assert response.status_code == 200
        assert [p["key"] for p in response.json()] == ["client_admin", "manager", "user"]

    def test_active_customers(self, client, operator_env):
        response = client.get("/debug/role/customers", headers=auth("u2", OPERATOR_KEY))
        assert response.json() == [
            {"id": "org-3", "customer_name": "Acme", "short_name": "ACM"},
            {"id": "org-9", "customer_name": "Northwind", "short_name": "NW"},
        ]

    def test_override_defaults_to_first_customer(self, client, operator_env):
        headers = auth("u2", OPERATOR_KEY)
        response = client.post("/debug/role/override", json={"preset": "client_admin"}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "admin"
        assert body["is_scoped_admin"] is True
        assert body["is_primary_admin"] is False
        assert body["scope_id"] == "org-3"
        assert body["dashboard"] == "client"
        assert body["override_active"] is True

        assert client.get("/me/admin-check", headers=auth("u2")).status_code == 200

    def test_override_survives_refresh_until_cleared(self, client, operator_env):
        headers = auth("u2", OPERATOR_KEY)
        client.post("/debug/role/override", json={"preset": "manager", "scope_id": "org-9"}, headers=headers)

        body = client.post("/me/role/refresh", headers=auth("u2")).json()
        assert body["role"] == "manager"
        assert body["override_active"] is True

        body = client.delete("/debug/role/override", headers=headers).json()
        assert body["role"] == "user"
        assert body["override_active"] is False

    def test_override_only_affects_own_session(self, client, operator_env):
        client.post("/debug/role/override", json={"preset": "client_admin"}, headers=auth("u2", OPERATOR_KEY))
        assert client.get("/me/role", headers=auth("u3")).json()["role"] == "user"

    def test_inactive_scope_rejected(self, client, operator_env):
        response = client.post(
            "/debug/role/override",
            json={"preset": "user", "scope_id": "org-7"},
            headers=auth("u2", OPERATOR_KEY),
        )
        assert response.status_code == 400

    def test_unknown_preset_rejected(self, client, operator_env):
        response = client.post(
            "/debug/role/override",
            json={"preset": "rayn_admin"},
            headers=auth("u2", OPERATOR_KEY),
        )
        assert response.status_code == 422

    def test_sign_out_clears_override(self, client, operator_env):
        client.post("/debug/role/override", json={"preset": "client_admin"}, headers=auth("u2", OPERATOR_KEY))
        client.post("/auth/sign-out", headers=auth("u2"))
        body = client.get("/me/role", headers=auth("u2")).json()
        assert body["override_active"] is False
        assert body["role"] == "user"


class TestSessionRetention:

    def test_registry_bounded_across_many_sessions(self, client):
        configure_session_registry(max_sessions=50)
        for i in range(300):
            token = make_token("u2", session_id=f"tab-{i}")
            response = client.get("/me/role", headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 200

        assert len(get_session_registry()) == 50
        assert get_counter("rbac.session.evicted", labels={"reason": "capacity"}) == 250

    def test_session_carries_token_expiry(self, client):
        client.get("/me/role", headers=auth("u2"))
        session = get_session_registry().get("sess-u2")
        assert session.expires_at is not None
        assert not session.is_expired()

    def test_registry_failure_falls_back_to_default(self, client):
        with patch.object(RoleSessionRegistry, "get_or_create", side_effect=RuntimeError("registry down")):
            body = client.get("/me/role", headers=auth("u1")).json()
            denied = client.get("/me/admin-check", headers=auth("u1"))

        assert body["source"] == "default"
        assert body["role"] == "user"
        assert body["state"] == "resolved"
        assert denied.status_code == 403
        assert len(get_session_registry()) == 0

    def test_recovers_after_registry_failure(self, client):
        with patch.object(RoleSessionRegistry, "get_or_create", side_effect=RuntimeError("registry down")):
            client.get("/me/role", headers=auth("u1"))

        body = client.get("/me/role", headers=auth("u1")).json()
        assert body["source"] == "user_roles"


class TestDebugEndpoints:

    def test_metrics(self, client, operator_env):
        client.get("/me/role", headers=auth("u1"))
        body = client.get("/debug/metrics", headers=auth("u1", OPERATOR_KEY)).json()
        assert "rbac.resolutions" in body["rbac"]["resolutions"]
        assert body["sessions"] == 1

    def test_metrics_resolution_histogram(self, client, operator_env):
        client.get("/me/role", headers=auth("u2"))
        body = client.get("/debug/metrics", headers=auth("u1", OPERATOR_KEY)).json()
        stats = body["rbac"]["resolution_ms"]
        assert set(stats) == {"count", "sum", "avg", "buckets"}
        assert stats["count"] == 2

    def test_config_has_no_secrets(self, client, operator_env):
        body = client.get("/debug/config", headers=auth("u1", OPERATOR_KEY)).json()
        assert "OPERATOR_API_KEY" not in body
        assert "SUPABASE_KEY" not in body
        assert body["ROLE_OVERRIDE_ENABLED"] is True
