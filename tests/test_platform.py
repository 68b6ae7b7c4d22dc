"""
Platform tests — health checks, middleware, tokens, config and demo data.
"""

import json
import logging

import jwt
import pytest
from flask import g

from ceodesk.config import ProductionConfig, _database_url
from ceodesk.middleware.logging_config import JSONFormatter, RequestContextFilter
from ceodesk.models.auth import ROLE_CODES, User
from ceodesk.models.request import Category
from ceodesk.services.demo_seed import DEFAULT_CATEGORIES, seed_demo_org
from ceodesk.services.jwt_service import decode_access_token, generate_access_token


# ── Health ───────────────────────────────────────────────────────────────────


class TestHealth:

    def test_live_needs_no_token(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_ready_checks_database(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        data = res.get_json()
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["app"]["testing"] is True


# ── Middleware ───────────────────────────────────────────────────────────────


class TestMiddleware:

    def test_security_headers(self, client):
        res = client.get("/api/v1/health")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert res.headers["Referrer-Policy"] == "no-referrer"
        assert "frame-ancestors 'none'" in res.headers["Content-Security-Policy"]
        assert "Server" not in res.headers

    def test_request_id_generated(self, client):
        res = client.get("/api/v1/health")
        assert len(res.headers["X-Request-ID"]) == 12
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_id_echoed(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
        assert res.headers["X-Request-ID"] == "abc-123"

    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_wrong_method_is_json(self, client):
        res = client.delete("/api/v1/health")
        assert res.status_code == 405
        assert res.get_json()["code"] == "ERR_METHOD_NOT_ALLOWED"


# ── Tokens ───────────────────────────────────────────────────────────────────


class TestTokens:

    def test_round_trip(self, manager):
        token = generate_access_token(manager.id, manager.org_id, manager.role_code)
        payload = decode_access_token(token)
        assert payload["sub"] == manager.id
        assert payload["org_id"] == manager.org_id
        assert payload["type"] == "access"

    def test_wrong_type_rejected(self, app, manager):
        token = jwt.encode({"sub": manager.id, "type": "refresh"}, app.config["JWT_SECRET_KEY"], algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)

    def test_expired_token_is_401(self, app, client, manager, monkeypatch):
        monkeypatch.setitem(app.config, "JWT_ACCESS_EXPIRES", -60)
        token = generate_access_token(manager.id, manager.org_id)
        res = client.get("/api/v1/requests", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_foreign_signature_is_401(self, client, manager):
        token = jwt.encode({"sub": manager.id, "type": "access"}, "not-the-secret", algorithm="HS256")
        res = client.get("/api/v1/requests", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401


# ── Config ───────────────────────────────────────────────────────────────────


class TestConfig:

    def test_postgres_scheme_rewritten(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db:5432/ceodesk")
        assert _database_url() == "postgresql://u:p@db:5432/ceodesk"

    def test_database_url_default(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert _database_url("sqlite://") == "sqlite://"

    def test_production_requires_database(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            ProductionConfig()

    def test_production_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/ceodesk")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig()


# ── Logging ──────────────────────────────────────────────────────────────────


def test_json_formatter_includes_request_context():
    record = logging.LogRecord("ceodesk.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.request_id = "req-1"
    record.status = 201
    line = json.loads(JSONFormatter().format(record))
    assert line["message"] == "hello world"
    assert line["level"] == "INFO"
    assert line["request_id"] == "req-1"
    assert line["status"] == 201
    assert "user_id" not in line


def test_context_filter_stamps_request_identity(app):
    record = logging.LogRecord("ceodesk.test", logging.INFO, __file__, 1, "inside", (), None)
    with app.test_request_context("/api/v1/requests"):
        g.request_id = "req-2"
        g.jwt_org_id = "org-1"
        g.jwt_user_id = "user-1"
        assert RequestContextFilter().filter(record) is True
    assert (record.request_id, record.org_id, record.user_id) == ("req-2", "org-1", "user-1")


def test_context_filter_outside_request():
    record = logging.LogRecord("ceodesk.test", logging.INFO, __file__, 1, "cli", (), None)
    assert RequestContextFilter().filter(record) is True
    assert not hasattr(record, "request_id")


# ── Demo data ────────────────────────────────────────────────────────────────


class TestDemoSeed:

    def test_creates_one_user_per_role(self):
        result = seed_demo_org(slug="demo")
        org = result["org"]
        assert sorted(u.role_code for u in result["users"]) == sorted(ROLE_CODES)
        assert Category.query_for_org(org.id).count() == len(DEFAULT_CATEGORIES)

    def test_idempotent(self):
        first = seed_demo_org(slug="demo")
        second = seed_demo_org(slug="demo")
        assert first["org"].id == second["org"].id
        assert [u.id for u in first["users"]] == [u.id for u in second["users"]]
        assert User.query_for_org(first["org"].id).count() == len(ROLE_CODES)
