"""
Shared pytest fixtures for the CEO Desk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / other_org: two organisations for isolation tests
    - manager / other_manager / ceo / admin: users of ``org``
    - outsider: CEO of ``other_org``
    - make_user / make_request: factories
    - auth_headers: Bearer token headers for a user
"""

import pytest

from ceodesk import create_app
from ceodesk.models import db as _db
from ceodesk.models.auth import Organization, User
from ceodesk.models.request import Request
from ceodesk.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def _make_org(name, slug):
    org = Organization(name=name, slug=slug)
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def make_user():
    """Create and commit a user: make_user(org, "CEO", email=None)."""
    counter = {"n": 0}

    def _make(org, role_code="MANAGER", *, email=None, is_active=True):
        counter["n"] += 1
        user = User(
            org_id=org.id,
            email=email or f"{role_code.lower()}{counter['n']}@{org.slug}.test",
            full_name=f"{role_code.title()} {counter['n']}",
            role_code=role_code,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def org():
    return _make_org("Acme", "acme")


@pytest.fixture()
def other_org():
    return _make_org("Globex", "globex")


@pytest.fixture()
def manager(org, make_user):
    return make_user(org, "MANAGER")


@pytest.fixture()
def other_manager(org, make_user):
    return make_user(org, "MANAGER")


@pytest.fixture()
def ceo(org, make_user):
    return make_user(org, "CEO")


@pytest.fixture()
def admin(org, make_user):
    return make_user(org, "ADMIN")


@pytest.fixture()
def outsider(other_org, make_user):
    return make_user(other_org, "CEO")


@pytest.fixture()
def make_request():
    """Create and commit a request directly: make_request(requester, status="DRAFT", **fields)."""

    def _make(requester, status="DRAFT", **fields):
        req = Request(
            org_id=requester.org_id,
            requester_id=requester.id,
            title=fields.pop("title", "New laptop budget"),
            description=fields.pop("description", "Replace the team's ageing laptops"),
            priority_code=fields.pop("priority_code", "P3"),
            status=status,
            **fields,
        )
        _db.session.add(req)
        _db.session.commit()
        return req

    return _make


# ── Auth ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Bearer headers for a user: auth_headers(user)."""

    def _headers(user):
        token = generate_access_token(user.id, user.org_id, user.role_code)
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    return _headers
