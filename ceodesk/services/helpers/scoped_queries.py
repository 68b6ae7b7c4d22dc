"""
Org-scoped query helpers.

Every get-by-id MUST go through these helpers instead of
db.session.get(Model, pk). A bare .get() bypasses organisation isolation.

Usage:
    req = get_scoped(Request, request_id, org_id=actor.org_id)
    approval = get_scoped(Approval, approval_id, org_id=actor.org_id)

    # When None is an acceptable outcome
    cat = get_scoped_or_none(Category, category_id, org_id=org_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model. A
    scope naming a column the model lacks raises ValueError at call time,
    so the bug surfaces in tests rather than as an unscoped lookup.
"""

import logging

from sqlalchemy import select

from ceodesk.core.exceptions import NotFoundError
from ceodesk.models import db

logger = logging.getLogger(__name__)


def _scoped_select(model, pk, scopes: dict):
    provided = {k: v for k, v in scopes.items() if v is not None}
    if not provided:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter. "
            "Unscoped lookups are forbidden."
        )
    missing = sorted(field for field in provided if not hasattr(model, field))
    if missing:
        raise ValueError(f"{model.__name__} has no scope column(s) {missing}")

    stmt = select(model).where(model.id == pk)
    for field, value in provided.items():
        stmt = stmt.where(getattr(model, field) == value)
    return stmt


def get_scoped(model, pk, *, org_id=None, request_id=None):
    """Fetch a single entity by PK with a mandatory scope filter.

    Raises:
        ValueError: no scope given, or a scope column missing on the model.
        NotFoundError: entity missing OR outside the scope. The two cases
                       are intentionally indistinguishable.
    """
    stmt = _scoped_select(model, pk, {"org_id": org_id, "request_id": request_id})
    obj = db.session.execute(stmt).scalar_one_or_none()
    if obj is None:
        logger.debug("get_scoped miss: %s id=%s org=%s", model.__name__, pk, org_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk, org_id=org_id)
    return obj


def get_scoped_or_none(model, pk, *, org_id=None, request_id=None):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    if pk is None:
        return None
    stmt = _scoped_select(model, pk, {"org_id": org_id, "request_id": request_id})
    return db.session.execute(stmt).scalar_one_or_none()


def org_member_ids(org_id, user_ids) -> set:
    """Subset of ``user_ids`` that are active users of ``org_id``."""
    from ceodesk.models.auth import User

    ids = list(user_ids)
    if not ids:
        return set()
    rows = (
        db.session.query(User.id)
        .filter(User.org_id == org_id, User.id.in_(ids), User.is_active.is_(True))
        .all()
    )
    return {row[0] for row in rows}
