"""
Request Service.

CRUD around the request lifecycle: creation in DRAFT, org-scoped listing
and detail, soft delete, and categories. Status changes and content edits
belong to ``request_lifecycle``.

All functions flush; blueprints own the commit.
"""

import logging

from ceodesk.core.exceptions import ConflictError, ValidationError
from ceodesk.models import db
from ceodesk.models.audit import record_audit
from ceodesk.models.collaboration import RequestComment, RequestWatcher
from ceodesk.models.request import INITIAL_STATUS, Category, Request
from ceodesk.services import approval_rounds
from ceodesk.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from ceodesk.services.permission import (
    is_elevated,
    require_elevated,
    require_owner_or_elevated,
    require_role,
)
from ceodesk.services.settings_service import get_settings

logger = logging.getLogger(__name__)

CREATOR_ROLES = frozenset({"MANAGER", "CEO"})
DEFAULT_DELETE_REASON = "Deleted by user"
DELETED_REASON = "request deleted"


def validate_category(org_id: str, category_id: str | None) -> None:
    """A category reference must point at a category of the same org."""
    if category_id is not None and get_scoped_or_none(Category, category_id, org_id=org_id) is None:
        raise ValidationError("Unknown category", details={"category_id": "not found"})


# ── Requests ─────────────────────────────────────────────────────────────────


def create_request(org_id: str, actor, data: dict) -> Request:
    """
    Create a request in DRAFT at version 1.

    Args:
        data: cleaned content (title, description, priority_code, category_id).
    """
    require_role(actor, CREATOR_ROLES, "create requests")
    validate_category(org_id, data.get("category_id"))

    req = Request(
        org_id=org_id,
        title=data["title"],
        description=data.get("description"),
        priority_code=data.get("priority_code") or get_settings(org_id)["default_priority_code"],
        category_id=data.get("category_id"),
        status=INITIAL_STATUS,
        request_version=1,
        requester_id=actor.id,
    )
    db.session.add(req)
    db.session.flush()

    logger.info("Request created: id=%s org=%s by=%s", req.id, org_id, actor.id)
    record_audit(
        org_id=org_id,
        entity_type="request",
        entity_id=req.id,
        action="created",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values=req.to_dict(),
    )
    return req


def list_requests(
    org_id: str,
    *,
    status: str | None = None,
    priority_code: str | None = None,
    requester_id: str | None = None,
    show_deleted: bool = False,
):
    """Org-scoped request query, newest first. Soft-deleted rows hidden by default."""
    query = Request.query_for_org(org_id) if show_deleted else Request.query_active().filter_by(org_id=org_id)
    if status:
        query = query.filter(Request.status == status)
    if priority_code:
        query = query.filter(Request.priority_code == priority_code)
    if requester_id:
        query = query.filter(Request.requester_id == requester_id)
    return query.order_by(Request.created_at.desc())


def get_request(org_id: str, request_id: str) -> Request:
    return get_scoped(Request, request_id, org_id=org_id)


def get_request_detail(org_id: str, request_id: str) -> dict:
    req = get_request(org_id, request_id)
    comments = (
        RequestComment.query_for_org(org_id)
        .filter_by(request_id=req.id)
        .order_by(RequestComment.created_at.asc())
        .all()
    )
    watchers = RequestWatcher.query_for_org(org_id).filter_by(request_id=req.id).all()
    active = approval_rounds.get_active_approval(req)
    return {
        **req.to_dict(),
        "approvals": [a.to_dict() for a in approval_rounds.list_rounds(req)],
        "active_approval_id": active.id if active else None,
        "comments": [c.to_dict() for c in comments],
        "watchers": [w.to_dict() for w in watchers],
    }


def soft_delete_request(req: Request, actor, reason: str | None = None) -> Request:
    require_owner_or_elevated(actor, req.requester_id, "delete this request")
    if req.is_deleted:
        raise ValidationError("Request is already deleted")

    reason = (reason or "").strip() or DEFAULT_DELETE_REASON
    req.soft_delete(reason=reason, by=actor.id)
    req.touch()
    db.session.flush()

    active = approval_rounds.get_active_approval(req)
    invalidated = active is not None and approval_rounds.invalidate(active, DELETED_REASON, actor=actor)

    logger.info("Request soft-deleted: id=%s by=%s invalidated=%s", req.id, actor.id, invalidated)
    record_audit(
        org_id=req.org_id,
        entity_type="request",
        entity_id=req.id,
        action="deleted",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values={"deleted_at": req.deleted_at, "deleted_reason": reason},
        metadata={"invalidated": invalidated},
    )
    return req


def can_view_request(req: Request, actor) -> bool:
    """Requester, watchers, and CEO/ADMIN can see request-level collaboration data."""
    if is_elevated(actor) or actor.id == req.requester_id:
        return True
    return (
        RequestWatcher.query_for_org(req.org_id)
        .filter_by(request_id=req.id, watcher_id=actor.id)
        .first()
        is not None
    )


# ── Categories ───────────────────────────────────────────────────────────────


def list_categories(org_id: str) -> list[Category]:
    return Category.query_for_org(org_id).order_by(Category.name.asc()).all()


def create_category(org_id: str, actor, name: str, description: str | None = None) -> Category:
    require_elevated(actor, "manage categories")
    if Category.query_for_org(org_id).filter_by(name=name).first() is not None:
        raise ConflictError("Category", "name", name)
    category = Category(org_id=org_id, name=name, description=description)
    db.session.add(category)
    db.session.flush()
    record_audit(
        org_id=org_id,
        entity_type="category",
        entity_id=category.id,
        action="created",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values=category.to_dict(),
    )
    return category
