"""
Collaboration Service — comments and watchers on a request.

Comments:
  - requester, watchers, and CEO/ADMIN may comment
  - body is HTML-escaped before storage
  - @<uuid> mentions are capped per org setting and must be org members
  - each mention is written to the notification log

Watchers:
  - one row per (request, user); re-adding updates the role
  - only the requester or CEO/ADMIN manage watchers

Neither path touches request content or version, so comments and watchers
never invalidate an approval round.
"""

import logging
import re

from markupsafe import escape

from ceodesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ceodesk.models import db
from ceodesk.models.audit import record_audit
from ceodesk.models.collaboration import (
    DEFAULT_WATCHER_ROLE,
    WATCHER_ROLES,
    RequestComment,
    RequestWatcher,
)
from ceodesk.services.helpers.scoped_queries import org_member_ids
from ceodesk.services.notification import NotificationService
from ceodesk.services.permission import require_owner_or_elevated
from ceodesk.services.request_service import can_view_request
from ceodesk.services.settings_service import get_settings

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000

_MENTION_RE = re.compile(
    r"@([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
)


def sanitize_text(text: str) -> str:
    """HTML-escape user text so it is inert when rendered."""
    return str(escape(text))


def extract_mentions(text: str) -> list[str]:
    """Distinct @<uuid> mentions, lowercased, in order of first appearance."""
    return list(dict.fromkeys(m.lower() for m in _MENTION_RE.findall(text)))


# ── Comments ─────────────────────────────────────────────────────────────────


def list_comments(req, actor) -> list[RequestComment]:
    if not can_view_request(req, actor):
        raise ForbiddenError("view comments", actor_role=actor.role_code,
                             reason="Only the requester, watchers, or CEO/ADMIN can view comments")
    return (
        RequestComment.query_for_org(req.org_id)
        .filter_by(request_id=req.id)
        .order_by(RequestComment.created_at.asc())
        .all()
    )


def add_comment(req, actor, body: str) -> RequestComment:
    """
    Add a comment to a request.

    Raises:
        ForbiddenError: actor is not requester, watcher, or CEO/ADMIN.
        ValidationError: empty/oversized body, too many or unknown mentions.
    """
    if not can_view_request(req, actor):
        raise ForbiddenError("comment", actor_role=actor.role_code,
                             reason="Only the requester, watchers, or CEO/ADMIN can comment")

    body = (body or "").strip()
    if not body:
        raise ValidationError("Comment body is required", details={"body": "required"})
    if len(body) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
                              details={"body": "too long"})

    mentions = extract_mentions(body)
    limit = get_settings(req.org_id)["max_mentions_per_comment"]
    if len(mentions) > limit:
        raise ValidationError(f"Too many mentions (max {limit})", details={"mentions": len(mentions)})
    members = org_member_ids(req.org_id, mentions)
    unknown = [m for m in mentions if m not in members]
    if unknown:
        raise ValidationError("Mentioned users must belong to the organization",
                              details={"unknown_mentions": unknown})

    comment = RequestComment(
        org_id=req.org_id,
        request_id=req.id,
        author_id=actor.id,
        body=sanitize_text(body),
        mentions=mentions,
    )
    db.session.add(comment)
    req.touch()
    db.session.flush()

    if mentions:
        NotificationService.record(
            org_id=req.org_id,
            user_ids=mentions,
            notification_type="mention",
            entity_type="request",
            entity_id=req.id,
            payload={"comment_id": comment.id, "author_id": actor.id},
        )
    record_audit(
        org_id=req.org_id,
        entity_type="comment",
        entity_id=comment.id,
        action="comment_added",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values={"request_id": req.id, "mentions": mentions},
    )
    return comment


# ── Watchers ─────────────────────────────────────────────────────────────────


def list_watchers(req) -> list[RequestWatcher]:
    return (
        RequestWatcher.query_for_org(req.org_id)
        .filter_by(request_id=req.id)
        .order_by(RequestWatcher.created_at.asc())
        .all()
    )


def add_watcher(req, actor, watcher_id: str, watcher_role: str | None = None) -> tuple[RequestWatcher, bool]:
    """
    Add or update a watcher.

    Returns:
        (watcher, created) — created is False when an existing row was updated.
    """
    require_owner_or_elevated(actor, req.requester_id, "manage watchers")
    watcher_role = watcher_role or DEFAULT_WATCHER_ROLE
    if watcher_role not in WATCHER_ROLES:
        raise ValidationError("Invalid watcher role", details={"watcher_role": f"must be one of {list(WATCHER_ROLES)}"})
    if watcher_id not in org_member_ids(req.org_id, [watcher_id]):
        raise ValidationError("Watcher must belong to the organization", details={"watcher_id": "not found"})

    watcher = (
        RequestWatcher.query_for_org(req.org_id)
        .filter_by(request_id=req.id, watcher_id=watcher_id)
        .first()
    )
    created = watcher is None
    old_role = None if created else watcher.watcher_role
    if created:
        watcher = RequestWatcher(
            org_id=req.org_id,
            request_id=req.id,
            watcher_id=watcher_id,
            watcher_role=watcher_role,
            added_by=actor.id,
        )
        db.session.add(watcher)
    else:
        watcher.watcher_role = watcher_role
    db.session.flush()

    record_audit(
        org_id=req.org_id,
        entity_type="watcher",
        entity_id=watcher.id,
        action="watcher_added",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        old_values={"watcher_role": old_role} if old_role else None,
        new_values={"request_id": req.id, "watcher_id": watcher_id, "watcher_role": watcher_role},
    )
    return watcher, created


def remove_watcher(req, actor, watcher_id: str) -> None:
    require_owner_or_elevated(actor, req.requester_id, "manage watchers")
    watcher = (
        RequestWatcher.query_for_org(req.org_id)
        .filter_by(request_id=req.id, watcher_id=watcher_id)
        .first()
    )
    if watcher is None:
        raise NotFoundError(resource="Watcher", resource_id=watcher_id, org_id=req.org_id)

    db.session.delete(watcher)
    db.session.flush()
    record_audit(
        org_id=req.org_id,
        entity_type="watcher",
        entity_id=watcher.id,
        action="watcher_removed",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        old_values={"request_id": req.id, "watcher_id": watcher_id, "watcher_role": watcher.watcher_role},
    )
