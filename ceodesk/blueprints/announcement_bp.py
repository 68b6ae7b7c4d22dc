"""
Announcement Blueprint.

Endpoints:
    GET  /api/v1/announcements                    — announcements visible to the caller
    POST /api/v1/announcements                    — publish (CEO/ADMIN)
    POST /api/v1/announcements/<id>/read          — mark read
    POST /api/v1/announcements/<id>/acknowledge   — acknowledge (idempotent)
"""

import logging

from flask import Blueprint, jsonify

from ceodesk.auth import resolve_actor
from ceodesk.models.announcement import ANNOUNCEMENT_TYPES, TARGET_SCOPES, Announcement
from ceodesk.services import announcement_service
from ceodesk.services.helpers.scoped_queries import get_scoped
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body, parse_datetime

logger = logging.getLogger(__name__)

announcement_bp = Blueprint("announcements", __name__, url_prefix="/api/v1")
register_error_handlers(announcement_bp)

TITLE_MIN, TITLE_MAX = 3, 200


def _clean_announcement(data: dict) -> tuple[dict, dict]:
    clean, errors = {}, {}

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        errors["title"] = "required"
    elif not TITLE_MIN <= len(title.strip()) <= TITLE_MAX:
        errors["title"] = f"must be {TITLE_MIN}-{TITLE_MAX} characters"
    else:
        clean["title"] = title.strip()

    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        errors["content"] = "required"
    else:
        clean["content"] = content

    announcement_type = data.get("announcement_type", "info")
    if announcement_type not in ANNOUNCEMENT_TYPES:
        errors["announcement_type"] = f"must be one of {list(ANNOUNCEMENT_TYPES)}"
    clean["announcement_type"] = announcement_type

    target_scope = data.get("target_scope", "all")
    if target_scope not in TARGET_SCOPES:
        errors["target_scope"] = f"must be one of {list(TARGET_SCOPES)}"
    clean["target_scope"] = target_scope

    target_user_ids = data.get("target_user_ids") or []
    if not isinstance(target_user_ids, list) or not all(isinstance(u, str) for u in target_user_ids):
        errors["target_user_ids"] = "must be a list of user ids"
    clean["target_user_ids"] = target_user_ids

    clean["require_acknowledgement"] = bool(data.get("require_acknowledgement", False))

    try:
        clean["sticky_until"] = parse_datetime(data.get("sticky_until"))
    except ValueError:
        errors["sticky_until"] = "must be an ISO-8601 datetime"

    return clean, errors


@announcement_bp.route("/announcements", methods=["GET"])
def list_announcements():
    actor = resolve_actor()
    return jsonify({"items": announcement_service.list_for_user(actor.org_id, actor)})


@announcement_bp.route("/announcements", methods=["POST"])
def publish():
    """Body: { title, content, announcement_type?, target_scope?, target_user_ids?,
    require_acknowledgement?, sticky_until? }"""
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    clean, errors = _clean_announcement(data)
    if errors:
        code = E.VALIDATION_REQUIRED if "required" in errors.values() else E.VALIDATION_INVALID
        return api_error(code, "Invalid announcement", details=errors)

    announcement = announcement_service.publish_announcement(actor.org_id, actor, clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(announcement.to_dict()), 201


@announcement_bp.route("/announcements/<announcement_id>/read", methods=["POST"])
def mark_read(announcement_id):
    actor = resolve_actor()
    announcement = get_scoped(Announcement, announcement_id, org_id=actor.org_id)
    read = announcement_service.mark_read(announcement, actor)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(announcement_service.decorate_for_user(announcement, read))


@announcement_bp.route("/announcements/<announcement_id>/acknowledge", methods=["POST"])
def acknowledge(announcement_id):
    actor = resolve_actor()
    announcement = get_scoped(Announcement, announcement_id, org_id=actor.org_id)
    read, newly = announcement_service.acknowledge(announcement, actor)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        **announcement_service.decorate_for_user(announcement, read),
        "newly_acknowledged": newly,
    })
