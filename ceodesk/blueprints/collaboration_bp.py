"""
Collaboration Blueprint — comments and watchers on a request.

Endpoints:
    GET    /api/v1/requests/<id>/comments                 — list comments
    POST   /api/v1/requests/<id>/comments                 — add a comment
    GET    /api/v1/requests/<id>/watchers                 — list watchers
    POST   /api/v1/requests/<id>/watchers                 — add / update a watcher
    DELETE /api/v1/requests/<id>/watchers/<user_id>       — remove a watcher
"""

import logging

from flask import Blueprint, jsonify

from ceodesk.auth import resolve_actor
from ceodesk.services import collaboration_service
from ceodesk.services.request_service import get_request
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

collaboration_bp = Blueprint("collaboration", __name__, url_prefix="/api/v1")
register_error_handlers(collaboration_bp)


# ── Comments ─────────────────────────────────────────────────────────────────


@collaboration_bp.route("/requests/<request_id>/comments", methods=["GET"])
def list_comments(request_id):
    actor = resolve_actor()
    req = get_request(actor.org_id, request_id)
    comments = collaboration_service.list_comments(req, actor)
    return jsonify({"items": [c.to_dict() for c in comments]})


@collaboration_bp.route("/requests/<request_id>/comments", methods=["POST"])
def add_comment(request_id):
    """Body: { body }"""
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    body = data.get("body")
    if not isinstance(body, str) or not body.strip():
        return api_error(E.VALIDATION_REQUIRED, "body is required", details={"body": "required"})
    if len(body) > collaboration_service.MAX_COMMENT_LENGTH:
        return api_error(E.VALIDATION_INVALID, "Comment too long",
                         details={"body": f"must be at most {collaboration_service.MAX_COMMENT_LENGTH} characters"})

    req = get_request(actor.org_id, request_id)
    comment = collaboration_service.add_comment(req, actor, body)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201


# ── Watchers ─────────────────────────────────────────────────────────────────


@collaboration_bp.route("/requests/<request_id>/watchers", methods=["GET"])
def list_watchers(request_id):
    actor = resolve_actor()
    req = get_request(actor.org_id, request_id)
    return jsonify({"items": [w.to_dict() for w in collaboration_service.list_watchers(req)]})


@collaboration_bp.route("/requests/<request_id>/watchers", methods=["POST"])
def add_watcher(request_id):
    """Body: { watcher_id, watcher_role? }"""
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    watcher_id = data.get("watcher_id")
    watcher_role = data.get("watcher_role")
    if not isinstance(watcher_id, str) or not watcher_id:
        return api_error(E.VALIDATION_REQUIRED, "watcher_id is required", details={"watcher_id": "required"})
    if watcher_role is not None and not isinstance(watcher_role, str):
        return api_error(E.VALIDATION_INVALID, "Invalid watcher_role", details={"watcher_role": "must be a string"})

    req = get_request(actor.org_id, request_id)
    watcher, created = collaboration_service.add_watcher(req, actor, watcher_id, watcher_role)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(watcher.to_dict()), 201 if created else 200


@collaboration_bp.route("/requests/<request_id>/watchers/<watcher_id>", methods=["DELETE"])
def remove_watcher(request_id, watcher_id):
    actor = resolve_actor()
    req = get_request(actor.org_id, request_id)
    collaboration_service.remove_watcher(req, actor, watcher_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True})
