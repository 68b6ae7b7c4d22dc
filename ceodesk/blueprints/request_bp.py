"""
Request Blueprint — request lifecycle, categories and registry metadata.

Endpoints:
    GET    /api/v1/meta/statuses                 — status registry + transition table
    GET    /api/v1/meta/priorities               — priority registry
    GET    /api/v1/categories                    — list categories
    POST   /api/v1/categories                    — create category (CEO/ADMIN)
    POST   /api/v1/requests                      — create request (DRAFT)
    GET    /api/v1/requests                      — list requests (filters + paging)
    GET    /api/v1/requests/<id>                 — request detail
    PATCH  /api/v1/requests/<id>                 — status transition or content edit
    DELETE /api/v1/requests/<id>                 — soft delete
    GET    /api/v1/requests/<id>/resubmit        — resubmission check
    POST   /api/v1/requests/<id>/resubmit        — resubmit a rejected request
    GET    /api/v1/requests/<id>/approvals       — approval round history

Input shape is checked here (400); business rules live in the services and
surface through the shared error handlers (403/404/409/422).
"""

import logging

from flask import Blueprint, jsonify, request

from ceodesk.auth import resolve_actor
from ceodesk.blueprints import paginate_query
from ceodesk.models.request import (
    PRIORITY_CODES,
    REQUEST_STATUSES,
    Request,
    priority_registry,
    status_registry,
)
from ceodesk.services import approval_rounds, request_lifecycle, request_service
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

request_bp = Blueprint("requests", __name__, url_prefix="/api/v1")
register_error_handlers(request_bp)

TITLE_MIN, TITLE_MAX = 3, 200
DESCRIPTION_MAX = 10000
NOTES_MAX = 5000
CATEGORY_NAME_MAX = 100


def _validation_error(errors: dict):
    code = E.VALIDATION_REQUIRED if "required" in errors.values() else E.VALIDATION_INVALID
    return api_error(code, "Invalid request body", details=errors)


def _clean_content(data: dict, *, partial: bool) -> tuple[dict, dict]:
    """Validate title / description / priority_code / category_id.

    With ``partial`` only the keys present are checked (content edits).
    Returns (clean, errors).
    """
    clean, errors = {}, {}

    if "title" in data or not partial:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            errors["title"] = "required"
        elif not TITLE_MIN <= len(title.strip()) <= TITLE_MAX:
            errors["title"] = f"must be {TITLE_MIN}-{TITLE_MAX} characters"
        else:
            clean["title"] = title.strip()

    if "description" in data:
        description = data["description"]
        if description is not None and not isinstance(description, str):
            errors["description"] = "must be a string"
        elif description is not None and len(description) > DESCRIPTION_MAX:
            errors["description"] = f"must be at most {DESCRIPTION_MAX} characters"
        else:
            clean["description"] = description

    if "priority_code" in data:
        if data["priority_code"] not in PRIORITY_CODES:
            errors["priority_code"] = f"must be one of {list(PRIORITY_CODES)}"
        else:
            clean["priority_code"] = data["priority_code"]

    if "category_id" in data:
        category_id = data["category_id"]
        if category_id is not None and not isinstance(category_id, str):
            errors["category_id"] = "must be a string or null"
        else:
            clean["category_id"] = category_id

    return clean, errors


# ═════════════════════════════════════════════════════════════════════════════
# REGISTRY METADATA
# ═════════════════════════════════════════════════════════════════════════════


@request_bp.route("/meta/statuses", methods=["GET"])
def list_statuses():
    return jsonify({"items": status_registry()})


@request_bp.route("/meta/priorities", methods=["GET"])
def list_priorities():
    return jsonify({"items": priority_registry()})


# ═════════════════════════════════════════════════════════════════════════════
# CATEGORIES
# ═════════════════════════════════════════════════════════════════════════════


@request_bp.route("/categories", methods=["GET"])
def list_categories():
    actor = resolve_actor()
    return jsonify({"items": [c.to_dict() for c in request_service.list_categories(actor.org_id)]})


@request_bp.route("/categories", methods=["POST"])
def create_category():
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    name = (data.get("name") or "").strip() if isinstance(data.get("name"), str) else ""
    if not name:
        return _validation_error({"name": "required"})
    if len(name) > CATEGORY_NAME_MAX:
        return _validation_error({"name": f"must be at most {CATEGORY_NAME_MAX} characters"})

    category = request_service.create_category(actor.org_id, actor, name, data.get("description"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(category.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# REQUESTS
# ═════════════════════════════════════════════════════════════════════════════


@request_bp.route("/requests", methods=["POST"])
def create_request():
    """Create a request in DRAFT.

    Body: { title, description?, priority_code?, category_id? }
    """
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    clean, errors = _clean_content(data, partial=False)
    if errors:
        return _validation_error(errors)

    req = request_service.create_request(actor.org_id, actor, clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(req.to_dict()), 201


@request_bp.route("/requests", methods=["GET"])
def list_requests():
    """List requests in the actor's org.

    Query params: status, priority_code, requester_id, show_deleted, limit, offset
    """
    actor = resolve_actor()
    status = request.args.get("status")
    priority_code = request.args.get("priority_code")
    if status and status not in REQUEST_STATUSES:
        return _validation_error({"status": f"must be one of {list(REQUEST_STATUSES)}"})
    if priority_code and priority_code not in PRIORITY_CODES:
        return _validation_error({"priority_code": f"must be one of {list(PRIORITY_CODES)}"})

    query = request_service.list_requests(
        actor.org_id,
        status=status,
        priority_code=priority_code,
        requester_id=request.args.get("requester_id"),
        show_deleted=request.args.get("show_deleted", "false").lower() == "true",
    )
    items, total = paginate_query(query)
    return jsonify({"items": [r.to_dict() for r in items], "total": total})


@request_bp.route("/requests/<request_id>", methods=["GET"])
def get_request(request_id):
    actor = resolve_actor()
    return jsonify(request_service.get_request_detail(actor.org_id, request_id))


@request_bp.route("/requests/<request_id>", methods=["PATCH"])
def update_request(request_id):
    """Transition or edit a request.

    Transition body: { target_status, notes? }
    Edit body:       { title?, description?, priority_code?, category_id?, expected_version? }
    """
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    req = request_service.get_request(actor.org_id, request_id)

    if "target_status" in data:
        target = data["target_status"]
        notes = data.get("notes")
        if not isinstance(target, str) or not target:
            return _validation_error({"target_status": "required"})
        if notes is not None and (not isinstance(notes, str) or len(notes) > NOTES_MAX):
            return _validation_error({"notes": f"must be a string of at most {NOTES_MAX} characters"})

        result = request_lifecycle.transition(req, target, actor, notes=notes)
        err = db_commit_or_error()
        if err:
            return err
        return jsonify({
            "request": result["request"].to_dict(),
            "previous_status": result["previous_status"],
            "new_status": result["new_status"],
            "approval": result["approval"].to_dict() if result["approval"] else None,
            "approval_error": result["approval_error"],
        })

    expected_version = data.pop("expected_version", None)
    if expected_version is not None and (isinstance(expected_version, bool) or not isinstance(expected_version, int)):
        return _validation_error({"expected_version": "must be an integer"})
    unknown = sorted(set(data) - set(Request.CONTENT_FIELDS))
    if unknown:
        return _validation_error({field: "not editable" for field in unknown})
    clean, errors = _clean_content(data, partial=True)
    if errors:
        return _validation_error(errors)
    if not clean:
        return _validation_error({"body": "required"})
    if "category_id" in clean:
        request_service.validate_category(actor.org_id, clean["category_id"])

    result = request_lifecycle.apply_content_edit(req, clean, actor, expected_version=expected_version)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "request": result["request"].to_dict(),
        "invalidated": result["invalidated"],
        "changed_fields": result["changed_fields"],
        "previous_version": result["previous_version"],
    })


@request_bp.route("/requests/<request_id>", methods=["DELETE"])
def delete_request(request_id):
    """Soft-delete a request. Body (optional): { reason }"""
    actor = resolve_actor()
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") if isinstance(data, dict) else None
    if reason is not None and not isinstance(reason, str):
        return _validation_error({"reason": "must be a string"})

    req = request_service.get_request(actor.org_id, request_id)
    request_service.soft_delete_request(req, actor, reason)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "request": req.to_dict()})


# ── Resubmission ─────────────────────────────────────────────────────────────


@request_bp.route("/requests/<request_id>/resubmit", methods=["GET"])
def check_resubmit(request_id):
    actor = resolve_actor()
    req = request_service.get_request(actor.org_id, request_id)
    return jsonify(approval_rounds.can_resubmit(req))


@request_bp.route("/requests/<request_id>/resubmit", methods=["POST"])
def resubmit(request_id):
    """Resubmit a REJECTED request. Body (optional): { notes }"""
    actor = resolve_actor()
    data = request.get_json(silent=True) or {}
    notes = data.get("notes") if isinstance(data, dict) else None
    if notes is not None and (not isinstance(notes, str) or len(notes) > NOTES_MAX):
        return _validation_error({"notes": f"must be a string of at most {NOTES_MAX} characters"})

    req = request_service.get_request(actor.org_id, request_id)
    result = request_lifecycle.resubmit_request(req, actor, notes=notes)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "request": result["request"].to_dict(),
        "new_status": result["new_status"],
        "approval_round": result["approval_round"],
        "approval": result["approval"].to_dict() if result["approval"] else None,
        "approval_error": result["approval_error"],
    })


@request_bp.route("/requests/<request_id>/approvals", methods=["GET"])
def list_request_approvals(request_id):
    actor = resolve_actor()
    req = request_service.get_request(actor.org_id, request_id)
    return jsonify({"items": [a.to_dict() for a in approval_rounds.list_rounds(req)]})
