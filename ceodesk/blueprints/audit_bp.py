"""
CEO Desk
Audit trail blueprint.

Endpoints:
    GET  /api/v1/audit                     — list / filter audit logs (CEO/ADMIN)
    GET  /api/v1/requests/<id>/history     — timeline for one request and its approval rounds
"""

from flask import Blueprint, jsonify, request

from ceodesk.auth import resolve_actor
from ceodesk.models.audit import AuditLog
from ceodesk.services import approval_rounds
from ceodesk.services.permission import require_elevated
from ceodesk.services.request_service import get_request
from ceodesk.utils.errors import register_error_handlers

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")
register_error_handlers(audit_bp)


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return paginated audit logs for the caller's org, newest first.

    Query params:
        entity_type  — filter by entity type
        entity_id    — filter by entity PK
        action       — filter by action string (prefix match)
        user_id      — filter by acting user
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    actor = resolve_actor()
    require_elevated(actor, "read the audit trail")
    q = AuditLog.query.filter(AuditLog.org_id == actor.org_id)

    # ── Filters ──────────────────────────────────────────────────────────
    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    entity_id = request.args.get("entity_id")
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action.startswith(action))

    user_id = request.args.get("user_id")
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)

    # ── Ordering ─────────────────────────────────────────────────────────
    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    # ── Pagination ───────────────────────────────────────────────────────
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


# ── Request timeline ─────────────────────────────────────────────────────────

@audit_bp.route("/requests/<request_id>/history", methods=["GET"])
def request_history(request_id):
    """Oldest-first audit entries for a request and each of its approval rounds."""
    actor = resolve_actor()
    req = get_request(actor.org_id, request_id)
    entity_ids = [req.id] + [a.id for a in approval_rounds.list_rounds(req)]

    logs = (
        AuditLog.query
        .filter(AuditLog.org_id == actor.org_id, AuditLog.entity_id.in_(entity_ids))
        .order_by(AuditLog.timestamp.asc())
        .all()
    )
    return jsonify({"request_id": req.id, "items": [log.to_dict() for log in logs]})
