"""
Approval Blueprint — reviewer queue and decisions.

Routes:
  GET    /api/v1/approvals          – approval queue (CEO/ADMIN)
  GET    /api/v1/approvals/<id>     – approval detail (CEO/ADMIN or the requester)
  PATCH  /api/v1/approvals/<id>     – approve / reject an open round (CEO/ADMIN)
"""

import logging

from flask import Blueprint, jsonify, request

from ceodesk.auth import resolve_actor
from ceodesk.blueprints import paginate_query
from ceodesk.models.approval import FINAL_DECISIONS, Approval
from ceodesk.services import approval_rounds
from ceodesk.services.helpers.scoped_queries import get_scoped
from ceodesk.services.permission import require_elevated, require_owner_or_elevated
from ceodesk.services.request_lifecycle import decide_approval
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approvals", __name__, url_prefix="/api/v1")
register_error_handlers(approval_bp)


@approval_bp.route("/approvals", methods=["GET"])
def list_approvals():
    """Approval queue.

    Query params: status = pending (default) | approved | rejected | all, limit, offset
    """
    actor = resolve_actor()
    require_elevated(actor, "view the approval queue")
    status = request.args.get("status", "pending")
    if status not in approval_rounds.QUEUE_FILTERS:
        return api_error(E.VALIDATION_INVALID, "Invalid status filter",
                         details={"status": f"must be one of {list(approval_rounds.QUEUE_FILTERS)}"})

    items, total = paginate_query(approval_rounds.list_queue(actor.org_id, status))
    return jsonify({"items": [a.to_dict(include_request=True) for a in items], "total": total})


@approval_bp.route("/approvals/<approval_id>", methods=["GET"])
def get_approval(approval_id):
    actor = resolve_actor()
    approval = get_scoped(Approval, approval_id, org_id=actor.org_id)
    require_owner_or_elevated(actor, approval.request.requester_id, "view this approval")
    return jsonify(approval.to_dict(include_request=True))


@approval_bp.route("/approvals/<approval_id>", methods=["PATCH"])
def decide(approval_id):
    """Decide an open approval round.

    Body: { decision: "approved" | "rejected", notes? }
    """
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    decision = data.get("decision")
    notes = data.get("notes")
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "decision is required", details={"decision": "required"})
    if decision not in FINAL_DECISIONS:
        return api_error(E.VALIDATION_INVALID, "Invalid decision",
                         details={"decision": f"must be one of {sorted(FINAL_DECISIONS)}"})
    if notes is not None and (not isinstance(notes, str) or len(notes) > approval_rounds.MAX_DECISION_NOTES):
        return api_error(E.VALIDATION_INVALID, "Invalid notes",
                         details={"notes": f"must be a string of at most {approval_rounds.MAX_DECISION_NOTES} characters"})

    approval = get_scoped(Approval, approval_id, org_id=actor.org_id)
    result = decide_approval(approval, decision, notes, actor)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "approval": result["approval"].to_dict(),
        "request": result["request"].to_dict(),
        "previous_status": result["previous_status"],
        "new_status": result["new_status"],
    })
