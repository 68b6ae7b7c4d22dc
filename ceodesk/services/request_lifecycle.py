"""
Request Lifecycle Controller.

Manages request status transitions with:
  - Transition validation against STATUS_TRANSITIONS
  - Role checks via requires_role(target)
  - Side effects (status timestamps, approval round open/close)
  - One audit entry per status change

and content edits with:
  - Optimistic version check (expected_version / compare-and-swap UPDATE)
  - Material-change detection and approval invalidation

Edits and transitions are orthogonal: apply_content_edit never touches
status, transition never touches content or version.

Usage:
    from ceodesk.services.request_lifecycle import transition, apply_content_edit

    result = transition(req, "SUBMITTED", actor)
    result = apply_content_edit(req, {"priority_code": "P1"}, actor, expected_version=2)
"""

import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ceodesk.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    ResubmitNotAllowedError,
    ValidationError,
    VersionConflictError,
)
from ceodesk.models import db
from ceodesk.models.approval import DECISION_APPROVED, DECISION_REJECTED
from ceodesk.models.audit import record_audit
from ceodesk.models.base import utcnow
from ceodesk.models.request import (
    APPROVED,
    CANCELLED,
    CLOSED,
    DRAFT,
    IN_REVIEW,
    REJECTED,
    REQUEST_STATUSES,
    SUBMITTED,
    Request,
    can_transition,
    is_terminal,
    requires_role,
)
from ceodesk.services import approval_rounds
from ceodesk.services.material_change import get_changed_fields, is_material_change
from ceodesk.services.permission import require_elevated, require_owner_or_elevated
from ceodesk.services.settings_service import get_settings

logger = logging.getLogger(__name__)

MATERIAL_EDIT_REASON = "material edit"
CANCELLED_REASON = "request cancelled"

# Timestamp column stamped when entering a status
_STATUS_TIMESTAMPS = {
    SUBMITTED: "submitted_at",
    APPROVED: "approved_at",
    CLOSED: "closed_at",
}

# Decision recorded on the open round when review ends in this status
_REVIEW_OUTCOMES = {
    APPROVED: DECISION_APPROVED,
    REJECTED: DECISION_REJECTED,
}
_DECISION_TARGETS = {decision: status for status, decision in _REVIEW_OUTCOMES.items()}


def _guard_self_decision(request: Request, actor) -> None:
    if actor.id == request.requester_id and not get_settings(request.org_id)["allow_manager_self_approve"]:
        raise ForbiddenError(
            "decide own request",
            actor_role=actor.role_code,
            reason="Reviewers cannot decide on requests they submitted",
        )


# ── Transition ───────────────────────────────────────────────────────────────


def validate_transition(request: Request, target_status: str, actor) -> None:
    """Raise the specific reason a transition is not allowed, if any."""
    if target_status not in REQUEST_STATUSES:
        raise InvalidTransitionError(request.status, target_status, "unknown status")
    if request.is_deleted:
        raise InvalidTransitionError(request.status, target_status, "request is deleted")
    if not can_transition(request.status, target_status):
        reason = "status is terminal" if is_terminal(request.status) else None
        raise InvalidTransitionError(request.status, target_status, reason)

    allowed_roles = requires_role(target_status)
    if actor.role_code not in allowed_roles:
        raise ForbiddenError(
            f"move a request to {target_status}",
            required_roles=allowed_roles,
            actor_role=actor.role_code,
        )
    if target_status in _REVIEW_OUTCOMES:
        _guard_self_decision(request, actor)


def _open_review_round(request: Request, actor):
    """Open the next approval round without letting a failure block the transition.

    Returns (approval, error_message).
    """
    existing = approval_rounds.get_active_approval(request)
    if existing is not None:
        logger.warning("Request %s entered review with round %s already open",
                       request.id, existing.approval_round)
        return None, f"Approval round {existing.approval_round} is already open"

    round_number = approval_rounds.next_round(request.id)
    try:
        with db.session.begin_nested():
            approval = approval_rounds.open_round(request, round_number=round_number, actor=actor)
    except SQLAlchemyError:
        logger.exception("Failed to open approval round %s for request %s", round_number, request.id)
        return None, f"Approval round {round_number} could not be opened"
    return approval, None


def _close_review_round(request: Request, target_status: str, actor, notes: str | None) -> None:
    """Settle the open round when a request leaves IN_REVIEW."""
    active = approval_rounds.get_active_approval(request)
    if active is None:
        return
    if target_status in _REVIEW_OUTCOMES:
        approval_rounds.decide(
            active,
            _REVIEW_OUTCOMES[target_status],
            notes[:approval_rounds.MAX_DECISION_NOTES] if notes else None,
            actor,
        )
    elif target_status == CANCELLED:
        approval_rounds.invalidate(active, CANCELLED_REASON, actor=actor)


def transition(request: Request, target_status: str, actor, *, notes: str | None = None) -> dict:
    """
    Execute a request status transition.

    Args:
        request: Request already loaded within the actor's org scope.
        target_status: One of REQUEST_STATUSES.
        actor: User performing the change (role taken from the profile).
        notes: Optional free text stored in the audit metadata.

    Returns:
        {"request", "previous_status", "new_status", "approval", "approval_error"}

    Raises:
        InvalidTransitionError, ForbiddenError
    """
    validate_transition(request, target_status, actor)

    previous_status = request.status
    if previous_status == IN_REVIEW:
        _close_review_round(request, target_status, actor, notes)

    now = utcnow()
    request.status = target_status
    request.status_changed_at = now
    stamp = _STATUS_TIMESTAMPS.get(target_status)
    if stamp:
        setattr(request, stamp, now)
    request.last_activity_at = now
    db.session.flush()

    logger.info("Request %s: %s -> %s by %s (%s)",
                request.id, previous_status, target_status, actor.id, actor.role_code)
    record_audit(
        org_id=request.org_id,
        entity_type="request",
        entity_id=request.id,
        action="status_changed",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        old_values={"status": previous_status},
        new_values={"status": target_status},
        metadata={"notes": notes} if notes else None,
    )

    approval, approval_error = None, None
    if target_status == IN_REVIEW:
        approval, approval_error = _open_review_round(request, actor)

    return {
        "request": request,
        "previous_status": previous_status,
        "new_status": target_status,
        "approval": approval,
        "approval_error": approval_error,
    }


# ── Content edit ─────────────────────────────────────────────────────────────


def apply_content_edit(
    request: Request,
    new_values: dict,
    actor,
    *,
    expected_version: int | None = None,
) -> dict:
    """
    Apply a content edit to a request.

    DRAFT requests are edited in place with no version bump. Any other
    request gets request_version + 1 through a compare-and-swap UPDATE,
    and a material change invalidates the open approval round.

    Returns:
        {"request", "invalidated", "changed_fields", "previous_version"}

    Raises:
        ValidationError, ForbiddenError, VersionConflictError
    """
    unknown = sorted(set(new_values) - set(Request.CONTENT_FIELDS))
    if unknown:
        raise ValidationError("Unknown request fields", details={k: "not editable" for k in unknown})
    if request.is_deleted:
        raise ValidationError("Deleted requests cannot be edited")
    if is_terminal(request.status):
        raise ValidationError(f"{request.status} requests can no longer be edited")
    require_owner_or_elevated(actor, request.requester_id, "edit this request")

    read_version = request.request_version
    if expected_version is not None and expected_version != read_version:
        raise VersionConflictError(expected_version, read_version)

    old_values = request.content_values()
    changed = get_changed_fields(old_values, new_values)
    invalidated = False
    now = utcnow()

    if request.status == DRAFT:
        for field, value in new_values.items():
            setattr(request, field, value)
        request.last_activity_at = now
        db.session.flush()
    else:
        material = is_material_change(old_values, new_values)
        result = db.session.execute(
            update(Request)
            .where(Request.id == request.id, Request.request_version == read_version)
            .values(
                **new_values,
                request_version=read_version + 1,
                updated_at=now,
                last_activity_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(request)
        if result.rowcount == 0:
            raise VersionConflictError(read_version, request.request_version)

        if material:
            active = approval_rounds.get_active_approval(request)
            if active is not None:
                invalidated = approval_rounds.invalidate(active, MATERIAL_EDIT_REASON, actor=actor)

    logger.info("Request %s edited: fields=%s version=%s invalidated=%s",
                request.id, changed, request.request_version, invalidated)
    record_audit(
        org_id=request.org_id,
        entity_type="request",
        entity_id=request.id,
        action="updated",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        old_values={field: old_values[field] for field in changed},
        new_values={field: new_values[field] for field in changed},
        metadata={"request_version": request.request_version, "invalidated": invalidated},
    )
    return {
        "request": request,
        "invalidated": invalidated,
        "changed_fields": changed,
        "previous_version": read_version,
    }


# ── Review flows ─────────────────────────────────────────────────────────────


def decide_approval(approval, decision: str, notes: str | None, actor) -> dict:
    """
    Record a reviewer decision and route the request to APPROVED / REJECTED.

    Returns:
        {"approval", "request", "previous_status", "new_status"}

    Raises:
        ForbiddenError, ValidationError, AlreadyDecidedError, InvalidatedError,
        InvalidTransitionError
    """
    require_elevated(actor, "decide approvals")
    if decision not in _DECISION_TARGETS:
        raise ValidationError(
            f"Invalid decision '{decision}'",
            details={"decision": f"must be one of {sorted(_DECISION_TARGETS)}"},
        )
    request = approval.request
    if get_settings(request.org_id)["require_approval_notes"] and not (notes or "").strip():
        raise ValidationError("Decision notes are required", details={"notes": "required"})

    target = _DECISION_TARGETS[decision]
    # A closed round reports AlreadyDecided / Invalidated, not a transition error
    approval_rounds.assert_open(approval)
    validate_transition(request, target, actor)

    approval_rounds.decide(approval, decision, notes, actor)
    result = transition(request, target, actor, notes=notes)
    return {
        "approval": approval,
        "request": request,
        "previous_status": result["previous_status"],
        "new_status": result["new_status"],
    }


def resubmit_request(request: Request, actor, *, notes: str | None = None) -> dict:
    """
    Send a rejected request back into review with a fresh approval round.

    Goes REJECTED -> SUBMITTED -> IN_REVIEW, so each hop is validated and
    audited like any other transition.

    Returns:
        transition() result for the IN_REVIEW hop plus "approval_round".

    Raises:
        ForbiddenError, ResubmitNotAllowedError
    """
    if actor.id != request.requester_id:
        raise ForbiddenError(
            "resubmit request",
            actor_role=actor.role_code,
            reason="Only the requester can resubmit a request",
        )
    check = approval_rounds.can_resubmit(request)
    if not check["allowed"]:
        raise ResubmitNotAllowedError(check["reason"])

    transition(request, SUBMITTED, actor, notes=notes)
    result = transition(request, IN_REVIEW, actor, notes=notes)

    record_audit(
        org_id=request.org_id,
        entity_type="request",
        entity_id=request.id,
        action="resubmitted",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values={"status": request.status},
        metadata={"approval_round": check["next_round"], "request_version": request.request_version},
    )
    result["approval_round"] = check["next_round"]
    return result
