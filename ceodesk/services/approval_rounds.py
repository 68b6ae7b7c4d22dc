"""
Approval Round Manager.

Owns the approval lifecycle for a request:
  pending --decide--> approved | rejected   (terminal)
  pending --invalidate--> invalid           (terminal for that round)

Terminal rounds are never written again. Both terminal moves are
compare-and-swap UPDATEs guarded by ``decision = 'pending' AND is_valid``,
so a round is decided at most once even under concurrent reviewers.

This module does not change request status; the lifecycle controller in
``request_lifecycle`` sequences status changes around these calls.

Usage:
    from ceodesk.services import approval_rounds

    approval = approval_rounds.open_round(req, round_number=1, actor=user)
    approval_rounds.invalidate(approval, "material edit", actor=user)
    approval_rounds.decide(approval, "approved", "Go ahead", ceo)
    check = approval_rounds.can_resubmit(req)
"""

import logging

from sqlalchemy import func, update

from ceodesk.core.exceptions import AlreadyDecidedError, InvalidatedError, ValidationError
from ceodesk.models import db
from ceodesk.models.approval import (
    DECISION_APPROVED,
    DECISION_PENDING,
    DECISION_REJECTED,
    FINAL_DECISIONS,
    Approval,
)
from ceodesk.models.audit import record_audit
from ceodesk.models.base import utcnow
from ceodesk.models.request import REJECTED, Request

logger = logging.getLogger(__name__)

MAX_DECISION_NOTES = 500


def _actor_fields(actor) -> dict:
    if actor is None:
        return {"user_id": None, "actor_role_code": None}
    return {"user_id": actor.id, "actor_role_code": actor.role_code}


def _open_round_filter(approval_id):
    return (
        Approval.id == approval_id,
        Approval.decision == DECISION_PENDING,
        Approval.is_valid.is_(True),
    )


# ── Queries ──────────────────────────────────────────────────────────────────


def get_active_approval(request) -> Approval | None:
    """The pending + valid round for ``request``, if one is open."""
    return (
        Approval.query
        .filter_by(request_id=request.id, org_id=request.org_id, decision=DECISION_PENDING)
        .filter(Approval.is_valid.is_(True))
        .first()
    )


def list_rounds(request) -> list[Approval]:
    return (
        Approval.query
        .filter_by(request_id=request.id, org_id=request.org_id)
        .order_by(Approval.approval_round.asc())
        .all()
    )


QUEUE_FILTERS = (DECISION_PENDING, DECISION_APPROVED, DECISION_REJECTED, "all")


def list_queue(org_id, decision: str = "pending"):
    """Valid rounds in the org, oldest submission first. ``decision='all'`` skips the filter."""
    query = (
        Approval.query_for_org(org_id)
        .join(Request, Request.id == Approval.request_id)
        .filter(Approval.is_valid.is_(True), Request.deleted_at.is_(None))
    )
    if decision != "all":
        query = query.filter(Approval.decision == decision)
    return query.order_by(Approval.submitted_at.asc())


def next_round(request_id) -> int:
    """1 + the highest round ever used for this request. Rounds are never reused."""
    current = (
        db.session.query(func.max(Approval.approval_round))
        .filter(Approval.request_id == request_id)
        .scalar()
    )
    return (current or 0) + 1


def _closed_round_error(approval: Approval):
    if approval.decision != DECISION_PENDING:
        return AlreadyDecidedError(approval.id, approval.decision)
    return InvalidatedError(approval.id, approval.invalidated_reason)


def assert_open(approval: Approval) -> None:
    """Raise AlreadyDecidedError / InvalidatedError unless the round is still open."""
    if not approval.is_active:
        raise _closed_round_error(approval)


# ── Transitions ──────────────────────────────────────────────────────────────


def open_round(request, *, round_number: int, snapshot: dict | None = None, actor=None) -> Approval:
    """Insert a new pending, valid round reviewing the request's current version.

    The caller guarantees no other active round exists; the partial unique
    index on ``approvals`` rejects the insert otherwise.
    """
    approval = Approval(
        org_id=request.org_id,
        request_id=request.id,
        request_version=request.request_version,
        approval_round=round_number,
        decision=DECISION_PENDING,
        is_valid=True,
        request_snapshot=snapshot if snapshot is not None else request.snapshot(),
        submitted_by=actor.id if actor is not None else None,
        submitted_at=utcnow(),
    )
    db.session.add(approval)
    db.session.flush()

    logger.info(
        "Approval round opened: request=%s round=%s version=%s",
        request.id, round_number, request.request_version,
    )
    record_audit(
        org_id=request.org_id,
        entity_type="approval",
        entity_id=approval.id,
        action="approval_opened",
        new_values={
            "request_id": request.id,
            "approval_round": round_number,
            "request_version": request.request_version,
        },
        **_actor_fields(actor),
    )
    return approval


def invalidate(approval: Approval, reason: str, *, actor=None) -> bool:
    """Mark an open round invalid.

    Idempotent: already-invalid and already-decided rounds are left alone.
    Returns True only when this call performed the invalidation.
    """
    now = utcnow()
    result = db.session.execute(
        update(Approval)
        .where(*_open_round_filter(approval.id))
        .values(is_valid=False, invalidated_at=now, invalidated_reason=reason)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(approval)

    if result.rowcount == 0:
        logger.debug("invalidate no-op: approval=%s decision=%s valid=%s",
                     approval.id, approval.decision, approval.is_valid)
        return False

    logger.info("Approval invalidated: approval=%s request=%s reason=%s",
                approval.id, approval.request_id, reason)
    record_audit(
        org_id=approval.org_id,
        entity_type="approval",
        entity_id=approval.id,
        action="invalidated",
        old_values={"is_valid": True},
        new_values={"is_valid": False, "invalidated_reason": reason},
        metadata={"request_id": approval.request_id, "approval_round": approval.approval_round},
        **_actor_fields(actor),
    )
    return True


def decide(approval: Approval, decision: str, notes: str | None, actor) -> Approval:
    """Record the final decision on an open round.

    Raises:
        ValidationError: decision is not approved/rejected.
        AlreadyDecidedError: the round already carries a decision.
        InvalidatedError: the round was invalidated before being decided.
    """
    if decision not in FINAL_DECISIONS:
        raise ValidationError(
            f"Invalid decision '{decision}'",
            details={"decision": f"must be one of {sorted(FINAL_DECISIONS)}"},
        )
    if notes is not None and len(notes) > MAX_DECISION_NOTES:
        raise ValidationError(
            f"Decision notes must be at most {MAX_DECISION_NOTES} characters",
            details={"notes": "too long"},
        )

    now = utcnow()
    result = db.session.execute(
        update(Approval)
        .where(*_open_round_filter(approval.id))
        .values(decision=decision, decided_at=now, decided_by=actor.id, notes=notes)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(approval)

    if result.rowcount == 0:
        raise _closed_round_error(approval)

    logger.info("Approval decided: approval=%s round=%s decision=%s by=%s",
                approval.id, approval.approval_round, decision, actor.id)
    record_audit(
        org_id=approval.org_id,
        entity_type="approval",
        entity_id=approval.id,
        action="decided",
        old_values={"decision": DECISION_PENDING},
        new_values={"decision": decision, "notes": notes},
        metadata={"request_id": approval.request_id, "approval_round": approval.approval_round},
        **_actor_fields(actor),
    )
    return approval


# ── Resubmission gate ────────────────────────────────────────────────────────


def can_resubmit(request) -> dict:
    """
    Decide whether a request may re-enter review.

    Returns:
        {"allowed": bool, "reason": str|None, "next_round": int|None}
    """
    if request.status != REJECTED:
        return {
            "allowed": False,
            "reason": f"Only REJECTED requests can be resubmitted (status is {request.status})",
            "next_round": None,
        }

    active = get_active_approval(request)
    if active is not None:
        return {
            "allowed": False,
            "reason": f"Approval round {active.approval_round} is still pending",
            "next_round": None,
        }

    return {"allowed": True, "reason": None, "next_round": next_round(request.id)}
