"""
Tests for ceodesk/services/approval_rounds.py

Scenarios covered:
  1. open_round creates a pending, valid round and the DB allows only one
  2. invalidate is idempotent and never touches decided rounds
  3. decide is final: a second decision raises AlreadyDecided
  4. deciding an invalidated round raises Invalidated
  5. can_resubmit gates on REJECTED + no open round
  6. Round numbers strictly increase across repeated rejection cycles
  7. The full submit / edit / reject / resubmit / approve walk-through
"""

import pytest
from sqlalchemy.exc import IntegrityError

from ceodesk.core.exceptions import AlreadyDecidedError, InvalidatedError, ValidationError
from ceodesk.models import db
from ceodesk.models.approval import Approval
from ceodesk.models.audit import AuditLog
from ceodesk.models.request import REQUEST_STATUSES
from ceodesk.services import approval_rounds
from ceodesk.services.request_lifecycle import (
    apply_content_edit,
    decide_approval,
    resubmit_request,
    transition,
)


def _open(req, actor, round_number=None):
    return approval_rounds.open_round(
        req,
        round_number=round_number or approval_rounds.next_round(req.id),
        actor=actor,
    )


# ── 1. Opening rounds ────────────────────────────────────────────────────────


class TestOpenRound:

    def test_new_round_is_pending_and_valid(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)

        assert approval.approval_round == 1
        assert approval.decision == "pending"
        assert approval.is_valid is True
        assert approval.is_active
        assert approval.submitted_by == manager.id
        assert approval.request_snapshot == req.snapshot()
        assert approval_rounds.get_active_approval(req).id == approval.id

    def test_explicit_snapshot_is_stored(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = approval_rounds.open_round(req, round_number=1, snapshot={"title": "frozen"})
        assert approval.request_snapshot == {"title": "frozen"}
        assert approval.submitted_by is None

    def test_open_round_is_audited(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        row = AuditLog.query.filter_by(entity_id=approval.id, action="approval_opened").one()
        assert row.new_values["approval_round"] == 1
        assert row.new_values["request_id"] == req.id

    def test_database_refuses_second_active_round(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        _open(req, manager, round_number=1)

        with pytest.raises(IntegrityError):
            with db.session.begin_nested():
                _open(req, manager, round_number=2)
        assert Approval.query.filter_by(request_id=req.id).count() == 1

    def test_new_round_allowed_once_previous_invalidated(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        first = _open(req, manager)
        approval_rounds.invalidate(first, "material edit")

        second = _open(req, manager)
        assert second.approval_round == 2
        assert approval_rounds.get_active_approval(req).id == second.id


# ── 2. Invalidation ──────────────────────────────────────────────────────────


class TestInvalidate:

    def test_invalidate_marks_round(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)

        assert approval_rounds.invalidate(approval, "material edit", actor=manager) is True
        assert approval.is_valid is False
        assert approval.invalidated_at is not None
        assert approval.invalidated_reason == "material edit"
        assert approval.decision == "pending"

    def test_invalidate_twice_is_noop(self, manager, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        approval_rounds.invalidate(approval, "material edit")
        first_at = approval.invalidated_at

        assert approval_rounds.invalidate(approval, "another reason") is False
        assert approval.invalidated_at == first_at
        assert approval.invalidated_reason == "material edit"
        assert AuditLog.query.filter_by(entity_id=approval.id, action="invalidated").count() == 1

    def test_decided_round_is_never_invalidated(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        approval_rounds.decide(approval, "approved", None, ceo)

        assert approval_rounds.invalidate(approval, "material edit") is False
        assert approval.is_valid is True
        assert approval.decision == "approved"


# ── 3 / 4. Decisions ─────────────────────────────────────────────────────────


class TestDecide:

    def test_decide_records_decision(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)

        approval_rounds.decide(approval, "rejected", "insufficient budget", ceo)

        assert approval.decision == "rejected"
        assert approval.notes == "insufficient budget"
        assert approval.decided_by == ceo.id
        assert approval.decided_at is not None
        assert approval_rounds.get_active_approval(req) is None

    @pytest.mark.parametrize("second", ["approved", "rejected"])
    def test_second_decide_raises_already_decided(self, manager, ceo, admin, make_request, second):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        approval_rounds.decide(approval, "approved", "ok", ceo)

        with pytest.raises(AlreadyDecidedError) as exc:
            approval_rounds.decide(approval, second, "changed my mind", admin)
        assert exc.value.code == "ERR_ALREADY_DECIDED"
        assert approval.decision == "approved"
        assert approval.decided_by == ceo.id
        assert approval.notes == "ok"

    def test_decide_invalidated_round(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        approval_rounds.invalidate(approval, "material edit")

        with pytest.raises(InvalidatedError) as exc:
            approval_rounds.decide(approval, "approved", None, ceo)
        assert exc.value.details()["invalidated_reason"] == "material edit"
        assert approval.decision == "pending"

    def test_pending_is_not_a_decision(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        with pytest.raises(ValidationError):
            approval_rounds.decide(approval, "pending", None, ceo)

    def test_notes_length_capped(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        approval = _open(req, manager)
        with pytest.raises(ValidationError):
            approval_rounds.decide(approval, "approved", "x" * 501, ceo)
        assert approval.decision == "pending"


# ── 5. Resubmission gate ─────────────────────────────────────────────────────


class TestCanResubmit:

    @pytest.mark.parametrize("status", [s for s in REQUEST_STATUSES if s != "REJECTED"])
    def test_only_rejected_may_resubmit(self, manager, make_request, status):
        req = make_request(manager, status=status)
        check = approval_rounds.can_resubmit(req)
        assert check["allowed"] is False
        assert check["next_round"] is None
        assert status in check["reason"]

    def test_rejected_without_rounds(self, manager, make_request):
        req = make_request(manager, status="REJECTED")
        assert approval_rounds.can_resubmit(req) == {"allowed": True, "reason": None, "next_round": 1}

    def test_rejected_with_pending_round_is_blocked(self, manager, make_request):
        req = make_request(manager, status="REJECTED")
        _open(req, manager)
        check = approval_rounds.can_resubmit(req)
        assert check["allowed"] is False
        assert "still pending" in check["reason"]


# ── 6. Round numbering ───────────────────────────────────────────────────────


class TestRoundNumbering:

    def test_rounds_strictly_increase_across_cycles(self, manager, ceo, make_request):
        req = make_request(manager)
        transition(req, "SUBMITTED", manager)
        approval = transition(req, "IN_REVIEW", manager)["approval"]

        seen = [approval.approval_round]
        for _ in range(3):
            decide_approval(approval, "rejected", "try again", ceo)
            approval = resubmit_request(req, manager)["approval"]
            seen.append(approval.approval_round)

        assert seen == [1, 2, 3, 4]
        assert [a.approval_round for a in approval_rounds.list_rounds(req)] == [1, 2, 3, 4]

    def test_invalidated_rounds_are_not_reused(self, manager, ceo, make_request):
        req = make_request(manager)
        transition(req, "SUBMITTED", manager)
        transition(req, "IN_REVIEW", manager)
        apply_content_edit(req, {"title": "Edited while in review"}, manager)
        transition(req, "REJECTED", ceo)

        assert approval_rounds.can_resubmit(req)["next_round"] == 2


# ── 7. Walk-through ──────────────────────────────────────────────────────────


class TestReviewWalkthrough:

    def test_submit_edit_reject_resubmit_approve(self, manager, ceo, make_request):
        # Created in DRAFT, submitted by the manager
        req = make_request(manager, priority_code="P3")
        transition(req, "SUBMITTED", manager)
        assert req.status == "SUBMITTED"
        assert req.submitted_at is not None

        # Review opens round 1
        round_1 = transition(req, "IN_REVIEW", manager)["approval"]
        assert (round_1.approval_round, round_1.decision, round_1.is_valid) == (1, "pending", True)

        # Material edit while round 1 is pending
        edit = apply_content_edit(req, {"priority_code": "P1"}, manager)
        assert edit["invalidated"] is True
        assert round_1.is_valid is False
        assert round_1.invalidated_reason == "material edit"
        assert req.request_version == 2

        # Deciding the invalidated round reports Invalidated, not AlreadyDecided
        with pytest.raises(InvalidatedError):
            approval_rounds.decide(round_1, "rejected", "insufficient budget", ceo)

        # CEO rejects the request directly
        transition(req, "REJECTED", ceo)
        assert approval_rounds.can_resubmit(req) == {"allowed": True, "reason": None, "next_round": 2}

        # Resubmission opens round 2 at the edited version
        round_2 = resubmit_request(req, manager)["approval"]
        assert round_2.approval_round == 2
        assert round_2.request_version == 2
        assert round_2.request_snapshot["priority_code"] == "P1"

        approval_rounds.decide(round_2, "approved", "", ceo)
        assert round_2.decision == "approved"
        with pytest.raises(AlreadyDecidedError):
            approval_rounds.decide(round_2, "rejected", "no", ceo)
        assert round_2.decision == "approved"
