"""
Tests for ceodesk/services/request_lifecycle.py

Covers:
  1. transition: table check, role check, timestamps, audit, round handling
  2. apply_content_edit: draft edits, version bumps, material invalidation,
     optimistic version checks
  3. decide_approval / resubmit_request review flows
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from ceodesk.core.exceptions import (
    AlreadyDecidedError,
    ForbiddenError,
    InvalidTransitionError,
    ResubmitNotAllowedError,
    ValidationError,
    VersionConflictError,
)
from ceodesk.models import db
from ceodesk.models.audit import AuditLog
from ceodesk.models.request import Request
from ceodesk.models.settings import OrgSettings
from ceodesk.services import approval_rounds
from ceodesk.services.request_lifecycle import (
    apply_content_edit,
    decide_approval,
    resubmit_request,
    transition,
)


def _audit(entity_id, action):
    return AuditLog.query.filter_by(entity_id=entity_id, action=action).order_by(AuditLog.id).all()


def _in_review(req, actor):
    transition(req, "SUBMITTED", actor)
    return transition(req, "IN_REVIEW", actor)


# ═════════════════════════════════════════════════════════════════════════════
# TRANSITION
# ═════════════════════════════════════════════════════════════════════════════


class TestTransition:

    def test_draft_to_submitted_sets_submitted_at(self, manager, make_request):
        req = make_request(manager)
        result = transition(req, "SUBMITTED", manager)

        assert result["previous_status"] == "DRAFT"
        assert result["new_status"] == "SUBMITTED"
        assert req.status == "SUBMITTED"
        assert req.submitted_at is not None
        assert req.status_changed_at is not None
        assert result["approval"] is None

    def test_transition_writes_one_audit_row(self, manager, make_request):
        req = make_request(manager)
        transition(req, "SUBMITTED", manager, notes="ready for review")

        rows = _audit(req.id, "status_changed")
        assert len(rows) == 1
        assert rows[0].old_values == {"status": "DRAFT"}
        assert rows[0].new_values == {"status": "SUBMITTED"}
        assert rows[0].metadata_ == {"notes": "ready for review"}
        assert rows[0].actor_role_code == "MANAGER"

    def test_entering_review_opens_round_one(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        result = transition(req, "IN_REVIEW", manager)

        approval = result["approval"]
        assert result["approval_error"] is None
        assert approval.approval_round == 1
        assert approval.decision == "pending"
        assert approval.is_valid is True
        assert approval.request_version == req.request_version
        assert approval.request_snapshot["title"] == req.title
        assert approval.request_snapshot["priority_code"] == "P3"

    def test_transition_never_changes_version(self, manager, make_request):
        req = make_request(manager)
        _in_review(req, manager)
        assert req.request_version == 1

    def test_transition_outside_table(self, manager, make_request):
        req = make_request(manager)
        with pytest.raises(InvalidTransitionError) as exc:
            transition(req, "CLOSED", manager)
        assert exc.value.details() == {"current_status": "DRAFT", "target_status": "CLOSED"}
        assert req.status == "DRAFT"

    def test_table_checked_before_role(self, manager, make_request):
        req = make_request(manager)
        # MANAGER could never approve, but the table rejects DRAFT -> APPROVED first
        with pytest.raises(InvalidTransitionError):
            transition(req, "APPROVED", manager)

    def test_unknown_target_status(self, manager, make_request):
        req = make_request(manager)
        with pytest.raises(InvalidTransitionError, match="unknown status"):
            transition(req, "ARCHIVED", manager)

    @pytest.mark.parametrize("terminal", ["CANCELLED", "CLOSED"])
    def test_terminal_status_is_final(self, manager, make_request, terminal):
        req = make_request(manager, status=terminal)
        with pytest.raises(InvalidTransitionError, match="terminal"):
            transition(req, "SUBMITTED", manager)

    @pytest.mark.parametrize("target", ["APPROVED", "REJECTED"])
    def test_manager_cannot_decide(self, manager, other_manager, make_request, target):
        req = make_request(manager, status="IN_REVIEW")
        with pytest.raises(ForbiddenError) as exc:
            transition(req, target, other_manager)
        assert exc.value.required_roles == ["ADMIN", "CEO"]

    def test_manager_cannot_close(self, manager, make_request):
        req = make_request(manager, status="APPROVED")
        with pytest.raises(ForbiddenError):
            transition(req, "CLOSED", manager)

    def test_ceo_approves_and_closes(self, manager, ceo, make_request):
        req = make_request(manager, status="IN_REVIEW")
        transition(req, "APPROVED", ceo)
        assert req.approved_at is not None
        transition(req, "CLOSED", ceo)
        assert req.status == "CLOSED"
        assert req.closed_at is not None

    def test_self_decision_forbidden_by_default(self, ceo, make_request):
        req = make_request(ceo, status="IN_REVIEW")
        with pytest.raises(ForbiddenError, match="submitted"):
            transition(req, "APPROVED", ceo)

    def test_self_decision_allowed_by_setting(self, org, ceo, make_request):
        db.session.add(OrgSettings(org_id=org.id, allow_manager_self_approve=True))
        db.session.commit()
        req = make_request(ceo, status="IN_REVIEW")
        transition(req, "APPROVED", ceo)
        assert req.status == "APPROVED"

    def test_deleted_request_cannot_move(self, manager, make_request):
        req = make_request(manager)
        req.soft_delete(reason="dup", by=manager.id)
        with pytest.raises(InvalidTransitionError, match="deleted"):
            transition(req, "SUBMITTED", manager)

    def test_approving_decides_open_round(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]

        transition(req, "APPROVED", ceo, notes="go")
        assert approval.decision == "approved"
        assert approval.decided_by == ceo.id
        assert approval.notes == "go"

    def test_cancelling_review_invalidates_round(self, manager, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]

        transition(req, "CANCELLED", manager)
        assert approval.is_valid is False
        assert approval.decision == "pending"
        assert approval.invalidated_reason == "request cancelled"

    def test_round_open_failure_does_not_block(self, manager, make_request, monkeypatch):
        def _boom(*args, **kwargs):
            raise OperationalError("INSERT INTO approvals", {}, Exception("disk full"))

        monkeypatch.setattr(approval_rounds, "open_round", _boom)
        req = make_request(manager, status="SUBMITTED")
        result = transition(req, "IN_REVIEW", manager)

        assert req.status == "IN_REVIEW"
        assert result["approval"] is None
        assert "could not be opened" in result["approval_error"]
        assert len(_audit(req.id, "status_changed")) == 1

    def test_second_review_entry_reports_open_round(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        approval_rounds.open_round(req, round_number=1, actor=manager)
        result = transition(req, "IN_REVIEW", manager)

        assert result["approval"] is None
        assert "already open" in result["approval_error"]
        assert approval_rounds.next_round(req.id) == 2


# ═════════════════════════════════════════════════════════════════════════════
# CONTENT EDIT
# ═════════════════════════════════════════════════════════════════════════════


class TestContentEdit:

    def test_draft_edit_keeps_version(self, manager, make_request):
        req = make_request(manager)
        result = apply_content_edit(req, {"title": "Laptop budget v2"}, manager)

        assert req.title == "Laptop budget v2"
        assert req.request_version == 1
        assert result["invalidated"] is False
        assert result["changed_fields"] == ["title"]
        assert result["previous_version"] == 1

    def test_submitted_edit_bumps_version(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        apply_content_edit(req, {"description": "More detail"}, manager)
        assert req.request_version == 2
        assert req.description == "More detail"

    def test_non_material_edit_still_bumps_version(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        result = apply_content_edit(req, {"title": req.title}, manager)
        assert req.request_version == 2
        assert result["changed_fields"] == []
        assert result["invalidated"] is False

    def test_material_edit_invalidates_open_round(self, manager, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]

        result = apply_content_edit(req, {"priority_code": "P1"}, manager)

        assert result["invalidated"] is True
        assert req.request_version == 2
        assert req.status == "IN_REVIEW"
        assert approval.is_valid is False
        assert approval.invalidated_reason == "material edit"
        assert approval.request_snapshot["priority_code"] == "P3"

    def test_value_to_none_is_material(self, manager, make_request):
        req = make_request(manager)
        _in_review(req, manager)
        result = apply_content_edit(req, {"description": None}, manager)
        assert result["invalidated"] is True

    def test_edit_without_open_round(self, manager, make_request):
        req = make_request(manager, status="APPROVED")
        result = apply_content_edit(req, {"priority_code": "P2"}, manager)
        assert result["invalidated"] is False
        assert req.request_version == 2

    def test_edit_audit_records_changed_fields(self, manager, make_request):
        req = make_request(manager)
        _in_review(req, manager)
        apply_content_edit(req, {"priority_code": "P1", "title": req.title}, manager)

        row = _audit(req.id, "updated")[0]
        assert row.old_values == {"priority_code": "P3"}
        assert row.new_values == {"priority_code": "P1"}
        assert row.metadata_ == {"request_version": 2, "invalidated": True}
        assert len(_audit(req.id, "invalidated")) == 0
        assert len(AuditLog.query.filter_by(action="invalidated").all()) == 1

    def test_stale_expected_version(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        apply_content_edit(req, {"title": "Laptop budget v2"}, manager)

        with pytest.raises(VersionConflictError) as exc:
            apply_content_edit(req, {"title": "Laptop budget v3"}, manager, expected_version=1)
        assert exc.value.details() == {"expected_version": 1, "current_version": 2}
        assert req.title == "Laptop budget v2"

    def test_concurrent_edit_loses_compare_and_swap(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        assert req.request_version == 1
        # Another writer moves the row on without this session noticing
        db.session.execute(
            update(Request)
            .where(Request.id == req.id)
            .values(request_version=2, title="Someone else's edit")
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(VersionConflictError):
            apply_content_edit(req, {"title": "My edit"}, manager)
        assert req.title == "Someone else's edit"
        assert req.request_version == 2

    @pytest.mark.parametrize("terminal", ["CANCELLED", "CLOSED"])
    def test_terminal_requests_not_editable(self, manager, make_request, terminal):
        req = make_request(manager, status=terminal)
        with pytest.raises(ValidationError):
            apply_content_edit(req, {"title": "Too late"}, manager)

    def test_unknown_fields_rejected(self, manager, make_request):
        req = make_request(manager)
        with pytest.raises(ValidationError) as exc:
            apply_content_edit(req, {"status": "APPROVED"}, manager)
        assert exc.value.details == {"status": "not editable"}

    def test_only_owner_or_elevated_may_edit(self, manager, other_manager, ceo, make_request):
        req = make_request(manager, status="SUBMITTED")
        with pytest.raises(ForbiddenError):
            apply_content_edit(req, {"title": "Hijacked"}, other_manager)
        apply_content_edit(req, {"title": "CEO tweak"}, ceo)
        assert req.title == "CEO tweak"


# ═════════════════════════════════════════════════════════════════════════════
# REVIEW FLOWS
# ═════════════════════════════════════════════════════════════════════════════


class TestDecideApproval:

    def test_approve_routes_request(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]

        result = decide_approval(approval, "approved", "Within budget", ceo)

        assert result["new_status"] == "APPROVED"
        assert result["previous_status"] == "IN_REVIEW"
        assert approval.decision == "approved"
        assert len(_audit(approval.id, "decided")) == 1

    def test_reject_routes_request(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]
        decide_approval(approval, "rejected", "Insufficient budget", ceo)
        assert req.status == "REJECTED"

    def test_manager_cannot_decide(self, manager, other_manager, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]
        with pytest.raises(ForbiddenError):
            decide_approval(approval, "approved", None, other_manager)
        assert approval.decision == "pending"

    def test_second_decision_reports_already_decided(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]
        decide_approval(approval, "approved", None, ceo)

        with pytest.raises(AlreadyDecidedError):
            decide_approval(approval, "rejected", None, ceo)
        assert approval.decision == "approved"
        assert req.status == "APPROVED"

    def test_notes_required_by_setting(self, org, manager, ceo, make_request):
        db.session.add(OrgSettings(org_id=org.id, require_approval_notes=True))
        db.session.commit()
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]

        with pytest.raises(ValidationError, match="notes"):
            decide_approval(approval, "approved", "  ", ceo)

    def test_invalid_decision(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]
        with pytest.raises(ValidationError):
            decide_approval(approval, "maybe", None, ceo)


class TestResubmit:

    def test_resubmit_opens_next_round(self, manager, ceo, make_request):
        req = make_request(manager)
        approval = _in_review(req, manager)["approval"]
        decide_approval(approval, "rejected", "Needs numbers", ceo)

        result = resubmit_request(req, manager, notes="Numbers added")

        assert req.status == "IN_REVIEW"
        assert result["approval_round"] == 2
        assert result["approval"].approval_round == 2
        assert len(_audit(req.id, "resubmitted")) == 1
        statuses = [r.new_values["status"] for r in _audit(req.id, "status_changed")]
        assert statuses[-2:] == ["SUBMITTED", "IN_REVIEW"]

    def test_only_requester_resubmits(self, manager, ceo, make_request):
        req = make_request(manager, status="REJECTED")
        with pytest.raises(ForbiddenError):
            resubmit_request(req, ceo)

    def test_not_rejected(self, manager, make_request):
        req = make_request(manager, status="APPROVED")
        with pytest.raises(ResubmitNotAllowedError, match="REJECTED"):
            resubmit_request(req, manager)


# ═════════════════════════════════════════════════════════════════════════════
# AUDIT FAILURE
# ═════════════════════════════════════════════════════════════════════════════


class TestAuditFailureIsNonBlocking:
    """A failing audit insert is logged and dropped; the operation still commits."""

    @pytest.fixture(autouse=True)
    def broken_audit(self, monkeypatch):
        def _fail(**kwargs):
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

        monkeypatch.setattr("ceodesk.models.audit.write_audit", _fail)

    def test_transition_completes(self, manager, make_request, caplog):
        req = make_request(manager)
        result = transition(req, "SUBMITTED", manager)
        db.session.commit()

        assert result["new_status"] == "SUBMITTED"
        assert db.session.get(Request, req.id).status == "SUBMITTED"
        assert AuditLog.query.count() == 0
        assert "Audit write failed" in caplog.text

    def test_content_edit_completes(self, manager, make_request):
        req = make_request(manager, status="SUBMITTED")
        result = apply_content_edit(req, {"title": "Budget for Q4 hiring"}, manager)
        db.session.commit()

        assert result["changed_fields"] == ["title"]
        stored = db.session.get(Request, req.id)
        assert stored.title == "Budget for Q4 hiring"
        assert stored.request_version == 2

    def test_decide_completes(self, manager, ceo, make_request):
        req = make_request(manager, status="SUBMITTED")
        approval = transition(req, "IN_REVIEW", manager)["approval"]
        assert approval is not None

        approval_rounds.decide(approval, "approved", "Go ahead", ceo)
        db.session.commit()

        assert approval.decision == "approved"
        assert approval.decided_by == ceo.id
        assert AuditLog.query.count() == 0
