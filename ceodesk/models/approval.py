"""
CEO Desk
Approval domain model.

One row per executive review round of a request.

Business rules (enforced in the schema where the database can do it):
- (request_id, approval_round) is unique: rounds are never reused.
- At most one row per request is "active" (decision = pending AND is_valid).
  A partial unique index holds this under concurrent transitions.
- Once ``decision`` leaves pending, the decision columns are never written
  again. Decisions go through a compare-and-swap UPDATE in
  ``services.approval_rounds``.
- An invalidated row never becomes valid again; a new round is opened.
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

DECISION_PENDING = "pending"
DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"

FINAL_DECISIONS = frozenset({DECISION_APPROVED, DECISION_REJECTED})


class Approval(OrgModel):
    __tablename__ = "approvals"
    __table_args__ = (
        db.UniqueConstraint("request_id", "approval_round", name="uq_approvals_request_round"),
        db.Index(
            "uq_approvals_one_active_per_request",
            "request_id",
            unique=True,
            postgresql_where=db.text("decision = 'pending' AND is_valid IS TRUE"),
            sqlite_where=db.text("decision = 'pending' AND is_valid = 1"),
        ),
        db.Index("ix_approvals_org_decision", "org_id", "decision"),
        db.CheckConstraint(
            "decision IN ('pending', 'approved', 'rejected')",
            name="ck_approvals_decision",
        ),
        db.CheckConstraint("approval_round >= 1", name="ck_approvals_round_positive"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    request_id = db.Column(
        db.String(36),
        db.ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_version = db.Column(db.Integer, nullable=False)
    approval_round = db.Column(db.Integer, nullable=False)

    decision = db.Column(db.String(20), nullable=False, default=DECISION_PENDING)
    notes = db.Column(db.String(500), nullable=True)
    decided_by = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_valid = db.Column(db.Boolean, nullable=False, default=True)
    invalidated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    invalidated_reason = db.Column(db.String(500), nullable=True)

    request_snapshot = db.Column(db.JSON, nullable=False, default=dict)
    submitted_by = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    request = db.relationship("Request", back_populates="approvals")

    @property
    def is_active(self) -> bool:
        return self.decision == DECISION_PENDING and bool(self.is_valid)

    def to_dict(self, include_request=False):
        d = {
            "id": self.id,
            "org_id": self.org_id,
            "request_id": self.request_id,
            "request_version": self.request_version,
            "approval_round": self.approval_round,
            "decision": self.decision,
            "notes": self.notes,
            "decided_by": self.decided_by,
            "decided_at": iso(self.decided_at),
            "is_valid": bool(self.is_valid),
            "invalidated_at": iso(self.invalidated_at),
            "invalidated_reason": self.invalidated_reason,
            "request_snapshot": self.request_snapshot or {},
            "submitted_by": self.submitted_by,
            "submitted_at": iso(self.submitted_at),
        }
        if include_request and self.request is not None:
            d["request"] = {
                "id": self.request.id,
                "title": self.request.title,
                "status": self.request.status,
                "priority_code": self.request.priority_code,
                "requester_id": self.request.requester_id,
                "request_version": self.request.request_version,
            }
        return d

    def __repr__(self):
        return f"<Approval {self.id} round={self.approval_round} {self.decision} valid={self.is_valid}>"
