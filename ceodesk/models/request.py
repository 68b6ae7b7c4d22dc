"""
CEO Desk
Request domain model.

Models:
    - Category: org-scoped request category
    - Request: a unit of work awaiting executive decision

Also holds the status registry: the fixed transition table every other
layer treats as law, plus status and priority display metadata.
"""

from types import MappingProxyType

from ceodesk.models import db
from ceodesk.models.auth import ELEVATED_ROLES, ROLE_CODES
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow
from ceodesk.models.soft_delete import SoftDeleteMixin

# ── Status registry ──────────────────────────────────────────────────────────

DRAFT = "DRAFT"
SUBMITTED = "SUBMITTED"
IN_REVIEW = "IN_REVIEW"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
CANCELLED = "CANCELLED"
CLOSED = "CLOSED"

REQUEST_STATUSES = (DRAFT, SUBMITTED, IN_REVIEW, APPROVED, REJECTED, CANCELLED, CLOSED)
INITIAL_STATUS = DRAFT

STATUS_TRANSITIONS = MappingProxyType({
    DRAFT: frozenset({SUBMITTED, CANCELLED}),
    SUBMITTED: frozenset({IN_REVIEW, CANCELLED}),
    IN_REVIEW: frozenset({APPROVED, REJECTED, CANCELLED}),
    APPROVED: frozenset({CLOSED}),
    REJECTED: frozenset({SUBMITTED}),
    CANCELLED: frozenset(),
    CLOSED: frozenset(),
})

# Targets only an elevated actor may move a request into
_ELEVATED_TARGETS = frozenset({APPROVED, REJECTED, CLOSED})

STATUS_METADATA = MappingProxyType({
    DRAFT: {"label": "Draft", "description": "Being prepared by requester"},
    SUBMITTED: {"label": "Submitted", "description": "Awaiting CEO review"},
    IN_REVIEW: {"label": "In Review", "description": "CEO is reviewing"},
    APPROVED: {"label": "Approved", "description": "CEO approved, awaiting execution"},
    REJECTED: {"label": "Rejected", "description": "CEO rejected, can resubmit"},
    CANCELLED: {"label": "Cancelled", "description": "Cancelled by requester or CEO"},
    CLOSED: {"label": "Closed", "description": "Completed and closed"},
})

PRIORITY_CODES = ("P1", "P2", "P3", "P4", "P5")
PRIORITY_METADATA = MappingProxyType({
    "P1": {"label": "Blocker", "rank": 1, "color": "#FF0000"},
    "P2": {"label": "High", "rank": 2, "color": "#FF9900"},
    "P3": {"label": "Medium", "rank": 3, "color": "#FFCC00"},
    "P4": {"label": "Low", "rank": 4, "color": "#0066FF"},
    "P5": {"label": "Trivial", "rank": 5, "color": "#CCCCCC"},
})


def can_transition(from_status, to_status) -> bool:
    """True iff ``to_status`` is in the allowed set for ``from_status``."""
    return to_status in STATUS_TRANSITIONS.get(from_status, frozenset())


def is_terminal(status) -> bool:
    return status in STATUS_TRANSITIONS and not STATUS_TRANSITIONS[status]


def allowed_targets(status) -> frozenset:
    return STATUS_TRANSITIONS.get(status, frozenset())


def requires_role(target_status) -> frozenset:
    """Roles permitted to move a request into ``target_status``."""
    if target_status in _ELEVATED_TARGETS:
        return ELEVATED_ROLES
    return frozenset(ROLE_CODES)


def status_registry() -> list[dict]:
    """Serialisable view of the registry for the meta endpoint."""
    return [
        {
            "code": status,
            **STATUS_METADATA[status],
            "allowed_targets": sorted(STATUS_TRANSITIONS[status]),
            "is_terminal": is_terminal(status),
            "required_roles": sorted(requires_role(status)),
        }
        for status in REQUEST_STATUSES
    ]


def priority_registry() -> list[dict]:
    return [{"code": code, **PRIORITY_METADATA[code]} for code in PRIORITY_CODES]


# ═════════════════════════════════════════════════════════════════════════════
# Models
# ═════════════════════════════════════════════════════════════════════════════


class Category(OrgModel):
    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "created_at": iso(self.created_at),
        }


class Request(SoftDeleteMixin, OrgModel):
    """
    A request routed through executive approval.

    ``request_version`` starts at 1 and only moves forward. Content edits
    bump it once the request has left DRAFT; status changes never do.
    """

    __tablename__ = "requests"
    __table_args__ = (
        db.Index("ix_requests_org_status", "org_id", "status"),
        db.Index("ix_requests_org_created", "org_id", "created_at"),
        db.CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'IN_REVIEW', 'APPROVED', 'REJECTED', 'CANCELLED', 'CLOSED')",
            name="ck_requests_status",
        ),
        db.CheckConstraint(
            "priority_code IN ('P1', 'P2', 'P3', 'P4', 'P5')",
            name="ck_requests_priority_code",
        ),
        db.CheckConstraint("request_version >= 1", name="ck_requests_version_positive"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority_code = db.Column(db.String(2), nullable=False, default="P3")
    category_id = db.Column(
        db.String(36),
        db.ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default=INITIAL_STATUS)
    request_version = db.Column(db.Integer, nullable=False, default=1)
    requester_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    status_changed_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    category = db.relationship("Category")
    requester = db.relationship("User", foreign_keys=[requester_id])
    approvals = db.relationship(
        "Approval",
        back_populates="request",
        lazy="dynamic",
        order_by="Approval.approval_round",
        cascade="all, delete-orphan",
    )

    # Fields a material edit is judged on
    CONTENT_FIELDS = ("title", "description", "priority_code", "category_id")

    def content_values(self) -> dict:
        return {field: getattr(self, field) for field in self.CONTENT_FIELDS}

    def snapshot(self) -> dict:
        """Immutable copy of the reviewed content, stored on each approval round."""
        return {**self.content_values(), "request_version": self.request_version}

    def touch(self):
        self.last_activity_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "description": self.description,
            "priority_code": self.priority_code,
            "priority_label": PRIORITY_METADATA[self.priority_code]["label"]
            if self.priority_code in PRIORITY_METADATA else None,
            "category_id": self.category_id,
            "status": self.status,
            "status_label": STATUS_METADATA[self.status]["label"]
            if self.status in STATUS_METADATA else None,
            "request_version": self.request_version,
            "requester_id": self.requester_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "status_changed_at": iso(self.status_changed_at),
            "submitted_at": iso(self.submitted_at),
            "approved_at": iso(self.approved_at),
            "closed_at": iso(self.closed_at),
            "last_activity_at": iso(self.last_activity_at),
            "deleted_at": iso(self.deleted_at),
            "deleted_reason": self.deleted_reason,
        }

    def __repr__(self):
        return f"<Request {self.id} {self.status} v{self.request_version}>"
