"""
CEO Desk
Executive message domain model.

Models:
    - ExecutiveMessage: consultation / direction / clarification thread item
    - ExecutiveMessageRead: per-recipient read / acknowledgement tracking

Message status flow: draft -> sent -> acknowledged -> resolved
(sent may also go straight to resolved).
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

MESSAGE_TYPES = ("consultation", "direction", "clarification")
CONTEXT_TYPES = ("request", "announcement", "general")
MESSAGE_STATUSES = ("draft", "sent", "acknowledged", "resolved")


class ExecutiveMessage(OrgModel):
    __tablename__ = "executive_messages"
    __table_args__ = (
        db.Index("ix_executive_messages_org_status", "org_id", "status"),
        db.CheckConstraint(
            "status IN ('draft', 'sent', 'acknowledged', 'resolved')",
            name="ck_executive_messages_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    message_type = db.Column(db.String(20), nullable=False)
    context_type = db.Column(db.String(20), nullable=False)
    context_id = db.Column(db.String(36), nullable=True)
    author_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    author_role = db.Column(db.String(20), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=False)
    recipient_ids = db.Column(db.JSON, nullable=False, default=list)
    cc_user_ids = db.Column(db.JSON, nullable=False, default=list)
    parent_message_id = db.Column(
        db.String(36),
        db.ForeignKey("executive_messages.id", ondelete="SET NULL"),
        nullable=True,
    )

    status = db.Column(db.String(20), nullable=False, default="draft")
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def is_addressed_to(self, user_id) -> bool:
        return user_id in (self.recipient_ids or []) or user_id in (self.cc_user_ids or [])

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "message_type": self.message_type,
            "context_type": self.context_type,
            "context_id": self.context_id,
            "author_id": self.author_id,
            "author_role": self.author_role,
            "subject": self.subject,
            "body": self.body,
            "recipient_ids": self.recipient_ids or [],
            "cc_user_ids": self.cc_user_ids or [],
            "parent_message_id": self.parent_message_id,
            "status": self.status,
            "sent_at": iso(self.sent_at),
            "acknowledged_at": iso(self.acknowledged_at),
            "resolved_at": iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class ExecutiveMessageRead(OrgModel):
    __tablename__ = "executive_message_reads"
    __table_args__ = (
        db.UniqueConstraint("message_id", "user_id", name="uq_executive_message_reads_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    message_id = db.Column(
        db.String(36),
        db.ForeignKey("executive_messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
