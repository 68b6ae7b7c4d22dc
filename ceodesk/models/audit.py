"""
CEO Desk
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every state-changing action.
"""

import json
import logging

from ceodesk.models import db
from ceodesk.models.base import iso, utcnow

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "request", "approval", "comment", "watcher",
    "announcement", "message", "org_settings", "category",
}

AUDIT_ACTIONS = {
    # Request
    "created",
    "updated",
    "status_changed",
    "deleted",
    "resubmitted",
    # Approval
    "approval_opened",
    "invalidated",
    "decided",
    # Collaboration
    "comment_added",
    "watcher_added",
    "watcher_removed",
    # Announcements
    "announcement_published",
    "acknowledged",
    # Messages
    "message_sent",
    "message_acknowledged",
    "message_resolved",
    # Admin
    "settings_updated",
}


def _plain(value):
    """Coerce a payload to JSON-safe primitives (datetimes become strings)."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per action. ``old_values`` / ``new_values`` carry the fields the
    action touched; ``metadata`` carries notes, versions, and similar context.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_org_ts", "org_id", "timestamp"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False, comment="request | approval | message | …")
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(db.String(60), nullable=False)
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Actor; NULL for system entries",
    )
    actor_role_code = db.Column(db.String(20), nullable=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = db.Column("metadata", db.JSON, nullable=True)
    correlation_id = db.Column(db.String(64), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "actor_role_code": self.actor_role_code,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "metadata": self.metadata_,
            "correlation_id": self.correlation_id,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Writers ──────────────────────────────────────────────────────────────────

def write_audit(
    *,
    org_id: str | None,
    entity_type: str,
    entity_id: str,
    action: str,
    user_id: str | None = None,
    actor_role_code: str | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    metadata: dict | None = None,
    correlation_id: str | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.

    Raises:
        ValueError: entity_type or action is outside the audit vocabulary.
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity_type '{entity_type}'")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action '{action}'")
    if correlation_id is None:
        from flask import g, has_request_context
        if has_request_context():
            correlation_id = getattr(g, "request_id", None)

    log = AuditLog(
        org_id=org_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        actor_role_code=actor_role_code,
        old_values=_plain(old_values),
        new_values=_plain(new_values),
        metadata_=_plain(metadata),
        correlation_id=correlation_id,
    )
    db.session.add(log)
    db.session.flush()
    return log


def record_audit(**kwargs) -> AuditLog | None:
    """
    Fire-and-forget variant of ``write_audit``.

    The row is written inside a savepoint. If it fails, the savepoint is
    rolled back, the failure is logged, and the caller's transaction keeps
    going. Returns None on failure.
    """
    try:
        with db.session.begin_nested():
            return write_audit(**kwargs)
    except Exception:
        logger.exception(
            "Audit write failed: action=%s entity=%s/%s",
            kwargs.get("action"), kwargs.get("entity_type"), kwargs.get("entity_id"),
        )
        return None
