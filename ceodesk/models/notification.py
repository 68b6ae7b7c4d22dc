"""
CEO Desk
Notification log model.

Delivery is out of scope: the service only records who should be told
about what. An external dispatcher drains this table.
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"mention", "urgent_announcement", "message"}


class NotificationLog(OrgModel):
    """One row per recipient per event."""

    __tablename__ = "notification_log"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_type = db.Column(db.String(30), nullable=False)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "notification_type": self.notification_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<NotificationLog {self.id}: {self.notification_type} -> {self.user_id}>"
