"""
CEO Desk
Announcement domain model.

Models:
    - Announcement: org-wide or targeted broadcast published by CEO/ADMIN
    - AnnouncementRead: per-user read / acknowledgement tracking
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ANNOUNCEMENT_TYPES = ("info", "important", "urgent")
TARGET_SCOPES = ("all", "team", "individuals")


class Announcement(OrgModel):
    __tablename__ = "announcements"
    __table_args__ = (
        db.Index("ix_announcements_org_published", "org_id", "published_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    announcement_type = db.Column(db.String(20), nullable=False, default="info")
    target_scope = db.Column(db.String(20), nullable=False, default="all")
    target_user_ids = db.Column(db.JSON, nullable=False, default=list)
    require_acknowledgement = db.Column(db.Boolean, nullable=False, default=False)
    sticky_until = db.Column(db.DateTime(timezone=True), nullable=True)
    published_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))
    published_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def targets(self, user_id) -> bool:
        """True when ``user_id`` is in the audience of this announcement."""
        return self.target_scope == "all" or user_id in (self.target_user_ids or [])

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "content": self.content,
            "announcement_type": self.announcement_type,
            "target_scope": self.target_scope,
            "target_user_ids": self.target_user_ids or [],
            "require_acknowledgement": self.require_acknowledgement,
            "sticky_until": iso(self.sticky_until),
            "published_by": self.published_by,
            "published_at": iso(self.published_at),
            "updated_at": iso(self.updated_at),
        }


class AnnouncementRead(OrgModel):
    __tablename__ = "announcement_reads"
    __table_args__ = (
        db.UniqueConstraint("announcement_id", "user_id", name="uq_announcement_reads_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    announcement_id = db.Column(
        db.String(36),
        db.ForeignKey("announcements.id", ondelete="CASCADE"),
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
