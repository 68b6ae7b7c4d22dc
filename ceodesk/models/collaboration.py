"""
CEO Desk
Request collaboration models.

Models:
    - RequestComment: threaded discussion on a request, with @mentions
    - RequestWatcher: users following a request, one row per (request, user)

Neither model takes part in material-change detection: comments and
watchers never invalidate an approval round.
"""

from ceodesk.models import db
from ceodesk.models.base import OrgModel, iso, new_uuid, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

WATCHER_ROLES = ("OBSERVER", "CONTRIBUTOR", "ESCALATION_CONTACT")
DEFAULT_WATCHER_ROLE = "OBSERVER"


class RequestComment(OrgModel):
    __tablename__ = "request_comments"
    __table_args__ = (
        db.Index("ix_request_comments_request_created", "request_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    request_id = db.Column(
        db.String(36),
        db.ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    body = db.Column(db.Text, nullable=False, comment="HTML-escaped on write")
    mentions = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "author_id": self.author_id,
            "body": self.body,
            "mentions": self.mentions or [],
            "created_at": iso(self.created_at),
        }


class RequestWatcher(OrgModel):
    __tablename__ = "request_watchers"
    __table_args__ = (
        db.UniqueConstraint("request_id", "watcher_id", name="uq_request_watchers_request_user"),
        db.CheckConstraint(
            "watcher_role IN ('OBSERVER', 'CONTRIBUTOR', 'ESCALATION_CONTACT')",
            name="ck_request_watchers_role",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    request_id = db.Column(
        db.String(36),
        db.ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    watcher_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    watcher_role = db.Column(db.String(30), nullable=False, default=DEFAULT_WATCHER_ROLE)
    added_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "watcher_id": self.watcher_id,
            "watcher_role": self.watcher_role,
            "added_by": self.added_by,
            "created_at": iso(self.created_at),
        }
