"""
CEO Desk
Per-organisation runtime settings.

One optional row per organisation. Missing rows and missing columns fall
back to SETTINGS_DEFAULTS, so reading settings never fails.
"""

from ceodesk.models import db
from ceodesk.models.base import iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

SETTINGS_DEFAULTS = {
    "max_attachment_mb": 10,
    "auto_cancel_drafts_days": 0,
    "restore_window_days": 30,
    "audit_retention_days": 365,
    "default_priority_code": "P3",
    "allow_manager_self_approve": False,
    "require_approval_notes": False,
    "max_mentions_per_comment": 5,
}

# Inclusive bounds for the integer settings
SETTINGS_RANGES = {
    "max_attachment_mb": (1, 100),
    "auto_cancel_drafts_days": (0, 365),
    "restore_window_days": (0, 365),
    "audit_retention_days": (30, 3650),
    "max_mentions_per_comment": (1, 50),
}

BOOLEAN_SETTINGS = ("allow_manager_self_approve", "require_approval_notes")


class OrgSettings(db.Model):
    __tablename__ = "org_settings"

    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    max_attachment_mb = db.Column(db.Integer, nullable=False, default=10)
    auto_cancel_drafts_days = db.Column(db.Integer, nullable=False, default=0)
    restore_window_days = db.Column(db.Integer, nullable=False, default=30)
    audit_retention_days = db.Column(db.Integer, nullable=False, default=365)
    default_priority_code = db.Column(db.String(2), nullable=False, default="P3")
    allow_manager_self_approve = db.Column(db.Boolean, nullable=False, default=False)
    require_approval_notes = db.Column(db.Boolean, nullable=False, default=False)
    max_mentions_per_comment = db.Column(db.Integer, nullable=False, default=5)
    updated_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def values(self) -> dict:
        return {key: getattr(self, key) for key in SETTINGS_DEFAULTS}

    def to_dict(self):
        return {
            "org_id": self.org_id,
            **self.values(),
            "updated_by": self.updated_by,
            "updated_at": iso(self.updated_at),
        }
