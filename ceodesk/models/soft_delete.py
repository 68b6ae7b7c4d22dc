"""
Soft Delete Mixin.

Adds ``deleted_at`` / ``deleted_by`` / ``deleted_reason`` columns and query
helpers. Requests are never hard-deleted: they disappear from default
listings but stay addressable by id.

Usage:
    class MyModel(SoftDeleteMixin, OrgModel):
        ...

    obj.soft_delete(reason="Duplicate", by=user.id)
    MyModel.query_active().all()
"""

from datetime import datetime, timezone

from ceodesk.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by = db.Column(db.String(36), nullable=True)
    deleted_reason = db.Column(db.String(500), nullable=True)

    def soft_delete(self, reason=None, by=None):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)
        self.deleted_by = by
        self.deleted_reason = reason

    def restore(self):
        """Restore a soft-deleted record."""
        self.deleted_at = None
        self.deleted_by = None
        self.deleted_reason = None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
