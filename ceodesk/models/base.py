"""
OrgModel — Abstract base class for organisation-scoped models.

Every table holding request, approval, or collaboration data inherits
from OrgModel instead of db.Model directly. This adds:
  - org_id FK column with index
  - query_for_org(org_id) classmethod
  - composite index helper
"""

import uuid
from datetime import datetime, timezone

from ceodesk.models import db


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """ISO-8601 string for a datetime column, or None."""
    return value.isoformat() if value else None


class OrgModel(db.Model):
    """Abstract base for org-scoped tables."""
    __abstract__ = True

    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_org(cls, org_id):
        """Return a query filtered by org_id."""
        return cls.query.filter_by(org_id=org_id)
