"""
Announcement Service.

CEO/ADMIN publish announcements to the whole org or to listed users.
Readers mark them read and, where required, acknowledge them.
Acknowledgement is irreversible: the first timestamp sticks.
"""

import logging

from ceodesk.core.exceptions import ForbiddenError, ValidationError
from ceodesk.models import db
from ceodesk.models.announcement import (
    ANNOUNCEMENT_TYPES,
    TARGET_SCOPES,
    Announcement,
    AnnouncementRead,
)
from ceodesk.models.audit import record_audit
from ceodesk.models.auth import User
from ceodesk.models.base import utcnow
from ceodesk.services.helpers.scoped_queries import org_member_ids
from ceodesk.services.notification import NotificationService
from ceodesk.services.permission import require_elevated

logger = logging.getLogger(__name__)


def _audience_ids(announcement: Announcement) -> list[str]:
    if announcement.target_scope == "all":
        rows = (
            db.session.query(User.id)
            .filter(User.org_id == announcement.org_id, User.is_active.is_(True))
            .all()
        )
        return [row[0] for row in rows]
    return list(announcement.target_user_ids or [])


def publish_announcement(org_id: str, actor, data: dict) -> Announcement:
    """
    Publish an announcement.

    Args:
        data: cleaned payload (title, content, announcement_type, target_scope,
              target_user_ids, require_acknowledgement, sticky_until).
    """
    require_elevated(actor, "publish announcements")
    if data["announcement_type"] not in ANNOUNCEMENT_TYPES:
        raise ValidationError("Invalid announcement type", details={"announcement_type": "invalid"})
    if data["target_scope"] not in TARGET_SCOPES:
        raise ValidationError("Invalid target scope", details={"target_scope": "invalid"})

    target_ids = list(dict.fromkeys(data.get("target_user_ids") or []))
    if data["target_scope"] != "all":
        if not target_ids:
            raise ValidationError("target_user_ids is required for targeted announcements",
                                  details={"target_user_ids": "required"})
        members = org_member_ids(org_id, target_ids)
        unknown = [uid for uid in target_ids if uid not in members]
        if unknown:
            raise ValidationError("Target users must belong to the organization",
                                  details={"unknown_users": unknown})

    announcement = Announcement(
        org_id=org_id,
        title=data["title"],
        content=data["content"],
        announcement_type=data["announcement_type"],
        target_scope=data["target_scope"],
        target_user_ids=target_ids,
        require_acknowledgement=bool(data.get("require_acknowledgement")),
        sticky_until=data.get("sticky_until"),
        published_by=actor.id,
    )
    db.session.add(announcement)
    db.session.flush()

    logger.info("Announcement published: id=%s type=%s scope=%s",
                announcement.id, announcement.announcement_type, announcement.target_scope)
    record_audit(
        org_id=org_id,
        entity_type="announcement",
        entity_id=announcement.id,
        action="announcement_published",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values=announcement.to_dict(),
    )
    if announcement.announcement_type == "urgent":
        NotificationService.record(
            org_id=org_id,
            user_ids=_audience_ids(announcement),
            notification_type="urgent_announcement",
            entity_type="announcement",
            entity_id=announcement.id,
            payload={"title": announcement.title},
        )
    return announcement


def _read_row(announcement_id: str, user_id: str) -> AnnouncementRead | None:
    return AnnouncementRead.query.filter_by(announcement_id=announcement_id, user_id=user_id).first()


def decorate_for_user(announcement: Announcement, read: AnnouncementRead | None) -> dict:
    is_acknowledged = bool(read and read.acknowledged_at)
    return {
        **announcement.to_dict(),
        "is_read": bool(read and read.read_at),
        "read_at": read.read_at.isoformat() if read and read.read_at else None,
        "is_acknowledged": is_acknowledged,
        "acknowledged_at": read.acknowledged_at.isoformat() if is_acknowledged else None,
        "is_urgent_outstanding": (
            announcement.announcement_type == "urgent"
            and announcement.require_acknowledgement
            and not is_acknowledged
        ),
    }


def list_for_user(org_id: str, actor) -> list[dict]:
    """Announcements visible to ``actor``, newest first, with read/ack state."""
    rows = (
        Announcement.query_for_org(org_id)
        .order_by(Announcement.published_at.desc())
        .all()
    )
    visible = [a for a in rows if a.targets(actor.id)]
    reads = {
        r.announcement_id: r
        for r in AnnouncementRead.query_for_org(org_id).filter_by(user_id=actor.id).all()
    }
    return [decorate_for_user(a, reads.get(a.id)) for a in visible]


def _require_audience(announcement: Announcement, actor, action: str) -> None:
    if not announcement.targets(actor.id):
        raise ForbiddenError(action, actor_role=actor.role_code,
                             reason=f"Not authorized to {action} this announcement")


def mark_read(announcement: Announcement, actor) -> AnnouncementRead:
    _require_audience(announcement, actor, "read")
    read = _read_row(announcement.id, actor.id)
    if read is None:
        read = AnnouncementRead(org_id=announcement.org_id, announcement_id=announcement.id, user_id=actor.id)
        db.session.add(read)
    if read.read_at is None:
        read.read_at = utcnow()
    db.session.flush()
    return read


def acknowledge(announcement: Announcement, actor) -> tuple[AnnouncementRead, bool]:
    """
    Acknowledge an announcement. Idempotent.

    Returns:
        (read_row, newly_acknowledged)
    """
    _require_audience(announcement, actor, "acknowledge")
    read = _read_row(announcement.id, actor.id)
    if read is not None and read.acknowledged_at is not None:
        return read, False

    now = utcnow()
    if read is None:
        read = AnnouncementRead(org_id=announcement.org_id, announcement_id=announcement.id, user_id=actor.id)
        db.session.add(read)
    read.read_at = read.read_at or now
    read.acknowledged_at = now
    db.session.flush()

    record_audit(
        org_id=announcement.org_id,
        entity_type="announcement",
        entity_id=announcement.id,
        action="acknowledged",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values={"announcement_id": announcement.id, "acknowledged_at": now},
    )
    return read, True
