"""
Executive Message Service.

Structured messages between managers and executives, attached to a request,
an announcement, or (CEO/ADMIN only) to nothing in particular.

Flow:
    create (draft)  -> author sends            -> sent
    sent            -> recipient acknowledges  -> acknowledged
    sent | acknowledged -> author resolves     -> resolved
"""

import logging

from sqlalchemy import and_, cast, or_

from ceodesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ceodesk.models import db
from ceodesk.models.announcement import Announcement
from ceodesk.models.audit import record_audit
from ceodesk.models.base import utcnow
from ceodesk.models.message import (
    CONTEXT_TYPES,
    MESSAGE_STATUSES,
    MESSAGE_TYPES,
    ExecutiveMessage,
    ExecutiveMessageRead,
)
from ceodesk.models.request import Request
from ceodesk.services.helpers.scoped_queries import get_scoped, get_scoped_or_none, org_member_ids
from ceodesk.services.notification import NotificationService
from ceodesk.services.permission import is_elevated

logger = logging.getLogger(__name__)

_CONTEXT_MODELS = {"request": Request, "announcement": Announcement}


def _audit(message: ExecutiveMessage, actor, action: str, new_values: dict) -> None:
    record_audit(
        org_id=message.org_id,
        entity_type="message",
        entity_id=message.id,
        action=action,
        user_id=actor.id,
        actor_role_code=actor.role_code,
        new_values=new_values,
    )


def create_message(org_id: str, actor, data: dict) -> ExecutiveMessage:
    """
    Create a draft message.

    Args:
        data: cleaned payload (message_type, context_type, context_id, subject,
              body, recipient_ids, cc_user_ids, parent_message_id).
    """
    if data["message_type"] not in MESSAGE_TYPES:
        raise ValidationError("Invalid message type", details={"message_type": "invalid"})
    context_type = data["context_type"]
    if context_type not in CONTEXT_TYPES:
        raise ValidationError("Invalid context type", details={"context_type": "invalid"})

    context_id = data.get("context_id")
    if context_type == "general":
        if not is_elevated(actor):
            raise ForbiddenError("create general messages", required_roles={"CEO", "ADMIN"},
                                 actor_role=actor.role_code)
        context_id = None
    else:
        if not context_id:
            raise ValidationError("context_id is required for request/announcement messages",
                                  details={"context_id": "required"})
        if get_scoped_or_none(_CONTEXT_MODELS[context_type], context_id, org_id=org_id) is None:
            raise ValidationError(f"Unknown {context_type}", details={"context_id": "not found"})

    recipients = list(dict.fromkeys(data.get("recipient_ids") or []))
    cc = [uid for uid in dict.fromkeys(data.get("cc_user_ids") or []) if uid not in recipients]
    if not recipients:
        raise ValidationError("At least one recipient is required", details={"recipient_ids": "required"})
    members = org_member_ids(org_id, recipients + cc)
    unknown = [uid for uid in recipients + cc if uid not in members]
    if unknown:
        raise ValidationError("Recipients must belong to the organization", details={"unknown_users": unknown})

    parent_id = data.get("parent_message_id")
    if parent_id is not None:
        get_scoped(ExecutiveMessage, parent_id, org_id=org_id)

    message = ExecutiveMessage(
        org_id=org_id,
        message_type=data["message_type"],
        context_type=context_type,
        context_id=context_id,
        author_id=actor.id,
        author_role=actor.role_code,
        subject=data["subject"],
        body=data["body"],
        recipient_ids=recipients,
        cc_user_ids=cc,
        parent_message_id=parent_id,
        status="draft",
    )
    db.session.add(message)
    db.session.flush()

    logger.info("Message drafted: id=%s type=%s context=%s", message.id, message.message_type, context_type)
    _audit(message, actor, "created", message.to_dict())
    return message


def _require_author(message: ExecutiveMessage, actor, action: str) -> None:
    if message.author_id != actor.id:
        raise ForbiddenError(action, actor_role=actor.role_code, reason=f"Only the author can {action}")


def _require_addressee(message: ExecutiveMessage, actor, action: str) -> None:
    if not message.is_addressed_to(actor.id):
        raise ForbiddenError(action, actor_role=actor.role_code, reason=f"Only recipients can {action}")


def send_message(message: ExecutiveMessage, actor) -> ExecutiveMessage:
    _require_author(message, actor, "send this message")
    if message.status != "draft":
        raise ValidationError("Only draft messages can be sent", details={"status": message.status})

    now = utcnow()
    message.status = "sent"
    message.sent_at = now
    db.session.flush()

    _audit(message, actor, "message_sent", {"status": "sent", "sent_at": now})
    NotificationService.record(
        org_id=message.org_id,
        user_ids=list(message.recipient_ids or []) + list(message.cc_user_ids or []),
        notification_type="message",
        entity_type="message",
        entity_id=message.id,
        payload={"subject": message.subject, "author_id": actor.id},
    )
    return message


def _read_row(message: ExecutiveMessage, user_id: str) -> ExecutiveMessageRead:
    read = ExecutiveMessageRead.query.filter_by(message_id=message.id, user_id=user_id).first()
    if read is None:
        read = ExecutiveMessageRead(org_id=message.org_id, message_id=message.id, user_id=user_id)
        db.session.add(read)
    return read


def mark_read(message: ExecutiveMessage, actor) -> ExecutiveMessageRead:
    _require_addressee(message, actor, "mark this message read")
    if message.status == "draft":
        raise ValidationError("Draft messages cannot be read yet", details={"status": message.status})
    read = _read_row(message, actor.id)
    read.read_at = read.read_at or utcnow()
    db.session.flush()
    return read


def acknowledge_message(message: ExecutiveMessage, actor) -> ExecutiveMessage:
    _require_addressee(message, actor, "acknowledge this message")
    if message.status == "draft":
        raise ValidationError("Draft messages cannot be acknowledged", details={"status": message.status})

    read = _read_row(message, actor.id)
    if read.acknowledged_at is not None:
        return message

    now = utcnow()
    read.read_at = read.read_at or now
    read.acknowledged_at = now
    if message.status == "sent":
        message.status = "acknowledged"
        message.acknowledged_at = now
    db.session.flush()

    _audit(message, actor, "message_acknowledged", {"acknowledged_at": now})
    return message


def resolve_message(message: ExecutiveMessage, actor) -> ExecutiveMessage:
    _require_author(message, actor, "resolve this message")
    if message.status == "draft":
        raise ValidationError("Draft messages cannot be resolved", details={"status": message.status})
    if message.status == "resolved":
        return message

    now = utcnow()
    message.status = "resolved"
    message.resolved_at = now
    message.resolved_by = actor.id
    db.session.flush()

    _audit(message, actor, "message_resolved", {"status": "resolved", "resolved_at": now})
    return message


def get_message_for(org_id: str, message_id: str, actor) -> ExecutiveMessage:
    """Fetch a message the actor authored or received; others see 404."""
    message = get_scoped(ExecutiveMessage, message_id, org_id=org_id)
    addressee = message.status != "draft" and message.is_addressed_to(actor.id)
    if message.author_id != actor.id and not addressee:
        raise NotFoundError(resource="ExecutiveMessage", resource_id=message_id, org_id=org_id)
    return message


def _addressed_to(user_id: str):
    """SQL match for ``user_id`` in the recipient or cc JSON lists.

    Ids are UUID strings, so the quoted id is an exact token in the JSON text
    on both PostgreSQL and SQLite.
    """
    token = f'%"{user_id}"%'
    return or_(
        cast(ExecutiveMessage.recipient_ids, db.Text).like(token),
        cast(ExecutiveMessage.cc_user_ids, db.Text).like(token),
    )


def list_for_user(org_id: str, actor, *, status: str | None = None, message_type: str | None = None):
    """Inbox + outbox query for ``actor``, newest first. Drafts only show to their author."""
    if status is not None and status not in MESSAGE_STATUSES:
        raise ValidationError("Invalid status filter", details={"status": "invalid"})
    if message_type is not None and message_type not in MESSAGE_TYPES:
        raise ValidationError("Invalid message_type filter", details={"message_type": "invalid"})

    query = ExecutiveMessage.query_for_org(org_id).filter(
        or_(
            ExecutiveMessage.author_id == actor.id,
            and_(ExecutiveMessage.status != "draft", _addressed_to(actor.id)),
        )
    )
    if status:
        query = query.filter(ExecutiveMessage.status == status)
    if message_type:
        query = query.filter(ExecutiveMessage.message_type == message_type)
    return query.order_by(ExecutiveMessage.created_at.desc(), ExecutiveMessage.id.desc())


def decorate_for_user(messages, org_id: str, actor) -> list[dict]:
    """Attach the actor's read/ack state to one page of messages."""
    ids = [m.id for m in messages]
    reads = {}
    if ids:
        reads = {
            r.message_id: r
            for r in ExecutiveMessageRead.query_for_org(org_id)
            .filter(ExecutiveMessageRead.user_id == actor.id, ExecutiveMessageRead.message_id.in_(ids))
        }

    out = []
    for m in messages:
        read = reads.get(m.id)
        out.append({
            **m.to_dict(),
            "is_read": bool(read and read.read_at),
            "read_at": read.read_at.isoformat() if read and read.read_at else None,
            "is_acknowledged": bool(read and read.acknowledged_at),
            "current_user_is_author": m.author_id == actor.id,
            "current_user_is_recipient": m.is_addressed_to(actor.id),
        })
    return out
