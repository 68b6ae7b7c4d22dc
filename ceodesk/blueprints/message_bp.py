"""
Executive Message Blueprint.

Endpoints:
    GET  /api/v1/messages                     — inbox + outbox (filters: status, message_type)
    POST /api/v1/messages                     — create a draft
    GET  /api/v1/messages/<id>                — message detail (author or addressee)
    POST /api/v1/messages/<id>/send           — send a draft (author)
    POST /api/v1/messages/<id>/read           — mark read (recipient / cc)
    POST /api/v1/messages/<id>/acknowledge    — acknowledge (recipient / cc)
    POST /api/v1/messages/<id>/resolve        — resolve (author)
"""

import logging

from flask import Blueprint, jsonify, request

from ceodesk.auth import resolve_actor
from ceodesk.blueprints import paginate_query
from ceodesk.models.message import CONTEXT_TYPES, MESSAGE_TYPES
from ceodesk.services import message_service
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

message_bp = Blueprint("messages", __name__, url_prefix="/api/v1")
register_error_handlers(message_bp)

SUBJECT_MAX = 200
BODY_MAX = 10000


def _id_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) and v for v in value)


def _clean_message(data: dict) -> tuple[dict, dict]:
    clean, errors = {}, {}

    for field, choices in (("message_type", MESSAGE_TYPES), ("context_type", CONTEXT_TYPES)):
        value = data.get(field)
        if not value:
            errors[field] = "required"
        elif value not in choices:
            errors[field] = f"must be one of {list(choices)}"
        else:
            clean[field] = value

    subject = data.get("subject")
    if not isinstance(subject, str) or not subject.strip():
        errors["subject"] = "required"
    elif len(subject.strip()) > SUBJECT_MAX:
        errors["subject"] = f"must be at most {SUBJECT_MAX} characters"
    else:
        clean["subject"] = subject.strip()

    body = data.get("body")
    if not isinstance(body, str) or not body.strip():
        errors["body"] = "required"
    elif len(body) > BODY_MAX:
        errors["body"] = f"must be at most {BODY_MAX} characters"
    else:
        clean["body"] = body

    recipients = data.get("recipient_ids")
    if not recipients:
        errors["recipient_ids"] = "required"
    elif not _id_list(recipients):
        errors["recipient_ids"] = "must be a list of user ids"
    else:
        clean["recipient_ids"] = recipients

    cc = data.get("cc_user_ids") or []
    if not _id_list(cc) and cc != []:
        errors["cc_user_ids"] = "must be a list of user ids"
    else:
        clean["cc_user_ids"] = cc

    for field in ("context_id", "parent_message_id"):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors[field] = "must be a string"
        else:
            clean[field] = value

    return clean, errors


@message_bp.route("/messages", methods=["GET"])
def list_messages():
    """Messages the actor wrote or received.

    Query params: status, message_type, limit, offset
    """
    actor = resolve_actor()
    query = message_service.list_for_user(
        actor.org_id,
        actor,
        status=request.args.get("status") or None,
        message_type=request.args.get("message_type") or None,
    )
    page, total = paginate_query(query)
    items = message_service.decorate_for_user(page, actor.org_id, actor)
    return jsonify({"items": items, "total": total})


@message_bp.route("/messages", methods=["POST"])
def create_message():
    """Body: { message_type, context_type, context_id?, subject, body,
    recipient_ids, cc_user_ids?, parent_message_id? }"""
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    clean, errors = _clean_message(data)
    if errors:
        code = E.VALIDATION_REQUIRED if "required" in errors.values() else E.VALIDATION_INVALID
        return api_error(code, "Invalid message", details=errors)

    message = message_service.create_message(actor.org_id, actor, clean)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(message.to_dict()), 201


@message_bp.route("/messages/<message_id>", methods=["GET"])
def get_message(message_id):
    actor = resolve_actor()
    return jsonify(message_service.get_message_for(actor.org_id, message_id, actor).to_dict())


def _message_action(message_id, action):
    actor = resolve_actor()
    message = message_service.get_message_for(actor.org_id, message_id, actor)
    action(message, actor)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(message.to_dict())


@message_bp.route("/messages/<message_id>/send", methods=["POST"])
def send(message_id):
    return _message_action(message_id, message_service.send_message)


@message_bp.route("/messages/<message_id>/read", methods=["POST"])
def mark_read(message_id):
    return _message_action(message_id, message_service.mark_read)


@message_bp.route("/messages/<message_id>/acknowledge", methods=["POST"])
def acknowledge(message_id):
    return _message_action(message_id, message_service.acknowledge_message)


@message_bp.route("/messages/<message_id>/resolve", methods=["POST"])
def resolve(message_id):
    return _message_action(message_id, message_service.resolve_message)
