"""Shared blueprint helpers.

db_commit_or_error:  one commit path for every write endpoint
parse_datetime:      ISO-8601 input → aware datetime, ValueError on bad input
json_body:           request JSON as a dict, or a 400 response tuple
"""
import logging
from datetime import datetime, timezone

from flask import request
from sqlalchemy.exc import IntegrityError, OperationalError

from ceodesk.models import db
from ceodesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def json_body():
    """Return ``(data, None)`` for a JSON object body, else ``(None, error_response)``."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def parse_datetime(value):
    """Parse an ISO-8601 datetime string; naive values are taken as UTC.

    Returns None for empty input and raises ValueError for anything else
    that does not parse.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("Invalid datetime format. Use ISO-8601.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.DATABASE_CONSTRAINT, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return api_error(E.DATABASE, "Database error")
