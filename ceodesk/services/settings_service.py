"""
Organisation settings service.

Reads always succeed: an org without a settings row gets SETTINGS_DEFAULTS.
Writes are ADMIN-only, range-checked, and audited with old/new values.
"""

import logging

from flask import current_app

from ceodesk.core.exceptions import ValidationError
from ceodesk.models import db
from ceodesk.models.audit import record_audit
from ceodesk.models.request import PRIORITY_CODES
from ceodesk.models.settings import (
    BOOLEAN_SETTINGS,
    SETTINGS_DEFAULTS,
    SETTINGS_RANGES,
    OrgSettings,
)
from ceodesk.services.permission import require_role

logger = logging.getLogger(__name__)


def _defaults() -> dict:
    defaults = dict(SETTINGS_DEFAULTS)
    defaults["max_mentions_per_comment"] = current_app.config.get(
        "DEFAULT_MAX_MENTIONS_PER_COMMENT", defaults["max_mentions_per_comment"]
    )
    return defaults


def get_settings(org_id: str) -> dict:
    """Effective settings for the org (stored row merged over defaults)."""
    defaults = _defaults()
    row = db.session.get(OrgSettings, org_id)
    if row is None:
        return defaults
    return {key: (value if value is not None else defaults[key])
            for key, value in row.values().items()}


def _validate(data: dict) -> dict:
    errors = {}
    clean = {}
    for key, value in data.items():
        if key not in SETTINGS_DEFAULTS:
            errors[key] = "unknown setting"
            continue
        if key in SETTINGS_RANGES:
            lo, hi = SETTINGS_RANGES[key]
            if isinstance(value, bool) or not isinstance(value, int):
                errors[key] = "must be an integer"
            elif not lo <= value <= hi:
                errors[key] = f"must be between {lo} and {hi}"
            else:
                clean[key] = value
        elif key in BOOLEAN_SETTINGS:
            if not isinstance(value, bool):
                errors[key] = "must be a boolean"
            else:
                clean[key] = value
        elif key == "default_priority_code":
            if value not in PRIORITY_CODES:
                errors[key] = f"must be one of {list(PRIORITY_CODES)}"
            else:
                clean[key] = value
    if errors:
        raise ValidationError("Invalid settings", details=errors)
    return clean


def update_settings(org_id: str, actor, data: dict) -> dict:
    """Upsert the org's settings row. Returns the effective settings."""
    require_role(actor, {"ADMIN"}, "update organisation settings")
    clean = _validate(data)

    before = get_settings(org_id)
    row = db.session.get(OrgSettings, org_id)
    if row is None:
        row = OrgSettings(org_id=org_id, **before)
        db.session.add(row)
    for key, value in clean.items():
        setattr(row, key, value)
    row.updated_by = actor.id
    db.session.flush()

    after = get_settings(org_id)
    changed = {k for k in after if after[k] != before[k]}
    logger.info("Org settings updated: org=%s fields=%s", org_id, sorted(changed))
    record_audit(
        org_id=org_id,
        entity_type="org_settings",
        entity_id=org_id,
        action="settings_updated",
        user_id=actor.id,
        actor_role_code=actor.role_code,
        old_values={k: before[k] for k in changed},
        new_values={k: after[k] for k in changed},
    )
    return after
