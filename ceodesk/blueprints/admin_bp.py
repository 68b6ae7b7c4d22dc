"""
Admin Blueprint — organisation settings.

API Endpoints (JSON):
  GET    /api/v1/admin/config     — effective org settings (CEO/ADMIN)
  PUT    /api/v1/admin/config     — update org settings (ADMIN)
"""

import logging

from flask import Blueprint, jsonify

from ceodesk.auth import resolve_actor
from ceodesk.services.permission import require_elevated
from ceodesk.services.settings_service import get_settings, update_settings
from ceodesk.utils.errors import E, api_error, register_error_handlers
from ceodesk.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")
register_error_handlers(admin_bp)


@admin_bp.route("/config", methods=["GET"])
def get_config():
    actor = resolve_actor()
    require_elevated(actor, "view organisation settings")
    return jsonify({"org_id": actor.org_id, "settings": get_settings(actor.org_id)})


@admin_bp.route("/config", methods=["PUT"])
def put_config():
    """Body: any subset of the settings keys."""
    actor = resolve_actor()
    data, err = json_body()
    if err:
        return err
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "No settings supplied", details={"body": "required"})

    settings = update_settings(actor.org_id, actor, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"org_id": actor.org_id, "settings": settings})
