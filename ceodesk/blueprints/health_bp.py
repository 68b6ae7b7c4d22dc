"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness, always 200 if the app is running
    GET /api/v1/health/ready  — readiness, 503 when the database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ceodesk.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def live():
    return jsonify({"status": "ok", "app": "CEO Desk"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe with database round-trip latency."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "unavailable", "checks": checks}), 503

    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}
    return jsonify({"status": "ok", "checks": checks}), 200
