"""
CEO Desk
Flask Application Factory.

Usage:
    from ceodesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from ceodesk.config import config
from ceodesk.middleware.jwt_auth import init_jwt_middleware
from ceodesk.middleware.logging_config import configure_logging
from ceodesk.middleware.rate_limiter import init_rate_limits
from ceodesk.middleware.security_headers import init_security_headers
from ceodesk.middleware.timing import init_request_timing
from ceodesk.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # Dev SQLite file lives in the instance folder
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from ceodesk.models import announcement as _announcement_models  # noqa: F401
    from ceodesk.models import approval as _approval_models          # noqa: F401
    from ceodesk.models import audit as _audit_models                # noqa: F401
    from ceodesk.models import auth as _auth_models                  # noqa: F401
    from ceodesk.models import collaboration as _collaboration_models  # noqa: F401
    from ceodesk.models import message as _message_models            # noqa: F401
    from ceodesk.models import notification as _notification_models  # noqa: F401
    from ceodesk.models import request as _request_models            # noqa: F401
    from ceodesk.models import settings as _settings_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own changes) ──
    if not app.config.get("TESTING"):
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ceodesk.blueprints.admin_bp import admin_bp
    from ceodesk.blueprints.announcement_bp import announcement_bp
    from ceodesk.blueprints.approval_bp import approval_bp
    from ceodesk.blueprints.audit_bp import audit_bp
    from ceodesk.blueprints.collaboration_bp import collaboration_bp
    from ceodesk.blueprints.health_bp import health_bp
    from ceodesk.blueprints.message_bp import message_bp
    from ceodesk.blueprints.request_bp import request_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(request_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(collaboration_bp)
    app.register_blueprint(announcement_bp)
    app.register_blueprint(message_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(admin_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    @click.option("--org-name", default="Demo Organisation", show_default=True)
    @click.option("--slug", default="demo", show_default=True)
    def seed_demo_cmd(org_name, slug):
        """Create a demo organisation with one user per role and default categories."""
        from ceodesk.services.demo_seed import seed_demo_org
        from ceodesk.services.jwt_service import generate_access_token

        result = seed_demo_org(org_name, slug)
        db.session.commit()
        click.echo(f"Organisation {result['org'].name} ({result['org'].id})")
        for user in result["users"]:
            token = generate_access_token(user.id, user.org_id, user.role_code)
            click.echo(f"  {user.role_code:<8} {user.email:<24} {user.id}")
            click.echo(f"           token: {token}")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large", "code": "ERR_PAYLOAD_TOO_LARGE"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
