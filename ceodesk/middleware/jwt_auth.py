"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  g.jwt_user_id
  2. Nothing                              →  g.jwt_user_id = None

The middleware never rejects a request itself. Endpoints call
``resolve_actor()`` which turns a missing identity into a 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from ceodesk.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_org_id = None
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = payload.get("sub")
            g.jwt_org_id = payload.get("org_id")
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Invalid access token on %s: %s", path, exc)
