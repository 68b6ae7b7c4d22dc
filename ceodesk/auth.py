"""
Actor resolution.

The JWT middleware only records who the token claims to be. This module
loads that user and is the single place endpoints get their actor from:

    actor = resolve_actor()
    req = get_request(actor.org_id, request_id)

The org scope and role are taken from the user row, never from the token.
"""

import logging

from flask import g

from ceodesk.core.exceptions import AuthenticationError
from ceodesk.models import db
from ceodesk.models.auth import User

logger = logging.getLogger(__name__)


def resolve_actor() -> User:
    """Return the authenticated, active user for this request.

    Cached on ``g`` so repeated calls within a request hit the DB once.

    Raises:
        AuthenticationError: no token, bad token, unknown or inactive user.
    """
    cached = getattr(g, "actor", None)
    if cached is not None:
        return cached

    user_id = getattr(g, "jwt_user_id", None)
    if not user_id:
        raise AuthenticationError()

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("Token subject %s is unknown or inactive", user_id)
        raise AuthenticationError("User not found or inactive")

    g.actor = user
    g.org_id = user.org_id
    return user
