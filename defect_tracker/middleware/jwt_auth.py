"""
JWT Auth Middleware — parses the bearer token and sets the request identity.

After this hook runs:
    g.current_user — the ``User`` row, or None
    g.jwt_user_id  — the user's id, or None
    g.jwt_roles    — role names currently assigned to the user
    g.jwt_error    — why a supplied token was rejected (for the 401 body)

A missing or bad token never blocks here; route decorators in
``defect_tracker.auth`` decide whether the endpoint needs a caller.
"""

import logging

import jwt as pyjwt
from flask import g, request

from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_user_id = None
        g.jwt_roles = []
        g.jwt_error = None

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
            user_id = int(payload.get("sub"))
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
            return
        except (pyjwt.InvalidTokenError, TypeError, ValueError):
            g.jwt_error = "Invalid token"
            return

        user = db.session.get(User, user_id)
        if user is None:
            logger.info("Token for deleted user %s rejected", user_id)
            g.jwt_error = "Invalid token"
            return

        g.current_user = user
        g.jwt_user_id = user.id
        g.jwt_roles = user.role_names
