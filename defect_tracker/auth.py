"""
Defect Tracker
Role-based access control.

Provides:
    - The four built-in role names
    - ``has_any_role``: the pure authorization predicate
    - ``require_auth`` / ``require_roles``: route decorators applied before
      the view runs

Security model:
    - The JWT middleware resolves the bearer token to ``g.current_user`` and
      loads the user's *current* role names into ``g.jwt_roles``.
    - A route without a decorator is public (login, health probes).
    - ``require_roles()`` with no names admits any authenticated caller.

Usage:
    @defect_bp.route("/<int:defect_id>/status", methods=["POST"])
    @require_roles(ADMIN, MANAGER, ENGINEER)
    def change_status(defect_id):
        ...
"""

import functools
import logging
from collections.abc import Iterable

from flask import g

from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ADMIN = "Admin"
MANAGER = "Manager"
ENGINEER = "Engineer"
VIEWER = "Viewer"

BUILTIN_ROLES = (ADMIN, MANAGER, ENGINEER, VIEWER)

# Role groups used by route guards
MANAGEMENT_ROLES = (ADMIN, MANAGER)
EDITOR_ROLES = (ADMIN, MANAGER, ENGINEER)


def has_any_role(caller_roles: Iterable[str], required: Iterable[str]) -> bool:
    """True when ``required`` is empty or shares at least one name with ``caller_roles``."""
    required = set(required)
    if not required:
        return True
    return bool(required & set(caller_roles or ()))


def get_current_user():
    """The authenticated ``User`` for this request, or None."""
    return g.get("current_user")


def get_current_roles() -> list[str]:
    return list(g.get("jwt_roles") or [])


def _unauthenticated():
    message = g.get("jwt_error") or "Authentication required"
    return api_error(E.UNAUTHORIZED, message)


def require_auth(f):
    """Decorator: reject requests without a valid bearer token (401)."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if get_current_user() is None:
            return _unauthenticated()
        return f(*args, **kwargs)

    return decorated


def require_roles(*roles: str):
    """
    Decorator: require the caller to hold at least ONE of ``roles``.

    Unauthenticated → 401. Authenticated without a matching role → 403,
    and the view never runs.
    """

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return _unauthenticated()

            if not has_any_role(get_current_roles(), roles):
                logger.warning(
                    "User %d denied: needs any of %s on %s",
                    user.id, roles, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Permission denied",
                    details={"required_any": list(roles)},
                )

            return f(*args, **kwargs)

        return decorated

    return decorator
