"""
Seed Service — idempotent bootstrap of the built-in roles and the default
administrator account.

Runs on startup when ``SEED_ON_STARTUP`` is set, and through the
``flask seed`` CLI command. Every step is guarded by an existence check,
so running it again changes nothing.
"""

import logging

from flask import current_app

from defect_tracker.auth import ADMIN, BUILTIN_ROLES
from defect_tracker.models import db
from defect_tracker.models.auth import Role, User, UserRole
from defect_tracker.services.user_service import get_user_by_email
from defect_tracker.utils.crypto import hash_password

logger = logging.getLogger(__name__)


def seed_roles() -> int:
    """Create any missing built-in role. Returns how many were created."""
    existing = {name for (name,) in db.session.query(Role.name).all()}
    created = 0
    for name in BUILTIN_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
            created += 1
    db.session.flush()
    return created


def seed_admin(email: str | None = None, password: str | None = None) -> User:
    """Create the default administrator with the Admin role if the account is absent.

    An existing account is returned untouched, so roles changed by an Admin
    survive restarts.
    """
    email = email or current_app.config["DEFAULT_ADMIN_EMAIL"]
    password = password or current_app.config["DEFAULT_ADMIN_PASSWORD"]

    admin_role = Role.query.filter_by(name=ADMIN).first()
    user = get_user_by_email(email)
    if user is None:
        user = User(email=email, username=email, password_hash=hash_password(password))
        user.user_roles.append(UserRole(role=admin_role))
        db.session.add(user)
        db.session.flush()
        logger.info("Seeded default admin %s", email)

    return user


def seed_all() -> dict:
    """Seed roles and the default admin, then commit."""
    roles_created = seed_roles()
    admin = seed_admin()
    db.session.commit()
    logger.info("Seed complete: %d role(s) created, admin=%s", roles_created, admin.email)
    return {"roles_created": roles_created, "admin_email": admin.email}
