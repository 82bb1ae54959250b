"""
User Service — account and role administration, credential checks.

Write operations add/flush only; the calling blueprint owns the commit
(``db_commit_or_error``), so a failed request leaves nothing behind.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from defect_tracker.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from defect_tracker.models import db
from defect_tracker.models.auth import Role, User, UserRole
from defect_tracker.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)


def _min_password_length() -> int:
    return current_app.config.get("MIN_PASSWORD_LENGTH", 6)


def _normalize_email(email: str | None) -> str:
    """Validate syntax and return the normalized address."""
    email = str(email or "").strip()
    if not email:
        raise ValidationError("Email is required", details={"email": "required"})
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": str(e)}) from e


def _check_password(password: str | None, confirm_password: str | None = None) -> None:
    min_len = _min_password_length()
    if not password or len(password) < min_len:
        raise ValidationError(
            f"Password must be at least {min_len} characters",
            details={"password": f"min length {min_len}"},
        )
    if confirm_password is not None and confirm_password != password:
        raise ValidationError(
            "Passwords do not match",
            details={"confirm_password": "does not match password"},
        )


def _resolve_roles(role_names) -> list[Role]:
    """Map role names to Role rows; unknown names are a field error."""
    names = []
    for name in role_names or []:
        name = str(name or "").strip()
        if name and name not in names:
            names.append(name)
    if not names:
        return []
    roles = Role.query.filter(Role.name.in_(names)).all()
    found = {r.name for r in roles}
    missing = [n for n in names if n not in found]
    if missing:
        raise ValidationError(
            f"Unknown role: {', '.join(missing)}",
            details={"roles": f"unknown: {', '.join(missing)}"},
        )
    return sorted(roles, key=lambda r: names.index(r.name))


def get_user_by_email(email: str) -> User | None:
    """Case-insensitive lookup by email."""
    if not email:
        return None
    return User.query.filter(func.lower(User.email) == email.strip().lower()).first()


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
def list_users() -> list[User]:
    return (
        User.query
        .options(selectinload(User.user_roles).joinedload(UserRole.role))
        .order_by(User.email)
        .all()
    )


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def create_user(
    email: str,
    password: str,
    confirm_password: str | None = None,
    role_name: str | None = None,
) -> User:
    """Create an account with at most one initial role. Username mirrors email."""
    email = _normalize_email(email)
    _check_password(password, confirm_password)

    if get_user_by_email(email):
        raise ValidationError(
            "A user with this email already exists",
            details={"email": "already registered"},
        )

    roles = _resolve_roles([role_name] if role_name else [])

    user = User(email=email, username=email, password_hash=hash_password(password))
    for role in roles:
        user.user_roles.append(UserRole(role=role))
    db.session.add(user)
    db.session.flush()

    logger.info("User created: id=%s email=%s roles=%s", user.id, email, user.role_names)
    return user


def update_user(user_id: int, email: str, role_names) -> User:
    """
    Replace email/username and the *whole* role set.

    Existing roles are removed first and the selected ones added back, so
    the result holds exactly ``role_names``.
    """
    user = get_user(user_id)
    email = _normalize_email(email)

    existing = get_user_by_email(email)
    if existing is not None and existing.id != user.id:
        raise ValidationError(
            "A user with this email already exists",
            details={"email": "already registered"},
        )

    roles = _resolve_roles(role_names)

    user.email = email
    user.username = email

    # Flush the removals before inserting, or (user, role) pairs that are
    # kept would collide on uq_user_role.
    user.user_roles.clear()
    db.session.flush()
    for role in roles:
        user.user_roles.append(UserRole(role=role))
    db.session.flush()

    logger.info("User updated: id=%s roles=%s", user.id, user.role_names)
    return user


def delete_user(user_id: int, caller_id: int | None) -> None:
    """Delete an account. A caller can never delete their own account."""
    if caller_id is not None and user_id == caller_id:
        logger.warning("User %s attempted to delete their own account", caller_id)
        raise ConflictError("You cannot delete your own account")

    user = get_user(user_id)
    db.session.delete(user)
    db.session.flush()
    logger.info("User deleted: id=%s email=%s", user_id, user.email)


def authenticate(email: str, password: str) -> User:
    """Return the user for valid credentials; otherwise AuthenticationError."""
    user = get_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise AuthenticationError("Invalid email or password")
    return user


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
def list_roles() -> list[Role]:
    return Role.query.order_by(Role.name).all()


def role_user_counts() -> dict[int, int]:
    """role_id → number of users holding it, in one grouped query."""
    rows = (
        db.session.query(UserRole.role_id, func.count(UserRole.id))
        .group_by(UserRole.role_id)
        .all()
    )
    return {role_id: count for role_id, count in rows}


def create_role(name: str | None) -> Role | None:
    """
    Create a role. A blank name is ignored and returns None.

    Names compare exactly (case-sensitive); a duplicate is a conflict.
    """
    name = str(name or "").strip()
    if not name:
        return None
    if Role.query.filter(Role.name == name).first():
        raise ConflictError(f"Role '{name}' already exists", details={"name": "duplicate"})

    role = Role(name=name)
    db.session.add(role)
    db.session.flush()
    logger.info("Role created: id=%s name=%s", role.id, name)
    return role


def delete_role(role_id: int) -> None:
    """Delete a role that no user holds."""
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError(resource="Role", resource_id=role_id)

    holders = role.user_roles.count()
    if holders:
        logger.warning("Refused to delete role %s: %d user(s) assigned", role.name, holders)
        raise ConflictError(
            f"Role '{role.name}' is assigned to {holders} user(s)",
            details={"user_count": holders},
        )

    db.session.delete(role)
    db.session.flush()
    logger.info("Role deleted: id=%s name=%s", role_id, role.name)
