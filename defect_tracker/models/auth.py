"""
Auth Models — users, roles and the user ↔ role junction.

The identity gateway of the tracker: every defect, comment and attachment
points at a ``users.id``. Role names are plain strings; the four built-in
roles are created by the seed service.
"""

from datetime import datetime, timezone

from defect_tracker.models import db


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    username = db.Column(db.String(200), nullable=False)  # mirrors email
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    # Relationships
    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def role_names(self):
        """Sorted list of role names held by this user."""
        return sorted(ur.role.name for ur in self.user_roles)

    def to_dict(self, include_roles=True):
        d = {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_roles:
            d["roles"] = self.role_names
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    def to_dict(self, include_user_count=False):
        d = {
            "id": self.id,
            "name": self.name,
        }
        if include_user_count:
            d["user_count"] = self.user_roles.count()
        return d

    def __repr__(self):
        return f"<Role {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 3. USER_ROLES (Junction table)
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    assigned_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    # Relationships
    user = db.relationship("User", back_populates="user_roles")
    role = db.relationship("Role", back_populates="user_roles", lazy="joined")
