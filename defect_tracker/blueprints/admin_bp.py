"""
Admin Blueprint — user and role administration (Admin only).

  GET    /api/v1/admin/users          — users with roles
  POST   /api/v1/admin/users          — create (email, password, confirm_password, role)
  GET    /api/v1/admin/users/<id>     — one user
  PUT    /api/v1/admin/users/<id>     — replace email and full role set
  DELETE /api/v1/admin/users/<id>     — delete (never the caller)
  GET    /api/v1/admin/roles          — roles with user counts
  POST   /api/v1/admin/roles          — create (blank name ignored)
  DELETE /api/v1/admin/roles/<id>     — delete (refused while assigned)
"""

import logging

from flask import Blueprint, jsonify

from defect_tracker.auth import ADMIN, get_current_user, require_roles
from defect_tracker.blueprints import request_data
from defect_tracker.services import user_service
from defect_tracker.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1/admin")


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/users", methods=["GET"])
@require_roles(ADMIN)
def list_users():
    return jsonify([u.to_dict(include_roles=True) for u in user_service.list_users()]), 200


@admin_bp.route("/users", methods=["POST"])
@require_roles(ADMIN)
def create_user():
    data = request_data()
    user = user_service.create_user(
        email=data.get("email"),
        password=data.get("password"),
        confirm_password=data.get("confirm_password"),
        role_name=data.get("role") or data.get("selected_role"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(user.to_dict(include_roles=True)), 201


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@require_roles(ADMIN)
def get_user(user_id):
    return jsonify(user_service.get_user(user_id).to_dict(include_roles=True)), 200


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@require_roles(ADMIN)
def update_user(user_id):
    data = request_data()
    roles = data.get("roles")
    if roles is not None and not isinstance(roles, list):
        roles = [roles]
    user = user_service.update_user(user_id, data.get("email"), roles or [])
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(user.to_dict(include_roles=True)), 200


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_roles(ADMIN)
def delete_user(user_id):
    user_service.delete_user(user_id, get_current_user().id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "User deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/roles", methods=["GET"])
@require_roles(ADMIN)
def list_roles():
    counts = user_service.role_user_counts()
    return jsonify([
        {**r.to_dict(), "user_count": counts.get(r.id, 0)}
        for r in user_service.list_roles()
    ]), 200


@admin_bp.route("/roles", methods=["POST"])
@require_roles(ADMIN)
def create_role():
    role = user_service.create_role(request_data().get("name"))
    if role is None:
        return jsonify({"role": None, "message": "Empty role name ignored"}), 200
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(role.to_dict(include_user_count=True)), 201


@admin_bp.route("/roles/<int:role_id>", methods=["DELETE"])
@require_roles(ADMIN)
def delete_role(role_id):
    user_service.delete_role(role_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Role deleted"}), 200
