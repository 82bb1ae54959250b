"""
Auth Blueprint — JWT authentication endpoints.

  POST /api/v1/auth/login   — Email + password → access token
  GET  /api/v1/auth/me      — Current user profile with roles
"""

from flask import Blueprint, jsonify, request

from defect_tracker.auth import get_current_user, require_auth
from defect_tracker.services.jwt_service import issue_token
from defect_tracker.services.user_service import authenticate
from defect_tracker.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return a bearer token.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get("email", "") or "").strip()
    password = data.get("password", "")

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = authenticate(email, password)
    return jsonify({**issue_token(user), "user": user.to_dict(include_roles=True)}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify(get_current_user().to_dict(include_roles=True)), 200
