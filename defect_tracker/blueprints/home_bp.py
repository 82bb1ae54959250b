"""
Home Blueprint — landing dashboard.

  GET /api/v1/dashboard — project/defect totals, open count, 10 latest defects
"""

from flask import Blueprint, jsonify

from defect_tracker.auth import require_auth
from defect_tracker.services.report_service import compute_dashboard

home_bp = Blueprint("home_bp", __name__, url_prefix="/api/v1")


@home_bp.route("/dashboard", methods=["GET"])
@require_auth
def dashboard():
    data = compute_dashboard()
    data["recent_defects"] = [d.to_dict() for d in data["recent_defects"]]
    return jsonify(data), 200
