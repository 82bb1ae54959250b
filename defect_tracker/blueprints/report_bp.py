"""
Report Blueprint — reporting and exports (Admin, Manager).

  GET /api/v1/reports                           — summary counts + defect rows
  GET /api/v1/reports/defects                   — defect report (JSON)
  GET /api/v1/reports/defects?export=csv        — semicolon file (.csv)
  GET /api/v1/reports/defects?export=excel      — tab-separated file (.xls)
  GET /api/v1/reports/defects?export=xlsx       — Excel workbook (.xlsx)
  GET /api/v1/reports/projects                  — per-project counts incl. overdue
  GET /api/v1/reports/statistics                — aggregates and average resolution time
"""

from flask import Blueprint, Response, jsonify, request

from defect_tracker.auth import MANAGEMENT_ROLES, require_roles
from defect_tracker.services import report_service
from defect_tracker.utils.errors import E, api_error

report_bp = Blueprint("report_bp", __name__, url_prefix="/api/v1/reports")


def _defect_report_payload():
    defects = report_service.defects_for_report()
    return {
        "summary": report_service.status_summary(defects),
        "defects": [d.to_dict() for d in defects],
    }


@report_bp.route("", methods=["GET"])
@require_roles(*MANAGEMENT_ROLES)
def index():
    return jsonify(_defect_report_payload()), 200


@report_bp.route("/defects", methods=["GET"])
@require_roles(*MANAGEMENT_ROLES)
def defects_report():
    fmt = request.args.get("export")
    if not fmt:
        return jsonify(_defect_report_payload()), 200

    rendered = report_service.export_defects(fmt.lower())
    if rendered is None:
        return api_error(
            E.VALIDATION_INVALID, f"Unsupported export format: {fmt}",
            details={"export": f"one of {', '.join(report_service.EXPORT_FORMATS)}"},
        )
    content, mimetype, filename = rendered
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@report_bp.route("/projects", methods=["GET"])
@require_roles(*MANAGEMENT_ROLES)
def projects_report():
    return jsonify(report_service.project_report()), 200


@report_bp.route("/statistics", methods=["GET"])
@require_roles(*MANAGEMENT_ROLES)
def statistics():
    """Aggregates; ``average_resolution`` is the mean age of Closed defects."""
    stats = report_service.compute_statistics()
    avg = stats.pop("average_resolution_time")
    stats["average_resolution"] = None if avg is None else {
        "seconds": round(avg.total_seconds(), 1),
        "days": avg.days,
        "hours": avg.seconds // 3600,
    }
    return jsonify(stats), 200
