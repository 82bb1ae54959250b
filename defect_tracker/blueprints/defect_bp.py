"""
Defect Blueprint — defect workflow endpoints.

  GET    /api/v1/defects                        — list (search, status, project_id, priority)
  GET    /api/v1/defects/<id>                   — details with comments and attachments
  POST   /api/v1/defects                        — create, JSON or multipart ``attachments``
  PUT    /api/v1/defects/<id>                   — full replace of editable fields
  DELETE /api/v1/defects/<id>                   — delete with stored files
  POST   /api/v1/defects/<id>/comments          — add comment (+ optional files)
  PUT    /api/v1/comments/<id>                  — edit comment (author or Admin)
  POST   /api/v1/defects/<id>/status            — change status
  GET    /api/v1/attachments/<id>/download      — defect attachment file
  GET    /api/v1/comment-attachments/<id>/download — comment attachment file
"""

from flask import Blueprint, jsonify, request, send_file

from defect_tracker.auth import (
    BUILTIN_ROLES,
    EDITOR_ROLES,
    MANAGEMENT_ROLES,
    get_current_roles,
    get_current_user,
    require_auth,
    require_roles,
)
from defect_tracker.blueprints import request_data, request_files
from defect_tracker.models.defect import CommentAttachment, DefectAttachment
from defect_tracker.services import defect_service, file_service
from defect_tracker.utils.errors import E, api_error

defect_bp = Blueprint("defect_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Defects
# ═══════════════════════════════════════════════════════════════
@defect_bp.route("/defects", methods=["GET"])
@require_auth
def list_defects():
    project_id = request.args.get("project_id", type=int)
    defects = defect_service.list_defects(
        search=request.args.get("search") or None,
        status=request.args.get("status") or None,
        project_id=project_id,
        priority=request.args.get("priority") or None,
    )
    return jsonify([d.to_dict() for d in defects]), 200


@defect_bp.route("/defects/<int:defect_id>", methods=["GET"])
@require_auth
def get_defect(defect_id):
    defect = defect_service.get_defect_detail(defect_id)
    return jsonify(defect.to_dict(include_details=True)), 200


@defect_bp.route("/defects", methods=["POST"])
@require_roles(*EDITOR_ROLES)
def create_defect():
    defect = defect_service.create_defect(
        request_data(), get_current_user().id, request_files("attachments"),
    )
    return jsonify(defect_service.get_defect_detail(defect.id).to_dict(include_details=True)), 201


@defect_bp.route("/defects/<int:defect_id>", methods=["PUT"])
@require_roles(*EDITOR_ROLES)
def update_defect(defect_id):
    defect = defect_service.update_defect(defect_id, request_data())
    return jsonify(defect.to_dict()), 200


@defect_bp.route("/defects/<int:defect_id>", methods=["DELETE"])
@require_roles(*MANAGEMENT_ROLES)
def delete_defect(defect_id):
    defect_service.delete_defect(defect_id)
    return jsonify({"message": "Defect deleted"}), 200


@defect_bp.route("/defects/<int:defect_id>/status", methods=["POST"])
@require_roles(*EDITOR_ROLES)
def change_status(defect_id):
    data = request_data()
    new_status = data.get("status") or data.get("new_status")
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required",
                         details={"status": "required"})
    defect = defect_service.change_status(defect_id, new_status)
    return jsonify(defect.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════
@defect_bp.route("/defects/<int:defect_id>/comments", methods=["POST"])
@require_roles(*BUILTIN_ROLES)
def add_comment(defect_id):
    data = request_data()
    comment = defect_service.add_comment(
        defect_id, data.get("text"), get_current_user().id, request_files("attachments"),
    )
    if comment is None:
        return jsonify({"comment": None, "message": "Empty comment ignored"}), 200
    return jsonify(comment.to_dict()), 201


@defect_bp.route("/comments/<int:comment_id>", methods=["PUT"])
@require_roles(*BUILTIN_ROLES)
def update_comment(comment_id):
    data = request_data()
    comment = defect_service.update_comment(
        comment_id, data.get("text"), get_current_user(), get_current_roles(),
    )
    return jsonify(comment.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# Attachments
# ═══════════════════════════════════════════════════════════════
def _send_attachment(attachment):
    return send_file(
        file_service.full_path(attachment.file_path),
        mimetype=attachment.content_type,
        as_attachment=True,
        download_name=attachment.original_file_name,
    )


@defect_bp.route("/attachments/<int:attachment_id>/download", methods=["GET"])
@require_auth
def download_attachment(attachment_id):
    return _send_attachment(defect_service.get_attachment(attachment_id, DefectAttachment))


@defect_bp.route("/comment-attachments/<int:attachment_id>/download", methods=["GET"])
@require_auth
def download_comment_attachment(attachment_id):
    return _send_attachment(defect_service.get_attachment(attachment_id, CommentAttachment))
