"""
Project Blueprint — project CRUD.

  GET    /api/v1/projects        — list
  GET    /api/v1/projects/<id>   — details with defects
  POST   /api/v1/projects        — create  (Admin, Manager)
  PUT    /api/v1/projects/<id>   — replace (Admin, Manager)
  DELETE /api/v1/projects/<id>   — delete  (Admin, Manager; refused while defects exist)
"""

from flask import Blueprint, jsonify

from defect_tracker.auth import MANAGEMENT_ROLES, require_auth, require_roles
from defect_tracker.blueprints import request_data
from defect_tracker.services import project_service
from defect_tracker.utils.helpers import db_commit_or_error

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1/projects")


@project_bp.route("", methods=["GET"])
@require_auth
def list_projects():
    projects = project_service.list_projects()
    return jsonify([p.to_dict() for p in projects]), 200


@project_bp.route("/<int:project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    project = project_service.get_project_detail(project_id)
    return jsonify(project.to_dict(include_defects=True)), 200


@project_bp.route("", methods=["POST"])
@require_roles(*MANAGEMENT_ROLES)
def create_project():
    project = project_service.create_project(request_data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@project_bp.route("/<int:project_id>", methods=["PUT"])
@require_roles(*MANAGEMENT_ROLES)
def update_project(project_id):
    project = project_service.update_project(project_id, request_data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@require_roles(*MANAGEMENT_ROLES)
def delete_project(project_id):
    project_service.delete_project(project_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Project deleted"}), 200
