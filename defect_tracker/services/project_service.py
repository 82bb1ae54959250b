"""Project CRUD service.

Write operations add/flush; the blueprint commits.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import joinedload, selectinload

from defect_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import Defect
from defect_tracker.models.project import Project
from defect_tracker.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


def list_projects() -> list[Project]:
    return Project.query.order_by(Project.name.asc()).all()


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_project_detail(project_id: int) -> Project:
    """Project with its defects (and their assignee/creator) loaded."""
    project = (
        Project.query
        .options(
            selectinload(Project.defects).options(
                joinedload(Defect.assignee), joinedload(Defect.creator),
            ),
        )
        .filter(Project.id == project_id)
        .first()
    )
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def _validated_fields(data: dict) -> dict:
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    start_date = parse_date_input(data.get("start_date"), "start_date") or date.today()
    end_date = parse_date_input(data.get("end_date"), "end_date")
    if end_date is not None and end_date < start_date:
        raise ValidationError(
            "end_date cannot be before start_date",
            details={"end_date": "before start_date"},
        )

    return {
        "name": name,
        "description": str(data.get("description", "") or ""),
        "start_date": start_date,
        "end_date": end_date,
    }


def create_project(data: dict) -> Project:
    """Create a project; start date defaults to today."""
    project = Project(**_validated_fields(data))
    db.session.add(project)
    db.session.flush()
    logger.info("Project created: id=%s name=%s", project.id, project.name)
    return project


def update_project(project_id: int, data: dict) -> Project:
    """Full replace of name, description, start and end date."""
    project = get_project(project_id)
    for attr, value in _validated_fields(data).items():
        setattr(project, attr, value)
    db.session.flush()
    return project


def delete_project(project_id: int) -> None:
    """Delete a project that has no defects."""
    project = get_project(project_id)
    defect_count = Defect.query.filter(Defect.project_id == project.id).count()
    if defect_count:
        logger.warning("Refused to delete project %s: %d defect(s)", project.id, defect_count)
        raise ConflictError(
            f"Project has {defect_count} defect(s) and cannot be deleted",
            details={"defect_count": defect_count},
        )
    db.session.delete(project)
    db.session.flush()
    logger.info("Project deleted: id=%s", project_id)

