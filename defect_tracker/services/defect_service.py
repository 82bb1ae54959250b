"""
Defect Service — defect workflow: list/filter, create, edit, comment,
status changes, deletion and attachment retrieval.

Commit boundaries live here rather than in the blueprint: creating a defect
commits the defect first and then one commit per attachment, so a storage
failure partway through leaves the defect and the earlier attachments
saved and the error propagates to the caller.

Status lifecycle (no transition graph is enforced):
    New ──▶ InProgress ──▶ OnReview ──▶ Closed
     └──────────────┴─────────┴──────▶ Cancelled
    Any status may be set from any other.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from defect_tracker.auth import ADMIN
from defect_tracker.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.defect import (
    COMMENT_MAX_LENGTH,
    DEFECT_PRIORITIES,
    DEFECT_STATUSES,
    CommentAttachment,
    Defect,
    DefectAttachment,
    DefectComment,
)
from defect_tracker.models.project import Project
from defect_tracker.services import file_service
from defect_tracker.utils.helpers import get_or_raise, parse_date_input, parse_optional_int

logger = logging.getLogger(__name__)

DEFECT_UPLOAD_DIR = "defects"
COMMENT_UPLOAD_DIR = "comments"


def _now():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════
def list_defects(search=None, status=None, project_id=None, priority=None) -> list[Defect]:
    """
    Defects matching every supplied filter.

    ``search`` is a case-insensitive substring match on title OR
    description. A ``status`` or ``priority`` that is not a known value is
    ignored rather than rejected. Absent filters impose no constraint.
    """
    query = Defect.query.options(
        joinedload(Defect.project),
        joinedload(Defect.assignee),
        joinedload(Defect.creator),
    )

    if search:
        query = query.filter(or_(
            Defect.title.icontains(search, autoescape=True),
            Defect.description.icontains(search, autoescape=True),
        ))
    if status in DEFECT_STATUSES:
        query = query.filter(Defect.status == status)
    if project_id is not None:
        query = query.filter(Defect.project_id == project_id)
    if priority in DEFECT_PRIORITIES:
        query = query.filter(Defect.priority == priority)

    return query.all()


def get_defect_detail(defect_id: int) -> Defect:
    """Defect with project, people, comments (with authors and files) and attachments."""
    defect = (
        Defect.query
        .options(
            joinedload(Defect.project),
            joinedload(Defect.assignee),
            joinedload(Defect.creator),
            selectinload(Defect.comments).options(
                joinedload(DefectComment.author),
                selectinload(DefectComment.attachments),
            ),
            selectinload(Defect.attachments),
        )
        .filter(Defect.id == defect_id)
        .first()
    )
    if defect is None:
        raise NotFoundError(resource="Defect", resource_id=defect_id)
    return defect


# ═══════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════
def _validate_choice(value, choices, field):
    if value not in choices:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            details={field: f"must be one of {', '.join(choices)}"},
        )
    return value


def _validated_fields(data: dict, current: Defect | None = None) -> dict:
    """Shared field checks for create and edit; raises ValidationError."""
    title = str(data.get("title", "") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    project_id = parse_optional_int(data.get("project_id"), "project_id")
    if project_id is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    if db.session.get(Project, project_id) is None:
        raise ValidationError("Project not found", details={"project_id": "unknown project"})

    assignee_id = parse_optional_int(data.get("assignee_id"), "assignee_id")
    if assignee_id is not None and db.session.get(User, assignee_id) is None:
        raise ValidationError("Assignee not found", details={"assignee_id": "unknown user"})

    default_priority = current.priority if current is not None else "Medium"
    priority = data.get("priority") or default_priority

    return {
        "title": title,
        "description": str(data.get("description", "") or ""),
        "priority": _validate_choice(priority, DEFECT_PRIORITIES, "priority"),
        "project_id": project_id,
        "assignee_id": assignee_id,
        "due_date": parse_date_input(data.get("due_date"), "due_date"),
    }


def _comment_text(value) -> str:
    """Comment body as a string; JSON numbers and the like are coerced."""
    return "" if value is None else str(value)


def _check_comment_text(text: str) -> None:
    if len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters",
            details={"text": f"max length {COMMENT_MAX_LENGTH}"},
        )


# ═══════════════════════════════════════════════════════════════
# Create / Edit
# ═══════════════════════════════════════════════════════════════
def create_defect(data: dict, creator_id: int, files=None) -> Defect:
    """
    File a new defect.

    Status, creator and created-at are always set here; client-supplied
    values for them are ignored. Each non-empty upload becomes a
    DefectAttachment saved under ``uploads/defects``.
    """
    fields = _validated_fields(data)
    defect = Defect(
        **fields,
        status="New",
        creator_id=creator_id,
        created_at=_now(),
    )
    db.session.add(defect)
    db.session.commit()
    logger.info("Defect created: id=%s project=%s by user=%s",
                defect.id, defect.project_id, creator_id)

    for upload in files or []:
        if file_service.is_empty_upload(upload):
            continue
        add_defect_attachment(defect, upload, creator_id)

    return defect


def add_defect_attachment(defect: Defect, upload, uploader_id: int) -> DefectAttachment:
    """Store one upload and link it to ``defect``; commits."""
    stored = file_service.save_file(upload, DEFECT_UPLOAD_DIR)
    attachment = DefectAttachment(
        defect_id=defect.id,
        file_name=stored.file_name,
        original_file_name=stored.original_file_name,
        file_path=stored.file_path,
        content_type=stored.content_type,
        file_size=stored.file_size,
        uploaded_at=_now(),
        uploaded_by_id=uploader_id,
    )
    db.session.add(attachment)
    db.session.commit()
    return attachment


def update_defect(defect_id: int, data: dict) -> Defect:
    """
    Full replace of the editable fields.

    ``status`` and ``priority`` keep their current value when omitted;
    description, due date and assignee are cleared when omitted. Creator
    and created-at are never touched. If the row disappears between load
    and save, the failure becomes NotFoundError; any other concurrency
    failure propagates.
    """
    defect = get_or_raise(Defect, defect_id, "Defect")
    fields = _validated_fields(data, current=defect)
    fields["status"] = _validate_choice(
        data.get("status") or defect.status, DEFECT_STATUSES, "status",
    )

    for attr, value in fields.items():
        setattr(defect, attr, value)

    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        if db.session.query(Defect.id).filter(Defect.id == defect_id).first() is None:
            raise NotFoundError(resource="Defect", resource_id=defect_id)
        raise

    logger.info("Defect updated: id=%s", defect_id)
    return defect


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════
def add_comment(defect_id: int, text: str | None, author_id: int, files=None) -> DefectComment | None:
    """
    Append a comment to a defect.

    Blank text is a silent no-op and returns None. Uploads are stored under
    ``uploads/comments`` as CommentAttachments.
    """
    text = _comment_text(text)
    if not text.strip():
        return None
    _check_comment_text(text)
    get_or_raise(Defect, defect_id, "Defect")

    comment = DefectComment(
        defect_id=defect_id,
        text=text,
        author_id=author_id,
        created_at=_now(),
    )
    db.session.add(comment)
    db.session.commit()
    logger.info("Comment %s added to defect %s by user=%s", comment.id, defect_id, author_id)

    for upload in files or []:
        if file_service.is_empty_upload(upload):
            continue
        stored = file_service.save_file(upload, COMMENT_UPLOAD_DIR)
        db.session.add(CommentAttachment(
            comment_id=comment.id,
            file_name=stored.file_name,
            original_file_name=stored.original_file_name,
            file_path=stored.file_path,
            content_type=stored.content_type,
            file_size=stored.file_size,
            uploaded_at=_now(),
            uploaded_by_id=author_id,
        ))
        db.session.commit()

    return comment


def update_comment(comment_id: int, text: str | None, caller: User, caller_roles=()) -> DefectComment:
    """Replace a comment's text. Only its author or an Admin may do this."""
    comment = get_or_raise(DefectComment, comment_id, "Comment")

    if comment.author_id != caller.id and ADMIN not in set(caller_roles):
        logger.warning("User %s denied editing comment %s", caller.id, comment_id)
        raise PermissionDeniedError("Only the author or an Admin can edit this comment")

    text = _comment_text(text)
    if not text.strip():
        raise ValidationError("text is required", details={"text": "required"})
    _check_comment_text(text)

    comment.text = text
    comment.updated_at = _now()
    db.session.commit()
    return comment


# ═══════════════════════════════════════════════════════════════
# Status / Delete
# ═══════════════════════════════════════════════════════════════
def change_status(defect_id: int, new_status: str) -> Defect:
    """Overwrite the status. Unknown defect → NotFoundError with nothing changed."""
    defect = get_or_raise(Defect, defect_id, "Defect")
    _validate_choice(new_status, DEFECT_STATUSES, "status")

    old_status = defect.status
    defect.status = new_status
    db.session.commit()
    logger.info("Defect %s status %s → %s", defect_id, old_status, new_status)
    return defect


def delete_defect(defect_id: int) -> None:
    """Delete a defect with its comments, attachments and stored files."""
    defect = get_defect_detail(defect_id)
    paths = [a.file_path for a in defect.attachments]
    for comment in defect.comments:
        paths.extend(a.file_path for a in comment.attachments)

    db.session.delete(defect)
    db.session.commit()

    for path in paths:
        file_service.delete_file(path)
    logger.info("Defect deleted: id=%s (%d stored file(s))", defect_id, len(paths))


# ═══════════════════════════════════════════════════════════════
# Attachments
# ═══════════════════════════════════════════════════════════════
def get_attachment(attachment_id: int, model=DefectAttachment):
    """Attachment row whose stored file is present on disk."""
    attachment = get_or_raise(model, attachment_id, "Attachment")
    if not file_service.file_exists(attachment.file_path):
        logger.warning("Attachment %s missing on disk: %s", attachment_id, attachment.file_path)
        raise NotFoundError(resource="Attachment file", resource_id=attachment_id)
    return attachment
