"""
Defect Tracker
Defect domain models.

Models:
    - Defect:            a tracked issue filed against one project
    - DefectComment:     discussion entry on a defect
    - DefectAttachment:  stored file linked to a defect
    - CommentAttachment: stored file linked to a comment

Architecture ref:
    Project ──1:N──▶ Defect ──1:N──▶ DefectComment ──1:N──▶ CommentAttachment
                       └──1:N──▶ DefectAttachment

Status lifecycle: New is the implicit initial state. Any status may move to
any other; Closed and Cancelled are terminal by convention only.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from defect_tracker.models import db


# ── Constants ────────────────────────────────────────────────────────────

DEFECT_STATUSES = ("New", "InProgress", "OnReview", "Closed", "Cancelled")

DEFECT_PRIORITIES = ("Low", "Medium", "High")

COMMENT_MAX_LENGTH = 1000

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_file_size(size):
    """Render a byte count as a short human-readable string, e.g. ``1.5 KB``."""
    value = float(size or 0)
    order = 0
    while value >= 1024 and order < len(_SIZE_UNITS) - 1:
        order += 1
        value /= 1024
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[order]}"


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT
# ═════════════════════════════════════════════════════════════════════════════

class Defect(db.Model):
    """
    Defect raised against a project.

    ``status``, ``creator_id`` and ``created_at`` are stamped by the service
    layer at creation; ``created_at`` never changes afterwards.
    """

    __tablename__ = "defects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="New")
    priority = db.Column(db.String(20), nullable=False, default="Medium")
    due_date = db.Column(db.Date, nullable=True)

    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True,
    )
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    creator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships
    project = db.relationship("Project", back_populates="defects")
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    creator = db.relationship("User", foreign_keys=[creator_id])
    comments = db.relationship(
        "DefectComment", back_populates="defect",
        cascade="all, delete-orphan",
        order_by="DefectComment.created_at",
    )
    attachments = db.relationship(
        "DefectAttachment", back_populates="defect",
        cascade="all, delete-orphan",
        order_by="DefectAttachment.uploaded_at",
    )

    @validates("created_at")
    def _freeze_created_at(self, key, value):
        if self.created_at is not None and value != self.created_at:
            raise ValueError("created_at is immutable once set")
        return value

    def to_dict(self, include_details=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": _iso(self.due_date),
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee.username if self.assignee else None,
            "creator_id": self.creator_id,
            "creator_name": self.creator.username if self.creator else None,
            "created_at": _iso(self.created_at),
        }
        if include_details:
            d["comments"] = [c.to_dict() for c in self.comments]
            d["attachments"] = [a.to_dict() for a in self.attachments]
        return d

    def __repr__(self):
        return f"<Defect {self.id}: [{self.status}] {self.title[:30]}>"


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT COMMENT
# ═════════════════════════════════════════════════════════════════════════════

class DefectComment(db.Model):
    """Comment on a defect. Only ``text`` and ``updated_at`` change after creation."""

    __tablename__ = "defect_comments"

    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.String(COMMENT_MAX_LENGTH), nullable=False)
    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(db.DateTime, nullable=True)

    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    author_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    defect = db.relationship("Defect", back_populates="comments")
    author = db.relationship("User")
    attachments = db.relationship(
        "CommentAttachment", back_populates="comment",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "text": self.text,
            "author_id": self.author_id,
            "author_name": self.author.username if self.author else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "attachments": [a.to_dict() for a in self.attachments],
        }


# ═════════════════════════════════════════════════════════════════════════════
# ATTACHMENTS
# ═════════════════════════════════════════════════════════════════════════════

class AttachmentBase(db.Model):
    """Columns shared by defect and comment attachments."""

    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False, unique=True)
    original_file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    content_type = db.Column(db.String(100), default="application/octet-stream")
    file_size = db.Column(db.BigInteger, nullable=False, default=0)
    description = db.Column(db.String(500), nullable=True)
    uploaded_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    uploaded_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    @property
    def formatted_size(self):
        return format_file_size(self.file_size)

    def to_dict(self):
        return {
            "id": self.id,
            "file_name": self.file_name,
            "original_file_name": self.original_file_name,
            "file_path": self.file_path,
            "content_type": self.content_type,
            "file_size": self.file_size,
            "formatted_size": self.formatted_size,
            "description": self.description,
            "uploaded_at": _iso(self.uploaded_at),
            "uploaded_by_id": self.uploaded_by_id,
        }


class DefectAttachment(AttachmentBase):
    __tablename__ = "defect_attachments"

    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    defect = db.relationship("Defect", back_populates="attachments")

    def to_dict(self):
        d = super().to_dict()
        d["defect_id"] = self.defect_id
        return d


class CommentAttachment(AttachmentBase):
    __tablename__ = "comment_attachments"

    comment_id = db.Column(
        db.Integer, db.ForeignKey("defect_comments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    comment = db.relationship("DefectComment", back_populates="attachments")

    def to_dict(self):
        d = super().to_dict()
        d["comment_id"] = self.comment_id
        return d
