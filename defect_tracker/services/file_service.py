"""
File storage helper for defect and comment attachments.

Layout on disk:
    <UPLOAD_ROOT>/uploads/<subdirectory>/<uuid4>_<basename>

The database stores the path relative to UPLOAD_ROOT
(``uploads/<subdirectory>/<generated-name>``), so the storage root can move
without rewriting rows.
"""

import logging
import os
import uuid
from dataclasses import dataclass

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredFile:
    """Result of saving one upload."""

    file_name: str
    file_path: str
    original_file_name: str
    content_type: str
    file_size: int


def _root() -> str:
    return current_app.config["UPLOAD_ROOT"]


def original_basename(filename: str | None) -> str:
    """Strip any client-side directory part, including Windows separators."""
    return os.path.basename((filename or "").replace("\\", "/"))


def upload_size(file) -> int:
    """Byte length of an upload's stream, leaving the stream rewound."""
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def is_empty_upload(file) -> bool:
    """True for a missing part, a part without a file name, or zero bytes."""
    if file is None or not original_basename(file.filename):
        return True
    return upload_size(file) == 0


def full_path(relative_path: str) -> str:
    """Absolute path on disk for a stored relative path."""
    return os.path.join(_root(), *relative_path.split("/"))


def save_file(file, subdirectory: str) -> StoredFile:
    """Persist an uploaded ``FileStorage`` under ``uploads/<subdirectory>``.

    Raises ``OSError`` when the file cannot be written.
    """
    original = original_basename(file.filename)
    safe = secure_filename(original) or "file"
    generated = f"{uuid.uuid4()}_{safe}"

    target_dir = os.path.join(_root(), UPLOADS_DIR, subdirectory)
    os.makedirs(target_dir, exist_ok=True)
    target = os.path.join(target_dir, generated)
    file.save(target)

    stored = StoredFile(
        file_name=generated,
        file_path=f"{UPLOADS_DIR}/{subdirectory}/{generated}",
        original_file_name=original,
        content_type=file.mimetype or DEFAULT_CONTENT_TYPE,
        file_size=os.path.getsize(target),
    )
    logger.info("Stored upload %s as %s (%d bytes)",
                original, stored.file_path, stored.file_size)
    return stored


def file_exists(relative_path: str) -> bool:
    return bool(relative_path) and os.path.isfile(full_path(relative_path))


def delete_file(relative_path: str) -> bool:
    """Remove a stored file. Returns False when nothing was there."""
    if not file_exists(relative_path):
        return False
    os.remove(full_path(relative_path))
    logger.info("Deleted stored file %s", relative_path)
    return True
