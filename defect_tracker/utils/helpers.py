"""Shared utility functions for services and blueprints.

get_or_raise:        primary-key lookup that raises NotFoundError
parse_date:          lenient date parsing (returns None on bad input)
parse_date_input:    strict date parsing (raises ValidationError)
parse_optional_int:  int coercion for ids coming from JSON or form fields
db_commit_or_error:  commit with IntegrityError → 409, other errors → 500
"""
import logging
from datetime import date, datetime

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (the format used in report exports)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Empty input yields None. Used for client-supplied dates where a typo
    must not be silently dropped.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        )
    return parsed


def parse_optional_int(value, field="id"):
    """Coerce ``value`` to int; blank input yields None."""
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    try:
        return int(value)
    except (ValueError, TypeError) as exc:
        raise ValidationError(
            f"{field} must be an integer", details={field: "not an integer"},
        ) from exc


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure, ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other SQLAlchemyError → 500
    """
    from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return api_error(E.DATABASE, "Database error")
