"""
Application-wide exception hierarchy.

Services raise these; the app factory registers one handler per type so
every blueprint gets the same HTTP status codes and JSON error body.

Usage:
    from defect_tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Defect", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Defect", "Role").
        resource_id: The key that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400. ``details`` carries the field-level breakdown:
    keys are field names, values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation is refused because of existing state.

    Duplicate role names, deleting a role still held by users, a user
    deleting their own account. Maps to HTTP 409.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when credentials or a bearer token are missing or invalid. Maps to HTTP 401."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised when the caller is authenticated but may not touch this record. Maps to HTTP 403."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)
