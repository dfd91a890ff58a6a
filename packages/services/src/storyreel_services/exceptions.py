"""Service layer exceptions."""

from typing import Optional


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ServiceError):
    """Resource not found."""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code="NOT_FOUND",
        )


class ValidationError(ServiceError):
    """Validation error."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, code="VALIDATION_ERROR")


class RunInProgressError(ServiceError):
    """A generation pass is already running for this story."""

    def __init__(self, message: str = "A generation pass is already in progress"):
        super().__init__(message, code="RUN_IN_PROGRESS")


class ExportError(ServiceError):
    """Writing the archive failed. Asset state is untouched and export can be retried."""

    def __init__(self, message: str):
        super().__init__(message, code="EXPORT_ERROR")
