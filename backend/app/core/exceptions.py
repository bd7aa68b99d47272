from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.schemas.conflict import TeacherConflict


class AppError(Exception):
    """Base class for all application exceptions."""

    code = "INTERNAL"

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised when caller input is malformed. Never retried automatically."""

    code = "VALIDATION"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=422, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(AppError):
    code = "CONFLICT"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=409, details=details)


class TeacherConflictError(ConflictError):
    """Raised when an assignment would put a teacher in two places at once."""

    def __init__(self, conflict: TeacherConflict):
        self.conflict = conflict
        super().__init__(
            (
                f"Teacher {conflict.teacher_id} is already teaching batch {conflict.conflicting_batch_id} "
                f"on day {conflict.day_of_week} from {conflict.conflicting_start_time} "
                f"to {conflict.conflicting_end_time}"
            ),
            details={"conflict": conflict.model_dump()},
        )


class ScheduleBusyError(ConflictError):
    """Raised when a schedule lock could not be acquired in time. Safe to retry."""

    def __init__(self, lock_key: str):
        super().__init__(
            "Another change to this schedule is in progress, retry shortly",
            details={"lock": lock_key, "retryable": True},
        )


class StaleWriteError(AppError):
    """Raised when a conditional write observed a newer version than the caller expected."""

    code = "STALE_WRITE"

    def __init__(self, expected_version: int, current_version: int | None):
        super().__init__(
            "The period was changed by another request, reload and try again",
            status_code=409,
            details={
                "expected_version": expected_version,
                "current_version": current_version,
                "retryable": True,
            },
        )
