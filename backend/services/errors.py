from __future__ import annotations

from typing import Any


class StaffingError(Exception):
    """Base class for engine errors that map onto an HTTP response."""

    status_code = 500
    code = "STAFFING_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


class StaffingValidationError(StaffingError):
    """Local, pre-submit validation failure. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(StaffingError):
    status_code = 404
    code = "NOT_FOUND"


class UnresolvedConflictsError(StaffingError):
    """A batch still has conflicts without a resolution; nothing was written."""

    status_code = 409
    code = "UNRESOLVED_CONFLICTS"

    def __init__(self, conflicts: list) -> None:
        names = sorted({c.teacher_name or str(c.teacher_id) for c in conflicts})
        super().__init__(
            f"Resolve scheduling conflicts before saving: {', '.join(names)}",
            details={"conflicts": [c.to_dict() for c in conflicts]},
        )
        self.conflicts = conflicts


class ShiftHeldError(StaffingError):
    """Another sub already holds the shift; an explicit swap is required."""

    status_code = 409
    code = "SHIFT_HELD_BY_OTHER_SUB"


class ConfirmationRequiredError(StaffingError):
    status_code = 409
    code = "CONFIRMATION_REQUIRED"


class ShiftNotAssignableError(StaffingError):
    status_code = 409
    code = "SHIFT_NOT_ASSIGNABLE"


class FlexConflictError(StaffingError):
    status_code = 409
    code = "FLEX_ASSIGNMENT_CONFLICT"


class WriteFailedError(StaffingError):
    """A write against the store failed; ``context`` names the teacher/cell."""

    status_code = 500
    code = "WRITE_FAILED"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, details={"context": context or {}})
        self.context = context or {}


class BatchApplyError(StaffingError):
    """A multi-step batch stopped part-way. Earlier steps stay applied."""

    status_code = 500
    code = "BATCH_PARTIALLY_APPLIED"

    def __init__(self, message: str, *, steps: list[dict[str, Any]]) -> None:
        super().__init__(message, details={"steps": steps})
        self.steps = steps


class AssignmentNotActiveError(StaffingError):
    status_code = 409
    code = "ASSIGNMENT_NOT_ACTIVE"
