from __future__ import annotations


class WorkflowError(Exception):
    """Base exception for numbering and case workflow operations."""

    kind = 'workflow_error'

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'message': self.message}


class AllocationError(WorkflowError):
    """Raised when the sequence increment fails; no counter was consumed."""

    kind = 'allocation_error'


class ValidationError(WorkflowError, ValueError):
    """Raised when a status or transition target is outside the permitted set."""

    kind = 'validation_error'


class ConflictError(WorkflowError):
    """Raised when current state no longer matches the assumed precondition."""

    kind = 'conflict_error'


class NotFoundError(WorkflowError, LookupError):
    kind = 'not_found'


class PersistenceError(WorkflowError):
    kind = 'persistence_error'


def invalid_value(field: str, value: object, permitted: list[str] | tuple[str, ...]) -> ValidationError:
    return ValidationError(f"Invalid {field} '{value}'. Valid values are: {', '.join(permitted)}")
