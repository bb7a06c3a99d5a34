"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


# ---------------------------------------------------------------------------
# State machine errors
# ---------------------------------------------------------------------------


class InvalidTransitionException(ConflictException):
    """A status change outside the allowed transition graph."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: object, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Cannot transition {entity} {entity_id} from '{from_status}' to '{to_status}'",
            details=[{
                "entity": entity,
                "id": str(entity_id),
                "from": from_status,
                "to": to_status,
            }],
        )
        self.from_status = from_status
        self.to_status = to_status


class PreconditionFailedException(ConflictException):
    """The entity is not in the state the operation requires."""

    code = "PRECONDITION_FAILED"

    def __init__(
        self,
        entity: str,
        entity_id: object,
        expected: str | list[str],
        actual: str,
        message: str | None = None,
    ) -> None:
        expected_values = [expected] if isinstance(expected, str) else list(expected)
        super().__init__(
            message
            or (
                f"{entity} {entity_id} must be in {' or '.join(repr(e) for e in expected_values)} "
                f"(current: '{actual}')"
            ),
            details=[{
                "entity": entity,
                "id": str(entity_id),
                "expected": expected_values,
                "actual": actual,
            }],
        )
        self.expected = expected_values
        self.actual = actual


class AlreadyComputedException(ConflictException):
    code = "ALREADY_COMPUTED"

    def __init__(self, requisition_id: object) -> None:
        super().__init__(
            f"Packaging already computed for requisition {requisition_id}",
            details=[{"requisition_id": str(requisition_id)}],
        )


class PackagingImmutableException(ConflictException):
    code = "PACKAGING_IMMUTABLE"


class BatchLockedException(ConflictException):
    """Attempted change to a frozen field of a snapshot-locked batch."""

    code = "BATCH_LOCKED"

    def __init__(self, batch_id: object, field: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot modify {field} of batch {batch_id}: batch snapshot is locked",
            details=[{"batch_id": str(batch_id), "field": field}],
        )
        self.field = field


class MissingAssignmentException(AppException):
    code = "MISSING_ASSIGNMENT"
    status_code = 422

    def __init__(self, batch_id: object, missing: list[str]) -> None:
        super().__init__(
            f"Cannot start dispatch for batch {batch_id}: no {' or '.join(missing)} assigned",
            details=[{"batch_id": str(batch_id), "missing": missing}],
        )
        self.missing = missing
