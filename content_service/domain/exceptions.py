"""
Custom exceptions for the content service domain.

These exceptions represent domain-level errors and are independent
of infrastructure concerns (HTTP, database, etc.). Every data-access
failure surfaces as one of these so callers can match on the kind.
"""

from typing import Any, Optional, Sequence


class ContentServiceException(Exception):
    """Base exception for all content service errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class EntityNotFound(ContentServiceException):
    """Raised when no row of an entity matches the requested id."""

    def __init__(self, entity: str, id: int):
        self.entity = entity
        self.id = id
        super().__init__(
            message=f"Entity not found: {entity} with id {id}",
            details={"entity": entity, "id": id},
        )


class InvalidFilterField(ContentServiceException):
    """Raised when a filter or ordering references an undeclared field."""

    def __init__(self, entity: str, field: str):
        self.entity = entity
        self.field = field
        super().__init__(
            message=f"Field '{field}' cannot be used to filter {entity}",
            details={"entity": entity, "field": field},
        )


class InvalidFilterOperator(ContentServiceException):
    """Raised when a filter operator is unknown, disallowed or badly valued."""

    def __init__(
        self, entity: str, field: str, operator: str, reason: Optional[str] = None
    ):
        self.entity = entity
        self.field = field
        self.operator = operator
        message = f"Operator '{operator}' is not allowed on {entity}.{field}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            details={
                "entity": entity,
                "field": field,
                "operator": operator,
                "reason": reason,
            },
        )


class ValidationException(ContentServiceException):
    """Raised when a payload or list option fails validation."""

    def __init__(self, entity: str, errors: Sequence[Any]):
        self.entity = entity
        self.errors = list(errors)
        super().__init__(
            message=f"Validation failed for {entity}",
            details={"entity": entity, "errors": self.errors},
        )


class ConstraintViolation(ContentServiceException):
    """Raised when a uniqueness or reference constraint rejects a write."""

    def __init__(self, entity: str, field: Optional[str], reason: Optional[str] = None):
        self.entity = entity
        self.field = field
        message = f"Constraint violated on {entity}"
        if field:
            message += f".{field}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            details={"entity": entity, "field": field, "reason": reason},
        )


class EntityReferenced(ConstraintViolation):
    """Raised when deleting a row that other rows still reference."""

    def __init__(self, entity: str, id: int, referenced_by: Sequence[str]):
        self.id = id
        self.referenced_by = list(referenced_by)
        super().__init__(
            entity,
            "id",
            reason=f"row {id} is referenced by {', '.join(self.referenced_by)}",
        )
        self.details.update({"id": id, "referenced_by": self.referenced_by})


class InvalidTransition(ContentServiceException):
    """Raised when an update breaks an entity-specific state rule."""

    def __init__(self, entity: str, id: int, reason: str):
        self.entity = entity
        self.id = id
        self.reason = reason
        super().__init__(
            message=f"Invalid transition for {entity} {id}: {reason}",
            details={"entity": entity, "id": id, "reason": reason},
        )


class Timeout(ContentServiceException):
    """Raised when a data-access call exceeds its deadline."""

    def __init__(self, entity: str, operation: str, seconds: float):
        self.entity = entity
        self.operation = operation
        self.seconds = seconds
        super().__init__(
            message=f"{operation} on {entity} exceeded {seconds}s deadline",
            details={"entity": entity, "operation": operation, "seconds": seconds},
        )


class StoreUnavailable(ContentServiceException):
    """Raised when the primary store cannot be reached."""

    def __init__(self, reason: Optional[str] = None):
        message = "Primary store unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"reason": reason})


class CacheException(ContentServiceException):
    """Raised when cache operations fail."""

    def __init__(self, operation: str, reason: Optional[str] = None):
        message = f"Cache {operation} failed"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message, details={"operation": operation, "reason": reason}
        )


class AuthError(ContentServiceException):
    """Raised when a bearer token cannot be turned into a principal."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(message=f"Authentication failed: {reason}", details={"reason": reason})


class CtxCannotNewRootCtx(ContentServiceException):
    """Raised when a principal context is requested for the reserved root id."""

    def __init__(self):
        super().__init__(message="Cannot create a principal context for the root user")
