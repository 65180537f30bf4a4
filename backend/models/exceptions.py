"""
Custom domain exceptions for the application.

These exceptions are raised by the service layer and converted to HTTP exceptions
by centralized exception handlers in main.py, maintaining proper separation of concerns.

The authentication module (auth.py) also uses these domain exceptions to remain
HTTP-agnostic, allowing reuse in non-HTTP contexts (CLI tools, background tasks).
"""

from core.correlation import generate_correlation_id, get_correlation_id


class DomainException(Exception):
    """
    Base class for all domain exceptions.

    Attributes:
        message: Human-readable error message.
        correlation_id: Unique ID for error tracking (auto-generated if not provided).
    """

    def __init__(self, message: str, correlation_id: str | None = None):
        self.message = message
        # Use request correlation ID if available, otherwise generate new one
        self.correlation_id = (
            correlation_id or get_correlation_id() or generate_correlation_id()
        )
        super().__init__(self.message)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    pass


class PermissionDeniedException(DomainException):
    """Raised when user lacks required permissions."""

    pass


class ValidationException(DomainException):
    """Raised when input validation fails."""

    pass


class ConflictException(DomainException):
    """Raised when operation conflicts with existing data."""

    pass


class AuthenticationException(DomainException):
    """Raised when authentication fails."""

    pass


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    pass


# Specific exceptions for domain entities


class UserNotFoundException(NotFoundException):
    """User not found."""

    pass


class IssueNotFoundException(NotFoundException):
    """Issue not found."""

    pass


class CanonicalNotFoundException(NotFoundException):
    """
    A duplicate's merged_into pointer references a missing record.

    This is a data-integrity fault: callers must never fall back to
    treating the duplicate as canonical.
    """

    def __init__(self, duplicate_id: int, canonical_id: int | None):
        self.duplicate_id = duplicate_id
        self.canonical_id = canonical_id
        super().__init__(
            f"Canonical issue {canonical_id} referenced by issue {duplicate_id} not found"
        )


class InvalidLocationException(ValidationException):
    """Coordinates missing or not a pair of finite numbers."""

    pass


class NotAReporterException(PermissionDeniedException):
    """User has no reporter entry on the canonical issue."""

    pass


class ChatPermissionDeniedException(PermissionDeniedException):
    """User may not post in the issue discussion."""

    pass


class InsufficientPermissionsException(PermissionDeniedException):
    """User doesn't have sufficient permissions."""

    pass


class InactiveUserException(PermissionDeniedException):
    """User account is inactive."""

    pass


class InvalidMergeException(BusinessRuleException):
    """Merge preconditions are not met."""

    pass


class ConcurrentUpdateException(ConflictException):
    """Optimistic version check kept failing for a canonical issue."""

    pass


class SpatialQueryException(DomainException):
    """
    A spatial query against the storage layer failed.

    Never surfaced to API callers: the spatial service falls back to a
    bounding-box search, and callers degrade to "no match" or "cluster-error".
    """

    pass
