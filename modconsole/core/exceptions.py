"""Custom exception classes for the moderation console."""

from typing import Optional

from fastapi import HTTPException, status


class ConsoleError(Exception):
    """Base exception for the moderation console.

    ``code`` is the stable machine-readable name surfaced by the API;
    ``status_code`` is the HTTP status the exception handler maps it to.
    """

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(ConsoleError):
    """Raised when authentication fails."""
    code = "authentication_failed"
    status_code = status.HTTP_401_UNAUTHORIZED


class RateLimitedError(ConsoleError):
    """Raised when a caller exceeds the login rate limit."""
    code = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class ForbiddenError(ConsoleError):
    """Raised when the actor is disabled or lacks a permission."""
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class UnknownCommandError(ConsoleError):
    """Raised when a command id is not in the catalog."""
    code = "unknown_command"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, command_id: str):
        self.command_id = command_id
        super().__init__(f"Unknown command: {command_id}")


class CommandDisabledError(ConsoleError):
    """Raised when a command is kill-switched for the community."""
    code = "command_disabled"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "This command is currently disabled."):
        super().__init__(message)


class ValidationFailedError(ConsoleError):
    """Raised when command input fails validation (first violated rule)."""
    code = "validation_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(ConsoleError):
    """Raised when a resource is missing or belongs to another community."""
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class SelfApprovalForbiddenError(ConsoleError):
    """Raised when a requester tries to decide their own approval."""
    code = "self_approval_forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Approver must be different from requester."):
        super().__init__(message)


class SensitiveModeRequiredError(ConsoleError):
    """Raised when a high-risk operation needs an active sensitive-mode grant."""
    code = "sensitive_mode_required"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Sensitive mode is required for high-risk operations."):
        super().__init__(message)


class CooldownActiveError(ConsoleError):
    """Raised when a high-risk command is retried inside its cooldown window."""
    code = "cooldown_active"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, remaining_seconds: int, message: Optional[str] = None):
        self.remaining_seconds = remaining_seconds
        super().__init__(
            message or f"Command cooldown active. Try again in {remaining_seconds}s."
        )


class AlreadyDecidedError(ConsoleError):
    """Raised when deciding an approval that is no longer pending."""
    code = "already_decided"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Approval request is no longer pending."):
        super().__init__(message)


class ServiceUnavailableError(ConsoleError):
    """Raised while the datastore circuit breaker is open."""
    code = "service_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Service temporarily unavailable. Please try again shortly."):
        super().__init__(message)


class AuditWriteError(ConsoleError):
    """Raised when a strict audit append cannot be recorded."""
    code = "audit_write_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# HTTP exception shortcuts
def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
