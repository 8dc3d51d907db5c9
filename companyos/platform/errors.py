"""
Structured error classes for the AI scope gateway and expiration engine.

Domain errors carry a human-readable message that is safe to show to users
and a details dict for server-side context. Internal detail is logged, never
returned to clients.
"""

from typing import Any, Optional

from fastapi import status


GENERIC_RETRY_MESSAGE = "Something went wrong. Please try again."


class CompanyOSError(Exception):
    """Base exception for all companyos domain errors."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.code,
            "message": self.message,
        }


class AuthorizationDenied(CompanyOSError):
    """
    Raised when an AI command is denied for the requested scope.

    Expected and user-facing. The reason is short and never reveals policy
    internals such as the override-code rules.
    """

    http_status = status.HTTP_403_FORBIDDEN
    code = "authorization_denied"

    def __init__(self, reason: str, scope: Optional[str] = None):
        self.reason = reason
        self.scope = scope
        super().__init__(message=reason, details={"scope": scope})

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "reason": self.reason,
            "scope": self.scope,
        }


class AuditWriteFailure(CompanyOSError):
    """
    Raised inside the audit sink when the audit store rejects a write.

    Never propagates past the sink boundary.
    """

    code = "audit_write_failure"


class StoreUnavailable(CompanyOSError):
    """Raised by the stores when the underlying database is unavailable."""

    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "store_unavailable"

    def __init__(self, operation: str, error: Optional[BaseException] = None):
        self.operation = operation
        super().__init__(
            message=GENERIC_RETRY_MESSAGE,
            details={
                "operation": operation,
                "error": str(error) if error else None,
            },
        )


class CheckerFailure(CompanyOSError):
    """Raised when a single expiration checker cannot complete its run."""

    code = "checker_failure"

    def __init__(self, kind: str, error: BaseException):
        self.kind = kind
        self.error = error
        super().__init__(
            message=GENERIC_RETRY_MESSAGE,
            details={"kind": kind, "error": f"{type(error).__name__}: {error}"},
        )
