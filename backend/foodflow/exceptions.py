"""
FoodFlow Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with the right status code.
Who:   Raised by services, dependencies and middleware; caught by handlers.

Exception Hierarchy:
    FoodFlowError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── PermissionDeniedError    → 400 Bad Request (acting on someone else's row)
    ├── NotFoundError            → 404 Not Found
    ├── LLMServiceError          → 503 Service Unavailable (retry later)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    ├── DatabaseError            → 500 Internal Server Error
    │   └── PersistenceTimeoutError → 500, flagged retryable
    └── RateLimitExceededError   → 429 Too Many Requests

Not in the hierarchy on purpose:
    A duplicate like insert is an expected outcome of the insert
    (`InsertOutcome.ALREADY_EXISTS`), and a failed like notification is
    logged by the like service. Neither ever reaches a client.
"""

from typing import Any, Dict, Optional


class FoodFlowError(Exception):
    """
    Base exception for all FoodFlow application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only returned by handlers
                  that explicitly opt in)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(FoodFlowError):
    """
    Raised when client input fails validation.

    When:    Missing or malformed X-User-Id header, unsupported image upload,
             empty recognition text.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "X-User-Id header is required",
            "details": {"field": "X-User-Id"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class PermissionDeniedError(FoodFlowError):
    """
    Raised when the caller acts on a resource owned by another user.

    When:    Marking a notification read when the caller is not its receiver.
    HTTP:    400 Bad Request, with the message in the body.
    """

    def __init__(
        self,
        message: str = "You don't have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(FoodFlowError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown recipe id on a like endpoint, unknown notification id.
    HTTP:    404 Not Found

    SQLAlchemy returns None for missing rows; services convert that into
    this exception so routes stay free of status-code logic.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class LLMServiceError(FoodFlowError):
    """
    Raised when the vision model (Gemini) fails after all retries.

    HTTP:    503 Service Unavailable

    Response includes:
        - retry_after: Suggested seconds before client retries
    """

    def __init__(
        self,
        message: str = "Ingredient recognition service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(FoodFlowError):
    """
    Raised when the circuit breaker is in OPEN state.

    When:    After cb_failure_threshold consecutive Gemini failures.
    HTTP:    503 Service Unavailable

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery timeout)
        → After the timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Ingredient recognition is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(FoodFlowError):
    """
    Raised when database operations fail unexpectedly.

    When:    Connection lost mid-query, deadlock, unexpected constraint failure.
    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic. SQL text,
        constraint names and driver messages are logged server-side only.
    """

    retryable = False

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceTimeoutError(DatabaseError):
    """
    Raised when a persistence sequence exceeds `db_operation_timeout`.

    HTTP:    500 Internal Server Error, body flags `retryable: true`.

    The transaction is rolled back by the session dependency; nothing is
    retried server-side. The client may safely resend because a toggle that
    never committed left no trace.
    """

    retryable = True

    def __init__(
        self,
        timeout: float,
        operation: str = "database operation",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["timeout_seconds"] = timeout
        ctx["operation"] = operation
        super().__init__(
            message=f"The {operation} timed out. Please try again.",
            context=ctx,
        )
        self.timeout = timeout


class RateLimitExceededError(FoodFlowError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests

    Response includes:
        - retry_after: Seconds until the rate limit window resets
        - Retry-After header for HTTP-compliant clients
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
