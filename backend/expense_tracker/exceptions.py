"""
Expense Tracker Backend — Custom Exception Hierarchy
=====================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return the uniform `{success: false, message, errors?}` body with the
       matching HTTP status code.
Who:   Raised by services, the authentication gate and middleware.

Exception Hierarchy:
    ExpenseTrackerError (base)
    ├── ValidationError          → 400 Bad Request (lists every failing field)
    ├── InvalidArgumentError     → 400 Bad Request (e.g. nothing to update)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found (absent OR not owned)
    ├── ConflictError            → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DependencyError          → 500 Internal Server Error (image host)
    ├── DatabaseError            → 500 Internal Server Error
    └── TokenError               → never rendered directly
        ├── MalformedTokenError
        ├── ExpiredTokenError
        └── InvalidSignatureError

    TokenError subclasses are raised by the token service and translated to
    AuthenticationError by the authentication gate.
"""

from typing import Any, Dict, Iterable, List, Optional


class ExpenseTrackerError(Exception):
    """
    Base exception for all Expense Tracker application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ExpenseTrackerError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request
    errors:  One `{"field", "message"}` entry per violated field. Validation
             collects all failures before raising, never just the first one.

    Example response:
        {
            "success": false,
            "message": "Validation failed",
            "errors": [
                {"field": "amount", "message": "Amount must be a positive number with max 2 decimal places"},
                {"field": "date", "message": "Date cannot be in the future"}
            ]
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, str]]] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        self.errors: List[Dict[str, str]] = list(errors or [])
        if field and not self.errors:
            self.errors.append({"field": field, "message": message})
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidArgumentError(ExpenseTrackerError):
    """
    Raised when a structurally valid request cannot be applied.

    When:  An update supplies no field at all.
    HTTP:  400 Bad Request
    """

    def __init__(
        self,
        message: str = "No fields to update",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(ExpenseTrackerError):
    """
    Raised when a request cannot be tied to a live user.

    When:    Missing/malformed bearer credential, invalid signature, expired
             token, token for a user that no longer exists, or bad login.
    HTTP:    401 Unauthorized

    `reason` is a stable machine-readable code used in logs:
        no_credential, bad_format, malformed, invalid_signature, expired,
        user_missing, bad_credentials
    """

    def __init__(
        self,
        message: str = "Authentication failed.",
        reason: str = "unauthenticated",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason


class NotFoundError(ExpenseTrackerError):
    """
    Raised when a requested resource does not exist for the caller.

    HTTP:    404 Not Found

    Ownership scoping:
        A record that exists but belongs to another user raises exactly the
        same error as a record that does not exist. The message never
        includes the requested id.
    """

    def __init__(
        self,
        resource: str = "Resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        super().__init__(message=f"{resource} not found", context=ctx)
        self.resource = resource


class ConflictError(ExpenseTrackerError):
    """
    Raised when a write would violate a uniqueness rule.

    When:  Registering an email that is already registered.
    HTTP:  409 Conflict
    """

    def __init__(
        self,
        message: str = "Duplicate entry. This record already exists.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DependencyError(ExpenseTrackerError):
    """
    Raised when the external image host fails after all retries.

    HTTP:    500 Internal Server Error

    Companion-asset failures never undo committed row writes; services decide
    whether a DependencyError is surfaced (upload before a write) or logged
    and swallowed (cleanup after a write).
    """

    def __init__(
        self,
        message: str = "Image storage service is unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(ExpenseTrackerError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic.
        Detailed error info is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(ExpenseTrackerError):
    """
    Raised when a client exceeds the per-IP authentication rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Too many requests from this IP, please try again later."
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


# ══════════════════════════════════════════════════════════════════════════
# Token verification failures
# ══════════════════════════════════════════════════════════════════════════


class TokenError(ExpenseTrackerError):
    """Base class for session token verification failures."""


class MalformedTokenError(TokenError):
    """The token cannot be decoded or lacks a usable subject."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Malformed token", context=context)


class ExpiredTokenError(TokenError):
    """The token's signature is valid but its expiry has passed."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Token expired", context=context)


class InvalidSignatureError(TokenError):
    """The token decodes but was not signed with our secret."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Invalid token signature", context=context)


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

# Location prefixes FastAPI/pydantic put in front of the field name
_LOCATION_PREFIXES = {"body", "query", "path", "header", "form"}


def field_errors_from_pydantic(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Convert pydantic error dicts into `{"field", "message"}` entries.

    ("body", "email") → "email"; ("query", "limit") → "limit";
    model-level errors (empty location) are reported against "body".
    """
    result: List[Dict[str, str]] = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        result.append({
            "field": ".".join(loc) or "body",
            "message": str(error.get("msg", "Invalid value")),
        })
    return result
