"""
Failure classification for the collection service.

Every user-visible failure is one of a small set of known kinds. Services
raise `KnownError` subclasses; the collection store converts them into
typed result objects and the API layer converts them into `ApiError`
bodies with a matching HTTP status.

Taxonomy:
- AuthenticationRequired: no active session
- NotFound: item, group, or share absent
- ValidationError: blank/duplicate name, malformed import, bad share options
- BackendError: persistence layer failure
- CacheMiss: internal only, always triggers a fallback path
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    AUTHENTICATION_REQUIRED = "authentication_required"
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    BACKEND_ERROR = "backend_error"

    # Share access failures
    SHARE_EXPIRED = "share_expired"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"


# Fixed, user-facing messages
AUTH_REQUIRED_MESSAGE = "Authentication required"
GROUP_EXISTS_MESSAGE = "A collection group with this name already exists"
GROUP_NOT_FOUND_MESSAGE = "Collection group not found"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )


class ApiError(BaseModel):
    """Error body returned by every endpoint on failure."""

    error: FailureDetail


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(kind=self.kind, message=self.message, detail=self.detail)


class AuthenticationRequiredError(KnownError):
    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.AUTHENTICATION_REQUIRED,
            message=AUTH_REQUIRED_MESSAGE,
            status_code=401,
        )


class NotFoundError(KnownError):
    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=message,
            detail=detail,
            status_code=404,
        )


class ValidationError(KnownError):
    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(
            kind=FailureKind.VALIDATION_FAILED,
            message=message,
            detail=detail,
            status_code=400,
        )


class BackendError(KnownError):
    """Raised when the persistence layer fails."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            kind=FailureKind.BACKEND_ERROR,
            message="The collection backend is unavailable. Please try again.",
            detail=detail,
            status_code=503,
        )


class ShareExpiredError(KnownError):
    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__(
            kind=FailureKind.SHARE_EXPIRED,
            message="Share has expired",
            status_code=410,
        )


class PasswordRequiredError(KnownError):
    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__(
            kind=FailureKind.PASSWORD_REQUIRED,
            message="This share is password protected",
            status_code=401,
        )


class InvalidPasswordError(KnownError):
    def __init__(self, share_id: str) -> None:
        self.share_id = share_id
        super().__init__(
            kind=FailureKind.INVALID_PASSWORD,
            message="Incorrect password",
            status_code=403,
        )


class CacheMiss(Exception):
    """
    Internal signal that the read cache cannot answer a lookup.

    Never surfaced to callers; always triggers a fallback path.
    """


# HTTP status for each failure kind, used when a result object (not an
# exception) carries the failure.
STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.AUTHENTICATION_REQUIRED: 401,
    FailureKind.NOT_FOUND: 404,
    FailureKind.VALIDATION_FAILED: 400,
    FailureKind.BACKEND_ERROR: 503,
    FailureKind.SHARE_EXPIRED: 410,
    FailureKind.PASSWORD_REQUIRED: 401,
    FailureKind.INVALID_PASSWORD: 403,
}
