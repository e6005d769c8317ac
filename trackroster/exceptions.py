"""Service errors. Raised by services, rendered as {"error": ..., "code": ...} by main.py."""
from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "validation_error"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    ALREADY_CONFIRMED = "already_confirmed"
    SLUG_TAKEN = "slug_taken"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    EXPIRED = "expired"
    CODE_MISMATCH = "code_mismatch"
    UPSTREAM_ERROR = "upstream_error"
    STORAGE_ERROR = "storage_error"
    INTERNAL_ERROR = "internal_error"


class ServiceError(Exception):
    status_code: int = 400
    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.error_code.value, **self.details}


class ValidationError(ServiceError):
    status_code = 400
    error_code = ErrorCode.VALIDATION_ERROR


class Unauthorized(ServiceError):
    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED


class Forbidden(Unauthorized):
    """Authenticated, but without the role the operation requires."""
    status_code = 403
    error_code = ErrorCode.FORBIDDEN


class Conflict(ServiceError):
    # 400 keeps the public wire contract; clients branch on "code"
    status_code = 400
    error_code = ErrorCode.CONFLICT


class AlreadyConfirmed(Conflict):
    error_code = ErrorCode.ALREADY_CONFIRMED


class SlugTaken(Conflict):
    error_code = ErrorCode.SLUG_TAKEN


class NotFound(ServiceError):
    status_code = 400
    error_code = ErrorCode.NOT_FOUND


class RateLimited(ServiceError):
    status_code = 429
    error_code = ErrorCode.RATE_LIMITED


class TooManyAttempts(RateLimited):
    pass


class Expired(ServiceError):
    status_code = 400
    error_code = ErrorCode.EXPIRED


class CodeMismatch(ServiceError):
    status_code = 400
    error_code = ErrorCode.CODE_MISMATCH

    def __init__(self, remaining: int):
        super().__init__(
            f"Invalid code. {remaining} attempts remaining.",
            details={"remaining": remaining},
        )
        self.remaining = remaining


class UpstreamError(ServiceError):
    status_code = 500
    error_code = ErrorCode.UPSTREAM_ERROR


class UpstreamIdentityError(UpstreamError):
    pass


class UpstreamPaymentError(UpstreamError):
    pass


class StorageError(ServiceError):
    status_code = 500
    error_code = ErrorCode.STORAGE_ERROR
