"""
Business outcome taxonomy for the authorization core.

Expected outcomes (duplicates, invalid transitions, denials) travel as typed
ServiceResult values between components. Only routes turn them into
HTTPException, the same way the quota guard turns an exceeded quota into a
structured 429.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar
from fastapi import HTTPException, status


class ErrorCode(str, enum.Enum):
    DUPLICATE_AUTHORIZATION = "duplicate_authorization"
    INVALID_TRANSITION = "invalid_transition"
    NO_ACTIVE_AUTHORIZATION = "no_active_authorization"
    QUOTA_EXCEEDED = "quota_exceeded"
    CATEGORY_NOT_AUTHORIZED = "category_not_authorized"
    LOCATION_NOT_AUTHORIZED = "location_not_authorized"
    PERMISSION_DENIED = "permission_denied"
    VERIFICATION_INCONCLUSIVE = "verification_inconclusive"
    MALFORMED_REQUEST = "malformed_request"
    NOT_FOUND = "not_found"


ERROR_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.DUPLICATE_AUTHORIZATION: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.NO_ACTIVE_AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorCode.QUOTA_EXCEEDED: status.HTTP_403_FORBIDDEN,
    ErrorCode.CATEGORY_NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.LOCATION_NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.VERIFICATION_INCONCLUSIVE: status.HTTP_202_ACCEPTED,
    ErrorCode.MALFORMED_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class MalformedRequestError(ValueError):
    """Raised for programming errors such as a missing record or unknown action."""


@dataclass
class AuthorizationError:
    """Structured, user-presentable failure."""
    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.code.value, "message": self.message, **self.details}


T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Either a value or an AuthorizationError."""
    value: Optional[T] = None
    error: Optional[AuthorizationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> Optional[ErrorCode]:
        return self.error.code if self.error else None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, code: ErrorCode, message: str, **details) -> "ServiceResult[T]":
        return cls(error=AuthorizationError(code=code, message=message, details=details))


def raise_for_result(result: ServiceResult):
    """
    Return the result value or raise HTTPException with a structured detail.

    Raises:
        HTTPException: status derived from the error code
    """
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(result.error.code, status.HTTP_400_BAD_REQUEST),
        detail=result.error.to_detail(),
    )
