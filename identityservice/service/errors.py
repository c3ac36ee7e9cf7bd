from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from identityservice.service.validation import Violation

SUCCESS_CODE = 1000


class ErrorCode(Enum):
    """Stable numeric error codes returned in the response envelope.

    Messages may carry ``{attr}`` placeholders that are filled from
    validation attributes; ``defaults`` supplies the values used when no
    attributes are available.
    """

    UNCATEGORIZED_EXCEPTION = (9999, "Uncategorized error", 400)
    INVALID_KEY = (1001, "Invalid key", 400)
    USER_EXISTED = (1002, "User already existed", 400)
    INVALID_USERNAME = (1003, "Username must be at least {min} characters", 400, (("min", 3),))
    INVALID_PASSWORD = (1004, "Password must be at least {min} characters", 400, (("min", 8),))
    USER_NOT_EXISTED = (1005, "User not existed", 404)
    UNAUTHENTICATED = (1006, "Unauthenticated", 401)
    INVALID_TOKEN = (1007, "Invalid token", 400)
    ACCESS_DENIED = (1008, "You do not have permission", 403)
    INVALID_DOB = (1009, "Your age must be at least {min}", 400, (("min", 16),))

    def __init__(
        self,
        code: int,
        template: str,
        status_code: int,
        defaults: tuple = (),
    ) -> None:
        self.code = code
        self.template = template
        self.status_code = status_code
        self.defaults = dict(defaults)

    @property
    def message(self) -> str:
        return self.render()

    def render(self, attributes: Optional[Mapping[str, Any]] = None) -> str:
        values = {**self.defaults, **(attributes or {})}
        message = self.template
        for name, value in values.items():
            message = message.replace("{" + name + "}", str(value))
        return message

    @classmethod
    def from_key(cls, key: Optional[str]) -> "ErrorCode":
        """Look an error kind up by name, falling back to INVALID_KEY."""
        if not key:
            return cls.INVALID_KEY
        try:
            return cls[key]
        except KeyError:
            return cls.INVALID_KEY


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass pins a default ``ErrorCode``; the envelope code, message and
    HTTP status are all derived from it unless overridden per instance.
    """

    error_code: ErrorCode = ErrorCode.UNCATEGORIZED_EXCEPTION

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error_code: Optional[ErrorCode] = None,
        detail: Optional[dict] = None,
    ) -> None:
        if error_code is not None:
            self.error_code = error_code
        self.message = message or self.error_code.message
        super().__init__(self.message)
        self.detail = detail or {}

    @property
    def status_code(self) -> int:
        return self.error_code.status_code

    @property
    def code(self) -> int:
        return self.error_code.code


class ValidationError(ServiceError):
    """Request validation failed; carries every violation found."""

    error_code = ErrorCode.INVALID_KEY

    def __init__(
        self,
        violations: list["Violation"],
        message: Optional[str] = None,
        *,
        error_code: Optional[ErrorCode] = None,
    ) -> None:
        self.violations = list(violations)
        super().__init__(
            message,
            error_code=error_code,
            detail={"fields": [v.field for v in self.violations]},
        )


class InvalidTokenError(ServiceError):
    """Token is structurally broken or its signature does not match."""

    error_code = ErrorCode.INVALID_TOKEN


class AuthenticationError(ServiceError):
    error_code = ErrorCode.UNAUTHENTICATED


class AccessDeniedError(ServiceError):
    error_code = ErrorCode.ACCESS_DENIED


class NotFoundError(ServiceError):
    error_code = ErrorCode.USER_NOT_EXISTED


class ConflictError(ServiceError):
    error_code = ErrorCode.USER_EXISTED


__all__ = [
    "SUCCESS_CODE",
    "ErrorCode",
    "ServiceError",
    "ValidationError",
    "InvalidTokenError",
    "AuthenticationError",
    "AccessDeniedError",
    "NotFoundError",
    "ConflictError",
]
