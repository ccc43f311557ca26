"""Domain errors — one closed, tagged error type.

Every failure that crosses a module boundary is a `DomainError` carrying:

    kind         ErrorKind — the closed category (validation, not_found, ...)
    code         ErrorCode — stable machine-readable code
    status_code  HTTP-equivalent status, derived from kind
    details      read-only mapping of structured details, or None
    context      ErrorContext — request identifiers, or None
    timestamp    UTC construction time

Errors are built with the free functions below (one per kind, plus named
helpers for recurring cases) rather than subclasses. Attributes are read-only
once constructed; `with_context` returns a new error.

The boundary layer uses `to_http_response` to emit

    {"success": false, "error": {"code", "message", "details"?, "timestamp"}}
"""

from __future__ import annotations

import traceback
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    BUSINESS_RULE = "business_rule"
    EXTERNAL_SERVICE = "external_service"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    # validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    # not found
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    STORY_NOT_FOUND = "STORY_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CHOICE_NOT_FOUND = "CHOICE_NOT_FOUND"
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    # auth
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    ACCESS_DENIED = "ACCESS_DENIED"
    # conflict
    CONFLICT = "CONFLICT"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    CHOICE_ALREADY_SELECTED = "CHOICE_ALREADY_SELECTED"
    # business rules
    STORY_ALREADY_COMPLETED = "STORY_ALREADY_COMPLETED"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INVALID_STORY_STATUS = "INVALID_STORY_STATUS"
    INVALID_CHOICE_SELECTION = "INVALID_CHOICE_SELECTION"
    STORY_GENERATION_FAILED = "STORY_GENERATION_FAILED"
    # external
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    AI_PROVIDER_ERROR = "AI_PROVIDER_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    # internal
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


KIND_BY_CODE: Mapping[ErrorCode, ErrorKind] = MappingProxyType({
    **{c: ErrorKind.VALIDATION for c in (
        ErrorCode.VALIDATION_ERROR, ErrorCode.INVALID_INPUT, ErrorCode.MISSING_REQUIRED_FIELD)},
    **{c: ErrorKind.NOT_FOUND for c in (
        ErrorCode.RESOURCE_NOT_FOUND, ErrorCode.STORY_NOT_FOUND, ErrorCode.USER_NOT_FOUND,
        ErrorCode.CHOICE_NOT_FOUND, ErrorCode.CONTENT_NOT_FOUND)},
    **{c: ErrorKind.UNAUTHORIZED for c in (
        ErrorCode.UNAUTHORIZED, ErrorCode.INVALID_TOKEN, ErrorCode.TOKEN_EXPIRED)},
    **{c: ErrorKind.FORBIDDEN for c in (ErrorCode.FORBIDDEN, ErrorCode.ACCESS_DENIED)},
    **{c: ErrorKind.CONFLICT for c in (
        ErrorCode.CONFLICT, ErrorCode.EMAIL_ALREADY_EXISTS, ErrorCode.CHOICE_ALREADY_SELECTED)},
    **{c: ErrorKind.BUSINESS_RULE for c in (
        ErrorCode.STORY_ALREADY_COMPLETED, ErrorCode.BUSINESS_RULE_VIOLATION,
        ErrorCode.INVALID_STORY_STATUS, ErrorCode.INVALID_CHOICE_SELECTION,
        ErrorCode.STORY_GENERATION_FAILED)},
    **{c: ErrorKind.EXTERNAL_SERVICE for c in (
        ErrorCode.EXTERNAL_SERVICE_ERROR, ErrorCode.AI_PROVIDER_ERROR, ErrorCode.DATABASE_ERROR)},
    **{c: ErrorKind.INTERNAL for c in (ErrorCode.INTERNAL_ERROR, ErrorCode.CONFIGURATION_ERROR)},
})

STATUS_BY_KIND: Mapping[ErrorKind, int] = MappingProxyType({
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BUSINESS_RULE: 422,
    ErrorKind.EXTERNAL_SERVICE: 502,
    ErrorKind.INTERNAL: 500,
})

# Kinds that are expected during normal operation and not worth an incident log.
_QUIET_KINDS = frozenset({ErrorKind.VALIDATION, ErrorKind.NOT_FOUND})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorContext:
    """Identifiers describing where an error happened."""

    user_id: str | None = None
    story_id: str | None = None
    choice_id: str | None = None
    content_id: str | None = None
    provider: str | None = None
    operation: str | None = None
    request_id: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        return data


def _merge_context(context: ErrorContext | None, **fields: Any) -> ErrorContext:
    return replace(context or ErrorContext(), **fields)


class DomainError(Exception):
    """A classified failure. See the module docstring for the attribute set."""

    def __init__(
        self,
        kind: ErrorKind,
        code: ErrorCode,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
        context: ErrorContext | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        super().__init__(message)
        self._kind = ErrorKind(kind)
        self._code = ErrorCode(code)
        if KIND_BY_CODE[self._code] is not self._kind:
            raise ValueError(f"code {self._code.value} does not belong to kind {self._kind.value}")
        self._message = message
        self._details = MappingProxyType(dict(details)) if details else None
        self._context = context
        self._timestamp = timestamp or _utcnow()

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def code(self) -> ErrorCode:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self._kind]

    @property
    def details(self) -> Mapping[str, Any] | None:
        return self._details

    @property
    def context(self) -> ErrorContext | None:
        return self._context

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def with_context(self, context: ErrorContext) -> DomainError:
        return DomainError(
            self._kind, self._code, self._message,
            details=self._details, context=context, timestamp=self._timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self._kind.value,
            "code": self._code.value,
            "message": self._message,
            "status_code": self.status_code,
            "details": dict(self._details) if self._details else None,
            "context": self._context.to_dict() if self._context else None,
            "timestamp": self._timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        return f"DomainError({self._kind.value}, {self._code.value}, {self._message!r})"


# ---------------------------------------------------------------------------
# Constructors — one per kind
# ---------------------------------------------------------------------------

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.VALIDATION, code, message, details=details, context=context)


def not_found_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.NOT_FOUND, code, message, details=details, context=context)


def unauthorized_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.UNAUTHORIZED,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.UNAUTHORIZED, code, message, details=details, context=context)


def forbidden_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.FORBIDDEN,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.FORBIDDEN, code, message, details=details, context=context)


def conflict_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.CONFLICT,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.CONFLICT, code, message, details=details, context=context)


def business_rule_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.BUSINESS_RULE, code, message, details=details, context=context)


def external_service_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.EXTERNAL_SERVICE, code, message, details=details, context=context)


def internal_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    return DomainError(ErrorKind.INTERNAL, code, message, details=details, context=context)


# ---------------------------------------------------------------------------
# Named helpers for recurring cases
# ---------------------------------------------------------------------------

def invalid_input(field: str, value: Any, reason: str, context: ErrorContext | None = None) -> DomainError:
    return validation_error(
        f"Invalid input for field: {field}",
        code=ErrorCode.INVALID_INPUT,
        details={"field": field, "value": value, "reason": reason},
        context=context,
    )


def missing_field(field: str, context: ErrorContext | None = None) -> DomainError:
    return validation_error(
        f"Missing required field: {field}",
        code=ErrorCode.MISSING_REQUIRED_FIELD,
        details={"field": field},
        context=context,
    )


def invalid_enum(
    field: str, value: Any, valid_values: list[str] | tuple[str, ...],
    context: ErrorContext | None = None,
) -> DomainError:
    return validation_error(
        f"Invalid value for {field}. Expected one of: {', '.join(valid_values)}",
        code=ErrorCode.INVALID_INPUT,
        details={"field": field, "value": value, "valid_values": list(valid_values)},
        context=context,
    )


def story_not_found(story_id: str, context: ErrorContext | None = None) -> DomainError:
    return not_found_error(
        f"Story not found: {story_id}",
        code=ErrorCode.STORY_NOT_FOUND,
        details={"story_id": story_id},
        context=_merge_context(context, story_id=story_id),
    )


def user_not_found(user_id: str, context: ErrorContext | None = None) -> DomainError:
    return not_found_error(
        f"User not found: {user_id}",
        code=ErrorCode.USER_NOT_FOUND,
        details={"user_id": user_id},
        context=_merge_context(context, user_id=user_id),
    )


def choice_not_found(choice_id: str, context: ErrorContext | None = None) -> DomainError:
    return not_found_error(
        f"Choice not found: {choice_id}",
        code=ErrorCode.CHOICE_NOT_FOUND,
        details={"choice_id": choice_id},
        context=_merge_context(context, choice_id=choice_id),
    )


def content_not_found(content_id: str, context: ErrorContext | None = None) -> DomainError:
    return not_found_error(
        f"Content not found: {content_id}",
        code=ErrorCode.CONTENT_NOT_FOUND,
        details={"content_id": content_id},
        context=_merge_context(context, content_id=content_id),
    )


def missing_token(context: ErrorContext | None = None) -> DomainError:
    return unauthorized_error(
        "Authentication token is required",
        details={"reason": "missing_token"}, context=context,
    )


def invalid_token(context: ErrorContext | None = None) -> DomainError:
    return unauthorized_error(
        "Invalid authentication token",
        code=ErrorCode.INVALID_TOKEN,
        details={"reason": "invalid_token"}, context=context,
    )


def expired_token(context: ErrorContext | None = None) -> DomainError:
    return unauthorized_error(
        "Authentication token has expired",
        code=ErrorCode.TOKEN_EXPIRED,
        details={"reason": "expired_token"}, context=context,
    )


def access_denied(resource: str, context: ErrorContext | None = None) -> DomainError:
    return forbidden_error(
        f"Access denied to resource: {resource}",
        code=ErrorCode.ACCESS_DENIED,
        details={"resource": resource}, context=context,
    )


def story_access_denied(story_id: str, user_id: str, context: ErrorContext | None = None) -> DomainError:
    return forbidden_error(
        "You do not have permission to access this story",
        code=ErrorCode.ACCESS_DENIED,
        details={"story_id": story_id, "user_id": user_id},
        context=_merge_context(context, story_id=story_id, user_id=user_id),
    )


def email_exists(email: str, context: ErrorContext | None = None) -> DomainError:
    return conflict_error(
        "A user with this email already exists",
        code=ErrorCode.EMAIL_ALREADY_EXISTS,
        details={"email": email}, context=context,
    )


def choice_already_selected(choice_id: str, context: ErrorContext | None = None) -> DomainError:
    return conflict_error(
        "This choice has already been selected",
        code=ErrorCode.CHOICE_ALREADY_SELECTED,
        details={"choice_id": choice_id},
        context=_merge_context(context, choice_id=choice_id),
    )


def invalid_story_status(
    current_status: str, required_status: str, context: ErrorContext | None = None,
) -> DomainError:
    return business_rule_error(
        f"Story must be in {required_status} status to perform this action. "
        f"Current status: {current_status}",
        code=ErrorCode.INVALID_STORY_STATUS,
        details={"current_status": current_status, "required_status": required_status},
        context=context,
    )


def story_already_completed(story_id: str, context: ErrorContext | None = None) -> DomainError:
    return business_rule_error(
        "Cannot modify a completed story",
        code=ErrorCode.STORY_ALREADY_COMPLETED,
        details={"story_id": story_id},
        context=_merge_context(context, story_id=story_id),
    )


def invalid_choice_selection(reason: str, context: ErrorContext | None = None) -> DomainError:
    return business_rule_error(
        f"Invalid choice selection: {reason}",
        code=ErrorCode.INVALID_CHOICE_SELECTION,
        details={"reason": reason}, context=context,
    )


def story_generation_failed(
    reason: str, provider: str | None = None, context: ErrorContext | None = None,
) -> DomainError:
    return business_rule_error(
        f"Story generation failed: {reason}",
        code=ErrorCode.STORY_GENERATION_FAILED,
        details={"reason": reason, "provider": provider},
        context=_merge_context(context, provider=provider),
    )


def ai_provider_error(provider: str, reason: str, context: ErrorContext | None = None) -> DomainError:
    return external_service_error(
        f"AI provider error ({provider}): {reason}",
        code=ErrorCode.AI_PROVIDER_ERROR,
        details={"provider": provider, "reason": reason},
        context=_merge_context(context, provider=provider),
    )


def database_error(operation: str, reason: str, context: ErrorContext | None = None) -> DomainError:
    return external_service_error(
        f"Database error during {operation}: {reason}",
        code=ErrorCode.DATABASE_ERROR,
        details={"operation": operation, "reason": reason},
        context=_merge_context(context, operation=operation),
    )


def timeout_error(service: str, timeout_ms: int, context: ErrorContext | None = None) -> DomainError:
    return external_service_error(
        f"Service timeout: {service} ({timeout_ms}ms)",
        details={"service": service, "timeout_ms": timeout_ms},
        context=context,
    )


def configuration_error(setting: str, context: ErrorContext | None = None) -> DomainError:
    return internal_error(
        f"Configuration error: {setting} is not properly configured",
        code=ErrorCode.CONFIGURATION_ERROR,
        details={"setting": setting}, context=context,
    )


def unexpected_error(
    operation: str, original: BaseException | None = None, context: ErrorContext | None = None,
) -> DomainError:
    stack = None
    if original is not None:
        stack = "".join(traceback.format_exception(type(original), original, original.__traceback__))
    return internal_error(
        f"Unexpected error during {operation}",
        details={
            "operation": operation,
            "original_error": str(original) if original is not None else None,
            "stack": stack,
        },
        context=_merge_context(context, operation=operation),
    )


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

def to_domain_error(error: BaseException | object, context: ErrorContext | None = None) -> DomainError:
    """Classify any failure. Domain errors pass through unchanged."""
    if isinstance(error, DomainError):
        return error
    if isinstance(error, BaseException):
        return unexpected_error("unknown_operation", error, context)
    return unexpected_error("unknown_operation", Exception(str(error)), context)


def is_operational(error: BaseException) -> bool:
    """Expected failures (anything but Internal) are operational."""
    return isinstance(error, DomainError) and error.kind is not ErrorKind.INTERNAL


def should_log(error: BaseException) -> bool:
    if isinstance(error, DomainError):
        return error.kind not in _QUIET_KINDS
    return True


def get_http_status_code(error: BaseException) -> int:
    if isinstance(error, DomainError):
        return error.status_code
    return 500


def to_http_response(error: BaseException) -> tuple[int, dict[str, Any]]:
    """Return (status_code, body) for the boundary error contract."""
    if isinstance(error, DomainError):
        body: dict[str, Any] = {
            "code": error.code.value,
            "message": error.message,
            "timestamp": error.timestamp.isoformat(),
        }
        if error.details:
            body["details"] = dict(error.details)
        return error.status_code, {"success": False, "error": body}

    return 500, {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": "Internal server error",
            "timestamp": _utcnow().isoformat(),
        },
    }


def create_context(
    *,
    method: str | None = None,
    path: str | None = None,
    user_id: str | None = None,
    story_id: str | None = None,
    choice_id: str | None = None,
    content_id: str | None = None,
    request_id: str | None = None,
) -> ErrorContext:
    """Build an ErrorContext from the pieces of an incoming request."""
    operation = f"{method} {path}" if method and path else None
    return ErrorContext(
        user_id=user_id,
        story_id=story_id,
        choice_id=choice_id,
        content_id=content_id,
        operation=operation,
        request_id=request_id,
        timestamp=_utcnow(),
    )


def error_for_code(
    code: ErrorCode,
    message: str,
    *,
    details: Mapping[str, Any] | None = None,
    context: ErrorContext | None = None,
) -> DomainError:
    """Build a DomainError whose kind is implied by `code`."""
    code = ErrorCode(code)
    return DomainError(KIND_BY_CODE[code], code, message, details=details, context=context)
