"""Canonical API error type and classification of arbitrary exceptions."""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from enum import Enum
import traceback
from typing import Any

from fastapi import status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
import requests
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.db.validation import RecordValidationError
from app.schemas.error import FieldError

NO_RESPONSE_STATUS = 0
HTTP_413_CONTENT_TOO_LARGE = 413
HTTP_422_UNPROCESSABLE = 422
REQUEST_LOCATIONS = frozenset({"body", "query", "path", "header", "cookie"})


class ErrorKind(str, Enum):
    """Closed set of failure categories exposed to clients."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    API_ERROR = "API_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    UNPROCESSABLE_ENTITY = "UNPROCESSABLE_ENTITY"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    VERIFICATION_ERROR = "VERIFICATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def _label_message(label: str) -> str:
    return label.replace("_", " ")


def _snapshot_from_cause(cause: BaseException) -> str:
    return "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))


def _snapshot_from_stack(error: ApiError) -> str:
    # Drop the frames of ApiError construction itself.
    frames = [
        frame
        for frame in traceback.extract_stack()
        if frame.filename != __file__
    ]
    lines = ["Traceback (most recent call last):\n"]
    lines.extend(traceback.format_list(frames))
    lines.append(f"{type(error).__name__}: {error.message}\n")
    return "".join(lines)


class ApiError(Exception):
    """Normalized representation of any failure that reaches the API boundary."""

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        kind: ErrorKind,
        errors: Iterable[FieldError] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        if status_code != NO_RESPONSE_STATUS and not 100 <= status_code <= 599:
            raise ValueError(f"status_code must be an HTTP status, got {status_code}")
        kind = ErrorKind(kind)
        field_errors = list(errors) if errors else []
        if field_errors and kind is not ErrorKind.VALIDATION_ERROR:
            raise ValueError("field errors are only allowed on VALIDATION_ERROR")

        super().__init__(message)
        self.status_code = status_code
        self.kind = kind
        self.message = message
        self.errors = field_errors
        self.cause = cause
        self.diagnostic_snapshot = (
            _snapshot_from_cause(cause) if cause is not None else _snapshot_from_stack(self)
        )

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code}, kind={self.kind.value}, message={self.message!r})"

    @classmethod
    def create(
        cls,
        status_code: int,
        message: str,
        kind: ErrorKind,
        errors: Iterable[FieldError] | None = None,
        cause: BaseException | None = None,
    ) -> ApiError:
        """Generic factory used by every shorthand and classifier."""
        return cls(status_code=status_code, message=message, kind=kind, errors=errors, cause=cause)

    # Shorthands: fixed (status, kind) with a default message taken from the label.

    @classmethod
    def _shorthand(
        cls,
        status_code: int,
        kind: ErrorKind,
        message: str | None,
        errors: Iterable[FieldError] | None,
        label: str | None = None,
    ) -> ApiError:
        default = _label_message(label or kind.value)
        return cls.create(status_code, message or default, kind, errors)

    @classmethod
    def bad_request(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_400_BAD_REQUEST, ErrorKind.BAD_REQUEST, message, errors)

    @classmethod
    def unauthorized(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_401_UNAUTHORIZED, ErrorKind.AUTHENTICATION_ERROR, message, errors)

    @classmethod
    def forbidden(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_403_FORBIDDEN, ErrorKind.FORBIDDEN, message, errors)

    @classmethod
    def not_found(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_404_NOT_FOUND, ErrorKind.NOT_FOUND, message, errors)

    @classmethod
    def internal(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.INTERNAL_ERROR, message, errors)

    @classmethod
    def unknown(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.UNKNOWN_ERROR, message, errors)

    @classmethod
    def network_error(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(NO_RESPONSE_STATUS, ErrorKind.NETWORK_ERROR, message, errors)

    @classmethod
    def api_error(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(status.HTTP_400_BAD_REQUEST, ErrorKind.API_ERROR, message, errors)

    @classmethod
    def verification_required(
        cls,
        message: str | None = None,
        errors: Iterable[FieldError] | None = None,
    ) -> ApiError:
        # Label differs from the kind; clients see VERIFICATION_ERROR.
        return cls._shorthand(
            status.HTTP_403_FORBIDDEN,
            ErrorKind.VERIFICATION_ERROR,
            message,
            errors,
            label="VERIFICATION_REQUIRED",
        )

    @classmethod
    def validation_error(cls, message: str | None = None, errors: Iterable[FieldError] | None = None) -> ApiError:
        return cls._shorthand(HTTP_422_UNPROCESSABLE, ErrorKind.VALIDATION_ERROR, message, errors)

    # Classifiers for errors produced by collaborating libraries.

    @classmethod
    def from_validation_error(cls, exc: ValidationError | RequestValidationError) -> ApiError:
        """Map pydantic or FastAPI request validation issues to field errors."""
        strip_locations = isinstance(exc, RequestValidationError)
        errors = [
            FieldError(
                field=_format_location(issue.get("loc", ()), strip_locations=strip_locations),
                message=str(issue.get("msg", "Invalid value")),
                code=issue.get("type"),
            )
            for issue in exc.errors()
        ]
        return cls.create(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            ErrorKind.VALIDATION_ERROR,
            errors,
            exc,
        )

    @classmethod
    def from_record_validation_error(cls, exc: RecordValidationError) -> ApiError:
        """Map failed column validators to field errors."""
        errors = [
            FieldError(field=field, message=error.message, code=error.kind)
            for field, error in exc.errors.items()
        ]
        return cls.create(
            status.HTTP_400_BAD_REQUEST,
            "Validation failed",
            ErrorKind.VALIDATION_ERROR,
            errors,
            exc,
        )

    @classmethod
    def from_request_exception(cls, exc: requests.RequestException) -> ApiError:
        """Map an outbound ``requests`` failure by how far the call got."""
        response = exc.response
        if response is not None:
            status_code = _http_status(response.status_code)
            data = _response_body(response)
            raw_errors = data.get("errors")

            if status_code == status.HTTP_400_BAD_REQUEST and isinstance(raw_errors, Mapping):
                errors = [_remote_field_error(field, error) for field, error in raw_errors.items()]
                return cls.create(
                    status_code,
                    str(data.get("message") or "Validation failed"),
                    ErrorKind.VALIDATION_ERROR,
                    errors,
                    exc,
                )

            return cls.create(
                status_code,
                str(data.get("message") or "Request failed"),
                ErrorKind.API_ERROR,
                cause=exc,
            )

        if exc.request is not None:
            return cls.create(
                NO_RESPONSE_STATUS,
                "No response received from server",
                ErrorKind.NETWORK_ERROR,
                cause=exc,
            )

        return cls.create(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Request setup failed",
            ErrorKind.INTERNAL_ERROR,
            cause=exc,
        )

    @classmethod
    def from_http_exception(cls, exc: StarletteHTTPException) -> ApiError:
        """Map framework-raised HTTP exceptions (unknown route, bad method, ...)."""
        message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed"
        status_code = _http_status(exc.status_code)
        return cls.create(status_code, message, _http_error_kind(status_code), cause=exc)

    @classmethod
    def handle(cls, error: object) -> ApiError:
        """Classify any caught value into exactly one ApiError."""
        if isinstance(error, (ValidationError, RequestValidationError)):
            return cls.from_validation_error(error)
        if isinstance(error, RecordValidationError):
            return cls.from_record_validation_error(error)
        if isinstance(error, requests.RequestException):
            return cls.from_request_exception(error)
        if isinstance(error, ApiError):
            return error
        if isinstance(error, StarletteHTTPException):
            return cls.from_http_exception(error)
        if isinstance(error, Exception):
            message = str(error) or type(error).__name__
            return cls.create(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                message,
                ErrorKind.INTERNAL_ERROR,
                cause=error,
            )
        return cls.create(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unknown error occurred", ErrorKind.UNKNOWN_ERROR)


def classify(error: object) -> ApiError:
    """Module-level alias for :meth:`ApiError.handle`."""
    return ApiError.handle(error)


def _format_location(location: Sequence[Any] | Any, *, strip_locations: bool) -> str:
    if not isinstance(location, (tuple, list)):
        return str(location)

    parts = [str(part) for part in location]
    if strip_locations:
        filtered = [part for part in parts if part not in REQUEST_LOCATIONS]
        if filtered:
            return ".".join(filtered)
        return parts[0] if parts else "request"

    return ".".join(parts)


def _response_body(response: requests.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _remote_field_error(field: Any, error: Any) -> FieldError:
    details = error if isinstance(error, Mapping) else {}
    return FieldError(
        field=str(field),
        message=str(details.get("message") or "Validation error"),
        code=str(details.get("code") or "VALIDATION_ERROR"),
    )


def _http_error_kind(status_code: int) -> ErrorKind:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return ErrorKind.BAD_REQUEST
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return ErrorKind.AUTHENTICATION_ERROR
    if status_code == status.HTTP_403_FORBIDDEN:
        return ErrorKind.FORBIDDEN
    if status_code == status.HTTP_404_NOT_FOUND:
        return ErrorKind.NOT_FOUND
    if status_code == status.HTTP_409_CONFLICT:
        return ErrorKind.CONFLICT
    if status_code == HTTP_413_CONTENT_TOO_LARGE:
        return ErrorKind.BAD_REQUEST
    if status_code == HTTP_422_UNPROCESSABLE:
        return ErrorKind.UNPROCESSABLE_ENTITY
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return ErrorKind.INTERNAL_SERVER_ERROR
    return ErrorKind.API_ERROR


def _http_status(status_code: int | None) -> int:
    if status_code is None or not 100 <= status_code <= 599:
        return status.HTTP_502_BAD_GATEWAY
    return status_code
