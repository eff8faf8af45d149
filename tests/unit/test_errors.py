"""Unit tests for classification of arbitrary errors into ApiError."""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests
from pydantic import BaseModel
from pydantic import ValidationError
from pydantic import field_validator
from pydantic_core import PydanticCustomError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import ApiError
from app.core.errors import ErrorKind
from app.core.errors import classify
from app.db.validation import RecordValidationError
from app.db.validation import ValidatorError
from app.schemas.error import FieldError


class _Signup(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if "@" not in value:
            raise PydanticCustomError("invalid_string", "Invalid email")
        return value


class _Line(BaseModel):
    qty: int


class _Order(BaseModel):
    lines: list[_Line]


def _validation_error(model: type[BaseModel], data: dict[str, Any]) -> ValidationError:
    with pytest.raises(ValidationError) as excinfo:
        model.model_validate(data)
    return excinfo.value


def _response(status_code: int, body: Any) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if isinstance(body, bytes):
        response._content = body
    else:
        response._content = json.dumps(body).encode()
        response.headers["Content-Type"] = "application/json"
    return response


def _prepared_request() -> requests.PreparedRequest:
    return requests.Request("GET", "https://upstream.example.com/users/1").prepare()


def test_pydantic_validation_error_maps_issues_to_field_errors() -> None:
    error = classify(_validation_error(_Signup, {"email": "nope"}))

    assert error.status_code == 400
    assert error.kind is ErrorKind.VALIDATION_ERROR
    assert error.message == "Validation failed"
    assert error.errors == [FieldError(field="email", message="Invalid email", code="invalid_string")]


def test_pydantic_nested_paths_are_dot_joined() -> None:
    error = classify(_validation_error(_Order, {"lines": [{"qty": 1}, {"qty": "many"}]}))

    assert [item.field for item in error.errors] == ["lines.1.qty"]
    assert error.errors[0].code == "int_parsing"


def test_record_validation_error_maps_each_failing_column() -> None:
    exc = RecordValidationError({"name": ValidatorError(message="Required", kind="required")})

    error = classify(exc)

    assert error.status_code == 400
    assert error.kind is ErrorKind.VALIDATION_ERROR
    assert error.errors == [FieldError(field="name", message="Required", code="required")]
    assert error.cause is exc


def test_upstream_error_response_maps_to_api_error() -> None:
    exc = requests.HTTPError(response=_response(404, {"message": "User not found"}))

    error = classify(exc)

    assert error.status_code == 404
    assert error.kind is ErrorKind.API_ERROR
    assert error.message == "User not found"
    assert error.errors == []


def test_upstream_error_without_message_uses_default() -> None:
    error = classify(requests.HTTPError(response=_response(503, b"<html>down</html>")))

    assert error.status_code == 503
    assert error.kind is ErrorKind.API_ERROR
    assert error.message == "Request failed"


def test_upstream_bad_request_with_field_map_maps_to_validation_error() -> None:
    body = {
        "message": "Invalid payload",
        "errors": {
            "email": {"message": "Email taken", "code": "unique"},
            "name": {},
        },
    }

    error = classify(requests.HTTPError(response=_response(400, body)))

    assert error.status_code == 400
    assert error.kind is ErrorKind.VALIDATION_ERROR
    assert error.message == "Invalid payload"
    assert error.errors == [
        FieldError(field="email", message="Email taken", code="unique"),
        FieldError(field="name", message="Validation error", code="VALIDATION_ERROR"),
    ]


def test_upstream_bad_request_without_field_map_stays_api_error() -> None:
    error = classify(requests.HTTPError(response=_response(400, {"message": "Bad filter"})))

    assert error.kind is ErrorKind.API_ERROR
    assert error.message == "Bad filter"


def test_upstream_bad_request_with_empty_field_map_is_validation_error() -> None:
    error = classify(requests.HTTPError(response=_response(400, {"errors": {}})))

    assert error.status_code == 400
    assert error.kind is ErrorKind.VALIDATION_ERROR
    assert error.message == "Validation failed"
    assert error.errors == []


def test_request_sent_without_response_maps_to_network_error() -> None:
    exc = requests.ConnectionError("connection reset", request=_prepared_request())

    error = classify(exc)

    assert error.status_code == 0
    assert error.kind is ErrorKind.NETWORK_ERROR
    assert error.message == "No response received from server"
    assert error.cause is exc


def test_request_never_dispatched_maps_to_internal_error() -> None:
    error = classify(requests.exceptions.MissingSchema("Invalid URL 'users/1'"))

    assert error.status_code == 500
    assert error.kind is ErrorKind.INTERNAL_ERROR
    assert error.message == "Request setup failed"


def test_canonical_error_passes_through_unchanged() -> None:
    original = ApiError.not_found("Session not found")

    assert classify(original) is original


def test_plain_exception_maps_to_internal_error_with_cause() -> None:
    exc = OSError("disk full")

    error = classify(exc)

    assert error.status_code == 500
    assert error.kind is ErrorKind.INTERNAL_ERROR
    assert error.message == "disk full"
    assert error.cause is exc


def test_exception_without_message_uses_class_name() -> None:
    assert classify(KeyError()).message == "KeyError"


@pytest.mark.parametrize("value", ["boom", 42, None, {"error": True}, KeyboardInterrupt()])
def test_non_exception_values_map_to_unknown_error(value: object) -> None:
    error = classify(value)

    assert error.status_code == 500
    assert error.kind is ErrorKind.UNKNOWN_ERROR
    assert error.message == "Unknown error occurred"
    assert error.cause is None


@pytest.mark.parametrize(
    ("status_code", "kind"),
    [
        (400, ErrorKind.BAD_REQUEST),
        (401, ErrorKind.AUTHENTICATION_ERROR),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (405, ErrorKind.API_ERROR),
        (409, ErrorKind.CONFLICT),
        (422, ErrorKind.UNPROCESSABLE_ENTITY),
        (503, ErrorKind.INTERNAL_SERVER_ERROR),
    ],
)
def test_framework_http_exceptions_keep_status(status_code: int, kind: ErrorKind) -> None:
    error = classify(StarletteHTTPException(status_code=status_code))

    assert error.status_code == status_code
    assert error.kind is kind
    assert error.message


def test_classification_is_total_and_idempotent() -> None:
    values: list[object] = [
        _validation_error(_Signup, {"email": "x"}),
        RecordValidationError({"email": ValidatorError(message="Required", kind="required")}),
        requests.HTTPError(response=_response(502, {})),
        requests.Timeout(request=_prepared_request()),
        requests.RequestException(),
        ApiError.forbidden(),
        StarletteHTTPException(status_code=404),
        ValueError("bad"),
        object(),
        None,
    ]

    for value in values:
        error = classify(value)
        assert isinstance(error, ApiError)
        assert 0 <= error.status_code <= 599
        assert error.kind in set(ErrorKind)
        assert classify(error) is error
        if error.errors:
            assert error.kind is ErrorKind.VALIDATION_ERROR


@pytest.mark.parametrize(
    ("factory", "status_code", "kind", "message"),
    [
        (ApiError.bad_request, 400, ErrorKind.BAD_REQUEST, "BAD REQUEST"),
        (ApiError.unauthorized, 401, ErrorKind.AUTHENTICATION_ERROR, "AUTHENTICATION ERROR"),
        (ApiError.forbidden, 403, ErrorKind.FORBIDDEN, "FORBIDDEN"),
        (ApiError.not_found, 404, ErrorKind.NOT_FOUND, "NOT FOUND"),
        (ApiError.internal, 500, ErrorKind.INTERNAL_ERROR, "INTERNAL ERROR"),
        (ApiError.unknown, 500, ErrorKind.UNKNOWN_ERROR, "UNKNOWN ERROR"),
        (ApiError.network_error, 0, ErrorKind.NETWORK_ERROR, "NETWORK ERROR"),
        (ApiError.api_error, 400, ErrorKind.API_ERROR, "API ERROR"),
        (ApiError.verification_required, 403, ErrorKind.VERIFICATION_ERROR, "VERIFICATION REQUIRED"),
        (ApiError.validation_error, 422, ErrorKind.VALIDATION_ERROR, "VALIDATION ERROR"),
    ],
)
def test_shorthands_use_fixed_status_and_kind(factory, status_code: int, kind: ErrorKind, message: str) -> None:
    error = factory()

    assert error.status_code == status_code
    assert error.kind is kind
    assert error.message == message
    assert error.errors == []
    assert factory("Custom message").message == "Custom message"


def test_validation_shorthand_accepts_field_errors() -> None:
    details = [FieldError(field="password", message="Too short", code="min_length")]

    error = ApiError.validation_error("Invalid signup", details)

    assert error.message == "Invalid signup"
    assert error.errors == details


def test_field_errors_are_rejected_for_other_kinds() -> None:
    with pytest.raises(ValueError):
        ApiError.bad_request(errors=[FieldError(field="email", message="Invalid")])


def test_invalid_status_code_is_rejected() -> None:
    with pytest.raises(ValueError):
        ApiError.create(700, "Nope", ErrorKind.API_ERROR)


def _raise_disk_full() -> None:
    raise OSError("disk full")


def test_snapshot_is_inherited_from_cause() -> None:
    try:
        _raise_disk_full()
    except OSError as exc:
        error = classify(exc)

    assert error.diagnostic_snapshot is not None
    assert "_raise_disk_full" in error.diagnostic_snapshot
    assert "OSError: disk full" in error.diagnostic_snapshot


def test_snapshot_is_captured_at_construction_without_cause() -> None:
    error = ApiError.not_found("Session not found")

    assert error.diagnostic_snapshot is not None
    assert "test_snapshot_is_captured_at_construction_without_cause" in error.diagnostic_snapshot
    assert error.diagnostic_snapshot.endswith("ApiError: Session not found\n")
