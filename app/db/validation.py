"""Column-level validation for ORM records before they are flushed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import String
from sqlalchemy import inspect


@dataclass(frozen=True)
class ValidatorError:
    """One failed column validator."""

    message: str
    kind: str
    value: Any = None


class RecordValidationError(Exception):
    """Raised when one or more columns of a record fail validation."""

    def __init__(self, errors: dict[str, ValidatorError], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.message = message
        self.errors = dict(errors)


def _has_default(column: Any) -> bool:
    return (
        column.default is not None
        or column.server_default is not None
        or (column.primary_key and column.autoincrement in (True, "auto"))
    )


def validate_record(instance: Any) -> None:
    """Check required and max-length constraints on every mapped column.

    All failures are collected so callers see every invalid field at once.
    """
    mapper = inspect(type(instance))
    errors: dict[str, ValidatorError] = {}

    for attr in mapper.column_attrs:
        column = attr.columns[0]
        key = attr.key
        value = getattr(instance, key, None)

        if value is None:
            if not column.nullable and not _has_default(column):
                errors[key] = ValidatorError(
                    message=f"Path `{key}` is required.",
                    kind="required",
                    value=value,
                )
            continue

        length = getattr(column.type, "length", None)
        if isinstance(column.type, String) and length and isinstance(value, str) and len(value) > length:
            errors[key] = ValidatorError(
                message=f"Path `{key}` is longer than the maximum allowed length ({length}).",
                kind="maxlength",
                value=value,
            )

    if errors:
        raise RecordValidationError(errors)
