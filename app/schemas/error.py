"""Error envelope schemas shared across API handlers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field


class FieldError(BaseModel):
    """Single field-level validation failure."""

    field: str
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Top-level API error response envelope."""

    success: Literal[False] = False
    message: str
    error_type: str = Field(serialization_alias="errorType")
    errors: list[FieldError] | None = None
    stack: str | None = None
    original_error: str | None = Field(default=None, serialization_alias="originalError")
