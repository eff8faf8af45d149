"""Pydantic schemas for authentication API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    """Payload to register a new account."""

    email: str = Field(pattern=EMAIL_PATTERN)
    name: str = Field(min_length=1)
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    """Payload to open a session with existing credentials."""

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class User(BaseModel):
    """Public user payload."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    created_at: datetime
