"""Service helpers for authentication API operations."""

from __future__ import annotations

import hashlib
import hmac
import secrets

from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ApiError
from app.core.errors import ErrorKind
from app.db.models.user import User
from app.db.repository.users import create_user
from app.db.repository.users import get_user
from app.db.repository.users import get_user_by_email
from app.schemas.auth import LoginRequest
from app.schemas.auth import RegisterRequest

HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 260_000
SESSION_USER_KEY = "user_id"


def hash_password(password: str, *, iterations: int = HASH_ITERATIONS) -> str:
    """Return a salted PBKDF2 hash in ``algorithm$iterations$salt$digest`` form."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if algorithm != HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _email_taken() -> ApiError:
    return ApiError.create(status.HTTP_409_CONFLICT, "Email is already registered", ErrorKind.CONFLICT)


def register_user_service(session: Session, payload: RegisterRequest) -> User:
    """Create and persist a new account."""
    email = payload.email.strip().lower()
    if get_user_by_email(session, email) is not None:
        raise _email_taken()

    try:
        user = create_user(
            session,
            email=email,
            name=payload.name.strip(),
            password_hash=hash_password(payload.password),
        )
        session.commit()
        return user
    except IntegrityError as exc:
        session.rollback()
        raise _email_taken() from exc


def authenticate_user_service(session: Session, payload: LoginRequest) -> User:
    """Return the account matching the credentials or raise unauthorized."""
    user = get_user_by_email(session, payload.email.strip())
    if user is None or not verify_password(payload.password, user.password_hash):
        raise ApiError.unauthorized("Invalid email or password")
    return user


def get_session_user_service(session: Session, user_id: object) -> User:
    """Resolve the user stored in the session cookie."""
    if not isinstance(user_id, int):
        raise ApiError.unauthorized("Not authenticated")
    user = get_user(session, user_id)
    if user is None:
        raise ApiError.unauthorized("Not authenticated")
    return user
