"""Repository primitives for user entities."""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models.user import User
from app.db.validation import validate_record


def create_user(session: Session, *, email: str, name: str, password_hash: str) -> User:
    """Validate, create and return a user row."""
    user = User(email=email, name=name, password_hash=password_hash)
    validate_record(user)
    session.add(user)
    session.flush()
    session.refresh(user)
    return user


def get_user(session: Session, user_id: int) -> User | None:
    """Fetch a user by id."""
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    """Fetch a user by case-insensitive email."""
    stmt = select(User).where(func.lower(User.email) == email.lower())
    return session.scalars(stmt).first()
