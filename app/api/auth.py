"""Authentication API routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Request
from fastapi import Response
from sqlalchemy.orm import Session

from app.db.base import get_db_session
from app.schemas.auth import LoginRequest
from app.schemas.auth import RegisterRequest
from app.schemas.auth import User
from app.services.auth import SESSION_USER_KEY
from app.services.auth import authenticate_user_service
from app.services.auth import get_session_user_service
from app.services.auth import register_user_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", response_model=User, status_code=201)
def register_endpoint(
    payload: RegisterRequest,
    request: Request,
    session: Session = Depends(get_db_session),
) -> User:
    """Register an account and open a session for it."""
    user = register_user_service(session, payload)
    request.session[SESSION_USER_KEY] = user.id
    return user


@router.post("/login", response_model=User)
def login_endpoint(
    payload: LoginRequest,
    request: Request,
    session: Session = Depends(get_db_session),
) -> User:
    """Open a session for valid credentials."""
    user = authenticate_user_service(session, payload)
    request.session[SESSION_USER_KEY] = user.id
    return user


@router.get("/me", response_model=User)
def me_endpoint(
    request: Request,
    session: Session = Depends(get_db_session),
) -> User:
    """Return the user bound to the current session."""
    return get_session_user_service(session, request.session.get(SESSION_USER_KEY))


@router.post("/logout", status_code=204)
def logout_endpoint(request: Request) -> Response:
    """Clear the session."""
    request.session.clear()
    return Response(status_code=204)
