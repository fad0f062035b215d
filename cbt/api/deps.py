"""FastAPI dependencies shared across routes."""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from cbt.config import settings
from cbt.core.identity import StudentSession
from cbt.core.security import decode_access_token
from cbt.db.models import User
from cbt.db.session import get_db
from cbt.services.registry import AttemptRegistry
from cbt.services.store import ExamRepository

# Tokens come from the identity service; the URL is only advertised in the docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.IDENTITY_TOKEN_URL)

_registry = AttemptRegistry()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Decode JWT and return the authenticated user, or 401."""
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_student_session(
    current_user: User = Depends(get_current_user),
) -> StudentSession:
    """The explicit session object handed to the attempt controller."""
    return StudentSession(student_id=current_user.id)


def get_store(db: Session = Depends(get_db)) -> ExamRepository:
    return ExamRepository(db)


def get_registry() -> AttemptRegistry:
    return _registry
