"""
Bearer token authentication.

User accounts and session issuance belong to an external identity provider;
this module only mints/verifies HS256 tokens for known users and exposes the
FastAPI dependencies the routes rely on.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional
import jwt
from fastapi import Header
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .config import get_settings
from .db import session_scope
from .errors import AuthenticationError, Conflict, NotFound, ValidationFailed
from .models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_user(name: str, email: str) -> User:
    name = (name or "").strip()
    email = (email or "").strip().lower()
    errors = {}
    if not name:
        errors["name"] = "Name is required"
    if "@" not in email:
        errors["email"] = "A valid email is required"
    if errors:
        raise ValidationFailed(errors)
    with session_scope() as s:
        if s.exec(select(User).where(User.email == email)).first():
            raise Conflict("Email already registered")
        user = User(name=name, email=email)
        s.add(user)
        try:
            s.flush()
        except IntegrityError:
            raise Conflict("Email already registered") from None
        s.refresh(user)
        return user


def get_user(user_id: int) -> User:
    with session_scope() as s:
        user = s.get(User, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user


def issue_token(user: User, expires_in: Optional[int] = None) -> str:
    settings = get_settings()
    now = datetime.now(UTC)
    payload = {
        "sub": str(user.id),
        "name": user.name,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in or settings.jwt_expire_seconds),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[int]:
    """User id carried by ``token``, or None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
        return int(payload["sub"])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        logger.debug("Rejected token: %s", e)
    return None


def _bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()
    return token.strip()


def _resolve_user(token: str) -> User:
    user_id = decode_token(token)
    if user_id is None:
        raise AuthenticationError()
    with session_scope() as s:
        user = s.get(User, user_id)
    if not user:
        raise AuthenticationError()
    return user


def get_current_user(authorization: Optional[str] = Header(None)) -> User:
    return _resolve_user(_bearer_token(authorization))


def get_authorization(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Raw Authorization header, left unverified until a route needs a user."""
    return authorization


def optional_user(authorization: Optional[str]) -> Optional[User]:
    """Like get_current_user, but an absent header means anonymous."""
    if not authorization:
        return None
    return _resolve_user(_bearer_token(authorization))
