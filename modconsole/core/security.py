"""JWT authentication, password hashing and the permission gate."""

import bcrypt
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, FrozenSet

from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from modconsole.core.config import settings
from modconsole.core.exceptions import ForbiddenError, unauthorized
from modconsole.core.middleware import request_context

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token.

    ``data`` must carry ``sub`` (user id) and ``sid`` (session token). The
    session token keys sensitive-mode grants to this login.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise unauthorized("Invalid or expired token")


@dataclass(frozen=True)
class Principal:
    """The caller of an HTTP request, as carried by its bearer token."""
    user_id: str
    session_token: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Principal:
    """Extract user id and session token from the JWT Bearer token."""
    if credentials is None:
        raise unauthorized()
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    session_token = payload.get("sid")
    if not user_id or not session_token:
        raise unauthorized("Invalid token payload")
    context = request_context(request)
    return Principal(
        user_id=str(user_id),
        session_token=str(session_token),
        ip=context.ip,
        user_agent=context.user_agent,
        request_id=context.request_id,
    )


async def get_community_id(x_community_id: str = Header(...)) -> str:
    """The community the request acts in."""
    return x_community_id


@dataclass(frozen=True)
class Actor:
    """A user resolved against one community: who they are and what they may do.

    Loaded fresh for every operation, never cached across calls.
    """
    id: str
    community_id: str
    disabled_at: Optional[datetime] = None
    role_name: Optional[str] = None
    role_priority: int = 0
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_disabled(self) -> bool:
        return self.disabled_at is not None


def authorize(actor: Actor, permission: str) -> None:
    """Raise ForbiddenError unless ``actor`` is enabled and holds ``permission``."""
    if actor.is_disabled:
        raise ForbiddenError("Account disabled.")
    if permission not in actor.permissions:
        raise ForbiddenError("Insufficient permissions.")
