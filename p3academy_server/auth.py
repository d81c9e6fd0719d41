# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication: password hashing, JWT session credentials and the request auth gate."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from p3academy_server.config import settings
from p3academy_server.errors import Unauthenticated
from p3academy_server.roles import Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    """Caller identity as recorded in the session credential at login."""

    id: int
    role: str
    email: str | None = None


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain, hashed)


def dummy_verify() -> None:
    """Spend the time of a real verification when there is no account to check."""
    pwd_context.dummy_verify()


def normalize_email(email: str) -> str:
    """Emails are stored and looked up lower-case."""
    return email.strip().lower()


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"iat": now, "exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_session_token(user_id: int, email: str, role: str, expires_delta: timedelta | None = None) -> str:
    """Session credential for a user. The role is fixed until the token is re-issued."""
    return create_access_token(
        {"sub": str(user_id), "email": email, "role": role},
        expires_delta=expires_delta,
    )


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises Unauthenticated."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise Unauthenticated("expired") from e
    except JWTError as e:
        raise Unauthenticated("invalid") from e


def _get_token_from_request(request: Request) -> str | None:
    """Extract JWT from Bearer header or the session cookie."""
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(settings.auth_cookie_name)


def authenticate(request: Request) -> Identity:
    """Resolve the caller from the request credential. Raises Unauthenticated."""
    token = _get_token_from_request(request)
    if not token:
        raise Unauthenticated("missing")
    payload = decode_token(token)
    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or not isinstance(role, str):
        raise Unauthenticated("malformed")
    try:
        user_id = int(sub)
    except (TypeError, ValueError) as e:
        raise Unauthenticated("malformed") from e
    return Identity(id=user_id, role=role, email=payload.get("email"))


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Dependency for protected routes. Any credential problem becomes the same 401.

    bearer_scheme is declared so the OpenAPI docs show the Bearer scheme; the token is
    read by authenticate(), which also accepts the session cookie.
    """
    return authenticate(request)


def require_role(*roles: Role) -> Callable[..., Any]:
    """Dependency factory: allow only identities holding one of roles (403 otherwise)."""
    allowed = {r.value for r in roles}

    async def _check(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed:
            logger.info("User %s with role %s denied (needs %s)", identity.id, identity.role, sorted(allowed))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to access this resource",
            )
        return identity

    return _check
