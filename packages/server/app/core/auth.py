"""
Authentication and authorization for the task workflow API.

Identity is carried by a signed JWT bearer token issued by the platform's
auth service. This module only verifies it and exposes the actor id and
role; workflow rules that depend on the role (who may approve) are checked
in the route layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from taskflow_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    role: str,
    *,
    expires_delta: timedelta = timedelta(minutes=60),
) -> str:
    """Create a signed JWT for ``user_id``. Used by scripts and tests."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """The caller of a request."""

    def __init__(self, user_id: uuid.UUID, role: Role):
        self.user_id = user_id
        self.role = role

    @property
    def can_approve(self) -> bool:
        return self.role.value in settings.approver_roles


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        payload = decode_jwt(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
        role = Role(payload.get("role", Role.EMPLOYEE.value))
    except (jwt.PyJWTError, KeyError, ValueError):
        log.warning("auth.invalid_token")
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return AuthenticatedUser(user_id=user_id, role=role)
