from __future__ import annotations

"""Identity claims issued by the external auth service.

The core never looks users up: a verified bearer token is reduced to an
opaque `Identity(id, role)` pair and authorization works on that alone.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_core.errors import Forbidden, Unauthorized

ROLES = ("customer", "merchant", "admin")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _jwt_secret() -> str:
    # Default only for dev/testing.
    return os.environ.get("JWT_SECRET", "dev_jwt_secret_change_me")


def create_access_token(*, subject: str, role: str, minutes: int = 60 * 12) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm="HS256")


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired", code="token_expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token", code="invalid_token")


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if credentials is None:
        raise Unauthorized()

    payload = decode_token(credentials.credentials)
    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in ROLES:
        raise Unauthorized("Invalid token claims", code="invalid_token")

    return Identity(id=str(subject), role=str(role))


def require_roles(required: list[str]):
    async def _dep(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in required:
            raise Forbidden("Role not permitted for this operation", {"role": identity.role})
        return identity

    return _dep
