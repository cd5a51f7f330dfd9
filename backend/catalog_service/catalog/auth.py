# backend/catalog_service/catalog/auth.py
"""Caller identity from a bearer JWT, and the admin role gate."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .errors import AccessDeniedError, UnauthenticatedError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    roles: FrozenSet[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles


def create_access_token(
    user_id: str,
    roles: Iterable[str],
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Issue a signed token; tokens are normally minted by the identity service."""
    now = datetime.now(timezone.utc)
    to_encode: Dict[str, Any] = {
        "sub": user_id,
        "roles": list(roles),
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=30)),
    }
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_identity(token: str, secret_key: str, algorithm: str) -> Identity:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        raise UnauthenticatedError(cause=e) from e

    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise UnauthenticatedError(detail="token has no subject")
    try:
        user_id = uuid.UUID(str(user_id))
    except ValueError as e:
        raise UnauthenticatedError(detail="token subject is not a UUID", cause=e) from e

    roles = payload.get("roles") or payload.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    return Identity(user_id=str(user_id), roles=frozenset(str(role) for role in roles))


def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if credentials is None:
        raise UnauthenticatedError(detail="missing bearer token")
    settings = request.app.state.services.settings
    return decode_identity(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )


def require_admin(request: Request, identity: Identity = Depends(get_identity)) -> Identity:
    admin_role = request.app.state.services.settings.admin_role
    if not identity.has_role(admin_role):
        raise AccessDeniedError(detail=f"role '{admin_role}' required")
    return identity
