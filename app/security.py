from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.errors import ApiError
from app.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_EMPLOYEE = "employee"
ROLE_MANAGER = "manager"
ROLE_HR = "hr"
ROLE_ADMIN = "admin"

# Roles that satisfy each guarded role.
ROLE_GRANTS: dict[str, frozenset[str]] = {
    ROLE_EMPLOYEE: frozenset({ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_HR, ROLE_ADMIN}),
    ROLE_MANAGER: frozenset({ROLE_MANAGER, ROLE_HR, ROLE_ADMIN}),
    ROLE_HR: frozenset({ROLE_HR, ROLE_ADMIN}),
    ROLE_ADMIN: frozenset({ROLE_ADMIN}),
}


@dataclass(frozen=True)
class CallerIdentity:
    user_id: int
    role: str
    username: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    *,
    user_id: int,
    role: str = ROLE_EMPLOYEE,
    username: str | None = None,
    expires_delta: timedelta = timedelta(minutes=30),
) -> str:
    """Issue a token the way the identity service does. Used by tests and local tooling."""
    settings = get_settings()
    now = _utcnow()
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> CallerIdentity:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.") from exc

    role = str(payload.get("role") or "").strip().lower()
    if role not in ROLE_GRANTS:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")

    username = payload.get("username")
    return CallerIdentity(user_id=user_id, role=role, username=str(username) if username else None)


def require_caller(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CallerIdentity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    caller = decode_access_token(credentials.credentials)
    request.state.actor = caller.role
    request.state.actor_id = str(caller.user_id)
    return caller


def require_role(role: str) -> Callable[..., CallerIdentity]:
    if role not in ROLE_GRANTS:
        raise ValueError(f"Unknown role: {role}")

    def _dependency(caller: CallerIdentity = Depends(require_caller)) -> CallerIdentity:
        if caller.role not in ROLE_GRANTS[role]:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return caller

    return _dependency
