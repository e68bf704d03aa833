from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from punchclock.errors import ApiError
from punchclock.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_USER = "user"
ROLE_ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(*, uid: int, role: str = ROLE_USER) -> tuple[str, int]:
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": str(uid),
        "role": role,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60


def decode_token(token: str) -> dict[str, Any]:
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
    if not isinstance(subject, str) or not subject.isdigit():
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    return payload


def _bearer_payload(credentials: HTTPAuthorizationCredentials | None) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")
    return decode_token(credentials.credentials)


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    payload = _bearer_payload(credentials)
    uid = int(payload["sub"])
    request.state.actor = "user"
    request.state.actor_id = str(uid)
    request.state.uid = uid
    return uid


def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    payload = _bearer_payload(credentials)
    if payload.get("role") != ROLE_ADMIN:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")

    request.state.actor = "admin"
    request.state.actor_id = str(payload["sub"])
    return payload
