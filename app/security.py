from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.errors import ApiError
from app.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    user_id: int
    org_id: int | None = None


def _invalid_token(message: str = "Invalid or expired token.") -> ApiError:
    return ApiError(status_code=401, code="INVALID_TOKEN", message=message)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    if not settings.jwt_secret:
        raise _invalid_token("Token verification is not configured.")

    options = {"verify_iss": settings.jwt_issuer is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except JWTError as exc:
        raise _invalid_token() from exc


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    raw_sub = claims.get("sub")
    try:
        user_id = int(str(raw_sub))
    except (TypeError, ValueError):
        raise _invalid_token("Token subject is not a user id.") from None
    if user_id <= 0:
        raise _invalid_token("Token subject is not a user id.")

    raw_org_id = claims.get("org_id")
    org_id: int | None = None
    if raw_org_id is not None:
        try:
            org_id = int(str(raw_org_id))
        except (TypeError, ValueError):
            org_id = None
    return Actor(user_id=user_id, org_id=org_id)


def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise _invalid_token("Missing bearer token.")
    actor = actor_from_claims(decode_token(credentials.credentials))
    request.state.actor = "user"
    request.state.actor_id = str(actor.user_id)
    return actor
