"""
Bearer token handling.

Tokens are HS256 JWTs signed with ``AUTH_SECRET``. The user id is read from
``sub``; tokens minted by the legacy account service carry it in ``id``
instead, and both are accepted. Only the signature and ``exp`` are enforced.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from .config import settings
from .exceptions import AuthenticationError


JWT_ALGORITHM = "HS256"
JWT_ISSUER = "finora"


class TokenData(BaseModel):
    """The authenticated caller."""

    sub: str
    expires_at: Optional[datetime] = None


def create_access_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
) -> str:
    now = datetime.now(timezone.utc)
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=settings.access_token_expire_minutes)
    claims = {"sub": user_id, "iat": now, "exp": now + lifetime, "iss": JWT_ISSUER}
    return jwt.encode(claims, secret or settings.auth_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret: Optional[str] = None) -> TokenData:
    """Verify ``token`` and return its caller. Raises AuthenticationError."""
    try:
        claims = jwt.decode(
            token,
            secret or settings.auth_secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp"], "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token has expired", error_code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError(message="Not authorized, token failed", error_code="INVALID_TOKEN")

    user_id = claims.get("sub") or claims.get("id")
    if not user_id:
        raise AuthenticationError(message="Not authorized, token failed", error_code="INVALID_TOKEN")

    return TokenData(
        sub=str(user_id),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )
