"""API dependencies for authentication and service access."""

from __future__ import annotations

from fastapi import Header, Request

from finora.container import ServiceContainer
from finora.core.exceptions import AuthenticationError
from finora.core.security import TokenData, decode_access_token


__all__ = [
    "get_container",
    "get_current_user",
    "require_user",
]


def get_container(request: Request) -> ServiceContainer:
    """Service container created by the application lifespan."""
    return request.app.state.container


def _extract_token(authorization: str | None) -> str | None:
    """Extract a bearer token from the Authorization header."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token
    return None


def _decode(request: Request, token: str) -> TokenData:
    container = getattr(request.app.state, "container", None)
    secret = container.settings.auth_secret if container is not None else None
    return decode_access_token(token, secret=secret)


async def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> TokenData | None:
    """
    Get current authenticated user (optional).

    Returns None for anonymous callers and for invalid tokens.
    """
    token = _extract_token(authorization)
    if not token:
        return None
    try:
        return _decode(request, token)
    except AuthenticationError:
        return None


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> TokenData:
    """
    Require authenticated user.

    Raises AuthenticationError if the bearer token is missing or invalid.
    """
    token = _extract_token(authorization)
    if not token:
        raise AuthenticationError(message="Not authorized, no token")
    return _decode(request, token)
