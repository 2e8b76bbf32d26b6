"""
auth/dependencies.py -- FastAPI Depends() helpers for access-token authentication.

Access tokens arrive as `Authorization: Bearer <token>`. Verification is
TokenCodec.verify_access() followed by a directory read, so a token for a
user that no longer exists is rejected even before it expires.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because this module is part of the FastAPI dependency
injection system. It does not import from api/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import ExpiredToken, InvalidToken

logger = logging.getLogger("folioauth.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_user(request: Request) -> dict | None:
    """Return the public user for a valid Bearer access token, None on any failure.

    Expired tokens are routine and logged at DEBUG; malformed or badly signed
    tokens are treated as tampering and logged at WARNING.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        claims = request.app.state.codec.verify_access(token)
    except ExpiredToken:
        logger.debug("Access token expired")
        return None
    except InvalidToken:
        client = request.client.host if request.client else "unknown"
        logger.warning("Rejected invalid access token from %s", client)
        return None
    return request.app.state.auth_service.get_user_by_id(claims.user_id)


def get_current_user(request: Request) -> dict:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: dict = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(request: Request) -> dict:
    """Require the admin role claim. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    if user["role"] != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
