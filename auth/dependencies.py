"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients, the bookmarklet.

Both converge on a Principal after the JWT verifies AND the user still exists
(a deleted account's unexpired token authenticates nobody).

try_get_principal() is the soft variant (returns None on failure).
get_access_control() wraps it in the per-request AccessControl gate.
get_current_principal() raises HTTP 401 if unauthenticated.

Layer rule: no imports from pins/ or mail/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.access import AccessControl, Principal
from auth.store import UserStore
from auth.tokens import TokenService


def _request_token(request: Request) -> str | None:
    token = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_principal(request: Request) -> Principal | None:
    """Return the authenticated Principal, or None. Never raises."""
    token = _request_token(request)
    if token is None:
        return None

    tokens: TokenService = request.app.state.tokens
    payload = tokens.decode_access_token(token)
    if payload is None:
        return None

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(payload["user_id"])
    if user is None:
        return None
    return Principal(id=user.id, username=user.username, roles=frozenset(user.roles))


def get_access_control(request: Request) -> AccessControl:
    """The per-request authorization gate. Anonymous requests get a gate that denies everything."""
    return AccessControl(try_get_principal(request))


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def get_authenticated_access(principal: Principal = Depends(get_current_principal)) -> AccessControl:
    """Like get_access_control(), but 401 for anonymous requests."""
    return AccessControl(principal)

