"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register               -- create account (rate-limited)
  POST /api/v1/auth/login                  -- password login; sets JWT cookie (rate-limited)
  POST /api/v1/auth/logout                 -- clears cookie
  GET  /api/v1/auth/me                     -- current user (requires auth)
  POST /api/v1/auth/password               -- change password (requires auth)
  PUT  /api/v1/auth/email                  -- set or clear email (requires auth)
  POST /api/v1/auth/password-reset         -- mail a reset link (rate-limited)
  GET  /api/v1/auth/password-reset/{token} -- is this token usable?
  POST /api/v1/auth/password-reset/{token} -- set a new password with the token

Security:
  Login failures for unknown users and wrong passwords return the same
  bad_credentials body, and AuthenticationService.login() equalizes timing.
  Password reset answers identically whether or not the email is known.
  Cache-Control: no-store on every response that carries a token.

Handlers that hash passwords are plain `def` so FastAPI runs them on its
thread pool and scrypt never blocks the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, reset_limit
from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    RegisterRequest,
    TokenValidResponse,
    UpdateEmailRequest,
    UserResponse,
)
from auth.access import Principal
from auth.dependencies import get_current_principal
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import set_auth_cookie
from core.config import Settings

logger = logging.getLogger("pinsquirrel.api")

# Auth policy:
# - register, login, logout, password-reset/*: public
# - me, password, email:                      requires auth (get_current_principal)
router = APIRouter()

_RESET_ACK = "If an account with that email exists, a password reset link has been sent."


def _service(request: Request) -> AuthenticationService:
    return request.app.state.auth_service


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _session_response(request: Request, user, status_code: int = 200) -> JSONResponse:
    cfg = _settings(request)
    token = _service(request).issue_session(user)
    resp = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=cfg.token_expire_seconds,
            user_id=user.id,
            username=user.username,
            roles=sorted(user.roles),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, max_age=cfg.token_expire_seconds, secure=cfg.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=LoginResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and sign it in."""
    if not _settings(request).registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Registration is closed."},
        )
    user = _service(request).register(body.username, body.password, body.email)
    return _session_response(request, user, status_code=201)


@limiter.limit(login_limit)  # brute-force mitigation
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set JWT cookie."""
    user = _service(request).login(body.username, body.password)
    return _session_response(request, user)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@limiter.limit(reset_limit)
@router.post("/auth/password-reset", response_model=MessageResponse, status_code=202)
def request_password_reset(request: Request, body: PasswordResetRequest) -> MessageResponse:
    """Mail a reset link if the email belongs to an account.

    The response does not reveal whether it does.
    """
    reset_url = f"{_settings(request).app_base_url.rstrip('/')}/reset-password"
    _service(request).request_password_reset(body.email, reset_url)
    return MessageResponse(message=_RESET_ACK)


@router.get("/auth/password-reset/{token}", response_model=TokenValidResponse)
def validate_reset_token(request: Request, token: str) -> TokenValidResponse:
    return TokenValidResponse(valid=_service(request).validate_reset_token(token))


@limiter.limit(reset_limit)
@router.post("/auth/password-reset/{token}", response_model=MessageResponse)
def reset_password(request: Request, token: str, body: PasswordResetConfirm) -> MessageResponse:
    _service(request).reset_password(token, body.new_password)
    return MessageResponse(message="Password has been reset. You can now sign in.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, principal: Principal = Depends(get_current_principal)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(principal.id)
    if user is None:
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": "Authentication required."})
    return UserResponse.from_user(user)


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
) -> MessageResponse:
    _service(request).change_password(principal.id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated.")


@router.put("/auth/email", response_model=UserResponse)
def update_email(
    request: Request,
    body: UpdateEmailRequest,
    principal: Principal = Depends(get_current_principal),
) -> UserResponse:
    _service(request).update_email(principal.id, body.email)
    user_store: UserStore = request.app.state.user_store
    return UserResponse.from_user(user_store.get_by_id(principal.id))
