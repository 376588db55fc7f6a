"""
auth/service.py -- Registration, login, and password reset use cases.

AuthenticationService composes the injected building blocks (UserStore,
CredentialHasher, TokenService, optional mailer) -- it owns no crypto itself.

Security:
  Login timing: an unknown username still costs one scrypt verification
      against a dummy hash, so response time does not reveal whether the
      username exists. Unknown user and wrong password raise the same
      INVALID_CREDENTIALS error.

  Reset disclosure: request_password_reset() returns None for an unknown
      email instead of raising, so the caller can answer identically either way.

  Reset tokens: only SHA-256(token) is stored. A token is single use (all of
      the user's tokens are deleted on success), expires after
      RESET_TOKEN_TTL, is superseded by the next request, and at most
      MAX_RESET_REQUESTS_PER_HOUR may be issued per user per hour.

Layer rule: no imports from api/ or pins/.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from auth.hashing import CredentialHasher
from auth.models import PasswordResetToken, User
from auth.store import UserStore
from auth.tokens import TokenService
from core.errors import ErrorKind, PinSquirrelError, validation_error

logger = logging.getLogger("pinsquirrel.auth")

RESET_TOKEN_TTL = timedelta(minutes=15)
MAX_RESET_REQUESTS_PER_HOUR = 3

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,20}$")
EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")
PASSWORD_MIN, PASSWORD_MAX = 8, 100
EMAIL_MAX = 100


class Mailer(Protocol):
    def send_password_reset_email(self, email: str, token: str, reset_url: str) -> None: ...


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def username_errors(username: str) -> list[str]:
    if not 3 <= len(username) <= 20:
        return ["Username must be between 3 and 20 characters."]
    if not USERNAME_RE.match(username):
        return ["Username can only contain letters, numbers, and underscores."]
    return []


def password_errors(password: str) -> list[str]:
    if len(password) < PASSWORD_MIN:
        return [f"Password must be at least {PASSWORD_MIN} characters."]
    if len(password) > PASSWORD_MAX:
        return [f"Password must be at most {PASSWORD_MAX} characters."]
    return []


def email_errors(email: str) -> list[str]:
    email = email.strip()
    if len(email) > EMAIL_MAX:
        return [f"Email must be at most {EMAIL_MAX} characters."]
    if not EMAIL_RE.match(email):
        return ["Invalid email address."]
    return []


def _check(**fields: list[str]) -> None:
    errors = {name: msgs for name, msgs in fields.items() if msgs}
    if errors:
        raise validation_error(errors)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthenticationService:
    def __init__(
        self,
        user_store: UserStore,
        hasher: CredentialHasher,
        tokens: TokenService,
        mailer: Mailer | None = None,
    ) -> None:
        self._users = user_store
        self._hasher = hasher
        self._tokens = tokens
        self._mailer = mailer
        # Computed once so every failed lookup pays the same scrypt cost.
        self._dummy_hash = hasher.hash_password("pinsquirrel_timing_dummy")

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, email: str | None = None) -> User:
        """Create an account. A blank email is treated as no email."""
        email = (email or "").strip() or None
        _check(
            username=username_errors(username),
            password=password_errors(password),
            email=email_errors(email) if email else [],
        )
        if self._users.get_by_username(username) is not None:
            raise PinSquirrelError(ErrorKind.USER_ALREADY_EXISTS)

        user = User(
            username=username,
            password_hash=self._hasher.hash_password(password),
            email_hash=self._hasher.hash_email(email) if email else None,
        )
        try:
            user.id = self._users.create_user(user)
        except IntegrityError as exc:
            # A concurrent registration took the name after the lookup above.
            raise PinSquirrelError(ErrorKind.USER_ALREADY_EXISTS) from exc
        logger.info("Registered user %s", user.id)
        return self._users.get_by_id(user.id) or user

    def login(self, username: str, password: str) -> User:
        user = self._users.get_by_username(username)
        if user is None:
            self._hasher.verify_password(password, self._dummy_hash)
            raise PinSquirrelError(ErrorKind.INVALID_CREDENTIALS)
        if not self._hasher.verify_password(password, user.password_hash):
            raise PinSquirrelError(ErrorKind.INVALID_CREDENTIALS)
        return user

    def issue_session(self, user: User) -> str:
        """Return a signed session JWT for an already-authenticated user."""
        return self._tokens.create_access_token(user.id, user.username, user.roles)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        _check(new_password=password_errors(new_password))
        user = self._users.get_by_id(user_id)
        if user is None or not self._hasher.verify_password(current_password, user.password_hash):
            raise PinSquirrelError(ErrorKind.INVALID_CREDENTIALS)
        self._users.update_user(user_id, password_hash=self._hasher.hash_password(new_password))
        logger.info("Password changed for user %s", user_id)

    def update_email(self, user_id: str, email: str | None) -> None:
        """Set or clear (email=None) the stored email hash."""
        email = (email or "").strip() or None
        if email:
            _check(email=email_errors(email))
        self._users.update_user(user_id, email_hash=self._hasher.hash_email(email) if email else None)

    def find_by_email(self, email: str) -> User | None:
        _check(email=email_errors(email))
        return self._users.get_by_email_hash(self._hasher.hash_email(email))

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str, reset_url: str) -> str | None:
        """Issue a reset token and mail it. Returns the raw token, or None if
        no account has this email.
        """
        _check(email=email_errors(email))
        if self._mailer is None:
            raise PinSquirrelError(ErrorKind.RESET_NOT_CONFIGURED)

        user = self._users.get_by_email_hash(self._hasher.hash_email(email))
        if user is None:
            return None

        now = datetime.now(timezone.utc)
        one_hour_ago = now - timedelta(hours=1)
        recent = [
            t for t in self._users.get_reset_tokens_for_user(user.id) if datetime.fromisoformat(t.created_at) > one_hour_ago
        ]
        if len(recent) >= MAX_RESET_REQUESTS_PER_HOUR:
            raise PinSquirrelError(ErrorKind.TOO_MANY_RESET_REQUESTS)

        # Superseded tokens stop working but stay on record for the hourly cap.
        self._users.expire_reset_tokens_for_user(user.id)

        token = self._tokens.generate_secure_token()
        self._users.create_reset_token(
            PasswordResetToken(
                user_id=user.id,
                token_hash=self._tokens.hash_token(token),
                expires_at=(now + RESET_TOKEN_TTL).isoformat(),
                created_at=now.isoformat(),
            )
        )
        self._mailer.send_password_reset_email(email.strip(), token, reset_url)
        logger.info("Password reset issued for user %s", user.id)
        return token

    def reset_password(self, token: str, new_password: str) -> None:
        _check(new_password=password_errors(new_password))
        record = self._users.get_reset_token_by_hash(self._tokens.hash_token(token))
        if record is None:
            raise PinSquirrelError(ErrorKind.INVALID_RESET_TOKEN)
        if record.is_expired():
            raise PinSquirrelError(ErrorKind.RESET_TOKEN_EXPIRED)
        if self._users.get_by_id(record.user_id) is None:
            raise PinSquirrelError(ErrorKind.INVALID_RESET_TOKEN)

        self._users.update_user(record.user_id, password_hash=self._hasher.hash_password(new_password))
        self._users.delete_reset_tokens_for_user(record.user_id)
        logger.info("Password reset completed for user %s", record.user_id)

    def validate_reset_token(self, token: str) -> bool:
        record = self._users.get_reset_token_by_hash(self._tokens.hash_token(token))
        return record is not None and not record.is_expired()
