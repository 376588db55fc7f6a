"""
auth/tokens.py -- Reset tokens, session JWTs, and the auth cookie.

Security design decisions:
  Reset tokens: secrets.token_urlsafe(32) gives 256 bits of entropy in a
       URL-safe alphabet, so the token can sit in a reset link unescaped.
       Only SHA-256(token) is persisted. A plain digest (no HMAC key, no
       slow KDF) is enough: the input is already high-entropy, and lookups
       must be deterministic. The raw token is handed out exactly once.
       Expiry and single-use rules belong to the store and the service, not
       here -- this module only generates and hashes.

  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, username, roles, and expiry. Verification returns None on any
       failure -- the dependency layer turns that into "no principal".

Layer rule: no imports from api/, pins/, or mail/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from jose import JWTError, jwt

logger = logging.getLogger("pinsquirrel.auth")

_ALGORITHM = "HS256"
_RESET_TOKEN_BYTES = 32


@dataclass(frozen=True)
class TokenService:
    """Issues reset tokens and session JWTs.

    secret_key signs JWTs only; reset token hashing is keyless so stored
    hashes survive a SECRET_KEY rotation.
    """

    secret_key: str
    expire_seconds: int = 8 * 3600

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    @staticmethod
    def generate_secure_token() -> str:
        return secrets.token_urlsafe(_RESET_TOKEN_BYTES)

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Session JWT
    # ------------------------------------------------------------------

    def create_access_token(self, user_id: str, username: str, roles: Iterable[str] = ()) -> str:
        """Encode a signed JWT identifying the user for expire_seconds."""
        expire = datetime.now(timezone.utc) + timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": username,
            "user_id": user_id,
            "roles": sorted(roles),
            "exp": expire,
        }
        return jwt.encode(payload, self.secret_key, algorithm=_ALGORITHM)

    def decode_access_token(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the payload dict or None on any failure."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if "user_id" not in payload:
            return None
        return payload


def set_auth_cookie(response, token: str, max_age: int, secure: bool = False) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
