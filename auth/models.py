"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work. Each entity exposes owner_id so auth/access.py can gate
it without knowing its concrete type.

Layer rule: no imports from api/, pins/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class User:
    """A registered PinSquirrel account.

    password_hash is the "<salt>:<key>" string from CredentialHasher and is
    never decoded. email_hash is the SHA-256 of the normalized address, or
    None if the user never supplied one; the plaintext email is not stored.

    id is None before the record is written to the database.
    """

    username: str
    password_hash: str
    email_hash: str | None = None
    roles: list[str] = field(default_factory=lambda: ["user"])
    id: str | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""

    @property
    def owner_id(self) -> str | None:
        return self.id


@dataclass
class PasswordResetToken:
    """A pending password reset. Holds the hash only -- the raw token was
    emailed to the user and is unrecoverable.
    """

    user_id: str
    token_hash: str
    expires_at: str  # ISO 8601
    id: str | None = None
    created_at: str = ""

    @property
    def owner_id(self) -> str:
        return self.user_id

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires = datetime.fromisoformat(self.expires_at)
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now
