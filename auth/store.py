"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as pins/store.py).
UserStore is the repository; _row_to_user / _row_to_reset_token are the
mappers. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The users table holds password_hash and email_hash only -- no plaintext
  email column exists. password_reset_tokens holds token hashes only.

Layer rule: no imports from api/, pins/, or mail/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import PasswordResetToken, User
from core.config import get_settings
from core.db import make_engine, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(20), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("email_hash", String(64), index=True),  # SHA-256 hex, NULL if no email
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(30), nullable=False),
    Column("created_at", String(32), nullable=False),
    PrimaryKeyConstraint("user_id", "role"),
)

_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and PasswordResetToken entities.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(username="alice", password_hash=hasher.hash_password("secret")))
        user = store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user plus its roles and return the assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        The service checks first; the UNIQUE constraint covers the race where
        two registrations for the same name interleave.
        """
        user_id = _new_id()
        now = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    password_hash=user.password_hash,
                    email_hash=user.email_hash,
                    created_at=now,
                    updated_at=now,
                )
            )
            for role in sorted(set(user.roles)):
                conn.execute(_user_roles.insert().values(user_id=user_id, role=role, created_at=now))
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            roles = self._roles(conn, user_id) if row is not None else []
        return _row_to_user(row, roles) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
            roles = self._roles(conn, row.id) if row is not None else []
        return _row_to_user(row, roles) if row is not None else None

    def get_by_email_hash(self, email_hash: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email_hash == email_hash)).fetchone()
            roles = self._roles(conn, row.id) if row is not None else []
        return _row_to_user(row, roles) if row is not None else None

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: username, password_hash, email_hash.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - {"username", "password_hash", "email_hash"}
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Delete a user together with its roles and pending reset tokens."""
        with self.engine.connect() as conn:
            conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == user_id))
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def add_role(self, user_id: str, role: str) -> None:
        with self.engine.connect() as conn:
            if role not in self._roles(conn, user_id):
                conn.execute(_user_roles.insert().values(user_id=user_id, role=role, created_at=now_iso()))
                conn.commit()

    @staticmethod
    def _roles(conn, user_id: str) -> list[str]:
        rows = conn.execute(
            select(_user_roles.c.role).where(_user_roles.c.user_id == user_id).order_by(_user_roles.c.role)
        ).fetchall()
        return [r.role for r in rows]

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, token: PasswordResetToken) -> str:
        token_id = _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _reset_tokens.insert().values(
                    id=token_id,
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expires_at=token.expires_at,
                    created_at=token.created_at or now_iso(),
                )
            )
            conn.commit()
        return token_id

    def get_reset_token_by_hash(self, token_hash: str) -> PasswordResetToken | None:
        """Exact-match lookup by SHA-256 hash. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def get_reset_tokens_for_user(self, user_id: str) -> list[PasswordResetToken]:
        """Return all reset tokens for a user (newest first), expired ones included."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _reset_tokens.select()
                .where(_reset_tokens.c.user_id == user_id)
                .order_by(_reset_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_reset_token(r) for r in rows]

    def expire_reset_tokens_for_user(self, user_id: str) -> int:
        """Mark every still-valid token of a user as expired now.

        Rows are kept (not deleted) because the hourly request cap counts them.
        ISO 8601 UTC strings sort chronologically, so string comparison is a
        valid time comparison here.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.user_id == user_id) & (_reset_tokens.c.expires_at > now))
                .values(expires_at=now)
            )
            conn.commit()
        return result.rowcount

    def delete_reset_tokens_for_user(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired_reset_tokens(self, keep_for: timedelta = timedelta(hours=1)) -> int:
        """Delete expired tokens created more than keep_for ago.

        Recent expired rows are kept so the hourly request cap still sees them.
        Returns the number of rows removed.
        """
        now = datetime.now(timezone.utc)
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.delete().where(
                    (_reset_tokens.c.expires_at <= now.isoformat())
                    & (_reset_tokens.c.created_at <= (now - keep_for).isoformat())
                )
            )
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[str]) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        email_hash=row.email_hash,
        roles=roles,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
