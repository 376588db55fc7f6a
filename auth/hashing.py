"""
auth/hashing.py -- Password and email hashing.

Security design decisions:
  Passwords: scrypt (hashlib.scrypt) with a fresh 32-byte salt per call and a
       64-byte derived key. Stored as "<base64 salt>:<base64 key>". scrypt is
       memory-hard, so each guess in an offline attack costs memory as well as
       CPU. Cost parameters N=2**14, r=8, p=1 take tens of milliseconds per
       call; route handlers that hash run on FastAPI's thread pool, never on
       the event loop.

  Verification: the derived key is compared with hmac.compare_digest so the
       comparison time does not depend on how many leading bytes match.
       A malformed stored value (legacy row, truncated column) verifies as
       False -- a corrupted record must degrade to "login denied", not a 500.
       Errors from the scrypt primitive itself are not caught.

  Emails: SHA-256 of the trimmed, lower-cased address, hex encoded. No salt:
       the hash is a lookup key ("does a user with this email exist"), so it
       must be deterministic. The plaintext address is never stored.

Layer rule: stdlib only. No imports from api/, pins/, or mail/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

_SEPARATOR = ":"


@dataclass(frozen=True)
class CredentialHasher:
    """Stateless password/email hasher. Safe to share across threads.

    Construct once at startup and inject where needed:
        hasher = CredentialHasher()
        stored = hasher.hash_password("correcthorsebatterystaple")
        hasher.verify_password("correcthorsebatterystaple", stored)  # True

    Tests construct a cheaper instance (lower n) to keep the suite fast.
    """

    n: int = 2**14
    r: int = 8
    p: int = 1
    salt_length: int = 32
    key_length: int = 64

    def _derive(self, plaintext: str, salt: bytes) -> bytes:
        # scrypt needs about 128 * r * (n + p + 2) bytes; allow twice that.
        return hashlib.scrypt(
            _encode(plaintext),
            salt=salt,
            n=self.n,
            r=self.r,
            p=self.p,
            maxmem=2 * 128 * self.r * (self.n + self.p + 2),
            dklen=self.key_length,
        )

    def hash_password(self, plaintext: str) -> str:
        """Return "<b64 salt>:<b64 key>" for the given password.

        Accepts any string, including "". Two calls with the same password
        return different values because the salt is new each time.
        """
        salt = secrets.token_bytes(self.salt_length)
        key = self._derive(plaintext, salt)
        return f"{_b64encode(salt)}{_SEPARATOR}{_b64encode(key)}"

    def verify_password(self, plaintext: str, stored_hash: str) -> bool:
        """Return True only if plaintext re-derives to the stored key."""
        parts = _split_stored(stored_hash)
        if parts is None:
            return False
        salt, stored_key = parts
        if len(stored_key) != self.key_length:
            return False
        return hmac.compare_digest(self._derive(plaintext, salt), stored_key)

    @staticmethod
    def hash_email(email: str) -> str:
        """Return the 64-char lowercase hex SHA-256 of the normalized email."""
        return hashlib.sha256(_encode(email.strip().lower())).hexdigest()


def _encode(text: str) -> bytes:
    # surrogatepass: every Python str hashes, lone surrogates included.
    return text.encode("utf-8", "surrogatepass")


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _split_stored(stored_hash: str) -> tuple[bytes, bytes] | None:
    """Decode "<salt>:<key>" into bytes, or None if the value is malformed."""
    if not isinstance(stored_hash, str) or stored_hash.count(_SEPARATOR) != 1:
        return None
    salt_b64, key_b64 = stored_hash.split(_SEPARATOR)
    if not salt_b64 or not key_b64:
        return None
    try:
        salt = base64.b64decode(salt_b64, validate=True)
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not salt or not key:
        return None
    return salt, key
