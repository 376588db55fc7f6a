"""Unit tests for auth/hashing.py -- password and email hashing.

Covers:
- hash/verify round trip, including the empty password and lone surrogates
- scrypt failures propagate instead of verifying as False
- distinct salts per call, wrong password rejected
- malformed stored hashes return False and never raise
- stored format: base64 32-byte salt, base64 64-byte key
- email hashing is trim/case-insensitive and deterministic
"""

import base64
import hashlib

import pytest

from auth.hashing import CredentialHasher


@pytest.mark.parametrize(
    "password",
    ["", "a", "correcthorsebatterystaple", "pässwörd ✓", " spaced ", "\ud800", "lone \udfff surrogate"],
)
def test_verify_accepts_own_hash(hasher, password):
    assert hasher.verify_password(password, hasher.hash_password(password)) is True


def test_verify_rejects_other_password(hasher):
    stored = hasher.hash_password("password-one")
    assert hasher.verify_password("password-two", stored) is False
    assert hasher.verify_password("", stored) is False


def test_same_password_hashes_differently(hasher):
    assert hasher.hash_password("repeat") != hasher.hash_password("repeat")


def test_stored_format(hasher):
    stored = hasher.hash_password("format")
    salt_b64, key_b64 = stored.split(":")
    assert len(base64.b64decode(salt_b64)) == 32
    assert len(base64.b64decode(key_b64)) == 64


@pytest.mark.parametrize(
    "stored",
    [
        "not-a-valid-format",
        "",
        ":",
        "abc:",
        ":abc",
        "a:b:c",
        "!!!!:????",
        "AAAA:not base64!",
        None,
        12345,
    ],
)
def test_malformed_hash_returns_false(hasher, stored):
    assert hasher.verify_password("anything", stored) is False


def test_wrong_key_length_returns_false(hasher):
    salt = base64.b64encode(b"s" * 32).decode()
    short_key = base64.b64encode(b"k" * 16).decode()
    assert hasher.verify_password("anything", f"{salt}:{short_key}") is False


def test_end_to_end_default_cost():
    """Production parameters (N=2**14, r=8, p=1) verify their own output."""
    real = CredentialHasher()
    stored = real.hash_password("correcthorsebatterystaple")
    assert real.verify_password("correcthorsebatterystaple", stored) is True
    assert real.verify_password("wrong", stored) is False


def test_surrogate_password_differs_from_neighbours(hasher):
    stored = hasher.hash_password("\ud800")
    assert hasher.verify_password("\ud801", stored) is False
    assert hasher.verify_password("", stored) is False


@pytest.mark.parametrize("error", [MemoryError(), ValueError("memory limit exceeded")])
def test_kdf_failure_propagates(hasher, monkeypatch, error):
    stored = hasher.hash_password("well-formed")

    def failing_scrypt(*args, **kwargs):
        raise error

    monkeypatch.setattr(hashlib, "scrypt", failing_scrypt)
    with pytest.raises(type(error)):
        hasher.hash_password("anything")
    with pytest.raises(type(error)):
        hasher.verify_password("well-formed", stored)


def test_hash_interoperates_with_hashlib_scrypt():
    """A hash written by any scrypt implementation with the same parameters verifies."""
    salt = b"\x01" * 32
    key = hashlib.scrypt(b"legacy", salt=salt, n=2**14, r=8, p=1, dklen=64)
    stored = f"{base64.b64encode(salt).decode()}:{base64.b64encode(key).decode()}"
    assert CredentialHasher().verify_password("legacy", stored) is True


# ---------------------------------------------------------------------------
# Email hashing
# ---------------------------------------------------------------------------


def test_email_hash_ignores_case_and_whitespace():
    h = CredentialHasher.hash_email
    assert h("User@Example.com") == h("user@example.com ")
    assert h("a@b.co") == h("A@B.CO")
    assert h("a@b.co") == h("  a@b.co\t")


def test_email_hash_is_deterministic_hex_sha256():
    expected = hashlib.sha256(b"user@example.com").hexdigest()
    assert CredentialHasher.hash_email("user@example.com") == expected
    assert len(expected) == 64


def test_different_emails_hash_differently():
    assert CredentialHasher.hash_email("a@example.com") != CredentialHasher.hash_email("b@example.com")


def test_email_hash_accepts_lone_surrogates():
    digest = CredentialHasher.hash_email("a\ud800@example.com")
    assert len(digest) == 64
    assert digest == CredentialHasher.hash_email(" A\ud800@Example.com")
    assert digest != CredentialHasher.hash_email("a@example.com")
