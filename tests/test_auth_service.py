"""Unit tests for auth/service.py -- AuthenticationService.

Covers:
- register(): validation, duplicate username, email stored only as a hash
- login(): bad username and bad password raise the same error
- change_password(), update_email(), find_by_email()
- password reset: unknown email, hourly cap, superseding, expiry, single use
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.hashing import CredentialHasher
from auth.service import AuthenticationService
from auth.tokens import TokenService
from auth.store import _reset_tokens
from core.errors import ErrorKind, PinSquirrelError

RESET_URL = "https://pinsquirrel.test/reset-password"


@pytest.fixture
def service(user_store, hasher, fake_mailer):
    return AuthenticationService(user_store, hasher, TokenService("s" * 48), mailer=fake_mailer)


def _kind(excinfo) -> ErrorKind:
    return excinfo.value.kind


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


def test_register_and_login(service):
    user = service.register("alice", "password123", "Alice@Example.com")
    assert user.id
    assert user.roles == ["user"]
    assert user.email_hash == CredentialHasher.hash_email("alice@example.com")
    assert "password123" not in user.password_hash
    assert service.login("alice", "password123").id == user.id


def test_register_blank_email_is_none(service):
    assert service.register("bob_1", "password123", "   ").email_hash is None


@pytest.mark.parametrize(
    ("username", "password", "email", "field"),
    [
        ("ab", "password123", None, "username"),
        ("a" * 21, "password123", None, "username"),
        ("bad name", "password123", None, "username"),
        ("alice", "short", None, "password"),
        ("alice", "p" * 101, None, "password"),
        ("alice", "password123", "not-an-email", "email"),
    ],
)
def test_register_validation(service, username, password, email, field):
    with pytest.raises(PinSquirrelError) as excinfo:
        service.register(username, password, email)
    assert _kind(excinfo) is ErrorKind.VALIDATION
    assert field in excinfo.value.payload["field_errors"]


def test_register_duplicate_username(service):
    service.register("alice", "password123")
    with pytest.raises(PinSquirrelError) as excinfo:
        service.register("alice", "different123")
    assert _kind(excinfo) is ErrorKind.USER_ALREADY_EXISTS


def test_register_race_on_username_is_a_duplicate(service, user_store, monkeypatch):
    service.register("alice", "password123")
    # Another request inserts the name between the lookup and the insert.
    monkeypatch.setattr(user_store, "get_by_username", lambda username: None)
    with pytest.raises(PinSquirrelError) as excinfo:
        service.register("alice", "different123")
    assert _kind(excinfo) is ErrorKind.USER_ALREADY_EXISTS


def test_login_failures_are_indistinguishable(service):
    service.register("alice", "password123")
    with pytest.raises(PinSquirrelError) as unknown:
        service.login("nobody", "password123")
    with pytest.raises(PinSquirrelError) as wrong:
        service.login("alice", "wrongpassword")
    assert _kind(unknown) is _kind(wrong) is ErrorKind.INVALID_CREDENTIALS
    assert unknown.value.message == wrong.value.message


def test_issue_session_is_decodable(service, user_store):
    user = service.register("alice", "password123")
    payload = TokenService("s" * 48).decode_access_token(service.issue_session(user))
    assert payload["user_id"] == user.id


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def test_change_password(service):
    user = service.register("alice", "password123")
    with pytest.raises(PinSquirrelError) as excinfo:
        service.change_password(user.id, "wrongpassword", "newpassword1")
    assert _kind(excinfo) is ErrorKind.INVALID_CREDENTIALS

    service.change_password(user.id, "password123", "newpassword1")
    assert service.login("alice", "newpassword1").id == user.id


def test_update_and_find_by_email(service):
    user = service.register("alice", "password123")
    assert service.find_by_email("alice@example.com") is None
    service.update_email(user.id, " ALICE@example.com ")
    assert service.find_by_email("alice@example.com").id == user.id
    service.update_email(user.id, None)
    assert service.find_by_email("alice@example.com") is None


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def test_reset_unknown_email_returns_none(service, fake_mailer):
    assert service.request_password_reset("ghost@example.com", RESET_URL) is None
    assert fake_mailer.sent == []


def test_reset_without_mailer(user_store, hasher):
    service = AuthenticationService(user_store, hasher, TokenService("s" * 48))
    with pytest.raises(PinSquirrelError) as excinfo:
        service.request_password_reset("a@example.com", RESET_URL)
    assert _kind(excinfo) is ErrorKind.RESET_NOT_CONFIGURED


def test_reset_full_flow(service, fake_mailer, user_store):
    user = service.register("alice", "password123", "alice@example.com")
    token = service.request_password_reset("Alice@Example.com", RESET_URL)

    assert fake_mailer.sent == [("Alice@Example.com", token, RESET_URL)]
    stored = user_store.get_reset_tokens_for_user(user.id)
    assert [t.token_hash for t in stored] == [TokenService.hash_token(token)]
    assert service.validate_reset_token(token) is True

    service.reset_password(token, "brandnewpass")
    assert service.login("alice", "brandnewpass").id == user.id
    assert service.validate_reset_token(token) is False
    with pytest.raises(PinSquirrelError) as excinfo:
        service.reset_password(token, "anotherpass1")
    assert _kind(excinfo) is ErrorKind.INVALID_RESET_TOKEN


def test_new_reset_request_supersedes_older_token(service):
    service.register("alice", "password123", "alice@example.com")
    first = service.request_password_reset("alice@example.com", RESET_URL)
    second = service.request_password_reset("alice@example.com", RESET_URL)
    assert service.validate_reset_token(first) is False
    assert service.validate_reset_token(second) is True


def test_reset_requests_capped_per_hour(service):
    service.register("alice", "password123", "alice@example.com")
    for _ in range(3):
        service.request_password_reset("alice@example.com", RESET_URL)
    with pytest.raises(PinSquirrelError) as excinfo:
        service.request_password_reset("alice@example.com", RESET_URL)
    assert _kind(excinfo) is ErrorKind.TOO_MANY_RESET_REQUESTS


def test_expired_reset_token(service, user_store):
    user = service.register("alice", "password123", "alice@example.com")
    token = service.request_password_reset("alice@example.com", RESET_URL)
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    with user_store.engine.connect() as conn:
        conn.execute(_reset_tokens.update().where(_reset_tokens.c.user_id == user.id).values(expires_at=past))
        conn.commit()

    assert service.validate_reset_token(token) is False
    with pytest.raises(PinSquirrelError) as excinfo:
        service.reset_password(token, "brandnewpass")
    assert _kind(excinfo) is ErrorKind.RESET_TOKEN_EXPIRED


def test_unknown_reset_token(service):
    with pytest.raises(PinSquirrelError) as excinfo:
        service.reset_password("no-such-token", "brandnewpass")
    assert _kind(excinfo) is ErrorKind.INVALID_RESET_TOKEN


def test_mail_failure_propagates(service, fake_mailer):
    fake_mailer.fail = PinSquirrelError(ErrorKind.EMAIL_SEND_FAILED)
    service.register("alice", "password123", "alice@example.com")
    with pytest.raises(PinSquirrelError) as excinfo:
        service.request_password_reset("alice@example.com", RESET_URL)
    assert _kind(excinfo) is ErrorKind.EMAIL_SEND_FAILED
