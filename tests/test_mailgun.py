"""Unit tests for mail/mailgun.py -- password reset delivery.

A MagicMock session stands in for requests.Session; nothing leaves the process.
"""

from unittest.mock import MagicMock

import pytest
import requests

from core.errors import ErrorKind, PinSquirrelError
from mail.mailgun import MailgunEmailService


def _service(session, from_name="PinSquirrel"):
    return MailgunEmailService(
        api_key="key-123",
        domain="mg.example.com",
        from_email="noreply@example.com",
        from_name=from_name,
        base_url="https://api.mailgun.net/",
        session=session,
    )


def test_sends_reset_link():
    session = MagicMock()
    session.post.return_value.status_code = 200
    _service(session).send_password_reset_email("user@example.com", "tok123", "https://app.example.com/reset-password")

    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args[0] == "https://api.mailgun.net/v3/mg.example.com/messages"
    assert kwargs["auth"] == ("api", "key-123")
    data = kwargs["data"]
    assert data["to"] == ["user@example.com"]
    assert data["from"] == "PinSquirrel <noreply@example.com>"
    assert data["subject"] == "Reset Your PinSquirrel Password"
    assert "https://app.example.com/reset-password/tok123" in data["text"]
    assert "https://app.example.com/reset-password/tok123" in data["html"]
    assert "15 minutes" in data["text"]


def test_sender_without_name():
    assert _service(MagicMock(), from_name="").sender == "noreply@example.com"


@pytest.mark.parametrize(("email", "token", "url"), [("", "t", "u"), ("e", "", "u"), ("e", "t", "")])
def test_missing_arguments(email, token, url):
    session = MagicMock()
    with pytest.raises(PinSquirrelError) as excinfo:
        _service(session).send_password_reset_email(email, token, url)
    assert excinfo.value.kind is ErrorKind.EMAIL_SEND_FAILED
    session.post.assert_not_called()


def test_delivery_failure():
    session = MagicMock()
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
    with pytest.raises(PinSquirrelError) as excinfo:
        _service(session).send_password_reset_email("user@example.com", "tok", "https://app.example.com/r")
    assert excinfo.value.kind is ErrorKind.EMAIL_SEND_FAILED
