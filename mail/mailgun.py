"""
mail/mailgun.py -- Password reset delivery through the Mailgun HTTP API.

POST {base_url}/v3/{domain}/messages with HTTP basic auth ("api", api_key).
No Mailgun SDK: the API is one form-encoded POST, sent with requests like
every other outbound call in the project.

Security note: the raw reset token appears only in the outgoing message body.
It is never logged; log lines carry the Mailgun message id at most.
"""

from __future__ import annotations

import logging

import requests

from core.errors import ErrorKind, PinSquirrelError
from mail import templates

logger = logging.getLogger("pinsquirrel.mail")


class MailgunEmailService:
    """Implements the auth.service.Mailer protocol."""

    def __init__(
        self,
        api_key: str,
        domain: str,
        from_email: str,
        from_name: str = "",
        base_url: str = "https://api.mailgun.net",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._domain = domain
        self._from_email = from_email
        self._from_name = from_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def sender(self) -> str:
        return f"{self._from_name} <{self._from_email}>" if self._from_name else self._from_email

    def send_password_reset_email(self, email: str, token: str, reset_url: str) -> None:
        """Mail a link of the form {reset_url}/{token}.

        Raises PinSquirrelError(EMAIL_SEND_FAILED) on missing arguments or any
        delivery failure.
        """
        if not email or not token or not reset_url:
            raise PinSquirrelError(
                ErrorKind.EMAIL_SEND_FAILED,
                "Invalid email parameters: email, token, and reset_url are required.",
            )

        text, html = templates.password_reset(f"{reset_url.rstrip('/')}/{token}")
        self._send(to=email, subject=templates.RESET_SUBJECT, text=text, html=html)

    def _send(self, to: str, subject: str, text: str, html: str) -> None:
        try:
            resp = self._session.post(
                f"{self._base_url}/v3/{self._domain}/messages",
                auth=("api", self._api_key),
                data={"from": self.sender, "to": [to], "subject": subject, "text": text, "html": html},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Mailgun delivery failed: %s", type(e).__name__)
            raise PinSquirrelError(
                ErrorKind.EMAIL_SEND_FAILED,
                "Failed to send password reset email.",
            ) from e
        logger.info("Mailgun accepted message (status %d)", resp.status_code)
