"""
core/errors.py -- The single domain error type for PinSquirrel.

Every expected failure raised by the service layer is a PinSquirrelError whose
`kind` says what went wrong. Call sites branch on the kind rather than on a
class hierarchy:

    try:
        service.login(username, password)
    except PinSquirrelError as exc:
        if exc.kind is ErrorKind.INVALID_CREDENTIALS:
            ...

Structured details (the duplicate pin id, an HTTP status from the fetcher,
per-field validation messages) travel in `payload`, never in the message text.

Security note: messages are user-facing. They never include passwords, raw
tokens or email addresses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    # Authentication
    INVALID_CREDENTIALS = "bad_credentials"
    USER_ALREADY_EXISTS = "user_exists"
    INVALID_RESET_TOKEN = "invalid_reset_token"
    RESET_TOKEN_EXPIRED = "reset_token_expired"
    TOO_MANY_RESET_REQUESTS = "too_many_reset_requests"
    RESET_NOT_CONFIGURED = "reset_not_configured"
    EMAIL_SEND_FAILED = "email_send_failed"
    # Pins and tags
    PIN_NOT_FOUND = "pin_not_found"
    TAG_NOT_FOUND = "tag_not_found"
    DUPLICATE_PIN = "duplicate_pin"
    DUPLICATE_TAG = "duplicate_tag"
    FORBIDDEN = "forbidden"
    # Metadata fetching
    INVALID_URL = "invalid_url"
    UNSUPPORTED_PROTOCOL = "unsupported_protocol"
    FETCH_TIMEOUT = "fetch_timeout"
    FETCH_HTTP_ERROR = "fetch_http_error"
    PARSE_ERROR = "parse_error"


_DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Validation failed.",
    ErrorKind.INVALID_CREDENTIALS: "Invalid username or password.",
    ErrorKind.USER_ALREADY_EXISTS: "That username is already taken.",
    ErrorKind.INVALID_RESET_TOKEN: "Invalid or expired password reset token.",
    ErrorKind.RESET_TOKEN_EXPIRED: "Password reset token has expired.",
    ErrorKind.TOO_MANY_RESET_REQUESTS: "Too many password reset requests. Please try again later.",
    ErrorKind.RESET_NOT_CONFIGURED: "Password reset is not configured.",
    ErrorKind.EMAIL_SEND_FAILED: "Failed to send email.",
    ErrorKind.PIN_NOT_FOUND: "Pin not found.",
    ErrorKind.TAG_NOT_FOUND: "Tag not found.",
    ErrorKind.DUPLICATE_PIN: "A pin with that URL already exists.",
    ErrorKind.DUPLICATE_TAG: "A tag with that name already exists.",
    ErrorKind.FORBIDDEN: "Not allowed.",
    ErrorKind.INVALID_URL: "Invalid URL format.",
    ErrorKind.UNSUPPORTED_PROTOCOL: "Only HTTP and HTTPS URLs are supported.",
    ErrorKind.FETCH_TIMEOUT: "Request timeout.",
    ErrorKind.FETCH_HTTP_ERROR: "Failed to fetch URL content.",
    ErrorKind.PARSE_ERROR: "Failed to parse metadata.",
}


class PinSquirrelError(Exception):
    """A domain failure tagged with an ErrorKind.

    Args:
        kind:    Discriminator used by handlers to choose a response.
        message: Optional override of the kind's default user-facing message.
        payload: Structured details, e.g. field_errors={"title": [...]},
                 existing_pin_id="...", status=503.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None, **payload: Any) -> None:
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        self.payload = payload
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"PinSquirrelError({self.kind.name}, {self.message!r})"


def validation_error(field_errors: dict[str, list[str]]) -> PinSquirrelError:
    """Build a VALIDATION error from a {field: [messages]} mapping."""
    return PinSquirrelError(ErrorKind.VALIDATION, field_errors=field_errors)
