"""
mail/templates.py -- Bodies for outgoing mail. Each builder returns (text, html).
"""

from html import escape

RESET_SUBJECT = "Reset Your PinSquirrel Password"

_RESET_TEXT = """\
Reset Your PinSquirrel Password

Hello,

We received a request to reset your PinSquirrel password. If you made this \
request, visit the following link to set a new password:

{url}

This link will expire in 15 minutes for security reasons.

If you didn't request a password reset, you can safely ignore this email. \
Your password will remain unchanged.

Best regards,
The PinSquirrel Team
"""

_RESET_HTML = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Reset Your PinSquirrel Password</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
  <h1>Reset Your PinSquirrel Password</h1>
  <p>Hello,</p>
  <p>We received a request to reset your PinSquirrel password. If you made this request,
     click the link below to set a new password:</p>
  <p style="text-align: center;"><a href="{url}">Reset Password</a></p>
  <p>Or copy and paste this link into your browser:</p>
  <p style="word-break: break-all;">{url}</p>
  <p>This link will expire in 15 minutes for security reasons.</p>
  <p>If you didn't request a password reset, you can safely ignore this email.
     Your password will remain unchanged.</p>
  <p>Best regards,<br>The PinSquirrel Team</p>
</body>
</html>
"""


def password_reset(full_reset_url: str) -> tuple[str, str]:
    return _RESET_TEXT.format(url=full_reset_url), _RESET_HTML.format(url=escape(full_reset_url, quote=True))
