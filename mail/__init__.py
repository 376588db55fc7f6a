"""mail/ -- Outbound email (password reset) via the Mailgun HTTP API.

Layer rule: mail/ imports only stdlib, third-party libraries, and core/.
"""
