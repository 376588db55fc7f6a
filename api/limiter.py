"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and by the v1 routers that
apply per-route limits with @limiter.limit() (login, register, password
reset, metadata fetch).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limit strings come from Settings so deployments can tune them; they are read
through callables, which slowapi evaluates per request.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit


def reset_limit() -> str:
    return get_settings().reset_rate_limit


def metadata_limit() -> str:
    return get_settings().metadata_rate_limit
