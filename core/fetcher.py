"""
fetcher.py -- Outbound HTTP for page metadata, behind an SSRF guard.

PinSquirrel fetches arbitrary user-supplied URLs to pre-fill a pin's title and
description. Every URL goes through validate_url_for_fetching() first so the
server cannot be used to reach internal services.
"""

from __future__ import annotations

import codecs
import ipaddress
import logging
import socket
from urllib.parse import urljoin, urlsplit

import requests

from core.errors import ErrorKind, PinSquirrelError

logger = logging.getLogger("pinsquirrel.fetcher")

USER_AGENT = "Mozilla/5.0 (compatible; PinSquirrel/1.0; +https://pinsquirrel.com)"
DEFAULT_TIMEOUT = 10.0
# Only the start of a page is parsed; <title> and <meta> live in <head>.
MAX_CONTENT_CHARS = 1024 * 1024
MAX_REDIRECTS = 3
_CHUNK_SIZE = 64 * 1024

_BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"})

# Module-level session shared across all fetcher calls for connection pooling.
# Redirects are followed by fetch_html() itself so every hop is checked first.
_session = requests.Session()
_session.headers.update(
    {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    }
)


# ---------------------------------------------------------------------------
# SSRF guard
# ---------------------------------------------------------------------------


def _is_blocked_address(addr: str) -> bool:
    try:
        ip = ipaddress.ip_address(addr.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def _resolve(hostname: str) -> list[str]:
    try:
        infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        raise PinSquirrelError(ErrorKind.INVALID_URL, "Could not resolve host.") from e
    return [info[4][0] for info in infos]


def validate_url_for_fetching(url: str) -> str:
    """Return the URL unchanged if it is safe to fetch, else raise PinSquirrelError.

    Rules:
      - scheme must be http or https (UNSUPPORTED_PROTOCOL otherwise)
      - a hostname is required
      - localhost and *.local names are rejected
      - an IP literal, or every address the name resolves to, must be public
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise PinSquirrelError(ErrorKind.INVALID_URL) from e
    if not parts.scheme or not parts.netloc:
        raise PinSquirrelError(ErrorKind.INVALID_URL)
    if parts.scheme.lower() not in ("http", "https"):
        raise PinSquirrelError(ErrorKind.UNSUPPORTED_PROTOCOL)

    hostname = (parts.hostname or "").rstrip(".").lower()
    if not hostname:
        raise PinSquirrelError(ErrorKind.INVALID_URL)
    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith((".localhost", ".local")):
        raise PinSquirrelError(ErrorKind.INVALID_URL, "Access to internal hosts is not allowed.")

    try:
        ipaddress.ip_address(hostname)
        addresses = [hostname]
    except ValueError:
        addresses = _resolve(hostname)

    if not addresses or any(_is_blocked_address(a) for a in addresses):
        logger.warning("Blocked metadata fetch to non-public host %s", hostname)
        raise PinSquirrelError(ErrorKind.INVALID_URL, "Access to internal hosts is not allowed.")
    return url.strip()


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


def _get(url: str, timeout: float) -> requests.Response:
    try:
        return _session.get(url, timeout=timeout, allow_redirects=False, stream=True)
    except requests.Timeout as e:
        logger.info("Metadata fetch timed out for %s", url)
        raise PinSquirrelError(ErrorKind.FETCH_TIMEOUT) from e
    except requests.RequestException as e:
        logger.warning("Metadata fetch failed for %s: %s", url, e)
        raise PinSquirrelError(ErrorKind.FETCH_HTTP_ERROR) from e


def _read_text(resp: requests.Response) -> str:
    """Decode at most MAX_CONTENT_CHARS of the body without buffering the rest."""
    try:
        decoder = codecs.getincrementaldecoder(resp.encoding or "utf-8")(errors="replace")
    except LookupError:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    parts: list[str] = []
    size = 0
    try:
        for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
            text = decoder.decode(chunk)
            parts.append(text)
            size += len(text)
            if size >= MAX_CONTENT_CHARS:
                break
        else:
            parts.append(decoder.decode(b"", final=True))
    except requests.Timeout as e:
        raise PinSquirrelError(ErrorKind.FETCH_TIMEOUT) from e
    except requests.RequestException as e:
        raise PinSquirrelError(ErrorKind.FETCH_HTTP_ERROR) from e
    return "".join(parts)[:MAX_CONTENT_CHARS]


def fetch_html(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """GET the URL and return the start of its body as text.

    Redirects are followed by hand, at most MAX_REDIRECTS of them, and each
    target passes validate_url_for_fetching() before it is requested.

    Raises:
        PinSquirrelError(FETCH_TIMEOUT)     -- connect or read timed out
        PinSquirrelError(FETCH_HTTP_ERROR)  -- non-2xx status (payload status=<code>),
                                               too many redirects, or connection failure
        PinSquirrelError(INVALID_URL)       -- a redirect points at an internal host
    """
    current = url
    redirects = 0
    while True:
        resp = _get(current, timeout)
        if not resp.is_redirect:
            break
        location = resp.headers.get("location", "")
        resp.close()
        if redirects >= MAX_REDIRECTS:
            raise PinSquirrelError(ErrorKind.FETCH_HTTP_ERROR, "Too many redirects.")
        redirects += 1
        current = validate_url_for_fetching(urljoin(current, location))

    try:
        if resp.status_code >= 400:
            raise PinSquirrelError(
                ErrorKind.FETCH_HTTP_ERROR,
                f"HTTP {resp.status_code}",
                status=resp.status_code,
            )
        return _read_text(resp)
    finally:
        resp.close()
