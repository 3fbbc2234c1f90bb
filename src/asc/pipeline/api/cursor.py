"""
Resume-cursor validation.

A resume cursor is the absolute URL found in a previous page's ``links.next``.
Users paste it back through ``--next``, so it is untrusted input: before it is
used as a request target it must parse as a URL and its scheme and host must
match the single trusted API origin. Otherwise the authenticated client could
be pointed at an arbitrary host.

The check is pure (no I/O) and always runs before the request it guards.
Two distinct failures are reported, each prefixed with the command path:

    "builds list: --next must be a valid URL: invalid URL escape "%zz""
    "builds list: --next must be an App Store Connect URL"
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional
from urllib.parse import SplitResult, urlsplit

TRUSTED_BASE_URL = "https://api.appstoreconnect.apple.com"

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})(.{0,2})", re.DOTALL)
_CONTROL_OR_SPACE = re.compile(r"[\x00-\x20\x7f]")


class Origin(NamedTuple):
    """Scheme and host (with its port, if written) that requests may be sent to.

    Ports are compared as written: ``host:443`` is a different origin from
    ``host`` even though both reach the same server.
    """

    scheme: str
    host: str
    port: Optional[int] = None

    def __str__(self) -> str:
        if self.port is None:
            return f"{self.scheme}://{self.host}"
        return f"{self.scheme}://{self.host}:{self.port}"


class CursorError(ValueError):
    """A resume cursor was rejected."""

    def __init__(self, message: str, *, command_path: str, url: str) -> None:
        super().__init__(message)
        self.command_path = command_path
        self.url = url


class MalformedCursorError(CursorError):
    """The cursor does not parse as a URL."""


class UntrustedCursorError(CursorError):
    """The cursor parses but points outside the trusted origin."""


def _parse(url: str) -> tuple[Optional[SplitResult], str]:
    """Strictly parse `url`; return (parts, "") or (None, reason)."""
    bad = _BAD_ESCAPE.search(url)
    if bad:
        return None, f'invalid URL escape "%{bad.group(1)}"'
    if _CONTROL_OR_SPACE.search(url):
        return None, "invalid control character in URL"
    try:
        parts = urlsplit(url)
        # Accessing .port validates the numeric port component.
        _ = parts.port
    except ValueError as exc:
        return None, str(exc)
    return parts, ""


def _origin_from_parts(parts: SplitResult) -> Optional[Origin]:
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if not scheme or not host:
        return None
    return Origin(scheme, host, parts.port)


def origin_of(base_url: str) -> Origin:
    """Return the origin of a configured base URL.

    Raises:
        ValueError: If `base_url` lacks a scheme or host, or does not parse.
    """
    parts, reason = _parse(base_url.strip())
    if parts is None:
        raise ValueError(f"invalid base URL {base_url!r}: {reason}")
    origin = _origin_from_parts(parts)
    if origin is None:
        raise ValueError(f"base URL must include scheme and host: {base_url!r}")
    return origin


TRUSTED_ORIGIN = origin_of(TRUSTED_BASE_URL)


def is_trusted_url(url: str, origin: Origin = TRUSTED_ORIGIN) -> bool:
    """Return True if `url` parses and belongs to `origin`."""
    parts, _ = _parse(url)
    if parts is None or parts.username is not None or parts.password is not None:
        return False
    return _origin_from_parts(parts) == origin


def validate_next_url(
    next_url: str,
    *,
    command_path: str,
    origin: Origin = TRUSTED_ORIGIN,
    flag: str = "--next",
) -> str:
    """Approve `next_url` as a request target or raise a `CursorError`.

    Args:
        next_url: Candidate resume URL (surrounding whitespace is ignored).
        command_path: Command path used as message prefix (e.g. "builds list").
        origin: The trusted API origin.
        flag: Name of the input the URL came from, for the message.

    Returns:
        The stripped URL, unchanged otherwise.

    Raises:
        MalformedCursorError: The string is not a valid URL.
        UntrustedCursorError: The URL is valid but its scheme, host or port
            differ from `origin`, it carries credentials, or it is not absolute.
    """
    url = next_url.strip()
    parts, reason = _parse(url)
    if parts is None:
        raise MalformedCursorError(
            f"{command_path}: {flag} must be a valid URL: {reason}",
            command_path=command_path,
            url=url,
        )
    if not is_trusted_url(url, origin):
        raise UntrustedCursorError(
            f"{command_path}: {flag} must be an App Store Connect URL",
            command_path=command_path,
            url=url,
        )
    return url


__all__ = [
    "TRUSTED_BASE_URL",
    "TRUSTED_ORIGIN",
    "Origin",
    "CursorError",
    "MalformedCursorError",
    "UntrustedCursorError",
    "origin_of",
    "is_trusted_url",
    "validate_next_url",
]
