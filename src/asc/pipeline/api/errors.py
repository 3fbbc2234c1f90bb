"""
Error types raised by the App Store Connect client.

Failures from the remote service are opaque to the engines built on top of the
client: the only distinction they act on is "not found" versus everything
else (see `is_not_found`).
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional


class ApiError(RuntimeError):
    """A request to the API failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def not_found(self) -> bool:
        return self.status == 404 or self.code == "NOT_FOUND"


class TransportError(ApiError):
    """Connection, timeout or decoding failure; no usable response."""


class RequestCancelledError(ApiError):
    """The caller's deadline expired or the call was cancelled."""


def is_not_found(exc: BaseException) -> bool:
    """Return True if `exc` is an API error reporting a missing resource."""
    return isinstance(exc, ApiError) and exc.not_found


def _summarize_api_errors(errors: Iterable[Any]) -> tuple[str, Optional[str]]:
    parts: list[str] = []
    first_code: Optional[str] = None
    for entry in errors:
        if not isinstance(entry, dict):
            continue
        code = entry.get("code") or entry.get("status")
        detail = entry.get("detail") or entry.get("title")
        if first_code is None and entry.get("code"):
            first_code = str(entry["code"])
        snippet = " ".join(filter(None, [f"[{code}]" if code else "", detail]))
        if snippet:
            parts.append(snippet)
    return "; ".join(parts), first_code


def api_error_from_response(status: int, body: bytes, reason: str = "") -> ApiError:
    """Build an `ApiError` from an HTTP error status and JSON:API error body."""
    message = ""
    code: Optional[str] = None
    try:
        payload = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("errors"), list):
        message, code = _summarize_api_errors(payload["errors"])
    if not message:
        message = f"HTTP {status}" + (f" {reason}" if reason else "")
    return ApiError(message, status=status, code=code)


__all__ = [
    "ApiError",
    "TransportError",
    "RequestCancelledError",
    "is_not_found",
    "api_error_from_response",
]
