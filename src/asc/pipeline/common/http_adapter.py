"""
requests-backed mxm-dataio `Fetcher` used to talk to the App Store Connect API.

One `HttpRequestsAdapter` owns one ``requests.Session``. Session headers carry
the User-Agent and ``Accept: application/json``; per-request headers (the
bearer token) are passed on each call and never stored on the session.

Behaviour
---------
- One attempt per `fetch`; no retries and no backoff.
- Redirects are not followed, so a request validated against the trusted
  origin is never forwarded somewhere else with its Authorization header.
- 4xx/5xx raise ``requests.HTTPError`` with the response attached; the API
  client turns these into `ApiError`.

The status dashboard shares one adapter between its section workers. Workers
only issue GETs; nothing mutates the session after construction.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Mapping, Optional

import requests
from mxm.dataio.adapters import Fetcher
from mxm.dataio.models import AdapterResult, Request
from requests import Response, Session

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "asc-pipeline/0.1"


def _elapsed_ms(resp: Response) -> Optional[int]:
    elapsed: Optional[timedelta] = getattr(resp, "elapsed", None)
    if elapsed is None:
        return None
    return int(round(elapsed.total_seconds() * 1000.0))


def _headers_dict(headers: Mapping[str, Any]) -> dict[str, str]:
    return {str(k): str(v) for k, v in headers.items()}


class HttpRequestsAdapter(Fetcher):
    """`Fetcher` over a single ``requests.Session``.

    `default_headers` are merged over the built-in User-Agent and Accept
    headers; `default_timeout` (seconds) applies when a request has none.
    """

    source: str = "http"
    default_headers: Mapping[str, str]

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        default_timeout: float = 30.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._session: Session = requests.Session()

        base: dict[str, str] = {
            "User-Agent": user_agent,
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        }
        if default_headers:
            base.update(default_headers)

        self._session.headers.update(base)
        self._default_timeout = float(default_timeout)

        coerced: dict[str, str] = _headers_dict(self._session.headers)
        self.default_headers = MappingProxyType(coerced)

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def fetch(self, request: Request) -> AdapterResult:
        """Perform the request described by ``request.params``.

        Expected ``request.params`` keys
        --------------------------------
        url : str
            Absolute URL to request (required).
        headers : Mapping[str, str] | None
            Per-request headers merged over the session defaults.
        timeout : float | None
            Per-request timeout in seconds; falls back to the adapter default.

        Raises
        ------
        ValueError
            If ``url`` is missing or empty.
        requests.HTTPError
            If the response status indicates an HTTP error (4xx/5xx).
        requests.RequestException
            For connection failures and timeouts.
        """
        params: Mapping[str, Any] = request.params or {}
        url = params.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError(
                "HttpRequestsAdapter.fetch: request.params['url'] must be a "
                "non-empty string"
            )

        method = str(request.method.value).upper()
        extra_headers: Mapping[str, str] = params.get("headers") or {}
        timeout = float(params.get("timeout") or self._default_timeout)

        logger.debug("%s %s (timeout=%.1fs)", method, url, timeout)
        resp: Response = self._session.request(
            method=method,
            url=url,
            headers=dict(extra_headers),
            timeout=timeout,
            allow_redirects=False,
        )
        resp.raise_for_status()

        return AdapterResult(
            data=resp.content,
            content_type=resp.headers.get("Content-Type"),
            transport_status=resp.status_code,
            url=resp.url,
            headers=_headers_dict(resp.headers),
            elapsed_ms=_elapsed_ms(resp),
        )

    def describe(self) -> str:
        return "App Store Connect HTTP adapter via 'requests'"

    def close(self) -> None:
        self._session.close()


__all__ = ["DEFAULT_USER_AGENT", "HttpRequestsAdapter"]
