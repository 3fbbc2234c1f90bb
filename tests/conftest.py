from __future__ import annotations

import json
import threading
from typing import Any, Callable, Mapping, NamedTuple, Optional, Union
from urllib.parse import parse_qsl, urlsplit

import pytest
from mxm.dataio.adapters import Fetcher
from mxm.dataio.models import AdapterResult, Request

from asc.pipeline.api.client import AscClient

API = "https://api.appstoreconnect.apple.com"


class Sent(NamedTuple):
    """What the fake saw for one request, unpacked from ``Request.params``."""

    url: str
    method: str
    headers: Mapping[str, str]
    timeout: Optional[float]
    request: Request


Reply = Union[Mapping[str, Any], BaseException, Callable[[Sent], Any]]


class FakeFetcher(Fetcher):
    """In-memory mxm-dataio `Fetcher` answering canned JSON:API documents.

    Routes are keyed by absolute URL or by path. A URL route only matches that
    exact URL (used for cursor pages); a path route matches any query string.
    A route value is a document, an exception to raise, or a callable taking
    the `Sent` record.
    """

    source = "fake"

    def __init__(self) -> None:
        self._routes: dict[str, tuple[Reply, int]] = {}
        self._lock = threading.Lock()
        self.calls: list[Sent] = []
        self.closed = False

    def add(self, key: str, reply: Reply, *, status: int = 200) -> "FakeFetcher":
        self._routes[key] = (reply, status)
        return self

    def not_found(self, key: str) -> "FakeFetcher":
        body = {"errors": [{"status": "404", "code": "NOT_FOUND", "detail": "gone"}]}
        return self.add(key, body, status=404)

    def fetch(self, request: Request) -> AdapterResult:
        params = request.params or {}
        sent = Sent(
            url=str(params["url"]),
            method=str(request.method.value),
            headers=dict(params.get("headers") or {}),
            timeout=params.get("timeout"),
            request=request,
        )
        with self._lock:
            self.calls.append(sent)
        parts = urlsplit(sent.url)
        route = self._routes.get(sent.url) or self._routes.get(parts.path)
        if route is None:
            raise AssertionError(f"unexpected request: {sent.url}")
        reply, status = route
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(sent)
        return AdapterResult(
            data=json.dumps(reply).encode("utf-8"),
            content_type="application/json",
            transport_status=status,
            url=sent.url,
        )

    def paths(self) -> list[str]:
        return [urlsplit(c.url).path for c in self.calls]

    def query(self, index: int) -> dict[str, str]:
        return dict(parse_qsl(urlsplit(self.calls[index].url).query))

    def describe(self) -> str:
        return "fake fetcher"

    def close(self) -> None:
        self.closed = True


def make_resource(type_: str, id_: str, **attrs: Any) -> dict[str, Any]:
    return {"type": type_, "id": id_, "attributes": dict(attrs)}


def make_doc(data: Any, next_url: Optional[str] = None) -> dict[str, Any]:
    doc: dict[str, Any] = {"data": data}
    if next_url is not None:
        doc["links"] = {"next": next_url}
    return doc


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def client(fetcher: FakeFetcher) -> AscClient:
    return AscClient(fetcher, token_provider=lambda: "test-token")


@pytest.fixture
def resource() -> Callable[..., dict[str, Any]]:
    """Factory: ``resource("builds", "b-1", version="42")``."""
    return make_resource


@pytest.fixture
def doc() -> Callable[..., dict[str, Any]]:
    """Factory: ``doc([...], next_url=None)`` builds a JSON:API document."""
    return make_doc
