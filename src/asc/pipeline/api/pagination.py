"""
Cursor pagination over App Store Connect collection endpoints.

Protocol
--------
- The first page is requested by endpoint path with a bounded ``limit``
  (`FirstPage`), unless the caller resumes from an absolute cursor URL
  (`ResumePage`), in which case the URL already encodes the page size.
- Each response carries ``links.next``; absent or empty means "last page".
  The link is followed verbatim and never re-derived from page content.
- Every link (including the resume URL) is checked against the client's
  trusted origin before it is requested.

Traversal is a lazy, finite, non-restartable generator: one request per
step, items concatenated in fetch order without de-duplication. `paginate`
materializes the whole collection and either returns every item or raises;
a failure on page N discards pages 1..N-1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Protocol, Union

from asc.pipeline.api.cursor import Origin, validate_next_url
from asc.pipeline.api.errors import TransportError
from asc.pipeline.common.types import Document, Resource

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 200
"""Maximum page size accepted by the API."""


@dataclass(frozen=True)
class FirstPage:
    """Start a traversal at the endpoint with a page size."""

    limit: Optional[int] = DEFAULT_PAGE_LIMIT


@dataclass(frozen=True)
class ResumePage:
    """Continue a traversal from an absolute cursor URL."""

    url: str


PageMode = Union[FirstPage, ResumePage]


@dataclass(frozen=True)
class Page:
    """One decoded page: its items and the link to the next page."""

    items: list[Resource] = field(default_factory=list)
    next_url: Optional[str] = None
    document: Document = field(default_factory=dict, repr=False)


class PageSource(Protocol):
    """What the paginator needs from a client."""

    @property
    def origin(self) -> Origin: ...

    def get(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Document: ...

    def get_url(self, url: str) -> Document: ...


def parse_page(document: Document) -> Page:
    """Decode a collection document into a `Page`.

    Raises:
        TransportError: If ``data`` is not a list of resource objects.
    """
    data = document.get("data")
    if data is None:
        data = []
    if not isinstance(data, list):
        raise TransportError("decode page: 'data' is not a list")
    items: list[Resource] = []
    for item in data:
        if not isinstance(item, dict):
            raise TransportError("decode page: resource is not an object")
        items.append(item)

    links = document.get("links")
    next_url: Optional[str] = None
    if isinstance(links, dict):
        raw = links.get("next")
        if isinstance(raw, str) and raw.strip():
            next_url = raw.strip()
    return Page(items=items, next_url=next_url, document=document)


def _first_params(
    params: Optional[Mapping[str, Any]], limit: Optional[int]
) -> dict[str, Any]:
    merged: dict[str, Any] = dict(params or {})
    if limit is not None:
        merged["limit"] = int(limit)
    return merged


def fetch_page(
    client: PageSource,
    path: str,
    mode: PageMode,
    *,
    params: Optional[Mapping[str, Any]] = None,
    command_path: str = "paginate",
) -> Page:
    """Fetch exactly one page, either the first one or the one at a cursor."""
    if isinstance(mode, ResumePage):
        url = validate_next_url(
            mode.url, command_path=command_path, origin=client.origin
        )
        return parse_page(client.get_url(url))
    return parse_page(client.get(path, _first_params(params, mode.limit)))


def iter_pages(
    client: PageSource,
    path: str,
    mode: Optional[PageMode] = None,
    *,
    params: Optional[Mapping[str, Any]] = None,
    command_path: str = "paginate",
) -> Iterator[Page]:
    """Yield pages lazily until the API reports no further page."""
    page = fetch_page(
        client, path, mode or FirstPage(), params=params, command_path=command_path
    )
    count = 1
    yield page
    while page.next_url:
        url = validate_next_url(
            page.next_url,
            command_path=command_path,
            origin=client.origin,
            flag="links.next",
        )
        page = parse_page(client.get_url(url))
        count += 1
        logger.debug("%s: fetched page %d (%d items)", path, count, len(page.items))
        yield page


def iter_items(
    client: PageSource,
    path: str,
    mode: Optional[PageMode] = None,
    *,
    params: Optional[Mapping[str, Any]] = None,
    command_path: str = "paginate",
) -> Iterator[Resource]:
    """Yield the items of every page, in fetch order."""
    for page in iter_pages(
        client, path, mode, params=params, command_path=command_path
    ):
        yield from page.items


def paginate(
    client: PageSource,
    path: str,
    mode: Optional[PageMode] = None,
    *,
    params: Optional[Mapping[str, Any]] = None,
    command_path: str = "paginate",
) -> list[Resource]:
    """Return every item of the collection, or raise on the first failure."""
    return list(
        iter_items(client, path, mode, params=params, command_path=command_path)
    )


__all__ = [
    "DEFAULT_PAGE_LIMIT",
    "FirstPage",
    "ResumePage",
    "PageMode",
    "Page",
    "PageSource",
    "parse_page",
    "fetch_page",
    "iter_pages",
    "iter_items",
    "paginate",
]
