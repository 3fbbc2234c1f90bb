from __future__ import annotations

from typing import Any, Callable

import pytest
from conftest import API, FakeFetcher

from asc.pipeline.api.client import AscClient
from asc.pipeline.api.cursor import MalformedCursorError, UntrustedCursorError
from asc.pipeline.api.errors import ApiError, TransportError
from asc.pipeline.api.pagination import (
    DEFAULT_PAGE_LIMIT,
    FirstPage,
    ResumePage,
    fetch_page,
    iter_pages,
    paginate,
    parse_page,
)

Factory = Callable[..., dict[str, Any]]

PAGE_2 = f"{API}/v1/apps/app-1/appStoreVersions?cursor=AQ&limit=200"


def test_two_page_traversal_concatenates_in_order(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add(
        "/v1/apps/app-1/appStoreVersions",
        doc([resource("appStoreVersions", "A")], next_url=PAGE_2),
    )
    fetcher.add(PAGE_2, doc([resource("appStoreVersions", "B")], next_url=""))

    items = paginate(client, "/v1/apps/app-1/appStoreVersions")

    assert [i["id"] for i in items] == ["A", "B"]
    assert len(fetcher.calls) == 2
    assert fetcher.query(0)["limit"] == str(DEFAULT_PAGE_LIMIT)
    # The link is followed verbatim.
    assert fetcher.calls[1].url == PAGE_2


def test_items_are_not_deduplicated(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add("/v1/builds", doc([resource("builds", "X")], next_url=PAGE_2))
    fetcher.add(PAGE_2, doc([resource("builds", "X")]))

    assert [i["id"] for i in paginate(client, "/v1/builds")] == ["X", "X"]


def test_resume_from_cursor_skips_first_page(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    page_3 = f"{API}/v1/bundleIds?cursor=BQ&limit=200"
    fetcher.add(PAGE_2, doc([resource("bundleIds", "2")], next_url=page_3))
    fetcher.add(page_3, doc([resource("bundleIds", "3")], next_url=None))

    items = paginate(client, "/v1/bundleIds", ResumePage(PAGE_2))

    assert [i["id"] for i in items] == ["2", "3"]
    assert [c.url for c in fetcher.calls] == [PAGE_2, page_3]


def test_resume_cursor_is_validated_before_any_request(
    client: AscClient, fetcher: FakeFetcher
) -> None:
    with pytest.raises(UntrustedCursorError, match="builds list: --next must be"):
        paginate(
            client,
            "/v1/builds",
            ResumePage("https://evil.example/v1/builds?cursor=AQ"),
            command_path="builds list",
        )
    with pytest.raises(MalformedCursorError):
        paginate(client, "/v1/builds", ResumePage(f"{API}/%zz"))
    assert fetcher.calls == []


def test_untrusted_next_link_stops_traversal(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add(
        "/v1/builds",
        doc([resource("builds", "A")], next_url="https://evil.example/v1/builds"),
    )

    with pytest.raises(UntrustedCursorError, match="links.next"):
        paginate(client, "/v1/builds")
    assert len(fetcher.calls) == 1


def test_failure_on_later_page_discards_everything(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add("/v1/builds", doc([resource("builds", "A")], next_url=PAGE_2))
    fetcher.add(PAGE_2, {"errors": [{"code": "INTERNAL", "detail": "boom"}]}, status=500)

    with pytest.raises(ApiError) as ei:
        paginate(client, "/v1/builds")
    assert ei.value.status == 500
    assert "[INTERNAL] boom" in str(ei.value)


def test_iter_pages_is_lazy(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add("/v1/builds", doc([resource("builds", "A")], next_url=PAGE_2))
    fetcher.add(PAGE_2, doc([resource("builds", "B")]))

    pages = iter_pages(client, "/v1/builds", FirstPage(limit=1))
    first = next(pages)

    assert [i["id"] for i in first.items] == ["A"]
    assert first.next_url == PAGE_2
    assert len(fetcher.calls) == 1
    assert fetcher.query(0)["limit"] == "1"

    assert [p.next_url for p in pages] == [None]
    assert len(fetcher.calls) == 2


def test_fetch_page_returns_exactly_one_page(
    client: AscClient, fetcher: FakeFetcher, resource: Factory, doc: Factory
) -> None:
    fetcher.add("/v1/builds", doc([resource("builds", "A")], next_url=PAGE_2))

    page = fetch_page(client, "/v1/builds", FirstPage(), params={"filter[app]": "1"})

    assert [i["id"] for i in page.items] == ["A"]
    assert page.next_url == PAGE_2
    assert fetcher.query(0) == {"filter[app]": "1", "limit": "200"}


@pytest.mark.parametrize("link", [None, "", "   "])
def test_parse_page_terminal_links(link: Any) -> None:
    document: dict[str, Any] = {"data": []}
    if link is not None:
        document["links"] = {"next": link, "self": f"{API}/v1/builds"}
    assert parse_page(document).next_url is None


def test_parse_page_rejects_non_list_data() -> None:
    with pytest.raises(TransportError):
        parse_page({"data": {"id": "1"}})
