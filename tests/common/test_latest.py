from __future__ import annotations

from typing import Any, Callable

from asc.pipeline.common.latest import attribute_date, select_latest

Factory = Callable[..., dict[str, Any]]

created = attribute_date("createdDate")


def test_latest_date_wins(resource: Factory) -> None:
    items = [
        resource("appStoreVersions", "z", createdDate="2026-01-01T00:00:00Z"),
        resource("appStoreVersions", "a", createdDate="2026-02-20T00:00:00Z"),
        resource("appStoreVersions", "m", createdDate="2025-12-31T23:59:59Z"),
    ]
    latest = select_latest(items, created)
    assert latest is not None and latest["id"] == "a"


def test_equal_dates_break_ties_by_greater_id(resource: Factory) -> None:
    same = "2026-02-20T00:00:00Z"
    x = resource("reviewSubmissions", "x", createdDate=same)
    y = resource("reviewSubmissions", "y", createdDate=same)

    assert select_latest([x, y], created) is y
    assert select_latest([y, x], created) is y


def test_empty_collection_returns_none() -> None:
    assert select_latest([], created) is None


def test_missing_dates_sort_first(resource: Factory) -> None:
    undated = resource("builds", "zzz")
    dated = resource("builds", "aaa", createdDate="2020-01-01T00:00:00Z")

    assert select_latest([undated, dated], created) is dated
    assert select_latest([undated], created) is undated


def test_input_is_not_reordered(resource: Factory) -> None:
    items = [
        resource("builds", "1", createdDate="2024"),
        resource("builds", "2", createdDate="2026"),
    ]
    snapshot = list(items)
    select_latest(items, created)
    assert items == snapshot


def test_custom_accessors() -> None:
    rows = [("2026-01-01", "b"), ("2026-01-01", "c"), ("2025-01-01", "z")]
    latest = select_latest(rows, lambda r: r[0], lambda r: r[1])
    assert latest == ("2026-01-01", "c")
