"""
Helpers for picking the 'latest' item out of a collection.

App Store Connect timestamps are fixed-width ISO-8601 strings
(``2026-02-20T00:00:00Z``), so lexicographic order equals chronological order
and dates are compared as plain strings.

Selection rule:
  1) the item with the greatest date wins;
  2) on equal dates, the item with the lexicographically greater identifier
     wins, so repeated runs over the same data always report the same item.

Typical use:
    latest = select_latest(versions, attribute_date("createdDate"))
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, TypeVar

from asc.pipeline.common.types import Resource, attr_str, resource_id

T = TypeVar("T")


def attribute_date(name: str) -> Callable[[Resource], str]:
    """Return a `date_of` accessor reading attribute `name` of a resource."""

    def _date_of(resource: Resource) -> str:
        return attr_str(resource, name)

    return _date_of


def select_latest(
    items: Iterable[T],
    date_of: Callable[[T], str],
    id_of: Callable[[T], str] = resource_id,  # type: ignore[assignment]
) -> Optional[T]:
    """Return the latest item of `items`, or None when `items` is empty.

    Args:
        items: Candidate items; not reordered or mutated.
        date_of: Returns the sortable date string of an item. Missing dates
            should be returned as ``""`` so they sort before any real date.
        id_of: Returns the identifier used to break ties on equal dates.

    Returns:
        The selected item, or None for an empty collection.
    """
    best: Optional[T] = None
    best_key: tuple[str, str] = ("", "")
    for current in items:
        key = (date_of(current) or "", id_of(current) or "")
        if best is None or key > best_key:
            best = current
            best_key = key
    return best


__all__ = ["attribute_date", "select_latest"]
