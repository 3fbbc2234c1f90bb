"""
Shared typing utilities for asc-pipeline.

`JSONLike` is a recursive alias for any value produced by ``json.loads``.
App Store Connect answers with JSON:API documents; the client hands those
around as plain mappings rather than modelling the full resource schema.

- `Resource` is one JSON:API resource object
  (``{"type": ..., "id": ..., "attributes": {...}, "relationships": {...}}``).
- `Document` is a top-level response body (``data``, ``links``, ``included``).

Examples
--------
A collection document:
    {"data": [{"type": "builds", "id": "b-1", "attributes": {"version": "42"}}],
     "links": {"next": "https://api.appstoreconnect.apple.com/v1/builds?cursor=AQ"}}
"""

from __future__ import annotations

from typing import Any, TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONLike: TypeAlias = JSONScalar | list["JSONLike"] | dict[str, "JSONLike"]

Resource: TypeAlias = dict[str, Any]
Document: TypeAlias = dict[str, Any]


def resource_id(resource: Resource) -> str:
    """Return the resource identifier (``""`` when absent)."""
    return str(resource.get("id") or "")


def attributes(resource: Resource) -> dict[str, Any]:
    """Return the resource ``attributes`` mapping, tolerating ``null``."""
    attrs = resource.get("attributes")
    return attrs if isinstance(attrs, dict) else {}


def attr_str(resource: Resource, name: str) -> str:
    """Return a string attribute stripped of whitespace (``""`` when absent)."""
    value = attributes(resource).get(name)
    if value is None:
        return ""
    return str(value).strip()


__all__ = [
    "JSONScalar",
    "JSONLike",
    "Resource",
    "Document",
    "resource_id",
    "attributes",
    "attr_str",
]
