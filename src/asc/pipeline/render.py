"""
Output rendering for the command-line surface.

Every command result is a JSON-ready mapping (``to_dict()``). JSON output is
written verbatim (compact, or indented with ``--pretty``); ``table`` output is
drawn with rich; ``markdown`` output is plain pipe tables suitable for pasting
into issues or CI summaries.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Optional, Sequence

from rich.console import Console
from rich.table import Table

from asc.pipeline.common.errors import UsageError
from asc.pipeline.common.types import Resource, attributes, resource_id

OUTPUT_FORMATS = ("json", "table", "markdown")

Row = Sequence[str]


def normalize_output(value: Optional[str]) -> str:
    fmt = (value or "json").strip().lower()
    if fmt not in OUTPUT_FORMATS:
        raise UsageError(f"--output must be one of: {', '.join(OUTPUT_FORMATS)}")
    return fmt


def dump_json(payload: Mapping[str, Any], pretty: bool = False) -> str:
    if pretty:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _table(title: Optional[str], headers: Sequence[str], rows: Sequence[Row]) -> Table:
    table = Table(title=title)
    for i, header in enumerate(headers):
        table.add_column(header, style="cyan" if i == 0 else "white")
    for row in rows:
        table.add_row(*row)
    return table


def _markdown(headers: Sequence[str], rows: Sequence[Row]) -> str:
    def esc(cell: str) -> str:
        return cell.replace("|", "\\|").replace("\n", " ")

    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines.extend("| " + " | ".join(esc(c) for c in row) + " |" for row in rows)
    return "\n".join(lines)


def emit(
    console: Console,
    payload: Mapping[str, Any],
    fmt: str,
    *,
    pretty: bool = False,
    table: Callable[[Console], None],
    markdown: Callable[[], str],
) -> None:
    """Write one result in the requested format."""
    if fmt == "json":
        console.out(dump_json(payload, pretty), highlight=False)
    elif fmt == "table":
        table(console)
    else:
        console.out(markdown(), highlight=False)


# ---------- Dashboard ----------


def _dashboard_rows(payload: Mapping[str, Any]) -> list[Row]:
    rows: list[Row] = []
    for section, value in payload.items():
        if isinstance(value, Mapping):
            for key, item in _flatten(value):
                rows.append((section, key, item))
        else:
            rows.append((section, "", str(value)))
    return rows


def _flatten(node: Mapping[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    out: list[tuple[str, str]] = []
    for key, value in node.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            out.extend(_flatten(value, f"{name}."))
        elif isinstance(value, list):
            out.append((name, ", ".join(str(v) for v in value) or "-"))
        elif isinstance(value, bool):
            out.append((name, "yes" if value else "no"))
        else:
            out.append((name, str(value)))
    return out


def render_dashboard(
    console: Console, payload: Mapping[str, Any], fmt: str, pretty: bool = False
) -> None:
    headers = ("section", "field", "value")
    rows = _dashboard_rows(payload)
    emit(
        console,
        payload,
        fmt,
        pretty=pretty,
        table=lambda c: c.print(_table("Release status", headers, rows)),
        markdown=lambda: _markdown(headers, rows),
    )


# ---------- Readiness ----------


def _issue_rows(issues: Sequence[Mapping[str, Any]]) -> list[Row]:
    rows: list[Row] = [
        (str(i["check"]), str(i["severity"]), str(i["message"])) for i in issues
    ]
    return rows or [("all", "info", "no issues found")]


def render_readiness(
    console: Console, payload: Mapping[str, Any], fmt: str, pretty: bool = False
) -> None:
    headers = ("check", "severity", "message")
    rows = _issue_rows(payload.get("issues", []))
    status = "READY" if payload.get("ready") else "NOT READY"
    target = (
        f"App: {payload.get('appId')}  Version: {payload.get('versionId')}  "
        f"Platform: {payload.get('platform')}"
    )
    counts = (
        f"Errors: {payload.get('errorCount', 0)}  "
        f"Warnings: {payload.get('warningCount', 0)}"
    )

    def table(c: Console) -> None:
        style = "green" if payload.get("ready") else "red"
        c.print(f"[bold {style}]Status: {status}[/bold {style}]")
        c.print(target)
        c.print(counts)
        c.print(_table(None, headers, rows))

    def markdown() -> str:
        return "\n\n".join(
            [
                f"**Status:** {status}",
                f"**App:** {payload.get('appId')}  "
                f"**Version:** {payload.get('versionId')}  "
                f"**Platform:** {payload.get('platform')}",
                f"**Errors:** {payload.get('errorCount', 0)}  "
                f"**Warnings:** {payload.get('warningCount', 0)}",
                _markdown(headers, rows),
            ]
        )

    emit(console, payload, fmt, pretty=pretty, table=table, markdown=markdown)


def render_product_report(
    console: Console, payload: Mapping[str, Any], fmt: str, pretty: bool = False
) -> None:
    headers = ("check", "severity", "product", "message")
    rows: list[Row] = [
        (
            str(c["check"]),
            str(c["severity"]),
            str(c.get("productId") or c.get("resourceId") or ""),
            str(c["message"]),
        )
        for c in payload.get("checks", [])
    ] or [("all", "info", "", "no issues found")]
    summary = payload.get("summary", {})
    line = (
        f"Total: {summary.get('total', 0)}  Errors: {summary.get('errors', 0)}  "
        f"Warnings: {summary.get('warnings', 0)}"
    )

    def table(c: Console) -> None:
        c.print(line)
        c.print(_table(None, headers, rows))

    emit(
        console,
        payload,
        fmt,
        pretty=pretty,
        table=table,
        markdown=lambda: f"{line}\n\n{_markdown(headers, rows)}",
    )


# ---------- Collections ----------


def resource_page_payload(
    items: Sequence[Resource], next_url: Optional[str]
) -> dict[str, Any]:
    """JSON:API-shaped document for a (possibly concatenated) page."""
    payload: dict[str, Any] = {"data": list(items)}
    payload["links"] = {"next": next_url or ""}
    return payload


def render_resources(
    console: Console,
    payload: Mapping[str, Any],
    fmt: str,
    columns: Sequence[str],
    pretty: bool = False,
) -> None:
    headers = ("id", *columns)
    rows: list[Row] = []
    for item in payload.get("data", []):
        attrs = attributes(item)
        rows.append(
            (resource_id(item), *(str(attrs.get(col, "") or "") for col in columns))
        )
    next_url = (payload.get("links") or {}).get("next") or ""

    def table(c: Console) -> None:
        c.print(_table(None, headers, rows))
        if next_url:
            c.print(f"Next: {next_url}")

    def markdown() -> str:
        text = _markdown(headers, rows)
        return f"{text}\n\nNext: {next_url}" if next_url else text

    emit(console, payload, fmt, pretty=pretty, table=table, markdown=markdown)


__all__ = [
    "OUTPUT_FORMATS",
    "normalize_output",
    "dump_json",
    "emit",
    "render_dashboard",
    "render_readiness",
    "render_product_report",
    "resource_page_payload",
    "render_resources",
]
