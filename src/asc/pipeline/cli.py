"""
asc-pipeline command-line interface.

Commands
--------
    status                   release pipeline dashboard for one app
    submit validate          submission readiness checks for one version
    validate iap             in-app purchase review readiness
    validate subscriptions   subscription review readiness
    builds list              builds of an app          (--limit/--next/--paginate)
    versions list            App Store versions of an app
    bundle-ids list          bundle identifiers of the account

Exit status
-----------
0 on success; 2 for usage errors (reported before any request is made);
1 for every other failure, and for readiness runs that found errors; 130 when
interrupted (outstanding requests are cancelled first).
Errors go to stderr as ``Error: <command>: <cause>``; a failed command prints
nothing to stdout.

Usage
-----
    ASC_BEARER_TOKEN=... asc-pipeline status --app 123456789 --output table
    asc-pipeline builds list --app 123456789 --paginate
    asc-pipeline submit validate --app 123456789 --version 1.2.0
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from mxm.config import MXMConfig
from rich.console import Console

from asc.pipeline.api.client import (
    FETCH_ERRORS,
    AscClient,
    normalize_platform,
    resolve_app_store_version_id,
)
from asc.pipeline.api.cursor import (
    CursorError,
    Origin,
    origin_of,
    validate_next_url,
)
from asc.pipeline.api.pagination import (
    DEFAULT_PAGE_LIMIT,
    FirstPage,
    PageMode,
    ResumePage,
)
from asc.pipeline.bootstrap import build_client_from_config
from asc.pipeline.common.errors import UsageError
from asc.pipeline.config.config import (
    ENVIRONMENT_ENV_VAR,
    ConfigError,
    api_view,
    ensure_pipeline_config,
    load_config,
    logging_view,
    status_view,
)
from asc.pipeline.render import (
    normalize_output,
    render_dashboard,
    render_product_report,
    render_readiness,
    render_resources,
    resource_page_payload,
)
from asc.pipeline.status.dashboard import collect_dashboard, parse_include
from asc.pipeline.status.sections import SectionError
from asc.pipeline.validate.products import (
    collect_in_app_purchases,
    collect_subscriptions,
    validate_in_app_purchases,
    validate_subscriptions,
)
from asc.pipeline.validate.readiness import run_submit_validation

logger = logging.getLogger(__name__)

APP_ID_ENV_VAR = "ASC_APP_ID"

ClientFactory = Callable[[MXMConfig], AscClient]


class CommandFailed(Exception):
    """A command finished and reported its own output, but must exit non-zero."""


@dataclass(frozen=True)
class Runtime:
    cfg: MXMConfig
    client_factory: ClientFactory
    out: Console
    err: Console


@dataclass(frozen=True)
class ListSpec:
    """A paginated list command and the collection it reads."""

    command_path: str
    path: str
    columns: tuple[str, ...]
    needs_app: bool = True
    filter_by_app: bool = False
    sort: Optional[str] = None

    def endpoint(self, app_id: str) -> str:
        return self.path.format(app=app_id)

    def params(self, app_id: str) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.filter_by_app:
            params["filter[app]"] = app_id
        if self.sort:
            params["sort"] = self.sort
        return params


LIST_COMMANDS: dict[str, ListSpec] = {
    "builds": ListSpec(
        "builds list",
        "/v1/builds",
        ("version", "processingState", "uploadedDate"),
        filter_by_app=True,
        sort="-uploadedDate",
    ),
    "versions": ListSpec(
        "versions list",
        "/v1/apps/{app}/appStoreVersions",
        ("versionString", "platform", "appVersionState"),
    ),
    "bundle-ids": ListSpec(
        "bundle-ids list",
        "/v1/bundleIds",
        ("identifier", "name", "platform"),
        needs_app=False,
    ),
}


# ---------- Helpers ----------


def resolve_app_id(value: Optional[str]) -> str:
    """Return ``--app`` or, when absent, the ``ASC_APP_ID`` environment value."""
    app_id = (value or "").strip()
    if app_id:
        return app_id
    return os.environ.get(APP_ID_ENV_VAR, "").strip()


def _require_app(value: Optional[str]) -> str:
    app_id = resolve_app_id(value)
    if not app_id:
        raise UsageError(f"--app is required (or set {APP_ID_ENV_VAR})")
    return app_id


def _add_output_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--output",
        default="json",
        help="Output format: json (default), table or markdown.",
    )
    p.add_argument("--pretty", action="store_true", help="Indent JSON output.")


def _configure_logging(cfg: MXMConfig, verbose: bool) -> None:
    level_name = "DEBUG" if verbose else str(logging_view(cfg).level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigError(f"unknown logging.level: {level_name}")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ---------- Commands ----------


def cmd_status(args: argparse.Namespace, rt: Runtime) -> None:
    app_id = _require_app(args.app)
    includes = parse_include(args.include)
    fmt = normalize_output(args.output)
    status = status_view(rt.cfg)

    client = rt.client_factory(rt.cfg)
    try:
        snapshot = collect_dashboard(
            client,
            app_id,
            includes,
            concurrency=int(status.concurrency),
            builds_limit=int(status.builds_limit),
        )
    finally:
        client.close()
    render_dashboard(rt.out, snapshot.to_dict(), fmt, args.pretty)


def cmd_submit_validate(args: argparse.Namespace, rt: Runtime) -> None:
    version = (args.version or "").strip()
    version_id = (args.version_id or "").strip()
    if not version and not version_id:
        raise UsageError("--version or --version-id is required")
    if version and version_id:
        raise UsageError("--version and --version-id are mutually exclusive")
    app_id = _require_app(args.app)
    try:
        platform = normalize_platform(args.platform)
    except ValueError as exc:
        raise UsageError(str(exc)) from exc
    fmt = normalize_output(args.output)

    client = rt.client_factory(rt.cfg)
    try:
        if not version_id:
            version_id = resolve_app_store_version_id(client, app_id, version, platform)
        result = run_submit_validation(client, app_id, version_id, platform)
    finally:
        client.close()

    render_readiness(rt.out, result.to_dict(), fmt, args.pretty)
    if result.error_count > 0:
        raise CommandFailed(f"{result.error_count} error(s) found")


def _run_product_validation(
    args: argparse.Namespace, rt: Runtime, *, subscriptions: bool
) -> None:
    app_id = _require_app(args.app)
    fmt = normalize_output(args.output)

    client = rt.client_factory(rt.cfg)
    try:
        if subscriptions:
            report = validate_subscriptions(
                app_id, collect_subscriptions(client, app_id), args.strict
            )
        else:
            report = validate_in_app_purchases(
                app_id, collect_in_app_purchases(client, app_id), args.strict
            )
    finally:
        client.close()

    render_product_report(rt.out, report.to_dict(), fmt, args.pretty)
    if report.blocking > 0:
        raise CommandFailed(f"found {report.blocking} blocking issue(s)")


def cmd_validate_iap(args: argparse.Namespace, rt: Runtime) -> None:
    _run_product_validation(args, rt, subscriptions=False)


def cmd_validate_subscriptions(args: argparse.Namespace, rt: Runtime) -> None:
    _run_product_validation(args, rt, subscriptions=True)


def _api_origin(cfg: MXMConfig) -> Origin:
    base_url = str(api_view(cfg).base_url)
    try:
        return origin_of(base_url)
    except ValueError as exc:
        raise ConfigError(f"api.base_url is not a valid URL: {base_url}") from exc


def cmd_list(args: argparse.Namespace, rt: Runtime) -> None:
    spec: ListSpec = LIST_COMMANDS[args.resource]

    next_url = (args.next or "").strip()
    if next_url:
        # Rejected before any client exists or any request is made.
        next_url = validate_next_url(
            next_url, command_path=spec.command_path, origin=_api_origin(rt.cfg)
        )

    if args.limit is not None and not 1 <= args.limit <= DEFAULT_PAGE_LIMIT:
        raise UsageError(f"--limit must be between 1 and {DEFAULT_PAGE_LIMIT}")

    app_id = resolve_app_id(args.app)
    if spec.needs_app and not app_id and not next_url:
        raise UsageError(f"--app is required (or set {APP_ID_ENV_VAR})")
    fmt = normalize_output(args.output)

    mode: PageMode
    if next_url:
        mode = ResumePage(next_url)
    else:
        mode = FirstPage(args.limit or int(rt.cfg.api.page_limit))

    client = rt.client_factory(rt.cfg)
    try:
        if args.paginate:
            items = client.paginate(
                spec.endpoint(app_id),
                spec.params(app_id),
                mode=mode,
                command_path=spec.command_path,
            )
            payload = resource_page_payload(items, None)
        else:
            page = client.list_page(
                spec.endpoint(app_id),
                mode,
                spec.params(app_id),
                command_path=spec.command_path,
            )
            payload = resource_page_payload(page.items, page.next_url)
    finally:
        client.close()

    render_resources(rt.out, payload, fmt, spec.columns, args.pretty)


# ---------- Parser ----------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asc-pipeline",
        description="App Store Connect release pipeline tooling.",
    )
    parser.add_argument("--config", default=None, help="Extra YAML config to merge.")
    parser.add_argument(
        "--env",
        default=None,
        help=f"Config environment to select (or {ENVIRONMENT_ENV_VAR}; default: dev).",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug output to stderr."
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    p = commands.add_parser("status", help="Release pipeline dashboard for an app.")
    p.add_argument("--app", help=f"App Store Connect app ID (or {APP_ID_ENV_VAR}).")
    p.add_argument(
        "--include",
        default="",
        help="Comma-separated sections: builds,testflight,appstore,submission,"
        "review,phased-release,links (default: all).",
    )
    _add_output_flags(p)
    p.set_defaults(handler=cmd_status, command_path="status")

    submit = commands.add_parser("submit", help="Submission commands.")
    submit_cmds = submit.add_subparsers(dest="subcommand", metavar="SUBCOMMAND")
    submit_cmds.required = True
    p = submit_cmds.add_parser(
        "validate", help="Check submission readiness without submitting."
    )
    p.add_argument("--app", help=f"App Store Connect app ID (or {APP_ID_ENV_VAR}).")
    p.add_argument("--version", help="App Store version string.")
    p.add_argument("--version-id", help="App Store version ID.")
    p.add_argument(
        "--platform", default="IOS", help="IOS, MAC_OS, TV_OS or VISION_OS."
    )
    _add_output_flags(p)
    p.set_defaults(handler=cmd_submit_validate, command_path="submit validate")

    validate = commands.add_parser("validate", help="Product review readiness.")
    validate_cmds = validate.add_subparsers(dest="subcommand", metavar="SUBCOMMAND")
    validate_cmds.required = True
    for name, handler, what in (
        ("iap", cmd_validate_iap, "in-app purchases"),
        ("subscriptions", cmd_validate_subscriptions, "subscriptions"),
    ):
        p = validate_cmds.add_parser(name, help=f"Validate {what} review readiness.")
        p.add_argument("--app", help=f"App Store Connect app ID (or {APP_ID_ENV_VAR}).")
        p.add_argument(
            "--strict", action="store_true", help="Treat warnings as errors."
        )
        _add_output_flags(p)
        p.set_defaults(handler=handler, command_path=f"validate {name}")

    for resource, spec in LIST_COMMANDS.items():
        group = commands.add_parser(resource, help=f"{resource} commands.")
        group_cmds = group.add_subparsers(dest="subcommand", metavar="SUBCOMMAND")
        group_cmds.required = True
        p = group_cmds.add_parser("list", help=f"List {resource}.")
        if spec.needs_app:
            p.add_argument(
                "--app", help=f"App Store Connect app ID (or {APP_ID_ENV_VAR})."
            )
        else:
            p.set_defaults(app=None)
        p.add_argument(
            "--limit", type=int, default=None, help="Page size (1-200)."
        )
        p.add_argument(
            "--next", default=None, help="Fetch the page at this cursor URL."
        )
        p.add_argument(
            "--paginate", action="store_true", help="Fetch every remaining page."
        )
        _add_output_flags(p)
        p.set_defaults(
            handler=cmd_list, resource=resource, command_path=spec.command_path
        )

    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    client_factory: Optional[ClientFactory] = None,
    out: Optional[Console] = None,
    err: Optional[Console] = None,
) -> int:
    """Run the CLI and return the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    err = err or Console(stderr=True, highlight=False, soft_wrap=True)

    try:
        cfg = load_config(args.config, environment=args.env)
        ensure_pipeline_config(cfg)
        _configure_logging(cfg, args.verbose)
    except ConfigError as exc:
        err.print(f"Error: {exc}", markup=False)
        return 1

    rt = Runtime(
        cfg=cfg,
        client_factory=client_factory or build_client_from_config,
        out=out or Console(highlight=False, soft_wrap=True),
        err=err,
    )

    try:
        args.handler(args, rt)
    except UsageError as exc:
        err.print(f"Error: {exc}", markup=False)
        return 2
    except CursorError as exc:
        err.print(f"Error: {exc}", markup=False)
        return 1
    except (SectionError, ConfigError, CommandFailed, *FETCH_ERRORS) as exc:
        err.print(f"Error: {args.command_path}: {exc}", markup=False)
        logger.debug("%s failed", args.command_path, exc_info=True)
        return 1
    except KeyboardInterrupt:
        err.print(f"Error: {args.command_path}: interrupted", markup=False)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
