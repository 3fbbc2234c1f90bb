"""
Submission readiness checks for one App Store version.

`run_submit_validation` walks an ordered checklist against the live API and
accumulates every finding in a `ReadinessResult`. Checks never raise for
remote failures: each one degrades into an issue so the whole checklist is
always reported.

Classification
--------------
- version:            fetch failure                      -> error (run stops)
- version_state:      state outside EDITABLE_VERSION_STATES -> error
- build:              not found -> error, other failure   -> warning
- version_localizations: fetch failure -> warning, none   -> error
    - description empty -> error, keywords empty           -> warning
    - screenshots: sets fetch failure -> warning, no sets  -> error,
      empty set -> warning, set fetch failure              -> warning
- app_info / app_info_localizations: fetch failure -> warning, none -> error
    - name empty -> error, privacy policy URL empty        -> warning
- age_rating:         not found -> error, other failure   -> warning

`ready` is true exactly when no error was recorded; warnings never block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from asc.pipeline.api.client import (
    FETCH_ERRORS,
    AscClient,
    is_editable_state,
    resolve_version_state,
)
from asc.pipeline.api.errors import is_not_found
from asc.pipeline.common.types import attr_str, resource_id

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class ReadinessIssue:
    check: str
    severity: Severity
    message: str


@dataclass
class ReadinessResult:
    """Ordered issue list plus counts for one validated target."""

    app_id: str
    version_id: str
    platform: str
    issues: list[ReadinessIssue] = field(default_factory=list)
    error_count: int = 0
    warning_count: int = 0

    def add_error(self, check: str, message: str) -> None:
        self.issues.append(ReadinessIssue(check, "error", message))
        self.error_count += 1

    def add_warning(self, check: str, message: str) -> None:
        self.issues.append(ReadinessIssue(check, "warning", message))
        self.warning_count += 1

    @property
    def ready(self) -> bool:
        return self.error_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "versionId": self.version_id,
            "platform": self.platform,
            "issues": [
                {"check": i.check, "severity": i.severity, "message": i.message}
                for i in self.issues
            ],
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "ready": self.ready,
        }


Check = Callable[[AscClient, ReadinessResult], None]


def check_build_attached(client: AscClient, result: ReadinessResult) -> None:
    try:
        client.get_app_store_version_build(result.version_id)
    except FETCH_ERRORS as exc:
        if is_not_found(exc):
            result.add_error("build", "no build attached to this version")
        else:
            result.add_warning("build", f"unable to check build: {exc}")


def check_screenshots(
    client: AscClient, result: ReadinessResult, localization_id: str, locale: str
) -> None:
    try:
        sets = client.list_screenshot_sets(localization_id)
    except FETCH_ERRORS as exc:
        result.add_warning(
            "screenshots", f"locale {locale}: unable to check screenshots: {exc}"
        )
        return

    if not sets:
        result.add_error("screenshots", f"locale {locale}: no screenshot sets found")
        return

    for screenshot_set in sets:
        display_type = attr_str(screenshot_set, "screenshotDisplayType")
        try:
            screenshots = client.list_screenshots(resource_id(screenshot_set))
        except FETCH_ERRORS as exc:
            result.add_warning(
                "screenshots",
                f"locale {locale} ({display_type}): unable to check: {exc}",
            )
            continue
        if not screenshots:
            result.add_warning(
                "screenshots", f"locale {locale} ({display_type}): empty screenshot set"
            )


def check_version_localizations(client: AscClient, result: ReadinessResult) -> None:
    try:
        localizations = client.list_version_localizations(result.version_id)
    except FETCH_ERRORS as exc:
        result.add_warning("version_localizations", f"unable to fetch: {exc}")
        return

    if not localizations:
        result.add_error("version_localizations", "no version localizations found")
        return

    for loc in localizations:
        locale = attr_str(loc, "locale")
        if not attr_str(loc, "description"):
            result.add_error("description", f"locale {locale}: description is empty")
        if not attr_str(loc, "keywords"):
            result.add_warning("keywords", f"locale {locale}: keywords are empty")
        check_screenshots(client, result, resource_id(loc), locale)


def check_app_info_localizations(client: AscClient, result: ReadinessResult) -> None:
    try:
        app_infos = client.list_app_infos(result.app_id)
    except FETCH_ERRORS as exc:
        result.add_warning("app_info", f"unable to fetch app info: {exc}")
        return
    if not app_infos:
        result.add_error("app_info", "no app info records found")
        return

    try:
        localizations = client.list_app_info_localizations(resource_id(app_infos[0]))
    except FETCH_ERRORS as exc:
        result.add_warning("app_info_localizations", f"unable to fetch: {exc}")
        return
    if not localizations:
        result.add_error("app_info_localizations", "no app info localizations found")
        return

    for loc in localizations:
        locale = attr_str(loc, "locale")
        if not attr_str(loc, "name"):
            result.add_error("name", f"locale {locale}: app name is empty")
        if not attr_str(loc, "privacyPolicyUrl"):
            result.add_warning(
                "privacy_policy_url", f"locale {locale}: privacy policy URL is empty"
            )


def check_age_rating(client: AscClient, result: ReadinessResult) -> None:
    try:
        client.get_age_rating_declaration(result.version_id)
    except FETCH_ERRORS as exc:
        if is_not_found(exc):
            result.add_error("age_rating", "no age rating declaration found")
        else:
            result.add_warning("age_rating", f"unable to check: {exc}")


SUBMIT_CHECKS: tuple[Check, ...] = (
    check_build_attached,
    check_version_localizations,
    check_app_info_localizations,
    check_age_rating,
)


def run_submit_validation(
    client: AscClient, app_id: str, version_id: str, platform: str
) -> ReadinessResult:
    """Run the submission checklist; never raises for remote failures."""
    result = ReadinessResult(app_id=app_id, version_id=version_id, platform=platform)

    try:
        version = client.get_app_store_version(version_id)
    except FETCH_ERRORS as exc:
        result.add_error("version", f"failed to fetch version: {exc}")
        return result

    state = resolve_version_state(version)
    if not is_editable_state(state):
        result.add_error("version_state", f"version is in non-editable state: {state}")

    for check in SUBMIT_CHECKS:
        logger.debug("submit validate %s: %s", version_id, check.__name__)
        check(client, result)

    return result


__all__ = [
    "ReadinessIssue",
    "ReadinessResult",
    "SUBMIT_CHECKS",
    "run_submit_validation",
]
