"""
Release pipeline dashboard for one app.

`collect_dashboard` resolves the app identity, then fills the requested
sections concurrently through `run_sections`. Sections sharing a fetch are
grouped into one task:

    builds/testflight        builds, beta build details, beta review submissions
    appstore/phased-release  app store versions, phased release of the latest
    submission/review        review submissions

If any task fails the whole snapshot is discarded and the error (prefixed with
the section name) is raised; callers never see a partially-filled snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Optional

from asc.pipeline.api.client import AscClient, resolve_version_state
from asc.pipeline.api.errors import ApiError, is_not_found
from asc.pipeline.common.errors import UsageError
from asc.pipeline.common.latest import attribute_date, select_latest
from asc.pipeline.common.types import Resource, attr_str, attributes, resource_id
from asc.pipeline.status.sections import (
    DEFAULT_SECTION_CONCURRENCY,
    SectionTask,
    run_sections,
)

logger = logging.getLogger(__name__)

ALLOWED_INCLUDES = (
    "builds",
    "testflight",
    "appstore",
    "submission",
    "review",
    "phased-release",
    "links",
)

DISTRIBUTED_BUILD_STATES = frozenset({"IN_BETA_TESTING", "READY_FOR_TESTING"})

IN_FLIGHT_SUBMISSION_STATES = frozenset(
    {
        "READY_FOR_REVIEW",
        "WAITING_FOR_REVIEW",
        "IN_REVIEW",
        "UNRESOLVED_ISSUES",
        "CANCELING",
    }
)

CONSOLE_URL = "https://appstoreconnect.apple.com"


@dataclass(frozen=True)
class IncludeSet:
    builds: bool = False
    testflight: bool = False
    appstore: bool = False
    submission: bool = False
    review: bool = False
    phased_release: bool = False
    links: bool = False

    @classmethod
    def everything(cls) -> "IncludeSet":
        return cls(True, True, True, True, True, True, True)


def parse_include(value: Optional[str]) -> IncludeSet:
    """Parse a comma-separated ``--include`` value; empty selects everything.

    Raises:
        UsageError: If a section name is not one of `ALLOWED_INCLUDES`.
    """
    parts = [p.strip() for p in (value or "").lower().split(",") if p.strip()]
    if not parts:
        return IncludeSet.everything()

    selected: dict[str, bool] = {}
    for part in parts:
        if part not in ALLOWED_INCLUDES:
            raise UsageError(
                f"--include contains unsupported section {part!r} "
                f"(allowed: {','.join(ALLOWED_INCLUDES)})"
            )
        selected[part.replace("-", "_")] = True
    return IncludeSet(**selected)


# ---------- Snapshot model ----------

# Fields marked omitempty are left out of JSON output when empty or zero;
# every other field is always written. None is never written.
_OMITEMPTY = {"omitempty": True}


def _optional(default: Any = "") -> Any:
    return field(default=default, metadata=_OMITEMPTY)


@dataclass
class AppIdentity:
    id: str
    bundleId: str = ""
    name: str = ""


@dataclass
class LatestBuild:
    id: str
    buildNumber: str = ""
    version: str = _optional()
    processingState: str = _optional()
    uploadedDate: str = _optional()
    platform: str = _optional()


@dataclass
class BuildsSection:
    latest: Optional[LatestBuild] = None


@dataclass
class TestFlightSection:
    latestDistributedBuildId: str = _optional()
    betaReviewState: str = _optional()
    externalBuildState: str = _optional()
    submittedDate: str = _optional()


@dataclass
class AppStoreSection:
    versionId: str = _optional()
    version: str = _optional()
    state: str = _optional()
    platform: str = _optional()
    createdDate: str = _optional()


@dataclass
class SubmissionSection:
    inFlight: bool = False
    blockingIssues: list[str] = field(default_factory=list)


@dataclass
class ReviewSection:
    latestSubmissionId: str = _optional()
    state: str = _optional()
    submittedDate: str = _optional()
    platform: str = _optional()


@dataclass
class PhasedReleaseSection:
    configured: bool = False
    id: str = _optional()
    state: str = _optional()
    startDate: str = _optional()
    currentDayNumber: int = _optional(0)
    totalPauseDuration: int = _optional(0)


@dataclass
class LinksSection:
    appStoreConnect: str
    testFlight: str
    review: str


@dataclass
class DashboardSnapshot:
    """Composite dashboard; optional sections stay None unless requested."""

    app: AppIdentity
    builds: Optional[BuildsSection] = None
    testflight: Optional[TestFlightSection] = None
    appstore: Optional[AppStoreSection] = None
    submission: Optional[SubmissionSection] = None
    review: Optional[ReviewSection] = None
    phasedRelease: Optional[PhasedReleaseSection] = None
    links: Optional[LinksSection] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping without absent sections or empty omitempty fields."""
        return _to_json(self)


def _to_json(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        if f.metadata.get("omitempty") and not value:
            continue
        if is_dataclass(value):
            out[f.name] = _to_json(value)
        elif isinstance(value, list):
            out[f.name] = list(value)
        else:
            out[f.name] = value
    return out


# ---------- Section fillers ----------


def _relationship_id(resource: Resource, key: str) -> str:
    """Return the ID of to-one relationship `key`.

    Raises:
        ApiError: If the relationship or its ID is missing.
    """
    rels = resource.get("relationships")
    ref = rels.get(key) if isinstance(rels, dict) else None
    data = ref.get("data") if isinstance(ref, dict) else None
    rel_id = str(data.get("id") or "").strip() if isinstance(data, dict) else ""
    if not rel_id:
        raise ApiError(f"missing {key} relationship")
    return rel_id


def fill_builds_and_testflight(
    client: AscClient,
    app_id: str,
    includes: IncludeSet,
    snapshot: DashboardSnapshot,
    *,
    builds_limit: int = 50,
) -> None:
    builds = client.list_builds(app_id, sort="-uploadedDate", limit=builds_limit)
    latest = builds[0] if builds else None

    if includes.builds:
        section = BuildsSection()
        if latest is not None:
            entry = LatestBuild(
                id=resource_id(latest),
                buildNumber=attr_str(latest, "version"),
                processingState=attr_str(latest, "processingState"),
                uploadedDate=attr_str(latest, "uploadedDate"),
            )
            try:
                pre_release = client.get_build_pre_release_version(entry.id)
            except ApiError as exc:
                if not is_not_found(exc):
                    raise
            else:
                entry.version = attr_str(pre_release, "version")
                entry.platform = attr_str(pre_release, "platform")
            section.latest = entry
        snapshot.builds = section

    if not includes.testflight:
        return

    section_tf = TestFlightSection()
    if not builds:
        snapshot.testflight = section_tf
        return

    build_ids = [resource_id(b) for b in builds]
    external_state: dict[str, str] = {}
    for detail in client.list_build_beta_details(build_ids):
        build_id = _relationship_id(detail, "build")
        external_state[build_id] = attr_str(detail, "externalBuildState")

    for build in builds:
        state = external_state.get(resource_id(build), "").upper()
        if state in DISTRIBUTED_BUILD_STATES:
            section_tf.latestDistributedBuildId = resource_id(build)
            section_tf.externalBuildState = state
            break

    reviews = client.list_beta_app_review_submissions(build_ids)
    latest_review = select_latest(reviews, attribute_date("submittedDate"))
    if latest_review is not None:
        section_tf.betaReviewState = attr_str(latest_review, "betaReviewState")
        section_tf.submittedDate = attr_str(latest_review, "submittedDate")

    snapshot.testflight = section_tf


def fill_appstore_and_phased_release(
    client: AscClient,
    app_id: str,
    includes: IncludeSet,
    snapshot: DashboardSnapshot,
) -> None:
    versions = client.list_app_store_versions(app_id)
    latest = select_latest(versions, attribute_date("createdDate"))

    if includes.appstore:
        section = AppStoreSection()
        if latest is not None:
            section.versionId = resource_id(latest)
            section.version = attr_str(latest, "versionString")
            section.state = resolve_version_state(latest)
            section.platform = attr_str(latest, "platform")
            section.createdDate = attr_str(latest, "createdDate")
        snapshot.appstore = section

    if not includes.phased_release:
        return

    phased = PhasedReleaseSection()
    if latest is not None:
        try:
            release = client.get_app_store_version_phased_release(resource_id(latest))
        except ApiError as exc:
            if not is_not_found(exc):
                raise
        else:
            attrs = attributes(release)
            phased.configured = True
            phased.id = resource_id(release)
            phased.state = attr_str(release, "phasedReleaseState")
            phased.startDate = attr_str(release, "startDate")
            phased.currentDayNumber = int(attrs.get("currentDayNumber") or 0)
            phased.totalPauseDuration = int(attrs.get("totalPauseDuration") or 0)
    snapshot.phasedRelease = phased


def fill_submission_and_review(
    client: AscClient,
    app_id: str,
    includes: IncludeSet,
    snapshot: DashboardSnapshot,
) -> None:
    submissions = client.list_review_submissions(app_id)

    if includes.submission:
        section = SubmissionSection()
        for submission in submissions:
            state = attr_str(submission, "state").upper()
            if state in IN_FLIGHT_SUBMISSION_STATES:
                section.inFlight = True
            if state == "UNRESOLVED_ISSUES":
                section.blockingIssues.append(
                    f"submission {resource_id(submission)} has unresolved issues"
                )
        section.blockingIssues.sort()
        snapshot.submission = section

    if includes.review:
        section_rv = ReviewSection()
        latest = select_latest(submissions, attribute_date("submittedDate"))
        if latest is not None:
            section_rv.latestSubmissionId = resource_id(latest)
            section_rv.state = attr_str(latest, "state")
            section_rv.submittedDate = attr_str(latest, "submittedDate")
            section_rv.platform = attr_str(latest, "platform")
        snapshot.review = section_rv


def build_links(app_id: str) -> LinksSection:
    return LinksSection(
        appStoreConnect=f"{CONSOLE_URL}/apps/{app_id}",
        testFlight=f"{CONSOLE_URL}/apps/{app_id}/testflight/ios",
        review=f"{CONSOLE_URL}/apps/{app_id}/appstore/review",
    )


def collect_dashboard(
    client: AscClient,
    app_id: str,
    includes: IncludeSet,
    *,
    concurrency: int = DEFAULT_SECTION_CONCURRENCY,
    builds_limit: int = 50,
) -> DashboardSnapshot:
    """Build the dashboard snapshot for `app_id`.

    Raises:
        ApiError: If the app itself cannot be fetched.
        SectionError: If any requested section fails.
    """
    app = client.get_app(app_id)
    snapshot = DashboardSnapshot(
        app=AppIdentity(
            id=resource_id(app),
            bundleId=attr_str(app, "bundleId"),
            name=attr_str(app, "name"),
        )
    )

    if includes.links:
        snapshot.links = build_links(app_id)

    tasks: list[SectionTask] = []
    if includes.builds or includes.testflight:
        tasks.append(
            SectionTask(
                "builds/testflight",
                lambda: fill_builds_and_testflight(
                    client, app_id, includes, snapshot, builds_limit=builds_limit
                ),
            )
        )
    if includes.appstore or includes.phased_release:
        tasks.append(
            SectionTask(
                "appstore/phased-release",
                lambda: fill_appstore_and_phased_release(
                    client, app_id, includes, snapshot
                ),
            )
        )
    if includes.submission or includes.review:
        tasks.append(
            SectionTask(
                "submission/review",
                lambda: fill_submission_and_review(client, app_id, includes, snapshot),
            )
        )

    logger.debug("status %s: running %d section task(s)", app_id, len(tasks))
    run_sections(tasks, concurrency, client.context)
    return snapshot


__all__ = [
    "ALLOWED_INCLUDES",
    "IncludeSet",
    "parse_include",
    "DashboardSnapshot",
    "collect_dashboard",
    "fill_builds_and_testflight",
    "fill_appstore_and_phased_release",
    "fill_submission_and_review",
    "build_links",
]
