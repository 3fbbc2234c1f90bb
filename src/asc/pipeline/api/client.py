"""
App Store Connect API client.

`AscClient` turns paths into absolute URLs under the configured base URL,
adds the bearer token, sends exactly one request per call through an
mxm-dataio `Fetcher`, and decodes the JSON:API document. Requests made by one
client (and its bound copies) share one mxm-dataio `Session`. All failures
surface as `ApiError` (with a ``not_found`` flag) so callers never handle
``requests`` exceptions directly.

Collections are traversed with `asc.pipeline.api.pagination`; the typed
helpers below only name the endpoints the dashboard and readiness engines
read.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlencode

import requests
from mxm.dataio.adapters import Fetcher
from mxm.dataio.models import AdapterResult, Request, RequestMethod, Session

from asc.pipeline.api.context import CallContext
from asc.pipeline.api.cursor import (
    TRUSTED_BASE_URL,
    CursorError,
    Origin,
    is_trusted_url,
    origin_of,
)
from asc.pipeline.api.errors import (
    ApiError,
    TransportError,
    api_error_from_response,
)
from asc.pipeline.api.pagination import (
    FirstPage,
    Page,
    PageMode,
    fetch_page,
    paginate,
)
from asc.pipeline.common.types import Document, Resource, attr_str

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str]

REQUEST_KIND = "asc.api"

FETCH_ERRORS: tuple[type[Exception], ...] = (ApiError, CursorError)
"""Everything a collection fetch may raise for a remote-side problem."""

EDITABLE_VERSION_STATES = frozenset(
    {
        "PREPARE_FOR_SUBMISSION",
        "DEVELOPER_REJECTED",
        "REJECTED",
        "METADATA_REJECTED",
        "INVALID_BINARY",
        "DEVELOPER_REMOVED_FROM_SALE",
    }
)

PLATFORMS = ("IOS", "MAC_OS", "TV_OS", "VISION_OS")


class AscClient:
    """Thin JSON:API client bound to one trusted origin."""

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        base_url: str = TRUSTED_BASE_URL,
        token_provider: Optional[TokenProvider] = None,
        context: Optional[CallContext] = None,
        default_timeout: Optional[float] = None,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._origin = origin_of(self._base_url)
        self._token_provider = token_provider
        self._context = context
        self._default_timeout = default_timeout
        self._session = Session(source=fetcher.source)

    @property
    def origin(self) -> Origin:
        return self._origin

    @property
    def session(self) -> Session:
        return self._session

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def context(self) -> Optional[CallContext]:
        return self._context

    def bind(self, context: Optional[CallContext]) -> "AscClient":
        """Return a client sharing this fetcher but checking `context`."""
        bound = copy.copy(self)
        bound._context = context
        return bound

    def close(self) -> None:
        """Close the underlying fetcher (shared with any bound copies)."""
        self._fetcher.close()

    # ---------- Raw access ----------

    def url_for(self, path: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Build the absolute URL for an API path (``/v1/...``)."""
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urlencode([(k, str(v)) for k, v in params.items()])}"
        return url

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Document:
        """GET an API path and return the decoded document."""
        return self._get(self.url_for(path, params))

    def get_url(self, url: str) -> Document:
        """GET an absolute URL, which must belong to this client's origin."""
        if not is_trusted_url(url, self._origin):
            raise ApiError(f"refusing to send request outside {self._origin}: {url}")
        return self._get(url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token_provider is not None:
            headers["Authorization"] = f"Bearer {self._token_provider()}"
        return headers

    def _get(self, url: str) -> Document:
        timeout = self._default_timeout
        if self._context is not None:
            self._context.check()
            timeout = self._context.timeout_for(timeout)

        request = Request(
            session_id=self._session.id,
            kind=REQUEST_KIND,
            method=RequestMethod.GET,
            params={"url": url, "headers": self._headers(), "timeout": timeout},
        )
        try:
            result = self._fetcher.fetch(request)
        except requests.HTTPError as exc:
            resp = exc.response
            if resp is None:
                raise TransportError(str(exc)) from exc
            raise api_error_from_response(
                resp.status_code, resp.content or b"", resp.reason or ""
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"GET {url}: {exc}") from exc

        return self._decode(url, result)

    @staticmethod
    def _decode(url: str, result: AdapterResult) -> Document:
        status = result.transport_status or 200
        if status >= 400:
            raise api_error_from_response(status, result.data)
        if not result.data:
            return {}
        try:
            payload = json.loads(result.data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransportError(f"decode response from {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise TransportError(f"decode response from {url}: expected a JSON object")
        return payload

    def _single(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Resource:
        """GET a to-one endpoint; a ``null`` data member counts as not found."""
        data = self.get(path, params).get("data")
        if not isinstance(data, dict):
            raise ApiError(f"{path}: resource not found", status=404)
        return data

    def paginate(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        mode: Optional[PageMode] = None,
        command_path: str = "paginate",
    ) -> list[Resource]:
        """Return every item of a collection endpoint."""
        return paginate(self, path, mode, params=params, command_path=command_path)

    def list_page(
        self,
        path: str,
        mode: Optional[PageMode] = None,
        params: Optional[Mapping[str, Any]] = None,
        *,
        command_path: str = "list",
    ) -> Page:
        """Return exactly one page of a collection endpoint."""
        return fetch_page(
            self, path, mode or FirstPage(), params=params, command_path=command_path
        )

    # ---------- Single resources ----------

    def get_app(self, app_id: str) -> Resource:
        return self._single(f"/v1/apps/{app_id}")

    def get_build_pre_release_version(self, build_id: str) -> Resource:
        return self._single(f"/v1/builds/{build_id}/preReleaseVersion")

    def get_app_store_version(self, version_id: str) -> Resource:
        return self._single(f"/v1/appStoreVersions/{version_id}")

    def get_app_store_version_build(self, version_id: str) -> Resource:
        return self._single(f"/v1/appStoreVersions/{version_id}/build")

    def get_app_store_version_phased_release(self, version_id: str) -> Resource:
        return self._single(
            f"/v1/appStoreVersions/{version_id}/appStoreVersionPhasedRelease"
        )

    def get_age_rating_declaration(self, version_id: str) -> Resource:
        return self._single(f"/v1/appStoreVersions/{version_id}/ageRatingDeclaration")

    # ---------- Collections ----------

    def list_builds(
        self, app_id: str, *, sort: str = "-uploadedDate", limit: int = 50
    ) -> list[Resource]:
        """Return one page of the app's builds in `sort` order."""
        doc = self.get(
            "/v1/builds", {"filter[app]": app_id, "sort": sort, "limit": limit}
        )
        data = doc.get("data")
        if not isinstance(data, list):
            return []
        return [d for d in data if isinstance(d, dict)]

    def list_app_store_versions(self, app_id: str) -> list[Resource]:
        return self.paginate(f"/v1/apps/{app_id}/appStoreVersions")

    def list_review_submissions(self, app_id: str) -> list[Resource]:
        return self.paginate("/v1/reviewSubmissions", {"filter[app]": app_id})

    def list_build_beta_details(self, build_ids: list[str]) -> list[Resource]:
        return self.paginate(
            "/v1/buildBetaDetails", {"filter[build]": ",".join(build_ids)}
        )

    def list_beta_app_review_submissions(self, build_ids: list[str]) -> list[Resource]:
        return self.paginate(
            "/v1/betaAppReviewSubmissions", {"filter[build]": ",".join(build_ids)}
        )

    def list_version_localizations(self, version_id: str) -> list[Resource]:
        return self.paginate(
            f"/v1/appStoreVersions/{version_id}/appStoreVersionLocalizations"
        )

    def list_screenshot_sets(self, localization_id: str) -> list[Resource]:
        return self.paginate(
            f"/v1/appStoreVersionLocalizations/{localization_id}/appScreenshotSets"
        )

    def list_screenshots(self, screenshot_set_id: str) -> list[Resource]:
        return self.paginate(
            f"/v1/appScreenshotSets/{screenshot_set_id}/appScreenshots"
        )

    def list_app_infos(self, app_id: str) -> list[Resource]:
        return self.paginate(f"/v1/apps/{app_id}/appInfos")

    def list_app_info_localizations(self, app_info_id: str) -> list[Resource]:
        return self.paginate(f"/v1/appInfos/{app_info_id}/appInfoLocalizations")

    def list_in_app_purchases(self, app_id: str) -> list[Resource]:
        return self.paginate(f"/v1/apps/{app_id}/inAppPurchasesV2")

    def list_subscription_groups(self, app_id: str) -> list[Resource]:
        return self.paginate(f"/v1/apps/{app_id}/subscriptionGroups")

    def list_subscriptions(self, group_id: str) -> list[Resource]:
        return self.paginate(f"/v1/subscriptionGroups/{group_id}/subscriptions")


def resolve_version_state(resource: Resource) -> str:
    """Return the version state, preferring ``appVersionState``."""
    return attr_str(resource, "appVersionState") or attr_str(resource, "appStoreState")


def is_editable_state(state: str) -> bool:
    return state.strip().upper() in EDITABLE_VERSION_STATES


def normalize_platform(value: str) -> str:
    """Upper-case and validate a platform name.

    Raises:
        ValueError: If the platform is not one of `PLATFORMS`.
    """
    platform = value.strip().upper()
    if platform not in PLATFORMS:
        raise ValueError(f"--platform must be one of: {', '.join(PLATFORMS)}")
    return platform


def resolve_app_store_version_id(
    client: AscClient, app_id: str, version: str, platform: str
) -> str:
    """Look up the ID of the app's version `version` on `platform`.

    Raises:
        ApiError: If the lookup fails or no such version exists (status 404).
    """
    found = client.paginate(
        f"/v1/apps/{app_id}/appStoreVersions",
        {"filter[versionString]": version, "filter[platform]": platform},
    )
    for item in found:
        if item.get("id"):
            return str(item["id"])
    raise ApiError(
        f"app store version not found for version {version!r} ({platform})",
        status=404,
    )


__all__ = [
    "AscClient",
    "TokenProvider",
    "FETCH_ERRORS",
    "EDITABLE_VERSION_STATES",
    "PLATFORMS",
    "resolve_version_state",
    "is_editable_state",
    "normalize_platform",
    "resolve_app_store_version_id",
]
