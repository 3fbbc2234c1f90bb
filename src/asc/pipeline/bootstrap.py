"""
Build an App Store Connect client from configuration.

This module wires the requests-based HTTP adapter and the API client using
values sourced from the package config. It performs **no side effects on
import**; callers (the CLI, scripts or tests) invoke
`build_client_from_config(cfg)` once the config is loaded.

Configuration
-------------
    api:
      base_url: "https://api.appstoreconnect.apple.com"
      timeout_seconds: 120.0
    http:
      user_agent: "asc-pipeline/0.1"
      default_timeout: 30.0
      default_headers:
        Accept: "application/json"
    auth:
      token_env: "ASC_BEARER_TOKEN"

Behavior & guarantees
---------------------
- Reads settings via read-only config **views** (dot access), no dict casting.
- The bearer token is read lazily from the environment on every request, so
  building a client never fails for a missing token; the first request does.
- The overall deadline (``api.timeout_seconds``) becomes the client's
  `CallContext` unless the caller passes one.

Usage
-----
    from asc.pipeline.config.config import load_config
    from asc.pipeline.bootstrap import build_client_from_config

    cfg = load_config()
    client = build_client_from_config(cfg)
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional, cast

from mxm.config import MXMConfig

from asc.pipeline.api.client import AscClient, TokenProvider
from asc.pipeline.api.context import CallContext
from asc.pipeline.common.http_adapter import DEFAULT_USER_AGENT, HttpRequestsAdapter
from asc.pipeline.config.config import (
    ConfigError,
    api_view,
    auth_view,
    http_adapter_view,
)


def _coerce_headers(m: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, str]]:
    if m is None:
        return None
    return {str(k): str(v) for k, v in m.items()}


def env_token_provider(env_var: str) -> TokenProvider:
    """Return a provider reading the bearer token from `env_var`."""

    def _token() -> str:
        token = os.environ.get(env_var, "").strip()
        if not token:
            raise ConfigError(
                f"missing App Store Connect credentials: set {env_var}"
            )
        return token

    return _token


def build_adapter_from_config(cfg: MXMConfig) -> HttpRequestsAdapter:
    http = http_adapter_view(cfg)

    user_agent = str(getattr(http, "user_agent", DEFAULT_USER_AGENT))
    default_timeout = float(getattr(http, "default_timeout", 30.0))

    raw_headers_any = getattr(http, "default_headers", None)
    raw_headers = (
        cast(Optional[Mapping[str, Any]], raw_headers_any)
        if isinstance(raw_headers_any, Mapping)
        else None
    )

    return HttpRequestsAdapter(
        user_agent=user_agent,
        default_timeout=default_timeout,
        default_headers=_coerce_headers(raw_headers),
    )


def build_client_from_config(
    cfg: MXMConfig,
    *,
    context: Optional[CallContext] = None,
    token_provider: Optional[TokenProvider] = None,
) -> AscClient:
    """Build an `AscClient` (and its HTTP adapter) from package config."""
    api = api_view(cfg)
    auth = auth_view(cfg)

    if context is None:
        deadline = getattr(api, "timeout_seconds", None)
        context = CallContext(float(deadline) if deadline is not None else None)

    if token_provider is None:
        token_provider = env_token_provider(str(auth.token_env))

    adapter = build_adapter_from_config(cfg)
    return AscClient(
        adapter,
        base_url=str(api.base_url),
        token_provider=token_provider,
        context=context,
        default_timeout=adapter.default_timeout,
    )


__all__ = [
    "env_token_provider",
    "build_adapter_from_config",
    "build_client_from_config",
]
