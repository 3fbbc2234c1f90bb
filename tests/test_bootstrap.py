from __future__ import annotations

from typing import Any

import pytest
from mxm.config import MXMConfig

from asc.pipeline.api.client import AscClient
from asc.pipeline.api.context import CallContext
from asc.pipeline.bootstrap import (
    build_adapter_from_config,
    build_client_from_config,
    env_token_provider,
)
from asc.pipeline.common.http_adapter import HttpRequestsAdapter
from asc.pipeline.config.config import ConfigError, load_config

# ---------- helpers -----------------------------------------------------------


def _cfg(**overrides: Any) -> MXMConfig:
    return load_config(
        overrides={
            "http.user_agent": "asc-test/0.1",
            "http.default_timeout": 9.0,
            **overrides,
        }
    )


# ---------- tests -------------------------------------------------------------


def test_adapter_from_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ASC_PIPELINE_CONFIG", raising=False)

    adapter = build_adapter_from_config(_cfg())

    assert isinstance(adapter, HttpRequestsAdapter)
    assert adapter.default_headers["User-Agent"] == "asc-test/0.1"
    assert adapter.default_headers["Accept"] == "application/json"
    assert adapter.default_timeout == 9.0


def test_client_from_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ASC_PIPELINE_CONFIG", raising=False)

    client = build_client_from_config(_cfg(**{"api.timeout_seconds": 60}))

    assert isinstance(client, AscClient)
    assert client.base_url == "https://api.appstoreconnect.apple.com"
    assert client.context is not None
    remaining = client.context.remaining()
    assert remaining is not None and 0 < remaining <= 60


def test_explicit_context_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ASC_PIPELINE_CONFIG", raising=False)
    ctx = CallContext()

    client = build_client_from_config(_cfg(), context=ctx)

    assert client.context is ctx


def test_null_deadline_means_unbounded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ASC_PIPELINE_CONFIG", raising=False)

    client = build_client_from_config(_cfg(**{"api.timeout_seconds": None}))

    assert client.context is not None
    assert client.context.remaining() is None


def test_env_token_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = env_token_provider("ASC_TEST_TOKEN")

    monkeypatch.setenv("ASC_TEST_TOKEN", "  tok-123 ")
    assert provider() == "tok-123"

    monkeypatch.delenv("ASC_TEST_TOKEN")
    with pytest.raises(ConfigError, match="set ASC_TEST_TOKEN"):
        provider()
