from __future__ import annotations

from pathlib import Path

import pytest
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import ReadonlyConfigError

from asc.pipeline.config.config import (
    CONFIG_ENV_VAR,
    ENVIRONMENT_ENV_VAR,
    PACKAGED_STORE_ROOT,
    STORE_ENV_VAR,
    ConfigError,
    api_view,
    ensure_pipeline_config,
    http_adapter_view,
    load_config,
    logging_view,
    runtime_identity,
    status_view,
)


@pytest.fixture(autouse=True)
def _no_user_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(ENVIRONMENT_ENV_VAR, raising=False)
    monkeypatch.delenv(STORE_ENV_VAR, raising=False)


def test_defaults_load_and_validate() -> None:
    cfg = load_config()

    ensure_pipeline_config(cfg)
    assert api_view(cfg).base_url == "https://api.appstoreconnect.apple.com"  # type: ignore[attr-defined]
    assert api_view(cfg).page_limit == 200  # type: ignore[attr-defined]
    assert status_view(cfg).concurrency == 3  # type: ignore[attr-defined]
    assert status_view(cfg).builds_limit == 50  # type: ignore[attr-defined]
    assert cfg.auth.token_env == "ASC_BEARER_TOKEN"


def test_views_are_readonly() -> None:
    cfg = load_config()
    view = http_adapter_view(cfg)

    assert isinstance(view, DictConfig)
    with pytest.raises(ReadonlyConfigError):
        view.user_agent = "other"  # type: ignore[attr-defined]
    with pytest.raises(ReadonlyConfigError):
        cfg.status.concurrency = 9


def test_user_file_and_overrides_merge(tmp_path: Path) -> None:
    user = tmp_path / "asc.yaml"
    user.write_text(
        "status:\n  concurrency: 1\nhttp:\n  user_agent: ci/${status.concurrency}\n",
        encoding="utf-8",
    )

    cfg = load_config(user, overrides={"status.builds_limit": 10})

    assert cfg.status.concurrency == 1
    assert cfg.status.builds_limit == 10
    assert cfg.http.user_agent == "ci/1"
    # Untouched defaults survive the merge.
    assert cfg.http.default_timeout == 30.0


def test_env_var_selects_user_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    user = tmp_path / "env.yaml"
    user.write_text("logging:\n  level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(user))

    assert load_config().logging.level == "DEBUG"


def test_missing_user_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(tmp_path / "nope.yaml")


def test_non_mapping_file_is_config_error(tmp_path: Path) -> None:
    user = tmp_path / "list.yaml"
    user.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="must be a mapping"):
        load_config(user)


def test_view_missing_section() -> None:
    cfg = OmegaConf.create({"api": {"base_url": "https://example.com"}})

    with pytest.raises(ConfigError, match="Missing config section: status"):
        status_view(cfg)


def test_ensure_reports_missing_keys() -> None:
    cfg = OmegaConf.create(
        {
            "api": {"base_url": "https://api.appstoreconnect.apple.com"},
            "http": {},
            "auth": {},
            "status": {},
            "logging": {},
        }
    )
    with pytest.raises(ConfigError) as ei:
        ensure_pipeline_config(cfg)
    assert str(ei.value) == "Missing keys at api: page_limit, timeout_seconds"


# ----- config store -----------------------------------------------------------


def test_identity_defaults_to_dev_cli() -> None:
    identity = runtime_identity()

    assert identity.app == "asc-pipeline"
    assert identity.environment == "dev"
    assert identity.role == "cli"


def test_ci_environment_layer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ENVIRONMENT_ENV_VAR, "ci")

    cfg = load_config()

    assert logging_view(cfg).level == "INFO"  # type: ignore[attr-defined]
    assert status_view(cfg).concurrency == 2  # type: ignore[attr-defined]
    # Explicit overrides still win over the environment layer.
    assert load_config(overrides={"status.concurrency": 5}).status.concurrency == 5


def test_unknown_environment_is_config_error() -> None:
    with pytest.raises(ConfigError, match="cannot load config store"):
        load_config(environment="staging")


def test_packaged_store_layout() -> None:
    app_root = PACKAGED_STORE_ROOT / "apps" / "asc-pipeline"

    assert (app_root / "default.yaml").is_file()
    assert (app_root / "environment.yaml").is_file()


def _write_store(root: Path, base_url: str) -> None:
    app_root = root / "apps" / "asc-pipeline"
    app_root.mkdir(parents=True)
    app_root.joinpath("default.yaml").write_text(
        (PACKAGED_STORE_ROOT / "apps" / "asc-pipeline" / "default.yaml")
        .read_text(encoding="utf-8")
        .replace("https://api.appstoreconnect.apple.com", base_url),
        encoding="utf-8",
    )


def test_external_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_store(tmp_path / "store", "https://asc-proxy.example.com")

    explicit = load_config(store_root=tmp_path / "store")
    monkeypatch.setenv(STORE_ENV_VAR, str(tmp_path / "store"))
    from_env = load_config()

    assert explicit.api.base_url == "https://asc-proxy.example.com"
    assert from_env.api.base_url == "https://asc-proxy.example.com"
    ensure_pipeline_config(explicit)


def test_missing_store_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="cannot load config store"):
        load_config(store_root=tmp_path / "empty")
