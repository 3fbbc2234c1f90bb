"""
Configuration and config views for asc-pipeline.

Configuration is resolved by mxm-config from a config store laid out as
``<store>/apps/asc-pipeline/{default,environment}.yaml``. The package ships
such a store; ``ASC_PIPELINE_CONFIG_STORE`` points at an external one instead.
A user YAML file and explicit overrides are applied on top.

- load_config(path, overrides):  store layers <- user YAML <- overrides, read-only
- api_view(cfg):                 API base URL, page limit, overall deadline
- http_adapter_view(cfg):        HTTP adapter settings (user agent, timeout, headers)
- auth_view(cfg):                bearer-token source
- status_view(cfg):              dashboard concurrency and builds limit
- logging_view(cfg):             log level
"""

from __future__ import annotations

import logging
import os
import platform
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from mxm.config import MXMConfig, make_view
from mxm.config import load_config as load_store_config
from mxm.types import RuntimeIdentity
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

logger = logging.getLogger(__name__)

APP_NAME = "asc-pipeline"
CONFIG_ENV_VAR = "ASC_PIPELINE_CONFIG"
STORE_ENV_VAR = "ASC_PIPELINE_CONFIG_STORE"
ENVIRONMENT_ENV_VAR = "ASC_PIPELINE_ENV"
DEFAULT_ENVIRONMENT = "dev"
PACKAGED_STORE_ROOT = Path(__file__).with_name("store")


class ConfigError(RuntimeError):
    pass


def runtime_identity(environment: Optional[str] = None) -> RuntimeIdentity:
    """Identity selecting the store layers for a command-line run."""
    env = environment or os.environ.get(ENVIRONMENT_ENV_VAR) or DEFAULT_ENVIRONMENT
    return RuntimeIdentity(
        app=APP_NAME,
        environment=env,
        machine=platform.node() or "localhost",
        substrate="local-process",
        role="cli",
    )


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    environment: Optional[str] = None,
    store_root: Optional[Union[str, Path]] = None,
) -> MXMConfig:
    """Resolve the config store, then apply a user file and overrides.

    The store is `store_root`, else ``ASC_PIPELINE_CONFIG_STORE``, else the
    packaged store. The user file is `path` when given, else the file named by
    ``ASC_PIPELINE_CONFIG`` when set. `overrides` maps dotted keys to values
    (``{"status.concurrency": 1}``). The result is resolved and read-only.

    Raises:
        ConfigError: If a layer cannot be read, parsed or selected.
    """
    root = Path(store_root or os.environ.get(STORE_ENV_VAR) or PACKAGED_STORE_ROOT)
    identity = runtime_identity(environment)

    layers: list[Any] = []
    user_path = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if user_path:
        layers.append(_load_yaml(Path(user_path)))

    top: Optional[dict[str, Any]] = None
    try:
        if overrides:
            dotlist = [f"{k}={_dotlist_value(v)}" for k, v in overrides.items()]
            layers.append(OmegaConf.from_dotlist(dotlist))
        if layers:
            data = OmegaConf.to_container(OmegaConf.merge(*layers), resolve=False)
            if not isinstance(data, dict):
                raise ConfigError(f"config {user_path} must be a mapping")
            top = {str(k): v for k, v in data.items()}
        cfg = load_store_config(identity=identity, store_root=root, overrides=top)
    except (FileNotFoundError, KeyError, TypeError) as exc:
        raise ConfigError(f"cannot load config store {root}: {exc}") from exc
    except OmegaConfBaseException as exc:
        raise ConfigError(f"cannot resolve config: {exc}") from exc

    logger.debug("loaded config %s (environment=%s)", root, identity.environment)
    return cfg


def _dotlist_value(value: Any) -> str:
    if value is None:
        return "null"
    return str(value)


def _load_yaml(path: Path) -> Any:
    try:
        return OmegaConf.load(path)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except (OSError, OmegaConfBaseException, ValueError) as exc:
        raise ConfigError(f"cannot load config {path}: {exc}") from exc


def _view(cfg: MXMConfig, path: str, resolve: bool) -> MXMConfig:
    try:
        return make_view(cfg, path, resolve=resolve)
    except (KeyError, TypeError) as exc:
        raise ConfigError(f"Missing config section: {path}") from exc


def api_view(cfg: MXMConfig, *, resolve: bool = True) -> MXMConfig:
    """Read-only view rooted at `api`."""
    return _view(cfg, "api", resolve)


def http_adapter_view(cfg: MXMConfig, *, resolve: bool = True) -> MXMConfig:
    """Read-only view rooted at `http`."""
    return _view(cfg, "http", resolve)


def auth_view(cfg: MXMConfig, *, resolve: bool = True) -> MXMConfig:
    return _view(cfg, "auth", resolve)


def status_view(cfg: MXMConfig, *, resolve: bool = True) -> MXMConfig:
    return _view(cfg, "status", resolve)


def logging_view(cfg: MXMConfig, *, resolve: bool = True) -> MXMConfig:
    return _view(cfg, "logging", resolve)


def _must_have(d: MXMConfig, path: str, keys: Iterable[str]) -> None:
    missing = [k for k in keys if k not in d]  # type: ignore[operator]
    if missing:
        raise ConfigError(f"Missing keys at {path}: {', '.join(missing)}")


def ensure_pipeline_config(cfg: MXMConfig) -> None:
    if not isinstance(cfg, DictConfig):
        raise ConfigError("config must be an OmegaConf mapping")
    _must_have(api_view(cfg), "api", ("base_url", "page_limit", "timeout_seconds"))
    _must_have(
        http_adapter_view(cfg),
        "http",
        ("user_agent", "default_timeout", "default_headers"),
    )
    _must_have(auth_view(cfg), "auth", ("token_env",))
    _must_have(status_view(cfg), "status", ("concurrency", "builds_limit"))
    _must_have(logging_view(cfg), "logging", ("level",))


__all__ = [
    "APP_NAME",
    "CONFIG_ENV_VAR",
    "STORE_ENV_VAR",
    "ENVIRONMENT_ENV_VAR",
    "ConfigError",
    "runtime_identity",
    "load_config",
    "api_view",
    "http_adapter_view",
    "auth_view",
    "status_view",
    "logging_view",
    "ensure_pipeline_config",
]
