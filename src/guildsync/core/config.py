from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .exceptions import GuildSyncError

CONFIG_FILENAME = ".guildsync.yml"
DEFAULT_API_BASE_URL = "https://api.botloader.io"
DEFAULT_TOKEN_ENV = "GUILDSYNC_API_TOKEN"
API_BASE_URL_ENV = "GUILDSYNC_API_BASE_URL"
LOG_LEVEL_ENV = "GUILDSYNC_LOG_LEVEL"

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": DEFAULT_API_BASE_URL,
    "token_env": DEFAULT_TOKEN_ENV,
    "logstream": {
        "reconnect_delay_seconds": 1.0,
        "resubscribe_on_reconnect": False,
    },
    "workspace": {
        "script_suffix": ".ts",
    },
    "log": {
        "path": ".guildsync/guildsync.log",
        "level": "INFO",
        "max_bytes": 5_000_000,
        "backup_count": 3,
    },
}


class ConfigError(GuildSyncError):
    """Raised when configuration is invalid."""


@dataclasses.dataclass(frozen=True)
class LogConfig:
    path: Path
    level: int
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class LogStreamConfig:
    reconnect_delay_seconds: float
    resubscribe_on_reconnect: bool


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    root: Path
    config_path: Optional[Path]
    api_base_url: str
    token_env: str
    token: Optional[str]
    script_suffix: str
    logstream: LogStreamConfig
    log: LogConfig
    raw: Dict[str, Any]

    @property
    def ws_url(self) -> str:
        return build_ws_url(self.api_base_url)


def build_ws_url(api_base_url: str) -> str:
    base = api_base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}/api/ws"


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def find_config_path(start: Path) -> Optional[Path]:
    current = start.resolve()
    if current.is_file():
        current = current.parent
    for candidate_dir in (current, *current.parents):
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _parse_log_level(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    name = str(value).strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigError(f"log.level must be a logging level name, got {value!r}")
    return level


def _parse_positive_int(value: Any, *, key: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0")
    return parsed


def _parse_positive_float(value: Any, *, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0")
    return parsed


def _parse_bool(value: Any, *, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be a boolean")


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = cfg.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def parse_config(
    raw: Dict[str, Any],
    *,
    root: Path,
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> SyncConfig:
    environ = os.environ if env is None else env
    cfg = _merge_defaults(DEFAULT_CONFIG, raw)

    api_base_url = str(environ.get(API_BASE_URL_ENV) or cfg.get("api_base_url") or "")
    api_base_url = api_base_url.strip().rstrip("/")
    if not api_base_url.startswith(("http://", "https://")):
        raise ConfigError("api_base_url must be an http(s) URL")

    token_env = str(cfg.get("token_env") or "").strip()
    if not token_env:
        raise ConfigError("token_env must be non-empty")
    token = (environ.get(token_env) or "").strip() or None

    logstream_cfg = _section(cfg, "logstream")
    logstream = LogStreamConfig(
        reconnect_delay_seconds=_parse_positive_float(
            logstream_cfg.get("reconnect_delay_seconds"),
            key="logstream.reconnect_delay_seconds",
        ),
        resubscribe_on_reconnect=_parse_bool(
            logstream_cfg.get("resubscribe_on_reconnect"),
            key="logstream.resubscribe_on_reconnect",
        ),
    )

    workspace_cfg = _section(cfg, "workspace")
    script_suffix = str(workspace_cfg.get("script_suffix") or "").strip()
    if not script_suffix.startswith(".") or len(script_suffix) < 2:
        raise ConfigError("workspace.script_suffix must look like '.ts'")

    log_cfg = _section(cfg, "log")
    log_path_value = log_cfg.get("path")
    if not isinstance(log_path_value, str) or not log_path_value.strip():
        raise ConfigError("log.path must be a string path")
    log = LogConfig(
        path=(root / log_path_value).resolve(),
        level=_parse_log_level(environ.get(LOG_LEVEL_ENV) or log_cfg.get("level")),
        max_bytes=_parse_positive_int(log_cfg.get("max_bytes"), key="log.max_bytes"),
        backup_count=_parse_positive_int(
            log_cfg.get("backup_count"), key="log.backup_count"
        ),
    )

    return SyncConfig(
        root=root,
        config_path=config_path,
        api_base_url=api_base_url,
        token_env=token_env,
        token=token,
        script_suffix=script_suffix,
        logstream=logstream,
        log=log,
        raw=cfg,
    )


def load_config(
    start: Path, *, env: Optional[Mapping[str, str]] = None
) -> SyncConfig:
    """Load `.guildsync.yml` from ``start`` or its nearest parent.

    Missing config files are fine: defaults apply and ``start`` becomes the root.
    """
    config_path = find_config_path(start)
    if config_path is None:
        root = start.resolve()
        if root.is_file():
            root = root.parent
        return parse_config({}, root=root, env=env)
    data = _load_yaml_dict(config_path)
    return parse_config(
        data, root=config_path.parent, config_path=config_path, env=env
    )
