from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer

from ....core.config import ConfigError, SyncConfig, load_config
from ....core.logging_utils import setup_rotating_logger

LOGGER_NAME = "guildsync"


def get_version() -> str:
    import importlib.metadata

    try:
        return importlib.metadata.version("guildsync")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def require_config(path: Optional[Path]) -> SyncConfig:
    try:
        return load_config(path or Path.cwd())
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def require_token(config: SyncConfig) -> str:
    if not config.token:
        raise_exit(f"missing API token; set env var {config.token_env}")
    return config.token


def build_logger(config: SyncConfig) -> logging.Logger:
    return setup_rotating_logger(LOGGER_NAME, config.log)
