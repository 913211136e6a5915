from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from ..core.exceptions import GuildSyncError
from ..core.logging_utils import log_event
from ..integrations.api.models import Guild, Script
from .layout import (
    DEFAULT_SCRIPT_SUFFIX,
    baseline_dir,
    baseline_path,
    index_path,
    normalize_resource_path,
    working_path,
)

logger = logging.getLogger(__name__)


class WorkspaceSetupError(GuildSyncError):
    """Raised when a folder cannot be turned into a managed root."""


class ScriptSource(Protocol):
    async def list_guild_scripts(self, guild_id: str) -> list[Script]: ...


def script_filename(script: Script, script_suffix: str = DEFAULT_SCRIPT_SUFFIX) -> str:
    name = script.name.strip()
    filename = name if name.endswith(script_suffix) else f"{name}{script_suffix}"
    if normalize_resource_path(Path("."), filename) != filename:
        raise WorkspaceSetupError(f"script name {script.name!r} is not a plain file name")
    return filename


def _write_root(
    root: Path,
    guild: Guild,
    scripts: Iterable[Script],
    script_suffix: str,
) -> list[str]:
    if index_path(root).exists():
        raise WorkspaceSetupError(f"{root} is already a managed script folder")
    root.mkdir(parents=True, exist_ok=True)
    baseline_dir(root).mkdir(parents=True, exist_ok=True)

    written: list[str] = []
    script_ids: list[int] = []
    for script in scripts:
        filename = script_filename(script, script_suffix)
        working_path(root, filename).write_text(script.original_source, encoding="utf-8")
        baseline_path(root, filename).write_text(
            script.original_source, encoding="utf-8"
        )
        written.append(filename)
        script_ids.append(script.id)

    # The index is written last: its presence is what qualifies the root.
    index_path(root).write_text(
        json.dumps(
            {"guild": guild.to_payload(), "open_scripts": script_ids},
            indent=2,
        )
        + "\n",
        encoding="utf-8",
    )
    return written


async def setup_workspace(
    root: Path,
    guild: Guild,
    source: ScriptSource,
    *,
    script_suffix: str = DEFAULT_SCRIPT_SUFFIX,
    log: Optional[logging.Logger] = None,
) -> list[str]:
    """Populate ``root`` with the guild's scripts and their baseline copies."""
    active_logger = log or logger
    scripts = await source.list_guild_scripts(guild.id)
    written = await asyncio.to_thread(_write_root, root, guild, scripts, script_suffix)
    log_event(
        active_logger,
        logging.INFO,
        "workspace.setup.complete",
        root=str(root),
        guild_id=guild.id,
        script_count=len(written),
    )
    return written


def read_index(root: Path) -> dict:
    try:
        data = json.loads(index_path(root).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise WorkspaceSetupError(f"unreadable index for {root}: {exc}") from exc
    if not isinstance(data, dict):
        raise WorkspaceSetupError(f"index for {root} must be a JSON object")
    return data


def guild_id_for_root(root: Path) -> Optional[str]:
    guild = read_index(root).get("guild")
    if isinstance(guild, dict) and guild.get("id"):
        return str(guild["id"])
    return None
