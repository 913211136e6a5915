from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from ....core.config import SyncConfig
from ....integrations.api.errors import ScriptsApiError
from ....integrations.api.models import Guild, UserGuild, has_admin
from ....integrations.api.rest import ScriptsApiClient
from ....workspace.notifications import ChangeDispatcher
from ....workspace.registry import WorkspaceRegistry
from ....workspace.setup import WorkspaceSetupError, setup_workspace
from ....workspace.states import DriftState
from .utils import build_logger, raise_exit, require_config, require_token

STATE_MARKERS = {
    DriftState.CREATED: "A",
    DriftState.MODIFIED: "M",
    DriftState.DELETED: "D",
}


def manageable_guilds(guilds: list[UserGuild]) -> list[Guild]:
    return [item.guild for item in guilds if item.connected and has_admin(item.guild)]


async def scan_root(
    root: Path, config: SyncConfig, *, logger: logging.Logger
) -> Optional[dict[str, DriftState]]:
    registry = WorkspaceRegistry(
        ChangeDispatcher(logger=logger),
        logger=logger,
        script_suffix=config.script_suffix,
    )
    try:
        tracker = await registry.attach_root(root)
        if tracker is None:
            return None
        return tracker.changes
    finally:
        registry.dispose()


async def _setup_root(
    config: SyncConfig,
    *,
    guild_id: str,
    target: Path,
    logger: logging.Logger,
    client_factory: Callable[..., Any],
) -> tuple[Guild, list[str]]:
    async with client_factory(
        token=require_token(config), base_url=config.api_base_url
    ) as client:
        guilds = manageable_guilds(await client.get_current_user_guilds())
        guild = next((item for item in guilds if item.id == guild_id), None)
        if guild is None:
            raise_exit(
                f"guild {guild_id} is unknown, not connected, or you lack admin rights"
            )
        written = await setup_workspace(
            target,
            guild,
            client,
            script_suffix=config.script_suffix,
            log=logger,
        )
    return guild, written


def register_workspace_commands(app: typer.Typer) -> None:
    @app.command("status")
    def status(
        path: Optional[Path] = typer.Argument(None, help="Managed script folder"),
    ) -> None:
        """Show scripts that drifted from their baseline."""
        root = (path or Path.cwd()).resolve()
        config = require_config(root)
        logger = build_logger(config)
        changes = asyncio.run(scan_root(root, config, logger=logger))
        if changes is None:
            raise_exit(f"{root} is not a managed script folder")
        if not changes:
            typer.echo("No changes.")
            return
        for rel_path, state in changes.items():
            typer.echo(f"{STATE_MARKERS[state]} {rel_path}")

    @app.command("setup")
    def setup(
        guild_id: str = typer.Argument(..., help="Guild to pull scripts from"),
        path: Path = typer.Option(..., "--path", help="Folder to create"),
    ) -> None:
        """Create a managed script folder from a guild's current scripts."""
        config = require_config(path.parent if not path.exists() else path)
        logger = build_logger(config)
        try:
            guild, written = asyncio.run(
                _setup_root(
                    config,
                    guild_id=guild_id,
                    target=path.resolve(),
                    logger=logger,
                    client_factory=ScriptsApiClient,
                )
            )
        except (ScriptsApiError, WorkspaceSetupError) as exc:
            raise_exit(str(exc), cause=exc)
        typer.echo(f"Set up {guild.name} ({guild.id}) with {len(written)} scripts in {path}")

    @app.command("guilds")
    def guilds(
        path: Optional[Path] = typer.Option(None, "--path", help="Config lookup path"),
    ) -> None:
        """List guilds whose scripts you can manage."""
        config = require_config(path)
        token = require_token(config)

        async def _list() -> list[Guild]:
            async with ScriptsApiClient(
                token=token, base_url=config.api_base_url
            ) as client:
                return manageable_guilds(await client.get_current_user_guilds())

        try:
            found = asyncio.run(_list())
        except ScriptsApiError as exc:
            raise_exit(str(exc), cause=exc)
        if not found:
            typer.echo("No manageable guilds.")
            return
        for guild in found:
            typer.echo(f"{guild.id}\t{guild.name}")

    @app.command("whoami")
    def whoami(
        path: Optional[Path] = typer.Option(None, "--path", help="Config lookup path"),
    ) -> None:
        """Check the configured token."""
        config = require_config(path)
        token = require_token(config)

        async def _current_user() -> str:
            async with ScriptsApiClient(
                token=token, base_url=config.api_base_url
            ) as client:
                return (await client.get_current_user()).display_name

        try:
            name = asyncio.run(_current_user())
        except ScriptsApiError as exc:
            raise_exit(f"Invalid token: {exc}", cause=exc)
        typer.echo(f"Logged in as {name}")
