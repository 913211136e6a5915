from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from watchdog.observers import Observer

from ....integrations.logstream.events import LogEvent, format_log_event
from ....session import SyncSession
from ....workspace.notifications import ChangeNotification
from .utils import build_logger, require_config, require_token
from .workspace import STATE_MARKERS


def format_change(notification: ChangeNotification) -> str:
    if notification.current is None or notification.kind == "removed":
        return f"  {notification.path} (clean)"
    return f"{STATE_MARKERS[notification.current]} {notification.path}"


def _echo_log(event: LogEvent) -> None:
    typer.echo(format_log_event(event))


def _echo_change(notification: ChangeNotification) -> None:
    typer.echo(format_change(notification))


async def _run_until_cancelled(
    session: SyncSession, roots: list[Path], guild_ids: list[str]
) -> None:
    await session.start(roots, guild_ids=guild_ids)
    try:
        await asyncio.Event().wait()
    finally:
        await session.stop()


def register_watch_commands(app: typer.Typer) -> None:
    @app.command("watch")
    def watch(
        paths: Optional[list[Path]] = typer.Argument(
            None, help="Managed script folders to track"
        ),
        guild: Optional[list[str]] = typer.Option(
            None, "--guild", help="Extra guild ids to stream logs for"
        ),
    ) -> None:
        """Track script folders and stream their guilds' logs until interrupted."""
        roots = [item.resolve() for item in (paths or [Path.cwd()])]
        config = require_config(roots[0])
        logger = build_logger(config)
        observer = Observer()
        observer.start()
        session = SyncSession(
            config,
            on_change=_echo_change,
            on_log=_echo_log,
            logger=logger,
            observer=observer,
        )
        try:
            asyncio.run(_run_until_cancelled(session, roots, list(guild or [])))
        except KeyboardInterrupt:
            typer.echo("Stopped.")
        finally:
            observer.stop()
            observer.join()

    @app.command("logs")
    def logs(
        guild_ids: list[str] = typer.Argument(..., help="Guild ids to stream logs for"),
        path: Optional[Path] = typer.Option(None, "--path", help="Config lookup path"),
    ) -> None:
        """Stream script logs without tracking any folder."""
        config = require_config(path)
        require_token(config)
        logger = build_logger(config)
        session = SyncSession(
            config,
            on_change=_echo_change,
            on_log=_echo_log,
            logger=logger,
        )
        try:
            asyncio.run(_run_until_cancelled(session, [], guild_ids))
        except KeyboardInterrupt:
            typer.echo("Stopped.")
