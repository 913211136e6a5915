import typer

from .commands.utils import get_version
from .commands.watch import register_watch_commands
from .commands.workspace import register_workspace_commands

app = typer.Typer(add_completion=False, help="Sync guild script folders and stream their logs.")


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"guildsync {get_version()}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Sync guild script folders and stream their logs."""


register_workspace_commands(app)
register_watch_commands(app)


def main() -> None:
    app()
