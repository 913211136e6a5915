"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `guildsync` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 60


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


@pytest.fixture()
def make_root(tmp_path: Path) -> Callable[..., Path]:
    """Build a managed script folder.

    ``baseline`` maps script names to their last-synced text, ``working`` to the
    current text on disk. Pass ``managed=False`` to skip the index marker.
    """

    def _make(
        name: str = "root",
        *,
        baseline: Optional[dict[str, str]] = None,
        working: Optional[dict[str, str]] = None,
        managed: bool = True,
        guild_id: str = "1000",
    ) -> Path:
        root = tmp_path / name
        root.mkdir()
        scripts_dir = root / ".botloader" / "scripts"
        scripts_dir.mkdir(parents=True)
        for script, text in (baseline or {}).items():
            (scripts_dir / f"{script}.bloader").write_text(text, encoding="utf-8")
        for script, text in (working or {}).items():
            (root / script).write_text(text, encoding="utf-8")
        if managed:
            (root / ".botloader" / "index.json").write_text(
                json.dumps({"guild": {"id": guild_id, "name": name}, "open_scripts": []}),
                encoding="utf-8",
            )
        return root.resolve()

    return _make


@pytest.fixture()
def anyio_backend() -> str:
    """The package is built on asyncio primitives; run anyio tests on asyncio only."""
    return "asyncio"
