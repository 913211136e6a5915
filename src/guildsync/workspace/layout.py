from __future__ import annotations

from pathlib import Path, PurePosixPath

STATE_DIR_NAME = ".botloader"
INDEX_FILENAME = "index.json"
BASELINE_DIR_NAME = "scripts"
BASELINE_SUFFIX = ".bloader"
DEFAULT_SCRIPT_SUFFIX = ".ts"


def state_dir(root: Path) -> Path:
    return root / STATE_DIR_NAME


def index_path(root: Path) -> Path:
    """Marker file whose presence makes a folder a managed root."""
    return state_dir(root) / INDEX_FILENAME


def baseline_dir(root: Path) -> Path:
    return state_dir(root) / BASELINE_DIR_NAME


def baseline_path(root: Path, rel_path: str) -> Path:
    return baseline_dir(root) / f"{rel_path}{BASELINE_SUFFIX}"


def working_path(root: Path, rel_path: str) -> Path:
    return root / rel_path


def normalize_resource_path(root: Path, path: Path | str) -> str | None:
    """Return the tracked relative POSIX path for ``path`` or None.

    Resources live directly inside the root; anything nested (including the
    state directory) is not a resource.
    """
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            candidate = candidate.relative_to(root)
        except ValueError:
            return None
    relative = PurePosixPath(candidate.as_posix())
    if relative.is_absolute() or len(relative.parts) != 1:
        return None
    name = relative.parts[0]
    if name in ("", ".", "..") or name.startswith("."):
        return None
    return name


def is_resource_name(name: str, script_suffix: str) -> bool:
    return name.endswith(script_suffix) and not name.startswith(".")


def resource_name_from_baseline(filename: str) -> str | None:
    if not filename.endswith(BASELINE_SUFFIX):
        return None
    name = filename[: -len(BASELINE_SUFFIX)]
    return name or None
