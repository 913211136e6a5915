"""Drift tracking for managed script folders."""

from .layout import BASELINE_SUFFIX, STATE_DIR_NAME, baseline_path, index_path
from .notifications import ChangeDispatcher, ChangeNotification, Subscription
from .registry import ProviderFactory, WorkspaceRegistry
from .setup import ScriptSource, WorkspaceSetupError, guild_id_for_root, setup_workspace
from .states import DriftState
from .tracker import ChangeTracker

__all__ = [
    "BASELINE_SUFFIX",
    "STATE_DIR_NAME",
    "ChangeDispatcher",
    "ChangeNotification",
    "ChangeTracker",
    "DriftState",
    "ProviderFactory",
    "ScriptSource",
    "Subscription",
    "WorkspaceRegistry",
    "WorkspaceSetupError",
    "baseline_path",
    "guild_id_for_root",
    "index_path",
    "setup_workspace",
]
