"""
gwtree - Git worktree manager for parallel development.

Creates sibling worktrees on fresh branches, tracks them across repositories,
and cleans them up or merges them back when the work is done.
"""

__version__ = "2.0.0"

from .commands import Commands
from .config import ConfigRecord, ConfigStore
from .store import WorktreeRecord, WorktreeStore
from .utils import FileUtils, GitUtils, ProcessUtils
from .worktree import WorktreeManager, WorktreeStatus

__all__ = [
    "Commands",
    "ConfigRecord",
    "ConfigStore",
    "FileUtils",
    "GitUtils",
    "ProcessUtils",
    "WorktreeManager",
    "WorktreeRecord",
    "WorktreeStatus",
    "WorktreeStore",
]
