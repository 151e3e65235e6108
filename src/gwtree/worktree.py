"""Git worktree management for gwtree."""

import logging
import shlex
import subprocess
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

from .config import ConfigRecord
from .exceptions import EditorLaunchFailed, GitCommandFailed, InstallCommandFailed, PullFailed
from .store import WorktreeRecord, WorktreeStore
from .utils import (
    FileUtils,
    GitUtils,
    ProcessUtils,
    branch_in_merged_list,
    count_status_lines,
    find_main_branch,
    parse_diff_stat,
    parse_rev_list_counts,
)

logger = logging.getLogger(__name__)

# Checked in order; the first lockfile found wins.
LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("bun.lockb", "bun"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
)
DEFAULT_PACKAGE_MANAGER = "pnpm"


def detect_package_manager(directory: Path) -> str | None:
    """Guess the package manager of a checkout from its lockfile.

    A ``package.json`` without any known lockfile defaults to pnpm. No
    ``package.json`` at all means no package manager.
    """
    for lockfile, manager in LOCKFILES:
        if (directory / lockfile).exists():
            return manager
    if (directory / "package.json").exists():
        return DEFAULT_PACKAGE_MANAGER
    return None


def install_command(manager: str) -> list[str]:
    if manager in ("pnpm", "yarn", "bun"):
        return [manager, "install"]
    return ["npm", "install"]


class RepoInfo(BaseModel):
    """The repository a command was run from."""
    root: Path
    name: str
    parent: Path
    main_branch: str
    branches: list[str] = []
    current_branch: str = ""


class WorktreeState(str, Enum):
    MERGED = "merged"
    READY = "ready"
    IN_PROGRESS = "in_progress"


class WorktreeStatus(BaseModel):
    """Change and divergence summary for one worktree."""
    changes: int = 0
    insertions: int = 0
    deletions: int = 0
    ahead: int = 0
    behind: int = 0
    is_merged: bool = False

    @property
    def state(self) -> WorktreeState:
        if self.is_merged:
            return WorktreeState.MERGED
        if self.changes == 0 and self.ahead > 0:
            return WorktreeState.READY
        return WorktreeState.IN_PROGRESS

    def describe(self) -> str:
        """Human-readable one-liner for the status listing."""
        state = self.state
        if state is WorktreeState.MERGED:
            return "✓ merged"
        if state is WorktreeState.READY:
            return f"ready to merge ({self.ahead} commit{'s' if self.ahead > 1 else ''} ahead)"
        parts = []
        if self.changes > 0:
            parts.append(f"{self.changes} changed")
        if self.ahead > 0:
            parts.append(f"{self.ahead} ahead")
        if self.behind > 0:
            parts.append(f"{self.behind} behind")
        return ", ".join(parts) if parts else "no changes"


class WorktreeManager:
    """Manager for the git worktrees gwtree creates."""

    def __init__(self, git: GitUtils, store: WorktreeStore):
        """Initialize worktree manager.

        Args:
            git: Adapter used for every git invocation
            store: Record store shared by all repositories
        """
        self.git = git
        self.store = store

    def discover(self, cwd: str | Path, with_current_branch: bool = False) -> RepoInfo:
        """Describe the repository containing ``cwd``.

        Args:
            cwd: Directory the command was run from
            with_current_branch: Also ask git for the checked-out branch

        Returns:
            RepoInfo for the repository

        Raises:
            NotAGitRepository: ``cwd`` is not inside a git repository
        """
        root = self.git.show_toplevel(cwd)
        try:
            branches = self.git.list_branches(root)
        except GitCommandFailed as e:
            logger.warning(f"Could not list branches in {root}: {e.summary}")
            branches = []

        current = ""
        if with_current_branch:
            current = self.git.current_branch(root)

        return RepoInfo(
            root=root,
            name=root.name,
            parent=root.parent,
            main_branch=find_main_branch(branches),
            branches=branches,
            current_branch=current,
        )

    def worktree_path(self, repo: RepoInfo, suffix: str) -> Path:
        """Sibling directory ``<repo>-<suffix>`` next to the repository."""
        return repo.parent / f"{repo.name}-{suffix}"

    def list_worktrees(self, repo: RepoInfo) -> list[WorktreeRecord]:
        """Recorded worktrees of ``repo`` that still exist on disk."""
        return self.store.for_repo(repo.name)

    def find_worktree(self, repo: RepoInfo, name: str) -> WorktreeRecord | None:
        """Look up a worktree by branch, directory name, or directory suffix."""
        for record in self.list_worktrees(repo):
            if name in (record.branch, record.name) or record.name == f"{repo.name}-{name}":
                return record
        return None

    def pull_latest(self, repo: RepoInfo) -> None:
        """Rebase the checked-out branch onto ``origin/<main>``.

        Raises:
            PullFailed: the pull failed; the caller decides whether it matters
        """
        try:
            self.git.pull_rebase(repo.root, repo.main_branch)
        except GitCommandFailed as e:
            raise PullFailed(e.summary) from e

    def prune(self, repo: RepoInfo) -> None:
        try:
            self.git.worktree_prune(repo.root)
        except GitCommandFailed as e:
            logger.debug(f"git worktree prune failed: {e.summary}")

    def create_worktree(self, repo: RepoInfo, path: Path, branch: str) -> WorktreeRecord:
        """Create a worktree on a new branch cut from the main branch.

        Args:
            repo: Repository to branch from
            path: Directory for the new worktree
            branch: Name of the new branch (must not exist yet)

        Returns:
            The persisted record

        Raises:
            GitCommandFailed: ``git worktree add`` failed; nothing is recorded
        """
        self.git.worktree_add(repo.root, path, branch, repo.main_branch)
        record = WorktreeRecord(
            path=str(path),
            branch=branch,
            repo_root=str(repo.root),
            repo_name=repo.name,
        )
        self.store.add_worktree(record)
        return record

    def worktree_status(self, path: str | Path, repo: RepoInfo) -> WorktreeStatus:
        """Compute changes, diff size, divergence and merge state.

        Each part is computed independently; a part that fails counts as
        zero (or not merged) instead of failing the whole status.
        """
        try:
            changes = count_status_lines(self.git.status_porcelain(path))
        except GitCommandFailed as e:
            logger.debug(f"status failed in {path}: {e.summary}")
            return WorktreeStatus()

        status = WorktreeStatus(changes=changes)

        try:
            status.insertions, status.deletions = parse_diff_stat(self.git.diff_stat(path))
        except GitCommandFailed as e:
            logger.debug(f"diff --stat failed in {path}: {e.summary}")

        try:
            branch = self.git.current_branch(path)
        except GitCommandFailed as e:
            logger.debug(f"branch --show-current failed in {path}: {e.summary}")
            return status

        try:
            counts = self.git.rev_list_counts(path, repo.main_branch, branch)
            status.behind, status.ahead = parse_rev_list_counts(counts)
        except GitCommandFailed as e:
            logger.debug(f"rev-list failed in {path}: {e.summary}")

        try:
            merged = self.git.merged_branches(repo.root, repo.main_branch)
            status.is_merged = branch_in_merged_list(merged, branch)
        except GitCommandFailed as e:
            logger.debug(f"branch --merged failed in {repo.root}: {e.summary}")

        return status

    def remove_worktree(self, record: WorktreeRecord, cwd: str | Path | None = None) -> bool:
        """Remove a worktree and forget its record.

        ``git worktree remove --force`` is tried first, from ``cwd`` or else
        the record's origin repository when it still exists. If git fails, or
        there is no repository to run it from, the directory is deleted.

        Args:
            record: Worktree to remove
            cwd: Repository to run git from, overriding ``record.repo_root``

        Returns:
            True if the worktree is gone and its record deleted
        """
        path = Path(record.path)
        git_dir = Path(cwd) if cwd is not None else Path(record.repo_root)

        removed = False
        if git_dir.exists():
            try:
                self.git.worktree_remove(git_dir, path)
                removed = True
            except GitCommandFailed as e:
                logger.debug(f"git worktree remove failed for {path}: {e.summary}")

        if not removed:
            removed = FileUtils.remove_directory(path)

        if removed:
            self.store.remove_worktree(record.path)
        return removed

    def install_dependencies(self, path: Path, manager: str) -> list[str]:
        """Run the package manager's install in ``path``.

        Raises:
            InstallCommandFailed: the install exited non-zero or is missing
        """
        command = install_command(manager)
        try:
            ProcessUtils.run_command(command, cwd=path)
        except (subprocess.CalledProcessError, OSError) as e:
            raise InstallCommandFailed(f"{' '.join(command)} failed: {e}") from e
        return command

    def open_in_editor(self, config: ConfigRecord, path: str | Path,
                       env: Mapping[str, str], allow_terminal: bool = True) -> str | None:
        """Open ``path`` in the configured editor.

        Args:
            config: Settings holding the editor choice
            path: File or directory to open
            env: Environment used to resolve ``$EDITOR``
            allow_terminal: Whether ``$EDITOR`` may take over the terminal

        Returns:
            The editor command used, or None when nothing was launched

        Raises:
            EditorLaunchFailed: the editor could not be started
        """
        command = config.editor_command(env)
        if command is None:
            return None

        interactive = config.editor == "default"
        if interactive and not allow_terminal:
            return None

        try:
            argv = shlex.split(command) if interactive else [command]
            if not argv:
                raise ValueError("empty editor command")
            ProcessUtils.run_command([*argv, str(path)], interactive=interactive)
        except (subprocess.CalledProcessError, OSError, ValueError) as e:
            raise EditorLaunchFailed(f"{command}: {e}") from e
        return command
