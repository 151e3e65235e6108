"""Command handlers: one method per user-facing gwt operation."""

import logging
import os
from collections import Counter
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from .config import ConfigStore, ConfigRecord
from .exceptions import (
    DirectoryAlreadyExists,
    EditorLaunchFailed,
    GitCommandFailed,
    GwtreeError,
    InstallCommandFailed,
    MergeFailed,
    OperationCancelled,
    PullFailed,
    StoreCorrupted,
    UncommittedChanges,
    WorktreeNotFound,
)
from .output import Reporter, plural
from .prompts import Prompter, is_valid_name
from .store import WorktreeRecord, WorktreeStore
from .utils import GitUtils, unique_branch_name
from .worktree import (
    RepoInfo,
    WorktreeManager,
    WorktreeState,
    WorktreeStatus,
    detect_package_manager,
    install_command,
)

logger = logging.getLogger(__name__)

STATE_COLORS = {
    WorktreeState.MERGED: "bright_black",
    WorktreeState.READY: "green",
    WorktreeState.IN_PROGRESS: "yellow",
}


class Commands:
    """Runs gwt commands against injected stores, git, prompts and output.

    Handlers raise :class:`~gwtree.exceptions.GwtreeError` subclasses for
    anything that ends the command early; the CLI turns those into a message
    and an exit code.
    """

    def __init__(self, config_store: ConfigStore, store: WorktreeStore,
                 git: GitUtils | None = None, prompter: Prompter | None = None,
                 reporter: Reporter | None = None, cwd: str | Path | None = None,
                 env: Mapping[str, str] | None = None):
        self.config_store = config_store
        self.store = store
        self.git = git or GitUtils()
        self.prompter = prompter or Prompter()
        self.reporter = reporter or Reporter()
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.env = env if env is not None else os.environ
        self.manager = WorktreeManager(self.git, self.store)

    # -- create ---------------------------------------------------------------

    def create(self, name: str | None = None, yes: bool = False,
               no_editor: bool = False) -> WorktreeRecord:
        """Create one worktree on a new branch cut from the main branch.

        Args:
            name: Worktree suffix and branch name; prompted for when None
            yes: Take the default answer at every prompt
            no_editor: Do not open the editor afterwards

        Returns:
            Record of the created worktree
        """
        settings = self.config_store.get()
        self.reporter.intro("Create Git Worktree")

        repo = self.manager.discover(self.cwd, with_current_branch=True)
        if name is not None:
            self._ensure_free(self.manager.worktree_path(repo, name))

        self._handle_uncommitted(repo, yes)
        self._handle_branch(repo, yes)
        self._handle_pull(repo, yes)

        if name is not None:
            branch_name, suffix = name, name
        else:
            branch_name, suffix = self._ask_names(repo)

        path = self.manager.worktree_path(repo, suffix)
        self._ensure_free(path)

        branch = unique_branch_name(branch_name, repo.branches)
        self.reporter.info(f"Creating {path.name} branch {branch} from {repo.main_branch}")

        self.manager.prune(repo)
        self.reporter.step("Prune", "git worktree prune", "removes stale refs")

        short = f'git worktree add -b "{branch}" .../{path.name} "{repo.main_branch}"'
        try:
            record = self.manager.create_worktree(repo, path, branch)
        except GitCommandFailed as e:
            if "already registered" in e.stderr:
                self.reporter.step("Create", short, "worktree registered but missing", error=True)
            raise
        self.reporter.step("Create", short, str(path))

        self._install(path, settings)
        if not no_editor:
            self._open_editor(path, settings)

        self.reporter.done(f"cd {os.path.relpath(path, self.cwd)}")
        return record

    def create_batch(self, names: Sequence[str], no_editor: bool = False) -> dict[str, list[str]]:
        """Create one worktree per name; a failing name does not stop the rest.

        Returns:
            Names grouped under ``created``, ``skipped`` and ``failed``
        """
        settings = self.config_store.get()
        self.reporter.intro(f"Create {len(names)} Git Worktrees")

        repo = self.manager.discover(self.cwd)
        self.manager.prune(repo)
        self.reporter.step("Prune", "git worktree prune", "removes stale refs")

        taken = list(repo.branches)
        result: dict[str, list[str]] = {"created": [], "skipped": [], "failed": []}
        created_paths: list[Path] = []

        for name in names:
            path = self.manager.worktree_path(repo, name)
            if path.exists():
                self.reporter.step("Skip", path.name, "already exists", color="yellow")
                result["skipped"].append(name)
                continue

            branch = unique_branch_name(name, taken)
            taken.append(branch)

            short = f'git worktree add -b "{branch}" .../{path.name}'
            try:
                self.manager.create_worktree(repo, path, branch)
            except GitCommandFailed as e:
                logger.warning(f"Failed to create worktree {path}: {e.summary}")
                self.reporter.step("Failed", path.name, e.summary, error=True)
                result["failed"].append(name)
                continue
            self.reporter.step("Create", short, str(path))

            self._install(path, settings, label=path.name)
            if not no_editor:
                self._open_editor(path, settings, allow_terminal=False)

            result["created"].append(name)
            created_paths.append(path)

        summary = [f"Created {plural(len(created_paths), 'worktree')}"]
        if result["skipped"]:
            summary.append(f"{len(result['skipped'])} skipped")
        if result["failed"]:
            summary.append(f"{len(result['failed'])} failed")

        if created_paths:
            self.reporter.done(", ".join(summary))
            self.reporter.hint("cd commands:")
            for path in created_paths:
                self.reporter.hint(f"cd {os.path.relpath(path, self.cwd)}")
            self.reporter.message("")
        else:
            self.reporter.done(", ".join(["No worktrees created", *summary[1:]]), color="yellow")
        return result

    def _ensure_free(self, path: Path) -> None:
        if path.exists():
            raise DirectoryAlreadyExists(path)

    def _handle_uncommitted(self, repo: RepoInfo, yes: bool) -> None:
        if not self.git.status_porcelain(repo.root):
            return
        action = "stash"
        if not yes:
            action = self.prompter.select(
                "Uncommitted changes detected:",
                [("stash", "Stash changes"), ("ignore", "Ignore and continue"), ("cancel", "Cancel")],
                default="stash",
            )
        if action == "cancel":
            raise OperationCancelled()
        if action == "stash":
            self.git.stash(repo.root)
            self.reporter.step("Stash", "git stash", "saves uncommitted changes")

    def _handle_branch(self, repo: RepoInfo, yes: bool) -> None:
        main = repo.main_branch
        if repo.current_branch == main:
            return
        action = "switch"
        if not yes:
            action = self.prompter.select(
                f"Not on {main} (currently on {repo.current_branch or 'detached HEAD'}):",
                [("switch", f"Switch to {main}"), ("ignore", "Ignore and continue"), ("cancel", "Cancel")],
                default="switch",
            )
        if action == "cancel":
            raise OperationCancelled()
        if action == "switch":
            self.git.checkout(repo.root, main)
            self.reporter.step("Switch", f"git checkout {main}", "switches to base branch")

    def _handle_pull(self, repo: RepoInfo, yes: bool) -> None:
        if not self.git.has_remote(repo.root):
            return
        main = repo.main_branch
        action = "pull"
        if not yes:
            action = self.prompter.select(
                f"Pull latest from origin/{main}?",
                [("pull", "Yes, git pull --rebase"), ("skip", "Skip")],
                default="pull",
            )
        if action != "pull":
            return

        command = f"git pull --rebase origin {main}"
        try:
            self.manager.pull_latest(repo)
        except PullFailed as e:
            logger.warning(f"Pull failed: {e.message}")
            self.reporter.step("Pull", command, e.message or "failed", error=True)
            return
        self.reporter.step("Pull", command, "fetches latest changes")

    def _ask_names(self, repo: RepoInfo) -> tuple[str, str]:
        """Ask for the names; returns ``(branch, worktree suffix)``."""
        self.reporter.info(f"{repo.parent}{os.sep}{repo.name}-<name>")
        self.reporter.message("Press ESC to set worktree and branch names separately", dim=True)
        name = self.prompter.text(
            "Worktree & branch name:",
            validate=is_valid_name,
            invalid_message="Invalid name",
            skippable=True,
        )
        if name is not None:
            return name, name

        self.reporter.info(f"{repo.parent}{os.sep}{repo.name}-<worktree>")
        suffix = self.prompter.text(
            "Worktree name:",
            validate=is_valid_name,
            invalid_message="Invalid worktree name",
        )
        if not suffix:
            raise OperationCancelled()
        branch = self.prompter.text(
            "Branch name:",
            default=suffix,
            validate=is_valid_name,
            invalid_message="Invalid branch name",
        )
        if not branch:
            raise OperationCancelled()
        return branch, suffix

    def _install(self, path: Path, settings: ConfigRecord, label: str | None = None) -> None:
        manager = detect_package_manager(path) or settings.last_pm
        if not manager or not settings.install_deps:
            return

        command = " ".join(install_command(manager))
        detail = f"{command} ({label})" if label else command
        try:
            self.manager.install_dependencies(path, manager)
        except InstallCommandFailed as e:
            logger.warning(e.message)
            self.reporter.step("Install", detail, "failed to install", error=True)
            return
        self.reporter.step("Install", detail, "installs dependencies")
        try:
            self.config_store.set("lastPm", manager)
        except StoreCorrupted as e:
            logger.warning(e.message)

    def _open_editor(self, path: Path, settings: ConfigRecord, allow_terminal: bool = True) -> None:
        command = settings.editor_command(self.env)
        if command is None:
            return

        detail = f"{command} .../{path.name}"
        try:
            launched = self.manager.open_in_editor(settings, path, self.env, allow_terminal=allow_terminal)
        except EditorLaunchFailed as e:
            logger.warning(f"Editor launch failed: {e.message}")
            self.reporter.step("Open", detail, "failed to open", error=True)
            return
        if launched:
            self.reporter.step("Open", detail, "opens in editor")

    # -- list / status ----------------------------------------------------------

    def list_worktrees(self) -> list[WorktreeRecord]:
        repo = self.manager.discover(self.cwd)
        worktrees = self.manager.list_worktrees(repo)
        if not worktrees:
            self.reporter.message("No worktrees found for this repo", dim=True)
            return []

        self.reporter.intro("Worktrees for", accent=repo.name)
        for record in worktrees:
            self.reporter.step(record.branch, description=record.path)
        self.reporter.end(plural(len(worktrees), "worktree"))
        return worktrees

    def status(self) -> list[tuple[WorktreeRecord, WorktreeStatus]]:
        """Print changes, divergence and merge state of every worktree."""
        repo = self.manager.discover(self.cwd)
        worktrees = self.manager.list_worktrees(repo)
        if not worktrees:
            self.reporter.message("No worktrees found for this repo", dim=True)
            return []

        self.reporter.intro("Status for", accent=repo.name)
        results = []
        tally: Counter = Counter()
        for record in worktrees:
            status = self.manager.worktree_status(record.path, repo)
            results.append((record, status))
            tally[status.state] += 1

            color = STATE_COLORS[status.state]
            if status.state is WorktreeState.IN_PROGRESS and status.changes == 0:
                color = "dim"
            diff = ""
            if status.insertions or status.deletions:
                diff = f"+{status.insertions} -{status.deletions}"
            self.reporter.step(record.branch, diff, status.describe(), color=color)

        summary = []
        if tally[WorktreeState.READY]:
            summary.append(f"{tally[WorktreeState.READY]} ready to merge")
        if tally[WorktreeState.IN_PROGRESS]:
            summary.append(f"{tally[WorktreeState.IN_PROGRESS]} in progress")
        if tally[WorktreeState.MERGED]:
            summary.append(f"{tally[WorktreeState.MERGED]} merged")
        self.reporter.end(", ".join(summary) or "no worktrees")
        return results

    # -- remove / clean / merge ---------------------------------------------------

    def remove(self) -> int:
        """Interactive loop: pick a worktree, confirm, remove, repeat.

        Returns:
            Number of worktrees removed
        """
        self.reporter.intro("Remove Worktree")
        repo = self.manager.discover(self.cwd)

        removed = 0
        while True:
            worktrees = self.manager.list_worktrees(repo)
            if not worktrees:
                self.reporter.end(f"No worktrees found for {repo.name}")
                return removed

            choices = [(record.path, f"{record.branch}  {record.name}") for record in worktrees]
            try:
                selected = self.prompter.search("Search worktree:", choices)
                record = next(record for record in worktrees if record.path == selected)
                if not self.prompter.confirm(f"Remove {record.name}?", default=True):
                    continue
            except OperationCancelled:
                self.reporter.end("Done")
                return removed

            if self.manager.remove_worktree(record):
                removed += 1
                self.reporter.step(f"Removed {record.name}", description=record.path)
            else:
                self.reporter.step(f"Failed to remove {record.name}", description=record.path, error=True)

    def clean(self, remove_all: bool = False) -> dict[str, int]:
        """Remove merged worktrees, or every worktree with ``remove_all``."""
        repo = self.manager.discover(self.cwd)
        worktrees = self.manager.list_worktrees(repo)
        result = {"removed": 0, "failed": 0}
        if not worktrees:
            self.reporter.message("No worktrees found for this repo", dim=True)
            return result

        self.reporter.intro("Clean All Worktrees" if remove_all else "Clean Merged Worktrees")
        if remove_all:
            to_remove = worktrees
        else:
            to_remove = [record for record in worktrees
                         if self.manager.worktree_status(record.path, repo).state is WorktreeState.MERGED]

        if not to_remove:
            self.reporter.end("No worktrees to clean")
            return result

        self.reporter.heading("Will remove:")
        for record in to_remove:
            self.reporter.bullet(record.branch, record.name)

        try:
            confirmed = self.prompter.confirm(f"Remove {plural(len(to_remove), 'worktree')}?", default=True)
        except OperationCancelled:
            confirmed = False
        if not confirmed:
            self.reporter.end("Cancelled")
            return result

        for record in to_remove:
            if self.manager.remove_worktree(record):
                result["removed"] += 1
                self.reporter.step(f"Removed {record.name}", description=record.path)
            else:
                result["failed"] += 1
                self.reporter.step(f"Failed {record.name}", description=record.path, error=True)

        message = f"Removed {plural(result['removed'], 'worktree')}"
        if result["failed"]:
            message += f", {result['failed']} failed"
        self.reporter.done(message)
        return result

    def merge(self, name: str) -> WorktreeRecord:
        """Merge a worktree's branch into main, then remove the worktree.

        Raises:
            WorktreeNotFound: nothing matches ``name``
            UncommittedChanges: the worktree is dirty; nothing was touched
            MergeFailed: the merge stopped; the worktree is kept for resolving
        """
        repo = self.manager.discover(self.cwd)
        record = self.manager.find_worktree(repo, name)
        if record is None:
            raise WorktreeNotFound(name)

        main = repo.main_branch
        self.reporter.intro(f"Merge {record.branch} to {main}")

        status = self.manager.worktree_status(record.path, repo)
        if status.changes > 0:
            raise UncommittedChanges(record.path)

        try:
            self.git.checkout(repo.root, main)
        except GitCommandFailed as e:
            self.reporter.step("Switch", f"git checkout {main}", e.summary, error=True)
            raise
        self.reporter.step("Switch", f"git checkout {main}", f"switched to {main}")

        try:
            self.git.merge(repo.root, record.branch)
        except GitCommandFailed as e:
            self.reporter.step("Merge", f"git merge {record.branch}", e.summary, error=True)
            raise MergeFailed(record.branch) from e
        self.reporter.step("Merge", f"git merge {record.branch}", f"merged to {main}")

        if self.manager.remove_worktree(record, cwd=repo.root):
            self.reporter.step("Remove", f"git worktree remove .../{record.name}", "worktree removed")
        else:
            self.reporter.step("Remove", f"git worktree remove .../{record.name}",
                               "failed to remove worktree", error=True)

        try:
            self.git.delete_branch(repo.root, record.branch)
            self.reporter.step("Branch", f"git branch -d {record.branch}", "branch deleted")
        except GitCommandFailed as e:
            logger.debug(f"Branch {record.branch} not deleted: {e.summary}")

        self.reporter.done(f"Merged and cleaned up {record.branch}")
        return record

    # -- config -------------------------------------------------------------------

    def config(self, action: str | None = None, args: Sequence[str] = ()) -> Any:
        """Open the config file, or ``reset``, ``path`` or ``set KEY VALUE``."""
        if action == "reset":
            defaults = self.config_store.reset()
            self.reporter.message("Config reset to defaults")
            return defaults

        if action == "path":
            self.reporter.message(str(self.config_store.path))
            return self.config_store.path

        if action == "set":
            if len(args) != 2:
                raise GwtreeError("Usage: gwt config set <key> <value>")
            key, value = args
            settings = self.config_store.set(key, value)
            self.reporter.message(f"{key} = {value}")
            return settings

        if action is not None:
            raise GwtreeError(f"Unknown config action: {action}")

        settings = self.config_store.get()
        path = self.config_store.path
        try:
            launched = self.manager.open_in_editor(settings, path, self.env)
        except EditorLaunchFailed as e:
            logger.debug(f"Could not open config in editor: {e.message}")
            launched = None
        if launched is None:
            self.reporter.message(str(path))
        return path
