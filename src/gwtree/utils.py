"""Utility functions for gwtree: git, filesystem and process helpers."""

import logging
import re
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path

from git import Git
from git.exc import GitCommandNotFound

from .exceptions import GitCommandFailed, NotAGitRepository

logger = logging.getLogger(__name__)

MAIN_BRANCH_CANDIDATES = ("main", "master")
DEFAULT_MAIN_BRANCH = "main"

_INSERTIONS_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETIONS_RE = re.compile(r"(\d+) deletions?\(-\)")


class GitUtils:
    """Synchronous wrapper around the ``git`` binary.

    Each call blocks until git exits. Nothing is retried here; deciding
    whether a failure matters is left to the caller.
    """

    def run(self, args: list[str], cwd: str | Path) -> str:
        """Run ``git <args>`` in ``cwd`` and return trimmed stdout.

        Raises:
            GitCommandFailed: git exited non-zero, or could not be started.
        """
        command = ["git", *args]
        logger.debug(f"$ {' '.join(command)}  (in {cwd})")
        # GitPython silently falls back to the process cwd for a missing directory
        if not Path(cwd).is_dir():
            raise GitCommandFailed(command, None, stderr=f"No such directory: {cwd}")
        try:
            status, stdout, stderr = Git(str(cwd)).execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
            )
        except (GitCommandNotFound, OSError) as e:
            raise GitCommandFailed(command, None, stderr=str(e)) from e

        if status != 0:
            logger.debug(f"git exited {status}: {stderr.strip()}")
            raise GitCommandFailed(command, status, stderr=stderr, stdout=stdout)
        return stdout.strip()

    def show_toplevel(self, cwd: str | Path) -> Path:
        try:
            return Path(self.run(["rev-parse", "--show-toplevel"], cwd))
        except GitCommandFailed as e:
            raise NotAGitRepository() from e

    def current_branch(self, cwd: str | Path) -> str:
        return self.run(["branch", "--show-current"], cwd)

    def list_branches(self, cwd: str | Path) -> list[str]:
        output = self.run(["branch", "--format=%(refname:short)"], cwd)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def status_porcelain(self, cwd: str | Path) -> str:
        return self.run(["status", "--porcelain"], cwd)

    def has_remote(self, cwd: str | Path) -> bool:
        try:
            return bool(self.run(["remote"], cwd))
        except GitCommandFailed:
            return False

    def pull_rebase(self, cwd: str | Path, branch: str) -> str:
        return self.run(["pull", "--rebase", "origin", branch], cwd)

    def stash(self, cwd: str | Path) -> str:
        return self.run(["stash"], cwd)

    def checkout(self, cwd: str | Path, branch: str) -> str:
        return self.run(["checkout", branch], cwd)

    def worktree_prune(self, cwd: str | Path) -> str:
        return self.run(["worktree", "prune"], cwd)

    def worktree_add(self, cwd: str | Path, path: str | Path, branch: str, base: str) -> str:
        return self.run(["worktree", "add", "-b", branch, str(path), base], cwd)

    def worktree_remove(self, cwd: str | Path, path: str | Path) -> str:
        return self.run(["worktree", "remove", str(path), "--force"], cwd)

    def delete_branch(self, cwd: str | Path, branch: str) -> str:
        return self.run(["branch", "-d", branch], cwd)

    def merged_branches(self, cwd: str | Path, base: str) -> str:
        return self.run(["branch", "--merged", base], cwd)

    def diff_stat(self, cwd: str | Path) -> str:
        return self.run(["diff", "--stat", "HEAD"], cwd)

    def rev_list_counts(self, cwd: str | Path, base: str, branch: str) -> str:
        return self.run(["rev-list", "--left-right", "--count", f"{base}...{branch}"], cwd)

    def merge(self, cwd: str | Path, branch: str) -> str:
        return self.run(["merge", branch], cwd)


def count_status_lines(output: str) -> int:
    """Number of entries in ``git status --porcelain`` output."""
    return len([line for line in output.splitlines() if line.strip()])


def parse_diff_stat(output: str) -> tuple[int, int]:
    """Return ``(insertions, deletions)`` from ``git diff --stat`` output.

    Only the summary line matters, e.g.
    ``3 files changed, 10 insertions(+), 2 deletions(-)``. Either count may be
    missing from it; missing counts and unparseable output give 0.
    """
    insertions = _INSERTIONS_RE.search(output)
    deletions = _DELETIONS_RE.search(output)
    return (
        int(insertions.group(1)) if insertions else 0,
        int(deletions.group(1)) if deletions else 0,
    )


def parse_rev_list_counts(output: str) -> tuple[int, int]:
    """Return ``(behind, ahead)`` from ``git rev-list --left-right --count``.

    The output is ``<left>\\t<right>`` where left counts commits only on the
    base branch and right counts commits only on the feature branch.
    """
    parts = output.split()
    if len(parts) != 2:
        return 0, 0
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return 0, 0


def branch_in_merged_list(output: str, branch: str) -> bool:
    """Check whether ``branch`` appears in ``git branch --merged`` output."""
    if not branch:
        return False
    for line in output.splitlines():
        name = line.strip()
        if name[:2] in ("* ", "+ "):
            name = name[2:].strip()
        if name == branch:
            return True
    return False


def find_main_branch(branches: Iterable[str]) -> str:
    """First branch named main or master, else the literal ``main``.

    The fallback is returned even when no such branch exists.
    """
    for branch in branches:
        if branch in MAIN_BRANCH_CANDIDATES:
            return branch
    return DEFAULT_MAIN_BRANCH


def unique_branch_name(desired: str, existing: Iterable[str]) -> str:
    """Append ``-1``, ``-2``, ... to ``desired`` until it is not taken."""
    taken = set(existing)
    candidate = desired
    counter = 1
    while candidate in taken:
        candidate = f"{desired}-{counter}"
        counter += 1
    return candidate


class FileUtils:
    """File system utility functions."""

    @staticmethod
    def remove_directory(path: Path) -> bool:
        """Recursively delete ``path``. A missing directory counts as removed."""
        try:
            if path.exists():
                shutil.rmtree(path)
            return True
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
            return False


class ProcessUtils:
    """Process utility functions for non-git binaries."""

    @staticmethod
    def run_command(command: list[str], cwd: Path | None = None,
                    interactive: bool = False) -> subprocess.CompletedProcess:
        """Run a command and wait for it to exit.

        Interactive commands inherit the terminal; others have their output
        captured.

        Raises:
            subprocess.CalledProcessError: the command exited non-zero.
            OSError: the command could not be started.
        """
        executable = shutil.which(command[0]) or command[0]
        argv = [executable, *command[1:]]
        logger.debug(f"$ {' '.join(command)}  (in {cwd or Path.cwd()})")
        if interactive:
            return subprocess.run(argv, cwd=cwd, check=True)
        return subprocess.run(argv, cwd=cwd, check=True, capture_output=True, text=True)
