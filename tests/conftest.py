"""Shared fixtures for gwtree tests."""

import io
import shutil
import subprocess
from pathlib import Path
from unittest.mock import Mock

import pytest
from rich.console import Console

from gwtree.commands import Commands
from gwtree.config import ConfigStore
from gwtree.exceptions import GitCommandFailed
from gwtree.output import Reporter
from gwtree.prompts import Prompter
from gwtree.store import WorktreeRecord, WorktreeStore
from gwtree.utils import GitUtils


class FakeGit(GitUtils):
    """GitUtils that answers from a script instead of running git.

    Responses and failures match on an argument prefix, optionally limited
    to one working directory; the longest, most specific match wins.
    ``worktree add`` and ``worktree remove`` also create and delete the
    directory so that filesystem checks behave as with real git.
    """

    def __init__(self):
        self.calls: list[tuple[tuple[str, ...], str]] = []
        self._responses: dict[tuple[str | None, tuple[str, ...]], str] = {}
        self._failures: dict[tuple[str | None, tuple[str, ...]], str] = {}

    def respond(self, *args: str, output: str = "", cwd: str | Path | None = None) -> None:
        self._responses[(str(cwd) if cwd is not None else None, tuple(args))] = output

    def fail(self, *args: str, stderr: str = "fatal: error", cwd: str | Path | None = None) -> None:
        self._failures[(str(cwd) if cwd is not None else None, tuple(args))] = stderr

    def _lookup(self, table, args, cwd):
        best = None
        for (key_cwd, key_args), value in table.items():
            if key_cwd is not None and key_cwd != str(cwd):
                continue
            if tuple(args[:len(key_args)]) != key_args:
                continue
            score = (len(key_args), key_cwd is not None)
            if best is None or score > best[0]:
                best = (score, value)
        return best

    def run(self, args, cwd):
        args = tuple(args)
        self.calls.append((args, str(cwd)))
        failure = self._lookup(self._failures, args, cwd)
        if failure is not None:
            raise GitCommandFailed(["git", *args], 1, stderr=failure[1])
        response = self._lookup(self._responses, args, cwd)
        return response[1] if response is not None else ""

    def worktree_add(self, cwd, path, branch, base):
        output = super().worktree_add(cwd, path, branch, base)
        Path(path).mkdir(parents=True)
        return output

    def worktree_remove(self, cwd, path):
        output = super().worktree_remove(cwd, path)
        shutil.rmtree(path, ignore_errors=True)
        return output

    def invoked(self, *prefix: str) -> list[tuple[str, ...]]:
        """Argument tuples of every call starting with ``prefix``."""
        return [args for args, _ in self.calls if args[:len(prefix)] == prefix]


@pytest.fixture
def projects_dir(tmp_path):
    """Parent directory that holds the repository and its worktrees."""
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def repo_root(projects_dir):
    path = projects_dir / "demo"
    path.mkdir()
    return path


@pytest.fixture
def git(repo_root):
    """FakeGit scripted as a clean repo "demo" on main with an origin remote."""
    fake = FakeGit()
    fake.respond("rev-parse", "--show-toplevel", output=str(repo_root))
    fake.respond("branch", "--show-current", output="main")
    fake.respond("branch", "--format=%(refname:short)", output="main")
    fake.respond("remote", output="origin")
    return fake


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(tmp_path / "config" / "config.json")


@pytest.fixture
def store(tmp_path):
    return WorktreeStore(tmp_path / "data" / "worktrees" / "worktrees.json")


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, highlight=False, color_system=None)


@pytest.fixture
def reporter(console):
    return Reporter(console)


@pytest.fixture
def output(console):
    """Callable returning everything printed so far."""
    return lambda: console.file.getvalue()


@pytest.fixture
def prompter():
    return Mock(spec=Prompter)


@pytest.fixture(autouse=True)
def run_command(monkeypatch):
    """Never launch real editors or package managers."""
    mock = Mock(return_value=subprocess.CompletedProcess([], 0, "", ""))
    monkeypatch.setattr("gwtree.worktree.ProcessUtils.run_command", mock)
    return mock


@pytest.fixture
def commands(config_store, store, git, prompter, reporter, repo_root):
    return Commands(
        config_store=config_store,
        store=store,
        git=git,
        prompter=prompter,
        reporter=reporter,
        cwd=repo_root,
        env={"EDITOR": "vim"},
    )


@pytest.fixture
def make_worktree(store, repo_root, projects_dir):
    """Create a worktree directory and its record for the "demo" repo."""
    def _make(suffix: str, branch: str | None = None, repo_name: str = "demo",
              exists: bool = True) -> WorktreeRecord:
        path = projects_dir / f"{repo_name}-{suffix}"
        if exists:
            path.mkdir()
        record = WorktreeRecord(
            path=str(path),
            branch=branch or suffix,
            repo_root=str(repo_root if repo_name == "demo" else projects_dir / repo_name),
            repo_name=repo_name,
        )
        store.add_worktree(record)
        return record
    return _make


@pytest.fixture
def temp_repo(tmp_path):
    """Create a real git repository on branch main with one commit."""
    repo_path = tmp_path / "real_repo"
    repo_path.mkdir()

    subprocess.run(["git", "init"], cwd=repo_path, check=True, capture_output=True)
    subprocess.run(["git", "symbolic-ref", "HEAD", "refs/heads/main"], cwd=repo_path, check=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=repo_path, check=True)
    subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=repo_path, check=True)

    (repo_path / "README.md").write_text("# Test Repository")
    subprocess.run(["git", "add", "README.md"], cwd=repo_path, check=True)
    subprocess.run(["git", "commit", "-m", "Initial commit"], cwd=repo_path, check=True,
                   capture_output=True)

    return repo_path
