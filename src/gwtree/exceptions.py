"""Exception hierarchy for gwtree.

Every error the command handlers raise derives from :class:`GwtreeError`.
The CLI catches them in one place, prints ``message`` and exits with
``exit_code``.
"""


class GwtreeError(Exception):
    """Base exception for gwtree."""

    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OperationCancelled(GwtreeError):
    """The user backed out of a prompt. Not an error from the shell's view."""

    exit_code = 0

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class NotAGitRepository(GwtreeError):
    """The working directory is not inside a git repository."""

    def __init__(self, message: str = "Not in a git repository"):
        super().__init__(message)


class DirectoryAlreadyExists(GwtreeError):
    """The target worktree directory already exists."""

    def __init__(self, path):
        super().__init__(f"Directory already exists: {path}")
        self.path = path


class WorktreeNotFound(GwtreeError):
    """No recorded worktree matches the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Worktree not found: {name}")
        self.name = name


class UncommittedChanges(GwtreeError):
    """The worktree has uncommitted changes and cannot be merged."""

    def __init__(self, path=None):
        super().__init__("Worktree has uncommitted changes. Commit or stash them first.")
        self.path = path


class MergeFailed(GwtreeError):
    """``git merge`` returned non-zero; the worktree is left in place."""

    def __init__(self, branch: str):
        super().__init__("Merge failed. Resolve conflicts manually.")
        self.branch = branch


class InvalidConfigValue(GwtreeError):
    """A config write did not validate against the schema."""

    def __init__(self, key: str, value, reason: str = ""):
        message = f"Invalid value for {key}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.key = key
        self.value = value


class StoreCorrupted(GwtreeError):
    """A JSON store file could not be parsed; it is left untouched."""

    def __init__(self, path, reason: str):
        super().__init__(f"Cannot update {path}: {reason}. Fix or delete the file.")
        self.path = path
        self.reason = reason


class GitCommandFailed(GwtreeError):
    """A wrapped git invocation exited non-zero."""

    def __init__(self, command: list[str], status: int | None = None,
                 stderr: str = "", stdout: str = ""):
        self.command = list(command)
        self.status = status
        self.stderr = stderr or ""
        self.stdout = stdout or ""
        super().__init__(self.summary)

    @property
    def summary(self) -> str:
        """Last non-empty line of stderr (or stdout), for one-line display."""
        for text in (self.stderr, self.stdout):
            lines = [line.strip() for line in text.splitlines() if line.strip()]
            if lines:
                return lines[-1]
        return f"{' '.join(self.command)} failed"


class StepFailed(GwtreeError):
    """Base for failures that are reported as a failed step and then ignored."""


class PullFailed(StepFailed):
    """``git pull --rebase`` failed."""


class InstallCommandFailed(StepFailed):
    """The package manager install command failed."""


class EditorLaunchFailed(StepFailed):
    """The editor could not be launched."""
