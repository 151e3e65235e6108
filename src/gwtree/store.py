"""Persistent record of the worktrees gwtree has created."""

import datetime
import json
import logging
from pathlib import Path
from typing import Any

from platformdirs import user_data_dir
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import APP_NAME
from .exceptions import StoreCorrupted

logger = logging.getLogger(__name__)

STORE_DIRNAME = "worktrees"
STORE_FILENAME = "worktrees.json"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class WorktreeRecord(BaseModel):
    """A worktree created by gwtree, keyed by its absolute path."""

    path: str
    branch: str
    repo_root: str = Field(alias="repoRoot")
    repo_name: str = Field(alias="repoName")
    created_at: datetime.datetime = Field(default_factory=_utcnow, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def name(self) -> str:
        """Directory name of the worktree."""
        return Path(self.path).name

    @property
    def exists(self) -> bool:
        """Check if the worktree directory is still on disk."""
        return Path(self.path).exists()

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def default_store_path() -> Path:
    return Path(user_data_dir(APP_NAME)) / STORE_DIRNAME / STORE_FILENAME


class WorktreeStore:
    """JSON-backed list of :class:`WorktreeRecord`.

    Every call re-reads and re-writes the whole file. There is no locking:
    two processes writing at once are last-write-wins.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else default_store_path()

    def list_worktrees(self) -> list[WorktreeRecord]:
        """All records, for every repository, in insertion order."""
        records = []
        for entry in self._read():
            try:
                records.append(WorktreeRecord.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping malformed worktree record {entry!r}: {e.error_count()} error(s)")
        return records

    def for_repo(self, repo_name: str) -> list[WorktreeRecord]:
        """Records of one repository whose directory still exists."""
        return [record for record in self.list_worktrees()
                if record.repo_name == repo_name and record.exists]

    def get_worktree(self, path: str | Path) -> WorktreeRecord | None:
        key = str(path)
        for record in self.list_worktrees():
            if record.path == key:
                return record
        return None

    def add_worktree(self, record: WorktreeRecord) -> None:
        """Append a record. Callers check for an existing path first.

        Raises:
            StoreCorrupted: the store file exists but cannot be parsed
        """
        entries = self._read(strict=True)
        entries.append(record.to_dict())
        self._write(entries)
        logger.debug(f"Recorded worktree {record.path} ({record.branch})")

    def remove_worktree(self, path: str | Path) -> WorktreeRecord | None:
        """Remove the first record whose path matches exactly."""
        key = str(path)
        entries = self._read(strict=True)
        for index, entry in enumerate(entries):
            if isinstance(entry, dict) and entry.get("path") == key:
                removed = entries.pop(index)
                self._write(entries)
                logger.debug(f"Forgot worktree {key}")
                try:
                    return WorktreeRecord.model_validate(removed)
                except ValidationError:
                    return None
        return None

    def _read(self, strict: bool = False) -> list[Any]:
        """Load the raw entries.

        Args:
            strict: Raise instead of treating an unreadable file as empty;
                used before a write so the file is never overwritten

        Raises:
            StoreCorrupted: ``strict`` and the file is not a valid store
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            if strict:
                raise StoreCorrupted(self.path, str(e)) from e
            logger.warning(f"Could not read worktree store {self.path}: {e}")
            return []
        worktrees = data.get("worktrees") if isinstance(data, dict) else None
        if not isinstance(worktrees, list):
            if strict:
                raise StoreCorrupted(self.path, 'expected an object with a "worktrees" list')
            logger.warning(f"Worktree store {self.path} has no worktrees list, ignoring it")
            return []
        return worktrees

    def _write(self, entries: list[Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"worktrees": entries}
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
