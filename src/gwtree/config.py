"""Configuration management for gwtree."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from platformdirs import user_config_dir
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import InvalidConfigValue, StoreCorrupted

logger = logging.getLogger(__name__)

APP_NAME = "gwtree"
CONFIG_FILENAME = "config.json"
DEFAULT_EDITOR_FALLBACK = "vim"

EditorChoice = Literal["code", "cursor", "default", "none"]
PackageManager = Literal["pnpm", "npm", "yarn", "bun"]


class ConfigRecord(BaseModel):
    """Global user settings, shared by every repository."""

    editor: EditorChoice = Field(default="code")
    install_deps: bool = Field(default=True, alias="installDeps")
    last_pm: PackageManager | None = Field(default=None, alias="lastPm")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("last_pm", mode="before")
    @classmethod
    def empty_package_manager(cls, v: Any) -> Any:
        """Accept the spellings people type for 'no package manager'."""
        if isinstance(v, str) and v.strip().lower() in ("", "null", "none"):
            return None
        return v

    def editor_command(self, env: Mapping[str, str]) -> str | None:
        """Command used to launch the editor, or None when disabled."""
        if self.editor == "none":
            return None
        if self.editor == "default":
            return env.get("EDITOR") or DEFAULT_EDITOR_FALLBACK
        return self.editor

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to its on-disk dictionary form."""
        return self.model_dump(by_alias=True)


def default_config_path() -> Path:
    return Path(user_config_dir(APP_NAME)) / CONFIG_FILENAME


def _field_alias(key: str) -> str | None:
    """Map either spelling of a setting to its JSON key."""
    for name, field in ConfigRecord.model_fields.items():
        alias = field.alias or name
        if key in (name, alias):
            return alias
    return None


class ConfigStore:
    """JSON-backed store for :class:`ConfigRecord`.

    The file holds camelCase keys and may be edited by hand. Values that no
    longer validate are ignored on read so that a bad edit cannot lock the
    user out of the tool.
    """

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path is not None else default_config_path()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> ConfigRecord:
        """Return current settings merged over the defaults."""
        if not self._path.exists():
            self._write(ConfigRecord().to_dict())
            return ConfigRecord()

        values: dict[str, Any] = {}
        for key, value in self._read().items():
            alias = _field_alias(key)
            if alias is None:
                continue
            try:
                ConfigRecord.model_validate({alias: value})
            except ValidationError:
                logger.warning(f"Ignoring invalid config entry {key}={value!r} in {self._path}")
                continue
            values[alias] = value
        return ConfigRecord.model_validate(values)

    def set(self, key: str, value: Any) -> ConfigRecord:
        """Validate and persist a single setting.

        Raises:
            InvalidConfigValue: unknown key, or a value that does not validate
            StoreCorrupted: the config file exists but cannot be parsed
        """
        alias = _field_alias(key)
        if alias is None:
            raise InvalidConfigValue(key, value, "unknown setting")
        try:
            validated = ConfigRecord.model_validate({alias: value})
        except ValidationError as e:
            reason = e.errors()[0].get("msg", "") if e.errors() else ""
            raise InvalidConfigValue(key, value, reason) from e

        data = self._read(strict=True)
        data[alias] = validated.to_dict()[alias]
        self._write(data)
        logger.debug(f"Set {alias}={data[alias]!r}")
        return self.get()

    def reset(self) -> ConfigRecord:
        """Drop every override and write the defaults back."""
        defaults = ConfigRecord()
        self._write(defaults.to_dict())
        logger.debug(f"Reset config at {self._path}")
        return defaults

    def _read(self, strict: bool = False) -> dict[str, Any]:
        """Load the raw settings; ``strict`` raises on an unparseable file."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            if strict:
                raise StoreCorrupted(self._path, str(e)) from e
            logger.warning(f"Could not read config {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            if strict:
                raise StoreCorrupted(self._path, "expected a JSON object")
            logger.warning(f"Config {self._path} is not a JSON object, ignoring it")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
