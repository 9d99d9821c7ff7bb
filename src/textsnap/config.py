"""
Configuration management for snapshot testing.

This module handles loading and managing configuration settings
for snapshot assertions and the cleanup pass.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from .storage import standalone_name

logger = logging.getLogger(__name__)

UPDATE_ENV = "UPDATE_SNAPS"
CI_ENV = "CI"
NO_COLOR_ENV = "NO_COLOR"

_FALSY = {"", "0", "false", "no", "off"}


def is_ci(environ: Mapping[str, str] = os.environ) -> bool:
    """Check whether we are running on a CI server."""
    return environ.get(CI_ENV, "").strip().lower() not in _FALSY


@dataclass
class SnapshotConfig:
    """Configuration for snapshot testing."""

    # Storage
    snapshot_dir: str = "__snapshots__"
    filename: str = ""  # store file name without suffix; defaults to the test module name
    extension: str = ""

    # Modes
    update: bool = False
    clean_obsolete: bool = False  # remove obsolete snapshots during cleanup
    ci: bool = False
    sort: bool = False
    clean: bool = True  # run the obsolete-snapshot pass after the test session

    # Output
    color: bool = True
    context: int = 3

    # Identifiers counted by the cleanup pass must start with one of these
    test_prefixes: list[str] = field(default_factory=lambda: ["Test", "test"])

    @property
    def can_create(self) -> bool:
        return not self.ci

    @property
    def can_update(self) -> bool:
        return self.update and not self.ci

    @property
    def can_clean_obsolete(self) -> bool:
        return self.clean_obsolete and not self.ci

    @property
    def can_sort(self) -> bool:
        return self.sort and not self.ci

    @property
    def suffix(self) -> str:
        return ".snap" + self.extension

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SnapshotConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_file(cls, config_path: Path) -> "SnapshotConfig":
        """Load configuration from JSON file."""
        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = json.load(f)
            return cls.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            return cls()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ, base: Optional["SnapshotConfig"] = None) -> "SnapshotConfig":
        """Apply UPDATE_SNAPS, CI and NO_COLOR on top of ``base``.

        UPDATE_SNAPS accepts ``true`` (update, ignored on CI), ``always``
        (update even on CI), ``clean`` (update and remove obsolete
        snapshots, ignored on CI) and ``sort`` (sort store files during
        cleanup, ignored on CI). ``true`` only reports obsolete snapshots.
        """
        config = cls(**asdict(base)) if base is not None else cls()
        ci = is_ci(environ)
        mode = environ.get(UPDATE_ENV, "").strip().lower()

        config.ci = config.ci or ci
        if mode == "true":
            config.update = True
        elif mode == "clean":
            config.update = True
            config.clean_obsolete = True
        elif mode == "always":
            config.update = True
            config.ci = False
        elif mode == "sort":
            config.sort = True

        if environ.get(NO_COLOR_ENV):
            config.color = False

        return config

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def snapshot_directory(self, test_file: Path) -> Path:
        """Return the directory holding the snapshots of a test module.

        A relative ``snapshot_dir`` is taken relative to the test module's
        directory; an absolute one is used as is.
        """
        directory = Path(self.snapshot_dir)
        if not directory.is_absolute():
            directory = Path(test_file).parent / directory
        return directory

    def snapshot_path(self, test_file: Path) -> Path:
        """Return the store file for a test module."""
        test_file = Path(test_file)
        return self.snapshot_directory(test_file) / f"{self.filename or test_file.stem}{self.suffix}"

    def standalone_base(self, test_file: Path, test_name: str) -> Path:
        """Return the base path standalone snapshots of one test are numbered from.

        e.g. ``__snapshots__/test_api.test_get`` for ``test_get`` in
        ``test_api.py``, giving ``test_api.test_get_1.snap`` and so on.
        """
        test_file = Path(test_file)
        name = self.filename or f"{test_file.stem}.{standalone_name(test_name)}"
        return self.snapshot_directory(test_file) / name


class ConfigManager:
    """Manages configuration loading and saving."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path("textsnap.json")
        self.config = SnapshotConfig.from_file(self.config_path)

    def get_config(self) -> SnapshotConfig:
        """Get the current configuration."""
        return self.config

    def create_default_config(self) -> None:
        """Create a default configuration file."""
        default_config = SnapshotConfig()
        default_config.save_to_file(self.config_path)
        logger.info(f"Created default configuration at {self.config_path}")
