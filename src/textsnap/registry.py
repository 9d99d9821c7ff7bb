"""
Occurrence registry for snapshot identifiers.

A test may assert several snapshots; each gets the identifier
``"<test name> - <occurrence>"`` with a 1-based occurrence counted per store
file. The registry also remembers the highest occurrence each test reached,
which is what the cleanup pass uses to tell live blocks from obsolete ones.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from pathlib import Path
from typing import Union

from .storage import SNAPSHOT_SUFFIX, standalone_file

PathLike = Union[str, Path]


def format_snap_id(test_name: str, occurrence: int, label: str | None = None) -> str:
    snap_id = f"{test_name} - {occurrence}"
    if label:
        snap_id += f" - {label}"
    return snap_id


class TestRegistry:
    """Thread safe per (store file, test name) occurrence counters.

    ``running`` counts assertions made by the current execution of a test and
    goes back to zero when the test finishes. ``cleanup`` keeps the highest
    value ``running`` ever reached and is only cleared by :meth:`reset_cleanup`.
    """

    # keep pytest from collecting this class
    __test__ = False

    def __init__(self):
        self._lock = threading.Lock()
        self._running: dict[str, dict[str, int]] = defaultdict(dict)
        self._cleanup: dict[str, dict[str, int]] = defaultdict(dict)

    @staticmethod
    def _key(path: PathLike) -> str:
        return str(Path(path))

    def next_id(self, path: PathLike, test_name: str) -> str:
        """Count one more assertion for ``test_name`` and return its identifier."""
        key = self._key(path)
        with self._lock:
            running = self._running[key].get(test_name, 0) + 1
            self._running[key][test_name] = running
            if running > self._cleanup[key].get(test_name, 0):
                self._cleanup[key][test_name] = running
        return format_snap_id(test_name, running)

    def reset(self, path: PathLike, test_name: str) -> None:
        """Restart numbering for ``test_name``, keeping its historical maximum."""
        key = self._key(path)
        with self._lock:
            if test_name in self._running.get(key, {}):
                self._running[key][test_name] = 0

    def reset_cleanup(self) -> None:
        """Forget every historical maximum."""
        with self._lock:
            self._cleanup.clear()

    def running(self, path: PathLike, test_name: str) -> int:
        with self._lock:
            return self._running.get(self._key(path), {}).get(test_name, 0)

    def cleanup_counts(self, path: PathLike) -> dict[str, int]:
        """Return a copy of the historical maxima recorded for one store file."""
        with self._lock:
            return dict(self._cleanup.get(self._key(path), {}))

    def registered_files(self) -> list[Path]:
        """Return every store file that received at least one assertion."""
        with self._lock:
            return [Path(key) for key in self._cleanup]

    def is_registered(self, path: PathLike) -> bool:
        with self._lock:
            return self._key(path) in self._cleanup

    def valid_ids(self, path: PathLike) -> set[str]:
        """Identifiers a store file may legitimately contain.

        e.g. ``{"test_add": 3}`` gives ``test_add - 1``, ``test_add - 2`` and
        ``test_add - 3``.
        """
        return {
            format_snap_id(name, occurrence)
            for name, count in self.cleanup_counts(path).items()
            for occurrence in range(1, count + 1)
        }


class StandaloneRegistry:
    """Occurrence counters for standalone snapshots.

    Each standalone assertion gets its own file. Counters are kept per base
    path, so ``<base>_1``, ``<base>_2`` and so on are handed out in call
    order and restart when the owning test finishes. ``cleanup`` keeps the
    highest occurrence reached, like :class:`TestRegistry`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running: dict[tuple[str, str], int] = {}
        self._cleanup: dict[tuple[str, str], int] = {}
        self._owners: dict[tuple[str, str], str] = {}

    def next_path(self, base: PathLike, owner: str, suffix: str = SNAPSHOT_SUFFIX) -> Path:
        """Count one more standalone assertion under ``base`` and return its file."""
        key = (str(Path(base)), suffix)
        with self._lock:
            running = self._running.get(key, 0) + 1
            self._running[key] = running
            self._owners[key] = owner
            if running > self._cleanup.get(key, 0):
                self._cleanup[key] = running
        return standalone_file(Path(base), running, suffix)

    def reset(self, owner: str) -> None:
        """Restart numbering for every base used by ``owner``, usually one test."""
        with self._lock:
            for key, used_by in self._owners.items():
                if used_by == owner:
                    self._running[key] = 0

    def reset_cleanup(self) -> None:
        with self._lock:
            self._cleanup.clear()

    def registered_files(self) -> list[Path]:
        """Every standalone file produced so far."""
        with self._lock:
            counts = dict(self._cleanup)
        return [
            standalone_file(Path(base), occurrence, suffix)
            for (base, suffix), count in counts.items()
            for occurrence in range(1, count + 1)
        ]
