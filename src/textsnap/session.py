"""
Snapshot session: the per-run context every assertion goes through.

A session is created once per test run and owns the occurrence registry, the
store, the event counters and the list of skipped tests. Assertions follow
the same flow:

    value -> serialize -> registry.next_id -> store.lookup -> diff
          -> append (first run) / replace_block (accepted update) / failure

Standalone assertions skip the block format and give every call a file of
its own.
"""
from __future__ import annotations

import logging
import os
import threading
from collections import Counter, defaultdict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Optional, Union

from . import styles
from .clean import RunFilter, ScanResult, scan, summary
from .config import SnapshotConfig
from .diff import build_report, render
from .exceptions import SnapshotMismatchError, SnapshotNotFoundError
from .registry import StandaloneRegistry, TestRegistry
from .serialize import serialize
from .storage import SnapshotStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

NEW = "new"
UNCHANGED = "unchanged"
CHANGED = "changed"

ADDED = "added"
UPDATED = "updated"
PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class Comparison:
    """Result of comparing a serialized value against the store."""

    status: str
    snap_id: str
    path: Path
    diff: str = ""
    line: int = -1

    @property
    def is_new(self) -> bool:
        return self.status == NEW

    @property
    def changed(self) -> bool:
        return self.status == CHANGED


class SnapshotSession:
    """Context object shared by every assertion of one test run."""

    def __init__(
        self,
        config: Optional[SnapshotConfig] = None,
        serializer: Callable[..., str] = serialize,
        root: Optional[PathLike] = None,
    ):
        self.config = config or SnapshotConfig.from_env()
        self.serializer = serializer
        self.root = Path(root) if root is not None else Path.cwd()
        self.registry = TestRegistry()
        self.standalone = StandaloneRegistry()
        self.store = SnapshotStore()
        self.events: Counter[str] = Counter()
        self.skipped: set[str] = set()
        self._events_lock = threading.Lock()
        # store files each running test asserted into, for end_test
        self._touched: dict[str, set[Path]] = defaultdict(set)

    @staticmethod
    def _owner(test_file: PathLike, test_name: str) -> str:
        return f"{Path(test_file)}::{test_name}"

    def _record(self, event: str) -> None:
        with self._events_lock:
            self.events[event] += 1

    def _present(self, text: str) -> str:
        return text if self.config.color else styles.strip_styles(text)

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.root)
        except ValueError:
            return str(path)

    def snapshot_path(self, test_file: PathLike, config: Optional[SnapshotConfig] = None) -> Path:
        return (config or self.config).snapshot_path(Path(test_file))

    def compare(self, path: PathLike, snap_id: str, body: str, context: Optional[int] = None) -> Comparison:
        """Compare ``body`` with the block stored under ``snap_id``.

        Raises:
            CorruptedSnapshotError: the stored block has no terminator.
        """
        path = Path(path)
        try:
            previous, line = self.store.lookup(path, snap_id)
        except SnapshotNotFoundError:
            return Comparison(status=NEW, snap_id=snap_id, path=path)

        result = render(previous, body, self.config.context if context is None else context)
        if result.empty:
            return Comparison(status=UNCHANGED, snap_id=snap_id, path=path, line=line)

        report = build_report(result, f"{self._relative(path)}:{line}")
        return Comparison(
            status=CHANGED,
            snap_id=snap_id,
            path=path,
            diff=self._present(report),
            line=line,
        )

    def commit(self, path: PathLike, snap_id: str, body: str, comparison: Optional[Comparison] = None) -> None:
        """Persist ``body``: append a new block or replace the existing one."""
        if comparison is None:
            comparison = self.compare(path, snap_id, body)

        if comparison.is_new:
            self.store.append(path, snap_id, body)
            logger.info(f"✎ Snapshot added [{snap_id}]")
        elif comparison.changed:
            self.store.replace_block(path, snap_id, body)
            logger.info(f"✎ Snapshot updated [{snap_id}]")

    def assert_match(
        self,
        test_file: PathLike,
        test_name: str,
        *values: Any,
        label: Optional[str] = None,
        config: Optional[SnapshotConfig] = None,
    ) -> Comparison:
        """Run the full assertion flow for one set of values.

        ``config`` overrides the session configuration for this call only,
        e.g. to write to another file or directory.

        Raises:
            SnapshotNotFoundError: no stored snapshot and creation is forbidden (CI).
            SnapshotMismatchError: the value changed and updating is off.
        """
        config = config or self.config
        path = self.snapshot_path(test_file, config)
        body = self.serializer(*values)
        snap_id = self.registry.next_id(path, test_name)
        with self._events_lock:
            self._touched[self._owner(test_file, test_name)].add(path)
        if label:
            snap_id = f"{snap_id} - {label}"

        comparison = self.compare(path, snap_id, body, config.context)

        if comparison.is_new:
            if not config.can_create:
                self._record(FAILED)
                raise SnapshotNotFoundError(snap_id, self._relative(path))
            self.commit(path, snap_id, body, comparison)
            self._record(ADDED)
            return comparison

        if not comparison.changed:
            self._record(PASSED)
            return comparison

        if not config.can_update:
            self._record(FAILED)
            raise SnapshotMismatchError(snap_id, comparison.diff)

        self.commit(path, snap_id, body, comparison)
        self._record(UPDATED)
        return comparison

    def assert_match_standalone(
        self,
        test_file: PathLike,
        test_name: str,
        *values: Any,
        config: Optional[SnapshotConfig] = None,
    ) -> Comparison:
        """Like :meth:`assert_match`, but every call gets a file of its own.

        The file holds the serialized value as is, without headers or
        escaping. Its name doubles as the identifier.
        """
        config = config or self.config
        base = config.standalone_base(Path(test_file), test_name)
        path = self.standalone.next_path(base, self._owner(test_file, test_name), config.suffix)
        body = self.serializer(*values)
        snap_id = path.name

        try:
            previous = self.store.read_standalone(path)
        except SnapshotNotFoundError:
            if not config.can_create:
                self._record(FAILED)
                raise SnapshotNotFoundError(snap_id, self._relative(path)) from None
            self.store.write_standalone(path, body)
            logger.info(f"✎ Snapshot added {self._relative(path)}")
            self._record(ADDED)
            return Comparison(status=NEW, snap_id=snap_id, path=path)

        result = render(previous, body, config.context)
        if result.empty:
            self._record(PASSED)
            return Comparison(status=UNCHANGED, snap_id=snap_id, path=path, line=1)

        diff = self._present(build_report(result, f"{self._relative(path)}:1"))
        if not config.can_update:
            self._record(FAILED)
            raise SnapshotMismatchError(snap_id, diff)

        self.store.write_standalone(path, body)
        logger.info(f"✎ Snapshot updated {self._relative(path)}")
        self._record(UPDATED)
        return Comparison(status=CHANGED, snap_id=snap_id, path=path, diff=diff, line=1)

    def end_test(self, test_file: PathLike, test_name: str) -> None:
        """Restart occurrence numbering once a test finished."""
        owner = self._owner(test_file, test_name)
        with self._events_lock:
            paths = self._touched.pop(owner, set())
        for path in paths | {self.snapshot_path(test_file)}:
            self.registry.reset(path, test_name)
        self.standalone.reset(owner)

    def skip(self, test_name: str) -> None:
        """Remember that ``test_name`` was skipped so its snapshots are kept."""
        self.skipped.add(test_name)
        self._record(SKIPPED)

    def run_cleanup(
        self,
        run_filter: Optional[RunFilter] = None,
        update: Optional[bool] = None,
        sort: Optional[bool] = None,
    ) -> ScanResult:
        """Detect obsolete files and blocks.

        They are only removed when ``update`` is true, which defaults to
        ``UPDATE_SNAPS=clean`` outside of CI. Sorting never happens on CI.
        """
        run_filter = run_filter or RunFilter()
        run_filter = replace(run_filter, skipped=run_filter.skipped | self.skipped)
        if update is None:
            update = self.config.can_clean_obsolete
        if sort is None:
            sort = self.config.can_sort

        result = scan(
            self.registry,
            run_filter,
            update=update,
            sort=sort,
            store=self.store,
            suffix=self.config.suffix,
            prefixes=self.config.test_prefixes,
            standalone=self.standalone,
        )

        text = summary(result, dict(self.events), updated=update)
        if text:
            logger.info(self._present(text))
        return result
