"""
Obsolete snapshot detection and cleanup.

Runs once after all tests finished. Every store file the registry saw is
checked against the filesystem:

- files next to a registered store file that no test wrote to are obsolete;
- blocks whose identifier is beyond what any test produced are obsolete.

With removal on (``UPDATE_SNAPS=clean``) obsolete files are deleted and
obsolete blocks removed. In sort mode files are rewritten into natural
identifier order.
"""
from __future__ import annotations

import ast
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from . import styles
from .registry import StandaloneRegistry, TestRegistry
from .storage import SNAPSHOT_SUFFIX, SnapshotStore, split_snapshot_name, standalone_name

logger = logging.getLogger(__name__)

DEFAULT_TEST_PREFIXES = ("Test", "test")

# Characters separating a parent test name from a child (subtest, parametrization, method).
CHILD_SEPARATORS = ("/", "[", "::")

_HEADER_RE = re.compile(r"^(?P<name>.+?) - (?P<occurrence>\d+)(?: - (?P<label>.+))?$")
_CHUNK_RE = re.compile(r"(\d+)")


def parse_snap_id(snap_id: str, prefixes: Iterable[str] = DEFAULT_TEST_PREFIXES) -> Optional[str]:
    """Return the label-free ``"<name> - <n>"`` form of a counted identifier.

    Identifiers that do not follow the ``<name> - <n>[ - <label>]`` grammar,
    or whose name does not start with one of ``prefixes``, return None and are
    never considered obsolete.
    """
    match = _HEADER_RE.match(snap_id)
    if match is None:
        return None
    name = match.group("name")
    if not name.startswith(tuple(prefixes)):
        return None
    return f"{name} - {match.group('occurrence')}"


def natural_key(text: str) -> list:
    """Sort key comparing digit runs numerically and everything else by code point."""
    return [int(chunk) if i % 2 else chunk for i, chunk in enumerate(_CHUNK_RE.split(text))]


def is_naturally_sorted(items: list[str]) -> bool:
    keys = [natural_key(item) for item in items]
    return all(keys[i] <= keys[i + 1] for i in range(len(keys) - 1))


def module_for_snapshot(snapshot_file: Path, suffix: str = SNAPSHOT_SUFFIX) -> Path:
    """Return the test module a store file belongs to (``<dir>/../<module>.py``)."""
    module, _ = split_snapshot_name(snapshot_file.name, suffix)
    return snapshot_file.parent.parent / f"{module}.py"


@dataclass
class RunFilter:
    """Describes which tests took part in the run.

    Tests that did not run cannot have produced their snapshots, so their
    blocks and files are left alone.
    """

    pattern: Optional[str] = None
    skipped: set[str] = field(default_factory=set)
    collected_modules: Optional[set[Path]] = None

    def __post_init__(self):
        self.skipped = set(self.skipped)
        if self.collected_modules is not None:
            self.collected_modules = {Path(p).resolve() for p in self.collected_modules}
        self._regex = re.compile(self.pattern) if self.pattern else None

    def excludes_entry(self, snap_id: str) -> bool:
        test_name = snap_id.split(" - ")[0]
        for name in self.skipped:
            if test_name == name or test_name.startswith(tuple(name + sep for sep in CHILD_SEPARATORS)):
                return True
        if self._regex is not None:
            return self._regex.search(snap_id) is None
        return False

    def excludes_file(self, snapshot_file: Path, suffix: str = SNAPSHOT_SUFFIX) -> bool:
        module = module_for_snapshot(snapshot_file, suffix)
        if not module.is_file():
            return False
        if self.collected_modules is not None and module.resolve() not in self.collected_modules:
            return True
        _, standalone = split_snapshot_name(snapshot_file.name, suffix)
        if standalone is not None and self._skips_standalone(standalone):
            return True
        if self._regex is None:
            return False
        return not self._module_matches(module)

    def _skips_standalone(self, standalone: str) -> bool:
        # file names carry a sanitized test name followed by _<occurrence>
        return any(standalone.startswith(standalone_name(name) + "_") for name in self.skipped)

    def _module_matches(self, module: Path) -> bool:
        try:
            with open(module, encoding="utf-8") as f:
                tree = ast.parse(f.read(), filename=str(module))
        except (OSError, SyntaxError) as e:
            logger.warning(f"Failed to parse {module}: {e}")
            return True

        for node in ast.walk(tree):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                if self._regex.search(node.name):
                    return True
        return False


@dataclass
class ScanResult:
    """Outcome of a cleanup pass."""

    obsolete_files: list[Path] = field(default_factory=list)
    obsolete_entries: list[str] = field(default_factory=list)
    sorted_files: list[Path] = field(default_factory=list)
    is_dirty: bool = False

    @property
    def has_obsolete(self) -> bool:
        return bool(self.obsolete_files or self.obsolete_entries)


def find_obsolete_files(
    registry: TestRegistry,
    run_filter: RunFilter,
    update: bool,
    suffix: str = SNAPSHOT_SUFFIX,
    standalone: Optional[StandaloneRegistry] = None,
) -> tuple[list[Path], list[Path]]:
    """Return (obsolete files, used block files) across the registered directories.

    Standalone files produced during the run are kept but never parsed for
    blocks.
    """
    # resolved path -> path as registered, so counters can be looked up later
    registered = {path.resolve(): path for path in registry.registered_files()}
    standalone_files = standalone.registered_files() if standalone is not None else []
    produced = {path.resolve() for path in standalone_files}
    directories = sorted({path.parent for path in registered.values()} | {path.parent for path in standalone_files})

    obsolete: list[Path] = []
    used: list[Path] = []
    for directory in directories:
        if not directory.is_dir():
            continue
        for file in sorted(directory.iterdir()):
            if not file.is_file() or not file.name.endswith(suffix):
                continue
            if file.resolve() in registered:
                used.append(registered[file.resolve()])
                continue
            if file.resolve() in produced:
                continue
            if run_filter.excludes_file(file, suffix):
                continue

            obsolete.append(file)
            if update:
                file.unlink()
                logger.info(f"Removed obsolete snapshot file {file}")

    return obsolete, used


def examine_snapshots(
    registry: TestRegistry,
    store: SnapshotStore,
    used: list[Path],
    run_filter: RunFilter,
    update: bool,
    sort: bool,
    prefixes: Iterable[str] = DEFAULT_TEST_PREFIXES,
) -> tuple[list[str], list[Path], bool]:
    """Check the blocks of every used store file.

    Returns (obsolete identifiers, rewritten-for-sort files, dirty flag).
    A file is only written when blocks were removed or its order changed.
    """
    obsolete: list[str] = []
    resorted: list[Path] = []
    dirty = False

    for path in used:
        blocks = store.read_blocks(path)
        valid = registry.valid_ids(path)

        keep = []
        removed = []
        for block in blocks:
            counted = parse_snap_id(block.snap_id, prefixes)
            if counted is not None and counted not in valid and not run_filter.excludes_entry(counted):
                removed.append(block.snap_id)
                continue
            keep.append(block)
        obsolete.extend(removed)

        changed = False
        if removed:
            if update:
                changed = True
            else:
                dirty = True
                keep = blocks

        if sort and not is_naturally_sorted([block.header for block in keep]):
            keep = sorted(keep, key=lambda block: natural_key(block.header))
            resorted.append(path)
            changed = True

        if changed:
            store.write_blocks(path, keep)
            if removed and update:
                logger.info(f"Removed {len(removed)} obsolete snapshot(s) from {path}")
            if path in resorted:
                logger.info(f"Sorted snapshots in {path}")

    return obsolete, resorted, dirty


def scan(
    registry: TestRegistry,
    run_filter: Optional[RunFilter] = None,
    update: bool = False,
    sort: bool = False,
    store: Optional[SnapshotStore] = None,
    suffix: str = SNAPSHOT_SUFFIX,
    prefixes: Iterable[str] = DEFAULT_TEST_PREFIXES,
    standalone: Optional[StandaloneRegistry] = None,
) -> ScanResult:
    """Find, and with ``update`` remove, obsolete snapshot files and blocks."""
    run_filter = run_filter or RunFilter()
    store = store or SnapshotStore()

    obsolete_files, used = find_obsolete_files(registry, run_filter, update, suffix, standalone)
    obsolete_entries, resorted, dirty = examine_snapshots(
        registry, store, used, run_filter, update, sort, prefixes
    )

    if update:
        registry.reset_cleanup()
        if standalone is not None:
            standalone.reset_cleanup()
    elif obsolete_files or obsolete_entries:
        logger.warning(
            f"Found {len(obsolete_files)} obsolete snapshot file(s) and "
            f"{len(obsolete_entries)} obsolete snapshot(s)"
        )

    return ScanResult(
        obsolete_files=obsolete_files,
        obsolete_entries=obsolete_entries,
        sorted_files=resorted,
        is_dirty=dirty or (bool(obsolete_files) and not update),
    )


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


def summary(result: ScanResult, events: Optional[dict[str, int]] = None, updated: bool = False) -> str:
    """Render the end-of-run snapshot summary; empty when there is nothing to say."""
    events = {name: count for name, count in (events or {}).items() if count}
    if not result.has_obsolete and not events:
        return ""

    lines = [styles.paint(styles.GREEN, "Snapshot Summary"), ""]

    for name, symbol in (("added", "✎"), ("updated", "✎"), ("passed", "✓"), ("failed", "✕"), ("skipped", "⟳")):
        if name in events:
            lines.append(f"{symbol} {_plural(events[name], 'snapshot')} {name}")

    verb = "removed" if updated else "obsolete"
    if result.obsolete_files:
        lines.append(styles.paint(styles.YELLOW, f"{_plural(len(result.obsolete_files), 'file')} {verb}"))
        for path in result.obsolete_files:
            lines.append(styles.paint(styles.DIM, f"  {path}"))
    if result.obsolete_entries:
        lines.append(styles.paint(styles.YELLOW, f"{_plural(len(result.obsolete_entries), 'snapshot')} {verb}"))
        for snap_id in result.obsolete_entries:
            lines.append(styles.paint(styles.DIM, f"  {snap_id}"))
    if result.is_dirty:
        lines.append("")
        lines.append(styles.paint(styles.DIM, "run with UPDATE_SNAPS=clean to remove obsolete snapshots"))

    return "\n".join(lines) + "\n"
