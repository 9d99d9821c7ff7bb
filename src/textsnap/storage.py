"""
Snapshot storage and management system.

This module handles the flat-file snapshot format: many named blocks per
file, each written as::

    \\n[<identifier>]\\n<body>\\n---\\n

A body line equal to the ``---`` terminator is stored escaped so the end of a
block can always be found with a literal search.

Standalone snapshots get one file each, ``<module>.<test>_<n>.snap``, holding
the body unescaped.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from .exceptions import CorruptedSnapshotError, SnapshotNotFoundError

logger = logging.getLogger(__name__)

TERMINATOR = "---"
ESCAPED_TERMINATOR = "/-/-/-/"
SNAPSHOT_SUFFIX = ".snap"

PathLike = Union[str, Path]

_UNSAFE_NAME_RE = re.compile(r"[^\w-]+")

# Serializes whole-file rewrites; parallel tests may update different blocks of one file.
_write_lock = threading.Lock()


@dataclass(frozen=True)
class SnapshotBlock:
    """One stored snapshot."""

    snap_id: str
    body: str
    line: int = 0

    @property
    def header(self) -> str:
        return format_header(self.snap_id)


def format_header(snap_id: str) -> str:
    return f"[{snap_id}]"


def escape_body(body: str) -> str:
    """Replace body lines equal to the terminator with the escaped token."""
    return "\n".join(
        ESCAPED_TERMINATOR if line == TERMINATOR else line for line in body.split("\n")
    )


def unescape_body(body: str) -> str:
    """Reverse :func:`escape_body`."""
    return "\n".join(
        TERMINATOR if line == ESCAPED_TERMINATOR else line for line in body.split("\n")
    )


def format_block(snap_id: str, body: str) -> str:
    return f"\n{format_header(snap_id)}\n{escape_body(body)}\n{TERMINATOR}\n"


def find_line(content: str, line: str, start: int = 0) -> int:
    """Return the offset of the first full line equal to ``line`` at or after ``start``, or -1."""
    pos = start
    while True:
        idx = content.find(line, pos)
        if idx == -1:
            return -1
        end = idx + len(line)
        if (idx == 0 or content[idx - 1] == "\n") and (end == len(content) or content[end] == "\n"):
            return idx
        pos = idx + 1


def standalone_name(test_name: str) -> str:
    """``TestGroup::test_x[1]`` -> ``TestGroup_test_x_1``, safe to use in a file name."""
    return _UNSAFE_NAME_RE.sub("_", test_name).strip("_")


def standalone_file(base: Path, occurrence: int, suffix: str = SNAPSHOT_SUFFIX) -> Path:
    """Return the file of one standalone snapshot: ``<base>_<occurrence><suffix>``."""
    return base.with_name(f"{base.name}_{occurrence}{suffix}")


def split_snapshot_name(name: str, suffix: str = SNAPSHOT_SUFFIX) -> tuple[str, Optional[str]]:
    """Split a store file name into (module stem, standalone part).

    ``test_api.snap`` gives ``("test_api", None)`` and
    ``test_api.test_get_2.snap`` gives ``("test_api", "test_get_2")``.
    """
    stem = name[: name.index(suffix)] if suffix in name else name.split(".", 1)[0]
    module, _, standalone = stem.partition(".")
    return module, standalone or None


def is_standalone_file(path: PathLike, suffix: str = SNAPSHOT_SUFFIX) -> bool:
    return split_snapshot_name(Path(path).name, suffix)[1] is not None


def is_header_line(line: str) -> bool:
    return len(line) >= 2 and line.startswith("[") and line.endswith("]")


def parse_blocks(content: str, path: PathLike | None = None) -> list[SnapshotBlock]:
    """Split a store file into its blocks, in on-disk order.

    Raises:
        CorruptedSnapshotError: a header has no terminator before end of file.
    """
    lines = content.split("\n")
    blocks: list[SnapshotBlock] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if not is_header_line(line):
            i += 1
            continue

        snap_id = line[1:-1]
        j = i + 1
        while j < len(lines) and lines[j] != TERMINATOR:
            j += 1
        if j == len(lines):
            raise CorruptedSnapshotError(snap_id, path)

        blocks.append(SnapshotBlock(snap_id, unescape_body("\n".join(lines[i + 1:j])), line=i + 1))
        i = j + 1

    return blocks


class SnapshotStore:
    """Reads and writes snapshot blocks in store files.

    Reads and appends take no lock: an append opens, writes and closes the
    file on every call. Block replacement rewrites the whole file and is
    serialized process-wide.
    """

    def _read(self, path: Path, snap_id: str) -> str:
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            raise SnapshotNotFoundError(snap_id, path) from None

    @staticmethod
    def _locate(content: str, snap_id: str, path: Path) -> tuple[int, int, int]:
        """Return (header offset, body offset, terminator offset) of a block."""
        header = format_header(snap_id)
        start = find_line(content, header)
        if start == -1:
            raise SnapshotNotFoundError(snap_id, path)

        body_start = start + len(header) + 1
        if body_start > len(content):
            raise CorruptedSnapshotError(snap_id, path)

        end = find_line(content, TERMINATOR, body_start)
        if end == -1:
            raise CorruptedSnapshotError(snap_id, path)

        return start, body_start, end

    def lookup(self, path: PathLike, snap_id: str) -> tuple[str, int]:
        """Return the body stored under ``snap_id`` and the line its block starts on.

        A block starts on the blank separator line written before its header
        (or on the header itself when no separator precedes it). Line numbers
        are 1-based.

        Raises:
            SnapshotNotFoundError: the file or the identifier does not exist.
            CorruptedSnapshotError: the block has no terminator.
        """
        path = Path(path)
        content = self._read(path, snap_id)
        start, body_start, end = self._locate(content, snap_id, path)

        raw = content[body_start:end]
        if raw.endswith("\n"):
            raw = raw[:-1]

        line = content.count("\n", 0, start) + 1
        if start >= 1 and content[start - 1] == "\n" and (start == 1 or content[start - 2] == "\n"):
            line -= 1

        return unescape_body(raw), line

    def append(self, path: PathLike, snap_id: str, body: str) -> None:
        """Append a new block, creating the file and its directories if needed."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8", newline="") as f:
            f.write(format_block(snap_id, body))

    def replace_block(self, path: PathLike, snap_id: str, body: str) -> None:
        """Replace the body of the first block named ``snap_id`` in place.

        Only the span from the header to the terminator changes; every other
        byte of the file is written back as read.
        """
        path = Path(path)
        with _write_lock:
            content = self._read(path, snap_id)
            start, _, end = self._locate(content, snap_id, path)
            span_end = end + len(TERMINATOR)
            replacement = f"{format_header(snap_id)}\n{escape_body(body)}\n{TERMINATOR}"
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content[:start] + replacement + content[span_end:])

    def read_blocks(self, path: PathLike) -> list[SnapshotBlock]:
        """Return every block of a store file, in on-disk order."""
        path = Path(path)
        with open(path, encoding="utf-8", newline="") as f:
            return parse_blocks(f.read(), path)

    def write_blocks(self, path: PathLike, blocks: Iterable[SnapshotBlock]) -> None:
        """Rewrite a store file so it holds exactly ``blocks``, in the given order."""
        path = Path(path)
        content = "".join(format_block(block.snap_id, block.body) for block in blocks)
        with _write_lock:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        logger.debug(f"Rewrote {path}")

    def read_standalone(self, path: PathLike) -> str:
        """Return the whole content of a standalone snapshot file.

        Raises:
            SnapshotNotFoundError: the file does not exist.
        """
        path = Path(path)
        return self._read(path, path.name)

    def write_standalone(self, path: PathLike, body: str) -> None:
        """Create or overwrite a standalone snapshot file with ``body`` as is."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with _write_lock:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(body)

    def list_snapshot_files(
        self, snapshot_dir: PathLike, suffix: str = SNAPSHOT_SUFFIX, standalone: bool = False
    ) -> list[Path]:
        """List store files directly inside ``snapshot_dir``.

        Standalone snapshot files hold a raw body, not blocks, and are only
        listed when ``standalone`` is true.
        """
        snapshot_dir = Path(snapshot_dir)
        if not snapshot_dir.is_dir():
            return []
        return sorted(
            p
            for p in snapshot_dir.iterdir()
            if p.is_file() and p.name.endswith(suffix) and (standalone or not is_standalone_file(p, suffix))
        )
