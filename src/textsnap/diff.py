"""
Diff rendering for snapshot mismatches.

Builds a human readable diff between a stored snapshot (``expected``) and a
freshly serialized value (``received``). Multi-line values get a unified-style
line diff grouped into hunks; single-line values, and single-line replacements
inside a multi-line diff, get a character level diff where only the changed
characters are highlighted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import styles
from .matcher import DELETE, EQUAL, INSERT, REPLACE, OpCode, SequenceMatcher, format_range_unified

DEFAULT_CONTEXT = 3

# Range headers are only worth printing once either side is this long.
RANGE_HEADER_MIN_LINES = 10


@dataclass(frozen=True)
class DiffResult:
    """Rendered diff plus the number of inserted and deleted spans or lines."""

    text: str
    inserted: int
    deleted: int

    @property
    def empty(self) -> bool:
        return self.text == ""


NO_DIFF = DiffResult(text="", inserted=-1, deleted=-1)


def split_newlines(s: str) -> list[str]:
    """Split on newlines keeping them; the last line always ends with one."""
    return [line + "\n" for line in s.split("\n")]


def is_single_line(s: str) -> bool:
    """True when ``s`` has no newline, or only a trailing one."""
    i = s.find("\n")
    return i == -1 or i == len(s) - 1


def int_padding(inserted: int, deleted: int) -> tuple[str, str]:
    """Return paddings that right-align the two counts in a shared column.

    e.g. 1000 and 1 give ``("", "   ")``::

        1000
           1
    """
    i, d = len(str(inserted)), len(str(deleted))
    if i == d:
        return "", ""
    if i > d:
        return "", " " * (i - d)
    return " " * (d - i), ""


def _visible(segment: str) -> str:
    if segment.endswith("\n"):
        return segment[:-1] + styles.NEWLINE_SYMBOL
    return segment


def single_line_diff(expected: str, received: str) -> tuple[str, int, int]:
    """Character level diff of two single-line strings.

    Returns the two rendered lines (``- `` then ``+ ``) and the inserted and
    deleted span counts.
    """
    opcodes = SequenceMatcher(expected, received).get_opcodes()
    if len(opcodes) == 1 and opcodes[0].tag == EQUAL:
        return "", -1, -1

    inserted = deleted = 0
    a = [styles.background(styles.RED_BG, styles.RED_DIFF, "- ")]
    b = [styles.background(styles.GREEN_BG, styles.GREEN_DIFF, "+ ")]

    for tag, i1, i2, j1, j2 in opcodes:
        if tag == EQUAL:
            a.append(styles.background(styles.RED_BG, styles.RED_DIFF, expected[i1:i2]))
            b.append(styles.background(styles.GREEN_BG, styles.GREEN_DIFF, received[j1:j2]))
            continue
        if tag in (DELETE, REPLACE):
            deleted += 1
            a.append(styles.delete_bold(_visible(expected[i1:i2])))
        if tag in (INSERT, REPLACE):
            inserted += 1
            b.append(styles.insert_bold(_visible(received[j1:j2])))

    line_a, line_b = "".join(a), "".join(b)
    if not line_a.endswith("\n"):
        line_a += "\n"
    if not line_b.endswith("\n"):
        line_b += "\n"

    return line_a + line_b, inserted, deleted


def _range_header(group: list[OpCode]) -> str:
    first, last = group[0], group[-1]
    return styles.range_header(
        format_range_unified(first.i1, last.i2),
        format_range_unified(first.j1, last.j2),
    )


def unified_diff(expected: str, received: str, context: int = DEFAULT_CONTEXT) -> tuple[str, int, int]:
    """Line level diff grouped into hunks of ``context`` lines."""
    a_lines = split_newlines(expected)
    b_lines = split_newlines(received)
    show_ranges = len(a_lines) > RANGE_HEADER_MIN_LINES or len(b_lines) > RANGE_HEADER_MIN_LINES

    inserted = deleted = 0
    out: list[str] = []

    for group in SequenceMatcher(a_lines, b_lines).get_grouped_opcodes(context):
        if show_ranges:
            out.append(_range_header(group))

        for tag, i1, i2, j1, j2 in group:
            if tag == EQUAL:
                for line in a_lines[i1:i2]:
                    if line == "\n":
                        line = styles.NEWLINE_SYMBOL + "\n"
                    out.append(styles.equal(line))
                continue

            if tag == REPLACE and i2 - i1 == 1 and j2 - j1 == 1:
                text, i, d = single_line_diff(a_lines[i1], b_lines[j1])
                out.append(text)
                inserted += i
                deleted += d
                continue

            if tag in (DELETE, REPLACE):
                for line in a_lines[i1:i2]:
                    out.append(styles.delete(line))
                    deleted += 1
            if tag in (INSERT, REPLACE):
                for line in b_lines[j1:j2]:
                    out.append(styles.insert(line))
                    inserted += 1

    return "".join(out), inserted, deleted


def header(inserted: int, deleted: int) -> str:
    """Two-line count header, numbers right-aligned."""
    i_pad, d_pad = int_padding(inserted, deleted)
    return styles.delete(f"Snapshot {d_pad}- {deleted}\n") + styles.insert(f"Received {i_pad}+ {inserted}\n")


def render(expected: str, received: str, context: int = DEFAULT_CONTEXT) -> DiffResult:
    """Render the diff between a stored snapshot and a received value.

    Returns :data:`NO_DIFF` when the two are identical.
    """
    if expected == received:
        return NO_DIFF

    if is_single_line(expected) and is_single_line(received):
        body, inserted, deleted = single_line_diff(expected, received)
    else:
        body, inserted, deleted = unified_diff(expected, received, context)

    return DiffResult(
        text=header(inserted, deleted) + "\n" + body,
        inserted=inserted,
        deleted=deleted,
    )


def build_report(result: DiffResult, location: Optional[str] = None) -> str:
    """Wrap a rendered diff for display in a test failure.

    ``location`` is usually ``<snapshot file>:<line>`` and ends the report.
    """
    if result.empty:
        return ""

    parts = ["\n", result.text, "\n"]
    if location:
        parts.append(styles.paint(styles.DIM, f"at {location}\n"))
    return "".join(parts)
