"""
Sequence matching engine for snapshot diffs.

This module aligns two ordered token sequences (lines, or characters for
single-line values) and describes how to turn one into the other as a list
of tagged range pairs. The algorithm is the junk-tolerant longest common
substring search popularised by Ratcliff/Obershelp style matchers: find the
longest matching block, then recurse on the pieces to its left and right.
"""
from __future__ import annotations

from collections.abc import Hashable, Sequence
from typing import NamedTuple

EQUAL = "equal"
DELETE = "delete"
INSERT = "insert"
REPLACE = "replace"

# Popularity heuristic: with at least AUTOJUNK_MIN_SIZE tokens in b, an element
# seen more than len(b) // 100 + 1 times is left out of the b2j index.
AUTOJUNK_MIN_SIZE = 200


class Match(NamedTuple):
    """A run of ``size`` equal elements at ``a[a:a+size]`` and ``b[b:b+size]``."""

    a: int
    b: int
    size: int


class OpCode(NamedTuple):
    """Instruction turning ``a[i1:i2]`` into ``b[j1:j2]``."""

    tag: str
    i1: int
    i2: int
    j1: int
    j2: int


class SequenceMatcher:
    """Compares two sequences of hashable tokens.

    Results are cached, so a matcher is cheap to query repeatedly but must not
    be reused for different inputs; build a new one instead.
    """

    def __init__(self, a: Sequence[Hashable] = (), b: Sequence[Hashable] = (), autojunk: bool = True):
        self.a = tuple(a)
        self.b = tuple(b)
        self.autojunk = autojunk
        self._matching_blocks: list[Match] | None = None
        self._opcodes: list[OpCode] | None = None
        self._index_b()

    def _index_b(self) -> None:
        """Map every element of b to the ascending positions it occupies."""
        b2j: dict[Hashable, list[int]] = {}
        for j, elt in enumerate(self.b):
            b2j.setdefault(elt, []).append(j)

        self.popular: set[Hashable] = set()
        n = len(self.b)
        if self.autojunk and n >= AUTOJUNK_MIN_SIZE:
            ntest = n // 100 + 1
            for elt, positions in b2j.items():
                if len(positions) > ntest:
                    self.popular.add(elt)
            for elt in self.popular:
                del b2j[elt]

        self.b2j = b2j

    def find_longest_match(self, alo: int = 0, ahi: int | None = None, blo: int = 0, bhi: int | None = None) -> Match:
        """Find the longest matching block in ``a[alo:ahi]`` and ``b[blo:bhi]``.

        Ties go to the block starting earliest in a, then earliest in b.
        Popular elements never start a match but a found match is extended
        across them on both sides. Returns ``Match(alo, blo, 0)`` when nothing
        matches.
        """
        a, b, b2j = self.a, self.b, self.b2j
        if ahi is None:
            ahi = len(a)
        if bhi is None:
            bhi = len(b)

        besti, bestj, bestsize = alo, blo, 0
        # j2len[j] is the length of the match ending at a[i-1] and b[j]
        j2len: dict[int, int] = {}
        nothing: list[int] = []
        for i in range(alo, ahi):
            newj2len: dict[int, int] = {}
            for j in b2j.get(a[i], nothing):
                if j < blo:
                    continue
                if j >= bhi:
                    break
                k = newj2len[j] = j2len.get(j - 1, 0) + 1
                if k > bestsize:
                    besti, bestj, bestsize = i - k + 1, j - k + 1, k
            j2len = newj2len

        while besti > alo and bestj > blo and a[besti - 1] == b[bestj - 1]:
            besti, bestj, bestsize = besti - 1, bestj - 1, bestsize + 1
        while besti + bestsize < ahi and bestj + bestsize < bhi and a[besti + bestsize] == b[bestj + bestsize]:
            bestsize += 1

        return Match(besti, bestj, bestsize)

    def get_matching_blocks(self) -> list[Match]:
        """Return the ordered, non-overlapping matching blocks.

        Adjacent blocks are merged and the list always ends with the
        sentinel ``Match(len(a), len(b), 0)``.
        """
        if self._matching_blocks is not None:
            return self._matching_blocks

        la, lb = len(self.a), len(self.b)
        # Sub-ranges still to bisect; processing order is irrelevant, blocks are sorted after.
        pending = [(0, la, 0, lb)]
        blocks: list[Match] = []
        while pending:
            alo, ahi, blo, bhi = pending.pop()
            match = self.find_longest_match(alo, ahi, blo, bhi)
            i, j, k = match
            if k:
                blocks.append(match)
                if alo < i and blo < j:
                    pending.append((alo, i, blo, j))
                if i + k < ahi and j + k < bhi:
                    pending.append((i + k, ahi, j + k, bhi))
        blocks.sort()

        merged: list[Match] = []
        i1 = j1 = k1 = 0
        for i2, j2, k2 in blocks:
            if i1 + k1 == i2 and j1 + k1 == j2:
                k1 += k2
            else:
                if k1:
                    merged.append(Match(i1, j1, k1))
                i1, j1, k1 = i2, j2, k2
        if k1:
            merged.append(Match(i1, j1, k1))
        merged.append(Match(la, lb, 0))

        self._matching_blocks = merged
        return merged

    def get_opcodes(self) -> list[OpCode]:
        """Describe how to turn a into b.

        The a-ranges of the result tile ``a`` exactly and the b-ranges tile
        ``b`` exactly.
        """
        if self._opcodes is not None:
            return self._opcodes

        i = j = 0
        opcodes: list[OpCode] = []
        for ai, bj, size in self.get_matching_blocks():
            tag = ""
            if i < ai and j < bj:
                tag = REPLACE
            elif i < ai:
                tag = DELETE
            elif j < bj:
                tag = INSERT
            if tag:
                opcodes.append(OpCode(tag, i, ai, j, bj))
            i, j = ai + size, bj + size
            if size:
                opcodes.append(OpCode(EQUAL, ai, i, bj, j))

        self._opcodes = opcodes
        return opcodes

    def get_grouped_opcodes(self, context: int = 3) -> list[list[OpCode]]:
        """Split the opcodes into hunks with at most ``context`` lines of context.

        The leading and trailing equal runs are clamped to ``context``
        elements and an interior equal run longer than ``2 * context`` is cut
        in two, starting a new group. A negative ``context`` returns all
        opcodes as a single group.
        """
        codes = list(self.get_opcodes())
        if not codes:
            codes = [OpCode(EQUAL, 0, 1, 0, 1)]

        if context < 0:
            return [codes]

        if codes[0].tag == EQUAL:
            tag, i1, i2, j1, j2 = codes[0]
            codes[0] = OpCode(tag, max(i1, i2 - context), i2, max(j1, j2 - context), j2)
        if codes[-1].tag == EQUAL:
            tag, i1, i2, j1, j2 = codes[-1]
            codes[-1] = OpCode(tag, i1, min(i2, i1 + context), j1, min(j2, j1 + context))

        window = context + context
        groups: list[list[OpCode]] = []
        group: list[OpCode] = []
        for tag, i1, i2, j1, j2 in codes:
            if tag == EQUAL and i2 - i1 > window:
                group.append(OpCode(tag, i1, min(i2, i1 + context), j1, min(j2, j1 + context)))
                groups.append(group)
                group = []
                i1, j1 = max(i1, i2 - context), max(j1, j2 - context)
            group.append(OpCode(tag, i1, i2, j1, j2))

        if group and not (len(group) == 1 and group[0].tag == EQUAL):
            groups.append(group)

        return groups


def format_range_unified(start: int, stop: int) -> str:
    """Convert a half-open range to the ``start[,length]`` form of unified diffs.

    Lines are 1-based; a length of one is omitted and an empty range reports
    the line just before it (0 at the start of the file).
    """
    beginning = start + 1
    length = stop - start
    if length == 1:
        return f"{beginning}"
    if not length:
        beginning -= 1
    return f"{beginning},{length}"
