"""
Terminal presentation markers for diff output.

The diff renderer writes these ANSI SGR sequences unconditionally; callers that
do not want color remove them with :func:`strip_styles`.
"""
from __future__ import annotations

import re

RESET = "\x1b[0m"

RED_BG = "\x1b[48;5;225m"
GREEN_BG = "\x1b[48;5;159m"
BOLD_GREEN_BG = "\x1b[48;5;23m"
BOLD_RED_BG = "\x1b[48;5;127m"

DIM = "\x1b[2m"
GREEN_DIFF = "\x1b[38;5;22m"
RED_DIFF = "\x1b[38;5;52m"
YELLOW = "\x1b[33;1m"
WHITE = "\x1b[38;5;255m"
GREEN = "\x1b[32;1m"

NEWLINE_SYMBOL = "↵"

_SGR_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")


def strip_styles(text: str) -> str:
    """Remove every presentation marker from ``text``."""
    return _SGR_RE.sub("", text)


def paint(color: str, text: str) -> str:
    return f"{color}{text}{RESET}"


def _paint_line(prefix: str, text: str) -> str:
    # Reset before the newline so the background does not bleed into the next row.
    if text.endswith("\n"):
        return f"{prefix}{text[:-1]}{RESET}\n"
    return f"{prefix}{text}{RESET}"


def equal(text: str) -> str:
    return f"  {DIM}{text}{RESET}"


def delete(text: str) -> str:
    return _paint_line(f"{RED_DIFF}{RED_BG}- ", text)


def insert(text: str) -> str:
    return _paint_line(f"{GREEN_DIFF}{GREEN_BG}+ ", text)


def delete_bold(text: str) -> str:
    return f"{BOLD_RED_BG}{WHITE}{text}{RESET}"


def insert_bold(text: str) -> str:
    return f"{BOLD_GREEN_BG}{WHITE}{text}{RESET}"


def background(bg: str, color: str, text: str) -> str:
    return _paint_line(f"{bg}{color}", text)


def range_header(range_a: str, range_b: str) -> str:
    return f"{YELLOW}@@ -{range_a} +{range_b} @@{RESET}\n\n"
