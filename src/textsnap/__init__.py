"""
Text snapshot testing.

This package stores serialized values in flat ``.snap`` files, renders
readable diffs when they change and removes snapshots no test produces
anymore.
"""

import logging
import sys

__version__ = "0.1.0"

# Configure logging for the package
def configure_logging(level=logging.INFO):
    """Configure logging for the textsnap package."""
    # Configure the package-level logger
    logger = logging.getLogger('textsnap')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        formatter = logging.Formatter('%(levelname)s: %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(level)

    return logger

# Configure logging by default
configure_logging()

# Import main classes for public API
from .clean import RunFilter, ScanResult, natural_key, parse_snap_id, scan, summary
from .cli import SnapshotCLI, main
from .config import ConfigManager, SnapshotConfig
from .diff import DiffResult, build_report, render
from .exceptions import (
    CorruptedSnapshotError,
    SnapshotError,
    SnapshotMismatchError,
    SnapshotNotFoundError,
)
from .matcher import Match, OpCode, SequenceMatcher, format_range_unified
from .registry import StandaloneRegistry, TestRegistry
from .serialize import serialize
from .session import Comparison, SnapshotSession
from .storage import SnapshotBlock, SnapshotStore

__all__ = [
    # Version
    "__version__",
    "configure_logging",
    # Matcher
    "SequenceMatcher",
    "Match",
    "OpCode",
    "format_range_unified",
    # Diff
    "DiffResult",
    "render",
    "build_report",
    # Storage
    "SnapshotStore",
    "SnapshotBlock",
    # Registry
    "TestRegistry",
    "StandaloneRegistry",
    # Cleanup
    "RunFilter",
    "ScanResult",
    "scan",
    "summary",
    "parse_snap_id",
    "natural_key",
    # Session
    "SnapshotSession",
    "Comparison",
    "serialize",
    # Config
    "ConfigManager",
    "SnapshotConfig",
    # Errors
    "SnapshotError",
    "SnapshotNotFoundError",
    "CorruptedSnapshotError",
    "SnapshotMismatchError",
    # CLI
    "SnapshotCLI",
    "main",
]
