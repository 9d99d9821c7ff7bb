"""
Pytest configuration and shared fixtures for textsnap tests.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from textsnap.config import SnapshotConfig
from textsnap.registry import TestRegistry
from textsnap.session import SnapshotSession
from textsnap.storage import SnapshotStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def temp_snapshot_dir(temp_dir):
    """Create a temporary __snapshots__ directory."""
    snapshot_path = temp_dir / "__snapshots__"
    snapshot_path.mkdir(parents=True, exist_ok=True)
    return snapshot_path


@pytest.fixture
def store():
    return SnapshotStore()


@pytest.fixture
def registry():
    return TestRegistry()


@pytest.fixture
def module_file(temp_dir):
    """A test module whose snapshots go to __snapshots__/test_module.snap."""
    module = temp_dir / "test_module.py"
    module.write_text("def test_one():\n    pass\n")
    return module


@pytest.fixture
def make_session(temp_dir):
    """Build a session with color off and explicit modes."""

    def _make(**overrides):
        config = SnapshotConfig(color=False, **overrides)
        return SnapshotSession(config, root=temp_dir)

    return _make
