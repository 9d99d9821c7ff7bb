"""
pytest integration.

Enable with ``-p textsnap.plugin`` or ``pytest_plugins = ["textsnap.plugin"]``
in a conftest. Tests request the ``snaps`` fixture::

    def test_render(snaps):
        snaps.match(render_page())

Snapshots live in ``__snapshots__/<test module>.snap`` next to the test module.
``snaps.match_standalone(value)`` stores each value in a file of its own.
After the session the cleanup pass reports (or, with ``--snapshot-clean``,
removes) snapshots no test produced anymore.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import pytest

from .clean import RunFilter, ScanResult
from .config import SnapshotConfig
from .session import SnapshotSession

logger = logging.getLogger(__name__)

CONFIG_FILE = "textsnap.json"
PLUGIN_NAME = "textsnap-session"


def node_test_name(nodeid: str) -> str:
    """``tests/test_a.py::TestB::test_c[1]`` -> ``TestB::test_c[1]``."""
    return nodeid.split("::", 1)[1] if "::" in nodeid else nodeid


class Snaps:
    """Snapshot assertions bound to one test."""

    def __init__(
        self,
        session: SnapshotSession,
        test_file: Path,
        test_name: str,
        config: Optional[SnapshotConfig] = None,
    ):
        self.session = session
        self.test_file = test_file
        self.test_name = test_name
        self.config = config

    def with_config(self, **overrides: Any) -> "Snaps":
        """Return assertions using a modified configuration.

        e.g. ``snaps.with_config(filename="pages", extension=".html").match(html)``
        """
        base = self.config or self.session.config
        return Snaps(self.session, self.test_file, self.test_name, replace(base, **overrides))

    def match(self, *values: Any, label: Optional[str] = None) -> None:
        """Compare ``values`` with the next snapshot of this test."""
        __tracebackhide__ = True
        self.session.assert_match(self.test_file, self.test_name, *values, label=label, config=self.config)

    def match_standalone(self, *values: Any) -> None:
        """Compare ``values`` with a snapshot stored in a file of its own."""
        __tracebackhide__ = True
        self.session.assert_match_standalone(self.test_file, self.test_name, *values, config=self.config)

    def skip(self, reason: str = "") -> None:
        """Skip the test and keep its stored snapshots."""
        self.session.skip(self.test_name)
        pytest.skip(reason)


class SnapshotPlugin:
    """Tracks the run and triggers the cleanup pass once it is over."""

    def __init__(self, session: SnapshotSession):
        self.session = session
        self.not_run: set[str] = set()
        self.collected_modules: Optional[set[Path]] = None
        self.result: Optional[ScanResult] = None

    def pytest_deselected(self, items: list[pytest.Item]) -> None:
        for item in items:
            self.not_run.add(node_test_name(item.nodeid))

    def pytest_collection_finish(self, session: pytest.Session) -> None:
        self.collected_modules = {Path(item.path) for item in session.items}

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        # a failing test may not have reached all of its assertions
        if report.skipped or report.failed:
            self.not_run.add(node_test_name(report.nodeid))

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        if not self.session.config.clean:
            return
        if exitstatus not in (pytest.ExitCode.OK, pytest.ExitCode.TESTS_FAILED):
            logger.debug(f"Skipping snapshot cleanup, session ended with {exitstatus}")
            return

        run_filter = RunFilter(skipped=self.not_run, collected_modules=self.collected_modules)
        self.result = self.session.run_cleanup(run_filter)

        if self.result.is_dirty and self.session.config.ci:
            session.exitstatus = pytest.ExitCode.TESTS_FAILED


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("textsnap", "snapshot testing")
    group.addoption(
        "--snapshot-update",
        action="store_true",
        default=False,
        help="Update changed snapshots (obsolete ones are only reported)",
    )
    group.addoption(
        "--snapshot-clean",
        action="store_true",
        default=False,
        help="Update changed snapshots and remove obsolete ones",
    )
    group.addoption(
        "--snapshot-sort",
        action="store_true",
        default=False,
        help="Rewrite snapshot files in natural identifier order (ignored on CI)",
    )
    group.addoption(
        "--snapshot-ci",
        action="store_true",
        default=False,
        help="Forbid creating and updating snapshots (implied by CI=true)",
    )
    group.addoption(
        "--snapshot-no-clean",
        action="store_true",
        default=False,
        help="Skip the obsolete snapshot pass entirely",
    )


def load_config(config: pytest.Config) -> SnapshotConfig:
    """Build the snapshot configuration from textsnap.json, the environment and options."""
    base = SnapshotConfig.from_file(Path(config.rootpath) / CONFIG_FILE)
    snap_config = SnapshotConfig.from_env(base=base)

    if config.getoption("--snapshot-update"):
        snap_config.update = True
    if config.getoption("--snapshot-clean"):
        snap_config.update = True
        snap_config.clean_obsolete = True
    if config.getoption("--snapshot-sort"):
        snap_config.sort = True
    if config.getoption("--snapshot-ci"):
        snap_config.ci = True
    if config.getoption("--snapshot-no-clean"):
        snap_config.clean = False

    return snap_config


def pytest_configure(config: pytest.Config) -> None:
    session = SnapshotSession(load_config(config), root=config.rootpath)
    config.pluginmanager.register(SnapshotPlugin(session), PLUGIN_NAME)


def pytest_unconfigure(config: pytest.Config) -> None:
    plugin = config.pluginmanager.get_plugin(PLUGIN_NAME)
    if plugin is not None:
        config.pluginmanager.unregister(plugin, PLUGIN_NAME)


@pytest.fixture
def snaps(request: pytest.FixtureRequest):
    """Snapshot assertion helper for the current test."""
    session = request.config.pluginmanager.get_plugin(PLUGIN_NAME).session
    test_file = Path(request.node.path)
    test_name = node_test_name(request.node.nodeid)

    yield Snaps(session, test_file, test_name)

    session.end_test(test_file, test_name)
