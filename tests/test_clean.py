"""
Tests for obsolete snapshot detection and cleanup.
"""
import pytest

from textsnap import styles
from textsnap.clean import (
    RunFilter,
    ScanResult,
    is_naturally_sorted,
    module_for_snapshot,
    natural_key,
    parse_snap_id,
    scan,
    summary,
)
from textsnap.exceptions import CorruptedSnapshotError
from textsnap.registry import StandaloneRegistry
from textsnap.storage import format_block


def write_snap(path, *blocks):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(format_block(snap_id, body) for snap_id, body in blocks))


def header_ids(path):
    return [line[1:-1] for line in path.read_text().split("\n") if line.startswith("[")]


class TestParseSnapId:
    """Tests for the counted identifier grammar."""

    @pytest.mark.parametrize(
        "snap_id,expected",
        [
            ("test_add - 1", "test_add - 1"),
            ("TestExample/case_1 - 12", "TestExample/case_1 - 12"),
            ("test_add - 2 - empty input", "test_add - 2"),
            ("TestCls::test_m[a-b] - 3", "TestCls::test_m[a-b] - 3"),
            ("test_add", None),
            ("test_add - x", None),
            ("helper - 1", None),
            ("custom identifier", None),
        ],
    )
    def test_parse(self, snap_id, expected):
        """Test which identifiers take part in counting."""
        assert parse_snap_id(snap_id) == expected

    def test_custom_prefixes(self):
        """Test that only the configured prefixes are counted."""
        assert parse_snap_id("check_add - 1", ["check"]) == "check_add - 1"
        assert parse_snap_id("test_add - 1", ["check"]) is None


class TestNaturalSort:
    """Tests for natural ordering of headers."""

    def test_natural_order(self):
        """Test numeric aware ordering of headers."""
        items = [
            "[TestExample/Test_Case_1#74 - 1]",
            "[TestExample/Test_Case_2#01 - 1 - b]",
            "[TestExample/Test_Case_1#05 - 1]",
            "[TestExample/Test_Case_1#09 - 1]",
            "[TestExample/Test_Case_2#01 - 2 - a]",
            "[TestExample/Test_Case_1#74 - 1 - my label]",
            "[TestExample - 1]",
            "[TestExample/Test_Case_1#71 - 1]",
            "[TestExample/Test_Case_2#01 - 3 - c]",
            "[TestExample/Test_Case_1#100 - 1 - another label]",
            "[TestExample/Test_Case_1#7 - 1]",
        ]

        assert sorted(items, key=natural_key) == [
            "[TestExample - 1]",
            "[TestExample/Test_Case_1#05 - 1]",
            "[TestExample/Test_Case_1#7 - 1]",
            "[TestExample/Test_Case_1#09 - 1]",
            "[TestExample/Test_Case_1#71 - 1]",
            "[TestExample/Test_Case_1#74 - 1 - my label]",
            "[TestExample/Test_Case_1#74 - 1]",
            "[TestExample/Test_Case_1#100 - 1 - another label]",
            "[TestExample/Test_Case_2#01 - 1 - b]",
            "[TestExample/Test_Case_2#01 - 2 - a]",
            "[TestExample/Test_Case_2#01 - 3 - c]",
        ]

    def test_is_naturally_sorted(self):
        assert is_naturally_sorted(["[t - 2]", "[t - 10]"])
        assert not is_naturally_sorted(["[t - 10]", "[t - 2]"])
        assert is_naturally_sorted([])


class TestRunFilter:
    """Tests for RunFilter."""

    def test_module_for_snapshot(self, temp_dir):
        """Test mapping a store file back to its test module."""
        snap = temp_dir / "__snapshots__" / "test_api.snap"

        assert module_for_snapshot(snap) == temp_dir / "test_api.py"
        assert module_for_snapshot(temp_dir / "__snapshots__" / "test_api.snap.txt", ".snap.txt") == (
            temp_dir / "test_api.py"
        )
        assert module_for_snapshot(temp_dir / "__snapshots__" / "test_api.test_get_1.snap") == temp_dir / "test_api.py"

    def test_skipped_entries(self):
        """Test that skipped tests and their children are excluded."""
        run_filter = RunFilter(skipped={"test_a", "TestCls"})

        assert run_filter.excludes_entry("test_a - 1")
        assert run_filter.excludes_entry("test_a[1] - 1")
        assert run_filter.excludes_entry("TestCls::test_m - 2")
        assert not run_filter.excludes_entry("test_ab - 1")
        assert not run_filter.excludes_entry("test_b - 1")

    def test_pattern_entries(self):
        """Test that entries not matching the selection pattern are excluded."""
        run_filter = RunFilter(pattern="^test_a")

        assert not run_filter.excludes_entry("test_a - 1")
        assert run_filter.excludes_entry("test_b - 1")

    def test_excludes_uncollected_module(self, temp_dir):
        """Test that files of modules outside the run are excluded."""
        (temp_dir / "test_a.py").write_text("def test_x():\n    pass\n")
        (temp_dir / "test_b.py").write_text("def test_y():\n    pass\n")
        run_filter = RunFilter(collected_modules={temp_dir / "test_a.py"})

        assert not run_filter.excludes_file(temp_dir / "__snapshots__" / "test_a.snap")
        assert run_filter.excludes_file(temp_dir / "__snapshots__" / "test_b.snap")
        assert not run_filter.excludes_file(temp_dir / "__snapshots__" / "test_gone.snap")

    def test_skipped_standalone_files(self, temp_dir):
        """Test that standalone files of skipped tests are excluded."""
        (temp_dir / "test_a.py").write_text("def test_x():\n    pass\n")
        run_filter = RunFilter(skipped={"test_x", "TestCls::test_m"})
        snap_dir = temp_dir / "__snapshots__"

        assert run_filter.excludes_file(snap_dir / "test_a.test_x_1.snap")
        assert run_filter.excludes_file(snap_dir / "test_a.TestCls_test_m_2.snap")
        assert not run_filter.excludes_file(snap_dir / "test_a.test_xy_1.snap")
        assert not run_filter.excludes_file(snap_dir / "test_a.snap")

    def test_pattern_files(self, temp_dir):
        """Test that files whose module defines no matching test are excluded."""
        (temp_dir / "test_a.py").write_text("def test_alpha():\n    pass\n")
        (temp_dir / "test_b.py").write_text("class TestBeta:\n    def test_m(self):\n        pass\n")
        run_filter = RunFilter(pattern="alpha")

        assert not run_filter.excludes_file(temp_dir / "__snapshots__" / "test_a.snap")
        assert run_filter.excludes_file(temp_dir / "__snapshots__" / "test_b.snap")


class TestScan:
    """Tests for scan."""

    @pytest.fixture
    def snap_dir(self, temp_snapshot_dir):
        return temp_snapshot_dir

    def test_obsolete_files(self, registry, snap_dir):
        """Test detecting an unregistered store file next to a registered one."""
        used = snap_dir / "test_a.snap"
        unused = snap_dir / "test_b.snap"
        write_snap(used, ("test_x - 1", "x\n"))
        write_snap(unused, ("test_y - 1", "y\n"))
        (snap_dir / "notes.txt").write_text("not a snapshot")
        registry.next_id(used, "test_x")

        result = scan(registry)

        assert result.obsolete_files == [unused]
        assert result.obsolete_entries == []
        assert result.is_dirty
        assert unused.exists()

    def test_obsolete_files_removed_on_update(self, registry, snap_dir):
        """Test that update mode deletes obsolete files."""
        used = snap_dir / "test_a.snap"
        unused = snap_dir / "test_b.snap"
        write_snap(used, ("test_x - 1", "x\n"))
        write_snap(unused, ("test_y - 1", "y\n"))
        registry.next_id(used, "test_x")

        result = scan(registry, update=True)

        assert result.obsolete_files == [unused]
        assert not result.is_dirty
        assert not unused.exists()
        assert used.exists()

    def test_unselected_module_file_is_kept(self, registry, temp_dir, snap_dir):
        """Test that a file whose module was not collected is not obsolete."""
        (temp_dir / "test_a.py").write_text("def test_x():\n    pass\n")
        (temp_dir / "test_b.py").write_text("def test_y():\n    pass\n")
        used = snap_dir / "test_a.snap"
        other = snap_dir / "test_b.snap"
        write_snap(used, ("test_x - 1", "x\n"))
        write_snap(other, ("test_y - 1", "y\n"))
        registry.next_id(used, "test_x")

        result = scan(registry, RunFilter(collected_modules={temp_dir / "test_a.py"}), update=True)

        assert result.obsolete_files == []
        assert other.exists()

    def test_standalone_files(self, registry, snap_dir):
        """Test that produced standalone files are kept and never parsed."""
        standalone = StandaloneRegistry()
        produced = standalone.next_path(snap_dir / "test_a.test_x", "test_x")
        produced.write_text("[raw body without terminator]\n")
        stale = snap_dir / "test_a.test_x_2.snap"
        stale.write_text("old")

        result = scan(registry, update=True, standalone=standalone)

        assert result.obsolete_files == [stale]
        assert produced.exists()
        assert not stale.exists()
        assert standalone.registered_files() == []

    def test_obsolete_entries(self, registry, snap_dir):
        """Test detecting blocks beyond what tests produced."""
        path = snap_dir / "test_a.snap"
        write_snap(
            path,
            ("test_x - 1", "1\n"),
            ("test_x - 2", "2\n"),
            ("test_x - 3", "3\n"),
            ("test_y - 1", "y\n"),
            ("custom identifier", "kept\n"),
        )
        before = path.read_text()
        registry.next_id(path, "test_x")
        registry.next_id(path, "test_x")

        result = scan(registry)

        assert result.obsolete_entries == ["test_x - 3", "test_y - 1"]
        assert result.is_dirty
        assert path.read_text() == before

    def test_obsolete_entries_removed_on_update(self, registry, snap_dir):
        """Test that update mode removes obsolete blocks and resets maxima."""
        path = snap_dir / "test_a.snap"
        write_snap(
            path,
            ("test_x - 1", "1\n"),
            ("test_x - 2", "2\n"),
            ("test_x - 3", "3\n"),
            ("custom identifier", "kept\n"),
        )
        registry.next_id(path, "test_x")
        registry.next_id(path, "test_x")

        result = scan(registry, update=True)

        assert result.obsolete_entries == ["test_x - 3"]
        assert not result.is_dirty
        assert header_ids(path) == ["test_x - 1", "test_x - 2", "custom identifier"]
        assert registry.registered_files() == []

    def test_labelled_entries_are_counted(self, registry, snap_dir):
        """Test that labels do not change which occurrence a block belongs to."""
        path = snap_dir / "test_a.snap"
        write_snap(path, ("test_x - 1 - first", "1\n"), ("test_x - 2 - second", "2\n"))
        registry.next_id(path, "test_x")

        result = scan(registry)

        assert result.obsolete_entries == ["test_x - 2 - second"]

    def test_skipped_entries_are_kept(self, registry, snap_dir):
        """Test that blocks of tests that did not run survive an update."""
        path = snap_dir / "test_a.snap"
        write_snap(path, ("test_x - 1", "1\n"), ("test_y - 1", "y\n"))
        registry.next_id(path, "test_x")

        result = scan(registry, RunFilter(skipped={"test_y"}), update=True)

        assert result.obsolete_entries == []
        assert header_ids(path) == ["test_x - 1", "test_y - 1"]

    def test_untouched_when_clean(self, registry, snap_dir):
        """Test that a file with nothing to do is not rewritten."""
        path = snap_dir / "test_a.snap"
        path.write_text("# notes\n" + format_block("test_x - 1", "1\n"))
        before = path.read_bytes()
        mtime = path.stat().st_mtime_ns
        registry.next_id(path, "test_x")

        result = scan(registry, update=True, sort=True)

        assert not result.has_obsolete
        assert result.sorted_files == []
        assert path.read_bytes() == before
        assert path.stat().st_mtime_ns == mtime

    def test_sort_without_update(self, registry, snap_dir):
        """Test that sorting happens even when not updating."""
        path = snap_dir / "test_a.snap"
        write_snap(path, ("test_x - 10", "10\n"), ("test_x - 2", "2\n"), ("test_x - 1", "1\n"))
        for _ in range(10):
            registry.next_id(path, "test_x")

        result = scan(registry, sort=True)

        assert result.sorted_files == [path]
        assert not result.is_dirty
        assert header_ids(path) == ["test_x - 1", "test_x - 2", "test_x - 10"]

    def test_sort_keeps_obsolete_without_update(self, registry, snap_dir):
        """Test that sorting without update keeps obsolete blocks."""
        path = snap_dir / "test_a.snap"
        write_snap(path, ("test_x - 2", "2\n"), ("test_x - 1", "1\n"))
        registry.next_id(path, "test_x")

        result = scan(registry, sort=True)

        assert result.obsolete_entries == ["test_x - 2"]
        assert result.is_dirty
        assert header_ids(path) == ["test_x - 1", "test_x - 2"]

    def test_corrupted_file(self, registry, snap_dir):
        """Test that a corrupted store file is reported, not repaired."""
        path = snap_dir / "test_a.snap"
        path.write_text("\n[test_x - 1]\nbody\n")
        registry.next_id(path, "test_x")

        with pytest.raises(CorruptedSnapshotError):
            scan(registry, update=True)

    def test_custom_suffix(self, registry, snap_dir):
        """Test scanning store files with an extra extension."""
        used = snap_dir / "test_a.snap.txt"
        unused = snap_dir / "test_b.snap.txt"
        plain_snap = snap_dir / "test_c.snap"
        write_snap(used, ("test_x - 1", "x\n"))
        write_snap(unused, ("test_y - 1", "y\n"))
        write_snap(plain_snap, ("test_z - 1", "z\n"))
        registry.next_id(used, "test_x")

        result = scan(registry, suffix=".snap.txt")

        assert result.obsolete_files == [unused]


class TestSummary:
    """Tests for the end of run summary."""

    def test_nothing_to_report(self):
        assert summary(ScanResult(), {"passed": 0}) == ""

    def test_events_and_obsolete(self, temp_dir):
        """Test the summary lines."""
        result = ScanResult(
            obsolete_files=[temp_dir / "test_b.snap"],
            obsolete_entries=["test_x - 3"],
            is_dirty=True,
        )

        text = styles.strip_styles(summary(result, {"added": 1, "passed": 2}))

        assert "Snapshot Summary" in text
        assert "✎ 1 snapshot added" in text
        assert "✓ 2 snapshots passed" in text
        assert "1 file obsolete" in text
        assert "1 snapshot obsolete" in text
        assert "  test_x - 3" in text
        assert "UPDATE_SNAPS=clean" in text

    def test_removed_wording(self):
        """Test the wording after an update."""
        result = ScanResult(obsolete_entries=["test_x - 3", "test_x - 4"])

        text = styles.strip_styles(summary(result, updated=True))

        assert "2 snapshots removed" in text
        assert "UPDATE_SNAPS" not in text
