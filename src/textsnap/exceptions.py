"""Snapshot subsystem exceptions."""


class SnapshotError(Exception):
    """Base class for snapshot errors."""


class SnapshotNotFoundError(SnapshotError, LookupError):
    """No block with the requested identifier exists in the store file."""

    def __init__(self, snap_id: str, path=None):
        self.snap_id = snap_id
        self.path = path
        location = f" in {path}" if path is not None else ""
        super().__init__(f"snapshot not found: [{snap_id}]{location}")


class CorruptedSnapshotError(SnapshotError):
    """A header was found but its terminator is missing before end of file."""

    def __init__(self, snap_id: str, path=None):
        self.snap_id = snap_id
        self.path = path
        location = f" in {path}" if path is not None else ""
        super().__init__(f"snapshot [{snap_id}] is corrupted{location}: missing '---' terminator")


class SnapshotMismatchError(SnapshotError, AssertionError):
    """Received value differs from the stored snapshot."""

    def __init__(self, snap_id: str, diff: str):
        self.snap_id = snap_id
        self.diff = diff
        super().__init__(diff)
