"""METRICSNAP — Exception Hierarchy.

Per-account failures never surface as exceptions past the orchestrator;
they become sentinel strings on the row. Only the orchestration-level
errors below are allowed to fail a refresh.
"""


class MetricSnapError(Exception):
    """Base class for all METRICSNAP errors."""


class DecryptionError(MetricSnapError):
    """Raised when a stored credential cannot be decrypted."""


class SnapshotError(MetricSnapError):
    """Raised when a snapshot cannot be created, found or updated."""


class SnapshotNotFoundError(SnapshotError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id} not found")


class InvalidTransitionError(SnapshotError):
    """Raised on a status change the snapshot lifecycle does not allow."""

    def __init__(self, snapshot_id: str, current: str, target: str):
        self.snapshot_id = snapshot_id
        self.current = current
        self.target = target
        super().__init__(
            f"Snapshot {snapshot_id}: cannot move from '{current}' to '{target}'"
        )


class PersistenceError(MetricSnapError):
    """Raised when the metrics store rejects a write."""


class RefreshError(MetricSnapError):
    """Raised when a whole refresh run fails.

    Carries the snapshot id (if one was created) so callers can point
    users at the failed attempt.
    """

    def __init__(self, message: str, snapshot_id: str | None = None):
        self.snapshot_id = snapshot_id
        super().__init__(message)
