"""METRICSNAP — Snapshot State Machine.

Owns the lifecycle of a refresh attempt:

    pending → in_progress → processing → completed
                 └─────────────┴──────────→ failed

``completed`` and ``failed`` are terminal. ``start_refresh`` is the one
idempotency point: a same-day re-run of the same scope, refresh type and
date preset reuses (and resets) the existing snapshot instead of adding one.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from metricsnap.core.errors import (
    InvalidTransitionError,
    SnapshotError,
    SnapshotNotFoundError,
)
from metricsnap.core.logging import get_logger
from metricsnap.models.snapshot_models import (
    RefreshStatus,
    Snapshot,
    SnapshotMetric,
    TERMINAL_STATUSES,
)

logger = get_logger("snapshots.state")

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    RefreshStatus.PENDING.value: {
        RefreshStatus.IN_PROGRESS.value,
        RefreshStatus.PROCESSING.value,
        RefreshStatus.FAILED.value,
    },
    RefreshStatus.IN_PROGRESS.value: {
        RefreshStatus.PROCESSING.value,
        RefreshStatus.COMPLETED.value,
        RefreshStatus.FAILED.value,
    },
    RefreshStatus.PROCESSING.value: {
        RefreshStatus.COMPLETED.value,
        RefreshStatus.FAILED.value,
    },
    RefreshStatus.COMPLETED.value: set(),
    RefreshStatus.FAILED.value: set(),
}


@dataclass(frozen=True)
class StartRefreshResult:
    snapshot_id: str
    is_update: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return current not in TERMINAL_STATUSES
    return target in ALLOWED_TRANSITIONS.get(current, set())


class SnapshotStateMachine:
    """Create, replace and advance refresh snapshots."""

    def __init__(self, session: Session, clock: Optional[Callable[[], datetime]] = None):
        self.session = session
        self.clock = clock or _utcnow

    def _today(self) -> date:
        return self.clock().date()

    def _find_same_day(
        self,
        scope_id: int,
        refresh_type: str,
        date_preset: Optional[str],
    ) -> Optional[Snapshot]:
        # A None preset only ever matches None
        return self.session.exec(
            select(Snapshot).where(
                Snapshot.scope_id == scope_id,
                Snapshot.refresh_type == refresh_type,
                Snapshot.date_preset_key == (date_preset or ""),
                Snapshot.snapshot_date == self._today(),
            )
        ).first()

    def _delete_metrics(self, snapshot_id: str) -> int:
        metrics = self.session.exec(
            select(SnapshotMetric).where(SnapshotMetric.snapshot_id == snapshot_id)
        ).all()
        for m in metrics:
            self.session.delete(m)
        return len(metrics)

    def _replace(self, existing: Snapshot, metadata: dict) -> StartRefreshResult:
        removed = self._delete_metrics(existing.id)
        existing.status = RefreshStatus.IN_PROGRESS.value
        existing.record_count = None
        existing.refresh_metadata = dict(metadata)
        existing.updated_at = self.clock()
        self.session.add(existing)
        self.session.commit()
        logger.info(
            f"Reusing same-day snapshot {existing.id} ({removed} old metrics removed)",
            extra={"snapshot_id": existing.id, "refresh_type": existing.refresh_type},
        )
        return StartRefreshResult(snapshot_id=existing.id, is_update=True)

    def start_refresh(
        self,
        scope_id: int,
        refresh_type: str,
        date_preset: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> StartRefreshResult:
        """Find-or-create the snapshot for this scope and day.

        Raises:
            SnapshotError: when the store cannot be read or written.
        """
        metadata = metadata or {}
        try:
            existing = self._find_same_day(scope_id, refresh_type, date_preset)
            if existing:
                return self._replace(existing, metadata)

            now = self.clock()
            snapshot = Snapshot(
                scope_id=scope_id,
                refresh_type=refresh_type,
                date_preset=date_preset,
                date_preset_key=date_preset or "",
                status=RefreshStatus.IN_PROGRESS.value,
                snapshot_date=now.date(),
                refresh_metadata=dict(metadata),
                created_at=now,
                updated_at=now,
            )
            self.session.add(snapshot)
            try:
                self.session.commit()
            except IntegrityError:
                # A concurrent refresh inserted the same scope/day first
                self.session.rollback()
                existing = self._find_same_day(scope_id, refresh_type, date_preset)
                if existing is None:
                    raise
                return self._replace(existing, metadata)

            logger.info(
                f"Created snapshot {snapshot.id} for scope {scope_id}",
                extra={"snapshot_id": snapshot.id, "refresh_type": refresh_type},
            )
            return StartRefreshResult(snapshot_id=snapshot.id)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SnapshotError(f"Could not create snapshot: {e}") from e

    def get(self, snapshot_id: str) -> Snapshot:
        snapshot = self.session.get(Snapshot, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot

    def set_status(
        self,
        snapshot_id: str,
        status: RefreshStatus | str,
        record_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> Snapshot:
        """Advance a snapshot through its lifecycle.

        Raises:
            SnapshotNotFoundError: unknown id.
            InvalidTransitionError: the move is not allowed from the current status.
            SnapshotError: the store rejected the update.
        """
        target = RefreshStatus(status).value
        snapshot = self.get(snapshot_id)
        if not can_transition(snapshot.status, target):
            raise InvalidTransitionError(snapshot_id, snapshot.status, target)

        metadata = dict(snapshot.refresh_metadata or {})
        if error_message:
            metadata["error"] = error_message
        if record_count is not None:
            metadata["record_count"] = record_count
            snapshot.record_count = record_count

        snapshot.status = target
        snapshot.refresh_metadata = metadata
        snapshot.updated_at = self.clock()
        try:
            self.session.add(snapshot)
            self.session.commit()
            self.session.refresh(snapshot)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SnapshotError(f"Could not update snapshot {snapshot_id}: {e}") from e

        logger.info(
            f"Snapshot {snapshot_id} → {target}",
            extra={"snapshot_id": snapshot_id, "refresh_type": snapshot.refresh_type},
        )
        return snapshot
