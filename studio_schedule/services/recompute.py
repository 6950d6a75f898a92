"""Memoized and background recomputation of conflict verdicts.

The conflict engine is a pure function of the snapshot, so its result can be
cached under the snapshot's version tuple. For large schedules the work can be
pushed to a worker thread; a newer snapshot cancels the run in flight and only
the newest finished run is ever published.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from studio_schedule.config import Settings
from studio_schedule.domain.bus import EventBus
from studio_schedule.domain.events import ConflictsRecomputed, SnapshotVersion
from studio_schedule.domain.models import ConflictVerdict
from studio_schedule.repos.memory import ScheduleStore
from studio_schedule.services.adapters import Snapshot
from studio_schedule.services.conflicts import (
    ConflictComputationCancelled,
    compute_all_conflicts,
)

logger = logging.getLogger(__name__)

Verdicts = dict[str, ConflictVerdict]


def _compute(snapshot: Snapshot, settings: Settings, cancel_event=None) -> Verdicts:
    return compute_all_conflicts(
        snapshot.jobs,
        snapshot.reservations,
        snapshot.assignments,
        cancelled_policy=settings.cancelled_policy,
        default_duration=settings.default_duration,
        cancel_event=cancel_event,
    )


class ConflictCache:
    """Verdicts for the store's current snapshot, recomputed only when it changes."""

    def __init__(self, store: ScheduleStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self._key: tuple | None = None
        self._verdicts: Verdicts = {}
        self._lock = threading.Lock()

    def _key_for(self, version: SnapshotVersion) -> tuple:
        return (
            version,
            self.settings.cancelled_policy,
            self.settings.default_duration,
        )

    def get(self) -> Verdicts:
        key = self._key_for(self.store.version)
        with self._lock:
            if key == self._key:
                return self._verdicts
        verdicts = _compute(self.store.snapshot(), self.settings)
        with self._lock:
            self._key = key
            self._verdicts = verdicts
        return verdicts

    def prime(self, version: SnapshotVersion, verdicts: Verdicts) -> bool:
        """Store verdicts computed elsewhere if they match the current snapshot."""
        if version != self.store.version:
            return False
        with self._lock:
            self._key = self._key_for(version)
            self._verdicts = verdicts
        return True

    def invalidate(self) -> None:
        with self._lock:
            self._key = None
            self._verdicts = {}


class BackgroundRecomputer:
    """Runs conflict computation off the calling thread, newest snapshot wins."""

    def __init__(
        self,
        bus: EventBus,
        settings: Settings,
        executor: Executor | None = None,
    ) -> None:
        self.bus = bus
        self.settings = settings
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="conflicts"
        )
        self._lock = threading.Lock()
        self._generation = 0
        self._cancel: threading.Event | None = None
        self.latest_version: SnapshotVersion | None = None
        self.latest: Verdicts | None = None

    def submit(self, version: SnapshotVersion, snapshot: Snapshot) -> Future:
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            self._generation += 1
            generation = self._generation
            cancel = threading.Event()
            self._cancel = cancel
        return self._executor.submit(self._run, generation, version, snapshot, cancel)

    def _run(
        self,
        generation: int,
        version: SnapshotVersion,
        snapshot: Snapshot,
        cancel: threading.Event,
    ) -> Verdicts | None:
        try:
            verdicts = _compute(snapshot, self.settings, cancel_event=cancel)
        except ConflictComputationCancelled:
            logger.info("Abandoned conflict computation for snapshot %s", version)
            return None
        except Exception:
            logger.exception("Conflict computation failed for snapshot %s", version)
            return None

        with self._lock:
            if generation != self._generation or cancel.is_set():
                logger.info("Discarding stale conflict result for snapshot %s", version)
                return None
            self.latest_version = version
            self.latest = verdicts

        self.bus.publish(ConflictsRecomputed(snapshot_version=version, verdicts=verdicts))
        return verdicts

    def shutdown(self) -> None:
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
        self._executor.shutdown(wait=True)
