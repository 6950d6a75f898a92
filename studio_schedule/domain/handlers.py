"""Domain-event handlers that keep conflict verdicts in step with the snapshot."""

from __future__ import annotations

import logging

from studio_schedule.domain.bus import EventBus
from studio_schedule.domain.events import ConflictsRecomputed, SnapshotChanged
from studio_schedule.repos.memory import ScheduleStore
from studio_schedule.services.recompute import BackgroundRecomputer, ConflictCache

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires snapshot-change handlers to the bus.

    Without a recomputer the cache recomputes lazily on the next read. With
    one, every change schedules a background run whose result primes the
    cache.
    """

    def __init__(
        self,
        bus: EventBus,
        store: ScheduleStore,
        cache: ConflictCache,
        recomputer: BackgroundRecomputer | None = None,
    ) -> None:
        self.bus = bus
        self.store = store
        self.cache = cache
        self.recomputer = recomputer
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(SnapshotChanged, self.on_snapshot_changed)
        self.bus.subscribe(ConflictsRecomputed, self.on_conflicts_recomputed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_snapshot_changed(self, event: SnapshotChanged) -> None:
        logger.debug("Snapshot %s changed to version %d", event.collection, event.version)
        if self.recomputer is not None:
            self.recomputer.submit(self.store.version, self.store.snapshot())

    def on_conflicts_recomputed(self, event: ConflictsRecomputed) -> None:
        logger.info(
            "Verdicts ready for snapshot %s: %d conflicting job(s)",
            event.snapshot_version,
            len(event.conflicting_job_ids),
        )
        primed = self.cache.prime(event.snapshot_version, event.verdicts)
        if not primed:
            logger.debug(
                "Snapshot moved past %s before its verdicts were published",
                event.snapshot_version,
            )
