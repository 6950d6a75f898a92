"""Domain events emitted when schedule snapshots change."""

from __future__ import annotations

from pydantic import BaseModel

from studio_schedule.domain.models import ConflictVerdict

SnapshotVersion = tuple[int, int, int]


class SnapshotChanged(BaseModel):
    """Fired when a job, reservation or assignment collection is mutated."""

    collection: str
    version: int


class ConflictsRecomputed(BaseModel):
    """Fired when a background recomputation finished for the newest snapshot."""

    snapshot_version: SnapshotVersion
    verdicts: dict[str, ConflictVerdict]

    @property
    def conflicting_job_ids(self) -> list[str]:
        return sorted(job_id for job_id, v in self.verdicts.items() if v.has_conflict)
