"""In-memory snapshot sources for jobs, resource reservations and team assignments."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generic, Iterable, TypeVar

from pydantic import BaseModel

from studio_schedule.domain.bus import EventBus
from studio_schedule.domain.events import SnapshotChanged, SnapshotVersion
from studio_schedule.domain.models import (
    Job,
    JobStatus,
    ResourceReservation,
    TeamAssignment,
)
from studio_schedule.services.adapters import Snapshot

_R = TypeVar("_R", bound=BaseModel)


class _SnapshotRepository(Generic[_R]):
    """List-backed collection whose version increases on every mutation.

    When a bus is attached every mutation publishes ``SnapshotChanged``.
    """

    collection = ""

    def __init__(self, bus: EventBus | None = None) -> None:
        self._items: list[_R] = []
        self.version = 0
        self.bus = bus

    def _changed(self) -> None:
        self.version += 1
        if self.bus is not None:
            self.bus.publish(
                SnapshotChanged(collection=self.collection, version=self.version)
            )

    def add(self, item: _R) -> None:
        self._items.append(item)
        self._changed()

    def replace_all(self, items: Iterable[_R]) -> None:
        self._items = list(items)
        self._changed()

    def list_all(self) -> list[_R]:
        return list(self._items)


class JobRepository(_SnapshotRepository[Job]):
    collection = "jobs"

    def get(self, job_id: str) -> Job | None:
        return next((j for j in self._items if j.id == job_id), None)

    def delete(self, job_id: str) -> None:
        self._items = [j for j in self._items if j.id != job_id]
        self._changed()


class ReservationRepository(_SnapshotRepository[ResourceReservation]):
    collection = "reservations"


class AssignmentRepository(_SnapshotRepository[TeamAssignment]):
    collection = "assignments"


class ScheduleStore:
    """The three snapshot sources read together by the conflict engine."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self.jobs = JobRepository(bus)
        self.reservations = ReservationRepository(bus)
        self.assignments = AssignmentRepository(bus)

    @property
    def version(self) -> SnapshotVersion:
        return (self.jobs.version, self.reservations.version, self.assignments.version)

    def snapshot(self) -> Snapshot:
        return Snapshot(
            jobs=self.jobs.list_all(),
            reservations=self.reservations.list_all(),
            assignments=self.assignments.list_all(),
        )


# ---------------------------------------------------------------------------
# Seed data – a small studio week with one equipment and one team clash
# ---------------------------------------------------------------------------


def _seed(store: ScheduleStore) -> None:
    day = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    store.jobs.add(
        Job(
            id="job-wedding-silva",
            client_id="client-silva",
            title="Silva wedding",
            type="wedding",
            status=JobStatus.CONFIRMED,
            start=day + timedelta(days=1, hours=14),
            end=day + timedelta(days=1, hours=20),
            location="Quinta da Aveleda",
        )
    )
    store.jobs.add(
        Job(
            id="job-family-session",
            client_id="client-costa",
            title="Family session",
            type="portrait",
            status=JobStatus.SCHEDULED,
            start=day + timedelta(days=1, hours=18),
        )
    )
    store.jobs.add(
        Job(
            id="job-techstart-event",
            client_id="client-techstart",
            title="TechStart launch event",
            type="event",
            status=JobStatus.SCHEDULED,
            start=day + timedelta(days=3, hours=18),
            end=day + timedelta(days=3, hours=22),
        )
    )

    store.reservations.add(
        ResourceReservation(
            id="res-1",
            job_id="job-wedding-silva",
            resource_id="camera-1",
            reserved_from=day + timedelta(days=1, hours=13),
            reserved_until=day + timedelta(days=1, hours=21),
        )
    )
    store.reservations.add(
        ResourceReservation(
            id="res-2",
            job_id="job-family-session",
            resource_id="camera-1",
            reserved_from=day + timedelta(days=1, hours=18),
            reserved_until=day + timedelta(days=1, hours=20),
        )
    )
    store.reservations.add(
        ResourceReservation(
            id="res-3",
            job_id="job-techstart-event",
            resource_id="drone-1",
            reserved_from=day + timedelta(days=3, hours=17),
            reserved_until=day + timedelta(days=3, hours=22),
        )
    )

    store.assignments.add(TeamAssignment(job_id="job-wedding-silva", member_id="ana"))
    store.assignments.add(TeamAssignment(job_id="job-family-session", member_id="ana"))
    store.assignments.add(TeamAssignment(job_id="job-techstart-event", member_id="rui"))


def create_schedule_store(bus: EventBus | None = None) -> ScheduleStore:
    """Return a ScheduleStore pre-loaded with sample data."""
    store = ScheduleStore(bus)
    _seed(store)
    return store
