"""Domain models for the studio schedule and its conflict annotations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

try:
    from enum import StrEnum
except ImportError:  # pragma: no cover - fallback for older Python runtimes

    class StrEnum(str, Enum):
        pass


DEFAULT_JOB_DURATION = timedelta(hours=2)

# Naive timestamps are read as already normalized to this zone.
REFERENCE_TZ = timezone.utc


def as_reference_tz(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=REFERENCE_TZ)
    return value


class JobStatus(StrEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PRODUCTION = "in_production"
    DELIVERY_PENDING = "delivery_pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ConflictKind(StrEnum):
    RESOURCE = "resource"
    TEAM = "team"


class Granularity(StrEnum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


class CancelledJobPolicy(StrEnum):
    """Whether cancelled jobs take part in conflict checks."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


class AlertPriority(StrEnum):
    URGENT = "urgent"
    ATTENTION = "attention"
    INFO = "info"


# ---------------------------------------------------------------------------
# Snapshot records (owned by the booking/claim sources)
# ---------------------------------------------------------------------------


class Job(BaseModel):
    id: str
    client_id: str | None = None
    title: str
    type: str
    status: JobStatus = JobStatus.SCHEDULED
    start: datetime
    end: datetime | None = None
    location: str | None = None

    @field_validator("start", "end")
    @classmethod
    def _in_reference_tz(cls, value: datetime | None) -> datetime | None:
        return as_reference_tz(value)

    def effective_end(self, default_duration: timedelta = DEFAULT_JOB_DURATION) -> datetime:
        """End used for every overlap computation; ``start + default`` when unset."""
        return self.end if self.end is not None else self.start + default_duration

    def is_malformed(self, default_duration: timedelta = DEFAULT_JOB_DURATION) -> bool:
        return self.effective_end(default_duration) <= self.start


class Resource(BaseModel):
    id: str
    name: str
    type: str | None = None


class TeamMember(BaseModel):
    id: str
    name: str
    role: str | None = None


class ResourceReservation(BaseModel):
    id: str | None = None
    job_id: str
    resource_id: str
    reserved_from: datetime
    reserved_until: datetime
    notes: str | None = None

    @field_validator("reserved_from", "reserved_until")
    @classmethod
    def _in_reference_tz(cls, value: datetime | None) -> datetime | None:
        return as_reference_tz(value)


class TeamAssignment(BaseModel):
    job_id: str
    member_id: str
    role: str | None = None


# ---------------------------------------------------------------------------
# Derived projections (never persisted)
# ---------------------------------------------------------------------------


class ConflictDetail(BaseModel):
    """One reason a job conflicts: a shared resource or person and the other job."""

    model_config = ConfigDict(frozen=True)

    kind: ConflictKind
    claim_id: str
    other_job_id: str


class ConflictVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    has_resource_conflict: bool = False
    has_team_conflict: bool = False
    conflicting_resource_ids: frozenset[str] = frozenset()
    conflicting_member_ids: frozenset[str] = frozenset()
    conflicting_job_ids: frozenset[str] = frozenset()
    details: frozenset[ConflictDetail] = frozenset()

    @property
    def has_conflict(self) -> bool:
        return self.has_resource_conflict or self.has_team_conflict

    @field_serializer(
        "conflicting_resource_ids", "conflicting_member_ids", "conflicting_job_ids"
    )
    def _sorted_ids(self, value: frozenset[str]) -> list[str]:
        return sorted(value)

    @field_serializer("details")
    def _sorted_details(self, value: frozenset[ConflictDetail]) -> list[dict]:
        ordered = sorted(value, key=lambda d: (d.kind, d.claim_id, d.other_job_id))
        return [d.model_dump() for d in ordered]


class CalendarEvent(BaseModel):
    job: Job
    verdict: ConflictVerdict


class CalendarBucket(BaseModel):
    range_start: datetime
    range_end: datetime
    events: list[CalendarEvent] = Field(default_factory=list)


class JobFilter(BaseModel):
    """Display pre-filter applied by the calendar view."""

    statuses: set[JobStatus] | None = None
    types: set[str] | None = None

    def matches(self, job: Job) -> bool:
        if self.statuses and job.status not in self.statuses:
            return False
        if self.types and job.type not in self.types:
            return False
        return True


class ConflictAlert(BaseModel):
    id: str
    title: str
    description: str
    priority: AlertPriority
    entity_type: str = "job"
    entity_id: str
    count: int = 1
    action_path: str | None = None


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ConflictCheckRequest(BaseModel):
    job_id: str
    start: datetime
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _in_reference_tz(cls, value: datetime | None) -> datetime | None:
        return as_reference_tz(value)


class JobConflictsResponse(BaseModel):
    job: Job
    verdict: ConflictVerdict


class SnapshotReplaced(BaseModel):
    collection: str
    accepted: int
    rejected: int
