"""FastAPI application — entry point for the studio schedule conflict service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Query

from studio_schedule.config import Settings
from studio_schedule.domain.bus import EventBus
from studio_schedule.domain.handlers import HandlerRegistry
from studio_schedule.domain.models import (
    CalendarBucket,
    ConflictAlert,
    ConflictCheckRequest,
    ConflictVerdict,
    Granularity,
    JobConflictsResponse,
    JobFilter,
    JobStatus,
    SnapshotReplaced,
    as_reference_tz,
)
from studio_schedule.repos.memory import create_schedule_store
from studio_schedule.services.adapters import (
    assignments_from_job_rows,
    normalize_assignments,
    normalize_jobs,
    normalize_reservations,
)
from studio_schedule.services.alerts import conflict_alerts
from studio_schedule.services.calendar import build_calendar
from studio_schedule.services.conflicts import compute_conflicts
from studio_schedule.services.recompute import BackgroundRecomputer, ConflictCache

settings = Settings.from_env()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
store = create_schedule_store(event_bus)
conflict_cache = ConflictCache(store, settings)
recomputer = BackgroundRecomputer(event_bus, settings) if settings.background_recompute else None

handler_registry = HandlerRegistry(
    bus=event_bus,
    store=store,
    cache=conflict_cache,
    recomputer=recomputer,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if recomputer is not None:
        recomputer.shutdown()


app = FastAPI(title="Studio Schedule Conflict Service", lifespan=lifespan)


# ── Routes ────────────────────────────────────────────────────────────


@app.put("/jobs", response_model=SnapshotReplaced)
def replace_jobs(rows: list[dict[str, Any]]) -> SnapshotReplaced:
    """Replace the job snapshot from raw data-client rows.

    Team members embedded under ``job_team_members`` replace the assignment
    snapshot as well when any row carries them.
    """
    jobs, rejected = normalize_jobs(rows)
    store.jobs.replace_all(jobs)
    if any("job_team_members" in row for row in rows):
        store.assignments.replace_all(assignments_from_job_rows(rows))
    return SnapshotReplaced(collection="jobs", accepted=len(jobs), rejected=rejected)


@app.put("/reservations", response_model=SnapshotReplaced)
def replace_reservations(rows: list[dict[str, Any]]) -> SnapshotReplaced:
    """Replace the resource reservation snapshot from raw rows."""
    reservations, rejected = normalize_reservations(rows)
    store.reservations.replace_all(reservations)
    return SnapshotReplaced(
        collection="reservations", accepted=len(reservations), rejected=rejected
    )


@app.put("/assignments", response_model=SnapshotReplaced)
def replace_assignments(rows: list[dict[str, Any]]) -> SnapshotReplaced:
    """Replace the team assignment snapshot from raw rows."""
    assignments, rejected = normalize_assignments(rows)
    store.assignments.replace_all(assignments)
    return SnapshotReplaced(
        collection="assignments", accepted=len(assignments), rejected=rejected
    )


@app.get("/conflicts", response_model=dict[str, ConflictVerdict])
def list_conflicts() -> dict[str, ConflictVerdict]:
    """Return the conflict verdict of every job, keyed by job id."""
    return conflict_cache.get()


@app.get("/jobs/{job_id}/conflicts", response_model=JobConflictsResponse)
def get_job_conflicts(job_id: str) -> JobConflictsResponse:
    """Return one job's verdict with the resources, people and jobs involved."""
    job = store.jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    verdict = conflict_cache.get().get(job_id) or ConflictVerdict(job_id=job_id)
    return JobConflictsResponse(job=job, verdict=verdict)


@app.post("/conflicts/check", response_model=ConflictVerdict)
def check_conflicts(body: ConflictCheckRequest) -> ConflictVerdict:
    """Check a draft or edited job window against the current schedule."""
    snapshot = store.snapshot()
    return compute_conflicts(
        body.job_id,
        body.start,
        body.end,
        snapshot.reservations,
        snapshot.assignments,
        snapshot.jobs,
        cancelled_policy=settings.cancelled_policy,
        default_duration=settings.default_duration,
    )


@app.get("/calendar", response_model=list[CalendarBucket])
def get_calendar(
    granularity: Granularity = Granularity.MONTH,
    anchor: date | None = None,
    status: list[JobStatus] | None = Query(default=None),
    job_type: list[str] | None = Query(default=None, alias="type"),
) -> list[CalendarBucket]:
    """Return the day cells of the requested view with their annotated jobs.

    ``status`` and ``type`` only choose what is displayed; verdicts always
    come from the full schedule.
    """
    job_filter = None
    if status or job_type:
        job_filter = JobFilter(
            statuses=set(status) if status else None,
            types=set(job_type) if job_type else None,
        )
    snapshot = store.snapshot()
    return build_calendar(
        snapshot.jobs,
        snapshot.reservations,
        snapshot.assignments,
        granularity,
        anchor or datetime.now(timezone.utc).date(),
        job_filter=job_filter,
        verdicts=conflict_cache.get(),
        default_duration=settings.default_duration,
        week_start=settings.week_start_index,
    )


@app.get("/alerts", response_model=list[ConflictAlert])
def get_alerts(now: datetime | None = None) -> list[ConflictAlert]:
    """Return dashboard alerts for upcoming double-booked jobs.

    Pass *now* as a query param to control the clock.
    """
    current_time = as_reference_tz(now) or datetime.now(timezone.utc)
    return conflict_alerts(
        store.jobs.list_all(),
        conflict_cache.get(),
        current_time,
        urgent_within=settings.urgent_within,
        default_duration=settings.default_duration,
    )
