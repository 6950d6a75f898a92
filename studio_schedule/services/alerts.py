"""Service for turning conflict verdicts into dashboard alerts."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping

from studio_schedule.domain.models import (
    DEFAULT_JOB_DURATION,
    AlertPriority,
    ConflictAlert,
    ConflictVerdict,
    Job,
    JobStatus,
    as_reference_tz,
)

DEFAULT_URGENT_WITHIN = timedelta(days=2)

_PRIORITY_ORDER = {
    AlertPriority.URGENT: 0,
    AlertPriority.ATTENTION: 1,
    AlertPriority.INFO: 2,
}
_CLOSED_STATUSES = {JobStatus.COMPLETED, JobStatus.CANCELLED}


def _describe(verdict: ConflictVerdict) -> str:
    parts = []
    if verdict.has_resource_conflict:
        parts.append(f"{len(verdict.conflicting_resource_ids)} resource(s)")
    if verdict.has_team_conflict:
        parts.append(f"{len(verdict.conflicting_member_ids)} team member(s)")
    return (
        " and ".join(parts)
        + f" double-booked with {len(verdict.conflicting_job_ids)} other job(s)"
    )


def conflict_alerts(
    jobs: Iterable[Job],
    verdicts: Mapping[str, ConflictVerdict],
    now: datetime,
    *,
    urgent_within: timedelta = DEFAULT_URGENT_WITHIN,
    horizon: timedelta | None = None,
    default_duration: timedelta = DEFAULT_JOB_DURATION,
) -> list[ConflictAlert]:
    """Return one alert per conflicting job that still needs attention.

    Completed and cancelled jobs and jobs that have already ended are left
    out, as are jobs starting beyond ``now + horizon`` when a horizon is set.
    Jobs starting within *urgent_within* are urgent, the rest need attention.
    """
    now = as_reference_tz(now)
    alerts: list[tuple[tuple, ConflictAlert]] = []
    for job in jobs:
        verdict = verdicts.get(job.id)
        if verdict is None or not verdict.has_conflict:
            continue
        if job.status in _CLOSED_STATUSES:
            continue
        if job.effective_end(default_duration) <= now:
            continue
        if horizon is not None and job.start > now + horizon:
            continue

        priority = (
            AlertPriority.URGENT
            if job.start - now <= urgent_within
            else AlertPriority.ATTENTION
        )
        alert = ConflictAlert(
            id=f"job-conflict-{job.id}",
            title=f"Booking conflict: {job.title}",
            description=_describe(verdict),
            priority=priority,
            entity_id=job.id,
            count=len(verdict.conflicting_job_ids),
            action_path=f"/dashboard/jobs/{job.id}",
        )
        alerts.append(((_PRIORITY_ORDER[priority], job.start, job.id), alert))

    alerts.sort(key=lambda pair: pair[0])
    return [alert for _, alert in alerts]
