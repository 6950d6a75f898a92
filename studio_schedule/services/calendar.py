"""Service for projecting conflict-annotated jobs onto month/week/day calendar cells."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Mapping

from dateutil.relativedelta import relativedelta, weekday
from dateutil.rrule import DAILY, rrule

from studio_schedule.domain.models import (
    DEFAULT_JOB_DURATION,
    CalendarBucket,
    CalendarEvent,
    CancelledJobPolicy,
    ConflictVerdict,
    Granularity,
    Job,
    JobFilter,
    ResourceReservation,
    TeamAssignment,
)
from studio_schedule.services.conflicts import compute_all_conflicts

logger = logging.getLogger(__name__)

SUNDAY = 6

_ONE_DAY = timedelta(days=1)


def _as_date(anchor: date | datetime) -> date:
    return anchor.date() if isinstance(anchor, datetime) else anchor


def start_of_week(day: date, week_start: int = SUNDAY) -> date:
    """Return the most recent *week_start* weekday on or before *day*."""
    return day + relativedelta(weekday=weekday(week_start)(-1))


def visible_days(
    granularity: Granularity, anchor: date | datetime, week_start: int = SUNDAY
) -> tuple[date, date]:
    """First and last day (inclusive) shown for *granularity* around *anchor*.

    A month view is the full grid of weeks covering the month, so it includes
    the trailing days of the previous month and the leading days of the next.
    """
    day = _as_date(anchor)
    if granularity == Granularity.DAY:
        return day, day
    if granularity == Granularity.WEEK:
        first = start_of_week(day, week_start)
        return first, first + timedelta(days=6)
    month_first = day + relativedelta(day=1)
    month_last = day + relativedelta(day=31)
    return (
        start_of_week(month_first, week_start),
        start_of_week(month_last, week_start) + timedelta(days=6),
    )


def bucket_ranges(
    granularity: Granularity,
    anchor: date | datetime,
    *,
    week_start: int = SUNDAY,
    tz: tzinfo | None = timezone.utc,
) -> list[tuple[datetime, datetime]]:
    """Return the half-open ``[start, end)`` range of every day cell in the view."""
    first, last = visible_days(granularity, anchor, week_start)
    days = rrule(
        DAILY,
        dtstart=datetime.combine(first, time.min),
        until=datetime.combine(last, time.min),
    )
    return [(dt.replace(tzinfo=tz), dt.replace(tzinfo=tz) + _ONE_DAY) for dt in days]


def shift_anchor(
    anchor: date | datetime, granularity: Granularity, steps: int = 1
) -> date | datetime:
    """Move *anchor* forward (or back, for negative *steps*) by whole views."""
    if granularity == Granularity.MONTH:
        return anchor + relativedelta(months=steps)
    if granularity == Granularity.WEEK:
        return anchor + relativedelta(weeks=steps)
    return anchor + relativedelta(days=steps)


def project(
    jobs: Iterable[Job],
    verdicts: Mapping[str, ConflictVerdict],
    granularity: Granularity,
    anchor: date | datetime,
    *,
    job_filter: JobFilter | None = None,
    week_start: int = SUNDAY,
    tz: tzinfo | None = timezone.utc,
    default_duration: timedelta = DEFAULT_JOB_DURATION,
) -> list[CalendarBucket]:
    """Place each displayed job in every day cell its window overlaps.

    Events within a cell are ordered by start time, then job id. A job whose
    end is not after its start is shown only in the cell containing its start.
    *job_filter* decides what is displayed; it has no effect on *verdicts*.
    """
    shown = sorted(
        (j for j in jobs if job_filter is None or job_filter.matches(j)),
        key=lambda j: (j.start, j.id),
    )

    buckets: list[CalendarBucket] = []
    for range_start, range_end in bucket_ranges(
        granularity, anchor, week_start=week_start, tz=tz
    ):
        events: list[CalendarEvent] = []
        for job in shown:
            if job.start >= range_end:
                break
            if job.is_malformed(default_duration):
                placed = range_start <= job.start
            else:
                placed = job.effective_end(default_duration) > range_start
            if not placed:
                continue
            verdict = verdicts.get(job.id)
            if verdict is None:
                verdict = ConflictVerdict(job_id=job.id)
            events.append(CalendarEvent(job=job, verdict=verdict))
        buckets.append(
            CalendarBucket(range_start=range_start, range_end=range_end, events=events)
        )
    return buckets


def build_calendar(
    jobs: Iterable[Job],
    reservations: Iterable[ResourceReservation],
    assignments: Iterable[TeamAssignment],
    granularity: Granularity,
    anchor: date | datetime,
    *,
    job_filter: JobFilter | None = None,
    filters_affect_conflicts: bool = False,
    verdicts: Mapping[str, ConflictVerdict] | None = None,
    cancelled_policy: CancelledJobPolicy = CancelledJobPolicy.INCLUDE,
    default_duration: timedelta = DEFAULT_JOB_DURATION,
    week_start: int = SUNDAY,
    tz: tzinfo | None = timezone.utc,
) -> list[CalendarBucket]:
    """Compute conflicts and project the jobs onto the requested view.

    Conflicts are computed against the full job set, so a conflict with a job
    hidden by *job_filter* is still reported. ``filters_affect_conflicts=True``
    restricts the computation to the displayed jobs instead. Precomputed
    *verdicts* are used as-is when given.
    """
    jobs = list(jobs)
    if verdicts is None:
        considered = jobs
        if filters_affect_conflicts and job_filter is not None:
            considered = [j for j in jobs if job_filter.matches(j)]
            logger.info(
                "Computing conflicts over %d of %d jobs (display filter applied)",
                len(considered),
                len(jobs),
            )
        verdicts = compute_all_conflicts(
            considered,
            reservations,
            assignments,
            cancelled_policy=cancelled_policy,
            default_duration=default_duration,
        )
    return project(
        jobs,
        verdicts,
        granularity,
        anchor,
        job_filter=job_filter,
        week_start=week_start,
        tz=tz,
        default_duration=default_duration,
    )
