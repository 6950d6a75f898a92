"""Tests for dashboard conflict alerts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from studio_schedule.domain.models import (
    AlertPriority,
    ConflictVerdict,
    Job,
    JobStatus,
)
from studio_schedule.services.alerts import conflict_alerts

_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str, starts_in: timedelta, **overrides) -> Job:
    defaults = dict(
        id=job_id,
        title=f"Job {job_id}",
        type="wedding",
        status=JobStatus.CONFIRMED,
        start=_NOW + starts_in,
        end=_NOW + starts_in + timedelta(hours=3),
    )
    defaults.update(overrides)
    return Job(**defaults)


def _conflicting(job_id: str, *others: str) -> ConflictVerdict:
    return ConflictVerdict(
        job_id=job_id,
        has_resource_conflict=True,
        conflicting_resource_ids=frozenset({"camera-1"}),
        conflicting_job_ids=frozenset(others),
    )


def test_alert_priority_depends_on_how_soon_the_job_starts():
    jobs = [_job("soon", timedelta(days=1)), _job("later", timedelta(days=10))]
    verdicts = {"soon": _conflicting("soon", "later"), "later": _conflicting("later", "soon")}

    alerts = conflict_alerts(jobs, verdicts, _NOW)

    assert [(a.entity_id, a.priority) for a in alerts] == [
        ("soon", AlertPriority.URGENT),
        ("later", AlertPriority.ATTENTION),
    ]
    assert alerts[0].count == 1
    assert alerts[0].action_path == "/dashboard/jobs/soon"
    assert "1 resource(s)" in alerts[0].description


def test_clean_closed_and_past_jobs_raise_no_alert():
    jobs = [
        _job("clean", timedelta(days=1)),
        _job("done", timedelta(days=1), status=JobStatus.COMPLETED),
        _job("dropped", timedelta(days=1), status=JobStatus.CANCELLED),
        _job("past", -timedelta(days=1)),
    ]
    verdicts = {
        "clean": ConflictVerdict(job_id="clean"),
        "done": _conflicting("done", "past"),
        "dropped": _conflicting("dropped", "past"),
        "past": _conflicting("past", "done"),
    }

    assert conflict_alerts(jobs, verdicts, _NOW) == []


def test_job_in_progress_still_alerts():
    jobs = [_job("running", -timedelta(hours=1))]
    verdicts = {"running": _conflicting("running", "other")}

    alerts = conflict_alerts(jobs, verdicts, _NOW)

    assert alerts[0].priority == AlertPriority.URGENT


def test_horizon_and_urgency_window_are_configurable():
    jobs = [_job("a", timedelta(days=3)), _job("b", timedelta(days=40))]
    verdicts = {"a": _conflicting("a", "x"), "b": _conflicting("b", "y")}

    alerts = conflict_alerts(
        jobs,
        verdicts,
        _NOW,
        urgent_within=timedelta(days=5),
        horizon=timedelta(days=30),
    )

    assert [(a.entity_id, a.priority) for a in alerts] == [("a", AlertPriority.URGENT)]
