"""Normalize loosely-typed rows from the data client into typed snapshot records.

Rows arrive shaped like the backing tables (``start_datetime``,
``end_datetime``, ``reserved_from``, ``user_id`` ...), sometimes with related
rows embedded. Anything that does not validate is logged and dropped so that
a partially-loaded snapshot still renders.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, Field, ValidationError

from studio_schedule.domain.models import Job, ResourceReservation, TeamAssignment

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
_M = TypeVar("_M", bound=BaseModel)

# Table column name -> model field name
_JOB_COLUMNS = {"start_datetime": "start", "end_datetime": "end"}
_ASSIGNMENT_COLUMNS = {"user_id": "member_id", "team_member_id": "member_id"}


class Snapshot(BaseModel):
    """The three read-only collections the conflict engine works on."""

    jobs: list[Job] = Field(default_factory=list)
    reservations: list[ResourceReservation] = Field(default_factory=list)
    assignments: list[TeamAssignment] = Field(default_factory=list)


def _rename(row: Row, columns: dict[str, str]) -> dict[str, Any]:
    data = dict(row)
    for column, name in columns.items():
        if column in data and name not in data:
            data[name] = data.pop(column)
    return data


def _validate_rows(
    model: type[_M], rows: Iterable[Row], columns: dict[str, str] | None = None
) -> tuple[list[_M], int]:
    accepted: list[_M] = []
    rejected = 0
    for row in rows:
        data = _rename(row, columns) if columns else dict(row)
        try:
            accepted.append(model.model_validate(data))
        except ValidationError as exc:
            rejected += 1
            logger.warning(
                "Dropping %s row %r: %d validation error(s)",
                model.__name__,
                data.get("id"),
                exc.error_count(),
            )
    return accepted, rejected


def normalize_jobs(rows: Iterable[Row]) -> tuple[list[Job], int]:
    """Return ``(jobs, rejected_count)``; the job's ``client_id`` may be null."""
    return _validate_rows(Job, rows, _JOB_COLUMNS)


def normalize_reservations(rows: Iterable[Row]) -> tuple[list[ResourceReservation], int]:
    return _validate_rows(ResourceReservation, rows)


def normalize_assignments(rows: Iterable[Row]) -> tuple[list[TeamAssignment], int]:
    return _validate_rows(TeamAssignment, rows, _ASSIGNMENT_COLUMNS)


def assignments_from_job_rows(rows: Iterable[Row]) -> list[TeamAssignment]:
    """Extract team assignments embedded under ``job_team_members`` in job rows.

    The embedded row carries either a ``user_id`` column or the joined
    ``team_members`` record; the assignment row's own ``id`` is dropped.
    """
    embedded: list[dict[str, Any]] = []
    for row in rows:
        for member_row in row.get("job_team_members") or []:
            data = dict(member_row)
            data.pop("id", None)
            data.setdefault("job_id", row.get("id"))
            member = data.pop("team_members", None)
            if isinstance(member, Mapping) and "user_id" not in data:
                data.setdefault("member_id", member.get("id"))
            embedded.append(data)
    assignments, _ = normalize_assignments(embedded)
    return assignments


def build_snapshot(
    job_rows: Iterable[Row],
    reservation_rows: Iterable[Row] = (),
    assignment_rows: Iterable[Row] = (),
) -> Snapshot:
    """Normalize all three collections at once.

    Assignments embedded in job rows are merged with the explicit ones.
    """
    job_rows = list(job_rows)
    jobs, _ = normalize_jobs(job_rows)
    reservations, _ = normalize_reservations(reservation_rows)
    assignments, _ = normalize_assignments(assignment_rows)
    assignments.extend(assignments_from_job_rows(job_rows))
    return Snapshot(jobs=jobs, reservations=reservations, assignments=assignments)
