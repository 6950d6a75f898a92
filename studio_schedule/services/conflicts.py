"""Service for detecting double-booked resources and team members across jobs.

Every claim on a shared resource (a reservation) or a person (an assignment)
is an interval on that resource's or person's timeline. Claims are grouped by
the thing they claim, each group is sorted once by start time, and a single
sweep per group finds the overlapping pairs.

Overlap rule: ``[s1, e1)`` and ``[s2, e2)`` overlap iff ``s1 < e2 and s2 < e1``.
Exact boundary touches (end == start) are NOT considered conflicts.
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Protocol

from studio_schedule.domain.models import (
    DEFAULT_JOB_DURATION,
    CancelledJobPolicy,
    ConflictDetail,
    ConflictKind,
    ConflictVerdict,
    Job,
    JobStatus,
    Resource,
    ResourceReservation,
    TeamAssignment,
    TeamMember,
)

logger = logging.getLogger(__name__)


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


class ConflictComputationCancelled(RuntimeError):
    """Raised when a batch computation is abandoned for a newer snapshot."""


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class Claim:
    """A job's hold on one resource or member over ``[start, end)``."""

    job_id: str
    claim_id: str
    start: datetime
    end: datetime


@dataclass
class _Findings:
    resource_ids: set[str] = field(default_factory=set)
    member_ids: set[str] = field(default_factory=set)
    job_ids: set[str] = field(default_factory=set)
    details: set[ConflictDetail] = field(default_factory=set)

    def record(self, kind: ConflictKind, claim_id: str, other_job_id: str) -> None:
        if kind == ConflictKind.RESOURCE:
            self.resource_ids.add(claim_id)
        else:
            self.member_ids.add(claim_id)
        self.job_ids.add(other_job_id)
        self.details.add(
            ConflictDetail(kind=kind, claim_id=claim_id, other_job_id=other_job_id)
        )

    def to_verdict(self, job_id: str) -> ConflictVerdict:
        return ConflictVerdict(
            job_id=job_id,
            has_resource_conflict=bool(self.resource_ids),
            has_team_conflict=bool(self.member_ids),
            conflicting_resource_ids=frozenset(self.resource_ids),
            conflicting_member_ids=frozenset(self.member_ids),
            conflicting_job_ids=frozenset(self.job_ids),
            details=frozenset(self.details),
        )


def sweep_overlaps(claims: Iterable[Claim]) -> Iterator[tuple[Claim, Claim]]:
    """Yield every pair of claims from *different* jobs whose windows overlap.

    Claims are visited in start order while a min-heap keeps the claims that
    are still open, keyed by end time. Before a claim is admitted, every open
    claim ending at or before its start is closed; whatever is left open
    started no later than the new claim and ends after it starts, so it
    overlaps. Cost is O(n log n) plus the number of pairs reported.
    """
    ordered = sorted(claims, key=lambda c: (c.start, c.end, c.job_id, c.claim_id))
    open_claims: list[tuple[datetime, int, Claim]] = []
    for seq, claim in enumerate(ordered):
        while open_claims and open_claims[0][0] <= claim.start:
            heapq.heappop(open_claims)
        for _, _, other in open_claims:
            if other.job_id != claim.job_id:
                yield other, claim
        heapq.heappush(open_claims, (claim.end, seq, claim))


class ConflictIndex:
    """Claims grouped by resource id and by member id, built once per snapshot."""

    def __init__(
        self,
        resource_groups: dict[str, list[Claim]],
        member_groups: dict[str, list[Claim]],
    ) -> None:
        self.resource_groups = resource_groups
        self.member_groups = member_groups

    @classmethod
    def build(
        cls,
        jobs: Iterable[Job],
        reservations: Iterable[ResourceReservation],
        assignments: Iterable[TeamAssignment],
        *,
        cancelled_policy: CancelledJobPolicy = CancelledJobPolicy.INCLUDE,
        default_duration: timedelta = DEFAULT_JOB_DURATION,
        resources: Iterable[Resource] | None = None,
        members: Iterable[TeamMember] | None = None,
        window_overrides: dict[str, tuple[datetime, datetime]] | None = None,
        focus_job_id: str | None = None,
    ) -> ConflictIndex:
        """Group the snapshot's claims, skipping anything that cannot conflict.

        ``window_overrides`` replaces (or supplies) a job's window for this
        computation only. With ``focus_job_id`` only the groups that job
        claims are built.
        """
        reservations = list(reservations)
        assignments = list(assignments)
        known_resources = {r.id for r in resources} if resources is not None else None
        known_members = {m.id for m in members} if members is not None else None

        windows: dict[str, tuple[datetime, datetime]] = {}
        for job in jobs:
            if (
                cancelled_policy == CancelledJobPolicy.EXCLUDE
                and job.status == JobStatus.CANCELLED
            ):
                continue
            windows[job.id] = (job.start, job.effective_end(default_duration))
        windows.update(window_overrides or {})

        wanted_resources: set[str] | None = None
        wanted_members: set[str] | None = None
        if focus_job_id is not None:
            wanted_resources = {
                r.resource_id for r in reservations if r.job_id == focus_job_id
            }
            wanted_members = {a.member_id for a in assignments if a.job_id == focus_job_id}

        resource_groups: dict[str, list[Claim]] = defaultdict(list)
        for res in reservations:
            if wanted_resources is not None and res.resource_id not in wanted_resources:
                continue
            if res.job_id not in windows:
                logger.debug(
                    "Skipping reservation %s: job %s not in snapshot", res.id, res.job_id
                )
                continue
            if known_resources is not None and res.resource_id not in known_resources:
                logger.debug(
                    "Skipping reservation %s: resource %s not in snapshot",
                    res.id,
                    res.resource_id,
                )
                continue
            if res.reserved_until <= res.reserved_from:
                logger.warning(
                    "Skipping malformed reservation %s of resource %s for job %s "
                    "(reserved_until <= reserved_from)",
                    res.id,
                    res.resource_id,
                    res.job_id,
                )
                continue
            resource_groups[res.resource_id].append(
                Claim(res.job_id, res.resource_id, res.reserved_from, res.reserved_until)
            )

        member_groups: dict[str, list[Claim]] = defaultdict(list)
        seen: set[tuple[str, str]] = set()
        for assignment in assignments:
            key = (assignment.member_id, assignment.job_id)
            if key in seen:
                continue
            seen.add(key)
            if wanted_members is not None and assignment.member_id not in wanted_members:
                continue
            window = windows.get(assignment.job_id)
            if window is None:
                logger.debug(
                    "Skipping assignment of %s: job %s not in snapshot",
                    assignment.member_id,
                    assignment.job_id,
                )
                continue
            if known_members is not None and assignment.member_id not in known_members:
                logger.debug(
                    "Skipping assignment to job %s: member %s not in snapshot",
                    assignment.job_id,
                    assignment.member_id,
                )
                continue
            start, end = window
            if end <= start:
                logger.warning(
                    "Skipping assignment of %s to malformed job %s (end <= start)",
                    assignment.member_id,
                    assignment.job_id,
                )
                continue
            member_groups[assignment.member_id].append(
                Claim(assignment.job_id, assignment.member_id, start, end)
            )

        return cls(dict(resource_groups), dict(member_groups))

    def findings(self, cancel_event: CancelSignal | None = None) -> dict[str, _Findings]:
        """Sweep every group once and collect what each job conflicts with."""
        found: dict[str, _Findings] = defaultdict(_Findings)
        groups = [
            (ConflictKind.RESOURCE, self.resource_groups),
            (ConflictKind.TEAM, self.member_groups),
        ]
        for kind, grouped in groups:
            for claim_id, claims in grouped.items():
                if cancel_event is not None and cancel_event.is_set():
                    raise ConflictComputationCancelled(
                        "Conflict computation cancelled by caller"
                    )
                if len(claims) < 2:
                    continue
                for first, second in sweep_overlaps(claims):
                    found[first.job_id].record(kind, claim_id, second.job_id)
                    found[second.job_id].record(kind, claim_id, first.job_id)
        return found


def compute_conflicts(
    target_job_id: str,
    target_start: datetime,
    target_end: datetime | None,
    reservations: Iterable[ResourceReservation],
    assignments: Iterable[TeamAssignment],
    jobs: Iterable[Job],
    *,
    cancelled_policy: CancelledJobPolicy = CancelledJobPolicy.INCLUDE,
    default_duration: timedelta = DEFAULT_JOB_DURATION,
    resources: Iterable[Resource] | None = None,
    members: Iterable[TeamMember] | None = None,
) -> ConflictVerdict:
    """Return the verdict for one job using ``[target_start, target_end)`` as its window.

    The target may be a draft that is not in *jobs* yet. Its reservations keep
    their own windows; the window given here is what its team members claim.
    """
    jobs = list(jobs)
    target = next((j for j in jobs if j.id == target_job_id), None)
    if (
        target is not None
        and cancelled_policy == CancelledJobPolicy.EXCLUDE
        and target.status == JobStatus.CANCELLED
    ):
        return ConflictVerdict(job_id=target_job_id)

    end = target_end if target_end is not None else target_start + default_duration
    index = ConflictIndex.build(
        jobs,
        reservations,
        assignments,
        cancelled_policy=cancelled_policy,
        default_duration=default_duration,
        resources=resources,
        members=members,
        window_overrides={target_job_id: (target_start, end)},
        focus_job_id=target_job_id,
    )
    found = index.findings().get(target_job_id)
    if found is None:
        return ConflictVerdict(job_id=target_job_id)
    return found.to_verdict(target_job_id)


def compute_all_conflicts(
    jobs: Iterable[Job],
    reservations: Iterable[ResourceReservation],
    assignments: Iterable[TeamAssignment],
    *,
    cancelled_policy: CancelledJobPolicy = CancelledJobPolicy.INCLUDE,
    default_duration: timedelta = DEFAULT_JOB_DURATION,
    resources: Iterable[Resource] | None = None,
    members: Iterable[TeamMember] | None = None,
    cancel_event: CancelSignal | None = None,
) -> dict[str, ConflictVerdict]:
    """Return a verdict for every job in *jobs*, keyed by job id.

    Groups are built once for the whole snapshot. Raises
    ``ConflictComputationCancelled`` if *cancel_event* is set before the sweep
    finishes; no partial result is returned in that case.
    """
    jobs = list(jobs)
    index = ConflictIndex.build(
        jobs,
        reservations,
        assignments,
        cancelled_policy=cancelled_policy,
        default_duration=default_duration,
        resources=resources,
        members=members,
    )
    found = index.findings(cancel_event)

    verdicts: dict[str, ConflictVerdict] = {}
    for job in jobs:
        job_found = found.get(job.id)
        verdicts[job.id] = (
            job_found.to_verdict(job.id)
            if job_found is not None
            else ConflictVerdict(job_id=job.id)
        )

    logger.info(
        "Computed conflicts for %d jobs over %d resources and %d members: %d conflicting",
        len(verdicts),
        len(index.resource_groups),
        len(index.member_groups),
        sum(1 for v in verdicts.values() if v.has_conflict),
    )
    return verdicts
