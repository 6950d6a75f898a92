"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from datetime import timedelta

from pydantic import BaseModel, Field

from studio_schedule.domain.models import CancelledJobPolicy

DEFAULT_JOB_HOURS = 2.0
DEFAULT_URGENT_WITHIN_DAYS = 2
DEFAULT_WEEK_START = "sunday"

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class Settings(BaseModel):
    default_job_hours: float = Field(default=DEFAULT_JOB_HOURS, gt=0)
    cancelled_policy: CancelledJobPolicy = CancelledJobPolicy.INCLUDE
    week_start: str = DEFAULT_WEEK_START
    urgent_within_days: int = Field(default=DEFAULT_URGENT_WITHIN_DAYS, ge=0)
    log_level: str = "INFO"
    background_recompute: bool = False

    @property
    def default_duration(self) -> timedelta:
        return timedelta(hours=self.default_job_hours)

    @property
    def urgent_within(self) -> timedelta:
        return timedelta(days=self.urgent_within_days)

    @property
    def week_start_index(self) -> int:
        """``date.weekday()`` index of the first day of a calendar week."""
        name = self.week_start.lower()
        if name not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown week start: {self.week_start}")
        return WEEKDAY_NAMES.index(name)

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            default_job_hours=float(os.getenv("STUDIO_DEFAULT_JOB_HOURS", DEFAULT_JOB_HOURS)),
            cancelled_policy=os.getenv("STUDIO_CANCELLED_POLICY", CancelledJobPolicy.INCLUDE),
            week_start=os.getenv("STUDIO_WEEK_START", DEFAULT_WEEK_START),
            urgent_within_days=int(
                os.getenv("STUDIO_URGENT_WITHIN_DAYS", DEFAULT_URGENT_WITHIN_DAYS)
            ),
            log_level=os.getenv("STUDIO_LOG_LEVEL", "INFO").upper(),
            background_recompute=os.getenv("STUDIO_BACKGROUND_RECOMPUTE", "false").lower()
            in ("true", "1", "yes"),
        )
