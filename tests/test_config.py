"""Tests for environment-driven settings."""

from __future__ import annotations

from datetime import timedelta

import pytest

from studio_schedule.config import Settings
from studio_schedule.domain.models import CancelledJobPolicy


def test_defaults():
    settings = Settings()

    assert settings.default_duration == timedelta(hours=2)
    assert settings.cancelled_policy == CancelledJobPolicy.INCLUDE
    assert settings.week_start_index == 6
    assert settings.urgent_within == timedelta(days=2)
    assert settings.background_recompute is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("STUDIO_DEFAULT_JOB_HOURS", "1.5")
    monkeypatch.setenv("STUDIO_CANCELLED_POLICY", "exclude")
    monkeypatch.setenv("STUDIO_WEEK_START", "Monday")
    monkeypatch.setenv("STUDIO_BACKGROUND_RECOMPUTE", "yes")
    monkeypatch.setenv("STUDIO_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.default_duration == timedelta(minutes=90)
    assert settings.cancelled_policy == CancelledJobPolicy.EXCLUDE
    assert settings.week_start_index == 0
    assert settings.background_recompute is True
    assert settings.log_level == "DEBUG"


def test_unknown_week_start_is_rejected():
    with pytest.raises(ValueError):
        Settings(week_start="someday").week_start_index
