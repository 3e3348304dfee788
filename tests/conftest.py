"""Shared fixtures and helpers for the pulseform test suite."""

from __future__ import annotations

import json
from datetime import date, timedelta
from pathlib import Path

import pytest

from pulseform.analytics.baseline import Baseline
from pulseform.config import Settings
from pulseform.models import (
    ActivityRecord,
    ActivityType,
    MetricKind,
    Provider,
    SignalSample,
)
from pulseform.providers.memory import InMemorySource


# ---------------------------------------------------------------------------
# Sample and activity builders
# ---------------------------------------------------------------------------


def make_samples(metric: MetricKind, values: list[float], end: date) -> list[SignalSample]:
    """One sample per day, oldest first, with the last value dated ``end``."""
    start = end - timedelta(days=len(values) - 1)
    return [
        SignalSample(start + timedelta(days=i), metric, float(v))
        for i, v in enumerate(values)
    ]


def make_baseline(metric: MetricKind, value: float, dispersion: float = 1.0, n: int = 30) -> Baseline:
    return Baseline(
        metric=metric,
        window_days=30,
        central_value=value,
        dispersion=dispersion,
        computed_at=date(2026, 2, 1),
        sample_count=n,
    )


def make_activity(
    id: str,
    day: date,
    hours: float = 1.0,
    activity_type: ActivityType = ActivityType.CYCLING,
    source: Provider = Provider.STRAVA,
    **kwargs,
) -> ActivityRecord:
    return ActivityRecord(
        id=id,
        date=day,
        duration_seconds=hours * 3600.0,
        activity_type=activity_type,
        source=source,
        **kwargs,
    )


# Typical night: 7.5 h asleep out of 8 h in bed, 20% deep, 25% REM
NIGHT = {
    MetricKind.HRV: 50.0,
    MetricKind.RHR: 55.0,
    MetricKind.RESPIRATORY_RATE: 15.0,
    MetricKind.SLEEP_DURATION: 27000.0,
    MetricKind.TIME_IN_BED: 28800.0,
    MetricKind.DEEP_SLEEP: 5400.0,
    MetricKind.REM_SLEEP: 6750.0,
    MetricKind.WAKE_EVENTS: 2.0,
    MetricKind.BEDTIME: -60.0,
    MetricKind.WAKE_TIME: 420.0,
}

# Small day-to-day wobble so baselines have a nonzero spread
WOBBLE = [-0.02, 0.0, 0.02]


def make_wearable(today: date, history_days: int = 30, **today_overrides: float) -> InMemorySource:
    """A wearable source with ``history_days`` typical nights before ``today``.

    ``today`` itself gets the typical night with ``today_overrides``
    applied, keyed by metric value name (e.g. ``rhr=65``).
    """
    source = InMemorySource(Provider.WEARABLE)
    for offset in range(history_days, 0, -1):
        day = today - timedelta(days=offset)
        factor = 1.0 + WOBBLE[offset % len(WOBBLE)]
        for metric, value in NIGHT.items():
            if metric in (MetricKind.BEDTIME, MetricKind.WAKE_TIME, MetricKind.WAKE_EVENTS):
                source.add_sample(SignalSample(day, metric, value))
            else:
                source.add_sample(SignalSample(day, metric, value * factor))

    for metric, value in NIGHT.items():
        source.add_sample(SignalSample(today, metric, today_overrides.get(metric.value, value)))
    return source


class FakeClock:
    """Manually advanced clock for cache and throttle tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        PROVIDER_BACKOFF_SECONDS=0.5,
        PROVIDER_MAX_ATTEMPTS=3,
        PROVIDER_TIMEOUT_SECONDS=5.0,
        RECOMPUTE_POLICY="on_demand",
    )


# ---------------------------------------------------------------------------
# JSONL export helpers
# ---------------------------------------------------------------------------


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as JSONL to the given path."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


def sample_entry(day: date, metric: str, value: float, provider: str = "wearable") -> dict:
    return {
        "kind": "sample",
        "provider": provider,
        "date": day.isoformat(),
        "metric": metric,
        "value": value,
    }


def activity_entry(id: str, day: date, seconds: float, provider: str = "strava", **extra) -> dict:
    return {
        "kind": "activity",
        "provider": provider,
        "id": id,
        "date": day.isoformat(),
        "duration_seconds": seconds,
        **extra,
    }
