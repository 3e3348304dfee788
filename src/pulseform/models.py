"""Core value types shared by the providers, cache and scoring engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterator


class Provider(str, Enum):
    """External data providers, in activity fallback priority order."""

    INTERVALS = "intervals"
    STRAVA = "strava"
    WEARABLE = "wearable"


# Richest training data first; wearable duration is the last resort.
PROVIDER_PRIORITY = [Provider.INTERVALS, Provider.STRAVA, Provider.WEARABLE]


class MetricKind(str, Enum):
    """Daily scalar signals supplied by the wearable store."""

    HRV = "hrv"  # overnight average, ms
    RHR = "rhr"  # overnight minimum, bpm
    RESPIRATORY_RATE = "respiratory_rate"  # breaths/min
    SLEEP_DURATION = "sleep_duration"  # seconds asleep
    TIME_IN_BED = "time_in_bed"  # seconds
    DEEP_SLEEP = "deep_sleep"  # seconds
    REM_SLEEP = "rem_sleep"  # seconds
    WAKE_EVENTS = "wake_events"  # count
    BEDTIME = "bedtime"  # minutes from local midnight, negative before
    WAKE_TIME = "wake_time"  # minutes after midnight
    DEEP_PCT = "deep_pct"  # derived: deep / asleep * 100
    REM_PCT = "rem_pct"  # derived: rem / asleep * 100


class ActivityType(str, Enum):
    CYCLING = "cycling"
    RUNNING = "running"
    SWIMMING = "swimming"
    STRENGTH = "strength"
    WALKING = "walking"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> ActivityType:
        """Map a free-form provider label onto a known type."""
        if not value:
            return cls.OTHER
        label = value.strip().lower()
        aliases = {
            "ride": cls.CYCLING,
            "virtualride": cls.CYCLING,
            "bike": cls.CYCLING,
            "run": cls.RUNNING,
            "virtualrun": cls.RUNNING,
            "swim": cls.SWIMMING,
            "weighttraining": cls.STRENGTH,
            "walk": cls.WALKING,
            "hike": cls.WALKING,
        }
        if label in aliases:
            return aliases[label]
        try:
            return cls(label)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class SignalSample:
    """One reading of one metric for one night/day."""

    date: date
    metric: MetricKind
    value: float


@dataclass(frozen=True)
class ActivityRecord:
    """A single workout as reported by one provider."""

    id: str
    date: date
    duration_seconds: float
    activity_type: ActivityType
    source: Provider
    training_stress: float | None = None  # provider-reported TSS
    normalized_power: float | None = None  # watts
    ftp: float | None = None  # watts
    average_hr: float | None = None  # bpm
    threshold_hr: float | None = None  # bpm

    @property
    def duration_hours(self) -> float:
        return self.duration_seconds / 3600.0


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")

    @classmethod
    def ending(cls, end: date, days: int) -> DateRange:
        """The ``days``-long range that finishes on ``end``."""
        return cls(end - timedelta(days=days - 1), end)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def __iter__(self) -> Iterator[date]:
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"
