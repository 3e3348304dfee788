"""In-memory data source and a JSONL loader that fills it.

A JSONL export has one record per line::

    {"kind": "sample", "provider": "wearable", "date": "2026-02-13", "metric": "hrv", "value": 52.0}
    {"kind": "activity", "provider": "strava", "id": "s-1", "date": "2026-02-13",
     "duration_seconds": 3600, "type": "Ride", "training_stress": 75}
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path

from pulseform.models import (
    ActivityRecord,
    ActivityType,
    DateRange,
    MetricKind,
    Provider,
    SignalSample,
)
from pulseform.providers.base import DataSource

logger = logging.getLogger(__name__)


class InMemorySource(DataSource):
    """Data source backed by plain dicts.

    Adding a sample for a (date, metric) that already exists supersedes
    the earlier one; adding an activity with a known id replaces it.
    """

    def __init__(
        self,
        provider: Provider,
        samples: list[SignalSample] | None = None,
        activities: list[ActivityRecord] | None = None,
    ) -> None:
        self.provider = provider
        self._samples: dict[tuple[date, MetricKind], SignalSample] = {}
        self._activities: dict[str, ActivityRecord] = {}
        self.calls: list[str] = []
        for sample in samples or []:
            self.add_sample(sample)
        for activity in activities or []:
            self.add_activity(activity)

    def add_sample(self, sample: SignalSample) -> None:
        self._samples[(sample.date, sample.metric)] = sample

    def add_activity(self, activity: ActivityRecord) -> None:
        self._activities[activity.id] = activity

    async def fetch_samples(self, metric: MetricKind, date_range: DateRange) -> list[SignalSample]:
        self.calls.append(f"samples:{metric.value}:{date_range}")
        found = [
            s for (day, kind), s in self._samples.items()
            if kind == metric and day in date_range
        ]
        return sorted(found, key=lambda s: s.date)

    async def fetch_activities(self, date_range: DateRange) -> list[ActivityRecord]:
        self.calls.append(f"activities:{date_range}")
        found = [a for a in self._activities.values() if a.date in date_range]
        return sorted(found, key=lambda a: (a.date, a.id))


def _optional_float(entry: dict, name: str) -> float | None:
    value = entry.get(name)
    return None if value is None else float(value)


def _parse_entry(entry: dict) -> SignalSample | ActivityRecord:
    day = date.fromisoformat(entry["date"])
    if entry["kind"] == "sample":
        return SignalSample(day, MetricKind(entry["metric"]), float(entry["value"]))
    if entry["kind"] == "activity":
        return ActivityRecord(
            id=str(entry["id"]),
            date=day,
            duration_seconds=float(entry["duration_seconds"]),
            activity_type=ActivityType.parse(entry.get("type")),
            source=Provider(entry["provider"]),
            training_stress=_optional_float(entry, "training_stress"),
            normalized_power=_optional_float(entry, "normalized_power"),
            ftp=_optional_float(entry, "ftp"),
            average_hr=_optional_float(entry, "average_hr"),
            threshold_hr=_optional_float(entry, "threshold_hr"),
        )
    raise ValueError(f"unknown record kind {entry['kind']!r}")


def load_jsonl(path: str | Path) -> dict[Provider, InMemorySource]:
    """Read a JSONL export into one :class:`InMemorySource` per provider.

    Lines that are not valid JSON or do not describe a sample or an
    activity are skipped with a warning.
    """
    sources: dict[Provider, InMemorySource] = {}
    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
                provider = Provider(entry["provider"])
                record = _parse_entry(entry)
            except (json.JSONDecodeError, KeyError, ValueError) as exc:
                logger.warning("%s line %d skipped: %s", path, line_num, exc)
                continue

            source = sources.setdefault(provider, InMemorySource(provider))
            if isinstance(record, SignalSample):
                source.add_sample(record)
            else:
                source.add_activity(record)
    return sources
