"""Rolling, outlier-resistant personal baselines.

A baseline is the median of the last ``window_days`` of samples after
discarding anything more than ``sigma`` standard deviations from the
window mean. It is recomputed from the raw samples on every call, so
backfilled or corrected history is always reflected.

Sleep-architecture baselines use the same procedure on per-night stage
percentages (deep %, REM %) rather than absolute stage durations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence, TYPE_CHECKING

import numpy as np

from pulseform.config import Settings, settings as default_settings
from pulseform.errors import ProviderError
from pulseform.models import DateRange, MetricKind, SignalSample

if TYPE_CHECKING:
    from pulseform.providers.base import DataSource
    from pulseform.providers.gateway import ProviderGateway

logger = logging.getLogger(__name__)

# Stage percentage metric -> absolute stage duration it is derived from
STAGE_SOURCES = {
    MetricKind.DEEP_PCT: MetricKind.DEEP_SLEEP,
    MetricKind.REM_PCT: MetricKind.REM_SLEEP,
}

# Relative change of the 7-day mean vs the baseline that counts as a trend
TREND_THRESHOLD = 0.05


@dataclass(frozen=True)
class Baseline:
    """Personal reference value for one metric."""

    metric: MetricKind
    window_days: int
    central_value: float  # median of retained samples
    dispersion: float  # population std of retained samples
    computed_at: date = field(compare=False)
    sample_count: int  # samples retained after outlier removal
    outliers_removed: int = field(default=0, compare=False)

    def delta(self, value: float) -> float | None:
        """Fractional change of ``value`` vs this baseline (0.1 = +10%)."""
        if self.central_value == 0:
            return None
        return (value - self.central_value) / self.central_value

    def __repr__(self) -> str:
        return (
            f"Baseline({self.metric.value}: {self.central_value:.1f} "
            f"±{self.dispersion:.1f}, n={self.sample_count}, "
            f"outliers={self.outliers_removed})"
        )


def robust_baseline(values: Sequence[float], sigma: float = 3.0) -> tuple[float, float, int, int]:
    """Median and std after removing >``sigma``-std outliers.

    Returns:
        (median, std, retained_count, removed_count) of the retained set.
    """
    arr = np.asarray(values, dtype=np.float64)
    mean = float(np.mean(arr))
    std = float(np.std(arr))
    if std > 0:
        kept = arr[np.abs(arr - mean) <= sigma * std]
    else:
        kept = arr
    return (
        float(np.median(kept)),
        float(np.std(kept)),
        int(len(kept)),
        int(len(arr) - len(kept)),
    )


def _latest_per_day(samples: Iterable[SignalSample]) -> dict[date, float]:
    by_day: dict[date, float] = {}
    for s in samples:
        by_day[s.date] = s.value  # later samples supersede earlier ones
    return by_day


def compute_baseline(
    samples: Iterable[SignalSample],
    metric: MetricKind,
    as_of: date,
    window_days: int = 30,
    min_samples: int = 7,
    sigma: float = 3.0,
) -> Baseline | None:
    """Compute a baseline from raw samples, or ``None`` if there are too few.

    Only samples of ``metric`` dated within the ``window_days`` ending on
    ``as_of`` are considered.
    """
    window = DateRange.ending(as_of, window_days)
    values = list(_latest_per_day(
        s for s in samples if s.metric == metric and s.date in window
    ).values())
    if len(values) < min_samples:
        logger.debug(
            "insufficient data for %s baseline: %d/%d samples",
            metric.value, len(values), min_samples,
        )
        return None

    median, std, kept, removed = robust_baseline(values, sigma)
    return Baseline(
        metric=metric,
        window_days=window_days,
        central_value=median,
        dispersion=std,
        computed_at=as_of,
        sample_count=kept,
        outliers_removed=removed,
    )


def stage_percentages(
    stage_samples: Iterable[SignalSample],
    duration_samples: Iterable[SignalSample],
    metric: MetricKind,
) -> list[SignalSample]:
    """Per-night stage share of total sleep, as ``metric`` samples (0-100)."""
    stage = _latest_per_day(stage_samples)
    asleep = _latest_per_day(duration_samples)
    return [
        SignalSample(day, metric, stage[day] / asleep[day] * 100.0)
        for day in sorted(stage)
        if asleep.get(day, 0) > 0
    ]


def coefficient_of_variation(values: Sequence[float]) -> float | None:
    """Std / mean of ``values``; ``None`` for fewer than two or a zero mean."""
    if len(values) < 2:
        return None
    mean = float(np.mean(values))
    if mean == 0:
        return None
    return float(np.std(values)) / mean


def hrv_trend(values: Sequence[float], recent_days: int = 7, sigma: float = 3.0) -> str | None:
    """Compare the recent mean with the robust baseline of the whole series.

    Args:
        values: Daily HRV readings, oldest first.
        recent_days: Length of the recent window.

    Returns:
        "improving", "stable" or "declining"; ``None`` without enough data.
    """
    if len(values) < recent_days * 2:
        return None
    center, _, _, _ = robust_baseline(values, sigma)
    if center == 0:
        return None
    change = (float(np.mean(values[-recent_days:])) - center) / center
    if change > TREND_THRESHOLD:
        return "improving"
    if change < -TREND_THRESHOLD:
        return "declining"
    return "stable"


# Day-over-day alcohol signature in history: (threshold, points)
HISTORY_HRV_DROP_POINTS = [(-0.30, 3), (-0.20, 2), (-0.15, 1)]  # fractional drop below
HISTORY_RHR_SPIKE_POINTS = [(8.0, 3), (5.0, 2), (3.0, 1)]  # bpm rise above
HISTORY_REBOUND_POINTS = [(0.20, 2), (0.15, 1)]  # next-day HRV rise above
HISTORY_WEEKEND_POINTS = 1
HISTORY_ALCOHOL_SCORE = 5


def _points(value: float, tiers: list[tuple[float, int]], below: bool = False) -> int:
    for threshold, points in tiers:
        if (value < threshold) if below else (value > threshold):
            return points
    return 0


def historical_alcohol_days(hrv: dict[date, float], rhr: dict[date, float]) -> set[date]:
    """Days in a history whose readings look like a night of drinking.

    Each reading is compared with the previous one: a sharp HRV drop, an
    RHR spike, weekend timing and an HRV rebound the following reading
    all add points. A day scoring 5 or more is flagged together with the
    recovery day after it.
    """
    days = sorted(hrv)
    flagged: set[date] = set()
    for i in range(1, len(days)):
        prev, day = days[i - 1], days[i]
        if hrv[prev] <= 0 or hrv[day] <= 0:
            continue
        score = _points((hrv[day] - hrv[prev]) / hrv[prev], HISTORY_HRV_DROP_POINTS, below=True)
        if day in rhr and prev in rhr:
            score += _points(rhr[day] - rhr[prev], HISTORY_RHR_SPIKE_POINTS)
        if day.weekday() >= 5:
            score += HISTORY_WEEKEND_POINTS
        following = days[i + 1] if i + 1 < len(days) else None
        if following is not None:
            score += _points((hrv[following] - hrv[day]) / hrv[day], HISTORY_REBOUND_POINTS)

        if score >= HISTORY_ALCOHOL_SCORE:
            flagged.add(day)
            if following is not None:
                flagged.add(following)
    return flagged


class BaselineCalculator:
    """Fetches raw samples through the gateway and computes baselines."""

    def __init__(
        self,
        gateway: ProviderGateway,
        source: DataSource,
        settings: Settings | None = None,
    ) -> None:
        self.gateway = gateway
        self.source = source
        self.settings = settings or default_settings

    def window(self, as_of: date) -> DateRange:
        return DateRange.ending(as_of, self.settings.BASELINE_WINDOW_DAYS)

    def _from_samples(self, samples: Iterable[SignalSample], metric: MetricKind, as_of: date) -> Baseline | None:
        return compute_baseline(
            samples,
            metric,
            as_of,
            window_days=self.settings.BASELINE_WINDOW_DAYS,
            min_samples=self.settings.BASELINE_MIN_SAMPLES,
            sigma=self.settings.OUTLIER_SIGMA,
        )

    async def compute(self, metric: MetricKind, as_of: date) -> Baseline | None:
        if metric in STAGE_SOURCES:
            return await self.compute_stage(metric, as_of)
        window = self.window(as_of)
        samples = await self.gateway.fetch_samples(self.source, metric, window)
        if metric is MetricKind.HRV and self.settings.BASELINE_EXCLUDE_ALCOHOL:
            samples = await self._without_alcohol_days(samples, window)
        return self._from_samples(samples, metric, as_of)

    async def _without_alcohol_days(self, samples: list[SignalSample], window: DateRange) -> list[SignalSample]:
        """Drop suspected drinking nights so they do not drag the HRV baseline down."""
        try:
            rhr = await self.gateway.fetch_samples(self.source, MetricKind.RHR, window)
        except ProviderError as exc:
            logger.warning("rhr unavailable for alcohol screening: %s", exc)
            rhr = []

        hrv = _latest_per_day(s for s in samples if s.date in window)
        excluded = historical_alcohol_days(hrv, _latest_per_day(rhr))
        if not excluded:
            return samples
        if len(hrv) - len(excluded & set(hrv)) < self.settings.BASELINE_CLEAN_MIN_SAMPLES:
            logger.debug("too few clean days to exclude %d suspected alcohol days", len(excluded))
            return samples
        logger.debug("excluding %d suspected alcohol days from hrv baseline", len(excluded))
        return [s for s in samples if s.date not in excluded]

    async def history(self, metric: MetricKind, as_of: date) -> list[float]:
        """Daily values of ``metric`` over the baseline window, oldest first."""
        samples = await self.gateway.fetch_samples(self.source, metric, self.window(as_of))
        by_day = _latest_per_day(samples)
        return [by_day[day] for day in sorted(by_day)]

    async def compute_stage(self, metric: MetricKind, as_of: date) -> Baseline | None:
        """Baseline of a stage percentage (``DEEP_PCT`` or ``REM_PCT``)."""
        window = self.window(as_of)
        stage, asleep = await asyncio.gather(
            self.gateway.fetch_samples(self.source, STAGE_SOURCES[metric], window),
            self.gateway.fetch_samples(self.source, MetricKind.SLEEP_DURATION, window),
        )
        return self._from_samples(stage_percentages(stage, asleep, metric), metric, as_of)

    async def compute_many(self, metrics: Iterable[MetricKind], as_of: date) -> dict[MetricKind, Baseline | None]:
        metrics = list(metrics)
        results = await asyncio.gather(*(self.compute(m, as_of) for m in metrics))
        return dict(zip(metrics, results))
