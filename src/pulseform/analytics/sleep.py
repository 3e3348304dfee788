"""Sleep Score: a weighted composite of five nightly components.

Components (all 0-100):

- performance: time asleep vs sleep need
- efficiency: time asleep vs time in bed
- stage_quality: deep% + REM% vs the personal baseline share
- disturbances: number of wake events
- timing: deviation of bedtime and wake time from their baselines

Sleep duration is required. Any other component whose inputs are
missing is dropped and the remaining weights are rescaled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class SleepBand(str, Enum):
    OPTIMAL = "optimal"
    GOOD = "good"
    FAIR = "fair"
    PAY_ATTENTION = "pay_attention"


SLEEP_WEIGHTS = {
    "performance": 0.30,
    "efficiency": 0.22,
    "stage_quality": 0.32,
    "disturbances": 0.14,
    "timing": 0.02,
}

# (deep% + REM%) / baseline share -> stage quality
STAGE_RATIO_POINTS = [0.0, 0.75, 1.0]
STAGE_SCORE_POINTS = [0.0, 50.0, 100.0]

# (max wake events, score), evaluated in order
DISTURBANCE_TIERS = [(2, 100.0), (5, 75.0), (8, 50.0)]
DISTURBANCE_FLOOR = 25.0

# (max mean deviation in minutes, score), evaluated in order
TIMING_TIERS = [(30.0, 100.0), (60.0, 75.0), (90.0, 50.0)]
TIMING_FLOOR = 25.0


@dataclass(frozen=True)
class SleepScore:
    value: float
    band: SleepBand
    components: dict[str, float | None] = field(hash=False)
    weights_used: dict[str, float] = field(hash=False)

    @property
    def performance(self) -> float:
        return self.components["performance"]

    @property
    def quality(self) -> float | None:
        """Composite of the available components other than performance."""
        parts = {
            name: value for name, value in self.components.items()
            if name != "performance" and value is not None
        }
        if not parts:
            return None
        total = sum(SLEEP_WEIGHTS[name] for name in parts)
        return round(sum(SLEEP_WEIGHTS[name] * v for name, v in parts.items()) / total, 1)

    def __repr__(self) -> str:
        return (
            f"SleepScore(score={self.value:.0f}, band={self.band.value}, "
            f"perf={self.performance:.0f}, "
            f"components={sum(v is not None for v in self.components.values())}/5)"
        )


def sleep_band(value: float) -> SleepBand:
    if value >= 80:
        return SleepBand.OPTIMAL
    if value >= 60:
        return SleepBand.GOOD
    if value >= 40:
        return SleepBand.FAIR
    return SleepBand.PAY_ATTENTION


def _tiered(value: float, tiers: list[tuple[float, float]], floor: float) -> float:
    for upper, score in tiers:
        if value <= upper:
            return score
    return floor


def performance_score(asleep_seconds: float, need_seconds: float) -> float:
    return min(100.0, max(0.0, asleep_seconds / need_seconds * 100.0))


def efficiency_score(asleep_seconds: float, in_bed_seconds: float | None) -> float | None:
    if not in_bed_seconds or in_bed_seconds <= 0:
        return None
    return min(100.0, asleep_seconds / in_bed_seconds * 100.0)


def stage_quality_score(
    deep_pct: float | None,
    rem_pct: float | None,
    baseline_pct: float | None,
) -> float | None:
    """Score tonight's deep + REM share against the personal baseline share."""
    if deep_pct is None or rem_pct is None or not baseline_pct or baseline_pct <= 0:
        return None
    ratio = (deep_pct + rem_pct) / baseline_pct
    return float(np.interp(ratio, STAGE_RATIO_POINTS, STAGE_SCORE_POINTS))


def disturbance_score(wake_events: float | None) -> float | None:
    if wake_events is None:
        return None
    return _tiered(wake_events, DISTURBANCE_TIERS, DISTURBANCE_FLOOR)


def timing_score(
    bedtime_deviation_min: float | None,
    wake_deviation_min: float | None,
) -> float | None:
    deviations = [abs(d) for d in (bedtime_deviation_min, wake_deviation_min) if d is not None]
    if not deviations:
        return None
    return _tiered(sum(deviations) / len(deviations), TIMING_TIERS, TIMING_FLOOR)


def score_sleep(
    asleep_seconds: float | None,
    need_seconds: float,
    in_bed_seconds: float | None = None,
    deep_pct: float | None = None,
    rem_pct: float | None = None,
    baseline_stage_pct: float | None = None,
    wake_events: float | None = None,
    bedtime_deviation_min: float | None = None,
    wake_deviation_min: float | None = None,
) -> SleepScore | None:
    """Compute the Sleep Score for one night.

    Args:
        asleep_seconds: Total time asleep. Required.
        need_seconds: Sleep need for the night.
        in_bed_seconds: Time in bed, for efficiency.
        deep_pct: Deep sleep share of time asleep (0-100).
        rem_pct: REM share of time asleep (0-100).
        baseline_stage_pct: Personal baseline of deep% + REM%.
        wake_events: Number of awakenings.
        bedtime_deviation_min: Minutes between bedtime and its baseline.
        wake_deviation_min: Minutes between wake time and its baseline.

    Returns:
        The SleepScore, or ``None`` when duration is unknown.
    """
    if asleep_seconds is None or need_seconds <= 0:
        return None

    components: dict[str, float | None] = {
        "performance": performance_score(asleep_seconds, need_seconds),
        "efficiency": efficiency_score(asleep_seconds, in_bed_seconds),
        "stage_quality": stage_quality_score(deep_pct, rem_pct, baseline_stage_pct),
        "disturbances": disturbance_score(wake_events),
        "timing": timing_score(bedtime_deviation_min, wake_deviation_min),
    }

    available = {name: SLEEP_WEIGHTS[name] for name, v in components.items() if v is not None}
    total = sum(available.values())
    weights_used = {name: w / total for name, w in available.items()}
    value = sum(weights_used[name] * components[name] for name in weights_used)
    value = round(max(0.0, min(100.0, value)), 1)

    return SleepScore(
        value=value,
        band=sleep_band(value),
        components={k: (None if v is None else round(v, 1)) for k, v in components.items()},
        weights_used=weights_used,
    )
