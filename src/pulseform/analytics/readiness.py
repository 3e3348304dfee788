"""Training readiness: what kind of session today's physiology supports.

Four signals on a -100..100 scale feed a small decision tree:

- hrv trend  -- 7-day rolling HRV vs the personal baseline
- stability  -- day-to-day HRV coefficient of variation (lower is better)
- recovery   -- the Recovery Score, 50 when unknown
- form       -- yesterday's TSB

Any one strongly negative signal means rest. Confidence is the mean of
how much data was available and how strongly the signals agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


class TrainingRecommendation(str, Enum):
    TRAIN_HARD = "train_hard"
    TRAIN_MODERATE = "train_moderate"
    TRAIN_EASY = "train_easy"
    REST = "rest"

    @property
    def tss_range(self) -> tuple[int, int]:
        return TSS_RANGES[self]

    @property
    def intensity_factor(self) -> float:
        return INTENSITY_FACTORS[self]


TSS_RANGES = {
    TrainingRecommendation.TRAIN_HARD: (100, 200),
    TrainingRecommendation.TRAIN_MODERATE: (50, 100),
    TrainingRecommendation.TRAIN_EASY: (20, 50),
    TrainingRecommendation.REST: (0, 20),
}

INTENSITY_FACTORS = {
    TrainingRecommendation.TRAIN_HARD: 0.85,
    TrainingRecommendation.TRAIN_MODERATE: 0.70,
    TrainingRecommendation.TRAIN_EASY: 0.55,
    TrainingRecommendation.REST: 0.40,
}

SIGNAL_LIMIT = 100
TREND_GAIN = 5.0  # signal points per percent change
FORM_GAIN = 2.5  # signal points per TSB point

# Decision thresholds on the signal scale
HRV_NEGATIVE = -10
HRV_POSITIVE = 5
STABILITY_HIGH_CV = -20
STABILITY_LOW_CV = 50
OVERREACHED = -20
FRESH = 20
FATIGUED = 50
RECOVERED = 70
MODERATE_RECOVERY = 60

# A signal beyond this magnitude counts as a clear vote
CLEAR_SIGNAL = 10
LIMITED_DATA = 50

# Recovery-only fallback
QUICK_HIGH_TSS = 150.0


def _clamp(value: float) -> int:
    return int(np.clip(value, -SIGNAL_LIMIT, SIGNAL_LIMIT))


def trend_signal(rolling_hrv: float | None, baseline_hrv: float | None) -> int:
    if rolling_hrv is None or not baseline_hrv:
        return 0
    change_pct = (rolling_hrv - baseline_hrv) / baseline_hrv * 100.0
    return _clamp(change_pct * TREND_GAIN)


def stability_signal(cv_pct: float | None) -> int:
    """Map HRV CV% to a signal: under 5% is very stable, over 15% erratic."""
    if cv_pct is None:
        return 0
    if cv_pct < 5:
        return int(100 - cv_pct * 10)
    if cv_pct < 10:
        return int(50 - (cv_pct - 5) * 10)
    if cv_pct < 15:
        return int(-(cv_pct - 10) * 10)
    return int(max(-100.0, -50 - (cv_pct - 15) * 10))


def form_signal(tsb: float | None) -> int:
    return 0 if tsb is None else _clamp(tsb * FORM_GAIN)


@dataclass(frozen=True)
class ReadinessFactors:
    hrv_trend: int
    hrv_stability: int
    recovery: int
    form: int
    data_quality: int  # 0-100, 25 per available input

    def as_list(self) -> list[int]:
        return [self.hrv_trend, self.hrv_stability, self.recovery - 50, self.form]


@dataclass(frozen=True)
class Readiness:
    recommendation: TrainingRecommendation
    confidence: int  # 0-100
    factors: ReadinessFactors
    reasoning: tuple[str, ...] = ()
    hrv_trend: str | None = None  # "improving" / "stable" / "declining"

    @property
    def tss_range(self) -> tuple[int, int]:
        return self.recommendation.tss_range

    def __repr__(self) -> str:
        low, high = self.tss_range
        return f"Readiness({self.recommendation.value}, {low}-{high} TSS, confidence={self.confidence})"


def _recommend(f: ReadinessFactors) -> tuple[TrainingRecommendation, list[str]]:
    hrv_negative = f.hrv_trend < HRV_NEGATIVE
    hrv_positive = f.hrv_trend > HRV_POSITIVE
    cv_high = f.hrv_stability < STABILITY_HIGH_CV
    cv_low = f.hrv_stability > STABILITY_LOW_CV
    overreached = f.form < OVERREACHED
    fresh = f.form > FRESH
    fatigued = f.recovery < FATIGUED
    recovered = f.recovery >= RECOVERED

    if hrv_negative or cv_high or overreached:
        reasons = []
        if hrv_negative:
            reasons.append("HRV trending below baseline")
        if cv_high:
            reasons.append("HRV unstable day to day")
        if overreached:
            reasons.append("accumulated fatigue (negative form)")
        return TrainingRecommendation.REST, reasons
    if fatigued and not fresh:
        return TrainingRecommendation.TRAIN_EASY, ["recovery is low"]
    if hrv_positive and cv_low and recovered:
        return TrainingRecommendation.TRAIN_HARD, [
            "HRV trending above baseline", "HRV stable", "well recovered",
        ]
    if hrv_positive and f.hrv_stability > 0 and f.recovery >= MODERATE_RECOVERY:
        return TrainingRecommendation.TRAIN_MODERATE, ["HRV trending up", "recovery adequate"]
    if recovered and fresh:
        return TrainingRecommendation.TRAIN_MODERATE, ["well recovered and fresh"]
    return TrainingRecommendation.TRAIN_EASY, ["mixed signals"]


def _clarity(f: ReadinessFactors) -> int:
    signals = f.as_list()
    positive = sum(1 for s in signals if s > CLEAR_SIGNAL)
    negative = sum(1 for s in signals if s < -CLEAR_SIGNAL)
    neutral = len(signals) - positive - negative
    if positive >= 3 or negative >= 3:
        return 80 + neutral * 5
    if neutral == len(signals):
        return 60
    return 40


def assess_readiness(
    rolling_hrv: float | None,
    baseline_hrv: float | None,
    hrv_cv_pct: float | None,
    recovery: float | None,
    tsb: float | None,
    trend: str | None = None,
) -> Readiness:
    """Recommend a training intensity from HRV, recovery and form.

    Args:
        rolling_hrv: Mean HRV over the last 7 days.
        baseline_hrv: Personal HRV baseline.
        hrv_cv_pct: Coefficient of variation of recent HRV, in percent.
        recovery: Recovery Score (0-100).
        tsb: Training stress balance going into the day.
        trend: Optional HRV trend label carried through to the result.
    """
    trend_points = trend_signal(rolling_hrv, baseline_hrv)
    stability_points = stability_signal(hrv_cv_pct)
    quality = 25 * sum([
        trend_points != 0,
        stability_points != 0,
        recovery is not None,
        tsb is not None,
    ])
    factors = ReadinessFactors(
        hrv_trend=trend_points,
        hrv_stability=stability_points,
        recovery=50 if recovery is None else int(recovery),
        form=form_signal(tsb),
        data_quality=quality,
    )

    recommendation, reasoning = _recommend(factors)
    confidence = min(100, (quality + _clarity(factors)) // 2)
    if quality < LIMITED_DATA:
        reasoning.append("limited data")
    return Readiness(recommendation, confidence, factors, tuple(reasoning), trend)


def quick_readiness(recovery: float, yesterday_tss: float | None = None) -> TrainingRecommendation:
    """Recommendation from the Recovery Score alone, tempered by yesterday's load."""
    heavy_yesterday = yesterday_tss is not None and yesterday_tss > QUICK_HIGH_TSS
    if recovery >= 80 and not heavy_yesterday:
        return TrainingRecommendation.TRAIN_HARD
    if recovery >= 60:
        return TrainingRecommendation.TRAIN_MODERATE
    if recovery >= 40:
        return TrainingRecommendation.TRAIN_EASY
    return TrainingRecommendation.REST
