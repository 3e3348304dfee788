"""Illness and alcohol detection from one day's deviations vs baseline.

Both detectors are pure functions of a :class:`DailySignals` value and
are re-run whenever the day is scored; nothing is persisted.

Illness is rule based: any one rule firing flags the day. Alcohol sums
capped evidence points from six signals and only acts at a confidence
of 0.5 or more. The two signatures overlap on HRV suppression, so the
alcohol detector is not run on a day already flagged for illness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

logger = logging.getLogger(__name__)


class AnomalyKind(str, Enum):
    ILLNESS = "illness"
    ALCOHOL = "alcohol"


@dataclass(frozen=True)
class DailySignals:
    """Deviations of one day's readings from their baselines.

    Deltas are fractions (0.15 = 15% above baseline); sleep values are
    0-100 scores.
    """

    day: date
    hrv_delta: float | None = None
    rhr_delta: float | None = None
    respiratory_delta: float | None = None
    sleep_score: float | None = None
    sleep_performance: float | None = None
    sleep_quality: float | None = None  # sleep score without duration
    deep_pct_delta: float | None = None


@dataclass(frozen=True)
class SignalContribution:
    signal: str
    contribution: float


@dataclass(frozen=True)
class AnomalyVerdict:
    kind: AnomalyKind
    confidence: float  # 0-1
    triggered_signals: tuple[SignalContribution, ...]
    flagged: bool = True
    penalty: float = 0.0  # recovery points to subtract
    severity: str | None = None

    def __repr__(self) -> str:
        signals = ", ".join(s.signal for s in self.triggered_signals)
        return (
            f"AnomalyVerdict({self.kind.value}, conf={self.confidence:.2f}, "
            f"flagged={self.flagged}, penalty={self.penalty:.1f}, [{signals}])"
        )


# ---------------------------------------------------------------------------
# Illness
# ---------------------------------------------------------------------------

ILLNESS_HRV_SPIKE = 1.00
ILLNESS_RHR_RISE = 0.15
ILLNESS_RESP_RISE = 0.15
ILLNESS_SLEEP_PERFORMANCE_MIN = 90.0  # duration counts as adequate above this
ILLNESS_SLEEP_QUALITY_MAX = 50.0

ILLNESS_WEIGHTS = {
    "hrv_spike": 1.2,
    "rhr_elevated": 1.0,
    "respiratory_elevated": 0.7,
    "sleep_disrupted": 0.7,
}


def _illness_deviations(signals: DailySignals) -> dict[str, float]:
    found: dict[str, float] = {}
    if signals.hrv_delta is not None and signals.hrv_delta > ILLNESS_HRV_SPIKE:
        found["hrv_spike"] = signals.hrv_delta
    if signals.rhr_delta is not None and signals.rhr_delta > ILLNESS_RHR_RISE:
        found["rhr_elevated"] = signals.rhr_delta
    if signals.respiratory_delta is not None and signals.respiratory_delta > ILLNESS_RESP_RISE:
        found["respiratory_elevated"] = signals.respiratory_delta
    if (
        signals.sleep_performance is not None
        and signals.sleep_quality is not None
        and signals.sleep_performance >= ILLNESS_SLEEP_PERFORMANCE_MIN
        and signals.sleep_quality < ILLNESS_SLEEP_QUALITY_MAX
    ):
        found["sleep_disrupted"] = (ILLNESS_SLEEP_QUALITY_MAX - signals.sleep_quality) / ILLNESS_SLEEP_QUALITY_MAX
    return found


def _illness_severity(mean_deviation: float, count: int) -> str:
    if mean_deviation > 0.30 or count >= 3:
        return "high"
    if mean_deviation > 0.20 or count >= 2:
        return "moderate"
    return "low"


def detect_illness(signals: DailySignals) -> AnomalyVerdict | None:
    """Flag the day if any illness rule fires; ``None`` otherwise."""
    deviations = _illness_deviations(signals)
    if not deviations:
        return None

    weighted = {name: ILLNESS_WEIGHTS[name] * dev for name, dev in deviations.items()}
    total = sum(weighted.values())
    contributions = tuple(
        SignalContribution(name, round(w / total, 3) if total > 0 else 0.0)
        for name, w in sorted(weighted.items(), key=lambda kv: -kv[1])
    )

    count = len(deviations)
    mean_deviation = sum(deviations.values()) / count
    confidence = 0.6 * min(count / 4.0, 1.0) + 0.4 * min(mean_deviation / 0.5, 1.0)

    verdict = AnomalyVerdict(
        kind=AnomalyKind.ILLNESS,
        confidence=round(min(1.0, confidence), 3),
        triggered_signals=contributions,
        severity=_illness_severity(mean_deviation, count),
    )
    logger.info("illness indicators on %s: %s", signals.day, verdict)
    return verdict


# ---------------------------------------------------------------------------
# Alcohol
# ---------------------------------------------------------------------------

ALCOHOL_THRESHOLD = 0.5

# (HRV delta below, evidence points, base penalty in recovery points)
HRV_SUPPRESSION_TIERS = [
    (-0.35, 0.150, 20.0),
    (-0.30, 0.140, 16.0),
    (-0.25, 0.125, 12.0),
    (-0.20, 0.100, 10.0),
    (-0.15, 0.075, 7.0),
    (-0.10, 0.050, 4.0),
]
POOR_SLEEP_POINTS = [(40.0, 0.10), (60.0, 0.05)]  # sleep score below
DEEP_SLEEP_POINTS = [(-0.30, 0.075), (-0.15, 0.04)]  # deep% delta below
DEEP_SLEEP_FALLBACK = (50.0, 0.04)  # sleep score below, when deep% is unknown
RHR_POINTS = [(0.08, 0.075), (0.04, 0.05)]  # RHR delta above
NORMAL_RESP_BAND = 0.10
NORMAL_RESP_POINTS = 0.075
ELEVATED_RESP_DELTA = 0.15
ELEVATED_RESP_POINTS = -0.10
WEEKEND_POINTS = 0.05

MAX_CONFIDENCE = 0.525
PENALTY_CAP = 25.0
RHR_MULTIPLIERS = [(0.08, 1.5), (0.04, 1.25)]
SLEEP_MITIGATION = [(80.0, 0.70), (65.0, 0.85)]  # sleep score at or above


def _hrv_tier(hrv_delta: float | None) -> tuple[float, float] | None:
    if hrv_delta is None:
        return None
    for below, points, penalty in HRV_SUPPRESSION_TIERS:
        if hrv_delta < below:
            return points, penalty
    return None


def _alcohol_evidence(signals: DailySignals, hrv_points: float) -> list[SignalContribution]:
    evidence = [SignalContribution("hrv_suppressed", hrv_points)]

    if signals.sleep_score is not None:
        for below, points in POOR_SLEEP_POINTS:
            if signals.sleep_score < below:
                evidence.append(SignalContribution("poor_sleep", points))
                break

    if signals.deep_pct_delta is not None:
        for below, points in DEEP_SLEEP_POINTS:
            if signals.deep_pct_delta < below:
                evidence.append(SignalContribution("deep_sleep_suppressed", points))
                break
    elif signals.sleep_score is not None and signals.sleep_score < DEEP_SLEEP_FALLBACK[0]:
        evidence.append(SignalContribution("deep_sleep_suppressed", DEEP_SLEEP_FALLBACK[1]))

    if signals.rhr_delta is not None:
        for above, points in RHR_POINTS:
            if signals.rhr_delta > above:
                evidence.append(SignalContribution("rhr_elevated", points))
                break

    if signals.respiratory_delta is not None:
        if abs(signals.respiratory_delta) < NORMAL_RESP_BAND:
            evidence.append(SignalContribution("respiratory_normal", NORMAL_RESP_POINTS))
        elif signals.respiratory_delta > ELEVATED_RESP_DELTA:
            evidence.append(SignalContribution("respiratory_elevated", ELEVATED_RESP_POINTS))

    if signals.day.weekday() >= 5:
        evidence.append(SignalContribution("weekend", WEEKEND_POINTS))

    return evidence


def _alcohol_penalty(signals: DailySignals, base_penalty: float, confidence: float) -> float:
    penalty = base_penalty * confidence / MAX_CONFIDENCE
    if signals.rhr_delta is not None:
        for above, factor in RHR_MULTIPLIERS:
            if signals.rhr_delta > above:
                penalty *= factor
                break
    if signals.sleep_score is not None:
        for at_least, factor in SLEEP_MITIGATION:
            if signals.sleep_score >= at_least:
                penalty *= factor
                break
    return min(PENALTY_CAP, penalty)


def detect_alcohol(signals: DailySignals) -> AnomalyVerdict | None:
    """Score alcohol evidence; ``None`` when HRV is not suppressed.

    A verdict below the confidence threshold is returned unflagged and
    without penalty.
    """
    tier = _hrv_tier(signals.hrv_delta)
    if tier is None:
        return None
    hrv_points, base_penalty = tier

    evidence = _alcohol_evidence(signals, hrv_points)
    confidence = max(0.0, min(1.0, sum(e.contribution for e in evidence)))
    flagged = confidence >= ALCOHOL_THRESHOLD
    penalty = _alcohol_penalty(signals, base_penalty, confidence) if flagged else 0.0

    verdict = AnomalyVerdict(
        kind=AnomalyKind.ALCOHOL,
        confidence=round(confidence, 3),
        triggered_signals=tuple(evidence),
        flagged=flagged,
        penalty=round(penalty, 1),
    )
    if flagged:
        logger.info("alcohol pattern on %s: %s", signals.day, verdict)
    else:
        logger.debug("alcohol evidence below threshold on %s: %.3f", signals.day, confidence)
    return verdict


def detect_anomalies(signals: DailySignals) -> tuple[AnomalyVerdict, ...]:
    """Run both detectors; alcohol is skipped on a day flagged for illness."""
    illness = detect_illness(signals)
    if illness is not None:
        return (illness,)
    alcohol = detect_alcohol(signals)
    return (alcohol,) if alcohol is not None else ()
