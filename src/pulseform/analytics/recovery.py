"""Recovery Score: five directional sub-scores and their weighted sum.

Each sub-score is a pure function of today's value and the personal
baseline. The transforms are asymmetric: only the
physiologically bad direction is penalised (falling HRV, rising RHR),
and elevated breathing rate is punished faster than suppressed.

Sub-scores without a baseline are excluded and their weight is spread
proportionally over the rest. With no sub-scores at all the Recovery
Score is ``None``, never 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

from pulseform.analytics.baseline import Baseline
from pulseform.analytics.sleep import SleepScore

if TYPE_CHECKING:
    from pulseform.analytics.anomaly import AnomalyVerdict
    from pulseform.analytics.training_load import TrainingLoadState


class SubScoreKind(str, Enum):
    HRV = "hrv"
    RHR = "rhr"
    SLEEP = "sleep"
    RESPIRATORY = "respiratory"
    FORM = "form"


class RecoveryBand(str, Enum):
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


@dataclass(frozen=True)
class SubScore:
    kind: SubScoreKind
    value: float  # 0-100
    contributing_baseline: float | None
    raw_delta: float | None  # fractional change vs baseline

    def __repr__(self) -> str:
        delta = "n/a" if self.raw_delta is None else f"{self.raw_delta:+.0%}"
        return f"SubScore({self.kind.value}={self.value:.0f}, delta={delta})"


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

# HRV: fractional drop below baseline -> score
HRV_DROP_POINTS = [0.0, 0.10, 0.20, 0.35, 0.85]
HRV_DROP_SCORES = [100.0, 85.0, 60.0, 30.0, 0.0]

# RHR: fractional rise above baseline -> score
RHR_RISE_POINTS = [0.0, 0.08, 0.15, 0.25, 0.62]
RHR_RISE_SCORES = [100.0, 88.0, 67.0, 37.0, 0.0]

# Respiratory: within the stable band the score is 100
RESP_STABLE_BAND = 0.05
RESP_ELEVATED_POINTS = [0.05, 0.15, 0.25]
RESP_ELEVATED_SCORES = [100.0, 50.0, 0.0]
RESP_SUPPRESSED_POINTS = [0.05, 0.15, 0.30]
RESP_SUPPRESSED_SCORES = [100.0, 70.0, 40.0]

# Form: ATL/CTL ratio and yesterday's training stress
FORM_RATIO_FLOOR = 1.0
FORM_RATIO_KNEE = 1.5
TSS_PENALTY_MAX = 40.0


def hrv_transform(delta: float) -> float:
    if delta >= 0:
        return 100.0
    return float(np.interp(-delta, HRV_DROP_POINTS, HRV_DROP_SCORES))


def rhr_transform(delta: float) -> float:
    if delta <= 0:
        return 100.0
    return float(np.interp(delta, RHR_RISE_POINTS, RHR_RISE_SCORES))


def respiratory_transform(delta: float) -> float:
    if abs(delta) <= RESP_STABLE_BAND:
        return 100.0
    if delta > 0:
        return float(np.interp(delta, RESP_ELEVATED_POINTS, RESP_ELEVATED_SCORES))
    # np.interp holds the last value, so suppression bottoms out at 40
    return float(np.interp(-delta, RESP_SUPPRESSED_POINTS, RESP_SUPPRESSED_SCORES))


def tss_penalty(yesterday_tss: float) -> float:
    """Points removed from Form for yesterday's training stress."""
    if yesterday_tss < 50:
        return 0.0
    if yesterday_tss < 100:
        return (yesterday_tss - 50) * 0.2
    if yesterday_tss < 200:
        return 10.0 + (yesterday_tss - 100) * 0.15
    return min(TSS_PENALTY_MAX, 25.0 + (yesterday_tss - 200) * 0.1)


def form_transform(ctl: float, atl: float, yesterday_tss: float = 0.0) -> float | None:
    """Score recent relative load; ``None`` without any chronic load."""
    if ctl <= 0:
        return None
    ratio = atl / ctl
    if ratio < FORM_RATIO_FLOOR:
        base = 100.0
    elif ratio <= FORM_RATIO_KNEE:
        base = 100.0 - (ratio - FORM_RATIO_FLOOR) * 100.0
    else:
        base = max(0.0, 50.0 - (ratio - FORM_RATIO_KNEE) * 50.0)
    return max(0.0, min(100.0, base - tss_penalty(yesterday_tss)))


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def _baseline_sub_score(kind, transform, value, baseline) -> SubScore | None:
    if value is None or baseline is None:
        return None
    delta = baseline.delta(value)
    if delta is None:
        return None
    return SubScore(kind, round(transform(delta), 1), baseline.central_value, delta)


def score_hrv(value: float | None, baseline: Baseline | None) -> SubScore | None:
    return _baseline_sub_score(SubScoreKind.HRV, hrv_transform, value, baseline)


def score_rhr(value: float | None, baseline: Baseline | None) -> SubScore | None:
    return _baseline_sub_score(SubScoreKind.RHR, rhr_transform, value, baseline)


def score_respiratory(value: float | None, baseline: Baseline | None) -> SubScore | None:
    return _baseline_sub_score(SubScoreKind.RESPIRATORY, respiratory_transform, value, baseline)


def score_sleep_component(
    sleep: SleepScore | None,
    asleep_seconds: float | None = None,
    duration_baseline: Baseline | None = None,
) -> SubScore | None:
    """Sleep sub-score: the Sleep Score, else duration vs its baseline."""
    if sleep is not None:
        delta = duration_baseline.delta(asleep_seconds) if duration_baseline and asleep_seconds else None
        baseline_value = duration_baseline.central_value if duration_baseline else None
        return SubScore(SubScoreKind.SLEEP, sleep.value, baseline_value, delta)
    if asleep_seconds is None or duration_baseline is None or duration_baseline.central_value <= 0:
        return None
    ratio = asleep_seconds / duration_baseline.central_value
    return SubScore(
        SubScoreKind.SLEEP,
        round(min(100.0, ratio * 100.0), 1),
        duration_baseline.central_value,
        ratio - 1.0,
    )


def score_form(state: TrainingLoadState | None, yesterday_tss: float = 0.0) -> SubScore | None:
    if state is None:
        return None
    value = form_transform(state.ctl, state.atl, yesterday_tss)
    if value is None:
        return None
    return SubScore(SubScoreKind.FORM, round(value, 1), state.ctl, state.atl / state.ctl - 1.0)


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------


class RecoveryWeights(BaseModel):
    """Sub-score weights; each positive, summing to 1.0.

    A zero weight would leave an available sub-score unable to carry the
    Recovery Score when the others are missing.
    """

    model_config = ConfigDict(frozen=True)

    hrv: float = Field(default=0.30, gt=0.0)
    rhr: float = Field(default=0.20, gt=0.0)
    sleep: float = Field(default=0.30, gt=0.0)
    respiratory: float = Field(default=0.10, gt=0.0)
    form: float = Field(default=0.10, gt=0.0)

    @model_validator(mode="after")
    def _sums_to_one(self) -> RecoveryWeights:
        total = self.hrv + self.rhr + self.sleep + self.respiratory + self.form
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"recovery weights must sum to 1.0, got {total}")
        return self

    def by_kind(self) -> dict[SubScoreKind, float]:
        return {kind: getattr(self, kind.value) for kind in SubScoreKind}


DEFAULT_WEIGHTS = RecoveryWeights()


@dataclass(frozen=True)
class RecoveryScore:
    value: float  # 0-100 after any penalty
    band: RecoveryBand
    sub_scores: dict[SubScoreKind, SubScore | None] = field(hash=False)
    weights_used: dict[SubScoreKind, float] = field(hash=False)
    computed_date: date
    penalty: float = 0.0  # points removed by the alcohol detector
    anomalies: tuple[AnomalyVerdict, ...] = ()

    def __repr__(self) -> str:
        return (
            f"RecoveryScore({self.computed_date}: {self.value:.0f} "
            f"{self.band.value}, penalty={self.penalty:.1f}, "
            f"subscores={len(self.weights_used)}/5)"
        )


def recovery_band(value: float) -> RecoveryBand:
    if value >= 70:
        return RecoveryBand.GREEN
    if value >= 40:
        return RecoveryBand.AMBER
    return RecoveryBand.RED


def redistribute_weights(
    weights: RecoveryWeights,
    available: set[SubScoreKind],
) -> dict[SubScoreKind, float]:
    """Rescale the weights of the available sub-scores to sum to 1.0."""
    present = {kind: w for kind, w in weights.by_kind().items() if kind in available}
    total = sum(present.values())
    if total <= 0:
        return {}
    return {kind: w / total for kind, w in present.items()}


def combine_recovery(
    sub_scores: dict[SubScoreKind, SubScore | None],
    computed_date: date,
    weights: RecoveryWeights = DEFAULT_WEIGHTS,
    penalty: float = 0.0,
    anomalies: tuple[AnomalyVerdict, ...] = (),
) -> RecoveryScore | None:
    """Weighted combination of the available sub-scores.

    Returns ``None`` when no sub-score is available.
    """
    available = {kind for kind, s in sub_scores.items() if s is not None}
    weights_used = redistribute_weights(weights, available)
    if not weights_used:
        return None

    raw = sum(w * sub_scores[kind].value for kind, w in weights_used.items())
    value = round(max(0.0, min(100.0, raw - penalty)), 1)
    return RecoveryScore(
        value=value,
        band=recovery_band(value),
        sub_scores={kind: sub_scores.get(kind) for kind in SubScoreKind},
        weights_used=weights_used,
        computed_date=computed_date,
        penalty=round(penalty, 1),
        anomalies=anomalies,
    )
