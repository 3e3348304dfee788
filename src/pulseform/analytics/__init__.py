"""Scoring engine for daily physiological and training-load data.

Modules:
    baseline      -- Rolling outlier-resistant personal baselines
    sleep         -- Five-component Sleep Score
    recovery      -- Directional sub-scores and the Recovery Score
    training_load -- Per-activity TSS, CTL/ATL/TSB ledger, strain
    anomaly       -- Illness and alcohol detectors
    readiness     -- Training recommendation from HRV, recovery and form
    summary       -- Daily report aggregation
    pipeline      -- Async orchestration over the provider gateway
"""

from pulseform.analytics.baseline import Baseline, BaselineCalculator, compute_baseline
from pulseform.analytics.sleep import SleepScore, score_sleep
from pulseform.analytics.recovery import (
    RecoveryScore,
    RecoveryWeights,
    SubScore,
    combine_recovery,
)
from pulseform.analytics.training_load import (
    TrainingLoadLedger,
    TrainingLoadState,
    compute_load_series,
    strain_score,
)
from pulseform.analytics.anomaly import (
    AnomalyVerdict,
    DailySignals,
    detect_alcohol,
    detect_anomalies,
    detect_illness,
)
from pulseform.analytics.readiness import (
    Readiness,
    TrainingRecommendation,
    assess_readiness,
    quick_readiness,
)
from pulseform.analytics.summary import DailyReport

__all__ = [
    # baseline
    "Baseline",
    "BaselineCalculator",
    "compute_baseline",
    # sleep
    "SleepScore",
    "score_sleep",
    # recovery
    "RecoveryScore",
    "RecoveryWeights",
    "SubScore",
    "combine_recovery",
    # training load
    "TrainingLoadLedger",
    "TrainingLoadState",
    "compute_load_series",
    "strain_score",
    # anomaly
    "AnomalyVerdict",
    "DailySignals",
    "detect_alcohol",
    "detect_anomalies",
    "detect_illness",
    # readiness
    "Readiness",
    "TrainingRecommendation",
    "assess_readiness",
    "quick_readiness",
    # summary
    "DailyReport",
]
