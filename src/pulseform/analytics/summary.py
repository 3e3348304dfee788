"""Daily report aggregator.

Collects one day's emitted objects (Recovery Score, Sleep Score,
Training Load State, anomaly verdicts) into a single DailyReport that
is JSON-serializable.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from pulseform.analytics.anomaly import AnomalyVerdict
from pulseform.analytics.baseline import Baseline
from pulseform.analytics.readiness import Readiness
from pulseform.analytics.recovery import RecoveryScore
from pulseform.analytics.sleep import SleepScore
from pulseform.analytics.training_load import ActivityLoad, TrainingLoadState, strain_score


def _round(value: float | None, digits: int = 1) -> float | None:
    return None if value is None else round(value, digits)


@dataclass(frozen=True)
class DailyReport:
    """A single day's scores. ``None`` means insufficient data."""

    date: date
    recovery: RecoveryScore | None = None
    sleep: SleepScore | None = None
    training_load: TrainingLoadState | None = None
    activity_loads: tuple[ActivityLoad, ...] = ()
    anomalies: tuple[AnomalyVerdict, ...] = ()
    baselines: dict[str, Baseline | None] = field(default_factory=dict, hash=False)
    readiness: Readiness | None = None

    @property
    def strain(self) -> float:
        return strain_score(sum(load.tss for load in self.activity_loads))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (JSON-friendly)."""
        recovery = None
        if self.recovery is not None:
            recovery = {
                "value": self.recovery.value,
                "band": self.recovery.band.value,
                "penalty": self.recovery.penalty,
                "weights_used": {k.value: round(w, 4) for k, w in self.recovery.weights_used.items()},
                "sub_scores": {
                    k.value: None if s is None else {
                        "value": s.value,
                        "baseline": _round(s.contributing_baseline),
                        "delta": _round(s.raw_delta, 3),
                    }
                    for k, s in self.recovery.sub_scores.items()
                },
            }

        sleep = None
        if self.sleep is not None:
            sleep = {
                "value": self.sleep.value,
                "band": self.sleep.band.value,
                "components": dict(self.sleep.components),
            }

        load = None
        if self.training_load is not None:
            load = {
                "ctl": round(self.training_load.ctl, 1),
                "atl": round(self.training_load.atl, 1),
                "tsb": round(self.training_load.tsb, 1),
                "last_updated_date": self.training_load.last_updated_date.isoformat(),
            }

        readiness = None
        if self.readiness is not None:
            low, high = self.readiness.tss_range
            readiness = {
                "recommendation": self.readiness.recommendation.value,
                "tss_range": [low, high],
                "intensity_factor": self.readiness.recommendation.intensity_factor,
                "confidence": self.readiness.confidence,
                "hrv_trend": self.readiness.hrv_trend,
                "reasoning": list(self.readiness.reasoning),
            }

        return {
            "date": self.date.isoformat(),
            "recovery": recovery,
            "sleep": sleep,
            "training_load": load,
            "strain": self.strain,
            "readiness": readiness,
            "activities": [
                {**asdict(a), "date": a.date.isoformat(), "tss": round(a.tss, 1)}
                for a in self.activity_loads
            ],
            "anomalies": [
                {
                    "kind": v.kind.value,
                    "confidence": v.confidence,
                    "penalty": v.penalty,
                    "severity": v.severity,
                    "signals": {s.signal: s.contribution for s in v.triggered_signals},
                }
                for v in self.anomalies
            ],
            "baselines": {
                name: None if b is None else {
                    "value": round(b.central_value, 2),
                    "dispersion": round(b.dispersion, 2),
                    "samples": b.sample_count,
                }
                for name, b in self.baselines.items()
            },
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        recovery = "n/a" if self.recovery is None else f"{self.recovery.value:.0f}"
        sleep = "n/a" if self.sleep is None else f"{self.sleep.value:.0f}"
        tsb = "n/a" if self.training_load is None else f"{self.training_load.tsb:+.1f}"
        return (
            f"DailyReport({self.date}: "
            f"recovery={recovery}, sleep={sleep}, "
            f"strain={self.strain:.1f}/21, tsb={tsb}, "
            f"anomalies={[v.kind.value for v in self.anomalies]})"
        )
