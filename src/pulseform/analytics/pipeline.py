"""Scoring pipeline: fetch a day's data and run the full scoring engine.

Data acquisition is asynchronous and concurrent: baselines, the day's
own readings and activity history are gathered in parallel through the
shared :class:`ProviderGateway`. Everything after that is synchronous
and pure, so scoring the same inputs twice gives identical reports.

Provider failures never abort a day. A failed activity source is skipped
and the remaining providers fill in; a failed sample fetch leaves that
signal, and anything that depends on it, undefined.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Sequence

import numpy as np

from pulseform.analytics.anomaly import DailySignals, detect_anomalies
from pulseform.analytics.baseline import Baseline, BaselineCalculator, coefficient_of_variation, hrv_trend
from pulseform.analytics.readiness import Readiness, assess_readiness
from pulseform.analytics.recovery import (
    DEFAULT_WEIGHTS,
    RecoveryWeights,
    RecoveryScore,
    SubScoreKind,
    combine_recovery,
    score_form,
    score_hrv,
    score_respiratory,
    score_rhr,
    score_sleep_component,
)
from pulseform.analytics.sleep import SleepScore, score_sleep
from pulseform.analytics.summary import DailyReport
from pulseform.analytics.training_load import TrainingLoadLedger, TrainingLoadState, activity_loads
from pulseform.config import Settings, settings as default_settings
from pulseform.errors import ProviderError
from pulseform.models import PROVIDER_PRIORITY, ActivityRecord, DateRange, MetricKind, Provider
from pulseform.providers.base import DataSource
from pulseform.providers.gateway import ProviderGateway

logger = logging.getLogger(__name__)

BASELINE_METRICS = [
    MetricKind.HRV,
    MetricKind.RHR,
    MetricKind.RESPIRATORY_RATE,
    MetricKind.SLEEP_DURATION,
    MetricKind.BEDTIME,
    MetricKind.WAKE_TIME,
    MetricKind.DEEP_PCT,
    MetricKind.REM_PCT,
]

DAY_METRICS = [
    MetricKind.HRV,
    MetricKind.RHR,
    MetricKind.RESPIRATORY_RATE,
    MetricKind.SLEEP_DURATION,
    MetricKind.TIME_IN_BED,
    MetricKind.DEEP_SLEEP,
    MetricKind.REM_SLEEP,
    MetricKind.WAKE_EVENTS,
    MetricKind.BEDTIME,
    MetricKind.WAKE_TIME,
]

# Days averaged for the rolling HRV that drives readiness
READINESS_DAYS = 7


def _deviation(value: float | None, baseline: Baseline | None) -> float | None:
    if value is None or baseline is None:
        return None
    return value - baseline.central_value


def _ratio_delta(value: float | None, baseline: Baseline | None) -> float | None:
    if value is None or baseline is None:
        return None
    return baseline.delta(value)


class ScoringEngine:
    """Produces one :class:`DailyReport` per calendar date."""

    def __init__(
        self,
        wearable: DataSource,
        activity_sources: Sequence[DataSource] = (),
        gateway: ProviderGateway | None = None,
        settings: Settings | None = None,
        weights: RecoveryWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.settings = settings or default_settings
        self.gateway = gateway or ProviderGateway(settings=self.settings)
        self.wearable = wearable
        self.activity_sources = sorted(
            activity_sources, key=lambda s: PROVIDER_PRIORITY.index(s.provider)
        )
        self.weights = weights
        self.baselines = BaselineCalculator(self.gateway, wearable, self.settings)
        self.ledger: TrainingLoadLedger | None = None
        self.reports: dict[date, DailyReport] = {}

    # -- acquisition --------------------------------------------------------

    async def _guard(self, what: str, request: Awaitable[Any]) -> Any:
        try:
            return await request
        except ProviderError as exc:
            logger.warning("%s unavailable: %s", what, exc)
            return None

    async def _baselines(self, as_of: date) -> dict[MetricKind, Baseline | None]:
        results = await asyncio.gather(*(
            self._guard(f"{metric.value} baseline", self.baselines.compute(metric, as_of))
            for metric in BASELINE_METRICS
        ))
        return dict(zip(BASELINE_METRICS, results))

    async def _day_values(self, day: date) -> dict[MetricKind, float | None]:
        window = DateRange(day, day)
        results = await asyncio.gather(*(
            self._guard(
                f"{metric.value} for {day}",
                self.gateway.fetch_samples(self.wearable, metric, window),
            )
            for metric in DAY_METRICS
        ))
        # Last sample wins when a source reports more than one
        return {
            metric: samples[-1].value if samples else None
            for metric, samples in zip(DAY_METRICS, results)
        }

    async def fetch_activities(self, window: DateRange) -> tuple[list[ActivityRecord], list[Provider]]:
        """Records from every activity source that answered, and which ones did."""
        results = await asyncio.gather(*(
            self._guard(
                f"{source.provider.value} activities",
                self.gateway.fetch_activities(source, window),
            )
            for source in self.activity_sources
        ))
        records: list[ActivityRecord] = []
        answered: list[Provider] = []
        for source, found in zip(self.activity_sources, results):
            if found is None:
                logger.warning("falling back past %s for %s", source.provider.value, window)
                continue
            records.extend(found)
            answered.append(source.provider)
        return records, answered

    def _ledger_for(self, window: DateRange) -> TrainingLoadLedger:
        # Every day's load starts from zero at its own window start
        if self.ledger is None:
            self.ledger = TrainingLoadLedger(window.start)
        elif self.ledger.start != window.start:
            self.ledger = self.ledger.rebased(window)
        return self.ledger

    # -- scoring ------------------------------------------------------------

    def _sleep(self, values: dict, baselines: dict) -> SleepScore | None:
        asleep = values[MetricKind.SLEEP_DURATION]
        deep = values[MetricKind.DEEP_SLEEP]
        rem = values[MetricKind.REM_SLEEP]
        deep_pct = deep / asleep * 100.0 if deep is not None and asleep else None
        rem_pct = rem / asleep * 100.0 if rem is not None and asleep else None
        deep_b, rem_b = baselines[MetricKind.DEEP_PCT], baselines[MetricKind.REM_PCT]
        stage_baseline = deep_b.central_value + rem_b.central_value if deep_b and rem_b else None

        return score_sleep(
            asleep,
            self.settings.SLEEP_NEED_HOURS * 3600.0,
            in_bed_seconds=values[MetricKind.TIME_IN_BED],
            deep_pct=deep_pct,
            rem_pct=rem_pct,
            baseline_stage_pct=stage_baseline,
            wake_events=values[MetricKind.WAKE_EVENTS],
            bedtime_deviation_min=_deviation(values[MetricKind.BEDTIME], baselines[MetricKind.BEDTIME]),
            wake_deviation_min=_deviation(values[MetricKind.WAKE_TIME], baselines[MetricKind.WAKE_TIME]),
        )

    def _readiness(
        self,
        hrv_history: list[float] | None,
        today_hrv: float | None,
        hrv_baseline: Baseline | None,
        recovery: RecoveryScore | None,
        form: TrainingLoadState | None,
    ) -> Readiness | None:
        values = list(hrv_history or [])
        if today_hrv is not None:
            values.append(today_hrv)
        recent = values[-READINESS_DAYS:]
        if not recent and recovery is None and form is None:
            return None

        cv = coefficient_of_variation(recent)
        return assess_readiness(
            rolling_hrv=float(np.mean(recent)) if recent else None,
            baseline_hrv=hrv_baseline.central_value if hrv_baseline else None,
            hrv_cv_pct=None if cv is None else cv * 100.0,
            recovery=recovery.value if recovery else None,
            tsb=form.tsb if form else None,
            trend=hrv_trend(values, READINESS_DAYS, self.settings.OUTLIER_SIGMA),
        )

    def _score(
        self,
        day: date,
        values: dict[MetricKind, float | None],
        baselines: dict[MetricKind, Baseline | None],
        ledger: TrainingLoadLedger,
        hrv_history: list[float] | None = None,
    ) -> DailyReport:
        yesterday = day - timedelta(days=1)
        sleep = self._sleep(values, baselines)
        asleep = values[MetricKind.SLEEP_DURATION]

        sub_scores = {
            SubScoreKind.HRV: score_hrv(values[MetricKind.HRV], baselines[MetricKind.HRV]),
            SubScoreKind.RHR: score_rhr(values[MetricKind.RHR], baselines[MetricKind.RHR]),
            SubScoreKind.SLEEP: score_sleep_component(sleep, asleep, baselines[MetricKind.SLEEP_DURATION]),
            SubScoreKind.RESPIRATORY: score_respiratory(
                values[MetricKind.RESPIRATORY_RATE], baselines[MetricKind.RESPIRATORY_RATE]
            ),
            SubScoreKind.FORM: score_form(ledger.state_on(yesterday), ledger.tss_on(yesterday)),
        }

        deep, deep_b = values[MetricKind.DEEP_SLEEP], baselines[MetricKind.DEEP_PCT]
        signals = DailySignals(
            day=day,
            hrv_delta=_ratio_delta(values[MetricKind.HRV], baselines[MetricKind.HRV]),
            rhr_delta=_ratio_delta(values[MetricKind.RHR], baselines[MetricKind.RHR]),
            respiratory_delta=_ratio_delta(
                values[MetricKind.RESPIRATORY_RATE], baselines[MetricKind.RESPIRATORY_RATE]
            ),
            sleep_score=sleep.value if sleep else None,
            sleep_performance=sleep.performance if sleep else None,
            sleep_quality=sleep.quality if sleep else None,
            deep_pct_delta=_ratio_delta(deep / asleep * 100.0, deep_b) if deep is not None and asleep else None,
        )
        anomalies = tuple(v for v in detect_anomalies(signals) if v.flagged)
        penalty = sum(v.penalty for v in anomalies)

        recovery = combine_recovery(sub_scores, day, self.weights, penalty, anomalies)
        # TSB only counts once there is training history behind it
        form = ledger.state_on(yesterday) if sub_scores[SubScoreKind.FORM] else None
        readiness = self._readiness(
            hrv_history, values[MetricKind.HRV], baselines[MetricKind.HRV], recovery, form
        )
        return DailyReport(
            date=day,
            recovery=recovery,
            sleep=sleep,
            training_load=ledger.state_on(day),
            activity_loads=tuple(activity_loads(a for a in ledger.activities if a.date == day)),
            anomalies=anomalies,
            baselines={metric.value: b for metric, b in baselines.items()},
            readiness=readiness,
        )

    async def score_day(self, day: date, force: bool = False) -> DailyReport:
        """Score ``day``, replacing any earlier report for that date.

        With ``RECOMPUTE_POLICY="once_per_day"`` an existing report is
        returned as-is unless ``force`` is set.
        """
        if self.settings.RECOMPUTE_POLICY == "once_per_day" and not force and day in self.reports:
            logger.debug("report for %s already computed today", day)
            return self.reports[day]

        window = DateRange.ending(day, self.settings.LOAD_HISTORY_DAYS)
        # Baselines stop the day before so today's reading is not its own reference
        yesterday = day - timedelta(days=1)
        baselines, values, (records, answered), hrv_history = await asyncio.gather(
            self._baselines(yesterday),
            self._day_values(day),
            self.fetch_activities(window),
            self._guard("hrv history", self.baselines.history(MetricKind.HRV, yesterday)),
        )

        ledger = self._ledger_for(window)
        ledger.sync(window, records, providers=answered)
        report = self._score(day, values, baselines, ledger, hrv_history)
        self.reports[day] = report
        logger.info("scored %r", report)
        return report

    async def score_range(self, date_range: DateRange, force: bool = False) -> list[DailyReport]:
        """Score each day of ``date_range`` in date order."""
        return [await self.score_day(day, force) for day in date_range]

    def invalidate_day(self, day: date) -> int:
        """Forget cached provider data and the stored report for ``day``.

        Provider responses are keyed by range, so every cached response is
        dropped. Returns the number of cache entries removed.
        """
        self.reports.pop(day, None)
        return self.gateway.invalidate()
