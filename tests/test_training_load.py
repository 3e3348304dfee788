"""Tests for pulseform.analytics.training_load -- TSS, CTL/ATL/TSB, strain."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from pulseform.analytics.training_load import (
    ATL_DAYS,
    CTL_DAYS,
    TrainingLoadLedger,
    activity_load,
    compute_load_series,
    daily_tss,
    duration_tss,
    group_activities,
    heart_rate_tss,
    power_tss,
    reported_tss,
    strain_score,
)
from pulseform.models import ActivityType, DateRange, Provider
from tests.conftest import make_activity

START = date(2026, 1, 1)


class TestActivityStress:
    def test_reported(self):
        assert reported_tss(make_activity("a", START, training_stress=80.0)) == 80.0
        assert reported_tss(make_activity("a", START)) is None

    def test_power(self):
        ride = make_activity("a", START, hours=1.0, normalized_power=250.0, ftp=250.0)
        assert power_tss(ride) == pytest.approx(100.0)
        ride = make_activity("b", START, hours=2.0, normalized_power=200.0, ftp=250.0)
        assert power_tss(ride) == pytest.approx(128.0)

    def test_heart_rate(self):
        run = make_activity("a", START, hours=1.0, average_hr=135.0, threshold_hr=150.0)
        assert heart_rate_tss(run) == pytest.approx(81.0)
        assert heart_rate_tss(make_activity("b", START)) is None

    @pytest.mark.parametrize(
        "activity_type, expected",
        [
            (ActivityType.CYCLING, 70.0),
            (ActivityType.RUNNING, 100.0),
            (ActivityType.SWIMMING, 60.0),
            (ActivityType.STRENGTH, 50.0),
            (ActivityType.OTHER, 50.0),
        ],
    )
    def test_duration_coefficients(self, activity_type, expected):
        assert duration_tss(make_activity("a", START, activity_type=activity_type)) == pytest.approx(expected)

    def test_duration_scales_with_hours(self):
        assert duration_tss(make_activity("a", START, hours=1.5)) == pytest.approx(105.0)


class TestProviderFallback:
    def test_reported_preferred_from_richest_provider(self):
        records = [
            make_activity("s1", START, source=Provider.STRAVA, training_stress=90.0),
            make_activity("i1", START, source=Provider.INTERVALS, training_stress=95.0),
        ]
        load = activity_load(records)
        assert load.tss == 95.0
        assert load.method == "reported"
        assert load.source == "intervals"

    def test_reported_beats_derived(self):
        records = [
            make_activity("i1", START, source=Provider.INTERVALS, normalized_power=250.0, ftp=250.0),
            make_activity("s1", START, source=Provider.STRAVA, training_stress=72.0),
        ]
        load = activity_load(records)
        assert load.method == "reported"
        assert load.source == "strava"

    def test_second_provider_metadata(self):
        records = [
            make_activity("w1", START, source=Provider.WEARABLE),
            make_activity("s1", START, source=Provider.STRAVA, average_hr=150.0, threshold_hr=150.0),
        ]
        load = activity_load(records)
        assert load.method == "heart_rate"
        assert load.tss == pytest.approx(100.0)

    def test_duration_last_resort(self):
        load = activity_load([make_activity("w1", START, hours=2.0, source=Provider.WEARABLE)])
        assert load.method == "duration"
        assert load.tss == pytest.approx(140.0)

    def test_empty_group(self):
        with pytest.raises(ValueError):
            activity_load([])


class TestGrouping:
    def test_same_workout_across_providers(self):
        records = [
            make_activity("i1", START, hours=1.0, source=Provider.INTERVALS),
            make_activity("w1", START, hours=1.05, source=Provider.WEARABLE),
        ]
        assert len(group_activities(records)) == 1

    def test_different_types_not_merged(self):
        records = [
            make_activity("i1", START, source=Provider.INTERVALS),
            make_activity("w1", START, activity_type=ActivityType.RUNNING, source=Provider.WEARABLE),
        ]
        assert len(group_activities(records)) == 2

    def test_same_provider_not_merged(self):
        records = [
            make_activity("s1", START, source=Provider.STRAVA),
            make_activity("s2", START, source=Provider.STRAVA),
        ]
        assert len(group_activities(records)) == 2

    def test_durations_far_apart(self):
        records = [
            make_activity("i1", START, hours=1.0, source=Provider.INTERVALS),
            make_activity("w1", START, hours=2.0, source=Provider.WEARABLE),
        ]
        assert len(group_activities(records)) == 2

    def test_daily_tss_no_double_count(self):
        records = [
            make_activity("i1", START, source=Provider.INTERVALS, training_stress=80.0),
            make_activity("s1", START, source=Provider.STRAVA, training_stress=78.0),
            make_activity("w1", START, source=Provider.WEARABLE),
            make_activity("s2", START + timedelta(days=1), source=Provider.STRAVA, training_stress=40.0),
        ]
        assert daily_tss(records) == {START: 80.0, START + timedelta(days=1): 40.0}


class TestLoadSeries:
    def test_single_day(self):
        states = compute_load_series({START: 100.0}, START, START)
        assert len(states) == 1
        assert states[0].ctl == pytest.approx(100.0 / CTL_DAYS)
        assert states[0].atl == pytest.approx(100.0 / ATL_DAYS)
        assert states[0].tsb == pytest.approx(states[0].ctl - states[0].atl)

    def test_rest_days_decay(self):
        states = compute_load_series({START: 100.0}, START, START + timedelta(days=10))
        assert len(states) == 11
        assert all(s.daily_tss == 0.0 for s in states[1:])
        assert states[-1].atl < states[0].atl
        assert states[-1].ctl < states[0].ctl

    def test_converges_to_constant_load(self):
        end = START + timedelta(days=400)
        daily = {day: 50.0 for day in DateRange(START, end)}
        state = compute_load_series(daily, START, end)[-1]
        assert state.ctl == pytest.approx(50.0, abs=0.01)
        assert state.atl == pytest.approx(50.0, abs=0.01)

    def test_seeded(self):
        states = compute_load_series({}, START, START, seed_ctl=42.0, seed_atl=7.0)
        assert states[0].ctl == pytest.approx(41.0)
        assert states[0].atl == pytest.approx(6.0)


def _history() -> list:
    return [
        make_activity(f"s{i}", START + timedelta(days=i), training_stress=40.0 + i)
        for i in range(0, 60, 2)
    ]


class TestLedger:
    def test_backfill_matches_full_history(self):
        history = _history()
        end = START + timedelta(days=70)

        complete = TrainingLoadLedger(START)
        for activity in history:
            complete.upsert(activity)

        backfilled = TrainingLoadLedger(START)
        late = history[5]
        for activity in history:
            if activity is not late:
                backfilled.upsert(activity)
        backfilled.advance_to(end)
        replayed_from = backfilled.upsert(late)

        assert replayed_from == late.date
        assert backfilled.state_on(end) == complete.state_on(end)
        assert backfilled.history() == complete.history()

    def test_correction_replays(self):
        ledger = TrainingLoadLedger(START)
        ledger.upsert(make_activity("a", START + timedelta(days=3), training_stress=100.0))
        before = ledger.state_on(START + timedelta(days=20))

        ledger.upsert(make_activity("a", START + timedelta(days=3), training_stress=50.0))
        after = ledger.state_on(START + timedelta(days=20))
        assert after.ctl < before.ctl
        assert after == compute_load_series({START + timedelta(days=3): 50.0}, START, START + timedelta(days=20))[-1]

    def test_unchanged_upsert_is_noop(self):
        ledger = TrainingLoadLedger(START)
        activity = make_activity("a", START, training_stress=60.0)
        assert ledger.upsert(activity) == START
        assert ledger.upsert(activity) is None

    def test_sync_drops_missing(self):
        ledger = TrainingLoadLedger(START)
        window = DateRange(START, START + timedelta(days=9))
        ledger.sync(window, [make_activity("a", START, training_stress=60.0), make_activity("b", START + timedelta(days=1))])
        ledger.sync(window, [make_activity("a", START, training_stress=60.0)])
        assert [a.id for a in ledger.activities] == ["a"]
        assert ledger.tss_on(START + timedelta(days=1)) == 0.0

    def test_sync_keeps_unanswered_providers(self):
        ledger = TrainingLoadLedger(START)
        window = DateRange(START, START + timedelta(days=9))
        ledger.sync(window, [
            make_activity("i1", START, source=Provider.INTERVALS, training_stress=90.0),
            make_activity("s1", START + timedelta(days=2), source=Provider.STRAVA, training_stress=30.0),
        ])
        # Intervals failed this time; only Strava answered
        ledger.sync(window, [], providers=[Provider.STRAVA])
        assert [a.id for a in ledger.activities] == ["i1"]
        assert ledger.tss_on(START) == 90.0

    def test_state_before_start(self):
        ledger = TrainingLoadLedger(START)
        assert ledger.state_on(START - timedelta(days=1)) is None

    def test_activity_before_start_ignored(self):
        ledger = TrainingLoadLedger(START)
        assert ledger.upsert(make_activity("a", START - timedelta(days=1), training_stress=80.0)) is None
        assert ledger.activities == []

    def test_one_state_per_day(self):
        ledger = TrainingLoadLedger(START)
        state = ledger.state_on(START + timedelta(days=6))
        assert state.last_updated_date == START + timedelta(days=6)
        assert len(ledger.history()) == 7

    def test_rebased_matches_fresh_ledger(self):
        old = TrainingLoadLedger(START)
        old.sync(DateRange(START, START + timedelta(days=9)), [
            make_activity("peak", START, training_stress=400.0),
            make_activity("a", START + timedelta(days=3), training_stress=60.0),
        ])
        old.state_on(START + timedelta(days=9))

        window = DateRange(START + timedelta(days=1), START + timedelta(days=10))
        rebased = old.rebased(window)
        fresh = TrainingLoadLedger(window.start)
        fresh.sync(window, [make_activity("a", START + timedelta(days=3), training_stress=60.0)])

        assert rebased.start == window.start
        assert [a.id for a in rebased.activities] == ["a"]
        assert rebased.state_on(window.end) == fresh.state_on(window.end)
        assert rebased.history() == fresh.history()


class TestStrain:
    def test_rest_day(self):
        assert strain_score(0.0) == 0.0

    def test_curve(self):
        assert strain_score(150.0) == pytest.approx(13.3)
        assert strain_score(100.0) < strain_score(200.0) < 21.0

    def test_ceiling(self):
        assert strain_score(5000.0) <= 21.0
