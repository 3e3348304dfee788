"""Tests for pulseform.analytics.readiness -- training recommendations."""

from __future__ import annotations

import pytest

from pulseform.analytics.readiness import (
    TrainingRecommendation,
    assess_readiness,
    form_signal,
    quick_readiness,
    stability_signal,
    trend_signal,
)


class TestSignals:
    def test_trend(self):
        assert trend_signal(55.0, 50.0) == 50
        assert trend_signal(45.0, 50.0) == -50
        assert trend_signal(100.0, 50.0) == 100  # clamped
        assert trend_signal(None, 50.0) == 0
        assert trend_signal(50.0, 0.0) == 0

    @pytest.mark.parametrize("cv, expected", [
        (2.0, 80),
        (7.0, 30),
        (12.0, -20),
        (16.0, -60),
        (30.0, -100),
        (None, 0),
    ])
    def test_stability(self, cv, expected):
        assert stability_signal(cv) == expected

    def test_form(self):
        assert form_signal(10.0) == 25
        assert form_signal(-8.0) == -20
        assert form_signal(60.0) == 100
        assert form_signal(None) == 0


class TestDecision:
    def test_train_hard(self):
        result = assess_readiness(55.0, 50.0, 3.0, 85.0, 10.0)
        assert result.recommendation == TrainingRecommendation.TRAIN_HARD
        assert result.tss_range == (100, 200)
        assert result.factors.data_quality == 100
        assert result.confidence == 90

    def test_hrv_drop_means_rest(self):
        result = assess_readiness(45.0, 50.0, 3.0, 85.0, 10.0)
        assert result.recommendation == TrainingRecommendation.REST
        assert "HRV trending below baseline" in result.reasoning

    def test_erratic_hrv_means_rest(self):
        result = assess_readiness(55.0, 50.0, 20.0, 85.0, 10.0)
        assert result.recommendation == TrainingRecommendation.REST
        assert "HRV unstable day to day" in result.reasoning

    def test_overreached_means_rest(self):
        result = assess_readiness(55.0, 50.0, 3.0, 85.0, -20.0)
        assert result.recommendation == TrainingRecommendation.REST
        assert "accumulated fatigue (negative form)" in result.reasoning

    def test_low_recovery_means_easy(self):
        result = assess_readiness(50.0, 50.0, 3.0, 40.0, 0.0)
        assert result.recommendation == TrainingRecommendation.TRAIN_EASY

    def test_moderate_on_rising_hrv(self):
        result = assess_readiness(55.0, 50.0, 7.0, 65.0, None)
        assert result.recommendation == TrainingRecommendation.TRAIN_MODERATE
        assert result.factors.data_quality == 75
        # trend, stability and recovery agree; form is neutral
        assert result.confidence == 80

    def test_moderate_when_recovered_and_fresh(self):
        result = assess_readiness(50.0, 50.0, 3.0, 75.0, 10.0)
        assert result.recommendation == TrainingRecommendation.TRAIN_MODERATE

    def test_no_inputs(self):
        result = assess_readiness(None, None, None, None, None)
        assert result.recommendation == TrainingRecommendation.TRAIN_EASY
        assert result.factors.recovery == 50
        assert result.confidence == 30
        assert result.reasoning[-1] == "limited data"

    def test_trend_label_passed_through(self):
        result = assess_readiness(55.0, 50.0, 3.0, 85.0, 10.0, trend="improving")
        assert result.hrv_trend == "improving"
        assert "train_hard" in repr(result)


class TestRecommendation:
    def test_ranges(self):
        assert TrainingRecommendation.TRAIN_EASY.tss_range == (20, 50)
        assert TrainingRecommendation.REST.tss_range == (0, 20)
        assert TrainingRecommendation.TRAIN_HARD.intensity_factor == 0.85

    @pytest.mark.parametrize("recovery, tss, expected", [
        (85.0, None, TrainingRecommendation.TRAIN_HARD),
        (85.0, 200.0, TrainingRecommendation.TRAIN_MODERATE),
        (65.0, None, TrainingRecommendation.TRAIN_MODERATE),
        (45.0, None, TrainingRecommendation.TRAIN_EASY),
        (20.0, None, TrainingRecommendation.REST),
    ])
    def test_quick_readiness(self, recovery, tss, expected):
        assert quick_readiness(recovery, tss) == expected
