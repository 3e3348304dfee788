"""Tests for the pulseform command line interface."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest
from click.testing import CliRunner

from pulseform.cli import main
from tests.conftest import NIGHT, activity_entry, sample_entry, write_jsonl

TODAY = date(2026, 2, 17)


def export(path, history_days: int = 30, activities: bool = True):
    entries = []
    for offset in range(history_days, -1, -1):
        day = TODAY - timedelta(days=offset)
        for metric, value in NIGHT.items():
            entries.append(sample_entry(day, metric.value, value))
        if activities and offset % 2 == 0:
            entries.append(activity_entry(f"s-{offset}", day, 3600, type="Ride", training_stress=70))
    return write_jsonl(path / "export.jsonl", entries)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestScoreCommand:
    def test_prints_one_line_per_day(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["score", str(path), "--date", TODAY.isoformat(), "--days", "3"])
        assert result.exit_code == 0, result.output
        lines = [l for l in result.output.splitlines() if "  recovery " in l]
        assert [l.split()[0] for l in lines] == ["2026-02-15", "2026-02-16", "2026-02-17"]
        assert "recovery" in lines[-1]
        assert "strain" in lines[-1]

    def test_json(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["score", str(path), "-d", TODAY.isoformat(), "--json"])
        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["date"] == TODAY.isoformat()
        assert report["recovery"]["value"] > 0
        assert report["baselines"]["hrv"]["samples"] == 30

    def test_insufficient_data(self, runner, tmp_path):
        path = write_jsonl(tmp_path / "empty.jsonl", [])
        result = runner.invoke(main, ["score", str(path), "-d", TODAY.isoformat()])
        assert result.exit_code == 0, result.output
        assert "recovery insufficient data" in result.output
        assert "sleep insufficient data" in result.output

    def test_policy_option(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(
            main, ["score", str(path), "-d", TODAY.isoformat(), "--policy", "once_per_day"]
        )
        assert result.exit_code == 0, result.output

    def test_unknown_policy_rejected(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["score", str(path), "-d", TODAY.isoformat(), "--policy", "hourly"])
        assert result.exit_code == 2

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["score", str(tmp_path / "nope.jsonl"), "-d", TODAY.isoformat()])
        assert result.exit_code == 2


class TestLoadCommand:
    def test_table(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["load", str(path), "-d", TODAY.isoformat(), "--days", "5"])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0].split() == ["date", "tss", "ctl", "atl", "tsb"]
        assert len(lines) == 6
        assert lines[-1].startswith(TODAY.isoformat())
        # TODAY has a 70 TSS ride
        assert lines[-1].split()[1] == "70"

    def test_rest_days_have_zero_tss(self, runner, tmp_path):
        path = export(tmp_path, activities=False)
        result = runner.invoke(main, ["load", str(path), "-d", TODAY.isoformat(), "-n", "2"])
        assert result.exit_code == 0, result.output
        for line in result.output.splitlines()[1:]:
            assert line.split()[1:] == ["0", "0.0", "0.0", "+0.0"]


class TestBaselineCommand:
    def test_baseline(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["baseline", str(path), "hrv", "-d", TODAY.isoformat()])
        assert result.exit_code == 0, result.output
        assert "Baseline(hrv: 50.0" in result.output

    def test_stage_baseline(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["baseline", str(path), "deep_pct", "-d", TODAY.isoformat()])
        assert result.exit_code == 0, result.output
        assert "Baseline(deep_pct: 20.0" in result.output

    def test_insufficient_history(self, runner, tmp_path):
        path = export(tmp_path, history_days=2)
        result = runner.invoke(main, ["baseline", str(path), "rhr", "-d", TODAY.isoformat()])
        assert result.exit_code == 0, result.output
        assert "rhr: insufficient data" in result.output

    def test_unknown_metric(self, runner, tmp_path):
        path = export(tmp_path)
        result = runner.invoke(main, ["baseline", str(path), "steps", "-d", TODAY.isoformat()])
        assert result.exit_code == 2
        assert "choose from" in result.output
