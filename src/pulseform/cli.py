"""CLI for the pulseform scoring engine."""

import asyncio
import logging
from datetime import timedelta

import click

DATE = click.DateTime(formats=["%Y-%m-%d"])


def _engine(file: str, policy: str | None = None):
    from pulseform.analytics.pipeline import ScoringEngine
    from pulseform.config import settings
    from pulseform.models import Provider
    from pulseform.providers import InMemorySource, load_jsonl

    sources = load_jsonl(file)
    wearable = sources.get(Provider.WEARABLE) or InMemorySource(Provider.WEARABLE)
    engine_settings = settings.model_copy(update={"RECOMPUTE_POLICY": policy}) if policy else settings
    return ScoringEngine(wearable, list(sources.values()), settings=engine_settings)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """pulseform — daily recovery, sleep and training-load scores."""
    from pulseform.config import settings

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--date", "-d", "day", type=DATE, required=True, help="Date to score (YYYY-MM-DD).")
@click.option("--days", "-n", default=1, help="Score this many days ending on --date.")
@click.option("--json", "as_json", is_flag=True, help="Print reports as JSON.")
@click.option("--policy", type=click.Choice(["on_demand", "once_per_day"]), default=None,
              help="Override the recompute policy.")
def score(file: str, day, days: int, as_json: bool, policy: str | None) -> None:
    """Score one or more days from a JSONL export."""
    from pulseform.models import DateRange

    engine = _engine(file, policy)
    end = day.date()
    reports = asyncio.run(engine.score_range(DateRange.ending(end, days)))

    for report in reports:
        if as_json:
            click.echo(report.to_json())
            continue
        recovery = "insufficient data" if report.recovery is None else (
            f"{report.recovery.value:.0f} ({report.recovery.band.value})"
        )
        sleep = "insufficient data" if report.sleep is None else (
            f"{report.sleep.value:.0f} ({report.sleep.band.value})"
        )
        click.echo(f"{report.date}  recovery {recovery}  sleep {sleep}  strain {report.strain:.1f}")
        if report.readiness is not None:
            low, high = report.readiness.tss_range
            click.echo(
                f"    readiness {report.readiness.recommendation.value} ({low}-{high} TSS), "
                f"confidence {report.readiness.confidence}"
            )
        for verdict in report.anomalies:
            click.echo(f"    {verdict.kind.value}: confidence {verdict.confidence:.2f}, penalty {verdict.penalty:.1f}")


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--date", "-d", "day", type=DATE, required=True, help="Last date to show (YYYY-MM-DD).")
@click.option("--days", "-n", default=14, help="Number of days to show.")
def load(file: str, day, days: int) -> None:
    """Show CTL / ATL / TSB history from a JSONL export."""
    from pulseform.analytics.training_load import TrainingLoadLedger
    from pulseform.config import settings
    from pulseform.models import DateRange

    engine = _engine(file)
    end = day.date()
    window = DateRange.ending(end, settings.LOAD_HISTORY_DAYS)
    records, _ = asyncio.run(engine.fetch_activities(window))

    ledger = TrainingLoadLedger(window.start)
    ledger.sync(window, records)
    click.echo(f"{'date':<12}{'tss':>7}{'ctl':>8}{'atl':>8}{'tsb':>8}")
    for offset in range(days - 1, -1, -1):
        current = end - timedelta(days=offset)
        state = ledger.state_on(current)
        if state is None:
            continue
        click.echo(
            f"{current.isoformat():<12}{state.daily_tss:>7.0f}"
            f"{state.ctl:>8.1f}{state.atl:>8.1f}{state.tsb:>+8.1f}"
        )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.argument("metric")
@click.option("--date", "-d", "day", type=DATE, required=True, help="Baseline as of this date.")
def baseline(file: str, metric: str, day) -> None:
    """Compute the personal baseline of METRIC (e.g. hrv, rhr, deep_pct)."""
    from pulseform.models import MetricKind

    try:
        kind = MetricKind(metric)
    except ValueError:
        raise click.BadParameter(
            f"choose from {', '.join(m.value for m in MetricKind)}", param_hint="METRIC"
        )

    engine = _engine(file)
    result = asyncio.run(engine.baselines.compute(kind, day.date()))
    if result is None:
        click.echo(f"{kind.value}: insufficient data")
    else:
        click.echo(repr(result))


if __name__ == "__main__":
    main()
