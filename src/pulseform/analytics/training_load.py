"""Training load: per-activity stress, CTL/ATL/TSB and daily strain.

Training stress for one workout comes from the first strategy that can
produce a value:

1. reported  -- TSS supplied by the provider
2. power     -- hours * IF^2 * 100, IF = normalized power / FTP
3. heart_rate -- hours * (avg HR / threshold HR)^2 * 100
4. duration  -- hours * per-type coefficient

Each strategy is tried across every provider's copy of the workout, in
provider priority order, before falling through to the next one. That
decision is made per workout, so one day can mix depths.

CTL and ATL are exponential moving averages of daily TSS with 42- and
7-day time constants. They are order-dependent, so any change to a past
day is handled by replaying every day from that date forward.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, Sequence

import numpy as np

from pulseform.models import PROVIDER_PRIORITY, ActivityRecord, ActivityType, DateRange, Provider

logger = logging.getLogger(__name__)

CTL_DAYS = 42
ATL_DAYS = 7

# Estimated TSS per hour when nothing richer than duration is known
TSS_PER_HOUR = {
    ActivityType.CYCLING: 70.0,
    ActivityType.RUNNING: 100.0,
    ActivityType.SWIMMING: 60.0,
    ActivityType.STRENGTH: 50.0,
    ActivityType.WALKING: 30.0,
    ActivityType.OTHER: 50.0,
}

# Two providers' records are the same workout if durations agree this well
DUPLICATE_MIN_TOLERANCE_S = 300.0
DUPLICATE_RELATIVE_TOLERANCE = 0.10

# Daily TSS -> 0-21 strain curve; a ~450 TSS day saturates
STRAIN_MAX = 21.0
TSS_STRAIN_MAX = 450.0


# ---------------------------------------------------------------------------
# Per-activity stress
# ---------------------------------------------------------------------------


def reported_tss(activity: ActivityRecord) -> float | None:
    if activity.training_stress is None or activity.training_stress < 0:
        return None
    return activity.training_stress


def power_tss(activity: ActivityRecord) -> float | None:
    if not activity.normalized_power or not activity.ftp or activity.ftp <= 0:
        return None
    intensity = activity.normalized_power / activity.ftp
    return activity.duration_hours * intensity ** 2 * 100.0


def heart_rate_tss(activity: ActivityRecord) -> float | None:
    if not activity.average_hr or not activity.threshold_hr or activity.threshold_hr <= 0:
        return None
    intensity = activity.average_hr / activity.threshold_hr
    return activity.duration_hours * intensity ** 2 * 100.0


def duration_tss(activity: ActivityRecord) -> float:
    return activity.duration_hours * TSS_PER_HOUR[activity.activity_type]


TSS_STRATEGIES: list[tuple[str, Callable[[ActivityRecord], float | None]]] = [
    ("reported", reported_tss),
    ("power", power_tss),
    ("heart_rate", heart_rate_tss),
    ("duration", duration_tss),
]


@dataclass(frozen=True)
class ActivityLoad:
    activity_id: str
    date: date
    tss: float
    method: str  # name of the strategy that produced the value
    source: str

    def __repr__(self) -> str:
        return f"ActivityLoad({self.activity_id}: {self.tss:.0f} TSS via {self.method}/{self.source})"


def _priority(activity: ActivityRecord) -> int:
    return PROVIDER_PRIORITY.index(activity.source)


def activity_load(records: Sequence[ActivityRecord]) -> ActivityLoad:
    """Training stress of one workout seen by one or more providers."""
    if not records:
        raise ValueError("activity_load needs at least one record")
    ordered = sorted(records, key=_priority)
    for method, strategy in TSS_STRATEGIES:
        for record in ordered:
            tss = strategy(record)
            if tss is not None:
                return ActivityLoad(record.id, record.date, float(tss), method, record.source.value)
    raise AssertionError("duration strategy always yields a value")


def _same_workout(a: ActivityRecord, b: ActivityRecord) -> bool:
    if a.date != b.date or a.activity_type != b.activity_type or a.source == b.source:
        return False
    longest = max(a.duration_seconds, b.duration_seconds)
    tolerance = max(DUPLICATE_MIN_TOLERANCE_S, longest * DUPLICATE_RELATIVE_TOLERANCE)
    return abs(a.duration_seconds - b.duration_seconds) <= tolerance


def group_activities(activities: Iterable[ActivityRecord]) -> list[list[ActivityRecord]]:
    """Cluster records from different providers that describe one workout."""
    groups: list[list[ActivityRecord]] = []
    for activity in sorted(activities, key=lambda a: (a.date, _priority(a), a.id)):
        for group in groups:
            if all(_same_workout(activity, member) for member in group):
                group.append(activity)
                break
        else:
            groups.append([activity])
    return groups


def activity_loads(activities: Iterable[ActivityRecord]) -> list[ActivityLoad]:
    return [activity_load(group) for group in group_activities(activities)]


def daily_tss(activities: Iterable[ActivityRecord]) -> dict[date, float]:
    totals: dict[date, float] = {}
    for load in activity_loads(activities):
        totals[load.date] = totals.get(load.date, 0.0) + load.tss
    return totals


def strain_score(tss: float) -> float:
    """Map a day's TSS onto the 0-21 strain scale (diminishing returns)."""
    if tss <= 0:
        return 0.0
    score = STRAIN_MAX * (1.0 - np.exp(-tss / (TSS_STRAIN_MAX / 3.0)))
    return round(min(STRAIN_MAX, float(score)), 1)


# ---------------------------------------------------------------------------
# CTL / ATL / TSB
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrainingLoadState:
    ctl: float
    atl: float
    tsb: float  # ctl - atl
    last_updated_date: date
    daily_tss: float = 0.0  # TSS on last_updated_date

    def __repr__(self) -> str:
        return (
            f"TrainingLoadState({self.last_updated_date}: ctl={self.ctl:.1f}, "
            f"atl={self.atl:.1f}, tsb={self.tsb:+.1f})"
        )


def _step(ctl: float, atl: float, tss: float, day: date) -> TrainingLoadState:
    ctl = ctl + (tss - ctl) / CTL_DAYS
    atl = atl + (tss - atl) / ATL_DAYS
    return TrainingLoadState(ctl, atl, ctl - atl, day, tss)


def compute_load_series(
    daily: dict[date, float],
    start: date,
    end: date,
    seed_ctl: float = 0.0,
    seed_atl: float = 0.0,
) -> list[TrainingLoadState]:
    """One state per calendar day from ``start`` to ``end``; rest days are TSS 0."""
    states: list[TrainingLoadState] = []
    ctl, atl = seed_ctl, seed_atl
    for day in DateRange(start, end):
        state = _step(ctl, atl, daily.get(day, 0.0), day)
        states.append(state)
        ctl, atl = state.ctl, state.atl
    return states


class TrainingLoadLedger:
    """Day-by-day CTL/ATL history that stays correct under backfill.

    Whenever the set of known activities changes, daily TSS is rebuilt and
    every state from the earliest changed date onward is replayed.
    """

    def __init__(self, start: date, seed_ctl: float = 0.0, seed_atl: float = 0.0) -> None:
        self.start = start
        self.seed_ctl = seed_ctl
        self.seed_atl = seed_atl
        self._activities: dict[tuple[str, str], ActivityRecord] = {}
        self._daily: dict[date, float] = {}
        self._states: list[TrainingLoadState] = []

    @property
    def last_date(self) -> date | None:
        return self._states[-1].last_updated_date if self._states else None

    @property
    def activities(self) -> list[ActivityRecord]:
        return sorted(self._activities.values(), key=lambda a: (a.date, a.id))

    def tss_on(self, day: date) -> float:
        return self._daily.get(day, 0.0)

    def upsert(self, activity: ActivityRecord) -> date | None:
        """Add or correct one activity; returns the first replayed date."""
        if activity.date < self.start:
            logger.debug("ignoring activity %s before ledger start %s", activity.id, self.start)
            return None
        self._activities[(activity.source.value, activity.id)] = activity
        return self._rebuild()

    def sync(
        self,
        window: DateRange,
        activities: Iterable[ActivityRecord],
        providers: Iterable[Provider] | None = None,
    ) -> date | None:
        """Make ``activities`` the complete set known for ``window``.

        Records inside the window that are no longer reported are dropped.
        When ``providers`` is given, only those providers' records are
        replaced; others (e.g. from a provider that failed) are kept.
        Returns the first replayed date, or ``None`` when nothing changed.
        """
        replaced = None if providers is None else set(providers)
        kept = {
            k: a for k, a in self._activities.items()
            if a.date not in window or (replaced is not None and a.source not in replaced)
        }
        for activity in activities:
            if activity.date >= self.start and activity.date in window:
                kept[(activity.source.value, activity.id)] = activity
        self._activities = kept
        return self._rebuild()

    def rebased(self, window: DateRange) -> TrainingLoadLedger:
        """A fresh ledger starting at ``window.start``.

        Only activities dated inside ``window`` are carried over, so the
        history it produces depends on nothing outside the window.
        """
        ledger = TrainingLoadLedger(window.start, self.seed_ctl, self.seed_atl)
        ledger._activities = {k: a for k, a in self._activities.items() if a.date in window}
        ledger._rebuild()
        return ledger

    def _rebuild(self) -> date | None:
        daily = daily_tss(self._activities.values())
        changed = [
            day for day in set(daily) | set(self._daily)
            if daily.get(day, 0.0) != self._daily.get(day, 0.0)
        ]
        self._daily = daily
        if not changed:
            return None
        first = min(changed)
        self._replay_from(first)
        return first

    def _replay_from(self, day: date) -> None:
        end = self.last_date
        if end is None or day > end:
            return
        index = max(0, (day - self.start).days)
        logger.debug("replaying training load from %s to %s", day, end)
        del self._states[index:]
        self.advance_to(end)

    def advance_to(self, day: date) -> None:
        """Extend the history through ``day`` (no-op if already there)."""
        last = self.last_date
        if last is not None and day <= last:
            return
        if last is None:
            first, ctl, atl = self.start, self.seed_ctl, self.seed_atl
        else:
            first, ctl, atl = last + timedelta(days=1), self._states[-1].ctl, self._states[-1].atl
        if day < first:
            return
        self._states.extend(compute_load_series(self._daily, first, day, ctl, atl))

    def state_on(self, day: date) -> TrainingLoadState | None:
        if day < self.start:
            return None
        self.advance_to(day)
        return self._states[(day - self.start).days]

    def history(self) -> list[TrainingLoadState]:
        return list(self._states)
