"""Per-provider request throttling and rate-limit health monitoring.

Each provider has up to three sliding windows (15 minutes, 1 hour,
1 day). A caller must :meth:`RequestThrottler.reserve` budget before it
issues a request, then record the outcome. Reservations are appended to
the window log under a lock, so two callers can never both take the
last slot.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union

from pulseform.models import Provider

logger = logging.getLogger(__name__)


class RateLimitWindow(int, Enum):
    FIFTEEN_MINUTES = 900
    HOUR = 3600
    DAY = 86400

    @property
    def label(self) -> str:
        return {900: "15min", 3600: "hourly", 86400: "daily"}[self.value]


@dataclass(frozen=True)
class ProviderLimits:
    """Request ceilings per window; ``None`` means no limit."""

    per_15_min: int | None = None
    per_hour: int | None = None
    per_day: int | None = None

    def windows(self) -> list[tuple[RateLimitWindow, int]]:
        pairs = [
            (RateLimitWindow.FIFTEEN_MINUTES, self.per_15_min),
            (RateLimitWindow.HOUR, self.per_hour),
            (RateLimitWindow.DAY, self.per_day),
        ]
        return [(window, limit) for window, limit in pairs if limit is not None]

    @property
    def unlimited(self) -> bool:
        return not self.windows()


DEFAULT_LIMITS: dict[Provider, ProviderLimits] = {
    Provider.INTERVALS: ProviderLimits(per_15_min=100, per_hour=200, per_day=2000),
    Provider.STRAVA: ProviderLimits(per_15_min=100, per_day=1000),
    Provider.WEARABLE: ProviderLimits(),
}


@dataclass(frozen=True)
class Permit:
    provider: Provider
    issued_at: float
    id: int


@dataclass(frozen=True)
class Denied:
    provider: Provider
    retry_after: float
    window: RateLimitWindow | None  # None when blocked by the provider itself
    reason: str


Reservation = Union[Permit, Denied]


@dataclass(frozen=True)
class Violation:
    provider: Provider
    at: float
    retry_after: float | None
    reason: str


@dataclass
class _ProviderState:
    log: deque = field(default_factory=deque)  # Permits, oldest first
    violations: deque = field(default_factory=deque)
    successes: int = 0
    failures: int = 0
    blocked_until: float = 0.0


class RequestThrottler:
    """Gate for every outbound provider call."""

    def __init__(
        self,
        limits: dict[Provider, ProviderLimits] | None = None,
        clock: Callable[[], float] = time.time,
        max_violations: int = 50,
    ) -> None:
        self.limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self.max_violations = max_violations
        self._clock = clock
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._states: dict[Provider, _ProviderState] = {}

    def _state(self, provider: Provider) -> _ProviderState:
        state = self._states.get(provider)
        if state is None:
            state = _ProviderState(violations=deque(maxlen=self.max_violations))
            self._states[provider] = state
        return state

    def _limits(self, provider: Provider) -> ProviderLimits:
        return self.limits.get(provider, ProviderLimits())

    @staticmethod
    def _prune(state: _ProviderState, now: float) -> None:
        horizon = now - RateLimitWindow.DAY
        while state.log and state.log[0].issued_at <= horizon:
            state.log.popleft()

    @staticmethod
    def _used(state: _ProviderState, window: RateLimitWindow, now: float) -> list[Permit]:
        return [p for p in state.log if p.issued_at > now - window]

    def reserve(self, provider: Provider) -> Reservation:
        """Take one request slot, or explain why none is available."""
        with self._lock:
            now = self._clock()
            state = self._state(provider)
            if state.blocked_until > now:
                return Denied(provider, state.blocked_until - now, None, "provider requested backoff")

            self._prune(state, now)
            for window, limit in self._limits(provider).windows():
                used = self._used(state, window, now)
                if len(used) >= limit:
                    retry_after = used[0].issued_at + window - now
                    logger.debug(
                        "%s %s window full (%d/%d), retry in %.0fs",
                        provider.value, window.label, len(used), limit, retry_after,
                    )
                    return Denied(provider, retry_after, window, f"{window.label} limit of {limit} reached")

            permit = Permit(provider, now, next(self._ids))
            state.log.append(permit)
            return permit

    def release(self, permit: Permit) -> None:
        """Return budget for a request that was never sent."""
        with self._lock:
            state = self._state(permit.provider)
            if permit in state.log:
                state.log.remove(permit)

    def record_success(self, provider: Provider) -> None:
        with self._lock:
            self._state(provider).successes += 1

    def record_failure(self, provider: Provider) -> None:
        """Count a failed request that was not a rate-limit rejection."""
        with self._lock:
            self._state(provider).failures += 1

    def record_violation(self, provider: Provider, retry_after: float | None, reason: str) -> None:
        with self._lock:
            now = self._clock()
            state = self._state(provider)
            state.violations.append(Violation(provider, now, retry_after, reason))
            if retry_after:
                state.blocked_until = max(state.blocked_until, now + retry_after)
        logger.warning(
            "rate limit violation for %s: %s (retry after %s)",
            provider.value, reason, f"{retry_after:.0f}s" if retry_after else "unknown",
        )

    def violations(self, provider: Provider | None = None) -> list[Violation]:
        with self._lock:
            if provider is not None:
                return list(self._state(provider).violations)
            merged = [v for s in self._states.values() for v in s.violations]
        return sorted(merged, key=lambda v: v.at)

    def health_score(self, provider: Provider) -> float:
        """0-100: 60% remaining capacity plus 40% inverse violation rate."""
        with self._lock:
            now = self._clock()
            state = self._state(provider)
            self._prune(state, now)
            windows = self._limits(provider).windows()
            if windows:
                remaining = [
                    max(0.0, (limit - len(self._used(state, window, now))) / limit)
                    for window, limit in windows
                ]
                capacity = sum(remaining) / len(remaining)
            else:
                capacity = 1.0

            recent_violations = sum(1 for v in state.violations if v.at > now - RateLimitWindow.DAY)
            attempts = len(state.log) + recent_violations
            violation_rate = recent_violations / attempts if attempts else 0.0

        score = (capacity * 0.6 + (1.0 - violation_rate) * 0.4) * 100.0
        return round(max(0.0, min(100.0, score)), 1)

    def status(self, provider: Provider) -> dict:
        """Usage per window plus counters, for display and logging."""
        health = self.health_score(provider)
        with self._lock:
            now = self._clock()
            state = self._state(provider)
            windows = {
                window.label: {"used": len(self._used(state, window, now)), "limit": limit}
                for window, limit in self._limits(provider).windows()
            }
            return {
                "provider": provider.value,
                "windows": windows,
                "successes": state.successes,
                "failures": state.failures,
                "violations": len(state.violations),
                "blocked_for": max(0.0, state.blocked_until - now),
                "health": health,
            }
