"""Throttled, cached and retrying access to data sources.

Every provider request goes through :meth:`ProviderGateway._call`:

1. reserve throttle budget (a denial is recorded as a violation and
   raised as :class:`RateLimitExceeded`);
2. issue the request with a timeout;
3. record success, failure or violation;
4. retry server errors and timeouts with exponential backoff.

Rate-limit, authentication and not-found errors are never retried. The
public fetch methods wrap the call in the cache, so a failed fill falls
back to the last good value when there is one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from pulseform.cache import AsyncCache, CacheKey
from pulseform.config import Settings, settings as default_settings
from pulseform.errors import ProviderError, ProviderErrorKind, RateLimitExceeded
from pulseform.models import ActivityRecord, DateRange, MetricKind, Provider, SignalSample
from pulseform.providers.base import DataSource
from pulseform.throttle import Denied, RequestThrottler

logger = logging.getLogger(__name__)


class ProviderGateway:
    def __init__(
        self,
        throttler: RequestThrottler | None = None,
        cache: AsyncCache | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or default_settings
        self.throttler = throttler or RequestThrottler()
        self.cache = cache or AsyncCache(
            max_entries=self.settings.CACHE_MAX_ENTRIES,
            serve_stale=self.settings.CACHE_SERVE_STALE,
        )
        self._sleep = sleep

    async def fetch_samples(
        self,
        source: DataSource,
        metric: MetricKind,
        date_range: DateRange,
    ) -> list[SignalSample]:
        key = CacheKey.build(source.provider, "samples", metric=metric, range=date_range)
        return await self.cache.get_or_fetch(
            key,
            self.settings.CACHE_TTL_SAMPLES,
            lambda: self._call(source.provider, lambda: source.fetch_samples(metric, date_range)),
        )

    async def fetch_activities(self, source: DataSource, date_range: DateRange) -> list[ActivityRecord]:
        key = CacheKey.build(source.provider, "activities", range=date_range)
        return await self.cache.get_or_fetch(
            key,
            self.settings.CACHE_TTL_ACTIVITIES,
            lambda: self._call(source.provider, lambda: source.fetch_activities(date_range)),
        )

    def invalidate(self, provider: Provider | None = None, resource: str | None = None) -> int:
        """Drop cached responses for a provider and/or resource type."""
        pattern = f"{provider.value if provider else '*'}:{resource or '*'}:*"
        return self.cache.invalidate(pattern)

    async def _call(self, provider: Provider, request: Callable[[], Awaitable[Any]]) -> Any:
        max_attempts = max(1, self.settings.PROVIDER_MAX_ATTEMPTS)
        timeout = self.settings.PROVIDER_TIMEOUT_SECONDS
        attempt = 0
        while True:
            reservation = self.throttler.reserve(provider)
            if isinstance(reservation, Denied):
                self.throttler.record_violation(provider, reservation.retry_after, reservation.reason)
                raise RateLimitExceeded(provider, reservation.retry_after, reservation.reason)

            try:
                result = await asyncio.wait_for(request(), timeout)
            except asyncio.TimeoutError:
                error = ProviderError(provider, ProviderErrorKind.TIMEOUT, f"no response after {timeout:.0f}s")
            except ProviderError as exc:
                if exc.kind is ProviderErrorKind.RATE_LIMITED:
                    self.throttler.record_violation(provider, exc.retry_after, str(exc))
                    raise
                error = exc
            else:
                self.throttler.record_success(provider)
                return result

            self.throttler.record_failure(provider)
            attempt += 1
            if not error.retryable or attempt >= max_attempts:
                raise error

            delay = self.settings.PROVIDER_BACKOFF_SECONDS * 2 ** (attempt - 1)
            logger.warning("%s; retry %d/%d in %.1fs", error, attempt, max_attempts - 1, delay)
            await self._sleep(delay)
