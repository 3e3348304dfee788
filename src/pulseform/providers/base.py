"""Interface every provider-backed data source implements."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pulseform.models import ActivityRecord, DateRange, MetricKind, Provider, SignalSample


class DataSource(ABC):
    """A provider that can return dated samples and activity records.

    Implementations raise :class:`pulseform.errors.ProviderError` for
    unauthenticated, rate-limited, server-error and not-found responses.
    A source may return gaps; it may also return several samples for the
    same date and metric, in which case the last one wins.
    """

    provider: Provider

    @abstractmethod
    async def fetch_samples(self, metric: MetricKind, date_range: DateRange) -> list[SignalSample]:
        ...

    @abstractmethod
    async def fetch_activities(self, date_range: DateRange) -> list[ActivityRecord]:
        ...
