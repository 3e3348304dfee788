"""Exception taxonomy for provider access and scoring."""

from __future__ import annotations

from enum import Enum

from pulseform.models import Provider


class PulseformError(Exception):
    """Base class for all pulseform errors."""


class DataUnavailable(PulseformError):
    """A value was requested that cannot be computed from the data on hand.

    Scoring functions return ``None`` rather than raising this; it is
    used by helpers whose callers asked for a concrete value.
    """


class ProviderErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class ProviderError(PulseformError):
    """A provider call failed."""

    def __init__(
        self,
        provider: Provider,
        kind: ProviderErrorKind,
        message: str = "",
        retry_after: float | None = None,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.retry_after = retry_after
        detail = f": {message}" if message else ""
        super().__init__(f"{provider.value} {kind.value}{detail}")

    @property
    def retryable(self) -> bool:
        return self.kind in (ProviderErrorKind.SERVER_ERROR, ProviderErrorKind.TIMEOUT)


class RateLimitExceeded(ProviderError):
    """The local throttler or the provider itself refused the request."""

    def __init__(
        self,
        provider: Provider,
        retry_after: float | None = None,
        message: str = "",
    ) -> None:
        super().__init__(provider, ProviderErrorKind.RATE_LIMITED, message, retry_after)
