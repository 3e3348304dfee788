"""Data sources and the throttled, cached gateway in front of them."""

from pulseform.providers.base import DataSource
from pulseform.providers.gateway import ProviderGateway
from pulseform.providers.memory import InMemorySource, load_jsonl

__all__ = ["DataSource", "InMemorySource", "ProviderGateway", "load_jsonl"]
