"""pulseform — daily recovery, sleep and training-load scoring engine."""

__version__ = "0.1.0"
