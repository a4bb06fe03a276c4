"""Metric ingestion and summary API guarded by rate limiting, circuit breaking and caching."""

__version__ = "0.1.0"
