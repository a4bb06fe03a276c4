"""Pydantic settings loaded from environment variables.

A ``.env`` file in the working directory is loaded first; real environment
variables take precedence over it.
"""

from __future__ import annotations

import os
from typing import Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Process configuration for the gateway."""

    host: str = Field(default="0.0.0.0", description="Interface the HTTP server binds to")
    port: int = Field(default=8000, ge=1, le=65535, description="HTTP listening port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")

    # Shared store
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the shared store; unset uses an in-memory store",
    )
    redis_socket_timeout_seconds: float = Field(default=1.0, gt=0.0)

    # Rate limiting
    rate_limit_max_requests: int = Field(
        default=100, ge=1, description="Requests admitted per client per window"
    )
    rate_limit_window_seconds: int = Field(default=60, ge=1)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_reset_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # Summary cache
    summary_cache_ttl_seconds: int = Field(default=60, ge=1)
    summary_single_flight: bool = Field(default=True)

    # External dependency
    external_timeout_seconds: float = Field(default=2.0, gt=0.0)
    external_fault_rate: float = Field(default=0.3, ge=0.0, le=1.0)
    external_fault_seed: int | None = Field(default=None)

    # Prometheus exporter
    metrics_enabled: bool = Field(default=False)
    metrics_port: int = Field(default=9090, ge=1, le=65535)

    # Error tracking
    sentry_dsn: str = Field(default="", description="Sentry DSN; empty disables error tracking")
    sentry_environment: str = Field(default="development")
    sentry_traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    @staticmethod
    def from_env() -> "Settings":
        """Load settings from environment variables (and .env)."""
        load_dotenv(find_dotenv(usecwd=True))
        env = os.environ
        data: dict[str, object] = {
            "host": env.get("HOST", "0.0.0.0"),
            "port": int(env.get("PORT", "8000")),
            "log_level": env.get("LOG_LEVEL", "INFO").upper(),
            "redis_url": env.get("REDIS_URL") or None,
            "redis_socket_timeout_seconds": float(env.get("REDIS_SOCKET_TIMEOUT_SECONDS", "1.0")),
            "rate_limit_max_requests": int(env.get("RATE_LIMIT_MAX_REQUESTS", "100")),
            "rate_limit_window_seconds": int(env.get("RATE_LIMIT_WINDOW_SECONDS", "60")),
            "circuit_failure_threshold": int(env.get("CIRCUIT_FAILURE_THRESHOLD", "3")),
            "circuit_reset_timeout_seconds": float(
                env.get("CIRCUIT_RESET_TIMEOUT_SECONDS", "30")
            ),
            "summary_cache_ttl_seconds": int(env.get("SUMMARY_CACHE_TTL_SECONDS", "60")),
            "summary_single_flight": _env_bool("SUMMARY_SINGLE_FLIGHT", True),
            "external_timeout_seconds": float(env.get("EXTERNAL_TIMEOUT_SECONDS", "2.0")),
            "external_fault_rate": float(env.get("EXTERNAL_FAULT_RATE", "0.3")),
            "metrics_enabled": _env_bool("METRICS_ENABLED", False),
            "metrics_port": int(env.get("METRICS_PORT", "9090")),
            "sentry_dsn": env.get("SENTRY_DSN", ""),
            "sentry_environment": env.get("SENTRY_ENVIRONMENT", "development"),
            "sentry_traces_sample_rate": float(env.get("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        }
        if seed := env.get("EXTERNAL_FAULT_SEED"):
            data["external_fault_seed"] = int(seed)
        return Settings(**data)
