"""Sentry integration for error tracking.

Provides:
- Capture of unhandled request errors with request context
- Breadcrumbs for circuit breaker transitions
- Scrubbing of credentials before events leave the process
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset({
    "authorization", "cookie", "set-cookie",
    "api_key", "apikey", "api-key",
    "password", "secret", "token",
})


@dataclass
class SentryConfig:
    """Sentry configuration."""
    dsn: str
    environment: str = "development"
    release: str = ""
    traces_sample_rate: float = 0.0
    enabled: bool = True
    ignore_errors: list[str] = field(default_factory=lambda: [
        "ConnectionResetError",
        "CancelledError",
    ])


class SentryService:
    """Thin wrapper over the Sentry SDK.

    Every method is a no-op until ``initialize`` succeeds, so callers never
    need to check whether a DSN was configured.
    """

    def __init__(self, config: SentryConfig):
        self.config = config
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> bool:
        """Initialize the Sentry SDK.

        Returns:
            True if initialization succeeded
        """
        if not self.config.enabled or not self.config.dsn:
            return False

        try:
            sentry_sdk.init(
                dsn=self.config.dsn,
                environment=self.config.environment,
                release=self.config.release or None,
                traces_sample_rate=self.config.traces_sample_rate,
                integrations=[
                    # Errors are reported explicitly; logs are not events
                    LoggingIntegration(level=None, event_level=None),
                ],
                before_send=self._before_send,
            )
        except Exception as e:
            logger.error("Sentry initialization failed, continuing without it: %s", e)
            return False

        self._initialized = True
        logger.info("Sentry initialized (env=%s)", self.config.environment)
        return True

    def _before_send(self, event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
        """Drop ignored errors and scrub credentials."""
        if "exc_info" in hint:
            exc_type = hint["exc_info"][0]
            if exc_type.__name__ in self.config.ignore_errors:
                return None
        return _scrub(event)

    def capture_error(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Capture an exception.

        Returns:
            Event ID if captured, None otherwise
        """
        if not self._initialized:
            return None

        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("request", context)
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            return sentry_sdk.capture_exception(error)

    def add_breadcrumb(
        self,
        category: str,
        message: str,
        data: dict[str, Any] | None = None,
        level: str = "info",
    ) -> None:
        if not self._initialized:
            return
        sentry_sdk.add_breadcrumb(category=category, message=message, data=data or {}, level=level)

    def flush(self, timeout: float = 2.0) -> None:
        if self._initialized:
            sentry_sdk.flush(timeout=timeout)


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SENSITIVE_KEYS else _scrub(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


_service: SentryService | None = None


def init_sentry(config: SentryConfig) -> SentryService:
    """Initialize the global Sentry service."""
    global _service
    _service = SentryService(config)
    _service.initialize()
    return _service


def get_sentry() -> SentryService | None:
    """Get the global Sentry service, None if never initialized."""
    return _service
