"""Structured logging and in-process metrics for the draft engine."""

import logging
import sys
import threading
from collections import defaultdict, deque
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory

from .config import get_settings


class MetricsCollector:
    """Thread-safe in-memory metrics collector."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._timers: Dict[str, deque] = defaultdict(lambda: deque(maxlen=1000))

    def increment(self, metric_name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric."""
        with self._lock:
            key = self._format_metric_key(metric_name, tags)
            self._counters[key] += value

    def timer(self, metric_name: str, duration: float, tags: Optional[Dict[str, str]] = None):
        """Record a timing metric."""
        with self._lock:
            key = self._format_metric_key(metric_name, tags)
            self._timers[key].append(duration)

    def counter(self, metric_name: str, tags: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._counters.get(self._format_metric_key(metric_name, tags), 0)

    def get_metrics(self) -> Dict[str, Any]:
        """Get all collected metrics."""
        with self._lock:
            return {
                'counters': dict(self._counters),
                'timers': {k: list(v) for k, v in self._timers.items()}
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timers.clear()

    def _format_metric_key(self, metric_name: str, tags: Optional[Dict[str, str]]) -> str:
        """Format metric key with tags."""
        if not tags:
            return metric_name
        tag_string = ','.join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{metric_name},{tag_string}"


# Global metrics collector
metrics = MetricsCollector()

_configured = False


def configure_logging(force: bool = False) -> None:
    """Configure structured logging from settings."""
    global _configured
    if _configured and not force:
        return

    settings = get_settings()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    elif settings.LOG_FORMAT == "structured":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:  # text format
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL),
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def session_context(session_id: int):
    """Bind the draft session id to every log line inside the ``with`` block.

    The previous binding, if any, is restored on exit, so nested blocks for
    the same session are harmless.
    """
    return structlog.contextvars.bound_contextvars(session_id=session_id)
