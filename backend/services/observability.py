"""
Module: observability.py
Description: Logging and metrics tracking for the Finance Dashboard API.

Features:
    - Structured logging with key=value context fields
    - Timing decorator and context manager for provider calls and sync runs
    - In-memory metrics exposed on /api/metrics

Usage:
    from services.observability import logger, metrics, timed

    @timed("plaid.accounts_get")
    def fetch_accounts(access_token):
        logger.info("Fetching accounts", item_id=item_id)
        ...

Author: Finance Dashboard Team
"""

import asyncio
import time
import logging
import functools
from datetime import datetime
from typing import Dict, Any, Optional, Callable
from collections import defaultdict
from contextlib import contextmanager


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Logger that appends ``key=value`` fields to every message.

    Context fields (user_id, item_id) set with ``set_context`` are repeated on
    every line until ``clear_context`` is called.
    """

    def __init__(self, name: str = "finance-dashboard"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            formatter = logging.Formatter(
                '%(asctime)s | %(levelname)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        self._context: Dict[str, Any] = {}

    def set_context(self, **kwargs) -> None:
        """Set context fields that will be included in all logs."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        """Clear all context fields."""
        self._context = {}

    def _format_message(self, message: str, **kwargs) -> str:
        fields = {**self._context, **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    In-memory counters and timings.

    Note: In production, replace with Prometheus/StatsD/DataDog client.
    """

    MAX_TIMINGS = 1000

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: Dict[str, list] = defaultdict(list)
        self._start_time = datetime.utcnow()

    def increment(self, name: str, value: int = 1, tags: Dict[str, str] = None) -> None:
        key = self._make_key(name, tags)
        self.counters[key] += value

    def timing(self, name: str, duration_ms: float, tags: Dict[str, str] = None) -> None:
        key = self._make_key(name, tags)
        self.timings[key].append(duration_ms)
        if len(self.timings[key]) > self.MAX_TIMINGS:
            self.timings[key] = self.timings[key][-self.MAX_TIMINGS:]

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        if tags:
            tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
            return f"{name}:{tag_str}"
        return name

    def reset(self) -> None:
        self.counters.clear()
        self.timings.clear()

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        summary = {
            "uptime_seconds": (datetime.utcnow() - self._start_time).total_seconds(),
            "counters": dict(self.counters),
            "timings": {},
        }

        for name, values in self.timings.items():
            if values:
                ordered = sorted(values)
                summary["timings"][name] = {
                    "count": len(values),
                    "avg_ms": sum(values) / len(values),
                    "min_ms": ordered[0],
                    "max_ms": ordered[-1],
                    "p50_ms": ordered[len(ordered) // 2],
                    "p95_ms": ordered[int(len(ordered) * 0.95)] if len(ordered) >= 20 else None,
                }

        return summary


# =============================================================================
# Timing Decorators
# =============================================================================

def timed(name: str = None):
    """
    Decorator to time function execution and record metrics.

    Args:
        name: Metric name (defaults to function name).

    Example:
        @timed("plaid.transactions_sync")
        def sync_page(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        metric_name = name or func.__name__

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with timed_block(metric_name):
                return func(*args, **kwargs)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with timed_block(metric_name):
                return await func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_block(name: str):
    """
    Context manager for timing code blocks.

    Example:
        with timed_block("bank_sync"):
            sync.run(...)
    """
    start = time.perf_counter()
    try:
        yield
        metrics.increment(f"{name}.success")
    except Exception:
        metrics.increment(f"{name}.error")
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        metrics.timing(name, duration_ms)
        logger.debug(f"{name} completed", duration_ms=f"{duration_ms:.2f}")


# =============================================================================
# Global Instances
# =============================================================================

logger = StructuredLogger()

metrics = MetricsCollector()


# =============================================================================
# Convenience Functions
# =============================================================================

def log_sync_start(user_id: str, item_id: str) -> None:
    """Log the start of a bank sync."""
    logger.set_context(user_id=user_id, item_id=item_id)
    logger.info("Bank sync started")
    metrics.increment("bank_sync.started")


def log_sync_complete(result: Dict[str, Any]) -> None:
    """Log completion of a bank sync."""
    logger.info("Bank sync completed", **result)
    metrics.increment("bank_sync.completed")
    metrics.increment("bank_sync.transactions_added", result.get("added", 0))
    logger.clear_context()


def log_provider_error(provider: str, operation: str, error: Exception) -> None:
    """Log a failed call to Plaid or Lemon Squeezy, including the response body."""
    body = getattr(error, "body", None)
    if body is None:
        response = getattr(error, "response", None)
        body = getattr(response, "text", None)
    logger.error(
        f"{provider} {operation} failed",
        error=body or str(error),
    )
    metrics.increment("provider.errors", tags={"provider": provider, "operation": operation})
