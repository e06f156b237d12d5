"""
Structured logging and in-process metrics for FeedbackHub.

JSON logs in production, readable lines in development. Every record
carries the request id and tenant id of the request that produced it.
"""

import json
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

from feedbackhub.config import settings


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "environment": settings.environment,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id
        user_id = user_id_var.get()
        if user_id:
            log_data["user_id"] = user_id

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Logger that takes keyword context instead of formatted strings.

    Usage:
        logger = StructuredLogger("feedbackhub.visibility")
        logger.info("Visibility updated", user_id=user_id, visible=5, hidden=15)
        logger.error("Recompute failed", exc_info=True, user_id=user_id)
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs):
        if not self._logger.isEnabledFor(level):
            return
        extra = {"extra_data": kwargs} if kwargs else None
        self._logger.log(level, message, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
):
    """
    Configure the root logger.

    Args:
        level: Log level name
        json_format: JSON records (prod) or a human-readable line (dev)
        log_file: Optional file that always receives JSON records
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    if json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
        ))
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for noisy in ("httpx", "httpcore", "openai", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)


# ============== METRICS ==============


class MetricsCollector:
    """
    Process-local counters, gauges and timings.

    Usage:
        metrics.increment("classification.fallback")
        metrics.timing("visibility.recompute", 0.042)
    """

    def __init__(self, max_samples: int = 1000):
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._timings: Dict[str, list] = {}
        self._max_samples = max_samples
        self._start_time = time.time()

    def increment(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def gauge(self, name: str, value: float):
        self._gauges[name] = value

    def timing(self, name: str, value: float):
        samples = self._timings.setdefault(name, [])
        samples.append(value)
        if len(samples) > self._max_samples:
            del samples[: len(samples) - self._max_samples]

    def get_stats(self) -> Dict[str, Any]:
        timing_stats = {}
        for name, values in self._timings.items():
            if not values:
                continue
            ordered = sorted(values)
            timing_stats[name] = {
                "count": len(values),
                "min": ordered[0],
                "max": ordered[-1],
                "avg": sum(values) / len(values),
                "p50": ordered[len(ordered) // 2],
                "p95": ordered[int(len(ordered) * 0.95)] if len(ordered) >= 20 else None,
            }

        return {
            "uptime_seconds": time.time() - self._start_time,
            "counters": self._counters.copy(),
            "gauges": self._gauges.copy(),
            "timings": timing_stats,
        }

    def reset(self):
        self._counters.clear()
        self._gauges.clear()
        self._timings.clear()


metrics = MetricsCollector()


# ============== DECORATORS ==============


def log_execution_time(logger_name: str = "feedbackhub"):
    """Log duration of the wrapped call and record it as a timing metric."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(logger_name)
            start = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__name__} failed",
                    function=func.__name__,
                    duration_ms=round((time.time() - start) * 1000, 2),
                    error=str(e),
                )
                raise
            duration = time.time() - start
            logger.debug(
                f"{func.__name__} completed",
                function=func.__name__,
                duration_ms=round(duration * 1000, 2),
            )
            metrics.timing(f"function.{func.__name__}", duration)
            return result

        return wrapper

    return decorator


def track_classification(func):
    """Count classifications by method and record their latency."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        metrics.increment("classification.total")
        start = time.time()
        result = func(*args, **kwargs)
        metrics.timing("classification.latency", time.time() - start)
        method = getattr(result, "analysis_method", None)
        if method is not None:
            metrics.increment(f"classification.{method.value.lower()}")
        return result

    return wrapper


def init_logging():
    """Configure logging from settings."""
    setup_logging(
        level="INFO" if settings.is_production else "DEBUG",
        json_format=settings.is_production,
        log_file="logs/feedbackhub.log" if settings.is_production else None,
    )
