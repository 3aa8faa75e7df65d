"""
Structured logging helpers for the parse pipeline

Stage timing, metric lines and a job-scoped logger. Extra fields are attached
to each record so a JSON formatter can pick them up; the message text stays
readable on a plain console.
"""

import time
import logging
from typing import Dict, Any, Optional, Callable, TypeVar
from contextlib import contextmanager
from functools import wraps

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _error_fields(error: Exception) -> Dict[str, Any]:
    fields = {'error_type': type(error).__name__, 'error_message': str(error)}
    code = getattr(error, 'error_code', None)
    if code:
        fields['error_code'] = code
    return fields


@contextmanager
def log_operation(operation_name: str, context: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log start, completion or failure of a pipeline stage with its duration.

    Usage:
        with log_operation("parse_file", {"job_id": job_id, "file": "plans.pdf"}):
            ...

    Exceptions are logged and re-raised unchanged.
    """
    logger = logger or logging.getLogger(__name__)
    started = time.monotonic()
    fields = {'operation': operation_name, 'context': context}

    logger.info(f"Starting {operation_name}", extra={**fields, 'status': 'started'})
    try:
        yield
    except Exception as e:
        duration = time.monotonic() - started
        logger.error(f"Failed {operation_name} after {duration:.2f}s: {e}", extra={
            **fields, **_error_fields(e), 'status': 'failed', 'duration_seconds': duration
        })
        raise

    duration = time.monotonic() - started
    logger.info(f"Completed {operation_name} in {duration:.2f}s", extra={
        **fields, 'status': 'completed', 'duration_seconds': duration
    })


def log_performance_metric(metric_name: str, value: float, unit: str = "ms",
                           tags: Optional[Dict[str, str]] = None,
                           logger: Optional[logging.Logger] = None):
    """Emit one `[METRIC]` line; tags become record extras"""
    logger = logger or logging.getLogger(__name__)
    tags = tags or {}
    tag_text = " ".join(f"{k}={v}" for k, v in sorted(tags.items()))
    logger.info(f"[METRIC] {metric_name}: {value:.0f} {unit} {tag_text}".rstrip(), extra={
        'metric_name': metric_name,
        'metric_value': value,
        'metric_unit': unit,
        'tags': tags
    })


def timed_operation(operation_name: Optional[str] = None):
    """
    Decorator timing a backend call.

    Usage:
        @timed_operation("inference.classify")
        def classify(self, pages):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = operation_name or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"[TIMING] {name} failed after {time.monotonic() - started:.2f}s: "
                               f"{type(e).__name__}: {e}")
                raise
            logger.info(f"[TIMING] {name} completed in {time.monotonic() - started:.2f}s")
            return result

        return wrapper
    return decorator


class JobLoggerAdapter(logging.LoggerAdapter):
    """Prefixes messages with a short job id and tags records with the full one"""

    def process(self, msg, kwargs):
        job_id = self.extra['job_id']
        kwargs.setdefault('extra', {})['job_id'] = job_id
        return f"[job {job_id[:8]}] {msg}", kwargs


def create_job_logger(job_id: str, base_logger: Optional[logging.Logger] = None) -> JobLoggerAdapter:
    return JobLoggerAdapter(base_logger or logger, {'job_id': job_id})
