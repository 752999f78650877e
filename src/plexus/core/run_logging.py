"""Run-scoped logging helpers.

Log Format:
    [<identifier>] action: key=value, key=value (duration)

Examples:
    [20260118_143022_x7k] pattern_start: pattern=sequential, model=gpt-4o-mini
    [20260118_143022_x7k] node_complete: node=summarize, kind=generate (1.2s)
    [20260118_143022_x7k] retry_backoff: attempt=1, delay=1.0
"""

from __future__ import annotations

import logging
import random
import string
import time
from typing import Any


def generate_run_id() -> str:
    """Generate a run id like ``20260118_143022_x7k``."""
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=3))
    return f"{timestamp}_{suffix}"


def truncate(value: Any, max_length: int = 100) -> str:
    """Truncate a value for logging, noting the original length."""
    s = str(value)
    if len(s) <= max_length:
        return s
    return f"{s[:max_length]}... ({len(s)} chars)"


def _format(identifier: str, action: str, kwargs: dict[str, Any]) -> str:
    kv_pairs = ", ".join(f"{k}={truncate(v)}" for k, v in kwargs.items())
    return f"[{identifier}] {action}: {kv_pairs}" if kv_pairs else f"[{identifier}] {action}"


def log_start(
    logger: logging.Logger,
    identifier: str,
    action: str,
    **kwargs: Any,
) -> None:
    """Log a start event at DEBUG."""
    logger.debug(_format(identifier, action, kwargs))


def log_complete(
    logger: logging.Logger,
    identifier: str,
    action: str,
    duration_s: float,
    **kwargs: Any,
) -> None:
    """Log a completion event with its duration at DEBUG."""
    kv_pairs = ", ".join(f"{k}={truncate(v)}" for k, v in kwargs.items())
    if kv_pairs:
        msg = f"[{identifier}] {action}: {kv_pairs} ({duration_s:.1f}s)"
    else:
        msg = f"[{identifier}] {action}: ({duration_s:.1f}s)"
    logger.debug(msg)


def log_error(
    logger: logging.Logger,
    identifier: str,
    action: str,
    error: str | Exception,
    **kwargs: Any,
) -> None:
    """Log an error event. The error text is truncated to 200 chars."""
    kwargs["error"] = truncate(str(error), max_length=200)
    logger.error(_format(identifier, action, kwargs))


def log_warning(
    logger: logging.Logger,
    identifier: str,
    action: str,
    **kwargs: Any,
) -> None:
    logger.warning(_format(identifier, action, kwargs))


def log_info(
    logger: logging.Logger,
    identifier: str,
    action: str,
    **kwargs: Any,
) -> None:
    logger.info(_format(identifier, action, kwargs))
