from __future__ import annotations

import os
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# Calls slower than this are logged at warning
SLOW_THRESHOLD_MS = _env_int("TIMING_SLOW_THRESHOLD_MS", 300)
LOG_ALL = os.getenv("TIMING_LOG_ALL", "false").lower() == "true"


@contextmanager
def timed(
    name: str,
    *,
    logger,
    component: str,
    extra: Optional[Dict[str, Any]] = None,
):
    """Measures the wrapped block and logs its duration.

    The duration is logged even when the block raises; the exception is
    re-raised untouched.
    """
    start = time.perf_counter()
    failed = False
    try:
        yield
    except BaseException:
        failed = True
        raise
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        payload: Dict[str, Any] = {
            "component": component,
            "timing": name,
            "duration_ms": duration_ms,
        }
        if failed:
            payload["failed"] = True
        if extra:
            payload.update(extra)

        if duration_ms >= SLOW_THRESHOLD_MS:
            logger.warning(payload)
        elif LOG_ALL or failed:
            logger.info(payload)
