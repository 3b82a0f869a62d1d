"""
ordermgmt_engines.tracer -- ENGINE_TRACE records for pure engine calls.

``@traced_engine(name, version)`` logs one DEBUG record per call of a
matching, COGS or KPI entrypoint: engine name and version, the wrapped
function, the call duration and, when ``fingerprint_fields`` are named, a
short hash of those keyword arguments.  Two calls with equal inputs share a
fingerprint, so a rematch can be compared with the chunk that first
matched the row.

The tracer only logs.  It never alters arguments or results, and an engine
that raises is not traced.
"""

from __future__ import annotations

import functools
import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

from ordermgmt_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Hash of the named keyword arguments.  An absent field hashes like None."""
    selected = {name: kwargs.get(name) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.debug(
                "ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": (
                        compute_input_fingerprint(fingerprint_fields, kwargs)
                        if fingerprint_fields else None
                    ),
                    "duration_ms": round(elapsed_ms, 3),
                },
            )
            return result

        return wrapper

    return decorator
