"""
Timing helpers for observability.

- Durations use monotonic time
- Event timestamps (ts_ms) use wall-clock time
- One measurement = one METRIC_TIMER log event, no aggregation
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the enclosed block and emit exactly one metric event.

    The yielded dict is merged into the event's details, so callers can
    record how the block ended:

        with timed("upstream_open_latency", session_id=sid) as d:
            ws = await connect(...)
            d["outcome"] = "open"

    The metric is emitted even if the block raises; in that case
    details["error"] carries the exception type name.
    """
    extra: dict[str, Any] = dict(details or {})
    start_ns = time.monotonic_ns()
    try:
        yield extra
    except BaseException as exc:
        extra.setdefault("error", type(exc).__name__)
        raise
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "session_id": session_id,
            "details": extra,
        })
