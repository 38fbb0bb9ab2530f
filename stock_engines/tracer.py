"""
stock_engines.tracer -- ``@traced_engine`` and the STOCK_ENGINE_TRACE record.

Every engine call logs one STOCK_ENGINE_TRACE line carrying the engine name
and version, a fingerprint of the scalar inputs that shape the answer
(location, cutoff, basis, window), the duration, and an optional summary of
the result (balance count, warning count, ...).  Two calls with the same
fingerprint over the same ledger prefix must produce the same result, which
is what replay investigations grep for.

Event streams are never part of the fingerprint: hashing them would consume
the iterator the engine is about to replay.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Callable
from typing import Any

from stock_kernel.utils.hashing import fingerprint

_logger = logging.getLogger("stock_kernel.engines.tracer")

Summarizer = Callable[[Any], dict[str, Any]]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Summarizer | None = None,
) -> Callable:
    """
    Wrap an engine method or function with trace logging.

    Args:
        engine_name: Engine identifier (e.g. "projection").
        engine_version: Bumped whenever the engine's arithmetic changes.
        fingerprint_fields: Parameter names hashed into input_fingerprint.
            Positional and keyword arguments are both resolved; defaults
            are applied, so omitting an argument and passing its default
            fingerprint the same.
        summarize: Maps the result to extra trace fields.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        unknown = set(fingerprint_fields) - set(signature.parameters)
        if unknown:
            raise TypeError(
                f"{func.__qualname__} has no parameters {sorted(unknown)} to fingerprint"
            )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            fp = fingerprint(
                {name: bound.arguments[name] for name in fingerprint_fields}
            )

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            extra: dict[str, Any] = {
                "trace_type": "STOCK_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fp,
                "duration_ms": elapsed_ms,
                "function": func.__qualname__,
            }
            if summarize is not None:
                extra.update(summarize(result))
            _logger.info("STOCK_ENGINE_TRACE", extra=extra)
            return result

        return wrapper

    return decorator
