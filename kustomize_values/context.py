"""Utilities for tracing the unit of work being generated."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


def unit_label(service: str, environment: str | None = None) -> str:
    """Return the label used for a service or a service environment."""
    if environment is None:
        return service
    return f"{service}/{environment}"


@contextmanager
def trace_context(name: str) -> Generator[str, None, None]:
    """Log timing for a named step, nested under any enclosing steps."""
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield label
    finally:
        t2 = perf_counter()
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.3fs)", label, (t2 - t1))
