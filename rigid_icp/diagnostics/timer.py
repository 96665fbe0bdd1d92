"""Iteration timer context manager.

Measures the wall time of one ICP iteration and reports it, together with the
iteration's error and correspondence count, to a diagnostics sink.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from .sink import IDiagnosticsSink


@dataclass
class IterationTiming:
    """Filled in by the timed block; reported when the block exits."""
    iteration: int
    error: Optional[float] = None
    correspondences: int = 0
    exec_ms: float = 0.0


@contextmanager
def iteration_timer(sink: IDiagnosticsSink, iteration: int) -> Iterator[IterationTiming]:
    """Context manager timing one iteration.

    Usage example:
    ```python
    with iteration_timer(sink, k) as timing:
        ...
        timing.error = error
        timing.correspondences = len(correspondences)
    ```

    Nothing is recorded when the block leaves ``timing.error`` unset, which is
    the case for iterations aborted before producing a new error value.
    """
    timing = IterationTiming(iteration=iteration)
    t0 = time.monotonic_ns()

    yield timing

    timing.exec_ms = (time.monotonic_ns() - t0) / 1_000_000.0
    if timing.error is not None and sink.is_enabled():
        sink.record_iteration(iteration, timing.error, timing.correspondences, timing.exec_ms)
