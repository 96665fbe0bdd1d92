"""DiagnosticsRegistry and DiagnosticsRecorder - in-memory diagnostics.

All state lives in bounded deques so long-running callers that reuse one
recorder across many registrations keep a fixed memory footprint.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .sink import IDiagnosticsSink


@dataclass
class IterationSample:
    """One completed ICP iteration."""
    iteration: int
    error: float
    correspondences: int
    exec_ms: float
    ts: float = field(default_factory=time.monotonic)


@dataclass
class DiagnosticEvent:
    """A warning or fatal report together with its diagnostic context."""
    severity: str  # "warning" or "fatal"
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.monotonic)


class DiagnosticsRegistry:
    """Pure data-holding class for recorded diagnostics."""

    def __init__(self, maxlen: int = 1000):
        self.iterations: deque = deque(maxlen=maxlen)
        self.events: deque = deque(maxlen=maxlen)

    @property
    def warnings(self) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.severity == "warning"]

    @property
    def fatals(self) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.severity == "fatal"]

    @property
    def avg_exec_ms(self) -> float:
        """Average iteration time over the retained samples."""
        if not self.iterations:
            return 0.0
        return sum(s.exec_ms for s in self.iterations) / len(self.iterations)

    def clear(self) -> None:
        self.iterations.clear()
        self.events.clear()


class DiagnosticsRecorder:
    """Diagnostics sink that stores everything in a DiagnosticsRegistry.

    An optional downstream sink (e.g. LoggingDiagnostics) receives every call
    as well, so recording and logging can be combined.
    """

    def __init__(self, registry: Optional[DiagnosticsRegistry] = None, forward_to: Optional[IDiagnosticsSink] = None):
        self.registry = registry if registry is not None else DiagnosticsRegistry()
        self.forward_to = forward_to

    def warning(self, message: str, **context: Any) -> None:
        self.registry.events.append(DiagnosticEvent("warning", message, dict(context)))
        if self.forward_to is not None:
            self.forward_to.warning(message, **context)

    def fatal(self, message: str, **context: Any) -> None:
        self.registry.events.append(DiagnosticEvent("fatal", message, dict(context)))
        if self.forward_to is not None:
            self.forward_to.fatal(message, **context)

    def record_iteration(self, iteration: int, error: float, correspondences: int, exec_ms: float) -> None:
        self.registry.iterations.append(
            IterationSample(
                iteration=iteration,
                error=error,
                correspondences=correspondences,
                exec_ms=exec_ms,
            )
        )
        if self.forward_to is not None:
            self.forward_to.record_iteration(iteration, error, correspondences, exec_ms)

    def is_enabled(self) -> bool:
        return True
