"""Diagnostics sinks for the registration engine.

The engine reports non-finite residuals, solve failures and per-iteration
samples to an injected sink instead of process-wide logging calls.
"""

from .sink import IDiagnosticsSink, LoggingDiagnostics
from .null_sink import NullDiagnostics
from .recorder import DiagnosticEvent, DiagnosticsRecorder, DiagnosticsRegistry, IterationSample
from .timer import IterationTiming, iteration_timer

__all__ = [
    "IDiagnosticsSink",
    "LoggingDiagnostics",
    "NullDiagnostics",
    "DiagnosticEvent",
    "DiagnosticsRecorder",
    "DiagnosticsRegistry",
    "IterationSample",
    "IterationTiming",
    "iteration_timer",
]
