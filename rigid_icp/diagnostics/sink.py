"""IDiagnosticsSink Protocol and the logging-backed implementation.

The registration engine never logs through module-level state: it reports to
a sink passed in at construction time. Three implementations exist:
LoggingDiagnostics (forwards to a logger), NullDiagnostics (no-op) and
DiagnosticsRecorder (keeps samples in memory for postmortem inspection).
"""

import logging
from typing import Any, Optional, Protocol

from rigid_icp.core.logging_config import get_logger


class IDiagnosticsSink(Protocol):
    """Protocol defining the interface for registration diagnostics."""

    def warning(self, message: str, **context: Any) -> None:
        """Report a recoverable problem (non-finite residual, rank deficiency).

        Args:
            message: Human-readable description
            **context: Indices, coordinates or values needed to diagnose it
        """
        ...

    def fatal(self, message: str, **context: Any) -> None:
        """Report a problem that ends the current run (overlap loss, solve failure)."""
        ...

    def record_iteration(self, iteration: int, error: float, correspondences: int, exec_ms: float) -> None:
        """Record one completed ICP iteration.

        Args:
            iteration: 1-based iteration number (0 is the initial pose)
            error: Scalar registration error after the iteration
            correspondences: Number of correspondences used
            exec_ms: Wall time of the iteration in milliseconds
        """
        ...

    def is_enabled(self) -> bool:
        """Check if diagnostics are collected."""
        ...


def format_context(context: dict) -> str:
    if not context:
        return ""
    return " | " + ", ".join(f"{key}={value}" for key, value in context.items())


class LoggingDiagnostics:
    """Diagnostics sink that writes to a standard logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("rigid_icp.registration")

    def warning(self, message: str, **context: Any) -> None:
        self.logger.warning(f"{message}{format_context(context)}")

    def fatal(self, message: str, **context: Any) -> None:
        self.logger.error(f"{message}{format_context(context)}")

    def record_iteration(self, iteration: int, error: float, correspondences: int, exec_ms: float) -> None:
        self.logger.debug(
            f"ICP iteration {iteration}: error={error:.6g} "
            f"correspondences={correspondences} took {exec_ms:.2f}ms"
        )

    def is_enabled(self) -> bool:
        return True
