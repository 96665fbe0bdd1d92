"""NullDiagnostics - No-op implementation for silent runs.

Null object counterpart of LoggingDiagnostics, for callers that want the
engine to run without any diagnostic output.
"""

from typing import Any


class NullDiagnostics:
    """No-op diagnostics sink. All methods return immediately."""

    def warning(self, message: str, **context: Any) -> None:
        """No-op: recoverable problem."""
        pass

    def fatal(self, message: str, **context: Any) -> None:
        """No-op: run-ending problem."""
        pass

    def record_iteration(self, iteration: int, error: float, correspondences: int, exec_ms: float) -> None:
        """No-op: iteration sample."""
        pass

    def is_enabled(self) -> bool:
        """Always returns False for the null sink."""
        return False
