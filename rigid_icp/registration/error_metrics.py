"""
Error metrics: residuals and Jacobians of matched point pairs.

The engine binds the matched subsets each iteration: row i of the reference
and row i of the current set form one correspondence. The Jacobian is taken
with respect to a twist (tx, ty, tz, wx, wy, wz) applied to the current set.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np
import open3d as o3d

from rigid_icp.diagnostics.sink import IDiagnosticsSink, LoggingDiagnostics


def _split_positions_normals(points: Any) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    if isinstance(points, o3d.geometry.PointCloud):
        positions = np.asarray(points.points, dtype=np.float64)
        normals = np.asarray(points.normals, dtype=np.float64) if points.has_normals() else None
        return positions, normals

    array = np.asarray(points, dtype=np.float64)
    if array.ndim != 2 or array.shape[1] not in (3, 6):
        raise ValueError(f"Expected an (N, 3) or (N, 6) array, got shape {array.shape}")
    if array.shape[1] == 6:
        return array[:, :3], array[:, 3:6]
    return array, None


class ErrorMetric(ABC):
    """Base class for pluggable ICP error metrics"""

    # Whether set_current() needs normals on the current points
    requires_normals: bool = False

    def __init__(self, diagnostics: Optional[IDiagnosticsSink] = None):
        self.diagnostics = diagnostics or LoggingDiagnostics()
        self.reference: np.ndarray = np.zeros((0, 3))
        self.current: np.ndarray = np.zeros((0, 3))
        self.error_vector: np.ndarray = np.zeros(0)
        self.J: np.ndarray = np.zeros((0, 6))
        # Point indices of each row in the full source and target sets
        self.source_indices: Optional[np.ndarray] = None
        self.target_indices: Optional[np.ndarray] = None

    def bind_diagnostics(self, diagnostics: IDiagnosticsSink) -> None:
        self.diagnostics = diagnostics

    def set_point_indices(self, source_indices: np.ndarray, target_indices: np.ndarray) -> None:
        """
        Tell the metric which source and target points the bound rows came
        from, so diagnostics can name them. Call after ``set_current``.
        """
        source_indices = np.asarray(source_indices, dtype=np.int64)
        target_indices = np.asarray(target_indices, dtype=np.int64)
        if source_indices.shape != (self.current.shape[0],) or target_indices.shape != source_indices.shape:
            raise ValueError("Expected one source and one target index per bound row")
        self.source_indices = source_indices
        self.target_indices = target_indices

    def _point_context(self, row: int) -> Dict[str, Any]:
        if self.source_indices is None:
            return {}
        return {
            "source_index": int(self.source_indices[row]),
            "target_index": int(self.target_indices[row]),
        }

    def set_reference(self, points: Any) -> None:
        """Bind the reference positions, one row per correspondence."""
        positions, _ = _split_positions_normals(points)
        self.reference = positions

    @abstractmethod
    def set_current(self, points: Any) -> None:
        """Bind the current points, one row per correspondence; resizes buffers."""
        pass

    @abstractmethod
    def compute_error(self) -> np.ndarray:
        """Compute and return the residual vector (n,)."""
        pass

    @abstractmethod
    def compute_jacobian(self) -> np.ndarray:
        """Compute and return the Jacobian (n, 6) of the residuals."""
        pass

    def finite_mask(self) -> np.ndarray:
        """Rows whose residual and Jacobian are finite and may enter the solve."""
        return np.isfinite(self.error_vector) & np.all(np.isfinite(self.J), axis=1)


class ErrorPointToPlane(ErrorMetric):
    """
    Point-to-plane error along the current point's normal.

    r_i = w_x n_x dx + w_y n_y dy + w_z n_z dz,  d = current_i - reference_i

    The residual ignores motion tangent to the plane, which lets matched
    points slide along smooth surfaces.
    """

    requires_normals = True

    def __init__(self, diagnostics: Optional[IDiagnosticsSink] = None):
        super().__init__(diagnostics)
        self.normals: np.ndarray = np.zeros((0, 3))
        self.weights: np.ndarray = np.ones((0, 3))

    def set_current(self, points: Any) -> None:
        positions, normals = _split_positions_normals(points)
        if normals is None or normals.shape[0] != positions.shape[0]:
            raise ValueError("Point-to-plane error needs normals on the current points")
        self.current = positions
        self.normals = normals

        n = positions.shape[0]
        self.error_vector = np.zeros(n)
        self.weights = np.ones((n, 3))
        self.J = np.zeros((n, 6))
        self.source_indices = None
        self.target_indices = None

    def set_channel_weights(self, weights: np.ndarray) -> None:
        """
        Per-axis weights (n, 3) applied inside the residual.

        The weights belong to the currently bound rows: ``set_current`` resets
        them to ones because the correspondence set (and its size) changes.
        Inside ``Icp`` every iteration rebinds, so the engine always runs with
        unit channel weights; robust down-weighting goes through the
        M-estimator instead.
        """
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != self.weights.shape:
            raise ValueError(f"Expected weights of shape {self.weights.shape}, got {weights.shape}")
        self.weights = weights.copy()

    def compute_error(self) -> np.ndarray:
        if self.reference.shape[0] != self.current.shape[0]:
            raise ValueError(
                f"Reference ({self.reference.shape[0]}) and current ({self.current.shape[0]}) "
                "sets must have one row per correspondence"
            )

        diff = self.current - self.reference
        with np.errstate(invalid="ignore", over="ignore"):
            self.error_vector = np.sum(self.weights * self.normals * diff, axis=1)

        bad_rows = np.nonzero(~np.isfinite(self.error_vector))[0]
        for i in bad_rows:
            self.diagnostics.warning(
                "Error vector has non-finite values",
                row=int(i),
                residual=float(self.error_vector[i]),
                difference=diff[i].tolist(),
                reference=self.reference[i].tolist(),
                current=self.current[i].tolist(),
                normal=self.normals[i].tolist(),
                **self._point_context(i),
            )
        return self.error_vector

    def compute_jacobian(self) -> np.ndarray:
        # d/dt [n·(p + t)] = n ;  d/dω [n·(p + ω×p)] = p × n  (n scaled by the channel weights)
        with np.errstate(invalid="ignore", over="ignore"):
            wn = self.weights * self.normals
            self.J = np.hstack([wn, np.cross(self.current, wn)])
        return self.J
