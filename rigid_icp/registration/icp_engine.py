"""
Iterative Closest Point registration engine.

Each iteration matches every source point to its nearest target point,
linearises the error metric around the current pose, down-weights outliers
with an M-estimator and solves the weighted normal equations

    (JᵗWJ) Δξ = -JᵗWr

for an incremental twist Δξ. The scaled increment is mapped through the
exponential map, left-composed onto the accumulated transform and applied to
the source cloud in place.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np
import open3d as o3d

from rigid_icp.core.config import settings
from rigid_icp.core.pointcloud import (
    apply_transform_inplace,
    ensure_normals,
    has_normals,
    normals_of,
    point_count,
    positions_of,
    to_point_cloud,
)
from rigid_icp.core.transformations import invert_transform, orthonormalize, shift_twist, twist_to_transform
from rigid_icp.diagnostics.sink import IDiagnosticsSink, LoggingDiagnostics
from rigid_icp.diagnostics.timer import iteration_timer

from .error_metrics import ErrorMetric, ErrorPointToPlane
from .exceptions import IcpConfigurationError
from .mestimators import MEstimator, UniformWeighting
from .parameters import IcpParameters
from .results import IcpResults, TerminationReason
from .search import Correspondences, NearestNeighborIndex


class IcpState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    FAILED = "failed"


def solve_increment(
    J: np.ndarray,
    r: np.ndarray,
    w: np.ndarray,
    diagnostics: Optional[IDiagnosticsSink] = None,
) -> np.ndarray:
    """
    Solve the weighted normal equations (JᵗWJ) Δξ = -JᵗWr.

    Rank-deficient systems (e.g. a rotation the data cannot observe) are
    solved in the least-squares sense and the minimum-norm increment is
    returned, with a warning.

    Args:
        J: (n, 6) Jacobian
        r: (n,) residuals
        w: (n,) non-negative weights

    Returns:
        (6,) increment Δξ

    Raises:
        np.linalg.LinAlgError: If the system is all zero, non-finite, or the
            solver does not converge
    """
    JtW = J.T * w
    A = JtW @ J
    b = -JtW @ r

    if not (np.all(np.isfinite(A)) and np.all(np.isfinite(b))):
        raise np.linalg.LinAlgError("Normal equations contain non-finite values")
    if not np.any(A):
        raise np.linalg.LinAlgError("Normal equations are all zero")

    delta, _, rank, singular_values = np.linalg.lstsq(A, b, rcond=None)
    if rank < A.shape[0] and diagnostics is not None:
        diagnostics.warning(
            "Normal equations are rank deficient, using the minimum-norm increment",
            rank=int(rank),
            singular_values=[float(s) for s in singular_values],
        )
    if not np.all(np.isfinite(delta)):
        raise np.linalg.LinAlgError("Solved increment is not finite")
    return delta


@dataclass
class _Linearization:
    """Everything known about the source at one pose."""
    correspondences: Correspondences
    residuals: np.ndarray   # finite rows only
    jacobian: np.ndarray    # finite rows only
    weights: np.ndarray     # finite rows only
    center: np.ndarray      # centroid of the matched current points
    error: float


class Icp:
    """
    Iterative Closest Point registration of a source cloud onto a target cloud.

    The error metric and the M-estimator are pluggable strategies. Diagnostics
    (non-finite residuals, solve failures, per-iteration samples) go to the
    injected sink.

    Usage example:
    ```python
    icp = Icp(ErrorPointToPlane(), HuberWeighting())
    icp.set_parameters(IcpParameters(max_iter=30))
    icp.set_input_target(target)
    icp.set_input_source(source)
    results = icp.run()
    ```
    """

    def __init__(
        self,
        error_metric: Optional[ErrorMetric] = None,
        mestimator: Optional[MEstimator] = None,
        parameters: Optional[IcpParameters] = None,
        diagnostics: Optional[IDiagnosticsSink] = None,
    ):
        self.diagnostics = diagnostics or LoggingDiagnostics()
        self.err = error_metric or ErrorPointToPlane()
        self.err.bind_diagnostics(self.diagnostics)
        self.mestimator = mestimator or UniformWeighting()
        self.param = parameters or IcpParameters()

        self.target: Optional[o3d.geometry.PointCloud] = None
        self.index: Optional[NearestNeighborIndex] = None
        self.source: Optional[o3d.geometry.PointCloud] = None

        self.r = IcpResults()
        self._state = IcpState.UNINITIALIZED

    @property
    def state(self) -> IcpState:
        return self._state

    def set_parameters(self, param: IcpParameters) -> None:
        self.param = param

    def get_parameters(self) -> IcpParameters:
        return self.param

    def set_input_target(self, target: Any) -> None:
        """
        Provide the reference cloud the source is aligned to.

        Rebuilds the nearest neighbor index. ``get_results()`` starts over
        from a fresh record; records returned by earlier runs stay untouched.

        Raises:
            IcpConfigurationError: If the target is empty
        """
        cloud = to_point_cloud(target)
        self.index = NearestNeighborIndex(cloud)
        self.target = cloud
        self.r = IcpResults()
        self._refresh_state()

    def set_input_source(self, source: Any) -> None:
        """
        Provide the cloud to register. An Open3D cloud is transformed in place
        by ``run()``; arrays are converted to a new cloud first.
        """
        self.source = to_point_cloud(source)
        self._refresh_state()

    def get_results(self) -> IcpResults:
        """Results of the last run (the cleared zero state before any run)."""
        return self.r

    def register(self, source: Any, target: Any) -> IcpResults:
        """Convenience: set both inputs and run."""
        self.set_input_target(target)
        self.set_input_source(source)
        return self.run()

    def _refresh_state(self) -> None:
        if self.target is not None and self.source is not None:
            self._state = IcpState.INITIALIZED
        else:
            self._state = IcpState.UNINITIALIZED

    def _check_preconditions(self) -> None:
        if self.target is None or self.index is None:
            raise IcpConfigurationError("No target set: call set_input_target() before run()")
        if self.source is None:
            raise IcpConfigurationError("No source set: call set_input_source() before run()")
        if point_count(self.source) == 0:
            raise IcpConfigurationError("Source point set is empty")

        if self.err.requires_normals and not has_normals(self.source):
            ensure_normals(self.source, settings.ICP_NORMAL_RADIUS, settings.ICP_NORMAL_MAX_NN)
            if not has_normals(self.source):
                raise IcpConfigurationError("Error metric needs source normals and none could be estimated")

    def _linearize(self) -> Optional[_Linearization]:
        """
        Match the source at its current pose and linearise the error there.

        Returns None when no correspondence survives the distance threshold.
        """
        source_points = positions_of(self.source)
        correspondences = self.index.query(
            source_points,
            max_distance=self.param.max_correspondance_distance,
            workers=self.param.workers,
        )
        if len(correspondences) == 0:
            return None

        current = source_points[correspondences.source_indices]
        if self.err.requires_normals:
            current = np.hstack([current, normals_of(self.source)[correspondences.source_indices]])
        self.err.set_reference(positions_of(self.target)[correspondences.target_indices])
        self.err.set_current(current)
        self.err.set_point_indices(correspondences.source_indices, correspondences.target_indices)

        residuals = self.err.compute_error()
        jacobian = self.err.compute_jacobian()
        mask = self.err.finite_mask()

        residuals = residuals[mask]
        jacobian = jacobian[mask]
        weights = self.mestimator.compute_weights(residuals, jacobian)
        center = current[mask, :3].mean(axis=0) if np.any(mask) else np.zeros(3)

        return _Linearization(
            correspondences=correspondences,
            residuals=residuals,
            jacobian=jacobian,
            weights=weights,
            center=center,
            error=self._error_value(residuals, weights),
        )

    @staticmethod
    def _error_value(residuals: np.ndarray, weights: np.ndarray) -> float:
        """Weighted RMS of the residuals; plain RMS when every weight is 0."""
        if residuals.size == 0:
            return float("nan")
        total = float(np.sum(weights))
        if total > 0:
            return float(np.sqrt(np.sum(weights * residuals ** 2) / total))
        return float(np.sqrt(np.mean(residuals ** 2)))

    def _fail(self, reason: TerminationReason, message: str, **context: Any) -> None:
        self.diagnostics.fatal(message, **context)
        self.r.termination = reason
        self._state = IcpState.FAILED

    def _finalize(self, transformation: np.ndarray, last: Optional[_Linearization]) -> None:
        self.r.transformation = transformation
        self.r.registered_point_cloud = o3d.geometry.PointCloud(self.source)
        n_source = point_count(self.source)
        if last is not None and n_source > 0:
            self.r.fitness = len(last.correspondences) / n_source
            self.r.inlier_rmse = float(np.sqrt(np.mean(last.correspondences.distances ** 2)))

    def run(self) -> IcpResults:
        """
        Runs the ICP with the configured error metric, M-estimator and parameters.

        Returns:
            The result record (also available through ``get_results()``)

        Raises:
            IcpConfigurationError: If target or source is missing or unusable
        """
        self._check_preconditions()
        self.r = IcpResults()
        self._state = IcpState.ITERATING

        # Starting pose from the initial guess
        transformation = twist_to_transform(self.param.initial_twist)
        apply_transform_inplace(self.source, transformation)

        current = self._linearize()
        if current is None:
            self._fail(
                TerminationReason.INSUFFICIENT_OVERLAP,
                "No correspondence within max_correspondance_distance at the initial pose",
                max_correspondance_distance=self.param.max_correspondance_distance,
            )
            self._finalize(transformation, None)
            return self.r
        if current.residuals.size == 0:
            self._fail(TerminationReason.NUMERICAL_FAILURE, "Every residual is non-finite at the initial pose")
            self._finalize(transformation, current)
            return self.r

        self.r.registration_error.append(current.error)
        self.diagnostics.record_iteration(0, current.error, len(current.correspondences), 0.0)

        iteration = 0
        variation = float("inf")
        while iteration < self.param.max_iter and variation >= self.param.min_variation:
            with iteration_timer(self.diagnostics, iteration + 1) as timing:
                # Rotate about the matched centroid for conditioning, then
                # express the increment about the origin again
                J = current.jacobian.copy()
                J[:, 3:] -= np.cross(current.center, J[:, :3])
                try:
                    delta = solve_increment(J, current.residuals, current.weights, self.diagnostics)
                except np.linalg.LinAlgError as e:
                    self._fail(
                        TerminationReason.NUMERICAL_FAILURE,
                        f"Normal equations could not be solved: {e}",
                        iteration=iteration + 1,
                        correspondences=len(current.correspondences),
                    )
                    break

                delta = shift_twist(self.param.lambda_ * delta, current.center)
                increment = twist_to_transform(delta)
                previous = transformation
                if not np.array_equal(increment, np.eye(4)):
                    transformation = orthonormalize(increment @ transformation)
                    apply_transform_inplace(self.source, increment)

                following = self._linearize()
                if following is None or following.residuals.size == 0:
                    # Roll back the update so the results match the completed iterations
                    apply_transform_inplace(self.source, invert_transform(increment))
                    transformation = previous
                if following is None:
                    self._fail(
                        TerminationReason.INSUFFICIENT_OVERLAP,
                        "All correspondences rejected: insufficient overlap",
                        iteration=iteration + 1,
                        max_correspondance_distance=self.param.max_correspondance_distance,
                    )
                    break
                if following.residuals.size == 0:
                    self._fail(
                        TerminationReason.NUMERICAL_FAILURE,
                        "Every residual is non-finite",
                        iteration=iteration + 1,
                    )
                    break

                iteration += 1
                variation = abs(following.error - current.error)
                current = following
                self.r.registration_error.append(current.error)
                timing.error = current.error
                timing.correspondences = len(current.correspondences)

        self.r.iterations = iteration
        if self._state != IcpState.FAILED:
            if variation < self.param.min_variation:
                self.r.termination = TerminationReason.CONVERGED
                self._state = IcpState.CONVERGED
            else:
                self.r.termination = TerminationReason.MAX_ITER_REACHED
                self._state = IcpState.MAX_ITER_REACHED

        self._finalize(transformation, current)
        return self.r
