"""
Result record of an ICP run.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
import open3d as o3d

from rigid_icp.core.transformations import transform_points, transform_to_pose_dict


class TerminationReason(str, Enum):
    """Why the iteration loop stopped."""
    NOT_RUN = "not_run"
    CONVERGED = "converged"                      # error variation under min_variation
    MAX_ITER_REACHED = "max_iter_reached"        # valid terminal state, not an error
    INSUFFICIENT_OVERLAP = "insufficient_overlap"
    NUMERICAL_FAILURE = "numerical_failure"

    @property
    def is_failure(self) -> bool:
        return self in (TerminationReason.INSUFFICIENT_OVERLAP, TerminationReason.NUMERICAL_FAILURE)


def _zero_transform() -> np.ndarray:
    return np.zeros((4, 4), dtype=float)


@dataclass
class IcpResults:
    """
    Results of the ICP.

    ``registration_error`` holds the error history: the first value is the
    error at the initial pose, the last one the final error. It only ever
    contains iterations that actually completed.
    """
    registration_error: List[float] = field(default_factory=list)
    transformation: np.ndarray = field(default_factory=_zero_transform)  # 4x4
    registered_point_cloud: Optional[o3d.geometry.PointCloud] = None
    termination: TerminationReason = TerminationReason.NOT_RUN
    iterations: int = 0
    fitness: float = 0.0      # matched source points / source points
    inlier_rmse: float = 0.0  # Euclidean RMSE over the last correspondences

    @property
    def initial_error(self) -> float:
        if not self.registration_error:
            raise ValueError("No registration error recorded")
        return self.registration_error[0]

    @property
    def final_error(self) -> float:
        if not self.registration_error:
            raise ValueError("No registration error recorded")
        return self.registration_error[-1]

    @property
    def succeeded(self) -> bool:
        return self.termination in (TerminationReason.CONVERGED, TerminationReason.MAX_ITER_REACHED)

    def apply_to(self, points: np.ndarray) -> np.ndarray:
        """
        Map other data from the source frame into the target frame.

        Useful when registration ran on a downsampled copy and the full
        cloud should follow.

        Args:
            points: (N, 3) positions or (N, 6) positions followed by normals

        Returns:
            Transformed copy of ``points``

        Raises:
            ValueError: If no registration has run yet
        """
        if not self.registration_error:
            raise ValueError("No registration result to apply")
        return transform_points(points, self.transformation)

    def clear(self) -> None:
        """Reset to the zero state: empty history and all-zero transform."""
        self.registration_error.clear()
        self.transformation = _zero_transform()
        self.registered_point_cloud = None
        self.termination = TerminationReason.NOT_RUN
        self.iterations = 0
        self.fitness = 0.0
        self.inlier_rmse = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "registration_error": [float(e) for e in self.registration_error],
            "transformation": self.transformation.tolist(),
            "pose": transform_to_pose_dict(self.transformation) if self.registration_error else None,
            "termination": self.termination.value,
            "iterations": self.iterations,
            "fitness": float(self.fitness),
            "inlier_rmse": float(self.inlier_rmse),
        }

    def __str__(self) -> str:
        if not self.registration_error:
            return "Icp: No Results!"
        history = ", ".join(f"{e:.6g}" for e in self.registration_error)
        return (
            f"Initial error: {self.initial_error}"
            f"\nFinal error: {self.final_error}"
            f"\nFinal transformation: \n{np.array2string(self.transformation, precision=6, suppress_small=True)}"
            f"\nTermination: {self.termination.value} after {self.iterations} iteration(s)"
            f"\nError history: {history}"
        )
