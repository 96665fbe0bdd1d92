"""
Optimisation parameters for ICP.
"""
import math
from typing import Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from rigid_icp.core.config import settings

Twist = Tuple[float, float, float, float, float, float]


class IcpParameters(BaseModel):
    """
    Immutable parameter bundle for one registration run.

    ``lambda_`` is also accepted under its natural name ``lambda``
    (``IcpParameters(**{"lambda": 0.5})``).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Rate of convergence: the solved increment is scaled by this factor
    lambda_: float = Field(default=1.0, ge=0.0, alias="lambda")
    # Maximum number of allowed iterations
    max_iter: int = Field(default=10, ge=0)
    # ICP stops when the error variation between two iterations is under this value
    min_variation: float = Field(default=1e-4, ge=0.0)
    # Do not look further than this for the nearest neighbor search
    max_correspondance_distance: float = Field(default=math.inf, gt=0.0)
    # Twist (tx, ty, tz, wx, wy, wz) representing the initial guess
    initial_guess: Twist = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    # Threads used for nearest neighbor queries
    workers: int = Field(default=1, ge=1)

    @field_validator("initial_guess", mode="before")
    @classmethod
    def _coerce_twist(cls, value):
        array = np.asarray(value, dtype=float).reshape(-1)
        if array.shape[0] != 6:
            raise ValueError(f"initial_guess must have 6 elements, got {array.shape[0]}")
        if not np.all(np.isfinite(array)):
            raise ValueError("initial_guess must be finite")
        return tuple(float(v) for v in array)

    @property
    def initial_twist(self) -> np.ndarray:
        return np.asarray(self.initial_guess, dtype=float)

    @classmethod
    def from_settings(cls, **overrides) -> "IcpParameters":
        """Build parameters from environment-driven Settings, then apply overrides."""
        values = {
            "lambda_": settings.ICP_LAMBDA,
            "max_iter": settings.ICP_MAX_ITER,
            "min_variation": settings.ICP_MIN_VARIATION,
            "max_correspondance_distance": settings.ICP_MAX_CORRESPONDENCE_DISTANCE,
            "workers": settings.ICP_WORKERS,
        }
        values.update(overrides)
        return cls(**values)

    def __str__(self) -> str:
        return (
            f"Lambda: {self.lambda_}"
            f"\nMax iterations: {self.max_iter}"
            f"\nMin variation: {self.min_variation}"
            f"\nMax correspondance distance: {self.max_correspondance_distance}"
            f"\nInitial guess (twist): {list(self.initial_guess)}"
        )
