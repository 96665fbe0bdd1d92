"""
Robust weighting (M-estimators) for the ICP normal equations.

Every estimator maps a residual vector to a weight vector of the same length.
Weights are finite and non-negative; non-finite residuals get weight 0.
Computing weights never modifies the residuals.
"""
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

# Makes the MAD a consistent estimator of the standard deviation for Gaussian noise
MAD_TO_SIGMA: float = 1.4826


def median(values: np.ndarray) -> float:
    """Median of the finite entries of ``values``; even counts average the two middle values."""
    values = np.asarray(values, dtype=float).reshape(-1)
    values = values[np.isfinite(values)]
    if values.size == 0:
        raise ValueError("Median of an empty vector is undefined")
    return float(np.median(values))


def mad_scale(residuals: np.ndarray) -> float:
    """Robust scale: 1.4826 * median(|r - median(r)|) over finite residuals."""
    residuals = np.asarray(residuals, dtype=float).reshape(-1)
    residuals = residuals[np.isfinite(residuals)]
    if residuals.size == 0:
        return 0.0
    center = median(residuals)
    return MAD_TO_SIGMA * median(np.abs(residuals - center))


class MEstimator(ABC):
    """Base class for robust weighting strategies"""

    @abstractmethod
    def compute_weights(self, residuals: np.ndarray, jacobian: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Map residuals to weights.

        Args:
            residuals: (n,) residual vector (left untouched)
            jacobian: (n, 6) Jacobian, for estimators that use leverage

        Returns:
            (n,) array of weights in [0, +inf)
        """
        pass


class UniformWeighting(MEstimator):
    """All weights 1: ordinary least squares."""

    def compute_weights(self, residuals: np.ndarray, jacobian: Optional[np.ndarray] = None) -> np.ndarray:
        residuals = np.asarray(residuals, dtype=float)
        return np.where(np.isfinite(residuals), 1.0, 0.0)


class ScaledMEstimator(MEstimator):
    """
    Estimator working on residuals normalised by a scale.

    Args:
        scale: Fixed residual scale. When None the scale is re-estimated from
            the residuals on every call with ``mad_scale``.
    """

    def __init__(self, scale: Optional[float] = None):
        if scale is not None and not scale > 0:
            raise ValueError("scale must be positive")
        self.scale = scale

    @abstractmethod
    def _weight(self, u: np.ndarray) -> np.ndarray:
        """Weights for normalised absolute residuals u = |r| / s."""
        pass

    def compute_weights(self, residuals: np.ndarray, jacobian: Optional[np.ndarray] = None) -> np.ndarray:
        residuals = np.asarray(residuals, dtype=float)
        finite = np.isfinite(residuals)
        weights = np.zeros(residuals.shape, dtype=float)

        s = self.scale if self.scale is not None else mad_scale(residuals)
        if s <= 0:
            # No spread to judge outliers against
            weights[finite] = 1.0
            return weights

        u = np.abs(residuals[finite]) / s
        weights[finite] = self._weight(u)
        return weights


class HuberWeighting(ScaledMEstimator):
    """Huber: quadratic core, linear tails. w = 1 if u <= k else k / u."""

    def __init__(self, k: float = 1.345, scale: Optional[float] = None):
        super().__init__(scale)
        if not k > 0:
            raise ValueError("k must be positive")
        self.k = k

    def _weight(self, u: np.ndarray) -> np.ndarray:
        w = np.ones_like(u)
        mask = u > self.k
        w[mask] = self.k / u[mask]
        return w


class TukeyWeighting(ScaledMEstimator):
    """Tukey biweight: w = (1 - (u/c)^2)^2 if u <= c else 0 (full rejection)."""

    def __init__(self, c: float = 4.685, scale: Optional[float] = None):
        super().__init__(scale)
        if not c > 0:
            raise ValueError("c must be positive")
        self.c = c

    def _weight(self, u: np.ndarray) -> np.ndarray:
        return np.where(u <= self.c, (1.0 - (u / self.c) ** 2) ** 2, 0.0)


ESTIMATORS = {
    "uniform": UniformWeighting,
    "huber": HuberWeighting,
    "tukey": TukeyWeighting,
}
