"""
Point-to-plane ICP registration with pluggable error metrics and M-estimators.
"""

from .error_metrics import ErrorMetric, ErrorPointToPlane
from .exceptions import IcpConfigurationError
from .icp_engine import Icp, IcpState, solve_increment
from .mestimators import (
    ESTIMATORS,
    HuberWeighting,
    MEstimator,
    TukeyWeighting,
    UniformWeighting,
    mad_scale,
    median,
)
from .parameters import IcpParameters
from .quality import QualityEvaluator, QualityMetrics
from .results import IcpResults, TerminationReason
from .search import Correspondences, NearestNeighborIndex

__all__ = [
    "ErrorMetric",
    "ErrorPointToPlane",
    "IcpConfigurationError",
    "Icp",
    "IcpState",
    "solve_increment",
    "ESTIMATORS",
    "HuberWeighting",
    "MEstimator",
    "TukeyWeighting",
    "UniformWeighting",
    "mad_scale",
    "median",
    "IcpParameters",
    "QualityEvaluator",
    "QualityMetrics",
    "IcpResults",
    "TerminationReason",
    "Correspondences",
    "NearestNeighborIndex",
]
