"""
rigid_icp - rigid registration of 3D point sets with point-to-plane ICP.
"""

from .core.config import settings
from .registration import (
    ErrorPointToPlane,
    HuberWeighting,
    Icp,
    IcpConfigurationError,
    IcpParameters,
    IcpResults,
    IcpState,
    TerminationReason,
    TukeyWeighting,
    UniformWeighting,
)

__version__ = settings.VERSION

__all__ = [
    "ErrorPointToPlane",
    "HuberWeighting",
    "Icp",
    "IcpConfigurationError",
    "IcpParameters",
    "IcpResults",
    "IcpState",
    "TerminationReason",
    "TukeyWeighting",
    "UniformWeighting",
]
