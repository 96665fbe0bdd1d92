"""
Core utilities: settings, logging, rigid transforms and point set helpers.
"""
from .config import Settings, settings
from .logging_config import get_logger, setup_logging
from .transformations import (
    create_transformation_matrix,
    invert_transform,
    shift_twist,
    transform_points,
    transform_to_pose_dict,
    transform_to_twist,
    twist_to_transform,
)

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
    "create_transformation_matrix",
    "invert_transform",
    "shift_twist",
    "transform_points",
    "transform_to_pose_dict",
    "transform_to_twist",
    "twist_to_transform",
]
