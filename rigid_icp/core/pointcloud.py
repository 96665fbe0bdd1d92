"""
Point set helpers around Open3D legacy point clouds.

The registration engine works on ``o3d.geometry.PointCloud`` objects so the
source can be transformed in place together with its normals.
"""
from typing import Any, Optional

import numpy as np
import open3d as o3d


def to_point_cloud(points: Any) -> o3d.geometry.PointCloud:
    """
    Convert input to an Open3D legacy PointCloud.

    Args:
        points: Existing PointCloud (returned unchanged, no copy), or a numpy
            array of shape (N, 3) for positions or (N, 6) for positions
            followed by normals.

    Returns:
        Open3D legacy PointCloud
    """
    if isinstance(points, o3d.geometry.PointCloud):
        return points

    array = np.asarray(points, dtype=np.float64)
    if array.size == 0:
        return o3d.geometry.PointCloud()
    if array.ndim != 2 or array.shape[1] not in (3, 6):
        raise ValueError(f"Expected an (N, 3) or (N, 6) array, got shape {array.shape}")

    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(array[:, :3])
    if array.shape[1] == 6:
        pcd.normals = o3d.utility.Vector3dVector(array[:, 3:6])
    return pcd


def point_count(pcd: Optional[o3d.geometry.PointCloud]) -> int:
    if pcd is None:
        return 0
    return len(pcd.points)


def has_normals(pcd: o3d.geometry.PointCloud) -> bool:
    return pcd.has_normals() and len(pcd.normals) == len(pcd.points)


def ensure_normals(pcd: o3d.geometry.PointCloud, radius: float, max_nn: int) -> o3d.geometry.PointCloud:
    """Estimate normals in place when the cloud does not carry them."""
    if not has_normals(pcd):
        pcd.estimate_normals(
            o3d.geometry.KDTreeSearchParamHybrid(radius=radius, max_nn=max_nn)
        )
        pcd.normalize_normals()
    return pcd


def positions_of(pcd: o3d.geometry.PointCloud) -> np.ndarray:
    return np.asarray(pcd.points, dtype=np.float64)


def normals_of(pcd: o3d.geometry.PointCloud) -> np.ndarray:
    return np.asarray(pcd.normals, dtype=np.float64)


def apply_transform_inplace(pcd: o3d.geometry.PointCloud, T: np.ndarray) -> o3d.geometry.PointCloud:
    """
    Transform positions (and normals) of ``pcd`` in place.

    An identity transform is skipped so coordinates stay bit-identical.
    """
    if np.array_equal(T, np.eye(4)):
        return pcd
    pcd.transform(np.asarray(T, dtype=np.float64))
    return pcd
