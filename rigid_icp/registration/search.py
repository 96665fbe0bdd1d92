"""
Nearest neighbor correspondence search over the reference point set.

Wraps ``o3d.geometry.KDTreeFlann``. The tree is built once per reference set
and is only read afterwards, so it can be queried from several threads.
"""
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import numpy as np
import open3d as o3d

from rigid_icp.core.pointcloud import point_count, to_point_cloud
from .exceptions import IcpConfigurationError


@dataclass
class Correspondences:
    """Parallel arrays of matched (source, target) index pairs."""
    source_indices: np.ndarray  # int64 indices into the movable set
    target_indices: np.ndarray  # int64 indices into the reference set
    distances: np.ndarray       # Euclidean distances

    def __len__(self) -> int:
        return int(self.source_indices.shape[0])

    @classmethod
    def empty(cls) -> "Correspondences":
        return cls(
            source_indices=np.zeros(0, dtype=np.int64),
            target_indices=np.zeros(0, dtype=np.int64),
            distances=np.zeros(0, dtype=float),
        )


class NearestNeighborIndex:
    """
    k=1 nearest neighbor oracle over a fixed reference cloud.

    Args:
        reference: Reference cloud (PointCloud or (N, 3+) array)

    Raises:
        IcpConfigurationError: If the reference set is empty
    """

    def __init__(self, reference: Any):
        self.reference = to_point_cloud(reference)
        if point_count(self.reference) == 0:
            raise IcpConfigurationError("Reference point set is empty: nothing to register against")
        self.kdtree = o3d.geometry.KDTreeFlann(self.reference)

    def __len__(self) -> int:
        return point_count(self.reference)

    def nearest(self, point: np.ndarray):
        """Return (index, distance) of the reference point closest to ``point``."""
        count, idx, sq_dist = self.kdtree.search_knn_vector_3d(np.asarray(point, dtype=np.float64), 1)
        if count == 0:
            return -1, math.inf
        return int(idx[0]), math.sqrt(sq_dist[0])

    def _query_slice(self, points: np.ndarray, start: int, stop: int,
                     out_idx: np.ndarray, out_dist: np.ndarray) -> None:
        # Each worker owns out_idx[start:stop] and out_dist[start:stop]
        for i in range(start, stop):
            out_idx[i], out_dist[i] = self.nearest(points[i])

    def query(self, points: np.ndarray, max_distance: float = math.inf, workers: int = 1) -> Correspondences:
        """
        Find the nearest reference point for every query point.

        Args:
            points: (N, 3) query positions
            max_distance: Pairs farther apart than this are dropped
            workers: Threads to split the queries across

        Returns:
            Correspondences ordered by source index
        """
        points = np.asarray(points, dtype=np.float64)
        n = points.shape[0]
        if n == 0:
            return Correspondences.empty()

        nn_idx = np.full(n, -1, dtype=np.int64)
        nn_dist = np.full(n, math.inf, dtype=float)

        if workers <= 1 or n < 2 * workers:
            self._query_slice(points, 0, n, nn_idx, nn_dist)
        else:
            bounds = np.linspace(0, n, workers + 1).astype(int)
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._query_slice, points, int(bounds[k]), int(bounds[k + 1]), nn_idx, nn_dist)
                    for k in range(workers)
                ]
                for future in futures:
                    future.result()

        keep = (nn_idx >= 0) & (nn_dist <= max_distance)
        return Correspondences(
            source_indices=np.nonzero(keep)[0].astype(np.int64),
            target_indices=nn_idx[keep],
            distances=nn_dist[keep],
        )
