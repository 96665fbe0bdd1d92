import numpy as np
import pytest

from rigid_icp.core.transformations import create_transformation_matrix, transform_points
from rigid_icp.diagnostics import DiagnosticsRecorder


def _cube_corners() -> np.ndarray:
    corners = np.array([[x, y, z] for x in (0.0, 1.0) for y in (0.0, 1.0) for z in (0.0, 1.0)])
    # Outward normals point away from the cube center
    normals = (2.0 * corners - 1.0) / np.sqrt(3.0)
    return np.hstack([corners, normals])


def _three_planes(spacing: int = 20) -> np.ndarray:
    """Floor z=0 and walls x=0, y=0 of a room corner, sampled on a grid, with normals."""
    s = np.linspace(0.05, 1.0, spacing)
    a, b = np.meshgrid(s, s, indexing="ij")
    a, b = a.ravel(), b.ravel()
    zeros = np.zeros_like(a)
    ones = np.ones_like(a)

    floor = np.column_stack([a, b, zeros, zeros, zeros, ones])
    wall_x = np.column_stack([zeros, a, b, ones, zeros, zeros])
    wall_y = np.column_stack([a, zeros, b, zeros, ones, zeros])
    return np.vstack([floor, wall_x, wall_y])


@pytest.fixture
def unit_cube():
    """Unit cube corners (8, 6): positions followed by outward normals."""
    return _cube_corners()


@pytest.fixture
def room_corner():
    """Three orthogonal planes (1200, 6): positions followed by normals."""
    return _three_planes()


@pytest.fixture
def small_motion():
    """A small rigid motion: 1.5 deg yaw, 1 deg roll and a few centimeters."""
    return create_transformation_matrix(0.02, -0.01, 0.015, roll=1.0, pitch=0.0, yaw=1.5)


@pytest.fixture
def moved_room_corner(room_corner, small_motion):
    """The room corner with small_motion applied to positions and normals."""
    return transform_points(room_corner, small_motion)


@pytest.fixture
def recorder():
    return DiagnosticsRecorder()
