"""
Unit tests for point cloud helpers.
"""
import numpy as np
import open3d as o3d
import pytest

from rigid_icp.core.pointcloud import (
    apply_transform_inplace,
    ensure_normals,
    has_normals,
    normals_of,
    point_count,
    positions_of,
    to_point_cloud,
)
from rigid_icp.core.transformations import create_transformation_matrix


class TestToPointCloud:
    def test_positions_only(self):
        """Test conversion of an (N, 3) array"""
        points = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
        pcd = to_point_cloud(points)

        assert point_count(pcd) == 2
        assert not has_normals(pcd)
        np.testing.assert_array_equal(positions_of(pcd), points)

    def test_positions_and_normals(self, unit_cube):
        """Test conversion of an (N, 6) array"""
        pcd = to_point_cloud(unit_cube)

        assert point_count(pcd) == 8
        assert has_normals(pcd)
        np.testing.assert_array_equal(normals_of(pcd), unit_cube[:, 3:6])

    def test_point_cloud_passthrough(self):
        """Test that an Open3D cloud is returned as is"""
        pcd = o3d.geometry.PointCloud()
        assert to_point_cloud(pcd) is pcd

    def test_empty_array(self):
        """Test that an empty array gives an empty cloud"""
        assert point_count(to_point_cloud(np.zeros((0, 3)))) == 0

    def test_rejects_bad_shape(self):
        """Test that other column counts are rejected"""
        with pytest.raises(ValueError):
            to_point_cloud(np.zeros((4, 4)))

    def test_point_count_of_none(self):
        assert point_count(None) == 0


class TestEnsureNormals:
    def test_estimates_plane_normals(self, room_corner):
        """Test that plane normals are estimated and oriented"""
        floor = room_corner[:400, :3]
        pcd = ensure_normals(to_point_cloud(floor), radius=0.2, max_nn=30)

        assert has_normals(pcd)
        normals = normals_of(pcd)
        # Floor normals are ±z
        np.testing.assert_array_almost_equal(np.abs(normals[:, 2]), np.ones(len(normals)))

    def test_keeps_existing_normals(self, unit_cube):
        """Test that existing normals are not re-estimated"""
        pcd = to_point_cloud(unit_cube)
        ensure_normals(pcd, radius=0.2, max_nn=30)
        np.testing.assert_array_equal(normals_of(pcd), unit_cube[:, 3:6])


class TestApplyTransformInplace:
    def test_identity_keeps_coordinates_bit_identical(self, unit_cube):
        """Test that the identity transform leaves coordinates untouched"""
        pcd = to_point_cloud(unit_cube)
        before = positions_of(pcd).copy()

        apply_transform_inplace(pcd, np.eye(4))
        np.testing.assert_array_equal(positions_of(pcd), before)

    def test_rotates_points_and_normals(self):
        """Test that normals rotate with the points"""
        pcd = to_point_cloud(np.array([[1.0, 0.0, 0.0, 1.0, 0.0, 0.0]]))
        T = create_transformation_matrix(0.0, 0.0, 1.0, 0, 0, 90)

        result = apply_transform_inplace(pcd, T)
        assert result is pcd
        np.testing.assert_array_almost_equal(positions_of(pcd), [[0, 1, 1]])
        np.testing.assert_array_almost_equal(normals_of(pcd), [[0, 1, 0]])
