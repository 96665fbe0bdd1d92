"""
Unit tests for the point-to-plane error metric.
"""
import numpy as np
import pytest

from rigid_icp.core.pointcloud import to_point_cloud
from rigid_icp.core.transformations import twist_to_transform
from rigid_icp.registration import ErrorPointToPlane


@pytest.fixture
def metric(recorder):
    return ErrorPointToPlane(diagnostics=recorder)


def _current(positions, normals):
    return np.hstack([np.asarray(positions, dtype=float), np.asarray(normals, dtype=float)])


class TestComputeError:
    def test_residual_is_distance_along_normal(self, metric):
        """Test that the residual is the offset projected on the normal"""
        metric.set_reference(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]))
        metric.set_current(_current([[0.3, -0.2, 0.5], [1.0, 1.0, 1.0]], [[0, 0, 1], [1, 0, 0]]))

        residuals = metric.compute_error()
        np.testing.assert_array_almost_equal(residuals, [0.5, 0.0])

    def test_tangent_motion_is_free(self, metric):
        """Test that motion within the plane costs nothing"""
        metric.set_reference(np.array([[0.0, 0.0, 0.0]]))
        metric.set_current(_current([[5.0, -3.0, 0.0]], [[0, 0, 1]]))
        assert metric.compute_error()[0] == 0.0

    def test_channel_weights(self, metric):
        """Test that per-axis weights scale the residual components"""
        normal = np.array([[1.0, 1.0, 0.0]]) / np.sqrt(2.0)
        metric.set_reference(np.zeros((1, 3)))
        metric.set_current(_current([[1.0, 1.0, 0.0]], normal))
        metric.set_channel_weights(np.array([[1.0, 0.0, 0.0]]))

        assert metric.compute_error()[0] == pytest.approx(1.0 / np.sqrt(2.0))

    def test_channel_weights_shape_checked(self, metric):
        """Test that weights of the wrong shape are rejected"""
        metric.set_current(_current([[0.0, 0.0, 0.0]], [[0, 0, 1]]))
        with pytest.raises(ValueError):
            metric.set_channel_weights(np.ones((2, 3)))

    def test_mismatched_rows_raise(self, metric):
        """Test that reference and current sets must have the same length"""
        metric.set_reference(np.zeros((3, 3)))
        metric.set_current(_current(np.zeros((2, 3)), [[0, 0, 1], [0, 0, 1]]))
        with pytest.raises(ValueError):
            metric.compute_error()

    def test_current_without_normals_raises(self, metric):
        """Test that a current set without normals is rejected"""
        with pytest.raises(ValueError):
            metric.set_current(np.zeros((2, 3)))

    def test_accepts_point_clouds(self, metric, unit_cube):
        """Test that Open3D clouds bind like arrays"""
        metric.set_reference(to_point_cloud(unit_cube[:, :3]))
        metric.set_current(to_point_cloud(unit_cube))
        np.testing.assert_array_equal(metric.compute_error(), np.zeros(8))

    def test_set_current_resizes_buffers(self, metric, unit_cube):
        """Test that binding a new set resizes the residual and Jacobian"""
        metric.set_current(unit_cube)
        assert metric.error_vector.shape == (8,)
        assert metric.weights.shape == (8, 3)
        assert metric.J.shape == (8, 6)

        metric.set_current(unit_cube[:3])
        assert metric.error_vector.shape == (3,)
        assert metric.J.shape == (3, 6)

    def test_set_current_resets_channel_weights(self, metric):
        """Test that rebinding the current set drops earlier channel weights"""
        metric.set_reference(np.zeros((1, 3)))
        metric.set_current(_current([[0.0, 0.0, 1.0]], [[0, 0, 1]]))
        metric.set_channel_weights(np.array([[1.0, 1.0, 0.0]]))
        assert metric.compute_error()[0] == 0.0

        metric.set_current(_current([[0.0, 0.0, 1.0]], [[0, 0, 1]]))
        np.testing.assert_array_equal(metric.weights, np.ones((1, 3)))
        assert metric.compute_error()[0] == 1.0


class TestNonFiniteResiduals:
    def test_non_finite_row_reported_not_raised(self, metric, recorder):
        """Test that a NaN row is reported through the sink"""
        metric.set_reference(np.zeros((3, 3)))
        metric.set_current(_current(
            [[0.0, 0.0, 1.0], [0.0, 0.0, 2.0], [0.0, 0.0, 3.0]],
            [[0, 0, 1], [np.nan, 0, 1], [0, 0, 1]],
        ))

        residuals = metric.compute_error()
        metric.compute_jacobian()

        assert np.isnan(residuals[1])
        assert residuals[0] == 1.0 and residuals[2] == 3.0
        np.testing.assert_array_equal(metric.finite_mask(), [True, False, True])

        warnings = recorder.registry.warnings
        assert len(warnings) == 1
        assert warnings[0].message == "Error vector has non-finite values"
        assert warnings[0].context["row"] == 1
        assert warnings[0].context["current"] == [0.0, 0.0, 2.0]
        assert "normal" in warnings[0].context
        assert "source_index" not in warnings[0].context

    def test_non_finite_row_names_its_points(self, metric, recorder):
        """Test that bound point indices appear in the warning"""
        metric.set_reference(np.zeros((2, 3)))
        metric.set_current(_current([[0.0, 0.0, 1.0], [0.0, 0.0, 2.0]], [[0, 0, 1], [0, np.nan, 1]]))
        metric.set_point_indices(np.array([4, 17]), np.array([9, 2]))
        metric.compute_error()

        context = recorder.registry.warnings[0].context
        assert context["row"] == 1
        assert context["source_index"] == 17
        assert context["target_index"] == 2

    def test_point_indices_must_match_rows(self, metric):
        """Test that one source and one target index per row is required"""
        metric.set_current(_current(np.zeros((2, 3)), [[0, 0, 1], [0, 0, 1]]))
        with pytest.raises(ValueError):
            metric.set_point_indices(np.array([0, 1, 2]), np.array([0, 1, 2]))
        with pytest.raises(ValueError):
            metric.set_point_indices(np.array([0, 1]), np.array([0]))

    def test_set_current_forgets_point_indices(self, metric):
        """Test that rebinding the current set drops stale point indices"""
        metric.set_current(_current(np.zeros((2, 3)), [[0, 0, 1], [0, 0, 1]]))
        metric.set_point_indices(np.array([0, 1]), np.array([1, 0]))

        metric.set_current(_current(np.zeros((2, 3)), [[0, 0, 1], [0, 0, 1]]))
        assert metric.source_indices is None
        assert metric.target_indices is None

    def test_finite_rows_produce_no_warning(self, metric, recorder, unit_cube):
        """Test that clean input produces no diagnostics"""
        metric.set_reference(unit_cube[:, :3] + 0.1)
        metric.set_current(unit_cube)
        metric.compute_error()
        assert len(recorder.registry.events) == 0


class TestComputeJacobian:
    def test_rows_are_normal_and_moment(self, metric):
        """Test that each Jacobian row is [n, p x n]"""
        positions = np.array([[1.0, 2.0, 3.0], [-0.5, 0.2, 0.7]])
        normals = np.array([[0.0, 0.0, 1.0], [0.6, 0.8, 0.0]])
        metric.set_reference(positions)
        metric.set_current(_current(positions, normals))

        J = metric.compute_jacobian()
        assert J.shape == (2, 6)
        np.testing.assert_array_almost_equal(J[:, :3], normals)
        np.testing.assert_array_almost_equal(J[:, 3:], np.cross(positions, normals))

    def test_matches_finite_differences(self, metric):
        """Test the analytic Jacobian against forward differences"""
        rng = np.random.default_rng(3)
        positions = rng.normal(size=(5, 3))
        normals = rng.normal(size=(5, 3))
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        reference = positions + rng.normal(scale=0.1, size=(5, 3))

        metric.set_reference(reference)
        metric.set_current(_current(positions, normals))
        base = metric.compute_error().copy()
        J = metric.compute_jacobian().copy()

        eps = 1e-6
        for k in range(6):
            twist = np.zeros(6)
            twist[k] = eps
            T = twist_to_transform(twist)
            # Normals stay attached to the linearisation point
            moved = positions @ T[:3, :3].T + T[:3, 3]
            metric.set_current(_current(moved, normals))
            numeric = (metric.compute_error() - base) / eps
            np.testing.assert_array_almost_equal(numeric, J[:, k], decimal=5)
