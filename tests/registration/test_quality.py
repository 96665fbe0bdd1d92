"""
Unit tests for QualityEvaluator.
"""
import pytest

from rigid_icp.registration import IcpResults, QualityEvaluator, TerminationReason


def _results(fitness, rmse, termination=TerminationReason.CONVERGED):
    return IcpResults(
        registration_error=[1.0, 0.5],
        termination=termination,
        iterations=1,
        fitness=fitness,
        inlier_rmse=rmse,
    )


class TestQualityEvaluator:
    @pytest.mark.parametrize("fitness,rmse,expected", [
        (0.95, 0.01, "excellent"),
        (0.8, 0.03, "good"),
        (0.5, 0.01, "poor"),
        (0.95, 0.1, "poor"),
    ])
    def test_classification(self, fitness, rmse, expected):
        """Test the quality label for fitness and RMSE pairs"""
        metrics = QualityEvaluator().evaluate(_results(fitness, rmse))

        assert metrics.quality == expected
        assert metrics.fitness == fitness
        assert metrics.rmse == rmse

    def test_failed_run_is_poor(self):
        """Test that a failed run is always poor"""
        results = _results(1.0, 0.0, TerminationReason.INSUFFICIENT_OVERLAP)
        assert QualityEvaluator().evaluate(results).quality == "poor"

    def test_custom_thresholds(self):
        """Test that thresholds can be overridden"""
        evaluator = QualityEvaluator(min_fitness=0.5, max_rmse=0.2)
        assert evaluator.evaluate(_results(0.6, 0.15)).quality == "good"

    def test_is_acceptable(self):
        """Test that only good and excellent are acceptable"""
        evaluator = QualityEvaluator()
        assert evaluator.is_acceptable(_results(0.95, 0.01))
        assert not evaluator.is_acceptable(_results(0.3, 0.01))
