"""
Quality evaluation for registration results.
"""
from dataclasses import dataclass

from .results import IcpResults


@dataclass
class QualityMetrics:
    """Metrics for evaluating registration quality"""
    fitness: float
    rmse: float
    quality: str  # "excellent", "good", "poor"


class QualityEvaluator:
    """
    Evaluates the quality of ICP results.

    Quality is based on:
    - Fitness: fraction of source points with a correspondence (0.0-1.0)
    - RMSE: root mean square Euclidean distance of those correspondences

    Failed runs (insufficient overlap, numerical failure) are always "poor".
    """

    def __init__(self, min_fitness: float = 0.7, max_rmse: float = 0.05):
        """
        Args:
            min_fitness: Minimum fitness for "good" quality (default: 0.7)
            max_rmse: Maximum RMSE for "good" quality (default: 0.05)
        """
        self.min_fitness = min_fitness
        self.max_rmse = max_rmse

    def evaluate(self, results: IcpResults) -> QualityMetrics:
        if results.termination.is_failure:
            quality = "poor"
        else:
            quality = self._classify_quality(results.fitness, results.inlier_rmse)

        return QualityMetrics(
            fitness=results.fitness,
            rmse=results.inlier_rmse,
            quality=quality
        )

    def _classify_quality(self, fitness: float, rmse: float) -> str:
        if fitness >= 0.9 and rmse <= 0.02:
            return "excellent"
        elif fitness >= self.min_fitness and rmse <= self.max_rmse:
            return "good"
        else:
            return "poor"

    def is_acceptable(self, results: IcpResults) -> bool:
        """True if quality is good or excellent."""
        return self.evaluate(results).quality in ["excellent", "good"]
