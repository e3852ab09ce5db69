import os
import sys
import math
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.math_tools import MathTools
from algorithms.weight_converter import WeightConverter
from schemas import SetObservation


class MathToolsTestCase(unittest.TestCase):
    def test_constants(self) -> None:
        self.assertAlmostEqual(MathTools.MAD_SCALE, 0.6745)
        self.assertAlmostEqual(MathTools.MODIFIED_Z_THRESHOLD, 3.5)
        self.assertAlmostEqual(MathTools.Z_CRITICAL[0.95], 1.96)

    def test_clamp(self) -> None:
        self.assertEqual(MathTools.clamp(5, 0, 10), 5)
        self.assertEqual(MathTools.clamp(-1, 0, 10), 0)
        self.assertEqual(MathTools.clamp(11, 0, 10), 10)
        with self.assertRaises(ValueError):
            MathTools.clamp(1, 2, 1)

    def test_safe_div(self) -> None:
        self.assertEqual(MathTools.safe_div(1, 0), 0.0)
        self.assertEqual(MathTools.safe_div(1, 0, default=1.0), 1.0)
        self.assertEqual(MathTools.safe_div(1, math.inf), 0.0)
        self.assertAlmostEqual(MathTools.safe_div(3, 2), 1.5)

    def test_variance_guards(self) -> None:
        self.assertEqual(MathTools.sample_variance([]), 0.0)
        self.assertEqual(MathTools.sample_variance([4.0]), 0.0)
        self.assertAlmostEqual(MathTools.sample_variance([1, 2, 3, 4]), 5 / 3)
        self.assertEqual(MathTools.mean([]), 0.0)

    def test_descriptive_stats(self) -> None:
        stats = MathTools.descriptive_stats([5, 1, 3, 2, 4])
        self.assertAlmostEqual(stats.mean, 3.0)
        self.assertAlmostEqual(stats.median, 3.0)
        self.assertAlmostEqual(stats.q1, 2.0)
        self.assertAlmostEqual(stats.q3, 4.0)
        self.assertAlmostEqual(stats.iqr, 2.0)
        self.assertEqual(stats.min, 1.0)
        self.assertEqual(stats.max, 5.0)
        self.assertEqual(stats.count, 5)
        self.assertEqual(MathTools.descriptive_stats([]).count, 0)

    def test_z_scores(self) -> None:
        self.assertEqual(MathTools.z_score(5, 3, 0), 0.0)
        self.assertAlmostEqual(MathTools.z_to_percentile(0), 50.0)
        self.assertEqual(MathTools.modified_z_scores([5, 5, 5, 5]), [0.0, 0.0, 0.0, 0.0])

    def test_normalization(self) -> None:
        self.assertEqual(MathTools.normalize_to_percentile(3, []), 50.0)
        self.assertAlmostEqual(MathTools.normalize_to_percentile(3, [1, 2, 3, 4]), 75.0)
        self.assertAlmostEqual(MathTools.normalize_z_score(3, [1, 2, 3, 4, 5]), 50.0)
        self.assertGreater(MathTools.normalize_z_score(5, [1, 2, 3, 4, 5]), 80.0)

    def test_modified_z_outliers(self) -> None:
        analysis = MathTools.detect_outliers_modified_z([6, 7, 8, 7, 6, 8, 20])
        self.assertEqual(analysis.outlier_indices, [6])
        self.assertEqual(analysis.outliers, [20.0])
        self.assertEqual(len(analysis.cleaned_data), 6)
        self.assertLess(analysis.upper_bound, 20)

    def test_iqr_outliers_needs_four_values(self) -> None:
        analysis = MathTools.detect_outliers_iqr([1, 100, 2])
        self.assertEqual(analysis.outlier_indices, [])

    def test_bayesian_update(self) -> None:
        empty = MathTools.bayesian_mean_update(1.0, 0.5, 10, [])
        self.assertEqual(empty.posterior_mean, 1.0)
        self.assertEqual(empty.confidence, 0.5)

        post = MathTools.bayesian_mean_update(1.0, 0.5, 10, [2, 2, 2, 2, 2])
        self.assertAlmostEqual(post.posterior_mean, 20 / 15)
        self.assertAlmostEqual(post.confidence, 1 - 1 / math.sqrt(15))
        lower, upper = post.credible_interval
        self.assertLess(lower, post.posterior_mean)
        self.assertGreater(upper, post.posterior_mean)

    def test_bayesian_confidence_capped(self) -> None:
        post = MathTools.bayesian_mean_update(0.0, 1.0, 1000, [0.0] * 10)
        self.assertAlmostEqual(post.confidence, 0.95)

    def test_ema_and_sma(self) -> None:
        self.assertEqual(MathTools.ema([]), [])
        self.assertEqual(MathTools.ema([0, 10], 0.5), [0.0, 5.0])
        self.assertEqual(MathTools.simple_moving_average([1, 2, 3, 4], 2), [1.5, 2.5, 3.5])
        with self.assertRaises(ValueError):
            MathTools.simple_moving_average([1, 2], 0)

    def test_detect_trend(self) -> None:
        trend = MathTools.detect_trend([1, 2, 3, 4, 5])
        self.assertAlmostEqual(trend.slope, 1.0)
        self.assertAlmostEqual(trend.r_squared, 1.0)
        self.assertEqual(trend.trend, "increasing")
        self.assertEqual(MathTools.detect_trend([3, 3, 3]).trend, "stable")
        self.assertEqual(MathTools.detect_trend([5, 4, 3]).trend, "decreasing")

    def test_cohens_d(self) -> None:
        self.assertAlmostEqual(MathTools.cohens_d([1, 2, 3], [4, 5, 6]), 3.0)
        self.assertEqual(MathTools.cohens_d([7, 7], [7, 7]), 0.0)
        self.assertEqual(MathTools.cohens_d([7, 7], [9, 9]), math.inf)
        self.assertEqual(MathTools.cohens_d([], [1]), 0.0)
        self.assertEqual(MathTools.interpret_effect_size(-0.9), "large")
        self.assertEqual(MathTools.interpret_effect_size(0.3), "small")


class WeightConverterTestCase(unittest.TestCase):
    def test_conversions(self) -> None:
        self.assertAlmostEqual(WeightConverter.to_lb(100, "kg"), 220.462)
        self.assertEqual(WeightConverter.to_lb(135), 135.0)
        self.assertEqual(WeightConverter.to_lb(None), 0.0)

    def test_set_weight(self) -> None:
        s = SetObservation(exercise_id="squat", actual_reps=5, actual_weight=100, weight_unit="kg")
        self.assertAlmostEqual(WeightConverter.set_weight_lb(s), 220.462)


if __name__ == "__main__":
    unittest.main()
