import os
import sys
import math
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.rpe_calibration import RPECalibrator
from schemas import RPECalibrationProfile, SetObservation

NOW = datetime.datetime(2024, 5, 1, 9, 0)


def rated(actual: float, prescribed: float = 7.0, exercise_id: str = "bench_tng", **kwargs) -> SetObservation:
    return SetObservation(
        exercise_id=exercise_id,
        actual_reps=8,
        actual_weight=185.0,
        actual_rpe=actual,
        prescribed_rpe=prescribed,
        **kwargs,
    )


def profile(bias: float, sd: float, n: int) -> RPECalibrationProfile:
    return RPECalibrationProfile(
        exercise_id="bench_tng",
        historical_bias_mean=bias,
        historical_bias_sd=sd,
        sample_size=n,
        last_updated=NOW,
        confidence=0.5,
        credible_interval=(bias - sd, bias + sd),
    )


class SessionOnlyCalibrationTestCase(unittest.TestCase):
    def test_consistent_overshoot(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(9)] * 5)
        self.assertTrue(result.needs_adjustment)
        self.assertEqual(result.direction, "decrease")
        self.assertGreater(result.confidence, 0.5)
        self.assertAlmostEqual(result.confidence, 0.75)
        self.assertAlmostEqual(result.avg_deviation, 2.0)
        self.assertAlmostEqual(result.suggested_weight_change, -0.06)
        self.assertAlmostEqual(result.suggested_change, 0.06)
        self.assertTrue(result.consistent_overshoot)
        self.assertFalse(result.consistent_undershoot)
        self.assertIn("5 sets with consistent overshoot", result.reasoning)

    def test_consistent_undershoot(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(5.5, 8)] * 4)
        self.assertTrue(result.needs_adjustment)
        self.assertEqual(result.direction, "increase")
        self.assertAlmostEqual(result.suggested_weight_change, 0.075)
        self.assertTrue(result.consistent_undershoot)

    def test_too_few_sets_gives_neutral_result(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(10)])
        self.assertFalse(result.needs_adjustment)
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.reasoning, "")

    def test_unrated_and_skipped_sets_ignored(self) -> None:
        sets = [rated(9), rated(9, completed=False), SetObservation(exercise_id="bench_tng", actual_reps=8)]
        self.assertEqual(RPECalibrator.analyze_rpe_calibration(sets).confidence, 0.0)

    def test_noise_is_not_adjusted(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(7.5), rated(6.5), rated(7.5)])
        self.assertFalse(result.needs_adjustment)
        self.assertEqual(result.direction, "good")
        self.assertAlmostEqual(result.confidence, 0.3)

    def test_two_sets_are_not_enough_to_adjust(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(10), rated(10)])
        self.assertFalse(result.needs_adjustment)

    def test_exercise_filter(self) -> None:
        sets = [rated(9)] * 3 + [rated(7, exercise_id="squat")] * 3
        result = RPECalibrator.analyze_rpe_calibration(sets, exercise_id="squat")
        self.assertAlmostEqual(result.avg_deviation, 0.0)
        self.assertFalse(result.needs_adjustment)


class HistoricalCalibrationTestCase(unittest.TestCase):
    def test_confident_posterior_adjusts(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(9)] * 3, profile=profile(2.0, 0.5, 20))
        confidence = 1 - 1 / math.sqrt(23)
        self.assertTrue(result.needs_adjustment)
        self.assertEqual(result.direction, "decrease")
        self.assertAlmostEqual(result.posterior_bias, 2.0)
        self.assertAlmostEqual(result.confidence, confidence)
        self.assertAlmostEqual(result.suggested_weight_change, -2.0 * 0.04 * confidence)
        self.assertIn("Based on 23 total sets", result.reasoning)

    def test_low_confidence_withholds_change(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(9)] * 2, profile=profile(2.0, 0.5, 1))
        self.assertFalse(result.needs_adjustment)
        self.assertIn("confidence too low", result.reasoning)

    def test_accurate_history(self) -> None:
        sets = [rated(7), rated(7.5), rated(7)]
        result = RPECalibrator.analyze_rpe_calibration(sets, profile=profile(0.2, 0.4, 20))
        self.assertFalse(result.needs_adjustment)
        self.assertIn("RPE calibration is accurate", result.reasoning)

    def test_change_clamped(self) -> None:
        result = RPECalibrator.analyze_rpe_calibration([rated(10, 4)] * 5, profile=profile(6.0, 0.5, 100))
        self.assertAlmostEqual(result.suggested_weight_change, -0.15)
        self.assertAlmostEqual(result.suggested_change, 0.15)


class ProfileTestCase(unittest.TestCase):
    def test_needs_three_sets(self) -> None:
        self.assertIsNone(RPECalibrator.build_rpe_profile("bench_tng", [rated(8), rated(8)], NOW))

    def test_build(self) -> None:
        devs = [1, 1, 1.5, 1, 0.5, 1, 1, 1.5, 1, 1]
        built = RPECalibrator.build_rpe_profile("bench_tng", [rated(7 + d) for d in devs], NOW)
        self.assertEqual(built.sample_size, 10)
        self.assertAlmostEqual(built.historical_bias_mean, 1.05)
        self.assertEqual(built.last_updated, NOW)
        self.assertLessEqual(built.confidence, 0.95)

    def test_outliers_excluded(self) -> None:
        sets = [rated(7 + d) for d in (1, 1.5, 1, 0.5, 1, 1.5)] + [rated(10, 4)]
        built = RPECalibrator.build_rpe_profile("bench_tng", sets, NOW)
        self.assertEqual(built.sample_size, 6)
        self.assertAlmostEqual(built.historical_bias_mean, 6.5 / 6)

    def test_update_grows_sample(self) -> None:
        start = profile(1.0, 0.5, 10)
        later = NOW + datetime.timedelta(days=3)
        updated = RPECalibrator.update_rpe_profile(start, [rated(9)] * 5, later)
        self.assertEqual(updated.sample_size, 15)
        self.assertAlmostEqual(updated.historical_bias_mean, (10 * 1.0 + 5 * 2.0) / 15)
        self.assertEqual(updated.last_updated, later)
        self.assertIs(RPECalibrator.update_rpe_profile(start, [], later), start)


class AccuracyTestCase(unittest.TestCase):
    def test_metrics(self) -> None:
        sets = [rated(8), rated(6), rated(8), rated(6)]
        metrics = RPECalibrator.calculate_rpe_accuracy(sets)
        self.assertAlmostEqual(metrics.mean_absolute_error, 1.0)
        self.assertAlmostEqual(metrics.root_mean_squared_error, 1.0)
        self.assertAlmostEqual(metrics.calibration_score, 100 * (1 - 1 / 3))
        self.assertAlmostEqual(metrics.consistency_score, 100 * (1 - math.sqrt(4 / 3) / 3))
        self.assertEqual(metrics.sample_size, 4)
        rating, _ = RPECalibrator.interpret_rpe_accuracy(metrics)
        self.assertEqual(rating, "fair")

    def test_no_data(self) -> None:
        metrics = RPECalibrator.calculate_rpe_accuracy([])
        self.assertEqual(metrics.calibration_score, 50.0)
        self.assertEqual(metrics.sample_size, 0)

    def test_excellent_rater(self) -> None:
        metrics = RPECalibrator.calculate_rpe_accuracy([rated(7)] * 6)
        rating, feedback = RPECalibrator.interpret_rpe_accuracy(metrics)
        self.assertEqual(rating, "excellent")
        self.assertIn("excellent", feedback)
        difficulty = RPECalibrator.assess_exercise_rpe_difficulty("bench_tng", [rated(7)] * 6)
        self.assertEqual(difficulty.difficulty, "easy_to_rate")

    def test_hard_to_rate(self) -> None:
        sets = [rated(10), rated(4), rated(10), rated(4)]
        difficulty = RPECalibrator.assess_exercise_rpe_difficulty("bench_tng", sets)
        self.assertEqual(difficulty.difficulty, "hard_to_rate")
        self.assertAlmostEqual(difficulty.mean_absolute_error, 3.0)


if __name__ == "__main__":
    unittest.main()
