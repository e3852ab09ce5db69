import os
import sys
import math
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.change_points import CusumChangePointDetector
from algorithms.hierarchical_model import HierarchicalModeler
from schemas import HistoricalExercise, HistoricalWorkout, SetObservation

RPES = [7.0, 7.5, 8.0, 8.5, 9.0]


def exercise(exercise_id: str, reps: int, weight: float) -> HistoricalExercise:
    return HistoricalExercise(
        exercise_id=exercise_id,
        sets=[
            SetObservation(
                exercise_id=exercise_id,
                set_index=i + 1,
                actual_reps=reps,
                actual_weight=weight,
                actual_rpe=rpe,
                prescribed_rpe=8.0,
            )
            for i, rpe in enumerate(RPES)
        ],
    )


def history(count: int = 3) -> list[HistoricalWorkout]:
    start = datetime.datetime(2024, 3, 1, 18, 0)
    return [
        HistoricalWorkout(
            date=start + datetime.timedelta(days=2 * i),
            exercises=[exercise("squat", 5, 225.0), exercise("bench_tng", 8, 185.0)],
        )
        for i in range(count)
    ]


class HierarchicalModelerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.modeler = HierarchicalModeler()

    def test_gate(self) -> None:
        self.assertTrue(self.modeler.can_use(history(3)))
        self.assertFalse(self.modeler.can_use(history(2)))
        short = history(3)
        short[0].exercises.pop()
        self.assertFalse(self.modeler.can_use(short))

    def test_shrinkage(self) -> None:
        self.assertAlmostEqual(self.modeler.shrink(0.5, 0), 0.15)
        self.assertAlmostEqual(self.modeler.shrink(0.5, 10), 0.325)
        self.assertAlmostEqual(self.modeler.shrink(0.5, 100000), 0.5, places=3)

    def test_population_defaults_with_little_history(self) -> None:
        model = self.modeler.build("u1", history(2))
        self.assertEqual(model.user_fatigue_resistance, 50.0)
        self.assertEqual(model.user_recovery_rate, 1.0)
        self.assertEqual(model.user_confidence, 0.2)
        self.assertEqual(model.exercise_factors, {})

    def test_build(self) -> None:
        model = self.modeler.build("u1", list(reversed(history(3))))
        self.assertAlmostEqual(model.user_fatigue_resistance, 85.0)
        self.assertAlmostEqual(model.user_recovery_rate, 1 / 1.04)
        self.assertAlmostEqual(model.user_confidence, 1 - math.exp(-30 / 50))
        self.assertEqual(model.total_samples, 30)
        self.assertTrue(model.convergence)

        squat = model.exercise_factors["squat"]
        raw = 0.05 + 0.05 * 2 / 14
        self.assertEqual(squat.sample_size, 15)
        self.assertAlmostEqual(squat.baseline_fatigue_rate, 0.6 * raw + 0.4 * 0.15)
        self.assertAlmostEqual(squat.variance, 7.5 / 14)

    def test_prediction_grows_with_sets(self) -> None:
        model = self.modeler.build("u1", history(3))
        early = self.modeler.predict_next_set(model, "squat", 1)
        late = self.modeler.predict_next_set(model, "squat", 6)
        self.assertLess(early.expected_fatigue, late.expected_fatigue)
        for pred in (early, late):
            lower, upper = pred.prediction_interval
            self.assertGreaterEqual(lower, 0.0)
            self.assertLessEqual(upper, 100.0)
            self.assertGreaterEqual(pred.confidence, 0.3)

    def test_update_is_pure(self) -> None:
        model = self.modeler.build("u1", history(3))
        prior = model.exercise_factors["squat"]
        updated = self.modeler.update(model, "squat", 30.0, 3)
        self.assertEqual(model.total_samples, 30)
        self.assertEqual(updated.total_samples, 31)
        self.assertEqual(updated.exercise_factors["squat"].sample_size, 16)
        self.assertAlmostEqual(
            updated.exercise_factors["squat"].baseline_fatigue_rate,
            (15 * prior.baseline_fatigue_rate + 0.1) / 16,
        )
        self.assertAlmostEqual(updated.current_session_fatigue, 10.0)
        self.assertGreaterEqual(updated.user_confidence, model.user_confidence)

    def test_update_unseen_exercise(self) -> None:
        model = self.modeler.build("u1", history(3))
        updated = self.modeler.update(model, "db_curl", 20.0, 1)
        factor = updated.exercise_factors["db_curl"]
        self.assertEqual(factor.sample_size, 1)
        self.assertAlmostEqual(factor.baseline_fatigue_rate, 0.15)
        self.assertAlmostEqual(updated.current_session_fatigue, 20.0)

    def test_fatigue_levels(self) -> None:
        levels = [HierarchicalModeler.fatigue_level(v) for v in (10, 20, 40, 60, 80)]
        self.assertEqual(levels, ["minimal", "low", "moderate", "high", "critical"])

    def test_assess_fresh_exercise(self) -> None:
        model = self.modeler.build("u1", history(3))
        sets = exercise("squat", 5, 225.0).sets[:1]
        result = self.modeler.assess(model, "squat", sets)
        self.assertEqual(result.fatigue_level, "minimal")
        self.assertFalse(result.should_stop)
        self.assertFalse(result.critical_moment.detected)
        self.assertIn("Minimal fatigue", result.recommendation)

    def test_recent_change_point_forces_stop(self) -> None:
        model = self.modeler.build("u1", history(3))
        rpes = [7, 7, 7, 9.5, 9.5]
        points = CusumChangePointDetector().detect(rpes)
        sets = exercise("squat", 5, 225.0).sets
        result = self.modeler.assess(model, "squat", sets, points, len(rpes))
        self.assertTrue(result.critical_moment.detected)
        self.assertEqual(result.critical_moment.set_number, 4)
        self.assertTrue(result.should_stop)
        self.assertIn("Sudden fatigue spike detected at set 4", result.stop_reasons)
        self.assertTrue(result.recommendation.startswith("STOP:"))


if __name__ == "__main__":
    unittest.main()
