import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.change_points import (
    CusumChangePointDetector,
    NullChangePointDetector,
    interpret_change_points,
    is_critical_moment,
)


class CusumChangePointDetectorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.detector = CusumChangePointDetector()

    def test_rpe_jump_detected(self) -> None:
        points = self.detector.detect([7, 7, 7, 9.5, 9.5])
        self.assertEqual(len(points), 1)
        point = points[0]
        self.assertEqual(point.index, 3)
        self.assertEqual(point.direction, "increase")
        self.assertAlmostEqual(point.magnitude, 2.5)
        self.assertAlmostEqual(point.confidence, 0.95)
        self.assertAlmostEqual(point.before_mean, 7.0)
        self.assertAlmostEqual(point.after_mean, 9.5)

    def test_drop_detected(self) -> None:
        points = self.detector.detect([9, 9, 9, 6.5, 6.5])
        self.assertEqual([p.index for p in points], [3])
        self.assertEqual(points[0].direction, "decrease")

    def test_short_series(self) -> None:
        self.assertEqual(self.detector.detect([7, 9, 10]), [])

    def test_constant_series(self) -> None:
        self.assertEqual(self.detector.detect([8, 8, 8, 8, 8]), [])

    def test_confidence_capped(self) -> None:
        for point in self.detector.detect([6, 6.5, 6, 6.5, 9, 9.5, 9, 9.5]):
            self.assertLessEqual(point.confidence, 0.95)

    def test_null_detector(self) -> None:
        self.assertEqual(NullChangePointDetector().detect([7, 7, 7, 9.5, 9.5]), [])


class CriticalMomentTestCase(unittest.TestCase):
    def test_recent_shift_is_critical(self) -> None:
        point = CusumChangePointDetector().detect([7, 7, 7, 9.5, 9.5])[0]
        self.assertTrue(is_critical_moment(point, 5))
        self.assertFalse(is_critical_moment(point, 10))

    def test_interpretation(self) -> None:
        self.assertEqual(interpret_change_points([], "RPE"), "No significant changes detected in RPE.")
        points = CusumChangePointDetector().detect([7, 7, 7, 9.5, 9.5])
        text = interpret_change_points(points, "RPE")
        self.assertIn("observation 4", text)
        self.assertIn("from 7.0 to 9.5", text)


if __name__ == "__main__":
    unittest.main()
