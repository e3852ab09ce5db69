import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms.data_cleaning import DataQualityPipeline, PassthroughCleaner
from schemas import SetObservation


def make_set(rpe: float | None = 8.0, reps: int | None = 8, **kwargs) -> SetObservation:
    params = dict(
        exercise_id="bench_tng",
        actual_reps=reps,
        actual_weight=185.0,
        actual_rpe=rpe,
        prescribed_rpe=8.0,
    )
    params.update(kwargs)
    return SetObservation(**params)


class DataQualityPipelineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.pipeline = DataQualityPipeline()

    def test_impossible_values_removed(self) -> None:
        sets = [
            make_set(),
            make_set(reps=-1),
            make_set(reps=None),
            make_set(reps=150),
            make_set(actual_weight=5000.0),
            make_set(rpe=12),
        ]
        cleaned, report = self.pipeline.clean(sets)
        self.assertEqual(len(cleaned), 1)
        self.assertEqual(report.removed_count, 5)
        self.assertEqual(report.issues[0].type, "impossible_value")
        self.assertEqual(report.issues[0].count, 5)
        self.assertEqual(report.quality, "poor")

    def test_high_rep_max_effort_set_removed(self) -> None:
        s = make_set(rpe=10, reps=20, reached_failure=True)
        cleaned, report = self.pipeline.clean([s])
        self.assertEqual(cleaned, [])
        self.assertEqual(report.issues[0].type, "physiologically_implausible")

    def test_easy_failure_removed(self) -> None:
        cleaned, _ = self.pipeline.clean([make_set(), make_set(rpe=5, reached_failure=True)])
        self.assertEqual(len(cleaned), 1)

    def test_rpe_outlier_removed(self) -> None:
        rpes = [7, 7.5, 8, 7, 7.5, 8, 7, 7.5, 1]
        cleaned, report = self.pipeline.clean([make_set(rpe=r) for r in rpes])
        self.assertEqual(len(cleaned), 8)
        self.assertNotIn(1, [s.actual_rpe for s in cleaned])
        self.assertEqual(report.issues[0].type, "statistical_outlier")
        self.assertEqual(report.quality, "good")

    def test_cleaning_is_idempotent(self) -> None:
        rpes = [7, 7.5, 8, 7, 7.5, 8, 7, 7.5, 1]
        cleaned, _ = self.pipeline.clean([make_set(rpe=r) for r in rpes])
        again, report = self.pipeline.clean(cleaned)
        self.assertEqual(again, cleaned)
        self.assertEqual(report.removed_count, 0)
        self.assertEqual(report.quality, "excellent")

    def test_capped_outlier_stage_keeps_every_set(self) -> None:
        rpes = [7.5, 6, 7, 7, 7.5, 7.5, 7.5, 1, 7.5, 10, 6.5, 7.5, 1, 9]
        sets = [make_set(rpe=r) for r in rpes]
        cleaned, report = self.pipeline.clean(sets)
        self.assertEqual(cleaned, sets)
        self.assertEqual(report.issues, [])
        again, second = self.pipeline.clean(cleaned)
        self.assertEqual(again, cleaned)
        self.assertEqual(second.removed_count, 0)

    def test_idempotent_after_implausible_removal(self) -> None:
        sets = [make_set(rpe=r) for r in [7, 7.5, 8, 7, 7.5, 8, 7, 7.5, 1]]
        sets.append(make_set(rpe=10, reps=20))
        cleaned, report = self.pipeline.clean(sets)
        self.assertEqual(report.cleaned_count, len(cleaned))
        again, _ = self.pipeline.clean(cleaned)
        self.assertEqual(again, cleaned)

    def test_outlier_stage_needs_five_ratings(self) -> None:
        cleaned, _ = self.pipeline.clean([make_set(rpe=r) for r in [7, 7.5, 8, 1]])
        self.assertEqual(len(cleaned), 4)

    def test_outlier_stage_skipped_when_too_many_flagged(self) -> None:
        rpes = [7, 7.5, 8, 7, 1, 1]
        cleaned, report = self.pipeline.clean([make_set(rpe=r) for r in rpes])
        self.assertEqual(len(cleaned), 6)
        self.assertEqual(report.issues, [])

    def test_empty_input(self) -> None:
        cleaned, report = self.pipeline.clean([])
        self.assertEqual(cleaned, [])
        self.assertEqual(report.original_count, 0)
        self.assertEqual(report.quality, "excellent")

    def test_input_not_mutated(self) -> None:
        sets = [make_set(), make_set(reps=-1)]
        self.pipeline.clean(sets)
        self.assertEqual(len(sets), 2)


class PassthroughCleanerTestCase(unittest.TestCase):
    def test_returns_input(self) -> None:
        sets = [make_set(reps=-1)]
        cleaned, report = PassthroughCleaner().clean(sets)
        self.assertEqual(cleaned, sets)
        self.assertEqual(report.removed_count, 0)


if __name__ == "__main__":
    unittest.main()
