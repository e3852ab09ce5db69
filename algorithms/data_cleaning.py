import logging
from typing import Sequence

from schemas import DataQualityIssue, DataQualityReport, SetObservation
from .math_tools import MathTools

logger = logging.getLogger(__name__)


class DataCleaner:
    """Base class for set-observation cleaning strategies."""

    def clean(
        self, sets: Sequence[SetObservation]
    ) -> tuple[list[SetObservation], DataQualityReport]:
        raise NotImplementedError()


class PassthroughCleaner(DataCleaner):
    """Returns the input untouched."""

    def clean(
        self, sets: Sequence[SetObservation]
    ) -> tuple[list[SetObservation], DataQualityReport]:
        data = list(sets)
        return data, DataQualityReport(
            original_count=len(data),
            cleaned_count=len(data),
            recommendation="Data cleaning disabled.",
        )


class DataQualityPipeline(DataCleaner):
    """Three-stage filter: impossible values, RPE outliers, implausible combinations."""

    MAX_REPS = 100
    MAX_WEIGHT = 2000.0
    MIN_OUTLIER_SAMPLE = 5

    def __init__(
        self,
        outlier_threshold: float = MathTools.MODIFIED_Z_THRESHOLD,
        max_outlier_fraction: float = 0.3,
    ) -> None:
        self.outlier_threshold = outlier_threshold
        self.max_outlier_fraction = max_outlier_fraction

    @classmethod
    def is_possible(cls, s: SetObservation) -> bool:
        if s.actual_reps is None or s.actual_reps <= 0 or s.actual_reps > cls.MAX_REPS:
            return False
        if s.actual_weight is not None and (s.actual_weight < 0 or s.actual_weight > cls.MAX_WEIGHT):
            return False
        if s.actual_rpe is not None and (s.actual_rpe < 0 or s.actual_rpe > 10):
            return False
        return True

    @staticmethod
    def is_plausible(s: SetObservation) -> bool:
        if s.actual_rpe == 10 and s.actual_reps is not None and s.actual_reps > 15:
            return False
        if s.reached_failure and s.actual_rpe is not None and s.actual_rpe < 6:
            return False
        return True

    def _remove_outliers(self, sets: list[SetObservation]) -> tuple[list[SetObservation], int]:
        """Strip modified-z outliers until none remain, or skip if that exceeds the cap."""
        current = list(sets)
        removed = 0
        limit = len(sets) * self.max_outlier_fraction
        while len(current) >= self.MIN_OUTLIER_SAMPLE:
            rated = [i for i, s in enumerate(current) if s.actual_rpe is not None]
            if len(rated) < self.MIN_OUTLIER_SAMPLE:
                break
            analysis = MathTools.detect_outliers_modified_z(
                [current[i].actual_rpe for i in rated], self.outlier_threshold
            )
            flagged = {rated[i] for i in analysis.outlier_indices}
            if not flagged:
                break
            if removed + len(flagged) >= limit:
                # too many outliers: the sample itself is suspect, skip the stage
                return list(sets), 0
            current = [s for i, s in enumerate(current) if i not in flagged]
            removed += len(flagged)
        return current, removed

    def _single_pass(
        self, sets: list[SetObservation]
    ) -> tuple[list[SetObservation], int, int, int]:
        possible = [s for s in sets if self.is_possible(s)]
        current, outliers = self._remove_outliers(possible)
        plausible = [s for s in current if self.is_plausible(s)]
        return (
            plausible,
            len(sets) - len(possible),
            outliers,
            len(current) - len(plausible),
        )

    def clean(
        self, sets: Sequence[SetObservation]
    ) -> tuple[list[SetObservation], DataQualityReport]:
        """Run the stages until a pass removes nothing, so cleaned data is a fixed point."""
        original_count = len(sets)
        impossible = outliers = implausible = 0
        current = list(sets)
        while True:
            current, *counts = self._single_pass(current)
            impossible += counts[0]
            outliers += counts[1]
            implausible += counts[2]
            if not any(counts):
                break

        issues: list[DataQualityIssue] = []
        if impossible:
            issues.append(
                DataQualityIssue(
                    type="impossible_value",
                    count=impossible,
                    description=f"Removed {impossible} sets with physically impossible values",
                )
            )
        if outliers:
            issues.append(
                DataQualityIssue(
                    type="statistical_outlier",
                    count=outliers,
                    description=f"Removed {outliers} statistical outliers",
                )
            )
        if implausible:
            issues.append(
                DataQualityIssue(
                    type="physiologically_implausible",
                    count=implausible,
                    description=f"Removed {implausible} sets with physiologically unlikely combinations",
                )
            )

        removed = original_count - len(current)
        removal_rate = MathTools.safe_div(removed, original_count)
        if removal_rate < 0.1:
            quality = "excellent"
            recommendation = "Data quality is excellent. Minimal cleaning required."
        elif removal_rate < 0.25:
            quality = "good"
            recommendation = "Data quality is good. Some anomalies detected and removed."
        else:
            quality = "poor"
            recommendation = "Data quality concerns detected. Consider reviewing data entry procedures."
        if removed:
            logger.debug(f"Data cleaning removed {removed} of {original_count} sets")
        return current, DataQualityReport(
            original_count=original_count,
            cleaned_count=len(current),
            removed_count=removed,
            issues=issues,
            quality=quality,
            recommendation=recommendation,
        )
