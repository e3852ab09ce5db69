import math
from typing import Sequence

from schemas import ChangePoint
from .math_tools import MathTools


class ChangePointDetector:
    """Base class for abrupt-shift detectors over a numeric series."""

    def detect(self, values: Sequence[float]) -> list[ChangePoint]:
        raise NotImplementedError()


class NullChangePointDetector(ChangePointDetector):
    def detect(self, values: Sequence[float]) -> list[ChangePoint]:
        return []


class CusumChangePointDetector(ChangePointDetector):
    """Two-sided CUSUM with a Cohen's d significance check on each split."""

    MIN_POINTS = 4
    MIN_SEGMENT = 2
    THRESHOLD_SD = 1.5
    MIN_EFFECT = 0.5
    MAX_CONFIDENCE = 0.95

    def _test_split(self, data: list[float], split: int) -> ChangePoint | None:
        before = data[:split]
        after = data[split:]
        if len(before) < self.MIN_SEGMENT or len(after) < self.MIN_SEGMENT:
            return None
        before_mean = MathTools.mean(before)
        after_mean = MathTools.mean(after)
        effect = abs(MathTools.cohens_d(before, after))
        if effect <= self.MIN_EFFECT:
            return None
        confidence = self.MAX_CONFIDENCE if math.isinf(effect) else min(self.MAX_CONFIDENCE, effect / 2)
        return ChangePoint(
            index=split,
            magnitude=abs(after_mean - before_mean),
            direction="increase" if after_mean > before_mean else "decrease",
            confidence=confidence,
            before_mean=before_mean,
            after_mean=after_mean,
        )

    def detect(self, values: Sequence[float]) -> list[ChangePoint]:
        data = [float(v) for v in values]
        if len(data) < self.MIN_POINTS:
            return []
        mean = MathTools.mean(data)
        threshold = self.THRESHOLD_SD * MathTools.sample_std(data)
        if threshold <= 0:
            return []

        points: dict[int, ChangePoint] = {}
        cum = 0.0
        low, low_at = 0.0, -1
        high, high_at = 0.0, -1
        for i, x in enumerate(data):
            cum += x - mean
            if cum - low > threshold:
                found = self._test_split(data, low_at + 1)
                if found is not None:
                    points.setdefault(found.index, found)
                low, low_at = cum, i
            if high - cum > threshold:
                found = self._test_split(data, high_at + 1)
                if found is not None:
                    points.setdefault(found.index, found)
                high, high_at = cum, i
            if cum < low:
                low, low_at = cum, i
            if cum > high:
                high, high_at = cum, i
        return [points[k] for k in sorted(points)]


def is_critical_moment(point: ChangePoint, series_length: int, window: int = 2) -> bool:
    """True when the shift started within the last ``window`` observations."""
    return series_length - point.index <= window


def interpret_change_points(points: Sequence[ChangePoint], metric: str) -> str:
    if not points:
        return f"No significant changes detected in {metric}."
    critical = [p for p in points if p.confidence > 0.7 and p.magnitude > 1.0]
    if not critical:
        return f"Minor fluctuations in {metric}, within normal variation."
    latest = critical[-1]
    verb = "increased" if latest.direction == "increase" else "decreased"
    return (
        f"Sudden change in {metric} at observation {latest.index + 1}: {metric} {verb} "
        f"from {latest.before_mean:.1f} to {latest.after_mean:.1f} "
        f"({latest.confidence * 100:.0f}% confidence)."
    )
