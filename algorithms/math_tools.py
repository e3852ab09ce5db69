import math
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from schemas import (
    BayesianPosterior,
    DescriptiveStats,
    OutlierAnalysis,
    TrendResult,
)


class MathTools:
    """Provides the statistical primitives used by the fatigue models."""

    MAD_SCALE: float = 0.6745
    MODIFIED_Z_THRESHOLD: float = 3.5
    Z_CRITICAL: dict[float, float] = {
        0.90: 1.645,
        0.95: 1.96,
        0.99: 2.576,
        0.999: 3.291,
    }
    TREND_SLOPE_THRESHOLD: float = 0.05

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
        """Divide, returning ``default`` for zero or non-finite results."""
        if denominator == 0 or not math.isfinite(denominator):
            return default
        result = numerator / denominator
        return result if math.isfinite(result) else default

    @staticmethod
    def mean(values: Sequence[float]) -> float:
        return float(np.mean(values)) if len(values) else 0.0

    @staticmethod
    def sample_variance(values: Sequence[float]) -> float:
        """Unbiased variance, 0.0 for fewer than two values."""
        if len(values) < 2:
            return 0.0
        return float(np.var(values, ddof=1))

    @staticmethod
    def sample_std(values: Sequence[float]) -> float:
        return math.sqrt(MathTools.sample_variance(values))

    @staticmethod
    def percentile(sorted_values: Sequence[float], p: float) -> float:
        """Linear-interpolated percentile of an already sorted sequence."""
        if not sorted_values:
            return 0.0
        if len(sorted_values) == 1:
            return float(sorted_values[0])
        index = (p / 100) * (len(sorted_values) - 1)
        lower = math.floor(index)
        upper = math.ceil(index)
        weight = index - lower
        return float(sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight)

    @classmethod
    def descriptive_stats(cls, values: Iterable[float]) -> DescriptiveStats:
        data = [float(v) for v in values]
        if not data:
            return DescriptiveStats()
        ordered = sorted(data)
        variance = cls.sample_variance(data)
        q1 = cls.percentile(ordered, 25)
        q3 = cls.percentile(ordered, 75)
        return DescriptiveStats(
            mean=cls.mean(data),
            median=float(np.median(data)),
            std_dev=math.sqrt(variance),
            variance=variance,
            min=ordered[0],
            max=ordered[-1],
            count=len(data),
            q1=q1,
            q3=q3,
            iqr=q3 - q1,
        )

    @staticmethod
    def z_score(value: float, mean: float, std_dev: float) -> float:
        if std_dev == 0:
            return 0.0
        return (value - mean) / std_dev

    @staticmethod
    def z_to_percentile(z: float) -> float:
        """Convert a z-score to a percentile via the normal CDF."""
        return 50.0 * (1.0 + math.erf(z / math.sqrt(2.0)))

    @staticmethod
    def normalize_to_percentile(value: float, values: Sequence[float]) -> float:
        """Share of ``values`` at or below ``value``, 0-100; empty history is the median."""
        if not len(values):
            return 50.0
        return sum(1 for v in values if v <= value) / len(values) * 100

    @classmethod
    def normalize_z_score(cls, value: float, values: Sequence[float]) -> float:
        stats = cls.descriptive_stats(values)
        z = cls.z_score(value, stats.mean, stats.std_dev)
        return cls.clamp(cls.z_to_percentile(z), 0.0, 100.0)

    @classmethod
    def modified_z_scores(cls, values: Sequence[float]) -> list[float]:
        """Median/MAD based z-scores; a zero MAD yields all zeros."""
        if not len(values):
            return []
        data = np.asarray(values, dtype=float)
        median = float(np.median(data))
        mad = float(np.median(np.abs(data - median)))
        if mad == 0:
            return [0.0 for _ in values]
        return [float(cls.MAD_SCALE * (x - median) / mad) for x in data]

    @classmethod
    def detect_outliers_modified_z(
        cls, values: Sequence[float], threshold: float | None = None
    ) -> OutlierAnalysis:
        limit = cls.MODIFIED_Z_THRESHOLD if threshold is None else threshold
        scores = cls.modified_z_scores(values)
        indices = [i for i, z in enumerate(scores) if abs(z) > limit]
        flagged = set(indices)
        median = float(np.median(values)) if len(values) else 0.0
        mad = float(np.median(np.abs(np.asarray(values, dtype=float) - median))) if len(values) else 0.0
        spread = limit * mad / cls.MAD_SCALE
        return OutlierAnalysis(
            outliers=[float(values[i]) for i in indices],
            outlier_indices=indices,
            cleaned_data=[float(v) for i, v in enumerate(values) if i not in flagged],
            lower_bound=median - spread,
            upper_bound=median + spread,
        )

    @classmethod
    def detect_outliers_iqr(cls, values: Sequence[float], multiplier: float = 1.5) -> OutlierAnalysis:
        if len(values) < 4:
            return OutlierAnalysis(cleaned_data=[float(v) for v in values])
        stats = cls.descriptive_stats(values)
        lower = stats.q1 - multiplier * stats.iqr
        upper = stats.q3 + multiplier * stats.iqr
        indices = [i for i, v in enumerate(values) if v < lower or v > upper]
        flagged = set(indices)
        return OutlierAnalysis(
            outliers=[float(values[i]) for i in indices],
            outlier_indices=indices,
            cleaned_data=[float(v) for i, v in enumerate(values) if i not in flagged],
            lower_bound=lower,
            upper_bound=upper,
        )

    @classmethod
    def confidence_interval(
        cls, values: Sequence[float], level: float = 0.95
    ) -> tuple[float, float]:
        if not len(values):
            return (0.0, 0.0)
        mean = cls.mean(values)
        if len(values) < 2:
            return (mean, mean)
        z = cls.Z_CRITICAL.get(level, 1.96)
        margin = z * cls.sample_std(values) / math.sqrt(len(values))
        return (mean - margin, mean + margin)

    @classmethod
    def bayesian_mean_update(
        cls,
        prior_mean: float,
        prior_sd: float,
        prior_n: int,
        data: Sequence[float],
    ) -> BayesianPosterior:
        """Merge a prior mean with new observations weighted by sample size."""
        if not len(data):
            return BayesianPosterior(
                posterior_mean=prior_mean,
                posterior_sd=prior_sd,
                credible_interval=(prior_mean - 1.96 * prior_sd, prior_mean + 1.96 * prior_sd),
                confidence=0.5,
            )
        data_n = len(data)
        data_mean = cls.mean(data)
        data_var = cls.sample_variance(data)
        total_n = prior_n + data_n
        posterior_mean = (prior_mean * prior_n + data_mean * data_n) / total_n
        pooled_var = (
            prior_sd ** 2 * max(prior_n - 1, 0)
            + data_var * max(data_n - 1, 0)
            + (prior_n * data_n / total_n) * (data_mean - prior_mean) ** 2
        ) / max(total_n - 1, 1)
        posterior_sd = math.sqrt(max(pooled_var, 0.0))
        margin = 1.96 * posterior_sd / math.sqrt(total_n)
        return BayesianPosterior(
            posterior_mean=posterior_mean,
            posterior_sd=posterior_sd,
            credible_interval=(posterior_mean - margin, posterior_mean + margin),
            confidence=min(0.95, 1 - 1 / math.sqrt(total_n)),
        )

    @staticmethod
    def ema(values: Iterable[float], alpha: float = 0.3) -> list[float]:
        series = pd.Series(list(values), dtype=float)
        if series.empty:
            return []
        return [float(v) for v in series.ewm(alpha=alpha, adjust=False).mean()]

    @staticmethod
    def simple_moving_average(values: Iterable[float], window: int) -> list[float]:
        if window <= 0:
            raise ValueError("window must be positive")
        series = pd.Series(list(values), dtype=float)
        return [float(v) for v in series.rolling(window).mean().dropna()]

    @classmethod
    def detect_trend(cls, values: Sequence[float]) -> TrendResult:
        if len(values) < 2:
            return TrendResult(slope=0.0, intercept=0.0, r_squared=0.0, trend="stable")
        y = np.asarray(values, dtype=float)
        x = np.arange(len(y), dtype=float)
        slope, intercept = np.polyfit(x, y, 1)
        fitted = slope * x + intercept
        ss_res = float(np.sum((y - fitted) ** 2))
        ss_tot = float(np.sum((y - y.mean()) ** 2))
        r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
        if slope > cls.TREND_SLOPE_THRESHOLD:
            trend = "increasing"
        elif slope < -cls.TREND_SLOPE_THRESHOLD:
            trend = "decreasing"
        else:
            trend = "stable"
        return TrendResult(
            slope=float(slope),
            intercept=float(intercept),
            r_squared=float(r_squared),
            trend=trend,
        )

    @classmethod
    def cohens_d(cls, group1: Sequence[float], group2: Sequence[float]) -> float:
        """Standardized mean difference using the average of sample variances."""
        if not len(group1) or not len(group2):
            return 0.0
        diff = cls.mean(group2) - cls.mean(group1)
        pooled = math.sqrt((cls.sample_variance(group1) + cls.sample_variance(group2)) / 2)
        if pooled == 0:
            return 0.0 if diff == 0 else math.copysign(math.inf, diff)
        return diff / pooled

    @staticmethod
    def interpret_effect_size(d: float) -> str:
        magnitude = abs(d)
        if magnitude < 0.2:
            return "negligible"
        if magnitude < 0.5:
            return "small"
        if magnitude < 0.8:
            return "medium"
        return "large"
