import math
from typing import Sequence

import numpy as np
import statsmodels.api as sm
from statsmodels.robust.norms import HuberT

from schemas import PerformancePrediction, PowerAnalysis, RobustRegressionResult
from .math_tools import MathTools


class TrendAnalysis:
    """Robust trend fitting, prediction intervals and power analysis."""

    HUBER_K: float = 1.345
    MEDIUM_EFFECT_SAMPLE_SIZE: int = 64

    @classmethod
    def robust_regression(cls, values: Sequence[float]) -> RobustRegressionResult:
        """Fit a Huber M-estimator line through ``values`` indexed 0..n-1."""
        if len(values) < 3:
            return RobustRegressionResult(
                slope=0.0,
                intercept=0.0,
                r_squared=0.0,
                robust_std_error=0.0,
                confidence=0.0,
                interpretation="stable",
            )
        y = np.asarray(values, dtype=float)
        x = np.arange(len(y), dtype=float)
        try:
            model = sm.RLM(y, sm.add_constant(x), M=HuberT(t=cls.HUBER_K)).fit()
            intercept, slope = (float(p) for p in model.params)
        except Exception:
            slope = intercept = math.nan
        if not (math.isfinite(slope) and math.isfinite(intercept)):
            # degenerate scale, e.g. an exact line
            slope, intercept = (float(p) for p in np.polyfit(x, y, 1))
        residuals = y - (slope * x + intercept)
        std_error = math.sqrt(float(np.sum(residuals ** 2)) / (len(y) - 2)) if len(y) > 2 else 0.0
        if std_error > 0:
            confidence = min(0.95, abs(slope) / std_error / 2)
        else:
            confidence = 0.95 if slope != 0 else 0.0

        interpretation = "stable"
        if slope < -0.15 and confidence > 0.7:
            interpretation = "sharp_decline"
        elif slope < -0.05 and confidence > 0.6:
            interpretation = "gradual_decline"
        elif slope > 0.05 and confidence > 0.6:
            interpretation = "improving"

        ss_tot = float(np.sum((y - y.mean()) ** 2))
        ss_res = float(np.sum(residuals ** 2))
        r_squared = max(0.0, 1 - ss_res / ss_tot) if ss_tot > 0 else 0.0
        return RobustRegressionResult(
            slope=slope,
            intercept=intercept,
            r_squared=r_squared,
            robust_std_error=std_error,
            confidence=confidence,
            interpretation=interpretation,
        )

    @staticmethod
    def predict_next_set_performance(history: Sequence[float]) -> PerformancePrediction:
        stats = MathTools.descriptive_stats(history)
        expected = stats.mean
        count = max(stats.count, 1)
        standard_error = stats.std_dev / math.sqrt(count)
        prediction_error = stats.std_dev * math.sqrt(1 + 1 / count)
        cv = MathTools.safe_div(stats.std_dev, abs(stats.mean), default=0.0)
        if cv < 0.1:
            uncertainty = "low"
            recommendation = "Low variability - performance is consistent. Ready for progressive overload."
        elif cv < 0.2:
            uncertainty = "medium"
            recommendation = "Moderate variability. Continue monitoring performance trends."
        else:
            uncertainty = "high"
            recommendation = "High variability detected. Focus on consistency before progression."
        return PerformancePrediction(
            expected_value=expected,
            prediction_interval=(expected - 1.96 * prediction_error, expected + 1.96 * prediction_error),
            confidence_interval=(expected - 1.96 * standard_error, expected + 1.96 * standard_error),
            uncertainty=uncertainty,
            recommendation=recommendation,
        )

    @classmethod
    def power_analysis(cls, sample_size: int, effect_size: float | None = None) -> PowerAnalysis:
        """Approximate power of a two-sample comparison at ``sample_size``."""
        effect = effect_size or 0.5
        n = max(sample_size, 0)
        ncp = effect * math.sqrt(n / 2)
        power = min(0.99, 1 / (1 + math.exp(-0.5 * (ncp - 2))))
        mde = 2.8 / math.sqrt(n) if n > 0 else math.inf
        needed = 0
        if power < 0.5:
            adequacy = "insufficient"
            needed = max(cls.MEDIUM_EFFECT_SAMPLE_SIZE - n, 0)
            recommendation = (
                f"Insufficient data (n={n}). Need {needed} more observations for reliable conclusions."
            )
        elif power < 0.8:
            adequacy = "adequate"
            recommendation = (
                f"Adequate data (n={n}, power={power * 100:.0f}%). "
                "Consider collecting more data for higher confidence."
            )
        else:
            adequacy = "excellent"
            recommendation = (
                f"Excellent data quality (n={n}, power={power * 100:.0f}%). Conclusions are reliable."
            )
        return PowerAnalysis(
            sample_size=n,
            minimum_detectable_effect=mde,
            power=power,
            adequacy=adequacy,
            additional_observations_needed=needed,
            recommendation=recommendation,
        )
