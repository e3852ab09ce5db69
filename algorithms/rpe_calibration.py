import datetime
import logging
from typing import Sequence

from schemas import (
    ExerciseRPEDifficulty,
    RPEAccuracyMetrics,
    RPECalibration,
    RPECalibrationProfile,
    SetObservation,
)
from .math_tools import MathTools

logger = logging.getLogger(__name__)


class RPECalibrator:
    """Bayesian tracking of the gap between prescribed and reported RPE."""

    MIN_PROFILE_SETS = 3
    MIN_SESSION_SETS = 2
    ADJUST_BIAS = 1.5
    ADJUST_CONFIDENCE = 0.65
    SESSION_ONLY_BIAS = 2.0
    SESSION_ONLY_CONSISTENT = 3
    CHANGE_PER_POINT = 0.04
    SESSION_ONLY_CHANGE_PER_POINT = 0.03
    MAX_DECREASE = -0.15
    MAX_INCREASE = 0.10
    OVERSHOOT_POINTS = 2.0

    @staticmethod
    def rated_sets(
        sets: Sequence[SetObservation], exercise_id: str | None = None
    ) -> list[SetObservation]:
        return [
            s
            for s in sets
            if s.completed
            and s.actual_rpe is not None
            and s.prescribed_rpe is not None
            and (exercise_id is None or s.exercise_id == exercise_id)
        ]

    @classmethod
    def deviations(
        cls, sets: Sequence[SetObservation], exercise_id: str | None = None
    ) -> list[float]:
        """Actual minus prescribed RPE for every rated, completed set."""
        return [s.actual_rpe - s.prescribed_rpe for s in cls.rated_sets(sets, exercise_id)]

    @staticmethod
    def profile_confidence(sample_size: int, bias_sd: float) -> float:
        return min(0.95, sample_size / 15) * min(1.0, 1 / (1 + bias_sd))

    @classmethod
    def build_rpe_profile(
        cls,
        exercise_id: str,
        history: Sequence[SetObservation],
        as_of: datetime.datetime,
    ) -> RPECalibrationProfile | None:
        """Summarize the historical bias for one exercise.

        Returns ``None`` with fewer than three rated sets. Deviations flagged by
        the modified z-score are excluded unless that leaves fewer than three,
        in which case the raw deviations are kept at a capped confidence.
        """
        raw = cls.deviations(history, exercise_id)
        if len(raw) < cls.MIN_PROFILE_SETS:
            return None

        clean = MathTools.detect_outliers_modified_z(raw).cleaned_data
        if len(clean) < cls.MIN_PROFILE_SETS:
            stats = MathTools.descriptive_stats(raw)
            return RPECalibrationProfile(
                exercise_id=exercise_id,
                historical_bias_mean=stats.mean,
                historical_bias_sd=stats.std_dev,
                sample_size=len(raw),
                last_updated=as_of,
                confidence=min(0.7, len(raw) / 20),
                credible_interval=(stats.mean - stats.std_dev, stats.mean + stats.std_dev),
            )

        stats = MathTools.descriptive_stats(clean)
        return RPECalibrationProfile(
            exercise_id=exercise_id,
            historical_bias_mean=stats.mean,
            historical_bias_sd=stats.std_dev,
            sample_size=len(clean),
            last_updated=as_of,
            confidence=cls.profile_confidence(len(clean), stats.std_dev),
            credible_interval=MathTools.confidence_interval(clean, 0.95),
        )

    @classmethod
    def update_rpe_profile(
        cls,
        profile: RPECalibrationProfile,
        sets: Sequence[SetObservation],
        as_of: datetime.datetime,
    ) -> RPECalibrationProfile:
        """Fold a new session into an existing profile."""
        new = cls.deviations(sets, profile.exercise_id)
        if not new:
            return profile
        posterior = MathTools.bayesian_mean_update(
            profile.historical_bias_mean,
            profile.historical_bias_sd,
            profile.sample_size,
            new,
        )
        sample_size = profile.sample_size + len(new)
        return profile.model_copy(
            update={
                "historical_bias_mean": posterior.posterior_mean,
                "historical_bias_sd": posterior.posterior_sd,
                "sample_size": sample_size,
                "last_updated": as_of,
                "confidence": cls.profile_confidence(sample_size, posterior.posterior_sd),
                "credible_interval": posterior.credible_interval,
            }
        )

    @classmethod
    def signed_change(cls, bias: float, per_point: float, scale: float = 1.0) -> float:
        """Weight change fraction; overshooting the target gives a reduction."""
        return MathTools.clamp(-bias * per_point * scale, cls.MAX_DECREASE, cls.MAX_INCREASE)

    @classmethod
    def analyze_rpe_calibration(
        cls,
        sets: Sequence[SetObservation],
        exercise_id: str | None = None,
        profile: RPECalibrationProfile | None = None,
    ) -> RPECalibration:
        devs = cls.deviations(sets, exercise_id)
        if len(devs) < cls.MIN_SESSION_SETS:
            return RPECalibration()

        bias = MathTools.mean(devs)
        overshoot = sum(1 for d in devs if d >= cls.OVERSHOOT_POINTS) >= 2
        undershoot = sum(1 for d in devs if d <= -cls.OVERSHOOT_POINTS) >= 2

        if profile is None:
            result = cls._session_only(bias, devs)
        else:
            result = cls._with_history(bias, devs, profile)
        logger.debug(
            f"RPE calibration for {exercise_id or 'session'}: bias {bias:.2f}, "
            f"adjust={result.needs_adjustment}"
        )
        return result.model_copy(
            update={
                "avg_deviation": bias,
                "consistent_overshoot": overshoot,
                "consistent_undershoot": undershoot,
            }
        )

    @classmethod
    def _with_history(
        cls, bias: float, devs: list[float], profile: RPECalibrationProfile
    ) -> RPECalibration:
        posterior = MathTools.bayesian_mean_update(
            profile.historical_bias_mean,
            profile.historical_bias_sd,
            profile.sample_size,
            devs,
        )
        post = posterior.posterior_mean
        confidence = posterior.confidence
        total = profile.sample_size + len(devs)

        if abs(post) > cls.ADJUST_BIAS and confidence > cls.ADJUST_CONFIDENCE:
            change = cls.signed_change(post, cls.CHANGE_PER_POINT, confidence)
            if post > 0:
                direction = "decrease"
                reasoning = (
                    f"Weight consistently too heavy. Posterior estimate: {abs(post):.1f} RPE "
                    f"points above target. Based on {total} total sets."
                )
                basis = (
                    "Helms et al. (2016): RPE-based auto-regulation - approximately 4% weight "
                    "change per RPE point. Bayesian inference provides robust estimate "
                    "accounting for uncertainty."
                )
            else:
                direction = "increase"
                reasoning = (
                    f"Weight consistently too light. Posterior estimate: {abs(post):.1f} RPE "
                    f"points below target. Based on {total} total sets."
                )
                basis = (
                    "Zourdos et al. (2016): RPE-based progression requires training near "
                    "target intensity. Bayesian analysis confirms systematic undershoot."
                )
            return RPECalibration(
                needs_adjustment=True,
                direction=direction,
                posterior_bias=post,
                suggested_change=abs(change),
                suggested_weight_change=change,
                reasoning=reasoning,
                confidence=confidence,
                credible_interval=posterior.credible_interval,
                scientific_basis=basis,
            )

        if abs(post) <= 1.0:
            reasoning = (
                "RPE calibration is accurate. Current bias within acceptable range "
                "(±1 RPE point)."
            )
        else:
            reasoning = (
                f"Bias detected ({post:.1f} RPE points), but confidence too low "
                f"({confidence * 100:.0f}%) to recommend change. Collect more data."
            )
        return RPECalibration(
            posterior_bias=post,
            reasoning=reasoning,
            confidence=confidence,
            credible_interval=posterior.credible_interval,
            scientific_basis=(
                "Helms et al. (2016): RPE variability is normal. Only systematic bias "
                "requires adjustment."
            ),
        )

    @classmethod
    def _session_only(cls, bias: float, devs: list[float]) -> RPECalibration:
        sd = MathTools.sample_std(devs)
        sign = (bias > 0) - (bias < 0)
        consistent = sum(1 for d in devs if ((d > 0) - (d < 0)) == sign)
        needs_adjustment = (
            abs(bias) >= cls.SESSION_ONLY_BIAS and consistent >= cls.SESSION_ONLY_CONSISTENT
        )
        direction = "good"
        change = 0.0
        if needs_adjustment:
            direction = "decrease" if bias > 0 else "increase"
            change = cls.signed_change(bias, cls.SESSION_ONLY_CHANGE_PER_POINT)
            confidence = min(0.75, consistent / 5)
            label = "overshoot" if direction == "decrease" else "undershoot"
            reasoning = (
                f"{consistent} sets with consistent {label} (avg {abs(bias):.1f} RPE points). "
                "Limited historical data - using conservative adjustment."
            )
        else:
            confidence = 0.3
            reasoning = (
                "Insufficient data for confident recommendation. Need more sets or "
                "historical context."
            )
        return RPECalibration(
            needs_adjustment=needs_adjustment,
            direction=direction,
            posterior_bias=bias,
            suggested_change=abs(change),
            suggested_weight_change=change,
            reasoning=reasoning,
            confidence=confidence,
            credible_interval=(bias - sd, bias + sd),
            scientific_basis=(
                "Helms et al. (2016): RPE-based load prescription requires systematic "
                "patterns. Single-session data treated conservatively."
            ),
        )

    @classmethod
    def calculate_rpe_accuracy(
        cls, sets: Sequence[SetObservation], exercise_id: str | None = None
    ) -> RPEAccuracyMetrics:
        devs = cls.deviations(sets, exercise_id)
        if not devs:
            return RPEAccuracyMetrics(
                mean_absolute_error=0.0,
                root_mean_squared_error=0.0,
                calibration_score=50.0,
                consistency_score=50.0,
                outlier_rate=0.0,
                sample_size=0,
            )
        mae = MathTools.mean([abs(d) for d in devs])
        rmse = MathTools.mean([d * d for d in devs]) ** 0.5
        outliers = MathTools.detect_outliers_modified_z(devs)
        return RPEAccuracyMetrics(
            mean_absolute_error=mae,
            root_mean_squared_error=rmse,
            calibration_score=max(0.0, 100 * (1 - mae / 3)),
            consistency_score=max(0.0, 100 * (1 - MathTools.sample_std(devs) / 3)),
            outlier_rate=len(outliers.outlier_indices) / len(devs),
            sample_size=len(devs),
        )

    @staticmethod
    def interpret_rpe_accuracy(metrics: RPEAccuracyMetrics) -> tuple[str, str]:
        """Return a rating (excellent/good/fair/poor) and feedback text."""
        if metrics.calibration_score >= 85 and metrics.consistency_score >= 80:
            return (
                "excellent",
                "Your RPE accuracy is excellent! You have strong awareness of your exertion "
                "levels and consistent execution.",
            )
        if metrics.calibration_score >= 70 and metrics.consistency_score >= 65:
            return (
                "good",
                "Good RPE accuracy. Minor deviations are normal and your calibration is solid.",
            )
        if metrics.calibration_score >= 50 or metrics.consistency_score >= 50:
            return (
                "fair",
                f"Fair RPE accuracy (MAE: {metrics.mean_absolute_error:.1f}). Consider recording "
                "videos to review form and effort levels, or adjust your load selection.",
            )
        return (
            "poor",
            f"RPE calibration needs improvement (MAE: {metrics.mean_absolute_error:.1f}). "
            "Weights may be consistently too heavy or light. Review your RPE scale "
            "understanding and consider more conservative load selection.",
        )

    @classmethod
    def assess_exercise_rpe_difficulty(
        cls, exercise_id: str, history: Sequence[SetObservation]
    ) -> ExerciseRPEDifficulty:
        metrics = cls.calculate_rpe_accuracy(history, exercise_id)
        score = 100 - (metrics.calibration_score + metrics.consistency_score) / 2
        if score < 20:
            difficulty = "easy_to_rate"
            recommendation = "RPE is reliable here; about 8 sets are enough to calibrate."
        elif score < 40:
            difficulty = "moderate"
            recommendation = "Allow roughly 12 sets before trusting RPE-based adjustments."
        else:
            difficulty = "hard_to_rate"
            recommendation = (
                "RPE is hard to judge on this exercise; collect 20-30 sets and lean on "
                "rep targets until ratings stabilize."
            )
        return ExerciseRPEDifficulty(
            exercise_id=exercise_id,
            difficulty=difficulty,
            mean_absolute_error=metrics.mean_absolute_error,
            recommendation=recommendation,
        )
