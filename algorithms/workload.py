import datetime
import math
from typing import Sequence

from schemas import (
    AdaptiveRecoveryProfile,
    FitnessFatigueModel,
    PerformanceForecast,
    RecoveryObservation,
    SetObservation,
    WorkoutLoad,
    WorkloadMetrics,
)
from .math_tools import MathTools
from .weight_converter import WeightConverter

ACWR_GUIDANCE = {
    "detraining": (
        "Training volume too low. Increase training frequency or intensity to maintain adaptations.",
        "Schoenfeld et al. (2016): Minimum effective dose - at least 10 sets per muscle per week needed for growth.",
    ),
    "maintaining": (
        "Maintenance phase. Sufficient to preserve adaptations but insufficient for optimal progress.",
        "Hulin et al. (2016): ACWR <0.8 maintains but does not build fitness.",
    ),
    "optimal": (
        "Optimal training load. Well-positioned for continued adaptation with minimal injury risk.",
        'Hulin et al. (2016): ACWR 0.8-1.3 represents the "sweet spot" - maximal adaptation, minimal risk.',
    ),
    "building": (
        "Progressive overload zone. Monitor for fatigue accumulation and ensure adequate recovery.",
        "Gabbett (2016): ACWR 1.3-1.5 builds fitness but requires careful fatigue management.",
    ),
    "overreaching": (
        "Functional overreaching. Acute spike in load - ensure deload within 1-2 weeks to avoid maladaptation.",
        "Meeusen et al. (2013): Short-term overreaching can boost adaptation if followed by recovery.",
    ),
    "danger": (
        "DANGER: Excessive acute load spike. Very high injury risk. Implement immediate deload (50% volume reduction).",
        "Hulin et al. (2016): ACWR >2.0 associated with 2-4x injury risk. Immediate intervention required.",
    ),
}

BASE_RECOVERY_HOURS = {
    "chest": 48,
    "back": 48,
    "shoulders": 36,
    "quads": 72,
    "hamstrings": 72,
    "triceps": 36,
    "biceps": 36,
    "calves": 24,
    "abs": 24,
}


class Workload:
    """Fitness-fatigue impulse response, ACWR and recovery readiness."""

    FITNESS_TAU = 7.0
    FATIGUE_TAU = 2.0
    FITNESS_GAIN = 1.0
    FATIGUE_GAIN = 2.0
    MONOTONY_WARNING = 2.5
    ACUTE_DAYS = 7
    CHRONIC_DAYS = 28

    @staticmethod
    def normalize_performance(raw: float) -> float:
        """Map fitness minus fatigue from [-100, 200] onto [0, 100]."""
        return MathTools.clamp((raw + 100) / 300 * 100, 0.0, 100.0)

    @classmethod
    def update_fitness_fatigue_model(
        cls,
        previous: FitnessFatigueModel | None,
        muscle_group: str,
        training_load: float,
        days_since_last: float,
        trained_at: datetime.datetime,
        user_id: str = "",
        fitness_tau: float | None = None,
        fatigue_tau: float | None = None,
    ) -> FitnessFatigueModel:
        """Decay the previous state by the elapsed days, then add the new load."""
        if previous is None:
            previous = FitnessFatigueModel(
                user_id=user_id,
                muscle_group=muscle_group,
                fitness_decay=fitness_tau or cls.FITNESS_TAU,
                fatigue_decay=fatigue_tau or cls.FATIGUE_TAU,
                fitness_gain=cls.FITNESS_GAIN,
                fatigue_gain=cls.FATIGUE_GAIN,
            )
            confidence = 0.5
        else:
            confidence = min(0.95, previous.confidence + 0.05)

        days = max(days_since_last, 0.0)
        fitness = previous.current_fitness * math.exp(-days / previous.fitness_decay)
        fatigue = previous.current_fatigue * math.exp(-days / previous.fatigue_decay)
        fitness += previous.fitness_gain * training_load
        fatigue += previous.fatigue_gain * training_load

        return previous.model_copy(
            update={
                "user_id": previous.user_id or user_id,
                "muscle_group": muscle_group,
                "current_fitness": min(100.0, fitness),
                "current_fatigue": min(100.0, fatigue),
                "net_performance": cls.normalize_performance(fitness - fatigue),
                "last_trained": trained_at,
                "confidence": confidence,
            }
        )

    @staticmethod
    def training_load(sets: Sequence[SetObservation]) -> float:
        """Sum of reps x pounds x RPE/10, failure sets weighted 1.5x, per 1000."""
        total = 0.0
        for s in sets:
            if not s.completed or not s.actual_reps or not s.actual_weight:
                continue
            intensity = (s.actual_rpe or 7) / 10
            effort = 1.5 if s.reached_failure else 1.0
            total += s.actual_reps * WeightConverter.set_weight_lb(s) * intensity * effort
        return total / 1000

    @staticmethod
    def classify_acwr(acwr: float) -> str:
        if acwr < 0.5:
            return "detraining"
        if acwr < 0.8:
            return "maintaining"
        if acwr <= 1.3:
            return "optimal"
        if acwr <= 1.5:
            return "building"
        if acwr <= 2.0:
            return "overreaching"
        return "danger"

    @classmethod
    def calculate_acwr(
        cls,
        workouts: Sequence[WorkoutLoad],
        as_of: datetime.datetime | None = None,
    ) -> WorkloadMetrics:
        if as_of is None:
            as_of = max((w.date for w in workouts), default=None)
        if as_of is None:
            acute = chronic_total = 0.0
            chronic_loads: list[float] = []
        else:
            acute_start = as_of - datetime.timedelta(days=cls.ACUTE_DAYS)
            chronic_start = as_of - datetime.timedelta(days=cls.CHRONIC_DAYS)
            acute = sum(w.load for w in workouts if acute_start < w.date <= as_of)
            chronic_loads = [w.load for w in workouts if chronic_start < w.date <= as_of]
            chronic_total = sum(chronic_loads)

        chronic = chronic_total / 4
        acwr = acute / chronic if chronic > 0 else 1.0
        stats = MathTools.descriptive_stats(chronic_loads)
        monotony = stats.mean / stats.std_dev if stats.std_dev > 0 else 1.0
        status = cls.classify_acwr(acwr)
        recommendation, basis = ACWR_GUIDANCE[status]
        if monotony > cls.MONOTONY_WARNING:
            recommendation += (
                " WARNING: High training monotony detected - add variation to prevent maladaptation."
            )
        return WorkloadMetrics(
            acute_load=acute,
            chronic_load=chronic,
            chronic_total=chronic_total,
            acwr=acwr,
            monotony=monotony,
            strain=chronic_total * monotony,
            status=status,
            recommendation=recommendation,
            scientific_basis=basis,
        )

    @staticmethod
    def build_adaptive_recovery_profile(
        muscle_group: str,
        recent: Sequence[RecoveryObservation],
        as_of: datetime.datetime,
    ) -> AdaptiveRecoveryProfile:
        base_hours = float(BASE_RECOVERY_HOURS.get(muscle_group.lower(), 48))
        if len(recent) < 5:
            return AdaptiveRecoveryProfile(
                muscle_group=muscle_group,
                personalized_recovery_hours=base_hours,
                readiness_score=7.0,
                recovery_percentage=70.0,
                estimated_full_recovery=as_of + datetime.timedelta(hours=base_hours),
                chronic_fatigue_penalty=0.0,
                training_age_months=0.0,
                adaptation_rate=1.0,
                confidence=0.3,
            )

        ordered = sorted(recent, key=lambda r: r.date)
        full_recovery_times = []
        for prev, curr in zip(ordered, ordered[1:]):
            hours = (curr.date - prev.date).total_seconds() / 3600
            if curr.perceived_recovery > 0.5:
                full_recovery_times.append(hours / curr.perceived_recovery)
        median = MathTools.descriptive_stats(full_recovery_times).median
        personal_hours = median if median > 0 else base_hours

        trend = MathTools.detect_trend(MathTools.ema([r.load for r in ordered], 0.3))
        penalty = 0.0
        if trend.trend == "increasing" and trend.slope > 5:
            penalty = min(24.0, trend.slope * 2)

        training_age = (ordered[-1].date - ordered[0].date).total_seconds() / (86400 * 30)
        hours_since = max(0.0, (as_of - ordered[-1].date).total_seconds() / 3600)
        adjusted = personal_hours + penalty
        recovery_pct = min(100.0, hours_since / adjusted * 100)
        readiness = MathTools.clamp(recovery_pct / 10 - penalty / 10, 1.0, 10.0)
        remaining = max(0.0, adjusted - hours_since)
        return AdaptiveRecoveryProfile(
            muscle_group=muscle_group,
            personalized_recovery_hours=adjusted,
            readiness_score=readiness,
            recovery_percentage=recovery_pct,
            estimated_full_recovery=as_of + datetime.timedelta(hours=remaining),
            chronic_fatigue_penalty=penalty,
            training_age_months=training_age,
            adaptation_rate=base_hours / personal_hours,
            confidence=min(0.9, len(ordered) / 20),
        )

    @staticmethod
    def predict_performance(profile: AdaptiveRecoveryProfile) -> PerformanceForecast:
        expected = 100.0
        if profile.recovery_percentage < 100:
            expected = 100 * (profile.recovery_percentage / 100) ** 1.5
        if profile.chronic_fatigue_penalty > 12:
            expected *= 0.85
        if profile.readiness_score >= 7 and expected >= 90:
            return PerformanceForecast(
                expected_performance=expected,
                recommendation="proceed",
                reasoning="Full recovery achieved. Ready for high-quality training.",
            )
        if profile.readiness_score >= 5 and expected >= 75:
            return PerformanceForecast(
                expected_performance=expected,
                recommendation="reduce_load",
                reasoning=(
                    f"Partial recovery ({profile.recovery_percentage:.0f}%). Reduce load by "
                    f"{round((100 - expected) * 0.5)}% or volume by 20-30%."
                ),
            )
        return PerformanceForecast(
            expected_performance=expected,
            recommendation="skip",
            reasoning=(
                f"Insufficient recovery (readiness {profile.readiness_score:.1f}/10). Risk of "
                "maladaptation and injury. Rest or train different muscle group."
            ),
        )
