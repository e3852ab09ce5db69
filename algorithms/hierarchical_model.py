import logging
import math
from typing import Sequence

from schemas import (
    ChangePoint,
    CriticalMoment,
    ExerciseFactor,
    FatiguePrediction,
    HierarchicalFatigueModel,
    HistoricalWorkout,
    PersonalizedAssessment,
    SetObservation,
)
from .change_points import is_critical_moment
from .math_tools import MathTools

logger = logging.getLogger(__name__)


class HierarchicalModeler:
    """Empirical-Bayes user/exercise/session fatigue model.

    User traits (fatigue resistance, recovery rate) come from the whole
    history, exercise rates are shrunk toward the population rate with a
    weight of ``n / (n + shrinkage_strength)``, and the session level is
    updated online set by set.
    """

    POPULATION_FATIGUE_RATE = 0.15
    DEFAULT_VARIANCE = 2.0
    SESSION_RATE = 0.05
    RESISTANCE_EFFECT = 0.3
    MIN_SETS_PER_EXERCISE = 3

    def __init__(
        self,
        population_rate: float = POPULATION_FATIGUE_RATE,
        shrinkage_strength: float = 10.0,
        min_workouts: int = 3,
        min_sets: int = 30,
    ) -> None:
        self.population_rate = population_rate
        self.shrinkage_strength = shrinkage_strength
        self.min_workouts = min_workouts
        self.min_sets = min_sets

    def can_use(self, workouts: Sequence[HistoricalWorkout]) -> bool:
        if len(workouts) < self.min_workouts:
            return False
        total = sum(len(ex.sets) for w in workouts for ex in w.exercises)
        return total >= self.min_sets

    def shrink(self, raw_rate: float, sample_size: int) -> float:
        """Pull ``raw_rate`` toward the population rate; weight grows with n."""
        weight = sample_size / (sample_size + self.shrinkage_strength)
        return weight * raw_rate + (1 - weight) * self.population_rate

    @staticmethod
    def fatigue_resistance(sets: Sequence[SetObservation]) -> float:
        """0-100 score of how well reps and RPE hold up across a set group."""
        if len(sets) < 5:
            return 50.0
        groups: list[list[SetObservation]] = []
        for s in sets:
            if not s.completed:
                continue
            if groups and groups[-1][0].exercise_id == s.exercise_id:
                groups[-1].append(s)
            else:
                groups.append([s])

        scores: list[float] = []
        for group in groups:
            if len(group) < 3:
                continue
            first, last = group[0], group[-1]
            if first.actual_reps and last.actual_reps and first.actual_weight == last.actual_weight:
                drop = (first.actual_reps - last.actual_reps) / first.actual_reps
                scores.append(max(0.0, 100 * (1 - drop * 2)))
            if first.actual_rpe and last.actual_rpe:
                increase = last.actual_rpe - first.actual_rpe
                scores.append(max(0.0, 100 - increase * 15))
        if not scores:
            return 50.0
        return MathTools.clamp(MathTools.mean(scores), 0.0, 100.0)

    @staticmethod
    def recovery_rate(workouts: Sequence[HistoricalWorkout]) -> float:
        """First-set rep ratio between sessions, normalized by days apart."""
        if len(workouts) < 3:
            return 1.0
        scores: list[float] = []
        for prev, curr in zip(workouts, workouts[1:]):
            days = (curr.date - prev.date).total_seconds() / 86400
            if days < 1 or days > 14:
                continue
            current = {ex.exercise_id: ex for ex in curr.exercises}
            for prev_ex in prev.exercises:
                curr_ex = current.get(prev_ex.exercise_id)
                if curr_ex is None:
                    continue
                prev_first = next((s for s in prev_ex.sets if s.completed), None)
                curr_first = next((s for s in curr_ex.sets if s.completed), None)
                if prev_first is None or curr_first is None:
                    continue
                if not prev_first.actual_reps or not curr_first.actual_reps:
                    continue
                if prev_first.actual_weight != curr_first.actual_weight:
                    continue
                ratio = curr_first.actual_reps / prev_first.actual_reps
                scores.append(ratio / (1 + 0.02 * days))
        if not scores:
            return 1.0
        return MathTools.clamp(MathTools.mean(scores), 0.5, 1.5)

    def accumulation_rate(self, sets: Sequence[SetObservation]) -> float:
        """Raw per-set fatigue rate from consecutive RPE increases."""
        if len(sets) < self.MIN_SETS_PER_EXERCISE:
            return self.population_rate
        increases = [
            curr.actual_rpe - prev.actual_rpe
            for prev, curr in zip(sets, sets[1:])
            if prev.actual_rpe and curr.actual_rpe
        ]
        if not increases:
            return self.population_rate
        return MathTools.clamp(0.05 + MathTools.mean(increases) * 0.05, 0.0, 0.5)

    @staticmethod
    def goodness_of_fit(sets: Sequence[SetObservation]) -> float:
        rpes = [s.actual_rpe for s in sets if s.actual_rpe is not None]
        if len(rpes) < 5:
            return 0.0
        stats = MathTools.descriptive_stats(rpes)
        cv = MathTools.safe_div(stats.std_dev, stats.mean, default=1.0)
        return min(0.95, max(0.0, 1 - cv))

    def build(self, user_id: str, workouts: Sequence[HistoricalWorkout]) -> HierarchicalFatigueModel:
        if len(workouts) < self.min_workouts:
            return HierarchicalFatigueModel(user_id=user_id)

        ordered = sorted(workouts, key=lambda w: w.date)
        all_sets: list[SetObservation] = []
        by_exercise: dict[str, list[SetObservation]] = {}
        for workout in ordered:
            for ex in workout.exercises:
                all_sets.extend(ex.sets)
                by_exercise.setdefault(ex.exercise_id, []).extend(ex.sets)

        factors = {}
        for exercise_id, sets in by_exercise.items():
            if len(sets) < self.MIN_SETS_PER_EXERCISE:
                continue
            rpes = [s.actual_rpe for s in sets if s.actual_rpe is not None]
            variance = MathTools.sample_variance(rpes) if len(rpes) > 2 else self.DEFAULT_VARIANCE
            factors[exercise_id] = ExerciseFactor(
                baseline_fatigue_rate=self.shrink(self.accumulation_rate(sets), len(sets)),
                variance=variance,
                sample_size=len(sets),
            )

        total = len(all_sets)
        model = HierarchicalFatigueModel(
            user_id=user_id,
            user_fatigue_resistance=self.fatigue_resistance(all_sets),
            user_recovery_rate=self.recovery_rate(ordered),
            user_confidence=min(0.95, 1 - math.exp(-total / 50)),
            exercise_factors=factors,
            total_samples=total,
            convergence=total >= 30,
            goodness_of_fit=self.goodness_of_fit(all_sets),
        )
        logger.info(
            f"Built fatigue model for {user_id}: {total} sets, {len(factors)} exercises"
        )
        return model

    def predict_next_set(
        self, model: HierarchicalFatigueModel, exercise_id: str, sets_completed: int
    ) -> FatiguePrediction:
        factor = model.exercise_factors.get(exercise_id)
        user_factor = model.user_fatigue_resistance / 100
        exercise_rate = factor.baseline_fatigue_rate if factor else self.population_rate
        session_factor = sets_completed * self.SESSION_RATE

        base = (exercise_rate * sets_completed + session_factor) * 100
        expected = base * (1 - user_factor * self.RESISTANCE_EFFECT)

        variance = factor.variance if factor and factor.variance else self.DEFAULT_VARIANCE
        from_sets = math.sqrt(sets_completed) * variance
        from_model = (1 - model.user_confidence) * 20
        uncertainty = math.sqrt(from_sets ** 2 + from_model ** 2)
        lower = max(0.0, expected - 1.96 * uncertainty)
        upper = min(100.0, expected + 1.96 * uncertainty)

        if expected > 70:
            recommendation = "High fatigue expected. Consider ending exercise after this set."
        elif expected > 50:
            recommendation = "Moderate fatigue building. Reduce reps or increase rest if needed."
        else:
            recommendation = "Fatigue manageable. Continue as planned."
        return FatiguePrediction(
            expected_fatigue=expected,
            prediction_interval=(lower, upper),
            confidence=max(0.3, 1 - (upper - lower) / 100),
            recommendation=recommendation,
            factors={
                "user": user_factor * 100,
                "exercise": exercise_rate * 100,
                "session": session_factor * 100,
            },
        )

    def update(
        self,
        model: HierarchicalFatigueModel,
        exercise_id: str,
        observed_fatigue: float,
        set_number: int,
    ) -> HierarchicalFatigueModel:
        """Return a copy of ``model`` with one more observed set folded in."""
        set_number = max(set_number, 1)
        observed_rate = observed_fatigue / (set_number * 100)
        factors = dict(model.exercise_factors)
        prior = factors.get(exercise_id)
        if prior is None or prior.sample_size == 0:
            factors[exercise_id] = ExerciseFactor(
                baseline_fatigue_rate=self.population_rate,
                variance=self.DEFAULT_VARIANCE,
                sample_size=1,
            )
        else:
            n = prior.sample_size
            weight = n / (n + 1)
            delta = observed_rate - prior.baseline_fatigue_rate
            factors[exercise_id] = ExerciseFactor(
                baseline_fatigue_rate=weight * prior.baseline_fatigue_rate + (1 - weight) * observed_rate,
                variance=(prior.variance * n + delta ** 2) / (n + 1),
                sample_size=n + 1,
            )
        total = model.total_samples + 1
        return model.model_copy(
            update={
                "exercise_factors": factors,
                "current_session_fatigue": min(
                    100.0, model.current_session_fatigue + observed_fatigue / set_number
                ),
                "total_samples": total,
                "user_confidence": max(model.user_confidence, min(0.95, 1 - math.exp(-total / 50))),
                "convergence": total >= 30,
            }
        )

    @staticmethod
    def fatigue_level(fatigue: float) -> str:
        if fatigue >= 80:
            return "critical"
        if fatigue >= 60:
            return "high"
        if fatigue >= 40:
            return "moderate"
        if fatigue >= 20:
            return "low"
        return "minimal"

    @staticmethod
    def interpret_shift(magnitude: float) -> str:
        if magnitude > 3.0:
            return "Severe fatigue spike - immediate rest recommended"
        if magnitude > 2.0:
            return "Significant fatigue increase detected - consider ending exercise"
        if magnitude > 1.0:
            return "Moderate fatigue shift - reduce load or increase rest"
        return "Minor fatigue fluctuation - monitor closely"

    def critical_moment(
        self, change_points: Sequence[ChangePoint], series_length: int
    ) -> CriticalMoment:
        if not change_points:
            return CriticalMoment()
        latest = change_points[-1]
        if not is_critical_moment(latest, series_length):
            return CriticalMoment()
        return CriticalMoment(
            detected=True,
            set_number=latest.index + 1,
            magnitude=latest.magnitude,
            interpretation=self.interpret_shift(latest.magnitude),
        )

    @staticmethod
    def build_recommendation(
        level: str,
        prediction: FatiguePrediction,
        moment: CriticalMoment,
        should_stop: bool,
    ) -> str:
        expected = prediction.expected_fatigue
        if should_stop:
            suffix = " Critical fatigue moment detected." if moment.detected else ""
            return f"STOP: {prediction.recommendation}{suffix}"
        if level == "critical":
            return f"Critical fatigue ({expected:.0f}%). End exercise now to preserve quality."
        if level == "high":
            return f"High fatigue ({expected:.0f}%). {prediction.recommendation}"
        if level == "moderate":
            if prediction.confidence < 0.7:
                return (
                    f"Moderate fatigue ({expected:.0f}%), but prediction uncertain "
                    f"({prediction.confidence * 100:.0f}% confidence). Monitor how you feel."
                )
            return f"Moderate fatigue ({expected:.0f}%). Can continue but quality may decline."
        if level == "low":
            return f"Low fatigue ({expected:.0f}%). Continue as planned."
        return f"Minimal fatigue ({expected:.0f}%). Performing well."

    def assess(
        self,
        model: HierarchicalFatigueModel,
        exercise_id: str,
        completed_sets: Sequence[SetObservation],
        change_points: Sequence[ChangePoint] = (),
        series_length: int = 0,
    ) -> PersonalizedAssessment:
        """Personalized fatigue state for the upcoming set of ``exercise_id``."""
        done = sum(1 for s in completed_sets if s.completed)
        prediction = self.predict_next_set(model, exercise_id, done)
        current = prediction.expected_fatigue
        level = self.fatigue_level(current)
        moment = self.critical_moment(change_points, series_length)

        reasons = []
        if current >= 80:
            reasons.append("Fatigue exceeds 80% - quality compromised")
        if moment.detected:
            reasons.append(f"Sudden fatigue spike detected at set {moment.set_number}")
        lower, upper = prediction.prediction_interval
        if upper >= 95:
            reasons.append("Upper confidence bound suggests extreme fatigue risk")
        if lower >= 70:
            reasons.append("Even optimistic estimate suggests high fatigue")
        should_stop = bool(reasons)

        factor = model.exercise_factors.get(exercise_id)
        return PersonalizedAssessment(
            current_fatigue=current,
            fatigue_level=level,
            user_fatigue_resistance=model.user_fatigue_resistance,
            exercise_fatigue_rate=factor.baseline_fatigue_rate if factor else self.population_rate,
            next_set_prediction=prediction,
            critical_moment=moment,
            confidence=prediction.confidence,
            should_stop=should_stop,
            stop_reasons=reasons,
            recommendation=self.build_recommendation(level, prediction, moment, should_stop),
        )
