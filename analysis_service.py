from __future__ import annotations

import datetime
import logging
from typing import Dict, List, Optional, Sequence

from algorithms.muscle_interference import MuscleInterference
from algorithms.rpe_calibration import RPECalibrator
from algorithms.trend_analysis import TrendAnalysis
from algorithms.workload import Workload
from schemas import (
    FitnessFatigueModel,
    HistoricalWorkout,
    RobustRegressionResult,
    RPECalibrationProfile,
    SetObservation,
    WorkoutLoad,
)
from settings_schema import EngineSettings

logger = logging.getLogger(__name__)


class AnalysisService:
    """Summaries computed over a user's materialized workout history."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        interference: MuscleInterference | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.interference = interference or MuscleInterference()

    @staticmethod
    def _sets_by_exercise(
        workouts: Sequence[HistoricalWorkout],
    ) -> Dict[str, List[SetObservation]]:
        by_exercise: Dict[str, List[SetObservation]] = {}
        for workout in sorted(workouts, key=lambda w: w.date):
            for ex in workout.exercises:
                by_exercise.setdefault(ex.exercise_id, []).extend(
                    s for s in ex.sets if s.completed
                )
        return by_exercise

    def rpe_profiles(
        self,
        workouts: Sequence[HistoricalWorkout],
        as_of: Optional[datetime.datetime] = None,
    ) -> Dict[str, RPECalibrationProfile]:
        """Historical RPE bias per exercise, skipping exercises with too few rated sets."""
        if not workouts:
            return {}
        if as_of is None:
            as_of = max(w.date for w in workouts)
        profiles: Dict[str, RPECalibrationProfile] = {}
        for exercise_id, sets in self._sets_by_exercise(workouts).items():
            profile = RPECalibrator.build_rpe_profile(exercise_id, sets, as_of)
            if profile is not None:
                profiles[exercise_id] = profile
        return profiles

    def rpe_accuracy_report(
        self, workouts: Sequence[HistoricalWorkout]
    ) -> List[Dict[str, object]]:
        """Accuracy metrics, rating and difficulty per exercise with rated sets."""
        report: List[Dict[str, object]] = []
        for exercise_id, sets in sorted(self._sets_by_exercise(workouts).items()):
            metrics = RPECalibrator.calculate_rpe_accuracy(sets, exercise_id)
            if metrics.sample_size == 0:
                continue
            rating, feedback = RPECalibrator.interpret_rpe_accuracy(metrics)
            difficulty = RPECalibrator.assess_exercise_rpe_difficulty(exercise_id, sets)
            report.append(
                {
                    "exercise_id": exercise_id,
                    "metrics": metrics,
                    "rating": rating,
                    "feedback": feedback,
                    "difficulty": difficulty.difficulty,
                }
            )
        return report

    def workout_loads(self, workouts: Sequence[HistoricalWorkout]) -> List[WorkoutLoad]:
        return [
            WorkoutLoad(date=w.date, load=Workload.training_load(w.completed_sets()))
            for w in sorted(workouts, key=lambda w: w.date)
        ]

    def muscle_loads(self, workout: HistoricalWorkout) -> Dict[str, float]:
        """Training load of one workout split across the muscles each set trains."""
        by_muscle: Dict[str, List[SetObservation]] = {}
        for s in workout.completed_sets():
            for muscle in self.interference.muscles_for(s.exercise_id, s.exercise_name):
                by_muscle.setdefault(muscle, []).append(s)
        return {m: Workload.training_load(sets) for m, sets in by_muscle.items()}

    def fitness_fatigue_history(
        self, user_id: str, workouts: Sequence[HistoricalWorkout]
    ) -> Dict[str, FitnessFatigueModel]:
        """Replay every workout in date order through the per-muscle model."""
        models: Dict[str, FitnessFatigueModel] = {}
        for workout in sorted(workouts, key=lambda w: w.date):
            for muscle, load in self.muscle_loads(workout).items():
                previous = models.get(muscle)
                days = 0.0
                if previous is not None and previous.last_trained is not None:
                    days = (workout.date - previous.last_trained).total_seconds() / 86400
                models[muscle] = Workload.update_fitness_fatigue_model(
                    previous,
                    muscle,
                    load,
                    days,
                    workout.date,
                    user_id=user_id,
                    fitness_tau=self.settings.fitness_tau_days,
                    fatigue_tau=self.settings.fatigue_tau_days,
                )
        logger.debug(f"Replayed {len(workouts)} workouts into {len(models)} muscle models")
        return models

    @staticmethod
    def velocity_trend(
        sets: Sequence[SetObservation], exercise_id: str
    ) -> RobustRegressionResult:
        """Robust trend of reps per second across timed sets of ``exercise_id``."""
        speeds = [
            s.actual_reps / s.set_duration_seconds
            for s in sets
            if s.completed
            and s.exercise_id == exercise_id
            and s.actual_reps
            and s.set_duration_seconds
        ]
        return TrendAnalysis.robust_regression(speeds)
