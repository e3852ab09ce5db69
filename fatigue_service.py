from __future__ import annotations

import datetime
import logging
import math
from typing import Sequence

from algorithms.change_points import (
    ChangePointDetector,
    CusumChangePointDetector,
    NullChangePointDetector,
)
from algorithms.data_cleaning import DataCleaner, DataQualityPipeline, PassthroughCleaner
from algorithms.fatigue_alerts import FatigueAlerts
from algorithms.hierarchical_model import HierarchicalModeler
from algorithms.muscle_interference import TRACKED_MUSCLES, FatigueAggregator
from algorithms.rpe_calibration import RPECalibrator
from algorithms.sequential_bayes import SequentialFatigueEstimator, sequential_fatigue_analysis
from algorithms.trend_analysis import TrendAnalysis
from algorithms.workload import Workload
from schemas import (
    DataQualityReport,
    EnhancedFatigueAssessment,
    FatigueAlert,
    HierarchicalFatigueModel,
    HistoricalWorkout,
    RPECalibration,
    RPECalibrationProfile,
    SetObservation,
    TrueFatigueIndicators,
    WorkloadMetrics,
    WorkoutLoad,
)
from settings_schema import EngineSettings

logger = logging.getLogger(__name__)

LEVEL_TO_SEVERITY = {
    "critical": "critical",
    "high": "high",
    "moderate": "moderate",
    "low": "mild",
    "minimal": "none",
}

HIERARCHICAL_BASIS = " Enhanced with hierarchical Bayesian personalization (Gelman & Hill, 2006)."


class FatigueService:
    """Entry points for in-session fatigue assessment and RPE calibration.

    Optional stages are chosen when the service is built: the cleaner,
    change-point detector and hierarchical modeler can be swapped for no-op
    variants, either explicitly or through ``EngineSettings`` switches.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        cleaner: DataCleaner | None = None,
        change_point_detector: ChangePointDetector | None = None,
        hierarchical_modeler: HierarchicalModeler | None = None,
        aggregator: FatigueAggregator | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        if cleaner is None:
            cleaner = (
                DataQualityPipeline(
                    self.settings.outlier_threshold, self.settings.max_outlier_fraction
                )
                if self.settings.enable_data_cleaning
                else PassthroughCleaner()
            )
        if change_point_detector is None:
            change_point_detector = (
                CusumChangePointDetector()
                if self.settings.enable_change_points
                else NullChangePointDetector()
            )
        if hierarchical_modeler is None and self.settings.enable_hierarchical_model:
            hierarchical_modeler = HierarchicalModeler(
                population_rate=self.settings.population_fatigue_rate,
                shrinkage_strength=self.settings.shrinkage_strength,
                min_workouts=self.settings.min_history_workouts,
                min_sets=self.settings.min_history_sets,
            )
        self.cleaner = cleaner
        self.change_points = change_point_detector
        self.modeler = hierarchical_modeler
        self.aggregator = aggregator or FatigueAggregator()

    def _clean(
        self, sets: Sequence[SetObservation]
    ) -> tuple[list[SetObservation], DataQualityReport | None]:
        try:
            return self.cleaner.clean(sets)
        except Exception as e:
            logger.warning(f"Data cleaning unavailable, using raw sets: {e}")
            return list(sets), None

    def assess_fatigue(
        self,
        upcoming_exercise_id: str,
        completed_sets: Sequence[SetObservation],
        upcoming_exercise_name: str | None = None,
    ) -> FatigueAlert:
        """Should the next exercise start lighter than planned?"""
        sets, _ = self._clean([s for s in completed_sets if s.completed])
        return self._assess_cleaned(upcoming_exercise_id, sets, upcoming_exercise_name)

    def _assess_cleaned(
        self,
        upcoming_exercise_id: str,
        sets: Sequence[SetObservation],
        upcoming_exercise_name: str | None = None,
    ) -> FatigueAlert:
        targets = self.aggregator.interference.muscles_for(
            upcoming_exercise_id, upcoming_exercise_name
        )
        if not sets or not targets:
            return FatigueAlert()
        scores = self.aggregator.calculate_muscle_fatigue(sets, targets)
        return FatigueAlerts.evaluate(scores, sets)

    def build_hierarchical_model(
        self, user_id: str, workouts: Sequence[HistoricalWorkout]
    ) -> HierarchicalFatigueModel:
        if self.modeler is None:
            return HierarchicalFatigueModel(user_id=user_id)
        return self.modeler.build(user_id, workouts)

    def assess_fatigue_enhanced(
        self,
        upcoming_exercise_id: str,
        completed_sets: Sequence[SetObservation],
        user_id: str | None = None,
        historical_workouts: Sequence[HistoricalWorkout] | None = None,
        model: HierarchicalFatigueModel | None = None,
        upcoming_exercise_name: str | None = None,
    ) -> EnhancedFatigueAssessment:
        """Basic assessment, personalized when enough history exists.

        The hierarchical path runs only with a modeler and either a prebuilt
        ``model`` or a history that passes the modeler's gate. Any failure in
        the personalized path falls back to the basic result.
        """
        sets, _ = self._clean([s for s in completed_sets if s.completed])
        basic = self._assess_cleaned(upcoming_exercise_id, sets, upcoming_exercise_name)
        fallback = EnhancedFatigueAssessment(
            **basic.model_dump(), has_fatigue=basic.should_alert
        )
        if self.modeler is None:
            return fallback
        if model is None:
            if not historical_workouts or not self.modeler.can_use(historical_workouts):
                return fallback
        try:
            if model is None:
                model = self.modeler.build(user_id or "", historical_workouts)
            return self._personalize(basic, fallback, model, upcoming_exercise_id, sets)
        except Exception as e:
            logger.warning(f"Hierarchical fatigue model unavailable, using basic assessment: {e}")
            return fallback

    def _personalize(
        self,
        basic: FatigueAlert,
        fallback: EnhancedFatigueAssessment,
        model: HierarchicalFatigueModel,
        exercise_id: str,
        session_sets: Sequence[SetObservation],
    ) -> EnhancedFatigueAssessment:
        relevant = [s for s in session_sets if s.exercise_id == exercise_id]
        estimates = sequential_fatigue_analysis(relevant, self.settings.sequential_prior_fatigue)

        rpes = [s.actual_rpe for s in relevant if s.actual_rpe is not None]
        try:
            points = self.change_points.detect(rpes)
        except Exception as e:
            logger.warning(f"Change-point detection unavailable: {e}")
            points = []

        personal = self.modeler.assess(model, exercise_id, session_sets, points, len(rpes))
        if personal.confidence > basic.confidence:
            severity = LEVEL_TO_SEVERITY[personal.fatigue_level]
        else:
            severity = basic.severity
        sequential_stop = bool(estimates) and estimates[-1].recommendation == "stop"
        should_stop = personal.should_stop or sequential_stop or personal.critical_moment.detected
        logger.debug(
            f"Personalized fatigue for {exercise_id}: {personal.current_fatigue:.1f} "
            f"({personal.fatigue_level}), stop={should_stop}"
        )
        return fallback.model_copy(
            update={
                "should_alert": basic.should_alert or should_stop,
                "severity": severity,
                "confidence": max(personal.confidence, basic.confidence),
                "reasoning": personal.recommendation,
                "scientific_basis": basic.scientific_basis + HIERARCHICAL_BASIS,
                "using_hierarchical_model": True,
                "has_fatigue": personal.current_fatigue > 40 or basic.should_alert,
                "should_stop": should_stop,
                "personalized_assessment": personal,
                "sequential_estimates": estimates,
                "change_points": points,
            }
        )

    def start_session(self, prior_fatigue: float | None = None) -> SequentialFatigueEstimator:
        """Fresh per-session estimator; discard it when the session ends."""
        if prior_fatigue is None:
            prior_fatigue = self.settings.sequential_prior_fatigue
        return SequentialFatigueEstimator(prior_fatigue)

    def analyze_rpe_calibration(
        self,
        sets: Sequence[SetObservation],
        exercise_id: str | None = None,
        profile: RPECalibrationProfile | None = None,
    ) -> RPECalibration:
        return RPECalibrator.analyze_rpe_calibration(sets, exercise_id, profile)

    def calculate_acwr(
        self, workouts: Sequence[WorkoutLoad], as_of: datetime.datetime | None = None
    ) -> WorkloadMetrics:
        return Workload.calculate_acwr(workouts, as_of)

    @staticmethod
    def velocity_loss(sets: Sequence[SetObservation]) -> float:
        """Largest first-to-last drop in reps per second within one exercise, in percent."""
        by_exercise: dict[str, list[float]] = {}
        for s in sets:
            if s.set_duration_seconds and s.actual_reps:
                by_exercise.setdefault(s.exercise_id, []).append(
                    s.actual_reps / s.set_duration_seconds
                )
        loss = 0.0
        for speeds in by_exercise.values():
            if len(speeds) >= 2 and speeds[0] > 0:
                loss = max(loss, (speeds[0] - speeds[-1]) / speeds[0] * 100)
        return loss

    def detect_true_fatigue(
        self, sets: Sequence[SetObservation], exercise_id: str | None = None
    ) -> TrueFatigueIndicators:
        """Fatigue from performance breakdown rather than RPE drift."""
        completed = [s for s in sets if s.completed]
        relevant = [s for s in completed if exercise_id is None or s.exercise_id == exercise_id]
        if not relevant:
            return TrueFatigueIndicators()

        relevant, report = self._clean(relevant)
        if report is not None and report.removed_count:
            logger.debug(f"Data cleaning removed {report.removed_count} sets before fatigue check")

        form = sum(1 for s in relevant if s.form_breakdown)
        failures = sum(
            1
            for s in relevant
            if s.reached_failure and s.prescribed_rpe is not None and s.prescribed_rpe <= 7
        )
        velocity = self.velocity_loss(relevant)
        scores = self.aggregator.calculate_muscle_fatigue(relevant, TRACKED_MUSCLES)
        overload = bool(scores) and scores[0].fatigue_level >= 30

        if (form >= 2 and failures >= 1) or velocity > 40 or (overload and (form >= 1 or velocity > 30)):
            severity = "critical"
        elif form >= 2 or failures >= 2 or velocity > 30 or (overload and velocity > 20):
            severity = "high"
        elif (form >= 1 and failures >= 1) or velocity > 20 or (overload and form >= 1):
            severity = "moderate"
        elif form >= 1 or failures >= 1 or velocity > 10 or overload:
            severity = "mild"
        else:
            severity = "none"
        has_fatigue = severity != "none"

        reasons = []
        if form:
            reasons.append(f"{form} set{'s' if form > 1 else ''} with form breakdown")
        if failures:
            reasons.append(f"{failures} unintentional failure{'s' if failures > 1 else ''}")
        if velocity > 10:
            reasons.append(f"{velocity:.0f}% velocity loss")
        if overload:
            reasons.append("high volume accumulation")
        reasoning = f"Performance degradation detected: {', '.join(reasons)}." if reasons else ""

        if velocity > 20:
            basis = "Pareja-Blanco et al. (2017): Velocity loss >20% indicates fatigue exceeding optimal hypertrophy zone."
        elif form:
            basis = "Häkkinen & Komi (1983): Form breakdown indicates neuromuscular fatigue requiring recovery."
        elif failures:
            basis = "Izquierdo et al. (2006): Unintentional failure signals CNS fatigue - reduce volume or intensity."
        elif velocity > 0:
            basis = "González-Badillo & Sánchez-Medina (2010): Velocity loss is a reliable fatigue indicator."
        else:
            basis = ""

        indicators = (form > 0) + (failures > 0) + (velocity > 10)
        confidence = 0.85 if indicators >= 3 else 0.70 if indicators >= 2 else 0.55

        effect = 0.5 if has_fatigue else 0.2
        required = math.ceil(64 * (0.5 / max(0.1, effect)) ** 2)
        power = TrendAnalysis.power_analysis(len(relevant), effect).model_copy(
            update={"additional_observations_needed": max(0, required - len(relevant))}
        )

        return TrueFatigueIndicators(
            has_fatigue=has_fatigue,
            severity=severity,
            form_breakdown_sets=form,
            unintentional_failures=failures,
            velocity_loss_percent=velocity,
            volume_overload=overload,
            affected_muscles=[sc.muscle for sc in scores if sc.fatigue_level >= 20][:3],
            reasoning=reasoning,
            scientific_basis=basis,
            confidence=confidence,
            data_quality=report,
            power_analysis=power,
        )
