from __future__ import annotations

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WeightUnit = Literal["lbs", "kg"]
AlertSeverity = Literal["mild", "moderate", "high", "critical"]
FatigueSeverity = Literal["none", "mild", "moderate", "high", "critical"]
FatigueLevel = Literal["minimal", "low", "moderate", "high", "critical"]
SessionRecommendation = Literal["continue", "reduce_load", "stop"]
AdjustmentDirection = Literal["increase", "decrease", "good"]
Direction = Literal["increase", "decrease"]
QualityTier = Literal["excellent", "good", "poor"]
WorkloadStatus = Literal[
    "detraining", "maintaining", "optimal", "building", "overreaching", "danger"
]
TrendDirection = Literal["increasing", "decreasing", "stable"]


class SetObservation(BaseModel):
    """One logged set. Values are not range checked here; cleaning filters them."""

    model_config = ConfigDict(frozen=True)

    exercise_id: str
    exercise_name: Optional[str] = None
    set_index: int = 0
    completed: bool = True
    actual_reps: Optional[int] = None
    actual_weight: Optional[float] = None
    weight_unit: WeightUnit = "lbs"
    actual_rpe: Optional[float] = None
    prescribed_rpe: Optional[float] = None
    actual_rir: Optional[float] = None
    reached_failure: bool = False
    form_breakdown: bool = False
    set_duration_seconds: Optional[float] = None
    timestamp: Optional[datetime.datetime] = None


class HistoricalExercise(BaseModel):
    exercise_id: str
    sets: list[SetObservation] = Field(default_factory=list)


class HistoricalWorkout(BaseModel):
    date: datetime.datetime
    exercises: list[HistoricalExercise] = Field(default_factory=list)

    def completed_sets(self) -> list[SetObservation]:
        return [s for ex in self.exercises for s in ex.sets if s.completed]


class WorkoutLoad(BaseModel):
    date: datetime.datetime
    load: float


class ContributingSet(BaseModel):
    exercise_id: str
    exercise_name: str
    set_index: int
    rpe_overshoot: float
    interference: float
    contribution: float


class MuscleFatigueScore(BaseModel):
    muscle: str
    fatigue_level: float
    contributing_sets: list[ContributingSet] = Field(default_factory=list)


class RecommendationOption(BaseModel):
    type: Literal[
        "reduce_weight", "reduce_reps", "increase_rest", "skip_exercise", "swap_exercise"
    ]
    description: str
    confidence: Literal["low", "medium", "high"] = "medium"
    new_rest_seconds: Optional[int] = None
    reduction: Optional[float] = None


class FatigueAlert(BaseModel):
    should_alert: bool = False
    severity: AlertSeverity = "mild"
    affected_muscles: list[str] = Field(default_factory=list)
    suggested_reduction: float = 0.0
    reasoning: str = ""
    confidence: float = 0.0
    scientific_basis: str = ""
    recommendations: list[RecommendationOption] = Field(default_factory=list)
    fatigue_scores: list[MuscleFatigueScore] = Field(default_factory=list)


class DataQualityIssue(BaseModel):
    type: Literal["impossible_value", "statistical_outlier", "physiologically_implausible"]
    count: int
    description: str


class DataQualityReport(BaseModel):
    original_count: int = 0
    cleaned_count: int = 0
    removed_count: int = 0
    issues: list[DataQualityIssue] = Field(default_factory=list)
    quality: QualityTier = "excellent"
    recommendation: str = ""


class SequentialFatigueEstimate(BaseModel):
    set_number: int
    posterior_fatigue: float
    credible_interval: tuple[float, float]
    confidence: float
    recommendation: SessionRecommendation
    reasoning: str


class ChangePoint(BaseModel):
    index: int
    magnitude: float
    direction: Direction
    confidence: float
    before_mean: float
    after_mean: float


class ExerciseFactor(BaseModel):
    baseline_fatigue_rate: float = 0.15
    variance: float = 2.0
    sample_size: int = 0


class HierarchicalFatigueModel(BaseModel):
    user_id: str
    user_fatigue_resistance: float = 50.0
    user_recovery_rate: float = 1.0
    user_confidence: float = 0.2
    exercise_factors: dict[str, ExerciseFactor] = Field(default_factory=dict)
    current_session_fatigue: float = 0.0
    session_quality: float = 7.0
    total_samples: int = 0
    convergence: bool = False
    goodness_of_fit: float = 0.0


class FatiguePrediction(BaseModel):
    expected_fatigue: float
    prediction_interval: tuple[float, float]
    confidence: float
    recommendation: str
    factors: dict[str, float] = Field(default_factory=dict)


class CriticalMoment(BaseModel):
    detected: bool = False
    set_number: Optional[int] = None
    magnitude: float = 0.0
    interpretation: str = ""


class PersonalizedAssessment(BaseModel):
    current_fatigue: float
    fatigue_level: FatigueLevel
    user_fatigue_resistance: float
    exercise_fatigue_rate: float
    next_set_prediction: FatiguePrediction
    critical_moment: CriticalMoment = Field(default_factory=CriticalMoment)
    confidence: float
    should_stop: bool = False
    stop_reasons: list[str] = Field(default_factory=list)
    recommendation: str = ""


class EnhancedFatigueAssessment(FatigueAlert):
    severity: FatigueSeverity = "mild"
    using_hierarchical_model: bool = False
    has_fatigue: bool = False
    should_stop: bool = False
    personalized_assessment: Optional[PersonalizedAssessment] = None
    sequential_estimates: list[SequentialFatigueEstimate] = Field(default_factory=list)
    change_points: list[ChangePoint] = Field(default_factory=list)


class PowerAnalysis(BaseModel):
    sample_size: int
    minimum_detectable_effect: float
    power: float
    adequacy: Literal["insufficient", "adequate", "excellent"]
    additional_observations_needed: int = 0
    recommendation: str


class TrueFatigueIndicators(BaseModel):
    has_fatigue: bool = False
    severity: FatigueSeverity = "none"
    form_breakdown_sets: int = 0
    unintentional_failures: int = 0
    velocity_loss_percent: float = 0.0
    volume_overload: bool = False
    affected_muscles: list[str] = Field(default_factory=list)
    reasoning: str = ""
    scientific_basis: str = ""
    confidence: float = 0.0
    data_quality: Optional[DataQualityReport] = None
    power_analysis: Optional[PowerAnalysis] = None


class FitnessFatigueModel(BaseModel):
    user_id: str
    muscle_group: str
    fitness_decay: float = 7.0
    fatigue_decay: float = 2.0
    fitness_gain: float = 1.0
    fatigue_gain: float = 2.0
    current_fitness: float = 0.0
    current_fatigue: float = 0.0
    net_performance: float = 50.0
    last_trained: Optional[datetime.datetime] = None
    confidence: float = 0.5


class WorkloadMetrics(BaseModel):
    acute_load: float
    chronic_load: float
    chronic_total: float
    acwr: float
    monotony: float
    strain: float
    status: WorkloadStatus
    recommendation: str
    scientific_basis: str


class RPECalibrationProfile(BaseModel):
    exercise_id: str
    historical_bias_mean: float
    historical_bias_sd: float
    sample_size: int
    last_updated: datetime.datetime
    confidence: float
    credible_interval: tuple[float, float]


class RPECalibration(BaseModel):
    needs_adjustment: bool = False
    direction: AdjustmentDirection = "good"
    avg_deviation: float = 0.0
    posterior_bias: float = 0.0
    consistent_overshoot: bool = False
    consistent_undershoot: bool = False
    suggested_change: float = 0.0
    suggested_weight_change: float = 0.0
    reasoning: str = ""
    confidence: float = 0.0
    credible_interval: tuple[float, float] = (0.0, 0.0)
    scientific_basis: str = ""


class DescriptiveStats(BaseModel):
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    variance: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0


class OutlierAnalysis(BaseModel):
    outliers: list[float] = Field(default_factory=list)
    outlier_indices: list[int] = Field(default_factory=list)
    cleaned_data: list[float] = Field(default_factory=list)
    lower_bound: float = 0.0
    upper_bound: float = 0.0


class TrendResult(BaseModel):
    slope: float
    intercept: float
    r_squared: float
    trend: TrendDirection


class BayesianPosterior(BaseModel):
    posterior_mean: float
    posterior_sd: float
    credible_interval: tuple[float, float]
    confidence: float


class PerformancePrediction(BaseModel):
    expected_value: float
    prediction_interval: tuple[float, float]
    confidence_interval: tuple[float, float]
    uncertainty: Literal["low", "medium", "high"]
    recommendation: str


class RobustRegressionResult(BaseModel):
    slope: float
    intercept: float
    r_squared: float
    robust_std_error: float
    confidence: float
    interpretation: Literal["stable", "gradual_decline", "sharp_decline", "improving"]


class RPEAccuracyMetrics(BaseModel):
    mean_absolute_error: float
    root_mean_squared_error: float
    calibration_score: float
    consistency_score: float
    outlier_rate: float
    sample_size: int


class ExerciseRPEDifficulty(BaseModel):
    exercise_id: str
    difficulty: Literal["easy_to_rate", "moderate", "hard_to_rate"]
    mean_absolute_error: float
    recommendation: str


class RecoveryObservation(BaseModel):
    date: datetime.datetime
    load: float
    perceived_recovery: float


class AdaptiveRecoveryProfile(BaseModel):
    muscle_group: str
    personalized_recovery_hours: float
    readiness_score: float
    recovery_percentage: float
    estimated_full_recovery: datetime.datetime
    chronic_fatigue_penalty: float
    training_age_months: float
    adaptation_rate: float
    confidence: float


class PerformanceForecast(BaseModel):
    expected_performance: float
    recommendation: Literal["proceed", "reduce_load", "skip"]
    reasoning: str
