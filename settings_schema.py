from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class EngineSettings(BaseModel):
    sequential_prior_fatigue: float = Field(20.0, ge=0, le=100)
    outlier_threshold: float = Field(3.5, gt=0)
    max_outlier_fraction: float = Field(0.3, gt=0, le=1)
    min_history_workouts: int = Field(3, ge=1)
    min_history_sets: int = Field(30, ge=1)
    population_fatigue_rate: float = Field(0.15, ge=0)
    shrinkage_strength: float = Field(10.0, gt=0)
    fitness_tau_days: float = Field(7.0, gt=0)
    fatigue_tau_days: float = Field(2.0, gt=0)
    enable_data_cleaning: bool = True
    enable_change_points: bool = True
    enable_hierarchical_model: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


def validate_settings(data: dict) -> EngineSettings:
    try:
        return EngineSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
