from .math_tools import MathTools
from .weight_converter import WeightConverter
from .trend_analysis import TrendAnalysis
from .data_cleaning import DataCleaner, DataQualityPipeline, PassthroughCleaner
from .muscle_interference import FatigueAggregator, MuscleInterference
from .fatigue_alerts import FatigueAlerts
from .sequential_bayes import SequentialFatigueEstimator, sequential_fatigue_analysis
from .change_points import (
    ChangePointDetector,
    CusumChangePointDetector,
    NullChangePointDetector,
)
from .hierarchical_model import HierarchicalModeler
from .workload import Workload
from .rpe_calibration import RPECalibrator

__all__ = [
    "MathTools",
    "WeightConverter",
    "TrendAnalysis",
    "DataCleaner",
    "DataQualityPipeline",
    "PassthroughCleaner",
    "FatigueAggregator",
    "MuscleInterference",
    "FatigueAlerts",
    "SequentialFatigueEstimator",
    "sequential_fatigue_analysis",
    "ChangePointDetector",
    "CusumChangePointDetector",
    "NullChangePointDetector",
    "HierarchicalModeler",
    "Workload",
    "RPECalibrator",
]
