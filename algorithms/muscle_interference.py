import functools
import os
import re
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

import yaml

from schemas import ContributingSet, MuscleFatigueScore, SetObservation
from .math_tools import MathTools
from .weight_converter import WeightConverter

CATALOG_PATH = os.path.join(os.path.dirname(__file__), "data", "exercises.yaml")

TRACKED_MUSCLES: tuple[str, ...] = (
    "chest",
    "back",
    "shoulders",
    "quads",
    "hamstrings",
    "triceps",
    "biceps",
    "calves",
    "abs",
)

MUSCLE_SYNONYMS: Mapping[str, str] = MappingProxyType(
    {
        "pectorals": "chest",
        "pecs": "chest",
        "lats": "back",
        "delts": "shoulders",
        "quadriceps": "quads",
        "core": "abs",
    }
)

FATIGUE_INTERFERENCE: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "chest": MappingProxyType(
            {"chest": 1.0, "shoulders": 0.7, "triceps": 0.8, "back": 0.2, "biceps": 0.15,
             "quads": 0.1, "hamstrings": 0.1, "calves": 0.05, "abs": 0.3}
        ),
        "back": MappingProxyType(
            {"back": 1.0, "shoulders": 0.6, "biceps": 0.8, "chest": 0.2, "triceps": 0.15,
             "quads": 0.1, "hamstrings": 0.15, "calves": 0.05, "abs": 0.4}
        ),
        "shoulders": MappingProxyType(
            {"shoulders": 1.0, "chest": 0.6, "triceps": 0.7, "back": 0.5, "biceps": 0.2,
             "quads": 0.1, "hamstrings": 0.1, "calves": 0.05, "abs": 0.25}
        ),
        "quads": MappingProxyType(
            {"quads": 1.0, "hamstrings": 0.6, "calves": 0.4, "glutes": 0.7, "abs": 0.5,
             "lower back": 0.6, "chest": 0.15, "shoulders": 0.15, "back": 0.2,
             "triceps": 0.1, "biceps": 0.1}
        ),
        "hamstrings": MappingProxyType(
            {"hamstrings": 1.0, "quads": 0.5, "glutes": 0.9, "calves": 0.3, "lower back": 0.7,
             "abs": 0.4, "chest": 0.15, "shoulders": 0.15, "back": 0.3, "triceps": 0.1,
             "biceps": 0.1}
        ),
        "triceps": MappingProxyType(
            {"triceps": 1.0, "chest": 0.5, "shoulders": 0.6, "biceps": 0.15, "back": 0.1,
             "quads": 0.05, "hamstrings": 0.05, "calves": 0.05, "abs": 0.2}
        ),
        "biceps": MappingProxyType(
            {"biceps": 1.0, "back": 0.4, "shoulders": 0.3, "chest": 0.15, "triceps": 0.15,
             "quads": 0.05, "hamstrings": 0.05, "calves": 0.05, "abs": 0.15}
        ),
        "abs": MappingProxyType(
            {"abs": 1.0, "lower back": 0.6, "chest": 0.2, "shoulders": 0.2, "back": 0.3,
             "quads": 0.3, "hamstrings": 0.25, "triceps": 0.1, "biceps": 0.1, "calves": 0.05}
        ),
    }
)

KINETIC_CHAINS: tuple[frozenset[str], ...] = (
    frozenset({"chest", "shoulders", "triceps", "front delts"}),
    frozenset({"back", "biceps", "rear delts", "upper back"}),
    frozenset({"quads", "hamstrings", "glutes", "calves"}),
)

CHAIN_INTERFERENCE = 0.5
DEFAULT_INTERFERENCE = 0.15
MIN_INTERFERENCE = 0.1


def canonical_muscle(muscle: str) -> str:
    key = muscle.strip().lower()
    return MUSCLE_SYNONYMS.get(key, key)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


@functools.lru_cache(maxsize=None)
def load_exercise_catalog(path: str = CATALOG_PATH) -> Mapping[str, Mapping]:
    """Load the exercise catalog once per process, keyed by exercise id."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    catalog = {}
    for entry in data.get("exercises", []):
        catalog[str(entry["id"])] = MappingProxyType(
            {
                "id": str(entry["id"]),
                "name": str(entry.get("name", entry["id"])),
                "type": str(entry.get("type", "isolation")),
                "muscles": tuple(entry.get("muscles", [])),
            }
        )
    return MappingProxyType(catalog)


class MuscleInterference:
    """Resolves exercises to muscles and muscles to cross-fatigue weights."""

    def __init__(self, catalog: Mapping[str, Mapping] | None = None) -> None:
        self.catalog = catalog if catalog is not None else load_exercise_catalog()

    @staticmethod
    def interference_weight(source: str, target: str) -> float:
        """Return how strongly fatigue in ``source`` carries over to ``target``."""
        src = canonical_muscle(source)
        tgt = canonical_muscle(target)
        if src == tgt:
            return 1.0
        row = FATIGUE_INTERFERENCE.get(src)
        if row is not None and tgt in row:
            return row[tgt]
        for chain in KINETIC_CHAINS:
            if src in chain and tgt in chain:
                return CHAIN_INTERFERENCE
        return DEFAULT_INTERFERENCE

    def find_exercise(self, exercise_id: str, exercise_name: str | None = None) -> Mapping | None:
        if exercise_id in self.catalog:
            return self.catalog[exercise_id]
        slug = _slug(exercise_id)
        for entry in self.catalog.values():
            if entry["id"] == slug or _slug(entry["name"]) == slug:
                return entry
        if exercise_name:
            name = exercise_name.strip().lower()
            for entry in self.catalog.values():
                candidate = entry["name"].lower()
                if candidate == name or candidate in name or name in candidate:
                    return entry
        return None

    @staticmethod
    def infer_muscles(text: str) -> list[str]:
        """Guess worked muscles from keywords in an exercise name or id."""
        name = text.lower().replace("_", " ").replace("-", " ")
        legs = "leg" in name or "ham" in name
        muscles: list[str] = []
        if re.search(r"bench|chest|fly|pec", name):
            muscles.append("chest")
            if "press" in name:
                muscles.extend(["triceps", "shoulders"])
        if re.search(r"row|pull|\blats?\b|back", name):
            muscles.append("back")
            if re.search(r"row|pull", name):
                muscles.append("biceps")
        if re.search(r"shoulder|delt|ohp|military", name):
            muscles.append("shoulders")
            if "press" in name:
                muscles.append("triceps")
        if re.search(r"squat|leg press|quad|lunge", name):
            muscles.extend(["quads", "glutes"])
        if re.search(r"deadlift|rdl", name):
            muscles.extend(["hamstrings", "back", "glutes"])
        if re.search(r"hamstring|curl", name) and legs:
            muscles.append("hamstrings")
        if re.search(r"bicep|curl", name) and not legs:
            muscles.append("biceps")
        if re.search(r"tricep|pushdown|pressdown|extension|skull", name) and not (legs or "quad" in name):
            muscles.append("triceps")
        if re.search(r"\babs?\b|crunch|plank|core", name):
            muscles.append("abs")
        if re.search(r"calf|calves", name):
            muscles.append("calves")
        return list(dict.fromkeys(canonical_muscle(m) for m in muscles))

    def muscles_for(self, exercise_id: str, exercise_name: str | None = None) -> list[str]:
        entry = self.find_exercise(exercise_id, exercise_name)
        if entry is not None:
            return list(dict.fromkeys(canonical_muscle(m) for m in entry["muscles"]))
        return self.infer_muscles(exercise_name or exercise_id)

    def is_compound(self, exercise_id: str, exercise_name: str | None = None) -> bool:
        entry = self.find_exercise(exercise_id, exercise_name)
        return entry is not None and entry["type"] == "compound"

    def display_name(self, s: SetObservation) -> str:
        entry = self.find_exercise(s.exercise_id, s.exercise_name)
        if entry is not None:
            return entry["name"]
        return s.exercise_name or s.exercise_id


class FatigueAggregator:
    """Accumulates per-muscle fatigue from completed sets."""

    MAX_FATIGUE = 100.0
    MATERIALITY = 1.0
    SCALE = 12.0
    REFERENCE_REPS = 8.0
    REFERENCE_LOAD_LB = 150.0
    DEFAULT_RPE = 7.0
    DEFAULT_REPS = 5
    FORM_MULTIPLIER = 1.5
    FAILURE_MULTIPLIER = 1.4
    TEMPO_MULTIPLIER = 1.2
    OVERSHOOT_BONUS = 3.0

    def __init__(self, interference: MuscleInterference | None = None) -> None:
        self.interference = interference or MuscleInterference()

    @staticmethod
    def rpe_overshoot(s: SetObservation) -> float:
        if s.actual_rpe is None or s.prescribed_rpe is None:
            return 0.0
        return s.actual_rpe - s.prescribed_rpe

    def set_contribution(self, s: SetObservation, interference: float) -> float:
        rpe = s.actual_rpe if s.actual_rpe is not None else s.prescribed_rpe
        if rpe is None:
            rpe = self.DEFAULT_RPE
        intensity = max(0.3, (rpe - 5) / 5)
        reps = s.actual_reps or self.DEFAULT_REPS
        volume = min(reps / self.REFERENCE_REPS, 1.5)
        weight = WeightConverter.set_weight_lb(s)
        load = MathTools.clamp(weight / self.REFERENCE_LOAD_LB, 0.5, 1.5) if weight > 0 else 1.0

        multiplier = 1.0
        if s.form_breakdown:
            multiplier *= self.FORM_MULTIPLIER
        if s.reached_failure:
            multiplier *= self.FAILURE_MULTIPLIER
        if s.set_duration_seconds and s.actual_reps and s.actual_reps > 0:
            slow = 4 if self.interference.is_compound(s.exercise_id, s.exercise_name) else 3
            if s.set_duration_seconds / s.actual_reps > slow:
                multiplier *= self.TEMPO_MULTIPLIER

        overshoot = self.rpe_overshoot(s)
        bonus = overshoot * self.OVERSHOOT_BONUS if overshoot > 0 else 0.0
        return intensity * volume * load * interference * self.SCALE * multiplier + bonus

    def calculate_muscle_fatigue(
        self, sets: Sequence[SetObservation], target_muscles: Iterable[str]
    ) -> list[MuscleFatigueScore]:
        """Score each target muscle, most fatigued first."""
        targets = list(dict.fromkeys(canonical_muscle(m) for m in target_muscles))
        completed = [s for s in sets if s.completed]
        sources = [
            (s, self.interference.muscles_for(s.exercise_id, s.exercise_name)) for s in completed
        ]
        scores = []
        for target in targets:
            total = 0.0
            contributions = []
            for s, muscles in sources:
                for source in muscles:
                    weight = self.interference.interference_weight(source, target)
                    if weight < MIN_INTERFERENCE:
                        continue
                    contribution = self.set_contribution(s, weight)
                    total += contribution
                    if contribution > self.MATERIALITY:
                        contributions.append(
                            ContributingSet(
                                exercise_id=s.exercise_id,
                                exercise_name=self.interference.display_name(s),
                                set_index=s.set_index,
                                rpe_overshoot=self.rpe_overshoot(s),
                                interference=weight,
                                contribution=contribution,
                            )
                        )
            contributions.sort(key=lambda c: c.contribution, reverse=True)
            scores.append(
                MuscleFatigueScore(
                    muscle=target,
                    fatigue_level=MathTools.clamp(total, 0.0, self.MAX_FATIGUE),
                    contributing_sets=contributions,
                )
            )
        scores.sort(key=lambda sc: sc.fatigue_level, reverse=True)
        return scores
