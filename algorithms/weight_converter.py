from schemas import SetObservation


class WeightConverter:
    """Normalizes logged loads to pounds for the fatigue models."""

    KG_TO_LB = 2.20462

    @classmethod
    def to_lb(cls, weight: float | None, unit: str = "lbs") -> float:
        """Return ``weight`` in pounds, 0.0 when missing."""
        if weight is None:
            return 0.0
        if unit == "kg":
            return weight * cls.KG_TO_LB
        return float(weight)

    @classmethod
    def set_weight_lb(cls, s: SetObservation) -> float:
        return cls.to_lb(s.actual_weight, s.weight_unit)
