from typing import Sequence

from schemas import FatigueAlert, MuscleFatigueScore, RecommendationOption, SetObservation

ALERT_TIERS = (
    # severity, reduction, confidence
    ("critical", 0.20, 0.95),
    ("high", 0.15, 0.85),
    ("moderate", 0.10, 0.75),
    ("mild", 0.05, 0.60),
)

SCIENTIFIC_BASIS = {
    "critical": (
        "Zourdos et al. (2016) found RPE accuracy degrades after sustained overshooting, "
        "indicating genuine fatigue accumulation."
    ),
    "high": (
        "Helms et al. (2018) recommends RPE-based deloads when consistent overshooting "
        "occurs across multiple sets."
    ),
    "moderate": (
        "Richens & Cleather (2014) showed exercise order significantly impacts performance "
        "when prior fatigue is present."
    ),
    "mild": "Conservative approach to maintain training quality and prevent acute overreaching.",
}


class FatigueAlerts:
    """Turns per-muscle fatigue scores into an auto-regulation alert."""

    AFFECTED_THRESHOLD = 10.0
    MAX_AFFECTED = 3
    EXTRA_REST_SECONDS = 90

    @staticmethod
    def overshoot_sets(sets: Sequence[SetObservation]) -> list[SetObservation]:
        return [
            s
            for s in sets
            if s.completed
            and s.actual_rpe is not None
            and s.prescribed_rpe is not None
            and s.actual_rpe > s.prescribed_rpe
        ]

    @classmethod
    def recommendations(cls, severity: str, reduction: float) -> list[RecommendationOption]:
        percent = round(reduction * 100)
        options = [
            RecommendationOption(
                type="reduce_weight",
                description=f"Reduce weight by ~{percent}% (recommended)",
                confidence="high",
                reduction=reduction,
            )
        ]
        if severity in ("moderate", "mild"):
            options.append(
                RecommendationOption(
                    type="reduce_reps",
                    description="Reduce reps by 2-3, keep same weight",
                    confidence="medium",
                )
            )
        if severity in ("critical", "high"):
            options.append(
                RecommendationOption(
                    type="increase_rest",
                    description="Add 60-90s extra rest between sets",
                    confidence="medium",
                    new_rest_seconds=cls.EXTRA_REST_SECONDS,
                )
            )
        if severity == "critical":
            options.append(
                RecommendationOption(
                    type="skip_exercise",
                    description="Skip this exercise or swap for similar alternative",
                    confidence="high",
                )
            )
        return options

    @classmethod
    def evaluate(
        cls, scores: Sequence[MuscleFatigueScore], sets: Sequence[SetObservation]
    ) -> FatigueAlert:
        """Apply the tiered thresholds to the most fatigued target muscle."""
        if not scores:
            return FatigueAlert()

        top = scores[0]
        level = top.fatigue_level
        overshoots = cls.overshoot_sets(sets)
        avg_overshoot = (
            sum(s.actual_rpe - s.prescribed_rpe for s in overshoots) / len(overshoots)
            if overshoots
            else 0.0
        )
        qualifies = {
            "critical": level >= 40,
            "high": level >= 25 and len(overshoots) >= 3,
            "moderate": level >= 20 and avg_overshoot >= 1.5,
            "mild": level >= 15 and len(overshoots) >= 2,
        }
        affected = [
            sc.muscle for sc in scores if sc.fatigue_level >= cls.AFFECTED_THRESHOLD
        ][: cls.MAX_AFFECTED]

        for severity, reduction, confidence in ALERT_TIERS:
            if not qualifies[severity]:
                continue
            reasoning = {
                "critical": (
                    f"Critical fatigue in {top.muscle}. You've significantly overshot RPE "
                    "on exercises targeting this muscle group."
                ),
                "high": (
                    f"High fatigue accumulation. {len(overshoots)} sets overshot RPE, "
                    f"affecting {top.muscle}."
                ),
                "moderate": (
                    f"Moderate fatigue detected. Average RPE overshoot is {avg_overshoot:.1f} "
                    "points across session."
                ),
                "mild": "Early fatigue signs. Consider slight reduction to maintain quality.",
            }[severity]
            return FatigueAlert(
                should_alert=True,
                severity=severity,
                affected_muscles=affected,
                suggested_reduction=reduction,
                reasoning=reasoning,
                confidence=confidence,
                scientific_basis=SCIENTIFIC_BASIS[severity],
                recommendations=cls.recommendations(severity, reduction) if severity != "mild" else [],
                fatigue_scores=list(scores),
            )

        return FatigueAlert(affected_muscles=affected, fatigue_scores=list(scores))

    @staticmethod
    def explanation(alert: FatigueAlert) -> str:
        """Render a markdown summary of why the alert fired."""
        if not alert.should_alert or not alert.fatigue_scores:
            return ""
        top = alert.fatigue_scores[0]
        lines = ["**Fatigue Analysis:**", "", alert.reasoning, "", "**Primary contributors:**"]
        for c in top.contributing_sets[:3]:
            lines.append(
                f"- {c.exercise_name} Set {c.set_index}: +{c.rpe_overshoot:.1f} RPE overshoot "
                f"({c.interference * 100:.0f}% interference)"
            )
        lines.extend(
            [
                "",
                f"**Recommendation:** Reduce load by {alert.suggested_reduction * 100:.0f}% "
                "for optimal performance and recovery.",
                "",
                f"*{alert.scientific_basis}*",
            ]
        )
        return "\n".join(lines)

    @staticmethod
    def adjusted_weight(last_weight: float, alert: FatigueAlert) -> float:
        if not alert.should_alert:
            return last_weight
        return float(round(last_weight * (1 - alert.suggested_reduction)))
