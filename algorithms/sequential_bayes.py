import math
from typing import Iterable

from schemas import SequentialFatigueEstimate, SetObservation
from .math_tools import MathTools


class SequentialFatigueEstimator:
    """Per-session Beta-posterior over fatigue, updated one set at a time.

    The estimator is a fold: construct it with the prior fatigue baseline,
    call :meth:`update` for each logged set, and :meth:`close` at the end of
    the session. It is never persisted between sessions.
    """

    DEFAULT_PRIOR = 20.0
    FORM_EVIDENCE = 30.0
    UNINTENTIONAL_FAILURE_EVIDENCE = 25.0
    OVERSHOOT_EVIDENCE = 5.0
    EVIDENCE_THRESHOLD = 10.0
    MIN_SHAPE = 0.5

    def __init__(self, prior_fatigue: float | None = None) -> None:
        prior = MathTools.clamp(
            self.DEFAULT_PRIOR if prior_fatigue is None else prior_fatigue, 0.0, 100.0
        )
        self.prior_fatigue = prior
        self.alpha = max(2 + prior / 10, self.MIN_SHAPE)
        self.beta = max(10 - prior / 10, self.MIN_SHAPE)
        self.sets_seen = 0
        self.estimates: list[SequentialFatigueEstimate] = []
        self.state = "fresh"

    @classmethod
    def evidence(cls, s: SetObservation) -> float:
        score = 0.0
        if s.form_breakdown:
            score += cls.FORM_EVIDENCE
        if s.reached_failure and s.prescribed_rpe is not None and s.prescribed_rpe <= 7:
            score += cls.UNINTENTIONAL_FAILURE_EVIDENCE
        if s.actual_rpe is not None and s.prescribed_rpe is not None:
            score += max(0.0, s.actual_rpe - s.prescribed_rpe) * cls.OVERSHOOT_EVIDENCE
        return score

    def posterior(self) -> tuple[float, float]:
        """Posterior mean and standard deviation on the 0-100 scale."""
        total = self.alpha + self.beta
        mean = self.alpha / total * 100
        variance = (self.alpha * self.beta) / (total ** 2 * (total + 1))
        return mean, math.sqrt(variance) * 100

    def update(self, s: SetObservation) -> SequentialFatigueEstimate | None:
        """Fold one set into the belief; skipped sets leave it unchanged."""
        if self.state == "closed":
            raise RuntimeError("cannot update a closed session estimator")
        self.sets_seen += 1
        if not s.completed:
            return None
        self.state = "updating"

        evidence = self.evidence(s)
        if evidence > self.EVIDENCE_THRESHOLD:
            self.alpha += evidence / 10
        else:
            self.beta += 1

        mean, sd = self.posterior()
        lower = max(0.0, mean - 1.96 * sd)
        upper = min(100.0, mean + 1.96 * sd)
        confidence = 1 - (upper - lower) / 100

        if mean >= 70 and confidence > 0.7:
            recommendation = "stop"
            reasoning = (
                f"High fatigue probability ({mean:.0f}%). Stop exercise to prevent overtraining."
            )
        elif mean >= 50 and confidence > 0.6:
            recommendation = "reduce_load"
            reasoning = f"Moderate fatigue ({mean:.0f}%). Consider reducing load by 10-15%."
        else:
            recommendation = "continue"
            reasoning = f"Fatigue manageable ({mean:.0f}%). Continue as planned."

        estimate = SequentialFatigueEstimate(
            set_number=self.sets_seen,
            posterior_fatigue=mean,
            credible_interval=(lower, upper),
            confidence=confidence,
            recommendation=recommendation,
            reasoning=reasoning,
        )
        self.estimates.append(estimate)
        return estimate

    @property
    def latest(self) -> SequentialFatigueEstimate | None:
        return self.estimates[-1] if self.estimates else None

    def close(self) -> list[SequentialFatigueEstimate]:
        self.state = "closed"
        return list(self.estimates)


def sequential_fatigue_analysis(
    sets: Iterable[SetObservation], prior_fatigue: float | None = None
) -> list[SequentialFatigueEstimate]:
    """Replay a whole session through a fresh estimator."""
    estimator = SequentialFatigueEstimator(prior_fatigue)
    for s in sets:
        estimator.update(s)
    return estimator.close()
