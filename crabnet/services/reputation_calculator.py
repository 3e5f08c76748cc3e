"""Reputation scoring model.

An agent's reputation is a 0-100 integer built from four weighted signals,
each clamped to [0, 100] before weighting:

    task    0.40  success rate plus a volume bonus
    review  0.30  mean peer rating, blended toward 50 while evidence is thin
    vouch   0.20  strength of active vouches scaled by voucher standing
    age     0.10  account age plus recency of activity

The calculator is a pure function of its inputs; gathering the signals and
persisting the result is done by :mod:`crabnet.services.reputation_service`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Final

from crabnet.config import get_settings
from crabnet.datetime_utils import days_between
from crabnet.models import TrustTier
from crabnet.services.decay import VOUCH_HALF_LIFE_DAYS, vouch_potency
from crabnet.services.scoring import clamp, round_half_up


@dataclass(frozen=True, slots=True)
class VouchSignal:
    """One active vouch received by the agent being scored."""

    strength: int
    voucher_reputation: int
    voucher_verified: bool
    vouched_at: datetime
    # Fraction of the strength retained after circular-vouch detection
    penalty: float = 1.0
    voucher_id: str | None = None


@dataclass(frozen=True, slots=True)
class ReputationSignals:
    """Everything the score depends on, already fetched from the ledgers."""

    tasks_completed: int = 0
    tasks_failed: int = 0
    avg_review_rating: float = 0.0
    review_count: int = 0
    vouches: tuple[VouchSignal, ...] = ()
    registered_at: datetime | None = None
    last_activity_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ComponentScore:
    """A single weighted component of the reputation score."""

    name: str
    weight: float
    raw: int
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def weighted(self) -> float:
        return self.raw * self.weight

    @property
    def weighted_hundredths(self) -> int:
        """Weighted contribution in exact hundredths of a point (weights have two decimals)."""
        return self.raw * round(self.weight * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weight": self.weight,
            "raw": self.raw,
            "weighted": round(self.weighted, 2),
            "details": dict(self.details),
        }


@dataclass(frozen=True, slots=True)
class ReputationResult:
    """Immutable result of a reputation calculation."""

    score: int
    tier: str
    components: tuple[ComponentScore, ...]

    def component(self, name: str) -> ComponentScore:
        for component in self.components:
            if component.name == name:
                return component
        raise KeyError(name)

    def breakdown(self) -> dict[str, dict[str, Any]]:
        """JSON-serialisable breakdown keyed by component name."""
        return {c.name: c.to_dict() for c in self.components}


def compute_tier(score: int) -> str:
    """Map a score to its trust tier: >=75 elite, >=50 established, >=25 trusted."""
    if score >= 75:
        return TrustTier.elite.value
    if score >= 50:
        return TrustTier.established.value
    if score >= 25:
        return TrustTier.trusted.value
    return TrustTier.newcomer.value


class ReputationCalculator:
    """
    Calculates reputation scores from task, review, vouch and age signals.

    This class is stateless and thread-safe.
    """

    TASK_WEIGHT: Final[float] = 0.40
    REVIEW_WEIGHT: Final[float] = 0.30
    VOUCH_WEIGHT: Final[float] = 0.20
    AGE_WEIGHT: Final[float] = 0.10

    # Task component
    SUCCESS_POINTS: Final[float] = 80.0
    VOLUME_BONUS_POINTS: Final[float] = 20.0
    VOLUME_SATURATION_TASKS: Final[int] = 50

    # Review component
    REVIEW_CONFIDENCE_COUNT: Final[int] = 20
    NEUTRAL_REVIEW_SCORE: Final[float] = 50.0

    # Vouch component
    VERIFIED_VOUCHER_BONUS: Final[float] = 1.5
    VOUCH_WEIGHT_DIVISOR: Final[float] = 15.0
    VOUCH_REFERENCE_CEILING: Final[float] = 75.0

    # Age component
    AGE_SATURATION_DAYS: Final[int] = 180
    AGE_POINTS: Final[float] = 50.0
    ACTIVITY_POINTS: Final[float] = 50.0
    ACTIVITY_DECAY_PER_DAY: Final[float] = 2.0

    __slots__ = ("vouch_half_life_days",)

    def __init__(self, vouch_half_life_days: float = VOUCH_HALF_LIFE_DAYS) -> None:
        self.vouch_half_life_days = vouch_half_life_days

    def task_score(self, completed: int, failed: int) -> ComponentScore:
        """Success rate worth up to 80 points plus up to 20 for volume (saturating at 50 tasks)."""
        total = completed + failed
        if total == 0:
            return ComponentScore("task", self.TASK_WEIGHT, 0, {"completed": 0, "failed": 0})

        success_rate = completed / total
        volume_bonus = min(total / self.VOLUME_SATURATION_TASKS, 1.0) * self.VOLUME_BONUS_POINTS
        raw = clamp(min(success_rate * self.SUCCESS_POINTS + volume_bonus, 100.0))

        return ComponentScore(
            "task",
            self.TASK_WEIGHT,
            round_half_up(raw),
            {
                "completed": completed,
                "failed": failed,
                "success_rate": round(success_rate, 4),
                "volume_bonus": round(volume_bonus, 2),
            },
        )

    def review_score(self, avg_rating: float, review_count: int) -> ComponentScore:
        """Map the mean rating 1-5 onto 0-100, blended toward 50 until 20 reviews exist."""
        if review_count <= 0:
            return ComponentScore("review", self.REVIEW_WEIGHT, 0, {"review_count": 0})

        rating_score = (avg_rating - 1) / 4 * 100
        confidence = min(review_count / self.REVIEW_CONFIDENCE_COUNT, 1.0)
        raw = clamp(rating_score * confidence + self.NEUTRAL_REVIEW_SCORE * (1 - confidence))

        return ComponentScore(
            "review",
            self.REVIEW_WEIGHT,
            round_half_up(raw),
            {
                "avg_rating": round(avg_rating, 2),
                "review_count": review_count,
                "rating_score": round(rating_score, 2),
                "confidence": round(confidence, 4),
            },
        )

    def vouch_weight(self, vouch: VouchSignal, now: datetime) -> float:
        """Contribution of one vouch before normalisation."""
        strength = vouch_potency(
            vouch.strength * vouch.penalty, vouch.vouched_at, now, self.vouch_half_life_days
        )
        weight = strength * (vouch.voucher_reputation / 100)
        if vouch.voucher_verified:
            weight *= self.VERIFIED_VOUCHER_BONUS
        return weight

    def vouch_score(self, vouches: tuple[VouchSignal, ...], now: datetime) -> ComponentScore:
        """Sum of vouch weights, divided by 15 and expressed against a 75-point ceiling."""
        if not vouches:
            return ComponentScore("vouch", self.VOUCH_WEIGHT, 0, {"active_vouches": 0})

        total_weight = sum(self.vouch_weight(v, now) for v in vouches)
        raw = clamp(total_weight / self.VOUCH_WEIGHT_DIVISOR * 100 / self.VOUCH_REFERENCE_CEILING)

        return ComponentScore(
            "vouch",
            self.VOUCH_WEIGHT,
            round_half_up(raw),
            {
                "active_vouches": len(vouches),
                "verified_vouchers": sum(1 for v in vouches if v.voucher_verified),
                "circular_vouches": sum(1 for v in vouches if v.penalty < 1.0),
                "total_weight": round(total_weight, 2),
            },
        )

    def age_score(
        self,
        registered_at: datetime | None,
        last_activity_at: datetime | None,
        now: datetime,
    ) -> ComponentScore:
        """Up to 50 points for account age (180 days) and 50 for recent activity.

        Activity loses 2 points per day since the last trust-affecting action.
        """
        if registered_at is None:
            return ComponentScore("age", self.AGE_WEIGHT, 0, {})

        days_registered = days_between(registered_at, now)
        days_inactive = days_between(last_activity_at or registered_at, now)
        age_component = min(days_registered / self.AGE_SATURATION_DAYS, 1.0) * self.AGE_POINTS
        activity_component = max(
            0.0, self.ACTIVITY_POINTS - self.ACTIVITY_DECAY_PER_DAY * days_inactive
        )
        raw = clamp(age_component + activity_component)

        return ComponentScore(
            "age",
            self.AGE_WEIGHT,
            round_half_up(raw),
            {
                "days_registered": round(days_registered, 2),
                "days_since_activity": round(days_inactive, 2),
                "age_component": round(age_component, 2),
                "activity_component": round(activity_component, 2),
            },
        )

    def calculate(self, signals: ReputationSignals, now: datetime) -> ReputationResult:
        """
        Calculate the full reputation score for an agent.

        Args:
            signals: Task, review, vouch and age inputs
            now: Evaluation time (vouch potency and age are time dependent)

        Returns:
            ReputationResult with score, tier and per-component breakdown
        """
        components = (
            self.task_score(signals.tasks_completed, signals.tasks_failed),
            self.review_score(signals.avg_review_rating, signals.review_count),
            self.vouch_score(signals.vouches, now),
            self.age_score(signals.registered_at, signals.last_activity_at, now),
        )
        # integer sum so a total of exactly x.5 always rounds up
        total_hundredths = sum(c.weighted_hundredths for c in components)
        score = int(clamp((total_hundredths + 50) // 100, 0, 100))

        return ReputationResult(score=score, tier=compute_tier(score), components=components)


@lru_cache(maxsize=1)
def get_reputation_calculator() -> ReputationCalculator:
    """Get the singleton ReputationCalculator instance, configured from settings."""
    return ReputationCalculator(get_settings().vouch_half_life_days)


__all__ = [
    "ComponentScore",
    "ReputationCalculator",
    "ReputationResult",
    "ReputationSignals",
    "VouchSignal",
    "compute_tier",
    "get_reputation_calculator",
]
