"""Time-based decay of reputation and vouch potency.

Two independent processes, both pure functions of elapsed time:

* reputation decay: applied by the daily maintenance job to the stored score
  once an agent has been inactive past a grace period (2% per inactive week,
  never below a floor);
* vouch potency: the effective strength of a vouch halves every 180 days. It
  is evaluated when the vouch score is computed and never written back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Final

from crabnet.datetime_utils import days_between
from crabnet.services.scoring import round_half_up

DECAY_GRACE_DAYS: Final[int] = 30
WEEKLY_DECAY_RATE: Final[float] = 0.98
REPUTATION_FLOOR: Final[int] = 10
VOUCH_HALF_LIFE_DAYS: Final[int] = 180


@dataclass(frozen=True, slots=True)
class DecayResult:
    """Outcome of applying reputation decay to one stored score."""

    previous_score: int
    new_score: int
    days_inactive: float
    weeks_decayed: float
    multiplier: float

    @property
    def decayed(self) -> bool:
        return self.new_score < self.previous_score

    def to_dict(self) -> dict[str, float | int]:
        return {
            "previous_score": self.previous_score,
            "new_score": self.new_score,
            "days_inactive": round(self.days_inactive, 2),
            "weeks_decayed": round(self.weeks_decayed, 4),
            "multiplier": round(self.multiplier, 6),
        }


def decay_multiplier(
    days_inactive: float,
    grace_days: float = DECAY_GRACE_DAYS,
    weekly_rate: float = WEEKLY_DECAY_RATE,
) -> float:
    """Multiplier for ``days_inactive`` days without activity (1.0 inside the grace period)."""
    if days_inactive <= grace_days:
        return 1.0
    weeks_inactive = (days_inactive - grace_days) / 7
    return weekly_rate**weeks_inactive


def apply_reputation_decay(
    score: int,
    last_activity_at: datetime,
    now: datetime,
    grace_days: float = DECAY_GRACE_DAYS,
    weekly_rate: float = WEEKLY_DECAY_RATE,
    floor: int = REPUTATION_FLOOR,
) -> DecayResult:
    """
    Decay a stored reputation score for inactivity.

    Args:
        score: Current integer score (0-100)
        last_activity_at: Last trust-affecting action of the agent
        now: Evaluation time
        grace_days: Days of inactivity tolerated before decay starts
        weekly_rate: Fraction retained per inactive week
        floor: Decay never takes a score below this value

    Returns:
        DecayResult; ``new_score <= previous_score`` always holds
    """
    days_inactive = days_between(last_activity_at, now)
    multiplier = decay_multiplier(days_inactive, grace_days, weekly_rate)
    weeks = max(days_inactive - grace_days, 0.0) / 7

    if multiplier >= 1.0:
        new_score = score
    else:
        # A score already under the floor is left alone rather than raised to it
        new_score = max(round_half_up(score * multiplier), min(score, floor))

    return DecayResult(
        previous_score=score,
        new_score=new_score,
        days_inactive=days_inactive,
        weeks_decayed=weeks,
        multiplier=multiplier,
    )


def vouch_potency(
    strength: float,
    vouched_at: datetime,
    now: datetime,
    half_life_days: float = VOUCH_HALF_LIFE_DAYS,
) -> float:
    """Effective strength of a vouch given ``vouched_at``: halves every ``half_life_days``."""
    age_days = days_between(vouched_at, now)
    return strength * 0.5 ** (age_days / half_life_days)


__all__ = [
    "DECAY_GRACE_DAYS",
    "WEEKLY_DECAY_RATE",
    "REPUTATION_FLOOR",
    "VOUCH_HALF_LIFE_DAYS",
    "DecayResult",
    "decay_multiplier",
    "apply_reputation_decay",
    "vouch_potency",
]
