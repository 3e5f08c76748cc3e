"""Unit tests for reputation decay and vouch potency."""

from datetime import datetime, timedelta, timezone

import pytest

from crabnet.services.decay import apply_reputation_decay, decay_multiplier, vouch_potency
from crabnet.services.scoring import clamp, round_half_up

NOW = datetime(2026, 3, 16, 12, 0, tzinfo=timezone.utc)


def _inactive(days: float) -> datetime:
    return NOW - timedelta(days=days)


class TestDecayMultiplier:
    def test_no_decay_inside_grace_period(self):
        assert decay_multiplier(0) == 1.0
        assert decay_multiplier(30) == 1.0

    def test_one_week_past_grace(self):
        assert decay_multiplier(37) == pytest.approx(0.98)

    def test_two_weeks_past_grace(self):
        assert decay_multiplier(44) == pytest.approx(0.9604)

    def test_partial_week(self):
        assert decay_multiplier(33.5) == pytest.approx(0.98**0.5)


class TestApplyReputationDecay:
    def test_37_days_inactive_loses_one_week(self):
        result = apply_reputation_decay(100, _inactive(37), NOW)
        assert result.multiplier == pytest.approx(0.98)
        assert result.new_score == 98
        assert result.decayed

    def test_recently_active_is_untouched(self):
        result = apply_reputation_decay(80, _inactive(10), NOW)
        assert result.new_score == 80
        assert not result.decayed

    def test_never_below_floor(self):
        result = apply_reputation_decay(60, _inactive(3 * 365), NOW)
        assert result.new_score == 10

    def test_score_below_floor_is_not_raised(self):
        assert apply_reputation_decay(5, _inactive(400), NOW).new_score == 5
        assert apply_reputation_decay(0, _inactive(400), NOW).new_score == 0

    @pytest.mark.parametrize("days", [0, 29, 31, 37, 60, 120, 365, 2000])
    @pytest.mark.parametrize("score", [0, 9, 10, 11, 50, 99, 100])
    def test_monotonically_non_increasing(self, score, days):
        result = apply_reputation_decay(score, _inactive(days), NOW)
        assert result.new_score <= score
        assert result.new_score >= min(score, 10)

    def test_custom_floor_and_rate(self):
        result = apply_reputation_decay(
            100, _inactive(14), NOW, grace_days=7, weekly_rate=0.5, floor=20
        )
        assert result.new_score == 50

    def test_to_dict(self):
        data = apply_reputation_decay(100, _inactive(37), NOW).to_dict()
        assert data["previous_score"] == 100
        assert data["new_score"] == 98
        assert data["weeks_decayed"] == 1.0


class TestVouchPotency:
    def test_fresh_vouch_at_full_strength(self):
        assert vouch_potency(80, NOW, NOW) == pytest.approx(80)

    def test_half_life(self):
        assert vouch_potency(80, NOW - timedelta(days=180), NOW) == pytest.approx(40)

    def test_two_half_lives(self):
        assert vouch_potency(80, NOW - timedelta(days=360), NOW) == pytest.approx(20)

    def test_future_timestamp_is_not_amplified(self):
        assert vouch_potency(80, NOW + timedelta(days=3), NOW) == pytest.approx(80)


class TestScoringHelpers:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4999) == 2
        assert round_half_up(62.5) == 63
        assert round_half_up(0) == 0

    def test_clamp(self):
        assert clamp(-3) == 0
        assert clamp(140) == 100
        assert clamp(42.5) == 42.5
