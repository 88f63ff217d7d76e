"""
Unit tests for autopoiesis/resonance.py

Tests logistic closeness, bonding dynamics and stat modifiers.
"""

import math

import pytest
from autopoiesis.config import ResonanceConfig, ResonanceEffect
from autopoiesis.entity import EntityStats
from autopoiesis.resonance import ResonanceEngine


ORIGIN = (0.0, 0.0)


def mood_stats(level, **extra):
    return EntityStats(happiness=level, energy=level, health=level, **extra)


class TestCloseness:
    """Tests for the logistic closeness curve"""

    def test_midpoint(self, resonance_engine):
        """Closeness is exactly one half at the bond distance"""
        assert resonance_engine.closeness(150.0) == 0.5

    def test_monotonic(self, resonance_engine):
        """Closeness falls strictly with distance"""
        values = [resonance_engine.closeness(d) for d in range(0, 400, 25)]
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_bounds(self, resonance_engine):
        """Closeness stays in [0, 1] even far away"""
        assert 0.0 <= resonance_engine.closeness(1e9) <= 1.0
        assert 0.0 <= resonance_engine.closeness(0.0) <= 1.0

    def test_invalid_distance(self, resonance_engine):
        """Negative or non-finite distances read as no closeness"""
        assert resonance_engine.closeness(-1.0) == 0.0
        assert resonance_engine.closeness(math.nan) == 0.0
        assert resonance_engine.closeness(math.inf) == 0.0

    def test_distance(self):
        """Euclidean distance between positions"""
        assert ResonanceEngine.distance((0, 0), (3, 4)) == 5.0
        assert math.isnan(ResonanceEngine.distance((0, 0), None))


class TestUpdate:
    """Tests for a single resonance update"""

    def test_far_apart_separates(self, resonance_engine):
        """Entities 500 apart lose resonance"""
        sample = resonance_engine.update_resonance(
            ORIGIN, (500.0, 0.0), mood_stats(60), mood_stats(60), 50.0, 1000.0)
        assert sample.resonance_change == pytest.approx(-0.8985, abs=1e-3)
        assert sample.closeness == pytest.approx(0.001)
        assert sample.effect == ResonanceEffect.SEPARATION

    def test_close_and_happy_bonds(self, resonance_engine):
        """Nearby entities in good shape gain resonance"""
        sample = resonance_engine.update_resonance(
            ORIGIN, (50.0, 0.0), mood_stats(80), mood_stats(80), 10.0, 1000.0)
        assert sample.resonance_change == pytest.approx(1.564, abs=1e-3)
        assert sample.closeness == pytest.approx(0.881)
        assert sample.effect == ResonanceEffect.BONDING

    def test_critical_stats_stress(self, resonance_engine):
        """Critical stats pull resonance down even when touching"""
        starving = resonance_engine.update_resonance(
            ORIGIN, ORIGIN, mood_stats(100, hunger=10.0), mood_stats(100, hunger=10.0), 90.0, 1000.0)
        fed = resonance_engine.update_resonance(
            ORIGIN, ORIGIN, mood_stats(100, hunger=80.0), mood_stats(100, hunger=80.0), 90.0, 1000.0)

        assert starving.resonance_change == pytest.approx(-1.0987, abs=1e-3)
        assert starving.effect == ResonanceEffect.SEPARATION
        assert fed.resonance_change == pytest.approx(0.1613, abs=1e-3)
        assert fed.effect == ResonanceEffect.BONDING

    def test_deadband(self, resonance_engine):
        """Tiny changes are neutral"""
        sample = resonance_engine.update_resonance(
            ORIGIN, (500.0, 0.0), mood_stats(60), mood_stats(60), 50.0, 10.0)
        assert abs(sample.resonance_change) <= 0.1
        assert sample.effect == ResonanceEffect.NEUTRAL

    def test_zero_delta(self, resonance_engine):
        """No time passed, no change"""
        sample = resonance_engine.update_resonance(
            ORIGIN, ORIGIN, mood_stats(80), mood_stats(80), 40.0, 0.0)
        assert sample.resonance_change == 0.0

    def test_mismatched_moods_bond_slower(self, resonance_engine):
        """Synergy drops when moods diverge"""
        matched = resonance_engine.update_resonance(
            ORIGIN, ORIGIN, mood_stats(60), mood_stats(60), 10.0, 1000.0)
        mismatched = resonance_engine.update_resonance(
            ORIGIN, ORIGIN, mood_stats(100), mood_stats(20), 10.0, 1000.0)
        assert mismatched.resonance_change < matched.resonance_change

    def test_rounding(self, resonance_engine):
        """Change has four decimals, closeness three"""
        sample = resonance_engine.update_resonance(
            ORIGIN, (123.0, 0.0), mood_stats(70), mood_stats(55), 33.3, 777.0)
        assert abs(sample.resonance_change * 1e4 - round(sample.resonance_change * 1e4)) < 1e-6
        assert abs(sample.closeness * 1e3 - round(sample.closeness * 1e3)) < 1e-6

    def test_invalid_inputs_clamped(self, resonance_engine):
        """Out-of-range inputs are clamped and counted, never raised"""
        wild = EntityStats(happiness=500.0, energy=-20.0)
        sample = resonance_engine.update_resonance(
            ORIGIN, (math.nan, 0.0), wild, EntityStats(), 150.0, -5.0)
        assert sample.resonance_change == 0.0
        assert sample.closeness == 0.0
        assert resonance_engine.invalid_inputs >= 3

    def test_effect_counts(self, resonance_engine):
        """Effects are tallied in the statistics"""
        resonance_engine.update_resonance(ORIGIN, (500.0, 0.0), mood_stats(60), mood_stats(60), 50.0, 1000.0)
        resonance_engine.update_resonance(ORIGIN, (50.0, 0.0), mood_stats(80), mood_stats(80), 10.0, 1000.0)
        stats = resonance_engine.get_statistics()
        assert stats["separation_ticks"] == 1
        assert stats["bonding_ticks"] == 1
        assert stats["neutral_ticks"] == 0

    def test_custom_rates(self):
        """A zero bond rate never bonds"""
        engine = ResonanceEngine(ResonanceConfig(bond_rate=0.0))
        sample = engine.update_resonance(ORIGIN, ORIGIN, mood_stats(100), mood_stats(100), 0.0, 1000.0)
        assert sample.resonance_change == 0.0


class TestIntegration:
    """Tests for keeping resonance in range"""

    def test_integrate_bounds(self):
        """The running value saturates at 0 and 100"""
        assert ResonanceEngine.integrate(99.9, 5.0) == 100.0
        assert ResonanceEngine.integrate(0.1, -5.0) == 0.0
        assert ResonanceEngine.integrate(40.0, math.nan) == 40.0

    def test_long_run_stays_bounded(self, resonance_engine):
        """Repeated updates under extreme inputs stay in [0, 100]"""
        for start in (0.0, 100.0):
            resonance = start
            for distance in (0.0, 1e6):
                for _ in range(200):
                    sample = resonance_engine.update_resonance(
                        ORIGIN, (distance, 0.0), mood_stats(100), mood_stats(0.0), resonance, 60000.0)
                    resonance = ResonanceEngine.integrate(resonance, sample.resonance_change)
                    assert 0.0 <= resonance <= 100.0


class TestModifiers:
    """Tests for resonance-driven stat multipliers"""

    def test_neutral_when_apart(self, resonance_engine):
        """Zero resonance gives neutral multipliers"""
        mods = resonance_engine.modifiers_for(0.0, 1.0)
        assert mods["happiness_multiplier"] == 1.0
        assert mods["loneliness_penalty"] == 1.0

    def test_full_resonance(self, resonance_engine):
        """Full resonance and contact give the full boosts"""
        mods = resonance_engine.modifiers_for(100.0, 1.0)
        assert mods["happiness_multiplier"] == pytest.approx(1.3)
        assert mods["energy_multiplier"] == pytest.approx(1.2)
        assert mods["health_multiplier"] == pytest.approx(1.15)
        assert mods["loneliness_penalty"] == pytest.approx(0.5)

    def test_non_finite(self, resonance_engine):
        """Non-finite inputs give neutral multipliers"""
        mods = resonance_engine.modifiers_for(math.nan, 0.5)
        assert set(mods.values()) == {1.0}

    def test_apply(self):
        """Multipliers are applied and re-clamped"""
        stats = EntityStats(happiness=90.0, loneliness=40.0)
        mods = {
            "happiness_multiplier": 1.3,
            "energy_multiplier": 1.0,
            "health_multiplier": 1.0,
            "loneliness_penalty": 0.5,
        }
        new = ResonanceEngine.apply_modifiers(stats, mods)
        assert new.happiness == 100.0
        assert new.loneliness == pytest.approx(20.0)
        assert stats.happiness == 90.0
