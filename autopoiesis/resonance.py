"""
Resonance Engine
================
Continuous pairwise bonding between the two entities.

Per tick:
    closeness  = 1 / (1 + exp((d - d0) / s))
    gain       = bond_rate * closeness * mood_bonus * synergy * (1 - r/100)
    separation = separation_rate * (1 - closeness) * r/100
    stress     = stress_rate * critical_count * r/100
    Δr         = (gain - separation - stress) * dt

The resonance value itself is owned by the caller; this engine only
computes the change and the stat multipliers that follow from it.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
from scipy.special import expit

from .config import ResonanceConfig, ResonanceEffect
from .contracts import (
    StatModifiers, NEUTRAL_MODIFIERS, is_finite, safe_clamp, precise_round, clamp_stat,
)
from .entity import EntityStats

logger = logging.getLogger("Autopoiesis.Resonance")


@dataclass(frozen=True)
class ResonanceSample:
    """Result of one resonance update"""
    resonance_change: float
    effect: ResonanceEffect
    closeness: float


class ResonanceEngine:
    """Logistic-proximity bonding model"""

    def __init__(self, config: ResonanceConfig):
        self.config = config
        self.effect_counts: Dict[ResonanceEffect, int] = {effect: 0 for effect in ResonanceEffect}
        self.invalid_inputs = 0

    def closeness(self, distance: float) -> float:
        """Logistic closeness in [0, 1]; exactly 0.5 at the bond distance"""
        if not is_finite(distance) or distance < 0:
            return 0.0
        cfg = self.config
        return float(expit((cfg.bond_distance - distance) / cfg.distance_scale))

    @staticmethod
    def distance(pos_a: Tuple[float, float], pos_b: Tuple[float, float]) -> float:
        try:
            return math.hypot(pos_a[0] - pos_b[0], pos_a[1] - pos_b[1])
        except (TypeError, IndexError):
            return math.nan

    def _sanitize_stats(self, stats: EntityStats) -> EntityStats:
        clean = stats.clamped()
        if clean != stats:
            self.invalid_inputs += 1
            logger.warning("Clamped out-of-range stats in resonance input")
        return clean

    def update_resonance(self,
                         pos_a: Tuple[float, float],
                         pos_b: Tuple[float, float],
                         stats_a: EntityStats,
                         stats_b: EntityStats,
                         current_resonance: float,
                         delta_ms: float) -> ResonanceSample:
        cfg = self.config

        distance = self.distance(pos_a, pos_b)
        if not is_finite(distance):
            self.invalid_inputs += 1
            logger.warning(f"Invalid positions {pos_a}, {pos_b}; treating entities as apart")
        closeness = self.closeness(distance)

        if not is_finite(current_resonance) or not 0.0 <= current_resonance <= 100.0:
            self.invalid_inputs += 1
            logger.warning(f"Clamping invalid resonance input: {current_resonance}")
        resonance = safe_clamp(current_resonance, 0.0, 100.0)

        if not is_finite(delta_ms) or delta_ms < 0:
            self.invalid_inputs += 1
            logger.warning(f"Ignoring invalid resonance delta: {delta_ms}")
            delta_ms = 0.0

        stats_a = self._sanitize_stats(stats_a)
        stats_b = self._sanitize_stats(stats_b)

        mood_a = stats_a.mood_level()
        mood_b = stats_b.mood_level()
        mood_bonus = (mood_a + mood_b) / 200.0
        synergy = max(0.0, 1.0 - abs(mood_a - mood_b) / 100.0)

        level = resonance / 100.0
        gain = cfg.bond_rate * closeness * mood_bonus * synergy * (1.0 - level)
        separation = cfg.separation_rate * (1.0 - closeness) * level

        critical = (stats_a.critical_count(cfg.critical_stat_threshold)
                    + stats_b.critical_count(cfg.critical_stat_threshold))
        stress = cfg.stress_rate * critical * level

        change = precise_round((gain - separation - stress) * (delta_ms / 1000.0),
                               cfg.change_precision)

        if change > cfg.effect_deadband:
            effect = ResonanceEffect.BONDING
        elif change < -cfg.effect_deadband:
            effect = ResonanceEffect.SEPARATION
        else:
            effect = ResonanceEffect.NEUTRAL
        self.effect_counts[effect] += 1

        return ResonanceSample(
            resonance_change=change,
            effect=effect,
            closeness=precise_round(closeness, cfg.closeness_precision),
        )

    @staticmethod
    def integrate(resonance: float, change: float) -> float:
        """Running integral of resonance, always in [0, 100]"""
        if not is_finite(change):
            change = 0.0
        return safe_clamp(safe_clamp(resonance, 0.0, 100.0) + change, 0.0, 100.0)

    def modifiers_for(self, resonance: float, closeness: float) -> StatModifiers:
        if not is_finite(resonance) or not is_finite(closeness):
            return dict(NEUTRAL_MODIFIERS)
        cfg = self.config
        effect = (float(np.clip(resonance, 0.0, 100.0)) / 100.0) * float(np.clip(closeness, 0.0, 1.0))
        return {
            "happiness_multiplier": 1.0 + effect * cfg.happiness_boost,
            "energy_multiplier": 1.0 + effect * cfg.energy_boost,
            "health_multiplier": 1.0 + effect * cfg.health_boost,
            "loneliness_penalty": 1.0 - effect * cfg.loneliness_relief,
        }

    @staticmethod
    def apply_modifiers(stats: EntityStats, modifiers: StatModifiers) -> EntityStats:
        """Multiply the modifiers into the stats and re-clamp"""
        new_stats = stats.copy()
        new_stats.happiness = clamp_stat("happiness", stats.happiness * modifiers["happiness_multiplier"])
        new_stats.energy = clamp_stat("energy", stats.energy * modifiers["energy_multiplier"])
        new_stats.health = clamp_stat("health", stats.health * modifiers["health_multiplier"])
        new_stats.loneliness = clamp_stat("loneliness", stats.loneliness * modifiers["loneliness_penalty"])
        return new_stats

    def get_statistics(self) -> Dict[str, int]:
        stats = {f"{effect.value.lower()}_ticks": count for effect, count in self.effect_counts.items()}
        stats["invalid_inputs"] = self.invalid_inputs
        return stats
