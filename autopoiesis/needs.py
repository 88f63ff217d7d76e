"""
Needs Model
===========
Default NeedsProvider: stat decay, survival costs, activity effects,
activity priorities and mood derivation.

Rates are expressed per second (decay) or per simulated minute
(activity effects, living costs) and scale linearly with elapsed time.
A single update never integrates more than `max_decay_step_s` seconds.

Stat directions:
    hunger, happiness, energy, health, money  -> higher is better
    sleepiness, loneliness, boredom           -> higher is worse
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional

import numpy as np

from .config import ActivityType, MoodType, NeedsConfig
from .contracts import UnknownActivityError, clamp_stat, is_finite
from .entity import EntityStats
from .environment import is_night_hour

logger = logging.getLogger("Autopoiesis.Needs")


# =============================================================================
# RATE TABLES
# =============================================================================

# Per-second drift of each stat with no activity
BASE_DECAY_RATES: Dict[str, float] = {
    "hunger": -0.08,
    "energy": -0.05,
    "happiness": -0.03,
    "sleepiness": 0.04,
    "boredom": 0.06,
    "loneliness": 0.02,
    "health": -0.01,
}

# How fast stats drift while engaged in each activity
ACTIVITY_DECAY_MULTIPLIERS: Dict[ActivityType, float] = {
    ActivityType.RESTING: 0.3,
    ActivityType.MEDITATING: 0.4,
    ActivityType.SOCIALIZING: 0.9,
    ActivityType.WORKING: 1.3,
    ActivityType.EXERCISING: 1.8,
    ActivityType.WANDERING: 0.7,
    ActivityType.WRITING: 1.0,
    ActivityType.EXPLORING: 1.2,
    ActivityType.CONTEMPLATING: 0.5,
    ActivityType.DANCING: 1.4,
    ActivityType.HIDING: 0.6,
    ActivityType.SHOPPING: 1.1,
    ActivityType.COOKING: 0.8,
}


class EfficiencyCurve(NamedTuple):
    """
    Piecewise "bell" around an optimal duration.

    Warm-up from `start` to `start + warm_gain` over the first `warmup`
    fraction of the optimal duration, then rise to `peak` at the optimum,
    then decline by `decline` per optimal duration down to `floor`.
    """
    warmup: float
    start: float
    warm_gain: float
    peak: float
    floor: float
    decline: float

    def __call__(self, t: float, optimal: float) -> float:
        if t < optimal * self.warmup:
            return self.start + (t / (optimal * self.warmup)) * self.warm_gain
        if t <= optimal:
            plateau = self.start + self.warm_gain
            span = optimal * (1.0 - self.warmup)
            return plateau + ((t - optimal * self.warmup) / span) * (self.peak - plateau)
        return max(self.floor, self.peak - ((t - optimal) / optimal) * self.decline)


@dataclass(frozen=True)
class ActivityEffects:
    """What an activity does to the stats"""
    optimal_duration: float  # ms
    curve: EfficiencyCurve
    per_minute: Dict[str, float] = field(default_factory=dict)
    immediate: Dict[str, float] = field(default_factory=dict)
    cost: Dict[str, float] = field(default_factory=dict)


ACTIVITY_EFFECTS: Dict[ActivityType, ActivityEffects] = {
    ActivityType.WORKING: ActivityEffects(
        optimal_duration=1200000,
        curve=EfficiencyCurve(0.5, 0.5, 0.3, 1.0, 0.2, 0.8),
        per_minute={"money": 5, "energy": -2, "boredom": 3, "hunger": -1},
        immediate={"money": 10, "energy": -0.3},
    ),
    ActivityType.RESTING: ActivityEffects(
        optimal_duration=180000,
        curve=EfficiencyCurve(0.3, 0.4, 0.4, 1.0, 0.3, 0.7),
        per_minute={"sleepiness": -15, "energy": 8, "hunger": -1},
        immediate={"sleepiness": -0.2, "energy": 0.15},
    ),
    ActivityType.SOCIALIZING: ActivityEffects(
        optimal_duration=360000,
        curve=EfficiencyCurve(0.2, 0.6, 0.3, 1.0, 0.4, 0.6),
        per_minute={"loneliness": -20, "happiness": 8, "energy": -3, "hunger": -2},
        immediate={"loneliness": -0.2, "happiness": 0.1},
    ),
    ActivityType.DANCING: ActivityEffects(
        optimal_duration=180000,
        curve=EfficiencyCurve(0.4, 0.7, 0.2, 1.0, 0.3, 0.7),
        per_minute={"boredom": -25, "happiness": 15, "energy": -5, "hunger": -4},
        immediate={"boredom": -0.2, "happiness": 0.15, "energy": -0.05},
    ),
    ActivityType.SHOPPING: ActivityEffects(
        optimal_duration=120000,
        curve=EfficiencyCurve(0.0, 1.0, 0.0, 1.0, 0.2, 0.8),
        per_minute={"happiness": 10, "hunger": 8, "boredom": -5},
        immediate={"happiness": 0.2},
        cost={"money": 5},
    ),
    ActivityType.COOKING: ActivityEffects(
        optimal_duration=180000,
        curve=EfficiencyCurve(0.3, 0.5, 0.4, 1.0, 0.4, 0.6),
        per_minute={"hunger": 20, "happiness": 5, "energy": -3},
        immediate={"boredom": -0.05},
        cost={"money": 3},
    ),
    ActivityType.EXERCISING: ActivityEffects(
        optimal_duration=240000,
        curve=EfficiencyCurve(0.5, 0.6, 0.3, 1.0, 0.2, 0.8),
        per_minute={"energy": -10, "boredom": -8, "happiness": 6, "hunger": -6},
        immediate={"energy": -0.2, "boredom": -0.1},
    ),
    ActivityType.MEDITATING: ActivityEffects(
        optimal_duration=300000,
        curve=EfficiencyCurve(0.6, 0.4, 0.4, 1.0, 0.5, 0.5),
        per_minute={"happiness": 8, "loneliness": 3, "sleepiness": -5, "boredom": -3},
        immediate={"happiness": 0.05, "loneliness": 0.03},
    ),
    ActivityType.WRITING: ActivityEffects(
        optimal_duration=600000,
        curve=EfficiencyCurve(0.4, 0.5, 0.3, 1.0, 0.4, 0.6),
        per_minute={"boredom": -15, "happiness": 5, "loneliness": 4, "energy": -2},
        immediate={"boredom": -0.15, "loneliness": 0.05},
    ),
    ActivityType.WANDERING: ActivityEffects(
        optimal_duration=120000,
        curve=EfficiencyCurve(0.0, 1.0, 0.0, 1.0, 0.5, 0.5),
        per_minute={"boredom": -5, "energy": -2, "happiness": 2},
        immediate={"boredom": -0.04, "loneliness": 0.02},
    ),
    ActivityType.EXPLORING: ActivityEffects(
        optimal_duration=300000,
        curve=EfficiencyCurve(0.3, 0.6, 0.3, 1.0, 0.3, 0.7),
        per_minute={"boredom": -18, "energy": -6, "happiness": 8, "hunger": -3},
        immediate={"boredom": -0.2, "energy": -0.1},
    ),
    ActivityType.CONTEMPLATING: ActivityEffects(
        optimal_duration=480000,
        curve=EfficiencyCurve(0.7, 0.3, 0.5, 1.0, 0.4, 0.6),
        per_minute={"boredom": -8, "happiness": 4, "loneliness": 5, "energy": 1},
        immediate={"boredom": -0.08, "loneliness": 0.05},
    ),
    ActivityType.HIDING: ActivityEffects(
        optimal_duration=240000,
        curve=EfficiencyCurve(0.5, 0.7, 0.0, 0.9, 0.3, 0.6),
        per_minute={"loneliness": 15, "happiness": -5, "energy": 3},
        immediate={"loneliness": 0.2},
    ),
}


def effects_for(activity: ActivityType) -> ActivityEffects:
    try:
        return ACTIVITY_EFFECTS[activity]
    except KeyError:
        raise UnknownActivityError(f"No effects registered for activity: {activity}") from None


# =============================================================================
# NEEDS MODEL
# =============================================================================

class NeedsModel:
    """
    Default needs arithmetic.

    Pure with respect to its inputs: every method returns new stats and
    never mutates the EntityStats it is given.
    """

    def __init__(self, config: Optional[NeedsConfig] = None):
        self.config = config or NeedsConfig()

    # ------------------------------------------------------------------
    # Priority
    # ------------------------------------------------------------------

    def urgency(self, value: float, alpha: Optional[float] = None) -> float:
        """
        Non-linear urgency w(v, a) = 1 - (v/100)^a.

        1 when v is empty, 0 when v is full. Non-finite input gives 0.
        """
        if alpha is None:
            alpha = self.config.urgency_exponent
        if not is_finite(value) or not is_finite(alpha):
            return 0.0
        v = min(100.0, max(0.0, value))
        a = max(0.1, min(10.0, alpha))
        result = (v / 100.0) ** a
        return float(np.clip(1.0 - result, 0.0, 1.0))

    def _need_score(self, activity: ActivityType, stats: EntityStats) -> float:
        w = self.urgency
        effects = effects_for(activity)

        if activity == ActivityType.WORKING:
            return w(stats.money) * 100 - w(stats.energy) * 30

        if activity == ActivityType.SHOPPING:
            if stats.money > effects.cost.get("money", 0.0):
                need = (w(stats.hunger) + w(100 - stats.boredom)) / 2
                return need * 100 * 0.8
            return 0.0

        if activity == ActivityType.RESTING:
            return max(0.0, stats.sleepiness - 30) * 1.2 + w(stats.energy) * 80

        if activity == ActivityType.COOKING:
            if stats.money >= effects.cost.get("money", 0.0):
                return w(stats.hunger) * 100 * 0.9
            return 0.0

        if activity == ActivityType.SOCIALIZING:
            return w(100 - stats.loneliness) * 100 * 1.1

        if activity in (ActivityType.DANCING, ActivityType.EXERCISING):
            return w(100 - stats.boredom) * 100 * 0.9 - w(stats.energy) * 50

        return 0.0

    def priority(self, activity: ActivityType, stats: EntityStats,
                 time_in_activity_ms: float = 0.0) -> float:
        """
        Urgency of an activity, weighted by how effective it currently is.

        Raises UnknownActivityError for activities outside the catalog.
        Always finite and >= 0 otherwise.
        """
        effects = effects_for(activity)
        priority = self._need_score(activity, stats)
        priority *= self.efficiency(activity, time_in_activity_ms)

        if (is_finite(time_in_activity_ms)
                and time_in_activity_ms > effects.optimal_duration * self.config.overtime_factor):
            priority *= 0.5

        return max(0.0, priority) if is_finite(priority) else 0.0

    def efficiency(self, activity: ActivityType, time_in_activity_ms: float) -> float:
        effects = effects_for(activity)
        if not is_finite(time_in_activity_ms) or time_in_activity_ms < 0:
            time_in_activity_ms = 0.0
        return float(effects.curve(time_in_activity_ms, effects.optimal_duration))

    def optimal_duration(self, activity: ActivityType) -> float:
        return effects_for(activity).optimal_duration

    # ------------------------------------------------------------------
    # Stat updates
    # ------------------------------------------------------------------

    def update(self, stats: EntityStats, activity: ActivityType,
               delta_ms: float, time_of_day: float) -> EntityStats:
        """Decay, survival costs and activity effects for delta_ms"""
        if not is_finite(delta_ms) or delta_ms < 0:
            logger.warning(f"Ignoring invalid needs delta: {delta_ms}")
            return stats.copy()

        new_stats = self.apply_decay(stats, activity, delta_ms)
        new_stats = self.apply_survival_costs(new_stats, delta_ms)
        new_stats = self.apply_activity_effects(new_stats, activity, delta_ms, time_of_day)
        return new_stats

    def apply_decay(self, stats: EntityStats, activity: ActivityType,
                    delta_ms: float) -> EntityStats:
        values = stats.to_dict()
        seconds = min(self.config.max_decay_step_s, delta_ms / 1000.0)
        seconds *= self.config.game_speed_multiplier
        multiplier = ACTIVITY_DECAY_MULTIPLIERS.get(activity, 1.0)

        for name, rate in BASE_DECAY_RATES.items():
            new_value = values[name] + rate * multiplier * seconds
            if is_finite(new_value):
                values[name] = clamp_stat(name, new_value)

        return EntityStats(**values)

    def apply_survival_costs(self, stats: EntityStats, delta_ms: float) -> EntityStats:
        cfg = self.config
        new_stats = stats.copy()
        minutes = (delta_ms / 60000.0) * cfg.game_speed_multiplier

        new_stats.money = max(0.0, new_stats.money - cfg.living_cost_per_minute * minutes)

        if new_stats.money < cfg.critical_money:
            desperation = (cfg.critical_money - new_stats.money) / cfg.critical_money
            new_stats.hunger = max(
                0.0, new_stats.hunger - desperation * cfg.desperation_hunger_rate * minutes)
            new_stats.happiness = max(
                0.0, new_stats.happiness - desperation * cfg.desperation_happiness_rate * minutes)

        return new_stats

    def apply_activity_effects(self, stats: EntityStats, activity: ActivityType,
                               delta_ms: float, time_of_day: float) -> EntityStats:
        effects = ACTIVITY_EFFECTS.get(activity)
        if effects is None:
            logger.warning(f"Unknown activity {activity}, skipping its effects")
            return stats.copy()

        values = stats.to_dict()
        minutes = (delta_ms / 60000.0) * self.config.game_speed_multiplier

        for name, rate in effects.per_minute.items():
            values[name] = clamp_stat(name, values[name] + rate * minutes)

        if activity == ActivityType.RESTING:
            self._apply_rest_modifiers(values, effects, minutes, time_of_day)

        return EntityStats(**values)

    def _apply_rest_modifiers(self, values: Dict[str, float], effects: ActivityEffects,
                              minutes: float, hour: float):
        """Resting is worth more at night and most in the small hours"""
        night = is_night_hour(hour)

        energy_bonus = 1.5 if night else 1.0
        sleepiness_bonus = 2.0 if night else 0.8
        deep_sleep = 1.3 if 1.0 <= hour <= 5.0 else 1.0

        values["energy"] = clamp_stat(
            "energy", values["energy"] + effects.per_minute["energy"] * (energy_bonus - 1.0) * minutes)
        values["sleepiness"] = clamp_stat(
            "sleepiness",
            values["sleepiness"] + effects.per_minute["sleepiness"] * (sleepiness_bonus - 1.0) * minutes)
        values["health"] = clamp_stat("health", values["health"] + deep_sleep * 0.5 * minutes)

        if night:
            values["boredom"] = clamp_stat("boredom", values["boredom"] - 2.0 * minutes)

    def can_afford(self, stats: EntityStats, activity: ActivityType) -> bool:
        return stats.money >= effects_for(activity).cost.get("money", 0.0)

    def on_activity_start(self, stats: EntityStats, activity: ActivityType) -> EntityStats:
        """One-off start effects plus the activity's money cost"""
        effects = ACTIVITY_EFFECTS.get(activity)
        if effects is None:
            logger.warning(f"Unknown activity {activity}, no start effects applied")
            return stats.copy()

        values = stats.to_dict()
        for name, amount in effects.immediate.items():
            values[name] = clamp_stat(name, values[name] + amount)
        for name, amount in effects.cost.items():
            values[name] = clamp_stat(name, values[name] - amount)
        return EntityStats(**values)

    def apply_adjustments(self, stats: EntityStats, per_second: Dict[str, float],
                          delta_ms: float) -> EntityStats:
        """Add per-second stat adjustments (emergent pattern feedback)"""
        if not per_second:
            return stats
        values = stats.to_dict()
        seconds = min(self.config.max_decay_step_s, max(0.0, delta_ms) / 1000.0)
        for name, rate in per_second.items():
            if name not in values:
                logger.warning(f"Ignoring adjustment for unknown stat: {name}")
                continue
            values[name] = clamp_stat(name, values[name] + rate * seconds)
        return EntityStats(**values)

    # ------------------------------------------------------------------
    # Mood and life
    # ------------------------------------------------------------------

    def derive_mood(self, stats: EntityStats) -> MoodType:
        if stats.happiness > 70:
            if stats.energy > 80 and stats.boredom < 30:
                return MoodType.EXCITED
            return MoodType.HAPPY
        if stats.energy < 30 or stats.sleepiness > 80:
            return MoodType.TIRED
        if stats.loneliness > 70:
            return MoodType.LONELY
        if stats.boredom > 70:
            return MoodType.BORED
        if stats.hunger < 20 or stats.health < 30:
            return MoodType.ANXIOUS
        if stats.happiness < 30:
            return MoodType.ANGRY if stats.money < 10 else MoodType.SAD
        return MoodType.CALM

    def is_dead(self, stats: EntityStats) -> bool:
        return stats.health <= 0.0
