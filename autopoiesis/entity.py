"""
Entity state: stats, sessions, habits.

Everything the engines need to remember about an entity lives on the
Entity record itself, so two kernels never share hidden state.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple

import numpy as np

from .config import ActivityType, MoodType, EntityRole, PersonalityProfile, NeedsConfig
from .contracts import (
    STAT_NAMES, PRESSURE_STATS, EntitySnapshot,
    clamp_stat, safe_clamp,
)


@dataclass
class EntityStats:
    """
    The eight stats of an entity.

    hunger is satiety (100 = full). sleepiness, loneliness and boredom
    are pressures (100 = worst). money has no upper bound.
    """
    hunger: float = 50.0
    sleepiness: float = 50.0
    loneliness: float = 50.0
    happiness: float = 50.0
    energy: float = 50.0
    boredom: float = 50.0
    money: float = 50.0
    health: float = 90.0

    @classmethod
    def from_config(cls, config: NeedsConfig) -> "EntityStats":
        base = config.initial_stat_value
        return cls(
            hunger=base, sleepiness=base, loneliness=base, happiness=base,
            energy=base, boredom=base,
            money=config.initial_money, health=config.initial_health,
        )

    @classmethod
    def from_dict(cls, values: Dict[str, float]) -> "EntityStats":
        return cls(**{name: float(values[name]) for name in STAT_NAMES if name in values}).clamped()

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def copy(self) -> "EntityStats":
        return replace(self)

    def clamped(self) -> "EntityStats":
        """Copy with every stat clamped to its bounds (non-finite -> mid-range)"""
        return EntityStats(**{name: clamp_stat(name, value) for name, value in self.to_dict().items()})

    def critical_count(self, threshold: float = 20.0) -> int:
        """Number of stats strictly below threshold"""
        return sum(1 for value in self.to_dict().values() if value < threshold)

    def critical_stats(self, threshold: float = 20.0) -> Tuple[str, ...]:
        return tuple(name for name, value in self.to_dict().items() if value < threshold)

    def satisfaction_values(self) -> np.ndarray:
        """
        Every stat as "higher is better" on [0, 100].

        Pressure stats are inverted and money is capped at 100.
        """
        values = []
        for name in STAT_NAMES:
            value = safe_clamp(getattr(self, name), 0.0, 100.0)
            if name in PRESSURE_STATS:
                value = 100.0 - value
            values.append(value)
        return np.array(values, dtype=np.float64)

    def mood_level(self) -> float:
        """Mean of happiness, energy and health"""
        return (self.happiness + self.energy + self.health) / 3.0


@dataclass
class ActivitySession:
    """One committed stretch of a single activity"""
    activity: ActivityType
    start_time: float  # ms
    planned_duration: float  # ms
    effectiveness: float = 0.5
    satisfaction_level: float = 0.5
    interruptions: int = 0

    def elapsed(self, now: float) -> float:
        return max(0.0, now - self.start_time)

    def progress(self, now: float) -> float:
        """Elapsed / planned, clamped to [0, 1]"""
        if self.planned_duration <= 0:
            return 1.0
        return min(1.0, self.elapsed(now) / self.planned_duration)


class HabitBias:
    """Learned per-activity score offset, bounded to [-bound, bound]"""

    def __init__(self, bound: float = 5.0):
        self.bound = bound
        self._bias: Dict[ActivityType, float] = {}

    def get(self, activity: ActivityType) -> float:
        return self._bias.get(activity, 0.0)

    def adjust(self, activity: ActivityType, step: float) -> float:
        value = float(np.clip(self.get(activity) + step, -self.bound, self.bound))
        self._bias[activity] = value
        return value

    def clear(self):
        self._bias.clear()

    def as_dict(self) -> Dict[str, float]:
        return {activity.value: value for activity, value in self._bias.items()}

    def __len__(self):
        return len(self._bias)


@dataclass
class Entity:
    """An autonomous entity and its mind state"""
    role: EntityRole
    personality: PersonalityProfile
    stats: EntityStats = field(default_factory=EntityStats)
    activity: ActivityType = ActivityType.WANDERING
    mood: MoodType = MoodType.CALM
    position: Tuple[float, float] = (0.0, 0.0)
    last_activity_change: float = 0.0
    is_dead: bool = False
    time_of_death: Optional[float] = None
    resonance: float = 0.0

    # Decision state
    habits: HabitBias = field(default_factory=HabitBias)
    session: Optional[ActivitySession] = None
    last_decision_time: float = 0.0
    next_decision_delay: float = 0.0

    # Stats already in the critical band during the current session
    critical_flags: set = field(default_factory=set)

    @property
    def name(self) -> str:
        return self.role.value

    def time_in_activity(self, now: float) -> float:
        return max(0.0, now - self.last_activity_change)

    def mark_dead(self, now: float):
        if not self.is_dead:
            self.is_dead = True
            self.time_of_death = now

    def snapshot(self) -> EntitySnapshot:
        return {
            "role": self.role,
            "activity": self.activity,
            "mood": self.mood,
            "is_dead": self.is_dead,
            "stats": self.stats.to_dict(),
        }
