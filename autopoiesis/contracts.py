"""
Autopoiesis Kernel Contracts
============================
Interface contracts between the kernel and its external collaborators.

The kernel owns exactly three engines (decision, resonance, emergence).
Everything else - the needs arithmetic, the day/night clock, the random
source - is supplied from outside through the protocols below.

Key Principle: invalid numbers are CLAMPED, never raised.
A bad sample degrades one tick's result, it never aborts the tick.
"""

from typing import TypedDict, Protocol, Dict, List, Optional, Tuple, TYPE_CHECKING
import math

import numpy as np

if TYPE_CHECKING:
    from .config import ActivityType, MoodType, DayPhase, WeatherType, EntityRole
    from .entity import EntityStats


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class KernelError(Exception):
    """Base class for all kernel errors."""
    pass


class UnknownActivityError(KernelError):
    """Raised when an activity lookup fails against the activity catalog."""
    pass


class UnknownPatternError(KernelError):
    """Raised when a pattern or feedback loop id is not in the catalog."""
    pass


class ConfigurationError(KernelError):
    """Raised by SimulationConfig.validate() for inconsistent configuration."""
    pass


class ContractViolationError(KernelError):
    """Raised when an architectural contract is violated."""
    pass


# Errors a single candidate/template/predicate evaluation may raise without
# taking the rest of the tick down with it. Contract and configuration
# errors always propagate.
ISOLATED_ERRORS = (UnknownActivityError, UnknownPatternError,
                   ArithmeticError, ValueError, KeyError, TypeError)


# =============================================================================
# STAT BOUNDS
# =============================================================================

STAT_NAMES: Tuple[str, ...] = (
    "hunger", "sleepiness", "loneliness", "happiness",
    "energy", "boredom", "money", "health",
)

# Higher is worse for these, higher is better for every other stat
PRESSURE_STATS: Tuple[str, ...] = ("sleepiness", "loneliness", "boredom")

STAT_BOUNDS: Dict[str, Tuple[float, float]] = {
    "hunger": (0.0, 100.0),
    "sleepiness": (0.0, 100.0),
    "loneliness": (0.0, 100.0),
    "happiness": (0.0, 100.0),
    "energy": (0.0, 100.0),
    "boredom": (0.0, 100.0),
    "money": (0.0, math.inf),
    "health": (0.0, 100.0),
}


# =============================================================================
# NUMERIC HYGIENE
# =============================================================================

def is_finite(value) -> bool:
    """True for real finite numbers, False for NaN/inf/None/non-numbers."""
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def safe_clamp(value: float, low: float, high: float,
               default: Optional[float] = None) -> float:
    """
    Clamp value to [low, high].

    Non-finite input maps to `default`, or to the midpoint of the range
    when no default is given (the lower bound for half-open ranges).
    """
    if not is_finite(value):
        if default is not None:
            return float(default)
        if math.isfinite(high):
            return (low + high) / 2.0
        return float(low)
    return float(min(max(value, low), high))


def precise_round(value: float, decimals: int) -> float:
    """Round half away from zero to a fixed number of decimals."""
    if not is_finite(value):
        return 0.0
    factor = 10.0 ** decimals
    return float(np.sign(value) * np.floor(abs(value) * factor + 0.5) / factor)


def clamp_stat(name: str, value: float) -> float:
    """Clamp one named stat to its bounds."""
    low, high = STAT_BOUNDS[name]
    return safe_clamp(value, low, high)


# =============================================================================
# DATA CONTRACTS
# =============================================================================

class StatModifiers(TypedDict):
    """
    Multipliers derived from resonance.

    All four multiply into the corresponding stat each tick and the
    result is re-clamped by the caller.
    """
    happiness_multiplier: float  # [1.0, 1.3]
    energy_multiplier: float     # [1.0, 1.2]
    health_multiplier: float     # [1.0, 1.15]
    loneliness_penalty: float    # [0.5, 1.0]


NEUTRAL_MODIFIERS: StatModifiers = {
    "happiness_multiplier": 1.0,
    "energy_multiplier": 1.0,
    "health_multiplier": 1.0,
    "loneliness_penalty": 1.0,
}


class EntitySnapshot(TypedDict):
    """Read-only view of one entity for the emergence engine."""
    role: "EntityRole"
    activity: "ActivityType"
    mood: "MoodType"
    is_dead: bool
    stats: Dict[str, float]


class SystemSnapshot(TypedDict):
    """
    Aggregate state sampled on the metrics cadence.

    Resonance is carried on its native [0, 100] scale; the emergence
    engine normalises it.
    """
    time_ms: float
    resonance: float
    day_phase: "DayPhase"
    is_night: bool
    weather: "WeatherType"
    entities: List[EntitySnapshot]


# =============================================================================
# PROTOCOL DEFINITIONS
# =============================================================================

class NeedsProvider(Protocol):
    """
    Needs arithmetic. The kernel never touches decay rates directly,
    it only calls through this contract.
    """
    def priority(self, activity: "ActivityType", stats: "EntityStats",
                 time_in_activity_ms: float) -> float:
        """Urgency of an activity given current stats. Finite and >= 0."""
        ...

    def efficiency(self, activity: "ActivityType", time_in_activity_ms: float) -> float:
        """How effective the activity currently is, in [0, 1]."""
        ...

    def update(self, stats: "EntityStats", activity: "ActivityType",
               delta_ms: float, time_of_day: float) -> "EntityStats":
        """Return new stats after delta_ms of the given activity."""
        ...

    def on_activity_start(self, stats: "EntityStats",
                          activity: "ActivityType") -> "EntityStats":
        """Apply one-off start effects and costs of an activity."""
        ...

    def derive_mood(self, stats: "EntityStats") -> "MoodType":
        """Mood implied by the stats."""
        ...

    def apply_adjustments(self, stats: "EntityStats", per_second: Dict[str, float],
                          delta_ms: float) -> "EntityStats":
        """Add per-second stat adjustments over delta_ms."""
        ...

    def is_dead(self, stats: "EntityStats") -> bool:
        ...


class EnvironmentProvider(Protocol):
    """Day/night clock and weather, supplied by the host."""
    def update(self, delta_ms: float) -> None:
        ...

    def time_of_day(self) -> float:
        """Hour of day in [0, 24)."""
        ...

    def day_phase(self) -> "DayPhase":
        ...

    def is_night(self) -> bool:
        ...

    def weather(self) -> "WeatherType":
        ...


class RandomSource(Protocol):
    """Seedable uniform random source."""
    def random(self) -> float:
        """Uniform draw in [0, 1)."""
        ...

    def uniform(self, low: float, high: float) -> float:
        ...
