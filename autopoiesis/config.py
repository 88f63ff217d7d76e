"""
Autopoiesis Kernel Configuration
=================================
Complete configuration system for the two-entity autopoiesis kernel.
All tunables for needs, decisions, resonance, emergence and time scales.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Optional, Tuple, Any
from enum import Enum

from .contracts import ConfigurationError


class EntityRole(Enum):
    """The two fixed entity roles sharing the world"""
    CIRCLE = "circle"
    SQUARE = "square"


class ActivityType(Enum):
    """Activities an entity can be engaged in"""
    WORKING = "WORKING"
    RESTING = "RESTING"
    SOCIALIZING = "SOCIALIZING"
    DANCING = "DANCING"
    SHOPPING = "SHOPPING"
    COOKING = "COOKING"
    EXERCISING = "EXERCISING"
    MEDITATING = "MEDITATING"
    WRITING = "WRITING"
    WANDERING = "WANDERING"
    EXPLORING = "EXPLORING"
    CONTEMPLATING = "CONTEMPLATING"
    HIDING = "HIDING"


class MoodType(Enum):
    """Moods derived from an entity's stats"""
    HAPPY = "happy"
    EXCITED = "excited"
    CALM = "calm"
    SAD = "sad"
    ANXIOUS = "anxious"
    ANGRY = "angry"
    BORED = "bored"
    LONELY = "lonely"
    TIRED = "tired"


class ResonanceEffect(Enum):
    """Tagged bonding effect of a resonance sample"""
    BONDING = "BONDING"
    SEPARATION = "SEPARATION"
    NEUTRAL = "NEUTRAL"


class PatternType(Enum):
    """Emergent pattern families"""
    BEHAVIORAL = "behavioral"
    SOCIAL = "social"
    ENVIRONMENTAL = "environmental"
    SYSTEMIC = "systemic"


class LoopType(Enum):
    """Feedback loop polarity"""
    POSITIVE = "positive"  # Reinforcing
    NEGATIVE = "negative"  # Balancing


class DayPhase(Enum):
    """Phases of the simulated day"""
    DAWN = "dawn"
    MORNING = "morning"
    MIDDAY = "midday"
    AFTERNOON = "afternoon"
    DUSK = "dusk"
    NIGHT = "night"
    DEEP_NIGHT = "deep_night"


class WeatherType(Enum):
    """Weather tags supplied by the environment"""
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    STORMY = "stormy"
    FOGGY = "foggy"
    SNOWY = "snowy"


@dataclass(frozen=True)
class PersonalityProfile:
    """Immutable personality traits, each in [0, 1]"""
    social_preference: float = 0.5
    activity_persistence: float = 0.5
    risk_tolerance: float = 0.5
    energy_efficiency: float = 0.5

    def validate(self):
        for name, value in asdict(self).items():
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"Personality trait {name}={value} outside [0, 1]")
        return True


def default_personalities() -> Dict[EntityRole, PersonalityProfile]:
    """Personality traits of the two stock entities"""
    return {
        EntityRole.CIRCLE: PersonalityProfile(
            social_preference=0.7,
            activity_persistence=0.6,
            risk_tolerance=0.4,
            energy_efficiency=0.5,
        ),
        EntityRole.SQUARE: PersonalityProfile(
            social_preference=0.5,
            activity_persistence=0.8,
            risk_tolerance=0.6,
            energy_efficiency=0.7,
        ),
    }


@dataclass
class NeedsConfig:
    """Needs model configuration"""
    # Initial state
    initial_stat_value: float = 50.0
    initial_money: float = 50.0
    initial_health: float = 90.0

    # Time scaling
    game_speed_multiplier: float = 1.0
    max_decay_step_s: float = 10.0  # A single decay call never integrates more than this

    # Survival costs
    living_cost_per_minute: float = 1.5
    critical_money: float = 10.0
    desperation_hunger_rate: float = 5.0  # Per minute at full desperation
    desperation_happiness_rate: float = 3.0

    # Urgency curve w(v, a) = 1 - (v/100)^a
    urgency_exponent: float = 1.6

    # A stat below this is critical
    critical_stat_threshold: float = 20.0

    # Past this multiple of the optimal duration an activity's priority halves
    overtime_factor: float = 1.5


@dataclass
class DecisionConfig:
    """Decision engine configuration"""
    personality_influence: float = 0.3  # [0, 1]
    softmax_tau: float = 0.5  # τ - lower is greedier
    min_temperature: float = 1e-6  # τ floor, keeps the division finite
    decision_change_threshold: float = 0.15  # Base threshold for a switch
    activity_inertia_bonus: float = 1.2

    # Score weights
    mood_social_weight: float = 15.0
    mood_rest_weight: float = 10.0
    mood_risk_weight: float = 8.0
    personality_social_weight: float = 15.0
    personality_rest_weight: float = 10.0
    personality_risk_weight: float = 8.0

    # Inertia
    inertia_threshold_scale: float = 10.0
    effectiveness_bonus_threshold: float = 0.7
    effectiveness_inertia_bonus: float = 0.2
    interruption_limit: int = 2
    interruption_inertia_penalty: float = 0.3

    # Sessions and habits
    base_session_duration_ms: float = 30000.0
    satisfaction_effectiveness_weight: float = 0.7
    satisfaction_random_weight: float = 0.3
    satisfaction_threshold: float = 0.7
    habit_step_up: float = 0.5
    habit_step_down: float = 0.2
    habit_bound: float = 5.0

    # Cadence (checked per entity)
    decision_interval_ms: float = 3000.0
    decision_jitter_ms: float = 2000.0

    # Fraction of decisions that emit a DEBUG trace
    trace_sample_rate: float = 0.1


@dataclass
class ResonanceConfig:
    """Resonance engine configuration"""
    bond_distance: float = 150.0  # d0 - logistic midpoint
    distance_scale: float = 50.0  # s

    bond_rate: float = 2.5  # Gain per second
    separation_rate: float = 1.8  # Decay per second when apart
    stress_rate: float = 0.7  # Decay per second per critical stat

    critical_stat_threshold: float = 20.0
    effect_deadband: float = 0.1

    change_precision: int = 4
    closeness_precision: int = 3

    initial_resonance: float = 0.0

    # Stat multipliers at full effect
    happiness_boost: float = 0.3
    energy_boost: float = 0.2
    health_boost: float = 0.15
    loneliness_relief: float = 0.5


@dataclass
class EmergenceConfig:
    """Emergence engine configuration"""
    metrics_update_interval_ms: float = 5000.0
    pattern_check_interval_ms: float = 10000.0

    pattern_threshold: float = 0.6
    pattern_persistence_ms: float = 30000.0

    # "count" divides satisfied weight by the number of present conditions,
    # "weight" divides by the total weight of present conditions.
    strength_normalization: str = "count"

    metrics_smoothing: float = 0.1  # α
    max_metrics_history: int = 100
    adaptability_window: int = 5

    night_complexity_multiplier: float = 1.2
    pattern_complexity_weight: float = 0.3
    loop_complexity_weight: float = 0.2

    # Per-second scale applied to pattern needs modifiers
    effect_rate: float = 1.0

    initial_metrics: Dict[str, float] = field(default_factory=lambda: {
        "complexity": 0.3,
        "coherence": 0.5,
        "adaptability": 0.5,
        "sustainability": 0.5,
        "entropy": 0.4,
        "autopoiesis": 0.3,
    })


@dataclass
class TimeScaleConfig:
    """
    Tick cadences.

    The host drives two independent cadences: a fast logic tick
    (needs, decisions, resonance) and a slow metrics tick (emergence).
    Elapsed time handed to the logic tick is sub-stepped so that a lag
    spike never integrates a huge delta in one go.
    """
    logic_tick_ms: float = 250.0
    metrics_tick_ms: float = 5000.0

    max_substep_ms: float = 1000.0
    max_substeps: int = 5


@dataclass
class EnvironmentConfig:
    """Day/night clock and weather configuration"""
    start_hour: float = 8.0
    minutes_per_second: float = 1.0  # Simulated minutes per real second

    initial_weather: WeatherType = WeatherType.CLEAR
    min_weather_duration_s: float = 120.0
    max_weather_duration_s: float = 600.0


@dataclass
class SimulationConfig:
    """Master configuration combining all subsystems"""
    needs: NeedsConfig = field(default_factory=NeedsConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    resonance: ResonanceConfig = field(default_factory=ResonanceConfig)
    emergence: EmergenceConfig = field(default_factory=EmergenceConfig)
    time_scales: TimeScaleConfig = field(default_factory=TimeScaleConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)

    personalities: Dict[EntityRole, PersonalityProfile] = field(default_factory=default_personalities)

    initial_positions: Dict[EntityRole, Tuple[float, float]] = field(default_factory=lambda: {
        EntityRole.CIRCLE: (200.0, 200.0),
        EntityRole.SQUARE: (600.0, 300.0),
    })
    initial_activity: ActivityType = ActivityType.WANDERING

    # Scenario
    scenario_name: str = "default"
    seed: Optional[int] = None

    def validate(self):
        """Validate configuration consistency"""
        d = self.decision
        if not 0.0 <= d.personality_influence <= 1.0:
            raise ConfigurationError("Personality influence must be in [0, 1]")
        if d.softmax_tau <= 0 or d.min_temperature <= 0:
            raise ConfigurationError("Softmax temperature must be positive")
        if d.habit_bound <= 0:
            raise ConfigurationError("Habit bound must be positive")

        r = self.resonance
        if r.bond_distance < 0:
            raise ConfigurationError("Resonance bond distance must be non-negative")
        if r.distance_scale <= 0:
            raise ConfigurationError("Resonance distance scale must be positive")
        if not 0.0 <= r.initial_resonance <= 100.0:
            raise ConfigurationError("Initial resonance must be in [0, 100]")

        e = self.emergence
        if not 0.0 <= e.pattern_threshold <= 1.0:
            raise ConfigurationError("Pattern threshold must be in [0, 1]")
        if e.pattern_persistence_ms < 0:
            raise ConfigurationError("Pattern persistence must be non-negative")
        if not 0.0 < e.metrics_smoothing <= 1.0:
            raise ConfigurationError("Metrics smoothing must be in (0, 1]")
        if e.strength_normalization not in ("count", "weight"):
            raise ConfigurationError(
                f"Unknown strength normalization: {e.strength_normalization}")
        if e.max_metrics_history < e.adaptability_window:
            raise ConfigurationError("Metrics history shorter than adaptability window")

        t = self.time_scales
        if t.max_substep_ms <= 0 or t.max_substeps < 1:
            raise ConfigurationError("Sub-stepping requires a positive step and count")

        if set(self.personalities) != set(EntityRole):
            raise ConfigurationError("A personality is required for every entity role")
        for profile in self.personalities.values():
            profile.validate()

        from .needs import ACTIVITY_EFFECTS
        if self.initial_activity not in ACTIVITY_EFFECTS:
            raise ConfigurationError(
                f"Initial activity has no needs effects: {self.initial_activity}")

        return True

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dump (enums by value)"""
        def convert(value):
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, dict):
                return {convert(k): convert(v) for k, v in value.items()}
            if isinstance(value, (list, tuple)):
                return [convert(v) for v in value]
            return value

        return convert(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Inverse of to_dict; unknown keys are rejected"""
        config = cls()
        sections = {
            "needs": NeedsConfig,
            "decision": DecisionConfig,
            "resonance": ResonanceConfig,
            "emergence": EmergenceConfig,
            "time_scales": TimeScaleConfig,
        }
        try:
            for name, section_cls in sections.items():
                if name in data:
                    setattr(config, name, section_cls(**data[name]))
            if "environment" in data:
                env = dict(data["environment"])
                if "initial_weather" in env:
                    env["initial_weather"] = WeatherType(env["initial_weather"])
                config.environment = EnvironmentConfig(**env)
            if "personalities" in data:
                config.personalities = {
                    EntityRole(role): PersonalityProfile(**traits)
                    for role, traits in data["personalities"].items()
                }
            if "initial_positions" in data:
                config.initial_positions = {
                    EntityRole(role): (float(pos[0]), float(pos[1]))
                    for role, pos in data["initial_positions"].items()
                }
            if "initial_activity" in data:
                config.initial_activity = ActivityType(data["initial_activity"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        config.scenario_name = data.get("scenario_name", config.scenario_name)
        config.seed = data.get("seed", config.seed)
        return config


def create_default_config() -> SimulationConfig:
    """Create default configuration"""
    return SimulationConfig()


def create_small_test_config() -> SimulationConfig:
    """Create configuration with short intervals for testing"""
    config = SimulationConfig()
    config.scenario_name = "test"
    config.seed = 42
    config.decision.decision_interval_ms = 0.0
    config.decision.decision_jitter_ms = 0.0
    config.emergence.metrics_update_interval_ms = 100.0
    config.emergence.pattern_check_interval_ms = 200.0
    config.emergence.pattern_persistence_ms = 1000.0
    config.time_scales.metrics_tick_ms = 100.0
    return config


def create_fast_time_config() -> SimulationConfig:
    """Create configuration where a simulated day passes in a few real minutes"""
    config = SimulationConfig()
    config.scenario_name = "fast_time"
    config.needs.game_speed_multiplier = 5.0
    config.environment.minutes_per_second = 10.0
    config.environment.min_weather_duration_s = 30.0
    config.environment.max_weather_duration_s = 120.0
    return config
