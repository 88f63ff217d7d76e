"""
Autopoiesis Kernel
==================
The internal life of two entities sharing a world.

Inspired by:
- Homeostatic needs models from life simulations
- Softmax (Boltzmann) action selection with habit learning
- Logistic proximity bonding
- Autopoietic self-organisation and feedback-loop analysis

Modules:
--------
- config: Configuration dataclasses, enums and presets
- contracts: Protocols, data contracts, numeric hygiene, errors
- entity: Entity state, stats, sessions and habit bias
- needs: Default needs model (decay, costs, priorities, mood)
- decision: Softmax decision engine with inertia
- resonance: Pairwise bonding engine
- emergence: Pattern, feedback-loop and system-metric tracking
- environment: Day/night clock and weather
- kernel: Tick driver sequencing the engines
- main: CLI and headless runner

Example Usage:
--------------
>>> from autopoiesis import AutopoiesisKernel, create_small_test_config, EntityRole
>>> kernel = AutopoiesisKernel(create_small_test_config())
>>> logic = kernel.logic_tick(250.0, {EntityRole.CIRCLE: (200, 200),
...                                   EntityRole.SQUARE: (260, 210)})
>>> metrics = kernel.metrics_tick(250.0)
>>> logic.effect, metrics.metrics.coherence
"""

__version__ = "1.0.0"

# Configuration
from .config import (
    SimulationConfig,
    NeedsConfig,
    DecisionConfig,
    ResonanceConfig,
    EmergenceConfig,
    TimeScaleConfig,
    EnvironmentConfig,
    PersonalityProfile,
    create_default_config,
    create_small_test_config,
    create_fast_time_config,
    EntityRole,
    ActivityType,
    MoodType,
    ResonanceEffect,
    PatternType,
    LoopType,
    DayPhase,
    WeatherType,
)

# Contracts
from .contracts import (
    KernelError,
    UnknownActivityError,
    UnknownPatternError,
    ConfigurationError,
    ContractViolationError,
    NeedsProvider,
    EnvironmentProvider,
    StatModifiers,
    SystemSnapshot,
)

# State
from .entity import Entity, EntityStats, ActivitySession, HabitBias
from .rng import SeededRandom

# Engines
from .needs import NeedsModel
from .decision import DecisionEngine
from .resonance import ResonanceEngine, ResonanceSample
from .emergence import (
    EmergenceEngine,
    SystemMetrics,
    EmergentPattern,
    FeedbackLoop,
    PatternTemplate,
    ResonanceAtLeast,
    ResonanceAtMost,
    TimeOfDayIn,
    WeatherIn,
    EntityNeedsInRange,
)
from .environment import DayNightCycle

# Driver
from .kernel import AutopoiesisKernel, LogicTickResult, MetricsTickResult

__all__ = [
    # Config
    "SimulationConfig",
    "NeedsConfig",
    "DecisionConfig",
    "ResonanceConfig",
    "EmergenceConfig",
    "TimeScaleConfig",
    "EnvironmentConfig",
    "PersonalityProfile",
    "create_default_config",
    "create_small_test_config",
    "create_fast_time_config",
    "EntityRole",
    "ActivityType",
    "MoodType",
    "ResonanceEffect",
    "PatternType",
    "LoopType",
    "DayPhase",
    "WeatherType",
    # Contracts
    "KernelError",
    "UnknownActivityError",
    "UnknownPatternError",
    "ConfigurationError",
    "ContractViolationError",
    "NeedsProvider",
    "EnvironmentProvider",
    "StatModifiers",
    "SystemSnapshot",
    # State
    "Entity",
    "EntityStats",
    "ActivitySession",
    "HabitBias",
    "SeededRandom",
    # Engines
    "NeedsModel",
    "DecisionEngine",
    "ResonanceEngine",
    "ResonanceSample",
    "EmergenceEngine",
    "SystemMetrics",
    "EmergentPattern",
    "FeedbackLoop",
    "PatternTemplate",
    "ResonanceAtLeast",
    "ResonanceAtMost",
    "TimeOfDayIn",
    "WeatherIn",
    "EntityNeedsInRange",
    "DayNightCycle",
    # Driver
    "AutopoiesisKernel",
    "LogicTickResult",
    "MetricsTickResult",
]
