"""
Emergence Engine
================
Higher-order regime detection over the whole system.

Two cadences:
- Pattern check (slow): evaluate every pattern template and feedback
  loop against the current snapshot.
- Metrics update (slower still in wall time, cheap): six smoothed
  system metrics plus a bounded history.

Pattern lifecycle per template:

    absent --(strength >= threshold)--> detected
    detected --(strength >= threshold)--> reinforced (strength averaged,
                                          duration accumulates)
    detected --(below threshold for > persistence)--> absent (deleted)

Templates are data. A template is a list of weighted conditions; each
condition kind knows how to evaluate itself against an EvaluationContext.
New patterns need no change to the engine.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Callable, Deque, Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from .config import EmergenceConfig, PatternType, LoopType, DayPhase, WeatherType
from .contracts import (
    SystemSnapshot, EntitySnapshot, ISOLATED_ERRORS, UnknownPatternError, safe_clamp,
)
from .entity import EntityStats

logger = logging.getLogger("Autopoiesis.Emergence")


# =============================================================================
# METRICS
# =============================================================================

@dataclass
class SystemMetrics:
    """Six smoothed scalars in [0, 1]"""
    complexity: float = 0.3
    coherence: float = 0.5
    adaptability: float = 0.5
    sustainability: float = 0.5
    entropy: float = 0.4
    autopoiesis: float = 0.3

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def copy(self) -> "SystemMetrics":
        return SystemMetrics(**self.to_dict())

    def blend(self, sample: "SystemMetrics", alpha: float) -> "SystemMetrics":
        """Exponential smoothing: old * (1 - α) + sample * α"""
        old = self.to_dict()
        new = sample.to_dict()
        return SystemMetrics(**{k: old[k] * (1.0 - alpha) + new[k] * alpha for k in old})


# =============================================================================
# CONDITIONS
# =============================================================================

@dataclass
class EvaluationContext:
    """Everything a condition or loop predicate may look at"""
    time_ms: float
    resonance: float  # Normalised to [0, 1]
    day_phase: DayPhase
    is_night: bool
    weather: WeatherType
    entities: List[EntitySnapshot]  # Living entities only
    metrics: SystemMetrics

    @classmethod
    def from_snapshot(cls, snapshot: SystemSnapshot, metrics: SystemMetrics) -> "EvaluationContext":
        return cls(
            time_ms=snapshot["time_ms"],
            resonance=safe_clamp(snapshot["resonance"], 0.0, 100.0) / 100.0,
            day_phase=snapshot["day_phase"],
            is_night=snapshot["is_night"],
            weather=snapshot["weather"],
            entities=[e for e in snapshot["entities"] if not e["is_dead"]],
            metrics=metrics,
        )


@dataclass(frozen=True)
class Condition:
    """A weighted predicate over the evaluation context"""
    weight: float

    kind = "condition"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class ResonanceAtLeast(Condition):
    threshold: float = 0.0
    weight: float = 0.3

    kind = "min_resonance"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        return ctx.resonance >= self.threshold


@dataclass(frozen=True)
class ResonanceAtMost(Condition):
    threshold: float = 1.0
    weight: float = 0.3

    kind = "max_resonance"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        return ctx.resonance <= self.threshold


@dataclass(frozen=True)
class TimeOfDayIn(Condition):
    phases: FrozenSet[DayPhase] = frozenset()
    weight: float = 0.2

    kind = "time_of_day"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        return ctx.day_phase in self.phases


@dataclass(frozen=True)
class WeatherIn(Condition):
    weathers: FrozenSet[WeatherType] = frozenset()
    weight: float = 0.2

    kind = "weather"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        return ctx.weather in self.weathers


@dataclass(frozen=True)
class EntityNeedsInRange(Condition):
    """Every living entity has `stat` within [low, high] (either bound optional)"""
    stat: str = "happiness"
    low: Optional[float] = None
    high: Optional[float] = None
    weight: float = 0.3

    kind = "entity_states"

    def evaluate(self, ctx: EvaluationContext) -> bool:
        if not ctx.entities:
            return False
        for entity in ctx.entities:
            value = entity["stats"][self.stat]
            if self.low is not None and value < self.low:
                return False
            if self.high is not None and value > self.high:
                return False
        return True


# =============================================================================
# PATTERNS AND LOOPS
# =============================================================================

@dataclass(frozen=True)
class PatternTemplate:
    name: str
    type: PatternType
    description: str = ""
    triggers: Tuple[str, ...] = ()
    conditions: Tuple[Condition, ...] = ()
    needs_modifiers: Dict[str, float] = field(default_factory=dict)  # Per second at strength 1
    world_modifiers: Dict[str, float] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return pattern_id(self.name)


def pattern_id(name: str) -> str:
    return name.lower().replace(" ", "_")


@dataclass
class EmergentPattern:
    """A live instance of a detected template"""
    id: str
    name: str
    type: PatternType
    strength: float
    duration: float  # ms spent at or above threshold
    triggers: Tuple[str, ...]
    effects: Dict[str, Dict[str, float]]
    conditions: Tuple[Condition, ...]
    detected_at: float
    last_evaluated: float
    below_threshold_since: Optional[float] = None

    @property
    def is_reinforced(self) -> bool:
        return self.below_threshold_since is None


@dataclass(frozen=True)
class FeedbackLoopRule:
    id: str
    type: LoopType
    strength: float
    elements: Tuple[str, ...]
    predicate: Callable[[EvaluationContext], bool]
    description: str = ""


@dataclass
class FeedbackLoop:
    id: str
    type: LoopType
    strength: float
    elements: Tuple[str, ...]
    active: bool = False
    last_activation: Optional[float] = None


def default_pattern_templates() -> List[PatternTemplate]:
    return [
        PatternTemplate(
            name="Symbiotic Codependency",
            type=PatternType.BEHAVIORAL,
            description="Mutual dependence that reinforces both entities' survival",
            triggers=("high_resonance", "mutual_aid"),
            conditions=(
                ResonanceAtLeast(threshold=0.7),
                EntityNeedsInRange(stat="happiness", low=60.0),
            ),
            needs_modifiers={"happiness": 0.2, "energy": 0.1},
        ),
        PatternTemplate(
            name="Isolation Cycle",
            type=PatternType.BEHAVIORAL,
            description="Isolation breeds further isolation",
            triggers=("low_resonance", "avoided_interaction"),
            conditions=(
                ResonanceAtMost(threshold=0.3),
                EntityNeedsInRange(stat="happiness", high=40.0),
            ),
            needs_modifiers={"happiness": -0.1, "energy": -0.05},
        ),
        PatternTemplate(
            name="Circadian Synchronization",
            type=PatternType.SOCIAL,
            description="Activity rhythms lock onto the day/night cycle",
            triggers=("time_sync", "shared_routine"),
            conditions=(TimeOfDayIn(phases=frozenset({DayPhase.MORNING, DayPhase.DUSK})),),
            needs_modifiers={"energy": 0.15, "happiness": 0.1},
        ),
        PatternTemplate(
            name="Emotional Resonance",
            type=PatternType.SOCIAL,
            description="Emotional states spread between the entities",
            triggers=("proximity", "shared_experience"),
            conditions=(ResonanceAtLeast(threshold=0.5),),
            needs_modifiers={"happiness": 0.1},
        ),
        PatternTemplate(
            name="Climatic Adaptation",
            type=PatternType.ENVIRONMENTAL,
            description="Behaviour adapts to harsh weather",
            triggers=("weather_change", "shelter_seeking"),
            conditions=(WeatherIn(weathers=frozenset({
                WeatherType.RAINY, WeatherType.STORMY, WeatherType.SNOWY,
            })),),
            needs_modifiers={"energy": 0.1},
        ),
        PatternTemplate(
            name="Emergent Autopoiesis",
            type=PatternType.SYSTEMIC,
            description="The system maintains and reproduces its own organisation",
            triggers=("system_stability", "self_regulation"),
            conditions=(ResonanceAtLeast(threshold=0.6),),
            world_modifiers={"system_stability": 0.2, "adaptive_capacity": 0.3},
        ),
        PatternTemplate(
            name="Complexity Cascade",
            type=PatternType.SYSTEMIC,
            description="Small perturbations ripple through the whole system",
            triggers=("butterfly_effect", "non_linear_response"),
            world_modifiers={"complexity": 0.2, "unpredictability": 0.1},
        ),
    ]


def _resource_stress(ctx: EvaluationContext) -> bool:
    stressed = any(e["stats"]["hunger"] < 40 or e["stats"]["money"] < 40 for e in ctx.entities)
    return stressed and ctx.resonance > 0.4


def default_feedback_loops() -> List[FeedbackLoopRule]:
    return [
        FeedbackLoopRule(
            id="resonance_wellbeing",
            type=LoopType.POSITIVE,
            strength=0.7,
            elements=("resonance", "happiness", "cooperation"),
            predicate=lambda ctx: ctx.resonance > 0.6 and ctx.metrics.coherence > 0.5,
            description="Resonance improves wellbeing, which eases further bonding",
        ),
        FeedbackLoopRule(
            id="isolation_spiral",
            type=LoopType.POSITIVE,
            strength=0.6,
            elements=("isolation", "happiness_decline", "further_isolation"),
            predicate=lambda ctx: ctx.resonance < 0.3 and ctx.metrics.entropy > 0.6,
            description="Isolation erodes wellbeing, which deepens isolation",
        ),
        FeedbackLoopRule(
            id="resource_balance",
            type=LoopType.NEGATIVE,
            strength=0.5,
            elements=("resource_scarcity", "cooperation", "resource_efficiency"),
            predicate=_resource_stress,
            description="Scarcity pushes cooperation, which restores balance",
        ),
        FeedbackLoopRule(
            id="circadian_sync",
            type=LoopType.NEGATIVE,
            strength=0.4,
            elements=("day_night_cycle", "energy_levels", "activity_sync"),
            predicate=lambda ctx: ctx.day_phase in (DayPhase.MORNING, DayPhase.DUSK),
            description="The day/night cycle regulates energy and synchronises activity",
        ),
    ]


# =============================================================================
# ENGINE
# =============================================================================

class EmergenceEngine:
    """Pattern, feedback-loop and metrics tracker"""

    def __init__(self,
                 config: EmergenceConfig,
                 templates: Optional[List[PatternTemplate]] = None,
                 loop_rules: Optional[List[FeedbackLoopRule]] = None):
        self.config = config
        self.templates = templates if templates is not None else default_pattern_templates()
        self.loop_rules = loop_rules if loop_rules is not None else default_feedback_loops()
        self.reset()

    def reset(self):
        self._metrics = SystemMetrics(**self.config.initial_metrics)
        self._history: Deque[SystemMetrics] = deque(maxlen=self.config.max_metrics_history)
        self._patterns: Dict[str, EmergentPattern] = {}
        self._loops: Dict[str, FeedbackLoop] = {
            rule.id: FeedbackLoop(rule.id, rule.type, rule.strength, rule.elements)
            for rule in self.loop_rules
        }
        self._last_metrics_update: Optional[float] = None
        self._last_pattern_check: Optional[float] = None

        self.patterns_detected = 0
        self.patterns_faded = 0
        self.evaluation_failures = 0

    # ------------------------------------------------------------------
    # Cadence
    # ------------------------------------------------------------------

    def update(self, now: float, snapshot: SystemSnapshot):
        """Run whichever of the two evaluations are due"""
        cfg = self.config
        pattern_due = (self._last_pattern_check is None
                       or now - self._last_pattern_check >= cfg.pattern_check_interval_ms)
        metrics_due = (self._last_metrics_update is None
                       or now - self._last_metrics_update >= cfg.metrics_update_interval_ms)

        if pattern_due:
            ctx = EvaluationContext.from_snapshot(snapshot, self._metrics)
            self.check_patterns(now, ctx)
            self.check_feedback_loops(now, ctx)
            self._last_pattern_check = now

        if metrics_due:
            ctx = EvaluationContext.from_snapshot(snapshot, self._metrics)
            self.update_metrics(ctx)
            self._last_metrics_update = now

    def force_evaluation(self, now: float, snapshot: SystemSnapshot):
        """Evaluate patterns, loops and metrics now, ignoring the cadence"""
        self._last_pattern_check = None
        self._last_metrics_update = None
        self.update(now, snapshot)

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def evaluate_pattern_strength(self, template: PatternTemplate, ctx: EvaluationContext) -> float:
        """
        Satisfied weight over present conditions.

        With "count" normalisation the divisor is the number of present
        conditions, with "weight" it is their total weight. A template
        without conditions scores (complexity + coherence) / 2.
        """
        if not template.conditions:
            return float(np.clip((ctx.metrics.complexity + ctx.metrics.coherence) / 2.0, 0.0, 1.0))

        satisfied = sum(c.weight for c in template.conditions if c.evaluate(ctx))
        if self.config.strength_normalization == "weight":
            divisor = sum(c.weight for c in template.conditions)
        else:
            divisor = len(template.conditions)
        if divisor <= 0:
            return 0.0
        return float(np.clip(satisfied / divisor, 0.0, 1.0))

    def check_patterns(self, now: float, ctx: EvaluationContext):
        for template in self.templates:
            try:
                strength = self.evaluate_pattern_strength(template, ctx)
            except ISOLATED_ERRORS as e:
                self.evaluation_failures += 1
                logger.warning(f"Skipping pattern '{template.name}': {e}")
                continue
            self._advance_pattern(template, strength, now)

    def _advance_pattern(self, template: PatternTemplate, strength: float, now: float):
        cfg = self.config
        pid = template.id
        existing = self._patterns.get(pid)

        if strength >= cfg.pattern_threshold:
            if existing is None:
                self._patterns[pid] = EmergentPattern(
                    id=pid,
                    name=template.name,
                    type=template.type,
                    strength=strength,
                    duration=0.0,
                    triggers=template.triggers,
                    effects={
                        "needs_modifiers": dict(template.needs_modifiers),
                        "world_modifiers": dict(template.world_modifiers),
                    },
                    conditions=template.conditions,
                    detected_at=now,
                    last_evaluated=now,
                )
                self.patterns_detected += 1
                logger.info(f"Pattern detected: {template.name} "
                            f"({template.type.value}, strength {strength:.2f})")
                return

            if existing.is_reinforced:
                existing.duration += max(0.0, now - existing.last_evaluated)
            existing.below_threshold_since = None
            existing.strength = (existing.strength + strength) / 2.0
            existing.last_evaluated = now
            return

        if existing is None:
            return

        existing.strength = (existing.strength + strength) / 2.0
        existing.last_evaluated = now
        if existing.below_threshold_since is None:
            existing.below_threshold_since = now
        elif now - existing.below_threshold_since > cfg.pattern_persistence_ms:
            del self._patterns[pid]
            self.patterns_faded += 1
            logger.info(f"Pattern faded: {template.name} after {existing.duration / 1000:.0f}s active")

    # ------------------------------------------------------------------
    # Feedback loops
    # ------------------------------------------------------------------

    def check_feedback_loops(self, now: float, ctx: EvaluationContext):
        for rule in self.loop_rules:
            loop = self._loops[rule.id]
            try:
                should_be_active = bool(rule.predicate(ctx))
            except ISOLATED_ERRORS as e:
                self.evaluation_failures += 1
                logger.warning(f"Skipping feedback loop '{rule.id}': {e}")
                continue

            if should_be_active and not loop.active:
                loop.active = True
                loop.last_activation = now
                logger.info(f"Feedback loop activated: {rule.id} ({rule.type.value})")
            elif not should_be_active and loop.active:
                loop.active = False
                logger.info(f"Feedback loop deactivated: {rule.id}")

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _sample_metrics(self, ctx: EvaluationContext) -> SystemMetrics:
        cfg = self.config
        n_patterns = len(self._patterns)
        n_loops = sum(1 for loop in self._loops.values() if loop.active)

        night = cfg.night_complexity_multiplier if ctx.is_night else 1.0
        complexity = min(1.0, (n_patterns * cfg.pattern_complexity_weight
                               + n_loops * cfg.loop_complexity_weight) * night)

        coherence = min(1.0, ctx.resonance + 0.1)

        if ctx.entities:
            values = [EntityStats.from_dict(e["stats"]).satisfaction_values() for e in ctx.entities]
            avg_needs = float(np.mean([v.mean() for v in values]))
            avg_variance = float(np.mean([v.var() for v in values]))
        else:
            avg_needs = 0.0
            avg_variance = 0.0
        sustainability = min(1.0, avg_needs / 100.0)
        entropy = min(1.0, avg_variance / 1000.0)

        adaptability = self._adaptability()

        systemic = sum(1 for p in self._patterns.values() if p.type == PatternType.SYSTEMIC)
        autopoiesis = min(1.0, systemic * 0.4 + (1.0 - entropy) * 0.3
                          + adaptability * sustainability * 0.3)

        return SystemMetrics(
            complexity=complexity,
            coherence=coherence,
            adaptability=adaptability,
            sustainability=sustainability,
            entropy=entropy,
            autopoiesis=autopoiesis,
        )

    def _adaptability(self) -> float:
        """Mean |Δcomplexity| + |Δcoherence| over the recent history window"""
        window = self.config.adaptability_window
        if len(self._history) < window:
            return 0.5
        recent = list(self._history)[-window:]
        change = 0.0
        for prev, cur in zip(recent, recent[1:]):
            change += abs(cur.complexity - prev.complexity) + abs(cur.coherence - prev.coherence)
        return min(1.0, change / (window - 1))

    def update_metrics(self, ctx: EvaluationContext):
        sample = self._sample_metrics(ctx)
        self._metrics = self._metrics.blend(sample, self.config.metrics_smoothing)
        self._history.append(self._metrics.copy())

    # ------------------------------------------------------------------
    # Effects and queries
    # ------------------------------------------------------------------

    def needs_adjustments(self) -> Dict[str, float]:
        """Per-second stat adjustments contributed by live patterns"""
        adjustments: Dict[str, float] = {}
        for pattern in self._patterns.values():
            for stat, amount in pattern.effects["needs_modifiers"].items():
                adjustments[stat] = (adjustments.get(stat, 0.0)
                                     + amount * pattern.strength * self.config.effect_rate)
        return adjustments

    def metrics(self) -> SystemMetrics:
        return self._metrics.copy()

    def metrics_history(self) -> List[SystemMetrics]:
        return [m.copy() for m in self._history]

    def active_patterns(self) -> List[EmergentPattern]:
        return sorted(self._patterns.values(), key=lambda p: p.strength, reverse=True)

    def active_feedback_loops(self) -> List[FeedbackLoop]:
        return [loop for loop in self._loops.values() if loop.active]

    def feedback_loops(self) -> List[FeedbackLoop]:
        return list(self._loops.values())

    def get_pattern(self, pid: str) -> EmergentPattern:
        try:
            return self._patterns[pid]
        except KeyError:
            raise UnknownPatternError(f"No live pattern with id: {pid}") from None

    def get_feedback_loop(self, loop_id: str) -> FeedbackLoop:
        try:
            return self._loops[loop_id]
        except KeyError:
            raise UnknownPatternError(f"No feedback loop with id: {loop_id}") from None

    def get_statistics(self) -> Dict[str, float]:
        stats = {
            "active_patterns": len(self._patterns),
            "active_loops": len(self.active_feedback_loops()),
            "patterns_detected": self.patterns_detected,
            "patterns_faded": self.patterns_faded,
            "evaluation_failures": self.evaluation_failures,
            "history_length": len(self._history),
        }
        stats.update({f"metric_{k}": v for k, v in self._metrics.to_dict().items()})
        return stats
