"""
Autopoiesis Kernel
==================
Tick driver that owns both entities and sequences the engines.

Logic tick (fast), per sub-step, strictly in this order:
    1. Environment clock advances
    2. Needs: decay, costs, activity effects, pattern feedback
    3. Decision: each living entity on its own decision cadence
    4. Resonance: bonding update, then stat multipliers

Metrics tick (slow):
    5. Emergence: patterns, feedback loops, smoothed metrics

The kernel is the only writer of entity state. Ticks are synchronous
and must not be re-entered.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Any

from .config import SimulationConfig, EntityRole, ActivityType, MoodType, ResonanceEffect, create_default_config
from .contracts import (
    NeedsProvider, EnvironmentProvider, SystemSnapshot, StatModifiers, NEUTRAL_MODIFIERS,
    ContractViolationError, ISOLATED_ERRORS, is_finite,
)
from .entity import Entity, EntityStats
from .needs import NeedsModel
from .decision import DecisionEngine
from .resonance import ResonanceEngine, ResonanceSample
from .emergence import EmergenceEngine, SystemMetrics, EmergentPattern, FeedbackLoop
from .environment import DayNightCycle
from .rng import SeededRandom

logger = logging.getLogger("Autopoiesis.Kernel")


@dataclass
class LogicTickResult:
    """Output of one logic tick"""
    time: float
    substeps: int
    dropped_ms: float
    activities: Dict[EntityRole, ActivityType]
    stats: Dict[EntityRole, EntityStats]
    moods: Dict[EntityRole, MoodType]
    resonance: float
    effect: ResonanceEffect
    closeness: float
    modifiers: StatModifiers
    switches: List[Tuple[EntityRole, ActivityType, ActivityType]] = field(default_factory=list)
    deaths: List[EntityRole] = field(default_factory=list)


@dataclass
class MetricsTickResult:
    """Output of one metrics tick"""
    time: float
    metrics: SystemMetrics
    active_patterns: List[EmergentPattern]
    active_loops: List[FeedbackLoop]

    def summary(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "metrics": self.metrics.to_dict(),
            "patterns": [
                {"name": p.name, "type": p.type.value, "strength": p.strength}
                for p in self.active_patterns
            ],
            "loops": [loop.id for loop in self.active_loops],
        }


class AutopoiesisKernel:
    """Two-entity needs / decision / resonance / emergence simulation"""

    def __init__(self,
                 config: Optional[SimulationConfig] = None,
                 needs: Optional[NeedsProvider] = None,
                 environment: Optional[EnvironmentProvider] = None,
                 rng: Optional[SeededRandom] = None):
        self.config = config or create_default_config()
        self.config.validate()

        self.rng = rng or SeededRandom(self.config.seed)
        self.needs = needs or NeedsModel(self.config.needs)
        self.environment = environment or DayNightCycle(self.config.environment, self.rng)

        self.decision = DecisionEngine(self.config.decision, self.needs, self.rng,
                                       self.config.personalities)
        self.resonance_engine = ResonanceEngine(self.config.resonance)
        self.emergence = EmergenceEngine(self.config.emergence)

        self._in_tick = False
        self.reset()

    def reset(self):
        cfg = self.config
        self.time_ms = 0.0
        self._last_metrics_tick: Optional[float] = None
        self.resonance = cfg.resonance.initial_resonance
        self.last_sample = ResonanceSample(0.0, ResonanceEffect.NEUTRAL, 0.0)
        self.last_modifiers: StatModifiers = dict(NEUTRAL_MODIFIERS)
        self.emergence.reset()

        self.entities: Dict[EntityRole, Entity] = {}
        for role in EntityRole:
            entity = Entity(
                role=role,
                personality=self.decision.personality_for(role),
                stats=EntityStats.from_config(cfg.needs),
                position=cfg.initial_positions[role],
                resonance=self.resonance,
            )
            entity.habits.bound = cfg.decision.habit_bound
            self.decision.start_session(entity, cfg.initial_activity, 0.0)
            entity.mood = self.needs.derive_mood(entity.stats)
            entity.next_decision_delay = self._draw_decision_delay()
            self.entities[role] = entity

        logger.info(f"Kernel reset: scenario={cfg.scenario_name}, seed={cfg.seed}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _draw_decision_delay(self) -> float:
        cfg = self.config.decision
        return cfg.decision_interval_ms + self.rng.random() * cfg.decision_jitter_ms

    def companion_of(self, entity: Entity) -> Entity:
        other = EntityRole.SQUARE if entity.role == EntityRole.CIRCLE else EntityRole.CIRCLE
        return self.entities[other]

    def living_entities(self) -> List[Entity]:
        return [e for e in self.entities.values() if not e.is_dead]

    def set_positions(self, positions: Dict[EntityRole, Tuple[float, float]]):
        for role, pos in positions.items():
            try:
                x, y = float(pos[0]), float(pos[1])
            except (TypeError, ValueError, IndexError):
                logger.warning(f"Ignoring malformed position for {role.value}: {pos}")
                continue
            if not (math.isfinite(x) and math.isfinite(y)):
                logger.warning(f"Ignoring non-finite position for {role.value}: {pos}")
                continue
            self.entities[role].position = (x, y)

    def _substeps(self, delta_ms: float) -> Tuple[int, float, float]:
        """(count, step_ms, dropped_ms) for an elapsed interval"""
        ts = self.config.time_scales
        if not is_finite(delta_ms) or delta_ms <= 0:
            return 0, 0.0, 0.0
        covered = min(delta_ms, ts.max_substep_ms * ts.max_substeps)
        count = max(1, math.ceil(covered / ts.max_substep_ms))
        return count, covered / count, delta_ms - covered

    # ------------------------------------------------------------------
    # Logic tick
    # ------------------------------------------------------------------

    def logic_tick(self,
                   now: float,
                   positions: Optional[Dict[EntityRole, Tuple[float, float]]] = None,
                   delta_ms: Optional[float] = None) -> LogicTickResult:
        """
        Advance needs, decisions and resonance to time `now`.

        Args:
            now: Current time in ms
            positions: Host-supplied entity positions (optional)
            delta_ms: Elapsed time; defaults to now minus the previous tick

        Returns:
            LogicTickResult with post-modifier state
        """
        if self._in_tick:
            raise ContractViolationError("logic_tick re-entered while a tick is running")
        self._in_tick = True
        try:
            if positions:
                self.set_positions(positions)
            if delta_ms is None:
                delta_ms = now - self.time_ms

            count, step_ms, dropped = self._substeps(delta_ms)
            if dropped > 0:
                logger.warning(f"Lag spike: dropping {dropped:.0f}ms of {delta_ms:.0f}ms elapsed")

            switches: List[Tuple[EntityRole, ActivityType, ActivityType]] = []
            deaths: List[EntityRole] = []
            start = now - step_ms * count
            for i in range(count):
                self._step(start + step_ms * (i + 1), step_ms, switches, deaths)

            self.time_ms = now
        finally:
            self._in_tick = False

        return LogicTickResult(
            time=now,
            substeps=count,
            dropped_ms=dropped,
            activities={role: e.activity for role, e in self.entities.items()},
            stats={role: e.stats.copy() for role, e in self.entities.items()},
            moods={role: e.mood for role, e in self.entities.items()},
            resonance=self.resonance,
            effect=self.last_sample.effect,
            closeness=self.last_sample.closeness,
            modifiers=dict(self.last_modifiers),
            switches=switches,
            deaths=deaths,
        )

    def _step(self, t: float, dt: float, switches: list, deaths: list):
        self.environment.update(dt)
        hour = self.environment.time_of_day()
        adjustments = self.emergence.needs_adjustments()

        for entity in self.living_entities():
            try:
                self._update_needs(entity, t, dt, hour, adjustments)
            except ISOLATED_ERRORS as e:
                logger.warning(f"{entity.name}: needs update failed, state unchanged: {e}")
                continue
            if entity.is_dead:
                deaths.append(entity.role)

        for entity in self.living_entities():
            if t - entity.last_decision_time < entity.next_decision_delay:
                continue
            previous = entity.activity
            try:
                chosen = self.decision.decide(entity, self.companion_of(entity), t)
                if chosen != previous:
                    entity.stats = self.needs.on_activity_start(entity.stats, chosen)
                    entity.critical_flags = set(
                        entity.stats.critical_stats(self.config.needs.critical_stat_threshold))
                    switches.append((entity.role, previous, chosen))
            except ISOLATED_ERRORS as e:
                logger.warning(f"{entity.name}: decision failed, keeping {previous.value}: {e}")
            entity.last_decision_time = t
            entity.next_decision_delay = self._draw_decision_delay()

        self._update_resonance(dt)

        for entity in self.living_entities():
            entity.mood = self.needs.derive_mood(entity.stats)

    def _update_needs(self, entity: Entity, t: float, dt: float, hour: float,
                      adjustments: Dict[str, float]):
        stats = self.needs.update(entity.stats, entity.activity, dt, hour)
        stats = self.needs.apply_adjustments(stats, adjustments, dt)
        entity.stats = stats

        if self.needs.is_dead(stats):
            entity.mark_dead(t)
            logger.info(f"{entity.name} died at {t / 1000:.1f}s")
            return

        self.decision.update_session_effectiveness(
            entity, self.needs.efficiency(entity.activity, entity.time_in_activity(t)))

        critical = set(stats.critical_stats(self.config.needs.critical_stat_threshold))
        for _ in critical - entity.critical_flags:
            self.decision.record_interruption(entity)
        entity.critical_flags = critical

    def _update_resonance(self, dt: float):
        a = self.entities[EntityRole.CIRCLE]
        b = self.entities[EntityRole.SQUARE]
        try:
            sample = self.resonance_engine.update_resonance(
                a.position, b.position, a.stats, b.stats, self.resonance, dt)
        except ISOLATED_ERRORS as e:
            logger.warning(f"Resonance update failed, resonance unchanged: {e}")
            return

        self.resonance = self.resonance_engine.integrate(self.resonance, sample.resonance_change)
        self.last_sample = sample
        for entity in self.entities.values():
            entity.resonance = self.resonance

        modifiers = self.resonance_engine.modifiers_for(self.resonance, sample.closeness)
        self.last_modifiers = modifiers
        for entity in self.living_entities():
            entity.stats = self.resonance_engine.apply_modifiers(entity.stats, modifiers)

    # ------------------------------------------------------------------
    # Metrics tick
    # ------------------------------------------------------------------

    def snapshot(self, now: Optional[float] = None) -> SystemSnapshot:
        return {
            "time_ms": self.time_ms if now is None else now,
            "resonance": self.resonance,
            "day_phase": self.environment.day_phase(),
            "is_night": self.environment.is_night(),
            "weather": self.environment.weather(),
            "entities": [e.snapshot() for e in self.entities.values()],
        }

    def metrics_tick(self, now: float) -> MetricsTickResult:
        if self._in_tick:
            raise ContractViolationError("metrics_tick called while a logic tick is running")
        self.emergence.update(now, self.snapshot(now))
        self._last_metrics_tick = now
        return MetricsTickResult(
            time=now,
            metrics=self.emergence.metrics(),
            active_patterns=self.emergence.active_patterns(),
            active_loops=self.emergence.active_feedback_loops(),
        )

    # ------------------------------------------------------------------
    # Host convenience
    # ------------------------------------------------------------------

    def advance(self, delta_ms: float,
                positions: Optional[Dict[EntityRole, Tuple[float, float]]] = None
                ) -> Tuple[LogicTickResult, Optional[MetricsTickResult]]:
        """Run one logic tick and, when due, one metrics tick"""
        now = self.time_ms + delta_ms
        logic = self.logic_tick(now, positions, delta_ms)

        metrics = None
        due = (self._last_metrics_tick is None
               or now - self._last_metrics_tick >= self.config.time_scales.metrics_tick_ms)
        if due:
            metrics = self.metrics_tick(now)
        return logic, metrics

    def all_dead(self) -> bool:
        return all(e.is_dead for e in self.entities.values())

    def get_state(self) -> Dict[str, Any]:
        """JSON-friendly view of the whole kernel"""
        return {
            "time_ms": self.time_ms,
            "clock": getattr(self.environment, "clock_string", lambda: None)(),
            "day_phase": self.environment.day_phase().value,
            "weather": self.environment.weather().value,
            "resonance": self.resonance,
            "effect": self.last_sample.effect.value,
            "closeness": self.last_sample.closeness,
            "entities": {
                role.value: {
                    "activity": e.activity.value,
                    "mood": e.mood.value,
                    "is_dead": e.is_dead,
                    "position": list(e.position),
                    "stats": e.stats.to_dict(),
                    "habits": e.habits.as_dict(),
                }
                for role, e in self.entities.items()
            },
            "metrics": self.emergence.metrics().to_dict(),
            "patterns": [p.name for p in self.emergence.active_patterns()],
            "loops": [loop.id for loop in self.emergence.active_feedback_loops()],
            "feedback_loops": {
                loop.id: {
                    "type": loop.type.value,
                    "active": loop.active,
                    "last_activation": loop.last_activation,
                }
                for loop in self.emergence.feedback_loops()
            },
        }

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.get_statistics(),
            "resonance": self.resonance_engine.get_statistics(),
            "emergence": self.emergence.get_statistics(),
        }
