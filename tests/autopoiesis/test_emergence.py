"""
Unit tests for autopoiesis/emergence.py

Tests pattern detection and lifecycle, feedback loops and smoothed metrics.
"""

from dataclasses import dataclass

import pytest
from autopoiesis.config import (
    EmergenceConfig, PatternType, LoopType, DayPhase, WeatherType, EntityRole,
)
from autopoiesis.contracts import UnknownPatternError
from autopoiesis.emergence import (
    EmergenceEngine, EvaluationContext, SystemMetrics, PatternTemplate, FeedbackLoopRule,
    Condition, ResonanceAtLeast, ResonanceAtMost, TimeOfDayIn, WeatherIn, EntityNeedsInRange,
    default_pattern_templates, default_feedback_loops, pattern_id,
)


@dataclass(frozen=True)
class BrokenCondition(Condition):
    weight: float = 1.0

    def evaluate(self, ctx):
        raise ValueError("condition blew up")


def bonding_template(**kwargs):
    """Template fully satisfied whenever resonance is at least one half"""
    params = dict(
        name="Close Bond",
        type=PatternType.SOCIAL,
        conditions=(ResonanceAtLeast(threshold=0.5, weight=1.0),),
        needs_modifiers={"happiness": 0.2},
    )
    params.update(kwargs)
    return PatternTemplate(**params)


def context(make_snapshot, metrics=None, **kwargs):
    return EvaluationContext.from_snapshot(make_snapshot(**kwargs), metrics or SystemMetrics())


class TestConditions:
    """Tests for condition evaluation"""

    def test_resonance_normalised(self, make_snapshot):
        """Context resonance is on [0, 1]"""
        ctx = context(make_snapshot, resonance=70.0)
        assert ctx.resonance == pytest.approx(0.7)
        assert ResonanceAtLeast(threshold=0.7).evaluate(ctx)
        assert not ResonanceAtMost(threshold=0.3).evaluate(ctx)

    def test_time_and_weather(self, make_snapshot):
        ctx = context(make_snapshot, day_phase=DayPhase.DUSK, weather=WeatherType.SNOWY)
        assert TimeOfDayIn(phases=frozenset({DayPhase.MORNING, DayPhase.DUSK})).evaluate(ctx)
        assert WeatherIn(weathers=frozenset({WeatherType.SNOWY})).evaluate(ctx)
        assert not WeatherIn(weathers=frozenset({WeatherType.CLEAR})).evaluate(ctx)

    def test_entity_range_needs_everyone(self, make_snapshot):
        """All living entities must be in range"""
        condition = EntityNeedsInRange(stat="happiness", low=60.0)
        both = context(make_snapshot, stats={
            EntityRole.CIRCLE: {"happiness": 80.0}, EntityRole.SQUARE: {"happiness": 70.0}})
        one = context(make_snapshot, stats={
            EntityRole.CIRCLE: {"happiness": 80.0}, EntityRole.SQUARE: {"happiness": 30.0}})
        assert condition.evaluate(both)
        assert not condition.evaluate(one)

    def test_dead_entities_ignored(self, make_snapshot):
        """With nobody alive entity conditions fail"""
        snapshot = make_snapshot(stats={EntityRole.CIRCLE: {"happiness": 90.0},
                                        EntityRole.SQUARE: {"happiness": 10.0}})
        snapshot["entities"][1]["is_dead"] = True
        ctx = EvaluationContext.from_snapshot(snapshot, SystemMetrics())
        assert len(ctx.entities) == 1
        assert EntityNeedsInRange(stat="happiness", low=60.0).evaluate(ctx)

        snapshot["entities"][0]["is_dead"] = True
        ctx = EvaluationContext.from_snapshot(snapshot, SystemMetrics())
        assert not EntityNeedsInRange(stat="happiness", low=0.0).evaluate(ctx)


class TestPatternStrength:
    """Tests for template strength normalisation"""

    def _symbiotic(self):
        return next(t for t in default_pattern_templates() if t.name == "Symbiotic Codependency")

    def _happy_ctx(self, make_snapshot):
        return context(make_snapshot, resonance=90.0, stats={
            EntityRole.CIRCLE: {"happiness": 80.0}, EntityRole.SQUARE: {"happiness": 80.0}})

    def test_count_normalisation(self, make_snapshot):
        """Count mode divides satisfied weight by the number of conditions"""
        engine = EmergenceEngine(EmergenceConfig())
        strength = engine.evaluate_pattern_strength(self._symbiotic(), self._happy_ctx(make_snapshot))
        assert strength == pytest.approx(0.3)

    def test_weight_normalisation(self, make_snapshot):
        """Weight mode divides by total condition weight"""
        engine = EmergenceEngine(EmergenceConfig(strength_normalization="weight"))
        strength = engine.evaluate_pattern_strength(self._symbiotic(), self._happy_ctx(make_snapshot))
        assert strength == pytest.approx(1.0)

    def test_partial_match(self, make_snapshot):
        """Only satisfied conditions add weight"""
        engine = EmergenceEngine(EmergenceConfig(strength_normalization="weight"))
        ctx = context(make_snapshot, resonance=90.0, stats={
            EntityRole.CIRCLE: {"happiness": 10.0}, EntityRole.SQUARE: {"happiness": 80.0}})
        assert engine.evaluate_pattern_strength(self._symbiotic(), ctx) == pytest.approx(0.5)

    def test_condition_free_uses_metrics(self, make_snapshot):
        """A template with no conditions scores from complexity and coherence"""
        engine = EmergenceEngine(EmergenceConfig())
        template = PatternTemplate(name="Free", type=PatternType.SYSTEMIC)
        ctx = context(make_snapshot, metrics=SystemMetrics(complexity=0.8, coherence=0.6))
        assert engine.evaluate_pattern_strength(template, ctx) == pytest.approx(0.7)

    def test_strength_in_unit_interval(self, make_snapshot):
        """Every default template scores within [0, 1]"""
        for mode in ("count", "weight"):
            engine = EmergenceEngine(EmergenceConfig(strength_normalization=mode))
            ctx = context(make_snapshot, resonance=100.0, day_phase=DayPhase.MORNING,
                          weather=WeatherType.STORMY)
            for template in default_pattern_templates():
                assert 0.0 <= engine.evaluate_pattern_strength(template, ctx) <= 1.0


class TestPatternLifecycle:
    """Tests for detection, reinforcement and fading"""

    def test_detection_is_idempotent(self, emergence_config, make_snapshot):
        """Re-detecting a live template never duplicates it"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        ctx = context(make_snapshot, resonance=80.0)
        engine.check_patterns(0.0, ctx)
        engine.check_patterns(1000.0, ctx)
        engine.check_patterns(2000.0, ctx)

        assert len(engine.active_patterns()) == 1
        assert engine.patterns_detected == 1
        pattern = engine.get_pattern("close_bond")
        assert pattern.detected_at == 0.0
        assert pattern.duration == 2000.0

    def test_fades_after_persistence(self, emergence_config, make_snapshot):
        """A pattern below threshold for longer than persistence is removed"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        engine.check_patterns(0.0, context(make_snapshot, resonance=80.0))

        low = context(make_snapshot, resonance=10.0)
        engine.check_patterns(1000.0, low)
        pattern = engine.get_pattern("close_bond")
        assert pattern.below_threshold_since == 1000.0
        assert pattern.strength == pytest.approx(0.5)

        engine.check_patterns(31000.0, low)
        assert len(engine.active_patterns()) == 1

        engine.check_patterns(31001.0, low)
        assert engine.active_patterns() == []
        assert engine.patterns_faded == 1
        with pytest.raises(UnknownPatternError):
            engine.get_pattern("close_bond")

    def test_recovery_resets_fade(self, emergence_config, make_snapshot):
        """Crossing back over threshold clears the fade timer"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        high = context(make_snapshot, resonance=80.0)
        low = context(make_snapshot, resonance=10.0)

        engine.check_patterns(0.0, high)
        engine.check_patterns(1000.0, high)
        engine.check_patterns(2000.0, low)
        engine.check_patterns(3000.0, high)
        pattern = engine.get_pattern("close_bond")
        assert pattern.is_reinforced
        assert pattern.duration == 1000.0

        engine.check_patterns(4000.0, high)
        assert pattern.duration == 2000.0

        engine.check_patterns(40000.0, low)
        assert len(engine.active_patterns()) == 1

    def test_failing_template_isolated(self, emergence_config, make_snapshot):
        """A template that raises is skipped, the others still evaluate"""
        broken = PatternTemplate(name="Broken", type=PatternType.SYSTEMIC,
                                 conditions=(BrokenCondition(),))
        engine = EmergenceEngine(emergence_config, templates=[broken, bonding_template()],
                                 loop_rules=[])
        engine.check_patterns(0.0, context(make_snapshot, resonance=80.0))

        assert engine.evaluation_failures == 1
        assert [p.id for p in engine.active_patterns()] == ["close_bond"]

    def test_sorted_by_strength(self, make_snapshot):
        """Active patterns come strongest first"""
        weak = PatternTemplate(
            name="Weak", type=PatternType.SOCIAL,
            conditions=(ResonanceAtLeast(threshold=0.5, weight=1.0),
                        ResonanceAtLeast(threshold=0.9, weight=0.5)))
        engine = EmergenceEngine(EmergenceConfig(strength_normalization="weight"),
                                 templates=[weak, bonding_template()], loop_rules=[])
        engine.check_patterns(0.0, context(make_snapshot, resonance=80.0))
        assert [p.id for p in engine.active_patterns()] == ["close_bond", "weak"]

    def test_needs_adjustments(self, emergence_config, make_snapshot):
        """Live patterns contribute strength-scaled per-second adjustments"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        assert engine.needs_adjustments() == {}
        engine.check_patterns(0.0, context(make_snapshot, resonance=80.0))
        assert engine.needs_adjustments() == {"happiness": pytest.approx(0.2)}

    def test_pattern_id(self):
        assert pattern_id("Emergent Autopoiesis") == "emergent_autopoiesis"


class TestFeedbackLoops:
    """Tests for loop activation"""

    def test_default_loops(self):
        ids = [rule.id for rule in default_feedback_loops()]
        assert ids == ["resonance_wellbeing", "isolation_spiral", "resource_balance", "circadian_sync"]

    def test_rising_edge(self, emergence_config, make_snapshot):
        """Activation time is stamped only on the rising edge"""
        engine = EmergenceEngine(emergence_config, templates=[])
        morning = context(make_snapshot, day_phase=DayPhase.MORNING)
        engine.check_feedback_loops(1000.0, morning)
        engine.check_feedback_loops(5000.0, morning)

        loop = engine.get_feedback_loop("circadian_sync")
        assert loop.active
        assert loop.type == LoopType.NEGATIVE
        assert loop.last_activation == 1000.0

        engine.check_feedback_loops(9000.0, context(make_snapshot, day_phase=DayPhase.MIDDAY))
        assert not loop.active
        assert loop.last_activation == 1000.0
        assert loop not in engine.active_feedback_loops()
        assert loop in engine.feedback_loops()

    def test_resource_balance(self, emergence_config, make_snapshot):
        """Scarcity with some resonance triggers the resource loop"""
        engine = EmergenceEngine(emergence_config, templates=[])
        ctx = context(make_snapshot, resonance=50.0, stats={EntityRole.CIRCLE: {"money": 5.0}})
        engine.check_feedback_loops(0.0, ctx)
        assert engine.get_feedback_loop("resource_balance").active

    def test_failing_predicate_isolated(self, emergence_config, make_snapshot):
        """A raising predicate is skipped, the others still run"""
        def boom(ctx):
            raise KeyError("missing")

        rules = [
            FeedbackLoopRule("broken", LoopType.POSITIVE, 0.5, ("x",), boom),
            FeedbackLoopRule("always", LoopType.NEGATIVE, 0.5, ("y",), lambda ctx: True),
        ]
        engine = EmergenceEngine(emergence_config, templates=[], loop_rules=rules)
        engine.check_feedback_loops(0.0, context(make_snapshot))
        assert engine.evaluation_failures == 1
        assert [loop.id for loop in engine.active_feedback_loops()] == ["always"]

    def test_unknown_loop(self, emergence_config):
        engine = EmergenceEngine(emergence_config)
        with pytest.raises(UnknownPatternError):
            engine.get_feedback_loop("nope")


class TestMetrics:
    """Tests for smoothed system metrics"""

    def test_initial_metrics(self, emergence_config):
        metrics = EmergenceEngine(emergence_config).metrics()
        assert metrics.complexity == 0.3
        assert metrics.entropy == 0.4

    def test_smoothing(self, emergence_config, make_snapshot):
        """Each update moves metrics a tenth of the way to the sample"""
        engine = EmergenceEngine(emergence_config, templates=[], loop_rules=[])
        engine.update_metrics(context(make_snapshot, resonance=50.0))
        metrics = engine.metrics()

        # Sample coherence = 0.5 + 0.1, sample sustainability = 55 / 100
        assert metrics.coherence == pytest.approx(0.5 * 0.9 + 0.6 * 0.1)
        assert metrics.sustainability == pytest.approx(0.5 * 0.9 + 0.55 * 0.1)
        assert metrics.complexity == pytest.approx(0.3 * 0.9)
        assert metrics.adaptability == pytest.approx(0.5)

    def test_metrics_in_unit_interval(self, emergence_config, make_snapshot):
        """Metrics stay in [0, 1] under repeated extreme samples"""
        engine = EmergenceEngine(emergence_config)
        ctx = context(make_snapshot, resonance=100.0, is_night=True, day_phase=DayPhase.MORNING,
                      stats={EntityRole.CIRCLE: {"hunger": 0.0, "money": 0.0, "boredom": 100.0}})
        for i in range(50):
            engine.check_patterns(i * 1000.0, ctx)
            engine.check_feedback_loops(i * 1000.0, ctx)
            engine.update_metrics(ctx)
        for value in engine.metrics().to_dict().values():
            assert 0.0 <= value <= 1.0

    def test_history_bounded(self, make_snapshot):
        """History keeps only the newest entries"""
        engine = EmergenceEngine(EmergenceConfig(max_metrics_history=5), templates=[], loop_rules=[])
        ctx = context(make_snapshot)
        for _ in range(12):
            engine.update_metrics(ctx)
        assert len(engine.metrics_history()) == 5

    def test_history_is_a_copy(self, emergence_config, make_snapshot):
        """Callers cannot mutate the stored history"""
        engine = EmergenceEngine(emergence_config, templates=[], loop_rules=[])
        engine.update_metrics(context(make_snapshot))
        engine.metrics_history()[0].complexity = 99.0
        assert engine.metrics_history()[0].complexity != 99.0


class TestCadence:
    """Tests for the two evaluation cadences"""

    def test_first_update_runs_both(self, emergence_config, make_snapshot):
        """The first call evaluates patterns and metrics"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        engine.update(0.0, make_snapshot(resonance=80.0))
        assert len(engine.active_patterns()) == 1
        assert len(engine.metrics_history()) == 1

    def test_intervals_respected(self, emergence_config, make_snapshot):
        """Metrics every 5 s, patterns every 10 s"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        engine.update(0.0, make_snapshot(resonance=10.0))
        engine.update(1000.0, make_snapshot(resonance=80.0))
        assert engine.active_patterns() == []
        assert len(engine.metrics_history()) == 1

        engine.update(5000.0, make_snapshot(resonance=80.0))
        assert engine.active_patterns() == []
        assert len(engine.metrics_history()) == 2

        engine.update(10000.0, make_snapshot(resonance=80.0))
        assert len(engine.active_patterns()) == 1
        assert len(engine.metrics_history()) == 3

    def test_force_evaluation(self, emergence_config, make_snapshot):
        """Forcing ignores the cadence"""
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        engine.update(0.0, make_snapshot(resonance=10.0))
        engine.force_evaluation(1.0, make_snapshot(resonance=80.0))
        assert len(engine.active_patterns()) == 1
        assert len(engine.metrics_history()) == 2

    def test_statistics(self, emergence_config, make_snapshot):
        engine = EmergenceEngine(emergence_config, templates=[bonding_template()], loop_rules=[])
        engine.update(0.0, make_snapshot(resonance=80.0))
        stats = engine.get_statistics()
        assert stats["active_patterns"] == 1
        assert stats["patterns_detected"] == 1
        assert stats["history_length"] == 1
        assert "metric_autopoiesis" in stats
