"""
Decision Engine
===============
Chooses what an entity does next.

Every candidate activity is scored from four sources:

    score = urgency (needs) + mood bonus + personality bonus + habit bias

The winner is sampled from a softmax with temperature τ over the scores.
A switch away from the current activity must then clear an inertia gate
that grows with the entity's persistence and with how far into its
current session it is, which keeps entities from thrashing between
near-equal options.

When a switch is accepted the old session is folded into the habit bias
and a new session starts.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from scipy.special import softmax

from .config import (
    ActivityType, MoodType, EntityRole, DecisionConfig, PersonalityProfile,
    default_personalities,
)
from .contracts import NeedsProvider, RandomSource, ISOLATED_ERRORS, is_finite
from .entity import Entity, ActivitySession

logger = logging.getLogger("Autopoiesis.Decision")


class MoodModifiers(NamedTuple):
    """How a mood bends decisions, each in [0, 1]"""
    activity_change: float
    social_seek: float
    risk_taking: float
    energy_conservation: float


MOOD_MODIFIERS: Dict[MoodType, MoodModifiers] = {
    MoodType.HAPPY: MoodModifiers(0.3, 0.7, 0.6, 0.3),
    MoodType.EXCITED: MoodModifiers(0.8, 0.8, 0.8, 0.2),
    MoodType.CALM: MoodModifiers(0.1, 0.4, 0.3, 0.6),
    MoodType.SAD: MoodModifiers(0.4, 0.9, 0.2, 0.7),
    MoodType.ANXIOUS: MoodModifiers(0.7, 0.6, 0.1, 0.8),
    MoodType.ANGRY: MoodModifiers(0.6, 0.3, 0.7, 0.4),
    MoodType.BORED: MoodModifiers(0.8, 0.4, 0.5, 0.3),
    MoodType.LONELY: MoodModifiers(0.5, 0.9, 0.3, 0.6),
    MoodType.TIRED: MoodModifiers(0.1, 0.2, 0.1, 0.9),
}

# Activity groups
SOCIAL_ACTIVITIES = frozenset({ActivityType.SOCIALIZING})
REST_ACTIVITIES = frozenset({ActivityType.RESTING, ActivityType.MEDITATING})
MOOD_RISK_ACTIVITIES = frozenset({
    ActivityType.WANDERING, ActivityType.EXPLORING, ActivityType.DANCING,
})
PERSONALITY_RISK_ACTIVITIES = frozenset({
    ActivityType.WANDERING, ActivityType.EXERCISING, ActivityType.EXPLORING,
})


def softmax_probabilities(scores: List[float], tau: float) -> np.ndarray:
    """
    P(i) = exp((s_i - max s) / τ) / Σ exp((s_j - max s) / τ)

    Shifting by the max keeps every exponent <= 0, so the largest term
    is exactly 1 and the sum never overflows.
    """
    values = np.asarray(scores, dtype=np.float64)
    if values.size == 0:
        return values
    return softmax((values - values.max()) / tau)


def sample_index(probabilities: np.ndarray, draw: float) -> int:
    """Index selected by a single uniform draw over the cumulative distribution"""
    index = np.searchsorted(np.cumsum(probabilities), draw, side="right")
    return int(min(index, len(probabilities) - 1))


@dataclass
class DecisionRecord:
    """Trace of the most recent decision for one entity"""
    time: float
    current: ActivityType
    candidate: ActivityType
    candidate_score: float
    inertia: float
    required_score: float
    switched: bool
    scores: List[Tuple[ActivityType, float]] = field(default_factory=list)
    probabilities: List[float] = field(default_factory=list)


class DecisionEngine:
    """Softmax activity selection with inertia and habit learning"""

    def __init__(self,
                 config: DecisionConfig,
                 needs: NeedsProvider,
                 rng: RandomSource,
                 personalities: Optional[Dict[EntityRole, PersonalityProfile]] = None):
        self.config = config
        self.needs = needs
        self.rng = rng
        self.personalities = personalities or default_personalities()

        self.last_decisions: Dict[EntityRole, DecisionRecord] = {}
        self.total_decisions = 0
        self.total_switches = 0
        self.excluded_candidates = 0

    def personality_for(self, role: EntityRole) -> PersonalityProfile:
        return self.personalities[role]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _mood_bonus(self, activity: ActivityType, mood: MoodType) -> float:
        modifiers = MOOD_MODIFIERS.get(mood)
        if modifiers is None:
            return 0.0
        cfg = self.config
        bonus = 0.0
        if activity in SOCIAL_ACTIVITIES:
            bonus += modifiers.social_seek * cfg.mood_social_weight
        if activity in REST_ACTIVITIES:
            bonus += modifiers.energy_conservation * cfg.mood_rest_weight
        if activity in MOOD_RISK_ACTIVITIES:
            bonus += modifiers.risk_taking * cfg.mood_risk_weight
        return bonus

    def _personality_bonus(self, activity: ActivityType, personality: PersonalityProfile,
                           companion_present: bool) -> float:
        cfg = self.config
        influence = cfg.personality_influence
        bonus = 0.0
        if activity in SOCIAL_ACTIVITIES and companion_present:
            bonus += personality.social_preference * cfg.personality_social_weight * influence
        if activity in REST_ACTIVITIES:
            bonus += personality.energy_efficiency * cfg.personality_rest_weight * influence
        if activity in PERSONALITY_RISK_ACTIVITIES:
            bonus += personality.risk_tolerance * cfg.personality_risk_weight * influence
        return bonus

    def score_activity(self, entity: Entity, activity: ActivityType,
                       companion_present: bool, now: float) -> float:
        # Time spent only counts toward the activity already in progress
        time_in = entity.time_in_activity(now) if activity == entity.activity else 0.0
        score = self.needs.priority(activity, entity.stats, time_in)
        score += self._mood_bonus(activity, entity.mood)
        score += self._personality_bonus(activity, entity.personality, companion_present)
        score += entity.habits.get(activity)
        return score

    def score_activities(self, entity: Entity, companion: Optional[Entity],
                         now: float) -> Dict[ActivityType, float]:
        """
        Total score of every candidate.

        Candidates whose score is non-finite or whose evaluation fails are
        left out; the rest are still scored.
        """
        companion_present = companion is not None and not companion.is_dead
        scores: Dict[ActivityType, float] = {}
        for activity in ActivityType:
            try:
                score = self.score_activity(entity, activity, companion_present, now)
            except ISOLATED_ERRORS as e:
                logger.warning(f"{entity.name}: skipping {activity.value}, scoring failed: {e}")
                self.excluded_candidates += 1
                continue
            if not is_finite(score):
                logger.warning(f"{entity.name}: skipping {activity.value}, non-finite score {score}")
                self.excluded_candidates += 1
                continue
            scores[activity] = float(score)
        return scores

    # ------------------------------------------------------------------
    # Inertia
    # ------------------------------------------------------------------

    def calculate_inertia(self, entity: Entity, now: float) -> float:
        """Resistance to leaving the current session, in [0, 1]"""
        session = entity.session
        if session is None:
            return 0.0
        cfg = self.config

        inertia = entity.personality.activity_persistence
        if session.effectiveness > cfg.effectiveness_bonus_threshold:
            inertia += cfg.effectiveness_inertia_bonus
        if session.interruptions > cfg.interruption_limit:
            inertia -= cfg.interruption_inertia_penalty
        inertia *= 1.0 + cfg.activity_inertia_bonus

        return float(np.clip(inertia * session.progress(now), 0.0, 1.0))

    def required_score(self, inertia: float) -> float:
        """Score a candidate must strictly exceed to replace the current activity"""
        return self.config.decision_change_threshold + self.config.inertia_threshold_scale * inertia

    # ------------------------------------------------------------------
    # Decide
    # ------------------------------------------------------------------

    def decide(self, entity: Entity, companion: Optional[Entity], now: float) -> ActivityType:
        """
        Pick the entity's activity for now.

        Applies an accepted switch to the entity (activity, change time,
        session) and returns the resulting activity.
        """
        if entity.is_dead:
            return entity.activity

        scores = self.score_activities(entity, companion, now)
        if not scores:
            logger.warning(f"{entity.name}: no valid candidates, keeping {entity.activity.value}")
            return entity.activity

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        tau = max(self.config.softmax_tau, self.config.min_temperature)
        probabilities = softmax_probabilities([score for _, score in ranked], tau)
        candidate, candidate_score = ranked[sample_index(probabilities, self.rng.random())]

        self.total_decisions += 1
        current = entity.activity

        if candidate == current:
            record = DecisionRecord(now, current, candidate, candidate_score, 0.0, 0.0,
                                    False, ranked, probabilities.tolist())
            self._record(entity, record)
            return current

        inertia = self.calculate_inertia(entity, now)
        required = self.required_score(inertia)
        switched = candidate_score > required

        record = DecisionRecord(now, current, candidate, candidate_score, inertia, required,
                                switched, ranked, probabilities.tolist())
        self._record(entity, record)

        if not switched:
            return current

        self._finalize_session(entity)
        self.start_session(entity, candidate, now)
        self.total_switches += 1
        logger.info(f"{entity.name}: {current.value} -> {candidate.value} "
                    f"(score {candidate_score:.2f} > {required:.2f})")
        return candidate

    def _record(self, entity: Entity, record: DecisionRecord):
        self.last_decisions[entity.role] = record
        rate = self.config.trace_sample_rate
        if rate <= 0 or not logger.isEnabledFor(logging.DEBUG):
            return
        every = max(1, int(round(1.0 / rate)))
        if self.total_decisions % every == 0:
            top = ", ".join(f"{a.value}={s:.1f}" for a, s in record.scores[:3])
            logger.debug(f"{entity.name} @ {record.time:.0f}ms: [{top}] -> "
                         f"{record.candidate.value}, inertia={record.inertia:.2f}, "
                         f"switched={record.switched}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, entity: Entity, activity: ActivityType, now: float) -> ActivitySession:
        """Commit the entity to an activity with a fresh session"""
        cfg = self.config
        session = ActivitySession(
            activity=activity,
            start_time=now,
            planned_duration=cfg.base_session_duration_ms * (1.0 + entity.personality.activity_persistence),
        )
        entity.session = session
        entity.activity = activity
        entity.last_activity_change = now
        return session

    def _finalize_session(self, entity: Entity):
        """Fold the outgoing session into the habit bias"""
        session = entity.session
        if session is None:
            return
        cfg = self.config
        satisfaction = (session.effectiveness * cfg.satisfaction_effectiveness_weight
                        + self.rng.random() * cfg.satisfaction_random_weight)
        session.satisfaction_level = satisfaction

        step = cfg.habit_step_up if satisfaction > cfg.satisfaction_threshold else -cfg.habit_step_down
        entity.habits.bound = cfg.habit_bound
        entity.habits.adjust(session.activity, step)

    def update_session_effectiveness(self, entity: Entity, value: float):
        if entity.session is not None and is_finite(value):
            entity.session.effectiveness = float(np.clip(value, 0.0, 1.0))

    def record_interruption(self, entity: Entity):
        if entity.session is not None:
            entity.session.interruptions += 1

    def get_statistics(self) -> Dict[str, float]:
        return {
            "total_decisions": self.total_decisions,
            "total_switches": self.total_switches,
            "switch_rate": self.total_switches / max(1, self.total_decisions),
            "excluded_candidates": self.excluded_candidates,
        }
