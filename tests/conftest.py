"""
Pytest configuration and shared fixtures for autopoiesis tests.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def seeded_random():
    """Seeded kernel random source"""
    from autopoiesis.rng import SeededRandom
    return SeededRandom(42)


@pytest.fixture
def test_config():
    """Short-interval configuration with a fixed seed"""
    from autopoiesis.config import create_small_test_config
    return create_small_test_config()


@pytest.fixture
def needs_model():
    """Default needs model"""
    from autopoiesis.needs import NeedsModel
    return NeedsModel()


@pytest.fixture
def resonance_engine():
    """Resonance engine with default rates"""
    from autopoiesis.config import ResonanceConfig
    from autopoiesis.resonance import ResonanceEngine
    return ResonanceEngine(ResonanceConfig())


@pytest.fixture
def emergence_config():
    """Emergence configuration with short persistence"""
    from autopoiesis.config import EmergenceConfig
    return EmergenceConfig(pattern_persistence_ms=30000.0)


@pytest.fixture
def make_entity():
    """Factory for entities with chosen stats and activity"""
    from autopoiesis.config import EntityRole, ActivityType, default_personalities
    from autopoiesis.entity import Entity, EntityStats

    def _make(role=EntityRole.CIRCLE, activity=ActivityType.WANDERING, **stats):
        entity = Entity(
            role=role,
            personality=default_personalities()[role],
            stats=EntityStats(**stats),
            activity=activity,
        )
        return entity

    return _make


@pytest.fixture
def make_snapshot():
    """Factory for SystemSnapshot dicts"""
    from autopoiesis.config import EntityRole, ActivityType, MoodType, DayPhase, WeatherType
    from autopoiesis.entity import EntityStats

    def _make(resonance=50.0, day_phase=DayPhase.MIDDAY, weather=WeatherType.CLEAR,
              is_night=False, time_ms=0.0, stats=None):
        stats = stats or {}
        entities = []
        for role in EntityRole:
            entity_stats = EntityStats(**stats.get(role, {}))
            entities.append({
                "role": role,
                "activity": ActivityType.WANDERING,
                "mood": MoodType.CALM,
                "is_dead": False,
                "stats": entity_stats.to_dict(),
            })
        return {
            "time_ms": time_ms,
            "resonance": resonance,
            "day_phase": day_phase,
            "is_night": is_night,
            "weather": weather,
            "entities": entities,
        }

    return _make
