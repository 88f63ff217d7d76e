"""
Day/night clock and weather.

Default EnvironmentProvider for headless runs. A host with its own
clock can supply any object honouring the same protocol.
"""

import logging
import math
from typing import Dict, Optional

from .config import DayPhase, WeatherType, EnvironmentConfig
from .rng import SeededRandom

logger = logging.getLogger("Autopoiesis.Environment")


def phase_for_hour(hour: float) -> DayPhase:
    """Phase of the day for an hour in [0, 24)"""
    if 5 <= hour < 7:
        return DayPhase.DAWN
    if 7 <= hour < 11:
        return DayPhase.MORNING
    if 11 <= hour < 15:
        return DayPhase.MIDDAY
    if 15 <= hour < 18:
        return DayPhase.AFTERNOON
    if 18 <= hour < 21:
        return DayPhase.DUSK
    if 21 <= hour < 23:
        return DayPhase.NIGHT
    return DayPhase.DEEP_NIGHT


def is_night_hour(hour: float) -> bool:
    return phase_for_hour(hour) in (DayPhase.NIGHT, DayPhase.DEEP_NIGHT)


def light_level(hour: float) -> float:
    """Ambient light in [0.05, 1.0]: a sine arc by day, a slow fade by night"""
    if 6 <= hour <= 18:
        progress = (hour - 6) / 12
        return math.sin(progress * math.pi) * 0.8 + 0.2
    night_hour = hour - 18 if hour > 18 else hour + 6
    return max(0.05, 0.3 - (night_hour / 12) * 0.25)


# Pairs that must pass through CLOUDY instead of switching directly
ABRUPT_CHANGES = {
    frozenset((WeatherType.CLEAR, WeatherType.STORMY)),
    frozenset((WeatherType.CLEAR, WeatherType.RAINY)),
    frozenset((WeatherType.CLEAR, WeatherType.SNOWY)),
}


class DayNightCycle:
    """Simulated clock plus a weather state machine"""

    def __init__(self, config: Optional[EnvironmentConfig] = None,
                 rng: Optional[SeededRandom] = None):
        self.config = config or EnvironmentConfig()
        self.rng = rng or SeededRandom()
        self.reset()

    def reset(self):
        self._hour = self.config.start_hour % 24.0
        self._weather = self.config.initial_weather
        self._weather_remaining_s = self._draw_weather_duration()
        self.days_elapsed = 0
        self.weather_changes = 0

    def _draw_weather_duration(self) -> float:
        return self.rng.uniform(self.config.min_weather_duration_s,
                                self.config.max_weather_duration_s)

    # ------------------------------------------------------------------

    def update(self, delta_ms: float) -> None:
        if not math.isfinite(delta_ms) or delta_ms <= 0:
            return
        seconds = delta_ms / 1000.0

        previous_phase = self.day_phase()
        hours = seconds * self.config.minutes_per_second / 60.0
        new_hour = self._hour + hours
        if new_hour >= 24.0:
            self.days_elapsed += int(new_hour // 24.0)
        self._hour = new_hour % 24.0

        if self.day_phase() != previous_phase:
            logger.debug(f"Phase {previous_phase.value} -> {self.day_phase().value} "
                         f"at {self.clock_string()}")

        self._weather_remaining_s -= seconds
        if self._weather_remaining_s <= 0:
            self._change_weather()

    def weather_probabilities(self) -> Dict[WeatherType, float]:
        probs = {
            WeatherType.CLEAR: 0.35,
            WeatherType.CLOUDY: 0.3,
            WeatherType.RAINY: 0.15,
            WeatherType.STORMY: 0.05,
            WeatherType.FOGGY: 0.1,
            WeatherType.SNOWY: 0.05,
        }
        # Wetter and mistier at night
        if self.is_night():
            probs[WeatherType.RAINY] += 0.1
            probs[WeatherType.FOGGY] += 0.1
            probs[WeatherType.CLEAR] -= 0.2
        return probs

    def _change_weather(self):
        probs = self.weather_probabilities()
        options = list(probs.keys())
        weights = [probs[w] for w in options]
        total = sum(weights)
        target = self.rng.choice(options, p=[w / total for w in weights])

        if frozenset((self._weather, target)) in ABRUPT_CHANGES:
            target = WeatherType.CLOUDY

        if target != self._weather:
            logger.info(f"Weather changed: {self._weather.value} -> {target.value}")
            self.weather_changes += 1
        self._weather = target
        self._weather_remaining_s = self._draw_weather_duration()

    def set_weather(self, weather: WeatherType, duration_s: Optional[float] = None):
        self._weather = weather
        self._weather_remaining_s = duration_s if duration_s is not None else self._draw_weather_duration()

    def set_time(self, hour: float):
        self._hour = hour % 24.0

    # ------------------------------------------------------------------

    def time_of_day(self) -> float:
        return self._hour

    def day_phase(self) -> DayPhase:
        return phase_for_hour(self._hour)

    def is_night(self) -> bool:
        return is_night_hour(self._hour)

    def weather(self) -> WeatherType:
        return self._weather

    def light_level(self) -> float:
        return light_level(self._hour)

    def clock_string(self) -> str:
        hour = int(self._hour)
        minute = int((self._hour - hour) * 60)
        return f"{hour:02d}:{minute:02d}"
