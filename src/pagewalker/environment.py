"""Environment context values and the generators that draw them."""

from __future__ import annotations

import hashlib
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple


class Season(str, Enum):
    """Calendar season derived from the month."""

    WINTER = "winter"
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"


class Weather(str, Enum):
    """Weather kinds a location can experience during a window."""

    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    WINDY = "windy"
    FOGGY = "foggy"
    STORMY = "stormy"


class TimeOfDay(str, Enum):
    """Coarse day/night split used by guards and rendering."""

    DAY = "day"
    NIGHT = "night"


ENUM_FIELDS: Mapping[str, type[Enum]] = MappingProxyType(
    {
        "season": Season,
        "weather": Weather,
        "time_of_day": TimeOfDay,
    }
)
NUMERIC_FIELDS: Tuple[str, ...] = ("temperature",)

DEFAULT_EVENT_TABLE: Mapping[str, float] = MappingProxyType(
    {
        "market-day": 0.15,
        "festival": 0.05,
        "fog-bell": 0.1,
        "eclipse": 0.01,
    }
)

_SEASON_BY_MONTH: Mapping[int, Season] = MappingProxyType(
    {
        12: Season.WINTER,
        1: Season.WINTER,
        2: Season.WINTER,
        3: Season.SPRING,
        4: Season.SPRING,
        5: Season.SPRING,
        6: Season.SUMMER,
        7: Season.SUMMER,
        8: Season.SUMMER,
        9: Season.AUTUMN,
        10: Season.AUTUMN,
        11: Season.AUTUMN,
    }
)

_BASE_TEMPERATURE: Mapping[Season, float] = MappingProxyType(
    {
        Season.WINTER: 0.0,
        Season.SPRING: 12.0,
        Season.SUMMER: 24.0,
        Season.AUTUMN: 11.0,
    }
)
_TEMPERATURE_SPREAD = 5.0


def season_for(moment: datetime) -> Season:
    """Return the season for the calendar month of ``moment``."""

    return _SEASON_BY_MONTH[moment.month]


def time_of_day_for(moment: datetime) -> TimeOfDay:
    """Daytime runs from 06:00 up to (not including) 18:00."""

    if 6 <= moment.hour < 18:
        return TimeOfDay.DAY
    return TimeOfDay.NIGHT


def is_twilight(moment: datetime) -> bool:
    """Return ``True`` within an hour either side of dawn or dusk."""

    return 5 <= moment.hour < 7 or 17 <= moment.hour < 19


@dataclass(frozen=True)
class EnvironmentContext:
    """Derived descriptive state attached to a location for one time window.

    Values are never persisted; they are always a function of the location,
    the window and a random draw. ``events`` holds the active event tags in
    sorted order so that two equal draws compare equal.
    """

    season: Season
    weather: Weather
    time_of_day: TimeOfDay
    temperature: float
    events: Tuple[str, ...] = ()
    twilight: bool = False
    window: int = 0
    computed_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "events", tuple(sorted(set(self.events))))

    def field_value(self, name: str) -> str | float:
        """Return the comparable value of a named field.

        Enum fields are returned as their string value.
        """

        if name in ENUM_FIELDS:
            member = getattr(self, name)
            return member.value
        if name in NUMERIC_FIELDS:
            return float(getattr(self, name))
        raise KeyError(f"Unknown environment field '{name}'")

    def has_event(self, tag: str) -> bool:
        return tag in self.events

    def with_overrides(self, **changes: Any) -> "EnvironmentContext":
        """Return a copy with selected fields replaced.

        String values for enum fields are coerced to the matching member.
        """

        coerced: Dict[str, Any] = {}
        for name, value in changes.items():
            enum_type = ENUM_FIELDS.get(name)
            if enum_type is not None and not isinstance(value, enum_type):
                value = enum_type(value)
            coerced[name] = value
        return replace(self, **coerced)

    def to_payload(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation of the context."""

        return {
            "season": self.season.value,
            "weather": self.weather.value,
            "time_of_day": self.time_of_day.value,
            "twilight": self.twilight,
            "temperature": self.temperature,
            "events": list(self.events),
            "window": self.window,
        }


class ContextGenerator(ABC):
    """Interface for components that draw a fresh context for a window."""

    @abstractmethod
    def generate(
        self,
        location_id: str,
        window: int,
        window_start: datetime,
    ) -> EnvironmentContext:
        """Produce the context for ``location_id`` during ``window``."""


class RandomContextGenerator(ContextGenerator):
    """Draw weather, temperature and events from a random source.

    When ``seed`` is provided every draw is seeded from a digest of
    ``(seed, location_id, window)``, so repeated draws for the same key are
    identical across processes. Without a seed each draw uses fresh
    process-local entropy.
    """

    def __init__(
        self,
        *,
        seed: int | None = None,
        event_table: Mapping[str, float] | None = None,
        weather_choices: Tuple[Weather, ...] | None = None,
    ) -> None:
        table = dict(event_table if event_table is not None else DEFAULT_EVENT_TABLE)
        for tag, probability in table.items():
            if not 0.0 <= probability <= 1.0:
                raise ValueError(
                    f"Event '{tag}' probability must be between 0 and 1, got {probability!r}"
                )
        choices = tuple(weather_choices) if weather_choices else tuple(Weather)
        if not choices:
            raise ValueError("weather_choices must not be empty")

        self.seed = seed
        self._event_table: Mapping[str, float] = MappingProxyType(table)
        self._weather_choices = choices

    @property
    def event_table(self) -> Mapping[str, float]:
        return self._event_table

    def rng_for(self, location_id: str, window: int) -> random.Random:
        """Return the random source used for a single draw."""

        if self.seed is None:
            return random.Random()
        digest = hashlib.sha256(
            f"{self.seed}:{location_id}:{window}".encode("utf-8")
        ).digest()
        return random.Random(int.from_bytes(digest[:8], "big"))

    def generate(
        self,
        location_id: str,
        window: int,
        window_start: datetime,
    ) -> EnvironmentContext:
        rng = self.rng_for(location_id, window)
        season = season_for(window_start)
        weather = rng.choice(self._weather_choices)
        offset = rng.uniform(-_TEMPERATURE_SPREAD, _TEMPERATURE_SPREAD)
        temperature = round(_BASE_TEMPERATURE[season] + offset, 1)
        events = tuple(
            tag
            for tag, probability in sorted(self._event_table.items())
            if rng.random() < probability
        )

        return EnvironmentContext(
            season=season,
            weather=weather,
            time_of_day=time_of_day_for(window_start),
            temperature=temperature,
            events=events,
            twilight=is_twilight(window_start),
            window=window,
        )


__all__ = [
    "Season",
    "Weather",
    "TimeOfDay",
    "ENUM_FIELDS",
    "NUMERIC_FIELDS",
    "DEFAULT_EVENT_TABLE",
    "season_for",
    "time_of_day_for",
    "is_twilight",
    "EnvironmentContext",
    "ContextGenerator",
    "RandomContextGenerator",
]
