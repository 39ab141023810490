"""Test configuration for the page navigation engine."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from pagewalker.environment import (
    ContextGenerator,
    EnvironmentContext,
    Season,
    TimeOfDay,
    Weather,
)
from pagewalker.environment_cache import EnvironmentCache
from pagewalker.navigation import NavigationEngine
from pagewalker.session_state import SessionState
from pagewalker.world_graph import WorldGraph

FIXED_NOW = datetime(2024, 7, 14, 12, 0, 30, tzinfo=timezone.utc)


class StubContextGenerator(ContextGenerator):
    """Deterministic generator returning the same weather for every window."""

    def __init__(
        self,
        weather: Weather = Weather.CLEAR,
        *,
        events: tuple[str, ...] = (),
        temperature: float = 20.0,
    ) -> None:
        self.weather = weather
        self.events = events
        self.temperature = temperature
        self.calls: list[tuple[str, int]] = []

    def generate(
        self,
        location_id: str,
        window: int,
        window_start: datetime,
    ) -> EnvironmentContext:
        self.calls.append((location_id, window))
        return EnvironmentContext(
            season=Season.SUMMER,
            weather=self.weather,
            time_of_day=TimeOfDay.DAY,
            temperature=self.temperature,
            events=self.events,
            window=window,
        )


def scenario_definitions() -> list[dict[str, Any]]:
    """Return the start/forest/cave world used throughout the tests."""

    return [
        {
            "id": "start",
            "title": "Start",
            "template": "start.html",
            "transitions": [{"label": "go_north", "target": "forest"}],
        },
        {
            "id": "forest",
            "title": "Forest",
            "template": "forest.html",
            "transitions": [
                {"label": "go_back", "target": "start"},
                {
                    "label": "enter_cave",
                    "target": "cave",
                    "guard": {"kind": "environment", "field": "weather", "equals": "stormy"},
                    "sets_flags": ["found-cave"],
                },
            ],
        },
        {
            "id": "cave",
            "title": "Cave",
            "template": "cave.html",
            "transitions": [{"label": "leave", "target": "forest"}],
        },
    ]


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def world() -> WorldGraph:
    return WorldGraph.load(scenario_definitions(), start="start")


@pytest.fixture()
def definitions() -> list[dict[str, Any]]:
    return scenario_definitions()


@pytest.fixture()
def stub_generator() -> StubContextGenerator:
    return StubContextGenerator()


@pytest.fixture()
def make_stub_generator() -> Callable[..., StubContextGenerator]:
    """Factory fixture for generators with a chosen weather and events."""

    def _factory(
        weather: Weather = Weather.CLEAR,
        *,
        events: tuple[str, ...] = (),
        temperature: float = 20.0,
    ) -> StubContextGenerator:
        return StubContextGenerator(weather, events=events, temperature=temperature)

    return _factory


@pytest.fixture()
def make_engine(
    world: WorldGraph,
) -> Callable[..., NavigationEngine]:
    """Factory fixture building an engine over the scenario world."""

    def _factory(
        generator: ContextGenerator | None = None,
        *,
        history_limit: int = 20,
        graph: WorldGraph | None = None,
    ) -> NavigationEngine:
        resolved = graph if graph is not None else world
        cache = EnvironmentCache(generator or StubContextGenerator(), window_seconds=60)
        sessions = SessionState(
            resolved.start, history_limit=history_limit, clock=lambda: FIXED_NOW
        )
        return NavigationEngine(
            resolved, cache=cache, sessions=sessions, clock=lambda: FIXED_NOW
        )

    return _factory


@pytest.fixture()
def engine(
    make_engine: Callable[..., NavigationEngine],
    stub_generator: StubContextGenerator,
) -> NavigationEngine:
    return make_engine(stub_generator)


__all__ = [
    "FIXED_NOW",
    "StubContextGenerator",
    "scenario_definitions",
]
