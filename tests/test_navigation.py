"""Tests for the request protocol implemented by :class:`NavigationEngine`."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable

import pytest

from pagewalker.environment import (
    ContextGenerator,
    EnvironmentContext,
    RandomContextGenerator,
    Weather,
)
from pagewalker.environment_cache import EnvironmentCache
from pagewalker.errors import ContextComputationError
from pagewalker.navigation import (
    RESET_NOTICE,
    NavigationEngine,
    RejectionReason,
)
from pagewalker.session_state import SessionState
from pagewalker.world_graph import WorldGraph


class _BrokenGenerator(ContextGenerator):
    def generate(
        self, location_id: str, window: int, window_start: datetime
    ) -> EnvironmentContext:
        raise RuntimeError("random source offline")


def test_view_starts_new_session_at_start(engine: NavigationEngine) -> None:
    result = engine.view("s1")

    assert result.session_id == "s1"
    assert result.location.id == "start"
    assert result.rejected is None
    assert result.notice is None
    assert result.available == ("go_north",)


def test_walk_north_then_unknown_label(engine: NavigationEngine) -> None:
    assert engine.view("s1").location.id == "start"

    moved = engine.act("s1", "go_north")
    assert moved.location.id == "forest"
    assert moved.moved
    assert engine.sessions.current("s1") == "forest"

    rejected = engine.act("s1", "go_east")
    assert rejected.rejected is not None
    assert rejected.rejected.reason is RejectionReason.UNKNOWN_TRANSITION
    assert rejected.rejected.label == "go_east"
    assert rejected.location.id == "forest"
    assert engine.sessions.current("s1") == "forest"


def test_guarded_transition_follows_cached_weather(
    engine: NavigationEngine, fixed_now: datetime
) -> None:
    engine.act("s1", "go_north")
    assert engine.view("s1").environment.weather is Weather.CLEAR

    blocked = engine.act("s1", "enter_cave")
    assert blocked.rejected is not None
    assert blocked.rejected.reason is RejectionReason.GUARD_REJECTED
    assert "stormy" in blocked.rejected.message
    assert engine.sessions.current("s1") == "forest"

    current = engine.cache.get("forest", fixed_now)
    engine.cache.put("forest", fixed_now, current.with_overrides(weather=Weather.STORMY))

    entered = engine.act("s1", "enter_cave")
    assert entered.rejected is None
    assert entered.location.id == "cave"
    assert engine.sessions.current("s1") == "cave"
    assert engine.sessions.flags("s1") == frozenset({"found-cave"})


def test_guard_uses_pre_transition_context(
    engine: NavigationEngine, fixed_now: datetime
) -> None:
    engine.act("s1", "go_north")
    cave_context = engine.cache.get("cave", fixed_now)
    engine.cache.put("cave", fixed_now, cave_context.with_overrides(weather="stormy"))

    result = engine.act("s1", "enter_cave")

    assert result.rejected is not None
    assert result.rejected.reason is RejectionReason.GUARD_REJECTED


def test_result_carries_target_environment(
    engine: NavigationEngine, fixed_now: datetime
) -> None:
    forest_context = engine.cache.get("forest", fixed_now)
    pinned = engine.cache.put(
        "forest", fixed_now, forest_context.with_overrides(weather="foggy")
    )

    result = engine.act("s1", "go_north")

    assert result.environment is pinned
    assert result.available == ("go_back",)


def test_labels_are_matched_after_trimming(engine: NavigationEngine) -> None:
    assert engine.act("s1", "  go_north ").location.id == "forest"


def test_history_records_visits(make_engine: Callable[..., NavigationEngine]) -> None:
    engine = make_engine(history_limit=3)

    for label in ["go_north", "go_back", "go_north", "go_back"]:
        engine.act("s1", label)

    assert engine.sessions.snapshot("s1").history == ["start", "forest", "start"]


def test_stale_session_location_is_reset_with_notice(
    engine: NavigationEngine,
) -> None:
    engine.sessions.apply("s1", "demolished-tower")

    result = engine.view("s1")

    assert result.location.id == "start"
    assert result.notice == RESET_NOTICE
    assert engine.sessions.current("s1") == "start"


def test_stale_session_is_reset_before_acting(engine: NavigationEngine) -> None:
    engine.sessions.apply("s1", "demolished-tower")

    result = engine.act("s1", "go_north")

    assert result.notice == RESET_NOTICE
    assert result.location.id == "forest"


def test_context_failure_leaves_session_untouched(
    world: WorldGraph, fixed_now: datetime
) -> None:
    sessions = SessionState(world.start, clock=lambda: fixed_now)
    engine = NavigationEngine(
        world,
        cache=EnvironmentCache(_BrokenGenerator()),
        sessions=sessions,
        clock=lambda: fixed_now,
    )

    with pytest.raises(ContextComputationError):
        engine.act("s1", "go_north")

    assert sessions.current("s1") == "start"


def test_target_context_failure_does_not_move(
    world: WorldGraph, fixed_now: datetime
) -> None:
    cache = EnvironmentCache(_BrokenGenerator())
    cache.put(
        "start",
        fixed_now,
        RandomContextGenerator(seed=1).generate("start", 0, fixed_now),
    )
    engine = NavigationEngine(world, cache=cache, clock=lambda: fixed_now)

    with pytest.raises(ContextComputationError):
        engine.act("s1", "go_north")

    assert engine.sessions.current("s1") == "start"


def test_later_window_may_change_environment(
    make_engine: Callable[..., NavigationEngine], fixed_now: datetime
) -> None:
    engine = make_engine(RandomContextGenerator(seed=9))

    first = engine.view("s1", fixed_now)
    again = engine.view("s1", fixed_now + timedelta(seconds=10))
    later = engine.view("s1", fixed_now + timedelta(minutes=1))

    assert again.environment is first.environment
    assert later.environment.window == first.environment.window + 1


def test_double_submit_applies_sequentially(engine: NavigationEngine) -> None:
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: engine.act("s1", "go_north"), range(2)))

    moved = [result for result in results if result.rejected is None]
    rejected = [result for result in results if result.rejected is not None]
    assert len(moved) == 1
    assert len(rejected) == 1
    assert rejected[0].location.id == "forest"
    assert engine.sessions.current("s1") == "forest"


def test_concurrent_walks_stay_on_the_graph(engine: NavigationEngine) -> None:
    labels = ["go_north", "go_back"] * 40

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda label: engine.act("s1", label), labels))

    snapshot = engine.sessions.snapshot("s1")
    assert snapshot.location in {"start", "forest"}
    for previous, current in zip(snapshot.history, snapshot.history[1:]):
        assert current in {
            transition.target for transition in engine.world.transitions_from(previous)
        }


def test_engine_rejects_mismatched_start(world: WorldGraph) -> None:
    with pytest.raises(ValueError):
        NavigationEngine(world, sessions=SessionState("elsewhere"))


def test_engine_keeps_empty_injected_collaborators(world: WorldGraph) -> None:
    cache = EnvironmentCache(window_seconds=120)
    sessions = SessionState("start", history_limit=3)

    engine = NavigationEngine(world, cache=cache, sessions=sessions)

    assert engine.cache is cache
    assert engine.sessions is sessions
