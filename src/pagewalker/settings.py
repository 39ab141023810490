"""Configuration helpers for assembling the navigation core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .environment import RandomContextGenerator
from .environment_cache import DEFAULT_WINDOW_SECONDS, EnvironmentCache
from .navigation import NavigationEngine
from .session_state import DEFAULT_HISTORY_LIMIT, SessionState
from .world_graph import WorldGraph, load_default_world, load_world_from_file

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_int(
    value: str | None, *, name: str, minimum: int | None = None
) -> int | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    try:
        parsed = int(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if minimum is not None and parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    return parsed


def _parse_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None:
        return default

    trimmed = value.strip().lower()
    if not trimmed:
        return default
    if trimmed in _TRUE_VALUES:
        return True
    if trimmed in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (true/false).")


@dataclass(frozen=True)
class NavigatorSettings:
    """Deployment settings for the navigation engine.

    The helper reads from environment variables so deployments can be tuned
    without modifying application code. Empty strings are treated as if the
    variable was unset.
    """

    world_path: Path | None = None
    window_seconds: int = DEFAULT_WINDOW_SECONDS
    history_limit: int = DEFAULT_HISTORY_LIMIT
    environment_seed: int | None = None
    strict_reachability: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "NavigatorSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        window_seconds = _parse_int(
            source.get("PAGEWALKER_WINDOW_SECONDS"),
            name="PAGEWALKER_WINDOW_SECONDS",
            minimum=1,
        )
        history_limit = _parse_int(
            source.get("PAGEWALKER_HISTORY_LIMIT"),
            name="PAGEWALKER_HISTORY_LIMIT",
            minimum=1,
        )

        return cls(
            world_path=_normalise_path(source.get("PAGEWALKER_WORLD_PATH")),
            window_seconds=window_seconds or DEFAULT_WINDOW_SECONDS,
            history_limit=history_limit or DEFAULT_HISTORY_LIMIT,
            environment_seed=_parse_int(
                source.get("PAGEWALKER_ENVIRONMENT_SEED"),
                name="PAGEWALKER_ENVIRONMENT_SEED",
            ),
            strict_reachability=_parse_bool(
                source.get("PAGEWALKER_STRICT_REACHABILITY"),
                name="PAGEWALKER_STRICT_REACHABILITY",
                default=False,
            ),
            log_level=_normalise_string(
                source.get("PAGEWALKER_LOG_LEVEL"), default="INFO"
            ).upper(),
        )


def load_world(settings: NavigatorSettings) -> WorldGraph:
    """Load the configured world file, or the bundled demo world."""

    if settings.world_path is not None:
        return load_world_from_file(
            settings.world_path, strict_reachability=settings.strict_reachability
        )
    return load_default_world(strict_reachability=settings.strict_reachability)


def build_engine(
    settings: NavigatorSettings | None = None,
    *,
    world: WorldGraph | None = None,
) -> NavigationEngine:
    """Assemble a :class:`NavigationEngine` from ``settings``."""

    resolved = settings or NavigatorSettings.from_env()
    graph = world if world is not None else load_world(resolved)
    cache = EnvironmentCache(
        RandomContextGenerator(seed=resolved.environment_seed),
        window_seconds=resolved.window_seconds,
    )
    sessions = SessionState(graph.start, history_limit=resolved.history_limit)
    return NavigationEngine(graph, cache=cache, sessions=sessions)


__all__ = ["NavigatorSettings", "build_engine", "load_world"]
