"""Core package for the page navigation engine."""

from .environment import (
    ContextGenerator,
    EnvironmentContext,
    RandomContextGenerator,
    Season,
    TimeOfDay,
    Weather,
)
from .environment_cache import CacheEntry, CacheStats, EnvironmentCache
from .errors import (
    ContextComputationError,
    DanglingTransitionError,
    DuplicateLocationError,
    GuardRejectedError,
    InvalidDefinitionError,
    InvalidTransitionError,
    LoadError,
    MissingStartError,
    NotFoundError,
    TransitionError,
    UnreachableLocationError,
)
from .guards import Guard, parse_guard
from .navigation import (
    NavigationEngine,
    NavigationResult,
    Rejection,
    RejectionReason,
)
from .session_state import SessionState, UserSession
from .settings import NavigatorSettings, build_engine
from .world_graph import (
    LoadWarning,
    Location,
    Transition,
    WorldGraph,
    load_default_world,
    load_world_from_file,
)

__all__ = [
    "WorldGraph",
    "Location",
    "Transition",
    "LoadWarning",
    "load_world_from_file",
    "load_default_world",
    "Guard",
    "parse_guard",
    "EnvironmentContext",
    "ContextGenerator",
    "RandomContextGenerator",
    "Season",
    "Weather",
    "TimeOfDay",
    "EnvironmentCache",
    "CacheEntry",
    "CacheStats",
    "SessionState",
    "UserSession",
    "NavigationEngine",
    "NavigationResult",
    "Rejection",
    "RejectionReason",
    "NavigatorSettings",
    "build_engine",
    "LoadError",
    "InvalidDefinitionError",
    "DanglingTransitionError",
    "DuplicateLocationError",
    "MissingStartError",
    "UnreachableLocationError",
    "NotFoundError",
    "TransitionError",
    "InvalidTransitionError",
    "GuardRejectedError",
    "ContextComputationError",
]
