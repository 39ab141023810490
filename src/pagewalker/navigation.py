"""Request orchestration: viewing locations and applying transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Tuple

from .environment import EnvironmentContext
from .environment_cache import EnvironmentCache
from .errors import GuardRejectedError, NotFoundError, TransitionError
from .session_state import Clock, SessionState, utc_now
from .world_graph import Location, WorldGraph

logger = logging.getLogger(__name__)

RESET_NOTICE = (
    "The place you were standing no longer exists. "
    "You find yourself back at the beginning."
)


class RejectionReason(str, Enum):
    """Why an action submission did not move the session."""

    UNKNOWN_TRANSITION = "unknown_transition"
    GUARD_REJECTED = "guard_rejected"


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    label: str
    message: str

    @classmethod
    def from_error(cls, error: TransitionError) -> "Rejection":
        if isinstance(error, GuardRejectedError):
            reason = RejectionReason.GUARD_REJECTED
        else:
            reason = RejectionReason.UNKNOWN_TRANSITION
        return cls(reason=reason, label=error.label, message=str(error))


@dataclass(frozen=True)
class NavigationResult:
    """Composed ``(location, environment)`` result handed to rendering."""

    session_id: str
    location: Location
    environment: EnvironmentContext
    available: Tuple[str, ...] = ()
    rejected: Rejection | None = None
    notice: str | None = None

    @property
    def moved(self) -> bool:
        return self.rejected is None


class NavigationEngine:
    """Resolve a session's location and apply action submissions.

    Each call runs a short-lived state machine: the session's location is
    loaded (``Idle``), a submitted label is checked against the world graph
    using the pre-transition location's environment (``Validating``), and
    the move is either applied or rejected without touching the session.
    The whole sequence runs under the session's lock, so double submits for
    one session are applied one after the other.
    """

    def __init__(
        self,
        world: WorldGraph,
        *,
        cache: EnvironmentCache | None = None,
        sessions: SessionState | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.world = world
        self.cache = cache if cache is not None else EnvironmentCache()
        self.sessions = (
            sessions
            if sessions is not None
            else SessionState(world.start, clock=clock)
        )
        if self.sessions.start_location != world.start:
            raise ValueError(
                "Session store start location must match the world start "
                f"('{self.sessions.start_location}' != '{world.start}')."
            )
        self._clock = clock or utc_now

    def _locate(self, session_id: str, now: datetime) -> Tuple[Location, str | None]:
        """Return the session's location, repairing stale identifiers."""

        location_id = self.sessions.current(session_id, now=now)
        try:
            return self.world.location(location_id), None
        except NotFoundError:
            logger.warning(
                "Session %s points at missing location '%s'", session_id, location_id
            )
            self.sessions.reset(session_id, now=now)
            return self.world.location(self.world.start), RESET_NOTICE

    def _available(
        self, location: Location, context: EnvironmentContext, session_id: str
    ) -> Tuple[str, ...]:
        flags = self.sessions.flags(session_id)
        return tuple(
            transition.label
            for transition in self.world.available_transitions(
                location.id, context, flags
            )
        )

    def view(self, session_id: str, now: datetime | None = None) -> NavigationResult:
        """Return the session's current location and its environment."""

        moment = now or self._clock()
        with self.sessions.session_lock(session_id) as key:
            location, notice = self._locate(key, moment)
            context = self.cache.get(location.id, moment)
            self.sessions.touch(key, now=moment)
            return NavigationResult(
                session_id=key,
                location=location,
                environment=context,
                available=self._available(location, context, key),
                notice=notice,
            )

    def act(
        self, session_id: str, label: str, now: datetime | None = None
    ) -> NavigationResult:
        """Attempt the transition ``label`` from the session's location.

        Unknown labels and failing guards leave the session untouched and are
        reported through :attr:`NavigationResult.rejected`.

        Raises:
            ContextComputationError: If an environment cannot be computed.
        """

        moment = now or self._clock()
        with self.sessions.session_lock(session_id) as key:
            location, notice = self._locate(key, moment)
            context = self.cache.get(location.id, moment)
            flags = self.sessions.flags(key)

            try:
                transition = self.world.find(location.id, label, context, flags)
            except TransitionError as error:
                logger.warning(
                    "Session %s rejected '%s' at '%s': %s",
                    key,
                    label,
                    location.id,
                    error,
                )
                return NavigationResult(
                    session_id=key,
                    location=location,
                    environment=context,
                    available=self._available(location, context, key),
                    rejected=Rejection.from_error(error),
                    notice=notice,
                )

            target = self.world.location(transition.target)
            target_context = self.cache.get(target.id, moment)
            self.sessions.apply(
                key, target.id, now=moment, set_flags=transition.sets_flags
            )
            logger.info(
                "Session %s moved '%s' -> '%s' via '%s'",
                key,
                location.id,
                target.id,
                transition.label,
            )
            return NavigationResult(
                session_id=key,
                location=target,
                environment=target_context,
                available=self._available(target, target_context, key),
                notice=notice,
            )


__all__ = [
    "RESET_NOTICE",
    "RejectionReason",
    "Rejection",
    "NavigationResult",
    "NavigationEngine",
]
