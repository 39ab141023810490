"""Per-session traversal state keyed by an opaque session identifier."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Iterator, List, Set

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_label(value: str, field_name: str) -> str:
    """Strip and validate identifiers used by the session store."""

    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")

    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must be a non-empty string")
    return stripped


@dataclass
class UserSession:
    """Server-held record of one player's position.

    * ``location`` – identifier of the location the player currently occupies.
    * ``history`` – the most recently visited identifiers, oldest first.
    * ``flags`` – markers raised by transitions and read by guards.
    """

    session_id: str
    location: str
    created_at: datetime
    last_active: datetime
    history: List[str] = field(default_factory=list)
    flags: Set[str] = field(default_factory=set)

    def copy(self) -> "UserSession":
        return UserSession(
            session_id=self.session_id,
            location=self.location,
            created_at=self.created_at,
            last_active=self.last_active,
            history=list(self.history),
            flags=set(self.flags),
        )


class SessionState:
    """Thread-safe store mapping session identifiers to :class:`UserSession`.

    Every session owns a re-entrant lock. ``current``/``apply`` for one
    identifier are serialised on that lock, while different sessions never
    contend with one another. The registry lock is held only long enough to
    find or create a per-session lock or record. A session's lock is dropped
    together with its record.

    The store never expires sessions itself; the transport collaborator
    calls :meth:`discard` when a session times out. Unknown identifiers are
    always treated as new sessions.
    """

    def __init__(
        self,
        start_location: str,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Clock | None = None,
    ) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")

        self.start_location = _validate_label(start_location, "start_location")
        self.history_limit = history_limit
        self._clock = clock or utc_now
        self._sessions: Dict[str, UserSession] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[str]:
        """Hold the lock of ``session_id`` for a multi-step operation.

        Yields the normalised identifier. A lock dropped by :meth:`discard`
        while this thread waited on it is abandoned for the registered one.
        """

        key = _validate_label(session_id, "session_id")
        while True:
            lock = self._lock_for(key)
            lock.acquire()
            with self._registry_lock:
                registered = self._locks.get(key)
            if registered is lock:
                break
            lock.release()
        try:
            yield key
        finally:
            lock.release()

    def _get_or_create(self, key: str, now: datetime) -> UserSession:
        with self._registry_lock:
            session = self._sessions.get(key)
            if session is None:
                session = UserSession(
                    session_id=key,
                    location=self.start_location,
                    created_at=now,
                    last_active=now,
                    history=[self.start_location],
                )
                self._sessions[key] = session
                logger.debug("Initialised session %s at '%s'", key, self.start_location)
            return session

    def current(self, session_id: str, *, now: datetime | None = None) -> str:
        """Return the session's location, initialising unseen sessions at start."""

        with self.session_lock(session_id) as key:
            return self._get_or_create(key, now or self._clock()).location

    def flags(self, session_id: str) -> frozenset[str]:
        with self.session_lock(session_id) as key:
            return frozenset(self._get_or_create(key, self._clock()).flags)

    def apply(
        self,
        session_id: str,
        new_location_id: str,
        *,
        now: datetime | None = None,
        set_flags: Iterable[str] = (),
    ) -> UserSession:
        """Move the session to ``new_location_id``.

        The move overwrites the location, appends it to the bounded history,
        raises ``set_flags`` and refreshes the last-activity timestamp as one
        atomic step for this session.
        """

        location = _validate_label(new_location_id, "location")
        with self.session_lock(session_id) as key:
            moment = now or self._clock()
            session = self._get_or_create(key, moment)
            session.location = location
            session.history.append(location)
            overflow = len(session.history) - self.history_limit
            if overflow > 0:
                del session.history[:overflow]
            session.flags.update(_validate_label(flag, "flag") for flag in set_flags)
            session.last_active = moment
            return session.copy()

    def touch(self, session_id: str, *, now: datetime | None = None) -> None:
        """Refresh the last-activity timestamp without moving."""

        with self.session_lock(session_id) as key:
            moment = now or self._clock()
            self._get_or_create(key, moment).last_active = moment

    def reset(self, session_id: str, *, now: datetime | None = None) -> UserSession:
        """Return the session to the start location, clearing history and flags."""

        with self.session_lock(session_id) as key:
            moment = now or self._clock()
            session = self._get_or_create(key, moment)
            session.location = self.start_location
            session.history = [self.start_location]
            session.flags = set()
            session.last_active = moment
            logger.warning("Session %s reset to '%s'", key, self.start_location)
            return session.copy()

    def snapshot(self, session_id: str) -> UserSession:
        """Return a detached copy of the session record.

        Raises:
            KeyError: If the session has never been initialised.
        """

        with self.session_lock(session_id) as key:
            with self._registry_lock:
                session = self._sessions.get(key)
                if session is None:
                    self._locks.pop(key, None)
            if session is None:
                raise KeyError(f"Session '{session_id}' does not exist")
            return session.copy()

    def discard(self, session_id: str) -> None:
        """Forget the session; a later request starts over at the beginning."""

        with self.session_lock(session_id) as key:
            with self._registry_lock:
                self._sessions.pop(key, None)
                self._locks.pop(key, None)

    def list_sessions(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        if not isinstance(session_id, str):
            return False
        with self._registry_lock:
            return session_id.strip() in self._sessions

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._sessions)


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "SessionState",
    "UserSession",
    "utc_now",
]
