"""Time-windowed cache of environment contexts keyed by location."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Tuple

from .environment import ContextGenerator, EnvironmentContext, RandomContextGenerator
from .errors import ContextComputationError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60

CacheKey = Tuple[str, int]


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so window arithmetic is unambiguous."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class CacheEntry:
    """A computed context together with the span it remains valid for."""

    context: EnvironmentContext
    computed_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class EnvironmentCache:
    """Produce and cache an :class:`EnvironmentContext` per location and window.

    Time is quantised into fixed-length windows. Within a window the first
    request for a location computes its context and every later request
    receives that same value. Fills are single-writer per key: concurrent
    first requests for one ``(location, window)`` wait on a per-key lock and
    observe the winner's value. Entries for older windows of a location are
    dropped when a newer window is filled; :meth:`sweep` clears expired
    entries for locations that are never revisited.
    """

    def __init__(
        self,
        generator: ContextGenerator | None = None,
        *,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")

        self.window_seconds = window_seconds
        self._generator = (
            generator if generator is not None else RandomContextGenerator()
        )
        self._entries: Dict[str, Dict[int, CacheEntry]] = {}
        self._fill_locks: Dict[CacheKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def generator(self) -> ContextGenerator:
        return self._generator

    @property
    def stats(self) -> CacheStats:
        with self._registry_lock:
            return CacheStats(self._hits, self._misses, self._evictions)

    def window_for(self, now: datetime) -> int:
        """Return the identifier of the window containing ``now``."""

        return int(ensure_aware(now).timestamp() // self.window_seconds)

    def window_bounds(
        self, window: int, *, tz: tzinfo | None = None
    ) -> Tuple[datetime, datetime]:
        """Return the ``[start, end)`` span covered by ``window``."""

        start = datetime.fromtimestamp(
            window * self.window_seconds, tz=tz or timezone.utc
        )
        return start, start + timedelta(seconds=self.window_seconds)

    def get(self, location_id: str, now: datetime) -> EnvironmentContext:
        """Return the context of ``location_id`` for the window holding ``now``.

        Raises:
            ContextComputationError: If drawing a fresh context fails. Nothing
                is cached in that case, so the call can simply be retried.
        """

        moment = ensure_aware(now)
        window = self.window_for(moment)

        entry = self._lookup(location_id, window)
        if entry is not None:
            logger.debug("Environment cache hit for %s (window %d)", location_id, window)
            return entry.context

        lock = self._fill_lock(location_id, window)
        try:
            with lock:
                entry = self._lookup(location_id, window)
                if entry is not None:
                    return entry.context

                logger.debug(
                    "Environment cache miss for %s (window %d)", location_id, window
                )
                with self._registry_lock:
                    self._misses += 1
                start, end = self.window_bounds(window, tz=moment.tzinfo)
                try:
                    context = self._generator.generate(location_id, window, start)
                except Exception as exc:
                    raise ContextComputationError(location_id, window, str(exc)) from exc

                context = replace(context, window=window, computed_at=moment)
                entry = self._store(
                    location_id, window, CacheEntry(context, moment, end), overwrite=False
                )
        finally:
            self._release_fill_lock(location_id, window, lock)
        return entry.context

    def put(
        self, location_id: str, now: datetime, context: EnvironmentContext
    ) -> EnvironmentContext:
        """Force the context of ``location_id`` for the window holding ``now``.

        Used by content tooling and tests to pin a known value; the forced
        value expires with the window like any computed one.
        """

        moment = ensure_aware(now)
        window = self.window_for(moment)
        _, end = self.window_bounds(window, tz=moment.tzinfo)
        pinned = replace(context, window=window, computed_at=moment)
        lock = self._fill_lock(location_id, window)
        try:
            with lock:
                self._store(location_id, window, CacheEntry(pinned, moment, end))
        finally:
            self._release_fill_lock(location_id, window, lock)
        logger.debug("Pinned environment for %s (window %d)", location_id, window)
        return pinned

    def peek(self, location_id: str, now: datetime) -> CacheEntry | None:
        """Return the cached entry for the active window without computing."""

        window = self.window_for(now)
        with self._registry_lock:
            return self._entries.get(location_id, {}).get(window)

    def sweep(self, now: datetime) -> int:
        """Drop every entry whose window has fully elapsed.

        Returns:
            The number of entries removed.
        """

        moment = ensure_aware(now)
        removed = 0
        with self._registry_lock:
            for location_id in list(self._entries):
                windows = self._entries[location_id]
                for window in [w for w, entry in windows.items() if entry.expires_at <= moment]:
                    del windows[window]
                    removed += 1
                if not windows:
                    del self._entries[location_id]
            self._evictions += removed

        if removed:
            logger.debug("Swept %d expired environment entries", removed)
        return removed

    def clear(self) -> None:
        with self._registry_lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._registry_lock:
            return sum(len(windows) for windows in self._entries.values())

    def _fill_lock(self, location_id: str, window: int) -> threading.Lock:
        with self._registry_lock:
            return self._fill_locks.setdefault((location_id, window), threading.Lock())

    def _release_fill_lock(
        self, location_id: str, window: int, lock: threading.Lock
    ) -> None:
        with self._registry_lock:
            if self._fill_locks.get((location_id, window)) is lock:
                del self._fill_locks[(location_id, window)]

    def _lookup(self, location_id: str, window: int) -> CacheEntry | None:
        with self._registry_lock:
            entry = self._entries.get(location_id, {}).get(window)
            if entry is not None:
                self._hits += 1
            return entry

    def _store(
        self,
        location_id: str,
        window: int,
        entry: CacheEntry,
        *,
        overwrite: bool = True,
    ) -> CacheEntry:
        """Record ``entry`` and return the entry now held for the window.

        Without ``overwrite`` an entry stored first by a concurrent fill wins.
        """

        with self._registry_lock:
            windows = self._entries.setdefault(location_id, {})
            existing = windows.get(window)
            if existing is not None and not overwrite:
                return existing
            superseded = [w for w in windows if w < window]
            for old_window in superseded:
                del windows[old_window]
            windows[window] = entry
            self._evictions += len(superseded)
            return entry


__all__ = [
    "DEFAULT_WINDOW_SECONDS",
    "CacheEntry",
    "CacheStats",
    "EnvironmentCache",
    "ensure_aware",
]
