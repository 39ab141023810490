"""Exception hierarchy shared by the navigation core."""

from __future__ import annotations

from typing import Sequence


class LoadError(ValueError):
    """Base class for structural problems detected while loading a world."""


class InvalidDefinitionError(LoadError):
    """Raised when a location or transition definition is malformed."""


class DanglingTransitionError(LoadError):
    """Raised when a transition targets a location that was never defined."""

    def __init__(self, location_id: str, label: str, target: str) -> None:
        super().__init__(
            f"Location '{location_id}' transition '{label}' targets unknown location '{target}'."
        )
        self.location_id = location_id
        self.label = label
        self.target = target


class DuplicateLocationError(LoadError):
    """Raised when two definitions share the same identifier."""

    def __init__(self, location_id: str) -> None:
        super().__init__(f"Location '{location_id}' is defined more than once.")
        self.location_id = location_id


class MissingStartError(LoadError):
    """Raised when the configured start location does not exist."""

    def __init__(self, start_id: str) -> None:
        super().__init__(f"Start location '{start_id}' is not defined.")
        self.start_id = start_id


class UnreachableLocationError(LoadError):
    """Raised for unreachable locations when strict reachability is enabled."""

    def __init__(self, location_ids: Sequence[str]) -> None:
        formatted = ", ".join(location_ids)
        super().__init__(f"Locations unreachable from start: {formatted}.")
        self.location_ids = tuple(location_ids)


class NotFoundError(LookupError):
    """Raised when a location identifier is not part of the world graph."""

    def __init__(self, location_id: str) -> None:
        super().__init__(f"Location '{location_id}' does not exist.")
        self.location_id = location_id

    def __str__(self) -> str:
        return str(self.args[0])


class TransitionError(LookupError):
    """Base class for request-time transition failures."""

    def __init__(self, location_id: str, label: str, message: str) -> None:
        super().__init__(message)
        self.location_id = location_id
        self.label = label

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidTransitionError(TransitionError):
    """Raised when no transition with the requested label leaves a location."""

    def __init__(
        self, location_id: str, label: str, available: Sequence[str] = ()
    ) -> None:
        self.available = tuple(available)
        if self.available:
            hint = f" Try one of: {', '.join(self.available)}."
        else:
            hint = " There is no way onward from here."
        super().__init__(
            location_id,
            label,
            f"You're not sure how to '{label}' from here.{hint}",
        )


class GuardRejectedError(TransitionError):
    """Raised when a transition exists but its guard currently fails."""

    def __init__(self, location_id: str, label: str, requirement: str) -> None:
        self.requirement = requirement
        super().__init__(
            location_id,
            label,
            f"You can't '{label}' right now: requires {requirement}.",
        )


class ContextComputationError(RuntimeError):
    """Raised when an environment context cannot be produced for a window."""

    def __init__(self, location_id: str, window: int, reason: str) -> None:
        super().__init__(
            f"Failed to compute environment for '{location_id}' in window {window}: {reason}"
        )
        self.location_id = location_id
        self.window = window


__all__ = [
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
