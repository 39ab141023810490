"""The immutable graph of locations and labelled transitions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import AbstractSet, Any, Iterator, Literal, Mapping, Sequence, Tuple

from .environment import EnvironmentContext
from .errors import (
    DanglingTransitionError,
    DuplicateLocationError,
    GuardRejectedError,
    InvalidDefinitionError,
    InvalidTransitionError,
    MissingStartError,
    NotFoundError,
    UnreachableLocationError,
)
from .guards import Guard, parse_guard

logger = logging.getLogger(__name__)

WarningKind = Literal["unreachable", "dead_end"]


def _validate_text(value: Any, *, field_name: str) -> str:
    """Validate and normalise text fields used by location definitions."""

    if not isinstance(value, str):
        raise InvalidDefinitionError(
            f"{field_name} must be a string, got {type(value).__name__}"
        )

    stripped = value.strip()
    if not stripped:
        raise InvalidDefinitionError(f"{field_name} must be a non-empty string")
    return stripped


def _coerce_string_list(value: Any, *, error_message: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list) and all(isinstance(entry, str) for entry in value):
        return tuple(entry.strip() for entry in value if entry.strip())
    raise InvalidDefinitionError(error_message)


@dataclass(frozen=True)
class Transition:
    """A labelled, optionally guarded edge to another location."""

    label: str
    target: str
    guard: Guard | None = None
    description: str | None = None
    sets_flags: Tuple[str, ...] = ()

    def is_open(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        """Return ``True`` when the guard (if any) passes."""

        return self.guard is None or self.guard.evaluate(context, flags)


@dataclass(frozen=True)
class Location:
    """A page the player can occupy."""

    id: str
    title: str
    template: str
    transitions: Tuple[Transition, ...] = ()
    description: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "transitions", tuple(self.transitions))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_dead_end(self) -> bool:
        return not self.transitions

    def labels(self) -> Tuple[str, ...]:
        return tuple(transition.label for transition in self.transitions)

    def transition(self, label: str) -> Transition | None:
        for transition in self.transitions:
            if transition.label == label:
                return transition
        return None


@dataclass(frozen=True)
class LoadWarning:
    """Content problem worth flagging that does not prevent loading."""

    kind: WarningKind
    location_id: str
    message: str


def _parse_transition(
    location_id: str, index: int, payload: Any
) -> Transition:
    where = f"Transition #{index} in location '{location_id}'"
    if not isinstance(payload, Mapping):
        raise InvalidDefinitionError(f"{where} must be an object definition.")

    label = _validate_text(payload.get("label"), field_name=f"{where} label")
    target = _validate_text(payload.get("target"), field_name=f"{where} target")

    raw_guard = payload.get("guard")
    guard = None
    if raw_guard is not None:
        guard = parse_guard(raw_guard, where=f"Guard on '{label}' in location '{location_id}'")

    description = payload.get("description")
    if description is not None and not isinstance(description, str):
        raise InvalidDefinitionError(f"{where} must use a string 'description'.")

    sets_flags = _coerce_string_list(
        payload.get("sets_flags"),
        error_message=f"{where} must define 'sets_flags' as a list of strings.",
    )

    return Transition(
        label=label,
        target=target,
        guard=guard,
        description=description.strip() if description else None,
        sets_flags=sets_flags,
    )


def _parse_location(index: int, payload: Any) -> Location:
    if not isinstance(payload, Mapping):
        raise InvalidDefinitionError(
            f"Location definition #{index} must be an object definition."
        )

    location_id = _validate_text(
        payload.get("id"), field_name=f"Location definition #{index} id"
    )
    title = _validate_text(
        payload.get("title", location_id), field_name=f"Location '{location_id}' title"
    )
    template = _validate_text(
        payload.get("template", f"{location_id}.html"),
        field_name=f"Location '{location_id}' template",
    )

    description = payload.get("description", "")
    if not isinstance(description, str):
        raise InvalidDefinitionError(
            f"Location '{location_id}' must use a string 'description'."
        )

    raw_metadata = payload.get("metadata") or {}
    if not isinstance(raw_metadata, Mapping) or not all(
        isinstance(key, str) and isinstance(value, str)
        for key, value in raw_metadata.items()
    ):
        raise InvalidDefinitionError(
            f"Location '{location_id}' metadata must map strings to strings."
        )

    raw_transitions = payload.get("transitions", [])
    if not isinstance(raw_transitions, list):
        raise InvalidDefinitionError(
            f"Location '{location_id}' must define a list of transitions."
        )

    transitions: list[Transition] = []
    seen_labels: set[str] = set()
    for transition_index, transition_payload in enumerate(raw_transitions):
        transition = _parse_transition(location_id, transition_index, transition_payload)
        if transition.label in seen_labels:
            raise InvalidDefinitionError(
                f"Location '{location_id}' defines duplicate transition label '{transition.label}'."
            )
        seen_labels.add(transition.label)
        transitions.append(transition)

    return Location(
        id=location_id,
        title=title,
        template=template,
        transitions=tuple(transitions),
        description=description.strip(),
        metadata=dict(raw_metadata),
    )


def _reachable(locations: Mapping[str, Location], start: str) -> frozenset[str]:
    visited: set[str] = set()
    frontier = [start]

    while frontier:
        current = frontier.pop()
        if current in visited:
            continue

        visited.add(current)
        for transition in locations[current].transitions:
            if transition.target not in visited and transition.target in locations:
                frontier.append(transition.target)

    return frozenset(visited)


class WorldGraph:
    """Read-only mapping from location identifier to :class:`Location`.

    Instances are only produced by :meth:`load` (or the helpers built on
    it) and never change afterwards, so a single graph can be shared by
    every request without locking.
    """

    def __init__(
        self,
        locations: Mapping[str, Location],
        start: str,
        warnings: Sequence[LoadWarning] = (),
    ) -> None:
        self._locations: Mapping[str, Location] = MappingProxyType(dict(locations))
        self._start = start
        self._warnings = tuple(warnings)

    @classmethod
    def load(
        cls,
        definitions: Sequence[Mapping[str, Any]],
        *,
        start: str,
        strict_reachability: bool = False,
    ) -> "WorldGraph":
        """Build a graph from a sequence of location definitions.

        Each definition provides ``id``, ``title``, ``template`` (the body
        template reference), optional ``description``/``metadata`` and a
        ``transitions`` list of ``label``/``target``/optional ``guard``
        mappings.

        Raises:
            DuplicateLocationError: Two definitions share an identifier.
            DanglingTransitionError: A transition targets an unknown location.
            MissingStartError: ``start`` is not among the definitions.
            UnreachableLocationError: Only with ``strict_reachability``.
            InvalidDefinitionError: A definition is malformed.
        """

        if isinstance(definitions, (str, bytes)) or not isinstance(
            definitions, Sequence
        ):
            raise InvalidDefinitionError(
                "Location definitions must be provided as a list."
            )

        locations: dict[str, Location] = {}
        for index, payload in enumerate(definitions):
            location = _parse_location(index, payload)
            if location.id in locations:
                raise DuplicateLocationError(location.id)
            locations[location.id] = location

        for location in locations.values():
            for transition in location.transitions:
                if transition.target not in locations:
                    raise DanglingTransitionError(
                        location.id, transition.label, transition.target
                    )

        if start not in locations:
            raise MissingStartError(start)

        warnings: list[LoadWarning] = []
        reachable = _reachable(locations, start)
        unreachable = sorted(
            location_id for location_id in locations if location_id not in reachable
        )
        if unreachable and strict_reachability:
            raise UnreachableLocationError(unreachable)
        for location_id in unreachable:
            warnings.append(
                LoadWarning(
                    kind="unreachable",
                    location_id=location_id,
                    message=f"Location '{location_id}' cannot be reached from '{start}'.",
                )
            )
        for location_id in sorted(locations):
            if locations[location_id].is_dead_end:
                warnings.append(
                    LoadWarning(
                        kind="dead_end",
                        location_id=location_id,
                        message=f"Location '{location_id}' has no outgoing transitions.",
                    )
                )

        for warning in warnings:
            logger.warning(warning.message)
        logger.info(
            "Loaded world with %d locations starting at '%s'", len(locations), start
        )

        return cls(locations, start, warnings)

    @classmethod
    def from_mapping(
        cls, payload: Mapping[str, Any], *, strict_reachability: bool = False
    ) -> "WorldGraph":
        """Load a world document of the form ``{"start": ..., "locations": [...]}``."""

        if not isinstance(payload, Mapping):
            raise InvalidDefinitionError("World documents must be objects.")
        start = _validate_text(payload.get("start"), field_name="World start")
        definitions = payload.get("locations")
        if not isinstance(definitions, list):
            raise InvalidDefinitionError("World documents must list 'locations'.")
        return cls.load(
            definitions, start=start, strict_reachability=strict_reachability
        )

    @property
    def start(self) -> str:
        return self._start

    @property
    def warnings(self) -> Tuple[LoadWarning, ...]:
        return self._warnings

    @property
    def location_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._locations))

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def __iter__(self) -> Iterator[Location]:
        return iter(self._locations.values())

    def location(self, location_id: str) -> Location:
        """Return the location for ``location_id``.

        Raises:
            NotFoundError: If the identifier is unknown.
        """

        try:
            return self._locations[location_id]
        except KeyError as exc:
            raise NotFoundError(location_id) from exc

    def transitions_from(self, location_id: str) -> Tuple[Transition, ...]:
        return self.location(location_id).transitions

    def available_transitions(
        self,
        location_id: str,
        context: EnvironmentContext,
        flags: AbstractSet[str] = frozenset(),
    ) -> Tuple[Transition, ...]:
        """Return the transitions whose guards currently pass."""

        return tuple(
            transition
            for transition in self.transitions_from(location_id)
            if transition.is_open(context, flags)
        )

    def find(
        self,
        location_id: str,
        label: str,
        context: EnvironmentContext,
        flags: AbstractSet[str] = frozenset(),
    ) -> Transition:
        """Return the transition matching ``label`` if it may be taken.

        Raises:
            NotFoundError: If ``location_id`` is unknown.
            InvalidTransitionError: No transition carries ``label``.
            GuardRejectedError: The transition exists but its guard fails.
        """

        location = self.location(location_id)
        transition = location.transition(label.strip())
        if transition is None:
            raise InvalidTransitionError(location_id, label, location.labels())
        if transition.guard is not None and not transition.is_open(context, flags):
            raise GuardRejectedError(location_id, label, transition.guard.describe())
        return transition

    def resolve(
        self,
        location_id: str,
        label: str,
        context: EnvironmentContext,
        flags: AbstractSet[str] = frozenset(),
    ) -> str:
        """Return the target identifier of the transition ``label``.

        Side-effect free; see :meth:`find` for the errors raised.
        """

        return self.find(location_id, label, context, flags).target

    def reachable_from(self, location_id: str) -> frozenset[str]:
        """Return every identifier reachable from ``location_id`` ignoring guards."""

        self.location(location_id)
        return _reachable(self._locations, location_id)


def load_world_from_file(
    path: str | Path, *, strict_reachability: bool = False
) -> WorldGraph:
    """Load a world document from a JSON file on disk."""

    data_path = Path(path)
    with data_path.open("r", encoding="utf-8") as handle:
        try:
            raw_data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise InvalidDefinitionError(
                f"World file '{data_path}' is not valid JSON: {exc}"
            ) from exc

    if not isinstance(raw_data, Mapping):
        raise InvalidDefinitionError("World files must contain an object at the top level.")

    return WorldGraph.from_mapping(raw_data, strict_reachability=strict_reachability)


def load_default_world(*, strict_reachability: bool = False) -> WorldGraph:
    """Read the bundled demo world from the package data directory."""

    data_resource = resources.files("pagewalker.data").joinpath("world.json")
    with data_resource.open("r", encoding="utf-8") as handle:
        raw_data = json.load(handle)

    if not isinstance(raw_data, Mapping):
        raise InvalidDefinitionError("Bundled world must contain an object at the top level.")

    return WorldGraph.from_mapping(raw_data, strict_reachability=strict_reachability)


__all__ = [
    "Location",
    "Transition",
    "LoadWarning",
    "WorldGraph",
    "load_world_from_file",
    "load_default_world",
]
