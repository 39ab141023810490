"""Guard predicates gating whether a transition may be taken.

Guards form a small closed set of condition variants. Each variant is an
immutable value evaluated by a pure interpreter against the current
:class:`~pagewalker.environment.EnvironmentContext` and the session's flags,
so loaded worlds stay shareable across sessions and serialisable back into
their definition payloads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AbstractSet, Any, Dict, Mapping, Tuple

from .environment import ENUM_FIELDS, NUMERIC_FIELDS, EnvironmentContext
from .errors import InvalidDefinitionError


class Guard(ABC):
    """Base class for transition guard conditions."""

    @abstractmethod
    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        """Return ``True`` when the guarded transition may be taken."""

    @abstractmethod
    def describe(self) -> str:
        """Return a short human readable statement of the requirement."""

    @abstractmethod
    def to_payload(self) -> Dict[str, Any]:
        """Return the definition mapping this guard was parsed from."""


@dataclass(frozen=True)
class EnvironmentEquals(Guard):
    field: str
    value: str

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return context.field_value(self.field) == self.value

    def describe(self) -> str:
        return f"{self.field.replace('_', ' ')} to be {self.value}"

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": "environment", "field": self.field, "equals": self.value}


@dataclass(frozen=True)
class EnvironmentRange(Guard):
    """Numeric field bounded inclusively on either or both ends."""

    field: str
    minimum: float | None = None
    maximum: float | None = None

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        value = float(context.field_value(self.field))
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def describe(self) -> str:
        if self.minimum is not None and self.maximum is not None:
            return f"{self.field} between {self.minimum:g} and {self.maximum:g}"
        if self.minimum is not None:
            return f"{self.field} of at least {self.minimum:g}"
        return f"{self.field} of at most {self.maximum:g}"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": "range", "field": self.field}
        if self.minimum is not None:
            payload["minimum"] = self.minimum
        if self.maximum is not None:
            payload["maximum"] = self.maximum
        return payload


@dataclass(frozen=True)
class EventActive(Guard):
    tag: str

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return context.has_event(self.tag)

    def describe(self) -> str:
        return f"the {self.tag} event"

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": "event", "tag": self.tag}


@dataclass(frozen=True)
class FlagSet(Guard):
    flag: str

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return self.flag in flags

    def describe(self) -> str:
        return f"'{self.flag}'"

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": "flag", "flag": self.flag}


@dataclass(frozen=True)
class AllOf(Guard):
    conditions: Tuple[Guard, ...]

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return all(condition.evaluate(context, flags) for condition in self.conditions)

    def describe(self) -> str:
        return " and ".join(condition.describe() for condition in self.conditions)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": "all",
            "conditions": [condition.to_payload() for condition in self.conditions],
        }


@dataclass(frozen=True)
class AnyOf(Guard):
    conditions: Tuple[Guard, ...]

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return any(condition.evaluate(context, flags) for condition in self.conditions)

    def describe(self) -> str:
        return " or ".join(condition.describe() for condition in self.conditions)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": "any",
            "conditions": [condition.to_payload() for condition in self.conditions],
        }


@dataclass(frozen=True)
class Not(Guard):
    condition: Guard

    def evaluate(
        self, context: EnvironmentContext, flags: AbstractSet[str] = frozenset()
    ) -> bool:
        return not self.condition.evaluate(context, flags)

    def describe(self) -> str:
        return f"not {self.condition.describe()}"

    def to_payload(self) -> Dict[str, Any]:
        return {"kind": "not", "condition": self.condition.to_payload()}


def _require_string(payload: Mapping[str, Any], key: str, *, where: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidDefinitionError(f"{where} must provide a '{key}' string.")
    return value.strip()


def _parse_enum_value(field_name: str, raw: Any, *, where: str) -> str:
    enum_type = ENUM_FIELDS.get(field_name)
    if enum_type is None:
        raise InvalidDefinitionError(
            f"{where} compares unknown environment field '{field_name}'."
        )
    if not isinstance(raw, str):
        raise InvalidDefinitionError(f"{where} must compare against a string value.")
    try:
        return enum_type(raw.strip().lower()).value
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise InvalidDefinitionError(
            f"{where} uses unknown {field_name} '{raw}'. Expected one of: {allowed}."
        ) from exc


def _parse_bound(payload: Mapping[str, Any], key: str, *, where: str) -> float | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise InvalidDefinitionError(f"{where} must use a number for '{key}'.")
    return float(raw)


def _parse_conditions(raw: Any, *, where: str) -> Tuple[Guard, ...]:
    if not isinstance(raw, list) or not raw:
        raise InvalidDefinitionError(
            f"{where} must define 'conditions' as a non-empty list."
        )
    return tuple(
        parse_guard(entry, where=f"{where} condition #{index}")
        for index, entry in enumerate(raw)
    )


def parse_guard(payload: Any, *, where: str = "Guard") -> Guard:
    """Convert a guard definition mapping into a :class:`Guard`.

    Besides the tagged forms a shorthand of a single enum field mapping such
    as ``{"weather": "stormy"}`` is accepted.

    Raises:
        InvalidDefinitionError: If the definition is malformed.
    """

    if not isinstance(payload, Mapping):
        raise InvalidDefinitionError(f"{where} must be an object definition.")

    kind = payload.get("kind")
    if kind is None:
        if len(payload) == 1:
            ((field_name, raw_value),) = payload.items()
            if field_name in ENUM_FIELDS:
                return EnvironmentEquals(
                    field_name, _parse_enum_value(field_name, raw_value, where=where)
                )
        raise InvalidDefinitionError(f"{where} must declare a 'kind'.")

    if kind == "environment":
        field_name = _require_string(payload, "field", where=where)
        return EnvironmentEquals(
            field_name,
            _parse_enum_value(field_name, payload.get("equals"), where=where),
        )

    if kind == "range":
        field_name = _require_string(payload, "field", where=where)
        if field_name not in NUMERIC_FIELDS:
            raise InvalidDefinitionError(
                f"{where} ranges over non-numeric field '{field_name}'."
            )
        minimum = _parse_bound(payload, "minimum", where=where)
        maximum = _parse_bound(payload, "maximum", where=where)
        if minimum is None and maximum is None:
            raise InvalidDefinitionError(
                f"{where} must define 'minimum', 'maximum' or both."
            )
        if minimum is not None and maximum is not None and minimum > maximum:
            raise InvalidDefinitionError(f"{where} has 'minimum' above 'maximum'.")
        return EnvironmentRange(field_name, minimum, maximum)

    if kind == "event":
        return EventActive(_require_string(payload, "tag", where=where))

    if kind == "flag":
        return FlagSet(_require_string(payload, "flag", where=where))

    if kind == "all":
        return AllOf(_parse_conditions(payload.get("conditions"), where=where))

    if kind == "any":
        return AnyOf(_parse_conditions(payload.get("conditions"), where=where))

    if kind == "not":
        return Not(parse_guard(payload.get("condition"), where=f"{where} negation"))

    raise InvalidDefinitionError(f"{where} uses unknown kind '{kind}'.")


__all__ = [
    "Guard",
    "EnvironmentEquals",
    "EnvironmentRange",
    "EventActive",
    "FlagSet",
    "AllOf",
    "AnyOf",
    "Not",
    "parse_guard",
]
