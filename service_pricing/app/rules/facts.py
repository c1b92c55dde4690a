"""
Fact base for a single pricing run.

A fact base is an immutable snapshot of the request inputs (selected bundle,
destination, requested duration, ...). Conditions and event parameters read
from it; nothing writes to it. Blocks may publish *derived* facts, which
produce a new fact base layered over the original.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Union


class _Absent:
    """Sentinel for a fact (or path segment) that does not exist."""

    _instance: Optional["_Absent"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class Value:
    """Literal operand."""
    value: Any


@dataclass(frozen=True)
class FactRef:
    """Operand that reads a fact (optionally a field inside it)."""
    fact: str
    path: Optional[str] = None


Operand = Union[Value, FactRef]


def split_path(path: Optional[str]) -> List[str]:
    """Split a JSON-pointer-like path into segments.

    Accepts ``$.a.b``, ``/a/b`` and ``a.b``; ``$``, ``/`` and empty mean the
    whole value.
    """
    if not path:
        return []
    path = path.strip()
    if path.startswith("$"):
        path = path[1:].lstrip(".")
        return [segment for segment in path.split(".") if segment]
    if path.startswith("/"):
        return [
            segment.replace("~1", "/").replace("~0", "~")
            for segment in path[1:].split("/")
            if segment
        ]
    return [segment for segment in path.split(".") if segment]


def resolve_path(value: Any, path: Optional[str]) -> Any:
    """Walk ``path`` into ``value``; any missing segment yields ABSENT."""
    for segment in split_path(path):
        if isinstance(value, Mapping):
            value = value[segment] if segment in value else ABSENT
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and segment.isdigit():
            index = int(segment)
            value = value[index] if index < len(value) else ABSENT
        else:
            return ABSENT
        if value is ABSENT:
            return ABSENT
    return value


class FactBase(Mapping[str, Any]):
    """Read-only facts supplied for one evaluation, plus derived facts."""

    def __init__(self, facts: Mapping[str, Any], derived: Optional[Mapping[str, Any]] = None):
        self._facts = MappingProxyType(dict(facts))
        self._derived = MappingProxyType(dict(derived or {}))

    def get_fact(self, name: str, path: Optional[str] = None) -> Any:
        if name in self._derived:
            value = self._derived[name]
        elif name in self._facts:
            value = self._facts[name]
        else:
            return ABSENT
        return resolve_path(value, path)

    def derive(self, name: str, value: Any) -> "FactBase":
        """Return a new fact base with ``name`` published as a derived fact."""
        if name in self._facts:
            raise ValueError(f"Fact '{name}' is supplied by the request and cannot be overridden")
        derived = dict(self._derived)
        derived[name] = value
        return FactBase(self._facts, derived)

    @property
    def derived_facts(self) -> Mapping[str, Any]:
        return self._derived

    def __getitem__(self, name: str) -> Any:
        value = self.get_fact(name)
        if value is ABSENT:
            raise KeyError(name)
        return value

    def __iter__(self) -> Iterator[str]:
        yield from self._facts
        for name in self._derived:
            if name not in self._facts:
                yield name

    def __len__(self) -> int:
        return len(set(self._facts) | set(self._derived))

    def __repr__(self) -> str:
        return f"FactBase(facts={dict(self._facts)!r}, derived={dict(self._derived)!r})"


def resolve_operand(operand: Operand, facts: FactBase) -> Any:
    """Resolve a literal or fact reference against the fact base."""
    if isinstance(operand, FactRef):
        return facts.get_fact(operand.fact, operand.path)
    if isinstance(operand, Value):
        return operand.value
    raise TypeError(f"Unsupported operand: {operand!r}")
