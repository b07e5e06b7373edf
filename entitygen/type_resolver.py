"""Classify declared property types against the table of known entities.

Resolution rules:
  - a bare, unparameterized name found in the entity table -> EntityRef
  - a list-family head (list, List, Sequence, tuple[T, ...]) -> ListOf
  - a map-family head (dict, Dict, Mapping, MutableMapping) -> MapOf
  - any other parameterized head (Optional, set, unions) -> OtherParameterized
  - everything else -> Opaque

List and map heads are recognised by their import-resolved qualified name,
so ``from typing import List as L; L[User]`` is still a list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Union

from .errors import SpecError
from .ir import ImportRef
from .model import DeclaredType, EntitySpec

logger = logging.getLogger(__name__)

LIST_TYPES = frozenset({
    "builtins.list",
    "typing.List",
    "typing.Sequence",
    "typing.MutableSequence",
    "collections.abc.Sequence",
    "collections.abc.MutableSequence",
})

TUPLE_TYPES = frozenset({"builtins.tuple", "typing.Tuple"})

MAP_TYPES = frozenset({
    "builtins.dict",
    "typing.Dict",
    "typing.Mapping",
    "typing.MutableMapping",
    "collections.abc.Mapping",
    "collections.abc.MutableMapping",
})

# Concrete container built on read for each container family
CONCRETE_CONTAINERS = {
    "list": "list",
    "map": "dict",
}


@dataclass(frozen=True)
class Opaque:
    """A leaf type copied by reference."""
    declared: DeclaredType

    def render(self) -> str:
        return self.declared.text


@dataclass(frozen=True)
class EntityRef:
    """A reference to a generated entity class."""
    name: str
    module: str

    @property
    def qualified(self) -> str:
        return f"{self.module}.{self.name}"

    @property
    def import_ref(self) -> ImportRef:
        return ImportRef(self.module, self.name)

    def render(self) -> str:
        return self.name


@dataclass(frozen=True)
class ListOf:
    declared: DeclaredType
    elem: ResolvedType
    frozen: bool = False

    def render(self) -> str:
        if self.frozen:
            return f"{self.declared.raw}[{self.elem.render()}, ...]"
        return f"{self.declared.raw}[{self.elem.render()}]"

    def render_concrete(self) -> str:
        return f"{CONCRETE_CONTAINERS['list']}[{self.elem.render()}]"


@dataclass(frozen=True)
class MapOf:
    declared: DeclaredType
    key: ResolvedType
    value: ResolvedType

    def render(self) -> str:
        return f"{self.declared.raw}[{self.key.render()}, {self.value.render()}]"

    def render_concrete(self) -> str:
        return f"{CONCRETE_CONTAINERS['map']}[{self.key.render()}, {self.value.render()}]"


@dataclass(frozen=True)
class OtherParameterized:
    """A parameterized type passed through unchanged by put and get."""
    declared: DeclaredType
    args: tuple[ResolvedType, ...]

    def render(self) -> str:
        if self.declared.raw == "|":
            return " | ".join(a.render() for a in self.args)
        return f"{self.declared.raw}[{', '.join(a.render() for a in self.args)}]"


ResolvedType = Union[Opaque, EntityRef, ListOf, MapOf, OtherParameterized]


class EntityTypeTable:
    """Generated simple name -> entity reference, built once per run."""

    def __init__(self) -> None:
        self._entries: dict[str, EntityRef] = {}

    def register(self, spec: EntitySpec) -> EntityRef:
        name = spec.generated_name
        existing = self._entries.get(name)
        if existing is not None:
            raise SpecError.invalid(
                spec.spec_name,
                f"generated class {name} is already produced by {existing.module}",
                spec.path,
                spec.lineno,
            )
        ref = EntityRef(name, spec.generated_module)
        self._entries[name] = ref
        return ref

    def lookup(self, name: str) -> EntityRef | None:
        return self._entries.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[EntityRef]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


def resolve(declared: DeclaredType, table: EntityTypeTable, spec_name: str = "-") -> ResolvedType:
    """Resolve one declared type against the entity table."""
    if not declared.args:
        if declared.text == declared.raw and not declared.is_dotted:
            ref = table.lookup(declared.raw)
            if ref is not None:
                return ref
        return Opaque(declared)

    if declared.qualified in LIST_TYPES and len(declared.args) == 1:
        return ListOf(declared, resolve(declared.args[0], table, spec_name))
    if (
        declared.qualified in TUPLE_TYPES
        and len(declared.args) == 2
        and declared.args[1].raw == "..."
    ):
        return ListOf(declared, resolve(declared.args[0], table, spec_name), frozen=True)
    if declared.qualified in MAP_TYPES and len(declared.args) == 2:
        return MapOf(
            declared,
            resolve(declared.args[0], table, spec_name),
            resolve(declared.args[1], table, spec_name),
        )

    args = tuple(resolve(arg, table, spec_name) for arg in declared.args)
    resolved = OtherParameterized(declared, args)
    if any(contains_entity(a) for a in args):
        logger.warning(
            "%s holds entities inside %s; they are stored as part of the composite only",
            declared.text, declared.raw, extra={"spec": spec_name},
        )
    return resolved


def contains_entity(resolved: ResolvedType) -> bool:
    """Whether put/get must walk into this type.

    Entities nested in OtherParameterized positions are passed through and
    do not count.
    """
    if isinstance(resolved, EntityRef):
        return True
    if isinstance(resolved, ListOf):
        return contains_entity(resolved.elem)
    if isinstance(resolved, MapOf):
        return contains_entity(resolved.key) or contains_entity(resolved.value)
    return False


def entity_refs(resolved: ResolvedType) -> Iterator[EntityRef]:
    """Every entity reference in the type, including pass-through positions."""
    if isinstance(resolved, EntityRef):
        yield resolved
    elif isinstance(resolved, ListOf):
        yield from entity_refs(resolved.elem)
    elif isinstance(resolved, MapOf):
        yield from entity_refs(resolved.key)
        yield from entity_refs(resolved.value)
    elif isinstance(resolved, OtherParameterized):
        for arg in resolved.args:
            yield from entity_refs(arg)


def local_names(resolved: ResolvedType) -> Iterator[str]:
    """Non-entity names the rendered type refers to."""
    if isinstance(resolved, Opaque):
        yield from resolved.declared.names
    elif isinstance(resolved, EntityRef):
        return
    else:
        raw = resolved.declared.raw
        if raw != "|":
            yield raw.split(".")[0]
        children: tuple[ResolvedType, ...]
        if isinstance(resolved, ListOf):
            children = (resolved.elem,)
        elif isinstance(resolved, MapOf):
            children = (resolved.key, resolved.value)
        else:
            children = resolved.args
        for child in children:
            yield from local_names(child)
