"""Shared pieces for the planners that turn entity plans into module plans."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol, runtime_checkable

from .config import STORE_PACKAGE
from .ir import ImportRef
from .naming import module_name_for

if TYPE_CHECKING:
    from .context_builder import PlanContext
    from .ir import ModulePlan

ENTITY_BASE = ImportRef("entitygen.core", "Entity")

STORE_READER = "IEntityStoreReader"
STORE_WRITER = "IEntityStoreWriter"
REPOSITORY_READER = "INormalizedEntityRepositoryReader"
REPOSITORY_WRITER = "INormalizedEntityRepositoryWriter"
IN_MEMORY_STORE = "InMemoryEntityStore"
REPOSITORY = "NormalizedEntityRepository"


@runtime_checkable
class Planner(Protocol):
    """Produces the module plans for one kind of generated file."""

    name: str

    def plan(self, context: PlanContext) -> list[ModulePlan]:
        ...


def store_module(class_name: str) -> str:
    """Dotted module holding one of the fixed store classes."""
    return f"{STORE_PACKAGE}.{module_name_for(class_name)}"


def store_import(class_name: str) -> ImportRef:
    return ImportRef(store_module(class_name), class_name)


# Prefixes of the numbered locals in generated method bodies
NUMBERED_LOCALS = ("item", "key", "value", "latest")


class NameAllocator:
    """Hands out locals within one generated method so names never repeat.

    Names already bound in the method (property locals, fixed names such as
    ``dirty``) are passed in as ``taken``; numbered names skip any number
    whose ``item<n>``, ``key<n>``, ``value<n>`` or ``latest<n>`` is taken.
    """

    def __init__(self, taken: Iterable[str] = ()) -> None:
        self._count = 0
        self._taken = set(taken)

    def take(self, name: str) -> str:
        """Claim ``name``, appending underscores until it is free."""
        while name in self._taken:
            name += "_"
        self._taken.add(name)
        return name

    def next(self) -> int:
        while True:
            self._count += 1
            names = {f"{prefix}{self._count}" for prefix in NUMBERED_LOCALS}
            if not names & self._taken:
                self._taken |= names
                return self._count
