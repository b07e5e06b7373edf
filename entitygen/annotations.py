"""Markers used in entity spec declarations.

Spec modules are read by the generator with ``ast`` and never imported, so
these markers only need to exist for readers and type checkers:

    @entity_spec(name="Message")
    class MessageSpec:
        message_id: Annotated[int, EntityId]
        body: str
        sender: User
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T", bound=type)


@dataclass(frozen=True)
class EntitySpecInfo:
    """Arguments given to ``@entity_spec``."""
    name: str
    class_name: str = ""


class EntityId:
    """Marks the identifier field of a spec: ``Annotated[int, EntityId]``."""


def entity_spec(name: str, class_name: str = "") -> Callable[[T], T]:
    """Declare a class as an entity spec.

    ``name`` is the entity's logical name. The generated class is called
    ``class_name`` when given, otherwise ``name``, with its first character
    upper-cased.
    """
    def decorate(cls: T) -> T:
        cls.__entity_spec__ = EntitySpecInfo(name=name, class_name=class_name)
        return cls
    return decorate
