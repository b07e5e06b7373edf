"""Base class shared by every generated entity."""

from __future__ import annotations

import abc
from typing import Generic, TypeVar

IdT = TypeVar("IdT")


class Entity(abc.ABC, Generic[IdT]):
    """A value with an identifier, stored once per id in a normalized store."""

    @abc.abstractmethod
    def id(self) -> IdT:
        """Return the identifier of this entity."""

    @abc.abstractmethod
    def entity_type(self) -> str:
        """Return the fully qualified name of the generated entity class."""
