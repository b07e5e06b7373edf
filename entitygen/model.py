"""Spec declarations as read from source, before type resolution."""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from pathlib import Path

from .ir import ImportRef
from .naming import generated_class_name, module_name_for


@dataclass(frozen=True)
class DeclaredType:
    """A property annotation as written in the spec module.

    ``raw`` is the head as written (``list``, ``typing.Mapping``, ``|`` for
    unions) and ``qualified`` is that head resolved through the module's
    imports (``builtins.list``, ``typing.Mapping``).
    """
    text: str
    raw: str
    qualified: str
    args: tuple[DeclaredType, ...] = ()
    names: frozenset[str] = frozenset()

    @property
    def is_parameterized(self) -> bool:
        return bool(self.args)

    @property
    def is_dotted(self) -> bool:
        return "." in self.raw

    @property
    def is_builtin(self) -> bool:
        return self.qualified.startswith("builtins.") and not self.args


@dataclass(frozen=True)
class FieldDecl:
    name: str
    declared: DeclaredType
    is_id: bool = False
    lineno: int | None = None


class ImportTable:
    """Local names bound at the top level of a spec module."""

    def __init__(self, module: str) -> None:
        self.module = module
        self._refs: dict[str, ImportRef] = {}

    def add(self, ref: ImportRef) -> None:
        self._refs[ref.local] = ref

    def define(self, local: str) -> None:
        """Record a class or alias defined in the module itself."""
        self._refs.setdefault(local, ImportRef(self.module, local))

    def lookup(self, local: str) -> ImportRef | None:
        return self._refs.get(local)

    def qualify(self, dotted: str) -> str:
        """Resolve a dotted name to its fully qualified form.

        Unbound builtins resolve to ``builtins.<name>``; unknown names are
        returned unchanged.
        """
        head, _, rest = dotted.partition(".")
        ref = self._refs.get(head)
        if ref is not None:
            base = ref.qualified if (ref.name or ref.alias) else head
            return f"{base}.{rest}" if rest else base
        if hasattr(builtins, head) or head == "None":
            return f"builtins.{dotted}"
        return dotted

    def __contains__(self, local: str) -> bool:
        return local in self._refs

    def __len__(self) -> int:
        return len(self._refs)


@dataclass
class EntitySpec:
    """One ``@entity_spec`` class, with its id field and ordered fields."""
    package: str
    module: str
    spec_name: str
    class_name: str | None
    id_field: str
    fields: tuple[FieldDecl, ...]
    path: Path | None = None
    lineno: int | None = None
    imports: ImportTable = field(default_factory=lambda: ImportTable(""))

    @property
    def generated_name(self) -> str:
        return generated_class_name(self.spec_name, self.class_name)

    @property
    def generated_module(self) -> str:
        entity_module = module_name_for(self.generated_name)
        return f"{self.package}.{entity_module}" if self.package else entity_module

    @property
    def id_decl(self) -> FieldDecl:
        return next(f for f in self.fields if f.is_id)
