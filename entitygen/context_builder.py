"""Build the planning context from the specs read by the loader.

Registers every spec in the entity type table, resolves each property type
against it, and assembles one ``EntityPlan`` per spec for the planners.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .errors import SpecError
from .ir import ImportRef
from .model import DeclaredType, EntitySpec
from .naming import accessor_name, attribute_name, camel_to_snake, getter_name, putter_name
from .type_resolver import (
    EntityRef,
    EntityTypeTable,
    ResolvedType,
    contains_entity,
    entity_refs,
    local_names,
    resolve,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Property:
    name: str
    resolved: ResolvedType
    declared: DeclaredType

    @property
    def getter(self) -> str:
        return getter_name(self.name)

    @property
    def attribute(self) -> str:
        return attribute_name(self.name)

    @property
    def holds_entities(self) -> bool:
        return contains_entity(self.resolved)


@dataclass
class EntityPlan:
    """A generated entity class: its spec, its reference and its properties."""
    spec: EntitySpec
    ref: EntityRef
    properties: list[Property]
    id_property: Property

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def module(self) -> str:
        return self.ref.module

    @property
    def qualified(self) -> str:
        return self.ref.qualified

    @property
    def snake(self) -> str:
        return camel_to_snake(self.ref.name)

    @property
    def accessor(self) -> str:
        return accessor_name(self.ref.name)

    @property
    def putter(self) -> str:
        return putter_name(self.ref.name)

    @property
    def id_type(self) -> str:
        return self.id_property.resolved.render()

    @property
    def holds_entities(self) -> bool:
        return any(p.holds_entities for p in self.properties)

    def type_imports(self, resolved: ResolvedType) -> set[ImportRef]:
        """Imports needed to name ``resolved`` outside the spec module."""
        refs = {ref.import_ref for ref in entity_refs(resolved)}
        for local in local_names(resolved):
            ref = self.spec.imports.lookup(local)
            if ref is not None:
                refs.add(ref)
        return refs


@dataclass
class PlanContext:
    """Everything the planners share for one generation run."""
    table: EntityTypeTable
    entities: list[EntityPlan] = field(default_factory=list)
    errors: list[SpecError] = field(default_factory=list)

    def entity(self, name: str) -> EntityPlan:
        for plan in self.entities:
            if plan.name == name:
                return plan
        raise KeyError(name)

    def property_imports(self, plan: EntityPlan) -> set[ImportRef]:
        refs: set[ImportRef] = set()
        for prop in plan.properties:
            refs |= plan.type_imports(prop.resolved)
        return refs


def _check_spec(spec: EntitySpec) -> None:
    if spec.generated_module == spec.module:
        raise SpecError.invalid(
            spec.spec_name,
            f"generated module {spec.generated_module} would overwrite the spec module",
            spec.path,
            spec.lineno,
        )
    names = [f.name for f in spec.fields]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise SpecError.invalid(
            spec.spec_name, "duplicate fields: " + ", ".join(duplicates), spec.path, spec.lineno,
        )


def build_context(specs: Iterable[EntitySpec]) -> PlanContext:
    """Register every spec, then resolve property types against the full table."""
    table = EntityTypeTable()
    context = PlanContext(table)

    accepted: list[tuple[EntitySpec, EntityRef]] = []
    for spec in sorted(specs, key=lambda s: (s.module, s.lineno or 0)):
        try:
            _check_spec(spec)
            accepted.append((spec, table.register(spec)))
        except SpecError as e:
            context.errors.append(e)

    for spec, ref in accepted:
        properties: list[Property] = []
        for decl in spec.fields:
            resolved = resolve(decl.declared, table, spec.spec_name)
            properties.append(Property(decl.name, resolved, decl.declared))
        id_property = next(p for p in properties if p.name == spec.id_field)
        context.entities.append(EntityPlan(spec, ref, properties, id_property))
        logger.debug(
            "Planned %s with %d properties", ref.qualified, len(properties),
            extra={"spec": spec.spec_name},
        )

    return context
