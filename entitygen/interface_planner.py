"""Plan the four abstract store and repository interfaces.

Readers declare ``get_<entity>(entity_id)``; writers declare
``put_<entity>(entity)`` and provide a ``put(entity)`` that dispatches on
the entity's class.
"""

from __future__ import annotations

from dataclasses import dataclass

from .context_builder import EntityPlan, PlanContext
from .ir import ClassPlan, If, ImportRef, Literal, MethodPlan, ModulePlan, Param, Return, call
from .planning import (
    ENTITY_BASE,
    REPOSITORY_READER,
    REPOSITORY_WRITER,
    STORE_READER,
    STORE_WRITER,
    store_module,
)

ABC = ImportRef("abc")


def _dispatch(entities: list[EntityPlan]) -> list:
    """``if``/``elif`` chain calling the matching ``put_<entity>``."""
    chain: tuple = (Literal('raise TypeError(f"unsupported entity type: {type(entity).__name__}")'),)
    for plan in reversed(entities):
        chain = (
            If(
                call(None, "isinstance", "entity", plan.name),
                (Return(call("self", plan.putter, "entity")),),
                chain,
            ),
        )
    return list(chain)


@dataclass(frozen=True)
class InterfacePlanner:
    """One of the four interfaces, selected by class name and direction."""
    name: str
    class_name: str
    writer: bool
    put_returns: str
    doc: str

    def _reader_method(self, plan: EntityPlan) -> MethodPlan:
        return MethodPlan(
            plan.accessor,
            [Param("entity_id", plan.id_type)],
            f"{plan.name} | None",
            doc=f"Return the {plan.name} stored under ``entity_id``, or None.",
            decorators=["abc.abstractmethod"],
        )

    def _writer_method(self, plan: EntityPlan) -> MethodPlan:
        return MethodPlan(
            plan.putter,
            [Param("entity", plan.name)],
            self.put_returns,
            doc=f"Write a {plan.name}.",
            decorators=["abc.abstractmethod"],
        )

    def plan(self, context: PlanContext) -> list[ModulePlan]:
        module = ModulePlan(store_module(self.class_name), doc=f"{self.class_name} interface.")
        module.require(ABC)
        methods: list[MethodPlan] = []
        if self.writer:
            module.require(ENTITY_BASE, type_only=True)
            methods.append(MethodPlan(
                "put",
                [Param("entity", "Entity")],
                self.put_returns,
                _dispatch(context.entities),
                doc="Write an entity of any generated type.",
            ))
        for plan in context.entities:
            # Writers test entity classes at runtime in put()
            module.require(plan.ref.import_ref, type_only=not self.writer)
            for ref in plan.type_imports(plan.id_property.resolved):
                module.require(ref, type_only=True)
            if self.writer:
                methods.append(self._writer_method(plan))
            else:
                methods.append(self._reader_method(plan))
        module.classes.append(ClassPlan(self.class_name, ["abc.ABC"], self.doc, methods))
        return [module]


STORE_READER_PLANNER = InterfacePlanner(
    "store-reader", STORE_READER, False, "bool", "Reads entities from a store by id.",
)
STORE_WRITER_PLANNER = InterfacePlanner(
    "store-writer", STORE_WRITER, True, "bool", "Writes entities to a store, keyed by id.",
)
REPOSITORY_READER_PLANNER = InterfacePlanner(
    "repository-reader",
    REPOSITORY_READER,
    False,
    "set[Entity]",
    "Reads entities with their nested entities refreshed from the stores.",
)
REPOSITORY_WRITER_PLANNER = InterfacePlanner(
    "repository-writer",
    REPOSITORY_WRITER,
    True,
    "set[Entity]",
    "Writes entities together with every entity they contain.",
)
