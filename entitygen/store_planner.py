"""Plan ``InMemoryEntityStore``: one dict per entity type keyed by id."""

from __future__ import annotations

from .context_builder import PlanContext
from .ir import Assign, ClassPlan, Decl, Index, MethodPlan, ModulePlan, Param, Return, call, name
from .naming import by_id_field_name
from .planning import IN_MEMORY_STORE, STORE_READER, STORE_WRITER, store_import, store_module


class InMemoryStorePlanner:
    name = "in-memory-store"

    def plan(self, context: PlanContext) -> list[ModulePlan]:
        module = ModulePlan(store_module(IN_MEMORY_STORE), doc="In-memory entity store.")
        module.require(store_import(STORE_READER))
        module.require(store_import(STORE_WRITER))

        init_body = []
        accessors: list[MethodPlan] = []
        for plan in context.entities:
            module.require(plan.ref.import_ref, type_only=True)
            for ref in plan.type_imports(plan.id_property.resolved):
                module.require(ref, type_only=True)

            field = f"self.{by_id_field_name(plan.name)}"
            init_body.append(Decl(field, f"dict[{plan.id_type}, {plan.name}]", name("{}")))
            accessors.append(MethodPlan(
                plan.accessor,
                [Param("entity_id", plan.id_type)],
                f"{plan.name} | None",
                [Return(call(field, "get", "entity_id"))],
            ))
            accessors.append(MethodPlan(
                plan.putter,
                [Param("entity", plan.name)],
                "bool",
                [
                    Assign(Index(name(field), call("entity", "id")), name("entity")),
                    Return(name("True")),
                ],
            ))

        methods = [MethodPlan("__init__", [], "None", init_body)] + accessors
        module.classes.append(ClassPlan(
            IN_MEMORY_STORE,
            [STORE_READER, STORE_WRITER],
            "Keeps the latest instance of every entity, one dict per entity type.",
            methods,
        ))
        return [module]
