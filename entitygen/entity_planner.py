"""Plan one entity class per spec.

Each class gets a private attribute and a getter per property, a
constructor taking the properties in declaration order, ``id()`` and
``entity_type()``, and value equality over every property.
"""

from __future__ import annotations

import logging

from .context_builder import EntityPlan, PlanContext
from .ir import ClassPlan, Decl, If, Literal, MethodPlan, ModulePlan, Param, Return, call, name, not_
from .planning import ENTITY_BASE

logger = logging.getLogger(__name__)


def _base_class(plan: EntityPlan) -> str:
    if plan.id_property.declared.is_builtin:
        return f"Entity[{plan.id_type}]"
    return f'Entity["{plan.id_type}"]'


def _init_method(plan: EntityPlan) -> MethodPlan:
    params = [Param(p.name, p.resolved.render()) for p in plan.properties]
    body = [Decl(f"self.{p.attribute}", None, name(p.name)) for p in plan.properties]
    return MethodPlan("__init__", params, "None", body)


def _getters(plan: EntityPlan) -> list[MethodPlan]:
    return [
        MethodPlan(p.getter, [], p.resolved.render(), [Return(name(f"self.{p.attribute}"))])
        for p in plan.properties
    ]


def _eq_method(plan: EntityPlan) -> MethodPlan:
    comparisons = [f"self.{p.attribute} == other.{p.attribute}" for p in plan.properties]
    if len(comparisons) == 1:
        result = comparisons[0]
    else:
        result = "(\n    " + "\n    and ".join(comparisons) + "\n)"
    return MethodPlan(
        "__eq__",
        [Param("other", "object")],
        "bool",
        [
            If(not_(call(None, "isinstance", "other", plan.name)), (Return(name("NotImplemented")),)),
            Return(Literal(result)),
        ],
    )


def _repr_method(plan: EntityPlan) -> MethodPlan:
    fields = ", ".join(f"{p.name}={{self.{p.attribute}!r}}" for p in plan.properties)
    return MethodPlan("__repr__", [], "str", [Return(Literal(f'f"{plan.name}({fields})"'))])


def plan_entity(plan: EntityPlan, context: PlanContext) -> ModulePlan:
    """Build the module plan holding one generated entity class."""
    module = ModulePlan(
        plan.module,
        doc=f"{plan.name} entity generated from {plan.spec.module}.",
        spec_name=plan.spec.spec_name,
    )
    module.require(ENTITY_BASE)
    for ref in context.property_imports(plan):
        module.require(ref, type_only=True)

    id_attribute = f"self.{plan.id_property.attribute}"
    methods = [_init_method(plan)]
    methods.extend(_getters(plan))
    methods.append(MethodPlan("id", [], plan.id_type, [Return(name(id_attribute))]))
    methods.append(MethodPlan("entity_type", [], "str", [Return(Literal(repr(plan.qualified)))]))
    methods.append(_eq_method(plan))
    methods.append(
        MethodPlan("__hash__", [], "int", [Return(name(f"hash((self.entity_type(), {id_attribute}))"))])
    )
    methods.append(_repr_method(plan))

    module.classes.append(ClassPlan(plan.name, [_base_class(plan)], None, methods))
    return module


class EntityPlanner:
    name = "entity"

    def plan(self, context: PlanContext) -> list[ModulePlan]:
        modules = []
        for plan in context.entities:
            logger.debug("Planning entity %s", plan.qualified, extra={"spec": plan.spec.spec_name})
            modules.append(plan_entity(plan, context))
        return modules
