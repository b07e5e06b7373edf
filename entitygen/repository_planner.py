"""Plan ``NormalizedEntityRepository``, the core of the generated code.

``put_<entity>`` writes the entity and, transitively, every entity it
contains, returning the set of written entities. ``get_<entity>`` reads the
cached entity and re-fetches every nested entity through the repository;
if any of them changed since the write, a new composite is built from the
fresh values, otherwise the cached instance is returned as-is.

Readers are probed in order and the first hit wins. Writes go to every
writer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .context_builder import EntityPlan, PlanContext
from .ir import (
    Assign,
    ClassPlan,
    Decl,
    For,
    If,
    Index,
    Literal,
    MethodPlan,
    ModulePlan,
    Param,
    Return,
    Stmt,
    and_,
    call,
    compare,
    is_none,
    is_not_none,
    name,
    not_,
    or_,
)
from .naming import local_name
from .planning import (
    ENTITY_BASE,
    IN_MEMORY_STORE,
    REPOSITORY,
    REPOSITORY_READER,
    REPOSITORY_WRITER,
    STORE_READER,
    STORE_WRITER,
    NameAllocator,
    store_import,
    store_module,
)
from .type_resolver import EntityRef, ListOf, MapOf, ResolvedType, contains_entity

logger = logging.getLogger(__name__)


@dataclass
class RepositoryEntry:
    plan: EntityPlan
    put: MethodPlan
    get: MethodPlan


@dataclass
class RepositoryPlan:
    """Per-entity members of the repository class."""
    entries: list[RepositoryEntry] = field(default_factory=list)

    @property
    def entities(self) -> list[EntityPlan]:
        return [e.plan for e in self.entries]


def _read_helper(plan: EntityPlan) -> str:
    return f"_read_{plan.snake}"


def _write_helper(plan: EntityPlan) -> str:
    return f"_write_{plan.snake}"


# Names a put/get body binds or calls besides its property locals
_FIXED_LOCALS = ("self", "entity", "entity_id", "dirty", "cached", "set", "tuple")


def _method_names(plan: EntityPlan, context: PlanContext) -> tuple[NameAllocator, dict[str, str]]:
    """An allocator for one method body, with every property local already claimed.

    Entity class names are claimed too, since ``get_<entity>`` calls the
    constructor by name.
    """
    names = NameAllocator(_FIXED_LOCALS + tuple(e.name for e in context.entities))
    locals_ = {prop.name: names.take(local_name(prop.name)) for prop in plan.properties}
    return names, locals_


# put ------------------------------------------------------------------------

def _store(plan: EntityPlan, target: str) -> list[Stmt]:
    """Add ``target`` to the dirty set and write it, descending if it holds entities."""
    if plan.holds_entities:
        return [call("dirty", "update", call("self", plan.putter, target))]
    return [call("dirty", "add", target), call("self", _write_helper(plan), target)]


def _extract(
    resolved: ResolvedType, source: str, names: NameAllocator, context: PlanContext,
) -> list[Stmt]:
    """Statements storing every entity reachable from ``source``."""
    if isinstance(resolved, EntityRef):
        return _store(context.entity(resolved.name), source)

    if isinstance(resolved, ListOf):
        item = f"item{names.next()}"
        return [For(item, name(source), tuple(_extract(resolved.elem, item, names, context)))]

    if isinstance(resolved, MapOf):
        n = names.next()
        key, value = f"key{n}", f"value{n}"
        key_holds = contains_entity(resolved.key)
        value_holds = contains_entity(resolved.value)
        if key_holds and value_holds:
            body = _extract(resolved.key, key, names, context)
            body += _extract(resolved.value, value, names, context)
            return [For(f"{key}, {value}", call(source, "items"), tuple(body))]
        if key_holds:
            return [For(key, name(source), tuple(_extract(resolved.key, key, names, context)))]
        if value_holds:
            return [For(value, call(source, "values"), tuple(_extract(resolved.value, value, names, context)))]

    return []


def plan_put(plan: EntityPlan, context: PlanContext) -> MethodPlan:
    names, locals_ = _method_names(plan, context)
    body: list[Stmt] = [
        Decl("dirty", "set[Entity]", call(None, "set")),
        call("dirty", "add", "entity"),
        call("self", _write_helper(plan), "entity"),
    ]
    for prop in plan.properties:
        if not prop.holds_entities:
            continue
        local = locals_[prop.name]
        body.append(Decl(local, prop.resolved.render(), call("entity", prop.getter)))
        body.extend(_extract(prop.resolved, local, names, context))
    body.append(Return(name("dirty")))
    return MethodPlan(
        plan.putter,
        [Param("entity", plan.name)],
        "set[Entity]",
        body,
        doc=f"Write a {plan.name} and every entity it contains; return everything written.",
    )


# get ------------------------------------------------------------------------

def _refresh(
    ref: EntityRef, source: str, flag: str, names: NameAllocator, context: PlanContext,
) -> tuple[list[Stmt], str]:
    """Re-fetch one nested entity; keep the cached one unless the stored one differs."""
    target = context.entity(ref.name)
    latest = f"latest{names.next()}"
    stmts: list[Stmt] = [
        Decl(latest, f"{target.name} | None", call("self", target.accessor, call(source, "id"))),
        If(
            or_(is_none(latest), compare(latest, "==", source)),
            (Assign(name(latest), name(source)),),
            (Assign(name(flag), name("True")),),
        ),
    ]
    return stmts, latest


def _copy(
    resolved: ResolvedType, source: str, flag: str, names: NameAllocator, context: PlanContext,
) -> tuple[list[Stmt], str]:
    """Statements rebuilding ``source`` with refreshed entities, and the rebuilt expression."""
    if isinstance(resolved, EntityRef):
        return _refresh(resolved, source, flag, names, context)
    if not contains_entity(resolved):
        return [], source

    copy = names.take(f"{source}_copy")
    if isinstance(resolved, ListOf):
        item = f"item{names.next()}"
        inner, result = _copy(resolved.elem, item, flag, names, context)
        body = inner + [call(copy, "append", result)]
        stmts: list[Stmt] = [
            Decl(copy, resolved.render_concrete(), name("[]")),
            For(item, name(source), tuple(body)),
        ]
        return stmts, f"tuple({copy})" if resolved.frozen else copy

    if isinstance(resolved, MapOf):
        n = names.next()
        key, value = f"key{n}", f"value{n}"
        key_stmts, key_result = _copy(resolved.key, key, flag, names, context)
        value_stmts, value_result = _copy(resolved.value, value, flag, names, context)
        body = key_stmts + value_stmts + [Assign(Index(name(copy), name(key_result)), name(value_result))]
        stmts = [
            Decl(copy, resolved.render_concrete(), name("{}")),
            For(f"{key}, {value}", call(source, "items"), tuple(body)),
        ]
        return stmts, copy

    return [], source


def plan_get(plan: EntityPlan, context: PlanContext) -> MethodPlan:
    params = [Param("entity_id", plan.id_type)]
    returns = f"{plan.name} | None"
    doc = f"Read a {plan.name}, rebuilt if any entity it contains has changed since it was written."
    if not plan.holds_entities:
        body: list[Stmt] = [Return(call("self", _read_helper(plan), "entity_id"))]
        return MethodPlan(plan.accessor, params, returns, body, doc=f"Read a {plan.name}.")

    names, locals_ = _method_names(plan, context)
    body = [
        Decl("cached", None, call("self", _read_helper(plan), "entity_id")),
        If(is_none("cached"), (Return(name("None")),)),
        Decl("dirty", "bool", name("False")),
    ]
    args: list[str] = []
    for prop in plan.properties:
        if not prop.holds_entities:
            args.append(f"cached.{prop.getter}()")
            continue
        local = locals_[prop.name]
        body.append(Decl(local, prop.resolved.render(), call("cached", prop.getter)))
        if isinstance(prop.resolved, EntityRef):
            stmts, result = _refresh(prop.resolved, local, "dirty", names, context)
            body.extend(stmts)
            args.append(result)
            continue
        changed = names.take(f"{local}_changed")
        body.append(Decl(changed, "bool", name("False")))
        stmts, result = _copy(prop.resolved, local, changed, names, context)
        body.extend(stmts)
        body.append(If(name(changed), (Assign(name("dirty"), name("True")), Assign(name(local), name(result)))))
        args.append(local)

    body.append(If(not_("dirty"), (Return(name("cached")),)))
    body.append(Return(call(None, plan.name, *args)))
    return MethodPlan(plan.accessor, params, returns, body, doc=doc)


# class ----------------------------------------------------------------------

def plan_repository(context: PlanContext) -> RepositoryPlan:
    repository = RepositoryPlan()
    for plan in context.entities:
        repository.entries.append(RepositoryEntry(
            plan,
            plan_put(plan, context),
            plan_get(plan, context),
        ))
    return repository


def _helpers(plan: EntityPlan) -> list[MethodPlan]:
    read = MethodPlan(
        _read_helper(plan),
        [Param("entity_id", plan.id_type)],
        f"{plan.name} | None",
        [
            For("reader", name("self._readers"), (
                Decl("found", None, call("reader", plan.accessor, "entity_id")),
                If(is_not_none("found"), (Return(name("found")),)),
            )),
            Return(name("None")),
        ],
    )
    write = MethodPlan(
        _write_helper(plan),
        [Param("entity", plan.name)],
        "None",
        [For("writer", name("self._writers"), (call("writer", plan.putter, "entity"),))],
    )
    return [read, write]


def _builder_class() -> ClassPlan:
    builder_type = f"{REPOSITORY}.Builder"
    return ClassPlan(
        "Builder",
        doc="Collects the reader and writer chains of a repository.",
        methods=[
            MethodPlan("__init__", [], "None", [
                Decl("self._readers", f"tuple[{STORE_READER}, ...]", name("()")),
                Decl("self._writers", f"tuple[{STORE_WRITER}, ...]", name("()")),
            ]),
            MethodPlan("set_readers", [Param("readers", STORE_READER, star=True)], builder_type, [
                Assign(name("self._readers"), name("readers")),
                Return(name("self")),
            ]),
            MethodPlan("set_writers", [Param("writers", STORE_WRITER, star=True)], builder_type, [
                Assign(name("self._writers"), name("writers")),
                Return(name("self")),
            ]),
            MethodPlan(
                "build",
                [],
                REPOSITORY,
                [
                    Decl("readers", None, name("self._readers")),
                    Decl("writers", None, name("self._writers")),
                    If(
                        and_(not_("readers"), not_("writers")),
                        (
                            Decl("store", None, call(None, IN_MEMORY_STORE)),
                            Assign(name("readers"), name("(store,)")),
                            Assign(name("writers"), name("(store,)")),
                        ),
                        (If(
                            not_("readers"),
                            (Assign(name("readers"), Literal(f"({IN_MEMORY_STORE}(),)")),),
                            (If(
                                not_("writers"),
                                (Assign(name("writers"), Literal(f"({IN_MEMORY_STORE}(),)")),),
                            ),),
                        ),),
                    ),
                    Return(call(None, REPOSITORY, "readers", "writers")),
                ],
                doc="Build the repository; an empty chain defaults to an in-memory store.",
            ),
        ],
    )


class RepositoryPlanner:
    name = "repository"

    def plan(self, context: PlanContext) -> list[ModulePlan]:
        module = ModulePlan(store_module(REPOSITORY), doc="Normalized entity repository.")
        module.require(store_import(IN_MEMORY_STORE))
        module.require(store_import(REPOSITORY_READER))
        module.require(store_import(REPOSITORY_WRITER))
        module.require(store_import(STORE_READER), type_only=True)
        module.require(store_import(STORE_WRITER), type_only=True)
        module.require(ENTITY_BASE, type_only=True)

        repository = plan_repository(context)
        methods = [
            MethodPlan(
                "__init__",
                [
                    Param("readers", f"tuple[{STORE_READER}, ...]"),
                    Param("writers", f"tuple[{STORE_WRITER}, ...]"),
                ],
                "None",
                [
                    Decl("self._readers", None, call(None, "tuple", "readers")),
                    Decl("self._writers", None, call(None, "tuple", "writers")),
                ],
            ),
            MethodPlan(
                "builder",
                [],
                f"{REPOSITORY}.Builder",
                [Return(call("cls", "Builder"))],
                decorators=["classmethod"],
                receiver="cls",
            ),
        ]
        for entry in repository.entries:
            plan = entry.plan
            # The constructor call in get_<entity> needs the class at runtime
            module.require(plan.ref.import_ref)
            for ref in context.property_imports(plan) | plan.type_imports(plan.id_property.resolved):
                module.require(ref, type_only=True)
            logger.debug("Planning repository methods for %s", plan.qualified, extra={"spec": plan.spec.spec_name})
            methods.append(entry.put)
            methods.append(entry.get)
        for entry in repository.entries:
            methods.extend(_helpers(entry.plan))

        module.classes.append(ClassPlan(
            REPOSITORY,
            [REPOSITORY_READER, REPOSITORY_WRITER],
            "Stores every entity once per id and rebuilds composites from the latest values on read.",
            methods,
            classes=[_builder_class()],
        ))
        return [module]
