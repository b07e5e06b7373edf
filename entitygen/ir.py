"""Generator IR: the plain data that planners build and the emitter lowers.

Statements: Decl, Assign, Call, For, If, Return, Literal.
Expressions: Literal, Call, Index, Compare, BoolOp.

Structure: Param, MethodPlan, ClassPlan, ModulePlan, ImportRef.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Literal:
    """Source text emitted verbatim, as an expression or a statement."""
    text: str


@dataclass(frozen=True)
class Call:
    """``recv.method(args)``, or ``method(args)`` when there is no receiver."""
    recv: Expr | None
    method: str
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class Index:
    """``recv[key]``."""
    recv: Expr
    key: Expr


@dataclass(frozen=True)
class Compare:
    """``left op right`` for one comparison operator such as ``==`` or ``is``."""
    left: Expr
    op: str
    right: Expr


@dataclass(frozen=True)
class BoolOp:
    """``a and b`` or ``a or b``; with op ``not`` and one value, ``not a``."""
    op: str
    values: tuple[Expr, ...]


Expr = Union[Literal, Call, Index, Compare, BoolOp]


@dataclass(frozen=True)
class Decl:
    """Local variable, optionally annotated and initialised."""
    name: str
    type: str | None = None
    init: Expr | None = None


@dataclass(frozen=True)
class Assign:
    target: Expr
    value: Expr


@dataclass(frozen=True)
class For:
    """``for var in iter``; ``var`` may be a tuple target such as ``key1, value1``."""
    var: str
    iter: Expr
    body: tuple[Stmt, ...]


@dataclass(frozen=True)
class If:
    cond: Expr
    then: tuple[Stmt, ...]
    orelse: tuple[Stmt, ...] = ()


@dataclass(frozen=True)
class Return:
    value: Expr | None = None


Stmt = Union[Decl, Assign, Call, For, If, Return, Literal]


def name(text: str) -> Literal:
    """Shorthand for a literal naming a local, attribute or expression."""
    return Literal(text)


def call(recv: str | Expr | None, method: str, *args: str | Expr) -> Call:
    """Build a Call, wrapping plain strings as literals."""
    if isinstance(recv, str):
        recv = Literal(recv)
    return Call(recv, method, tuple(Literal(a) if isinstance(a, str) else a for a in args))


def _expr(value: str | Expr) -> Expr:
    return Literal(value) if isinstance(value, str) else value


def compare(left: str | Expr, op: str, right: str | Expr) -> Compare:
    return Compare(_expr(left), op, _expr(right))


def is_none(value: str | Expr) -> Compare:
    return compare(value, "is", "None")


def is_not_none(value: str | Expr) -> Compare:
    return compare(value, "is not", "None")


def not_(value: str | Expr) -> BoolOp:
    return BoolOp("not", (_expr(value),))


def and_(*values: str | Expr) -> BoolOp:
    return BoolOp("and", tuple(_expr(v) for v in values))


def or_(*values: str | Expr) -> BoolOp:
    return BoolOp("or", tuple(_expr(v) for v in values))


@dataclass(frozen=True)
class ImportRef:
    """One imported name.

    ``ImportRef("typing", "List")`` is ``from typing import List`` and
    ``ImportRef("collections.abc", alias="cabc")`` is
    ``import collections.abc as cabc``.
    """
    module: str
    name: str | None = None
    alias: str | None = None

    @property
    def local(self) -> str:
        """The name this import binds in the importing module."""
        if self.alias:
            return self.alias
        if self.name:
            return self.name
        return self.module.split(".")[0]

    @property
    def qualified(self) -> str:
        return f"{self.module}.{self.name}" if self.name else self.module

    def render(self) -> str:
        if self.name:
            suffix = f" as {self.alias}" if self.alias else ""
            return f"from {self.module} import {self.name}{suffix}"
        suffix = f" as {self.alias}" if self.alias else ""
        return f"import {self.module}{suffix}"


@dataclass(frozen=True)
class Param:
    name: str
    type: str | None = None
    default: str | None = None
    star: bool = False

    def render(self) -> str:
        text = f"*{self.name}" if self.star else self.name
        if self.type:
            text += f": {self.type}"
            if self.default is not None:
                text += f" = {self.default}"
        elif self.default is not None:
            text += f"={self.default}"
        return text


@dataclass
class MethodPlan:
    name: str
    params: list[Param] = field(default_factory=list)
    returns: str | None = None
    body: list[Stmt] = field(default_factory=list)
    doc: str | None = None
    decorators: list[str] = field(default_factory=list)
    receiver: str | None = "self"


@dataclass
class ClassPlan:
    name: str
    bases: list[str] = field(default_factory=list)
    doc: str | None = None
    methods: list[MethodPlan] = field(default_factory=list)
    classes: list[ClassPlan] = field(default_factory=list)


@dataclass
class ModulePlan:
    """One generated file: ``module`` is its dotted module name."""
    module: str
    doc: str | None = None
    imports: set[ImportRef] = field(default_factory=set)
    type_imports: set[ImportRef] = field(default_factory=set)
    classes: list[ClassPlan] = field(default_factory=list)
    spec_name: str = "-"

    def require(self, ref: ImportRef, type_only: bool = False) -> None:
        """Record an import; runtime imports win over type-only ones."""
        if ref.module == self.module:
            return
        if type_only:
            if ref not in self.imports:
                self.type_imports.add(ref)
        else:
            self.type_imports.discard(ref)
            self.imports.add(ref)
