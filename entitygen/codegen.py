"""Render module plans to Python source and write them to disk.

Jinja2 templates lay out modules and classes; method bodies are lowered
from the IR by ``_Lowerer``. Every rendered module is checked with
``ast.parse`` before it is written.
"""

from __future__ import annotations

import ast
import logging
import os
import tempfile
from pathlib import Path

import jinja2

from .config import HEADER
from .errors import EmitError
from .ir import (
    Assign,
    BoolOp,
    Call,
    ClassPlan,
    Compare,
    Decl,
    Expr,
    For,
    If,
    ImportRef,
    Index,
    Literal,
    MethodPlan,
    ModulePlan,
    Return,
    Stmt,
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

INDENT = "    "

# Signatures longer than this put one parameter per line
MAX_SIGNATURE = 88

TYPE_CHECKING = ImportRef("typing", "TYPE_CHECKING")


def _indent(lines: list[str], depth: int = 1) -> list[str]:
    return [INDENT * depth + line if line else line for line in lines]


class _Lowerer:
    """Turns IR statements into lines of source."""

    def expr(self, node: Expr) -> str:
        if isinstance(node, Literal):
            return node.text
        if isinstance(node, Call):
            args = ", ".join(self.expr(a) for a in node.args)
            if node.recv is None:
                return f"{node.method}({args})"
            return f"{self.expr(node.recv)}.{node.method}({args})"
        if isinstance(node, Index):
            return f"{self.expr(node.recv)}[{self.expr(node.key)}]"
        if isinstance(node, Compare):
            return f"{self.expr(node.left)} {node.op} {self.expr(node.right)}"
        if isinstance(node, BoolOp):
            if node.op == "not":
                return f"not {self._operand(node.values[0], node.op)}"
            return f" {node.op} ".join(self._operand(v, node.op) for v in node.values)
        raise TypeError(f"not an expression: {node!r}")

    def _operand(self, node: Expr, op: str) -> str:
        # and/or nested under a different operator needs parentheses
        text = self.expr(node)
        if isinstance(node, BoolOp) and node.op != "not" and node.op != op:
            return f"({text})"
        return text

    def block(self, stmts: tuple[Stmt, ...] | list[Stmt]) -> list[str]:
        lines: list[str] = []
        for stmt in stmts:
            lines.extend(self.stmt(stmt))
        return _indent(lines or ["pass"])

    def stmt(self, node: Stmt) -> list[str]:
        visit = getattr(self, f"visit_{type(node).__name__}", None)
        if visit is None:
            raise TypeError(f"not a statement: {node!r}")
        return visit(node)

    def visit_Literal(self, node: Literal) -> list[str]:
        return node.text.splitlines()

    def visit_Call(self, node: Call) -> list[str]:
        return self.expr(node).splitlines()

    def visit_Decl(self, node: Decl) -> list[str]:
        text = node.name
        if node.type:
            text += f": {node.type}"
        if node.init is not None:
            text += f" = {self.expr(node.init)}"
        elif not node.type:
            text += " = None"
        return text.splitlines()

    def visit_Assign(self, node: Assign) -> list[str]:
        return f"{self.expr(node.target)} = {self.expr(node.value)}".splitlines()

    def visit_Return(self, node: Return) -> list[str]:
        if node.value is None:
            return ["return"]
        return f"return {self.expr(node.value)}".splitlines()

    def visit_For(self, node: For) -> list[str]:
        return [f"for {node.var} in {self.expr(node.iter)}:"] + self.block(node.body)

    def visit_If(self, node: If, keyword: str = "if") -> list[str]:
        lines = [f"{keyword} {self.expr(node.cond)}:"] + self.block(node.then)
        if len(node.orelse) == 1 and isinstance(node.orelse[0], If):
            lines += self.visit_If(node.orelse[0], "elif")
        elif node.orelse:
            lines += ["else:"] + self.block(node.orelse)
        return lines

    def method(self, plan: MethodPlan) -> str:
        params = [p.render() for p in plan.params]
        if plan.receiver:
            params.insert(0, plan.receiver)
        returns = f" -> {plan.returns}" if plan.returns else ""
        signature = f"def {plan.name}({', '.join(params)}){returns}:"
        if len(signature) > MAX_SIGNATURE:
            signature = "\n".join(
                [f"def {plan.name}("] + _indent([f"{p}," for p in params]) + [f"){returns}:"]
            )

        lines = [f"@{d}" for d in plan.decorators] + signature.split("\n")
        body: list[str] = []
        if plan.doc:
            body.append(f'"""{plan.doc}"""')
        for stmt in plan.body:
            body.extend(self.stmt(stmt))
        lines += _indent(body or ["pass"])
        return "\n".join(lines)


def _import_lines(refs: set[ImportRef]) -> list[str]:
    ordered = sorted(refs, key=lambda r: (r.name is not None, r.module, r.name or "", r.alias or ""))
    return [ref.render() for ref in ordered]


class Emitter:
    """Writes generated modules under ``output_root``.

    Files are written through a temporary file and ``os.replace`` so a
    failed write never leaves a partial module behind. Unchanged files are
    left untouched.
    """

    def __init__(self, output_root: Path, dry_run: bool = False) -> None:
        self.output_root = Path(output_root)
        self.dry_run = dry_run
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._lowerer = _Lowerer()

    def path_for(self, module: str) -> Path:
        return self.output_root.joinpath(*module.split(".")).with_suffix(".py")

    def render_class(self, plan: ClassPlan) -> str:
        members = [self.render_class(c) for c in plan.classes]
        members += [self._lowerer.method(m) for m in plan.methods]
        template = self.env.get_template("class.py.j2")
        return template.render(
            name=plan.name, bases=plan.bases, doc=plan.doc, members=members,
        ).rstrip("\n")

    def render(self, plan: ModulePlan) -> str:
        """Render a module plan to source text, checking that it parses."""
        imports = set(plan.imports)
        if plan.type_imports:
            imports.add(TYPE_CHECKING)
        template = self.env.get_template("module.py.j2")
        source = template.render(
            header=HEADER,
            doc=plan.doc,
            imports=_import_lines(imports),
            type_imports=_import_lines(plan.type_imports),
            classes=[self.render_class(c) for c in plan.classes],
        )
        try:
            ast.parse(source, filename=str(self.path_for(plan.module)))
        except SyntaxError as e:
            raise EmitError(self.path_for(plan.module), e) from e
        return source

    def emit(self, plan: ModulePlan) -> Path:
        """Render and write one module; return the path it belongs at."""
        path = self.path_for(plan.module)
        source = self.render(plan)
        if self.dry_run:
            logger.info("Would write %s", path, extra={"spec": plan.spec_name})
            return path
        try:
            self._ensure_packages(path.parent)
            if path.exists() and path.read_text(encoding="utf-8") == source:
                logger.debug("Unchanged %s", path, extra={"spec": plan.spec_name})
                return path
            self._write_atomic(path, source)
        except OSError as e:
            raise EmitError(path, e) from e
        logger.info("Wrote %s", path, extra={"spec": plan.spec_name})
        return path

    def _ensure_packages(self, directory: Path) -> None:
        """Create missing package directories, each with an ``__init__.py``."""
        self.output_root.mkdir(parents=True, exist_ok=True)
        rel = directory.relative_to(self.output_root)
        current = self.output_root
        for part in rel.parts:
            current = current / part
            if current.is_dir():
                continue
            current.mkdir()
            (current / "__init__.py").write_text(HEADER + "\n", encoding="utf-8")

    @staticmethod
    def _write_atomic(path: Path, source: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(source)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
