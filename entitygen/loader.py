"""Find ``@entity_spec`` classes in source trees and read them with ``ast``.

Spec modules are never imported. Each module's imports, top-level classes
and type aliases are collected so annotations can be resolved to qualified
names, then every decorated class becomes an ``EntitySpec``.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path

from .config import SPEC_MARKERS, GeneratorConfig
from .errors import SpecError
from .ir import ImportRef
from .model import DeclaredType, EntitySpec, FieldDecl, ImportTable

logger = logging.getLogger(__name__)

_DECORATOR_NAMES = {"entity_spec", "EntitySpec"}
_ID_MARKERS = {"EntityId"}
_ANNOTATED = {"typing.Annotated", "typing_extensions.Annotated"}
_CLASSVAR = {"typing.ClassVar", "typing_extensions.ClassVar"}
_LITERAL = {"typing.Literal", "typing_extensions.Literal"}
_TYPE_ALIAS = {"typing.TypeAlias", "typing_extensions.TypeAlias"}


def discover_spec_files(root: Path) -> list[Path]:
    """Python files under ``root`` that mention the spec decorator."""
    found: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if any(part.startswith(".") or part == "__pycache__" for part in rel.parts):
            continue
        if not path.is_file():
            continue
        text = path.read_text(encoding="utf-8")
        if any(marker in text for marker in SPEC_MARKERS):
            found.append(path)
    return found


def module_name_for_path(root: Path, path: Path) -> str:
    """Dotted module name of ``path`` relative to the source root."""
    parts = list(path.relative_to(root).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts)


def load_specs(config: GeneratorConfig) -> tuple[list[EntitySpec], list[SpecError]]:
    """Read every spec under the configured source roots.

    Errors are collected rather than raised so one bad spec does not hide
    the others.
    """
    specs: list[EntitySpec] = []
    errors: list[SpecError] = []
    for root in config.source_roots:
        for path in discover_spec_files(root):
            module = module_name_for_path(root, path)
            logger.debug("Reading %s as %s", path, module)
            found, failed = parse_specs(
                path.read_text(encoding="utf-8"), module, path=path,
                is_package=path.name == "__init__.py",
            )
            specs.extend(found)
            errors.extend(failed)
    logger.info("Found %d entity specs", len(specs))
    return specs, errors


def parse_specs(
    source: str,
    module: str,
    path: Path | None = None,
    is_package: bool = False,
) -> tuple[list[EntitySpec], list[SpecError]]:
    """Read the specs declared in one module's source text."""
    try:
        tree = ast.parse(source, filename=str(path) if path else "<spec>")
    except SyntaxError as e:
        label = module.rsplit(".", 1)[-1] or "-"
        return [], [SpecError.invalid(label, f"cannot parse module: {e.msg}", path, e.lineno)]

    package = module if is_package else module.rpartition(".")[0]
    imports = _collect_imports(tree, module, package)
    aliases = _collect_aliases(tree, imports)

    specs: list[EntitySpec] = []
    errors: list[SpecError] = []
    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue
        decorator = _find_spec_decorator(node)
        if decorator is None:
            continue
        try:
            specs.append(_read_spec(node, decorator, module, package, path, imports, aliases))
        except SpecError as e:
            logger.debug("Spec %s rejected: %s", node.name, e, extra={"spec": e.spec_name})
            errors.append(e)
    return specs, errors


def _walk_top_level(body: list[ast.stmt]):
    """Top-level statements, descending into if/try blocks."""
    for stmt in body:
        yield stmt
        if isinstance(stmt, ast.If):
            yield from _walk_top_level(stmt.body)
            yield from _walk_top_level(stmt.orelse)
        elif isinstance(stmt, ast.Try):
            yield from _walk_top_level(stmt.body)
            for handler in stmt.handlers:
                yield from _walk_top_level(handler.body)
            yield from _walk_top_level(stmt.orelse)
            yield from _walk_top_level(stmt.finalbody)


def _collect_imports(tree: ast.Module, module: str, package: str) -> ImportTable:
    table = ImportTable(module)
    for stmt in _walk_top_level(tree.body):
        if isinstance(stmt, ast.Import):
            for alias in stmt.names:
                table.add(ImportRef(alias.name, alias=alias.asname))
        elif isinstance(stmt, ast.ImportFrom):
            source = _absolute_module(stmt.module, stmt.level, package)
            for alias in stmt.names:
                if alias.name == "*":
                    continue
                table.add(ImportRef(source, alias.name, alias.asname))
        elif isinstance(stmt, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            table.define(stmt.name)
    return table


def _absolute_module(name: str | None, level: int, package: str) -> str:
    if level == 0:
        return name or ""
    parts = package.split(".") if package else []
    if level > 1:
        parts = parts[: len(parts) - (level - 1)]
    if name:
        parts.append(name)
    return ".".join(parts)


def _collect_aliases(tree: ast.Module, imports: ImportTable) -> dict[str, ast.expr]:
    """Module-level type aliases: ``X = list[User]``, ``X: TypeAlias = ...``, ``type X = ...``."""
    aliases: dict[str, ast.expr] = {}
    for stmt in tree.body:
        if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1:
            target = stmt.targets[0]
            if isinstance(target, ast.Name) and _looks_like_type(stmt.value):
                aliases[target.id] = stmt.value
        elif isinstance(stmt, ast.AnnAssign) and stmt.value is not None:
            if isinstance(stmt.target, ast.Name) and _is_type_alias_marker(stmt.annotation, imports):
                aliases[stmt.target.id] = stmt.value
        elif isinstance(stmt, getattr(ast, "TypeAlias", ())):
            aliases[stmt.name.id] = stmt.value
    return aliases


def _looks_like_type(node: ast.expr) -> bool:
    if isinstance(node, (ast.Name, ast.Attribute, ast.Subscript)):
        return True
    return isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr)


def _is_type_alias_marker(node: ast.expr, imports: ImportTable) -> bool:
    if isinstance(node, (ast.Name, ast.Attribute)):
        return imports.qualify(ast.unparse(node)) in _TYPE_ALIAS
    return False


def _decorator_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Call):
        node = node.func
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _find_spec_decorator(node: ast.ClassDef) -> ast.expr | None:
    for decorator in node.decorator_list:
        if _decorator_name(decorator) in _DECORATOR_NAMES:
            return decorator
    return None


def _string_argument(value: ast.expr, arg: str, label: str, path: Path | None) -> str:
    if isinstance(value, ast.Constant) and isinstance(value.value, str):
        return value.value
    raise SpecError.invalid(label, f"{arg} must be a string literal", path, value.lineno)


def _read_decorator(
    decorator: ast.expr, label: str, path: Path | None,
) -> tuple[str, str | None]:
    """Return ``(name, class_name)`` from the decorator arguments."""
    if not isinstance(decorator, ast.Call):
        raise SpecError.invalid(label, "entity_spec requires a name argument", path, decorator.lineno)
    values: dict[str, ast.expr] = {}
    for arg, value in zip(("name", "class_name"), decorator.args):
        values[arg] = value
    if len(decorator.args) > 2:
        raise SpecError.invalid(label, "entity_spec takes at most two arguments", path, decorator.lineno)
    for keyword in decorator.keywords:
        if keyword.arg not in ("name", "class_name"):
            raise SpecError.invalid(
                label, f"unknown entity_spec argument {keyword.arg!r}", path, decorator.lineno,
            )
        if keyword.arg in values:
            raise SpecError.invalid(
                label, f"entity_spec got {keyword.arg} twice", path, decorator.lineno,
            )
        values[keyword.arg] = keyword.value

    if "name" not in values:
        raise SpecError.invalid(label, "entity_spec requires a name argument", path, decorator.lineno)
    name = _string_argument(values["name"], "name", label, path)
    if not name:
        raise SpecError.invalid(label, "name must not be empty", path, decorator.lineno)
    class_name = None
    if "class_name" in values:
        class_name = _string_argument(values["class_name"], "class_name", name, path) or None
    return name, class_name


def _read_spec(
    node: ast.ClassDef,
    decorator: ast.expr,
    module: str,
    package: str,
    path: Path | None,
    imports: ImportTable,
    aliases: dict[str, ast.expr],
) -> EntitySpec:
    spec_name, class_name = _read_decorator(decorator, node.name, path)
    reader = _TypeReader(imports, aliases, spec_name, path)

    fields: list[FieldDecl] = []
    for stmt in node.body:
        if not isinstance(stmt, ast.AnnAssign) or not isinstance(stmt.target, ast.Name):
            continue
        annotation = stmt.annotation
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            annotation = reader.parse_string(annotation.value, stmt.lineno)
        if reader.is_classvar(annotation):
            continue
        is_id = _is_id_marker(stmt.value)
        if isinstance(annotation, ast.Subscript) and reader.head_qualified(annotation.value) in _ANNOTATED:
            metadata = _subscript_args(annotation)
            is_id = is_id or any(_is_id_marker(m) for m in metadata[1:])
        declared = reader.read(annotation)
        fields.append(FieldDecl(stmt.target.id, declared, is_id, stmt.lineno))

    ids = [f.name for f in fields if f.is_id]
    if not ids:
        raise SpecError.missing_id(spec_name, path, node.lineno)
    if len(ids) > 1:
        raise SpecError.multiple_ids(spec_name, ids, path, node.lineno)

    logger.debug("Read spec %s with %d fields", spec_name, len(fields), extra={"spec": spec_name})
    return EntitySpec(
        package=package,
        module=module,
        spec_name=spec_name,
        class_name=class_name,
        id_field=ids[0],
        fields=tuple(fields),
        path=path,
        lineno=node.lineno,
        imports=imports,
    )


def _is_id_marker(node: ast.expr | None) -> bool:
    if node is None:
        return False
    return _decorator_name(node) in _ID_MARKERS


def _subscript_args(node: ast.Subscript) -> list[ast.expr]:
    if isinstance(node.slice, ast.Tuple):
        return list(node.slice.elts)
    return [node.slice]


def _root_names(node: ast.expr) -> frozenset[str]:
    return frozenset(n.id for n in ast.walk(node) if isinstance(n, ast.Name))


class _TypeReader:
    """Turns annotation expressions into ``DeclaredType`` trees."""

    def __init__(
        self,
        imports: ImportTable,
        aliases: dict[str, ast.expr],
        spec_name: str,
        path: Path | None,
    ) -> None:
        self.imports = imports
        self.aliases = aliases
        self.spec_name = spec_name
        self.path = path
        self._visiting: list[str] = []

    def parse_string(self, text: str, lineno: int | None) -> ast.expr:
        """Parse a forward reference written as a string."""
        try:
            return ast.parse(text.strip(), mode="eval").body
        except SyntaxError:
            raise SpecError.invalid(
                self.spec_name, f"cannot parse annotation {text!r}", self.path, lineno,
            ) from None

    def head_qualified(self, node: ast.expr) -> str:
        if isinstance(node, ast.Name) and node.id in self.aliases:
            target = self.aliases[node.id]
            if isinstance(target, (ast.Name, ast.Attribute)) and node.id not in self._visiting:
                return self.head_qualified(target)
        if isinstance(node, (ast.Name, ast.Attribute)):
            return self.imports.qualify(ast.unparse(node))
        return ""

    def is_classvar(self, node: ast.expr) -> bool:
        head = node.value if isinstance(node, ast.Subscript) else node
        return self.head_qualified(head) in _CLASSVAR

    def read(self, node: ast.expr) -> DeclaredType:
        lineno = getattr(node, "lineno", None)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                return self.read(self.parse_string(node.value, lineno))
            if node.value is None:
                return DeclaredType("None", "None", "builtins.None")
            if node.value is Ellipsis:
                return DeclaredType("...", "...", "builtins.Ellipsis")
            raise SpecError.invalid(
                self.spec_name, f"unsupported annotation {ast.unparse(node)}", self.path, lineno,
            )
        if isinstance(node, ast.Name):
            if node.id in self.aliases:
                return self._expand_alias(node.id, lineno)
            return DeclaredType(node.id, node.id, self.imports.qualify(node.id), (), frozenset({node.id}))
        if isinstance(node, ast.Attribute):
            dotted = ast.unparse(node)
            roots = _root_names(node)
            if not roots:
                raise SpecError.invalid(
                    self.spec_name, f"unsupported annotation {dotted}", self.path, lineno,
                )
            return DeclaredType(dotted, dotted, self.imports.qualify(dotted), (), roots)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._read_union(node)
        if isinstance(node, ast.Subscript):
            return self._read_subscript(node)
        if isinstance(node, ast.List):
            # Callable argument lists and similar stay opaque
            text = ast.unparse(node)
            return DeclaredType(text, text, "", (), _root_names(node))
        raise SpecError.invalid(
            self.spec_name, f"unsupported annotation {ast.unparse(node)}", self.path, lineno,
        )

    def _expand_alias(self, name: str, lineno: int | None) -> DeclaredType:
        if name in self._visiting:
            cycle = " -> ".join(self._visiting + [name])
            raise SpecError.invalid(self.spec_name, f"cyclic type alias {cycle}", self.path, lineno)
        self._visiting.append(name)
        try:
            return self.read(self.aliases[name])
        finally:
            self._visiting.pop()

    def _read_union(self, node: ast.BinOp) -> DeclaredType:
        args: list[DeclaredType] = []
        for side in (node.left, node.right):
            declared = self.read(side)
            if declared.raw == "|":
                args.extend(declared.args)
            else:
                args.append(declared)
        names = frozenset().union(*(a.names for a in args))
        return DeclaredType(" | ".join(a.text for a in args), "|", "|", tuple(args), names)

    def _read_subscript(self, node: ast.Subscript) -> DeclaredType:
        head = self.read(node.value)
        if head.args:
            raise SpecError.invalid(
                self.spec_name,
                f"unsupported annotation {ast.unparse(node)}",
                self.path,
                node.lineno,
            )
        if head.qualified in _ANNOTATED:
            return self.read(_subscript_args(node)[0])
        if head.qualified in _LITERAL:
            return DeclaredType(ast.unparse(node), head.raw, head.qualified, (), head.names)
        args = tuple(self.read(arg) for arg in _subscript_args(node))
        text = f"{head.text}[{', '.join(a.text for a in args)}]"
        names = head.names.union(*(a.names for a in args))
        return DeclaredType(text, head.raw, head.qualified, args, names)
