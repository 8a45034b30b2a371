"""Source model for Python projects, built on the ast module.

Resolution is intentionally light: names follow Python's scoping rules and
imports, attributes follow modules, classes (with project base classes) and
instances whose class is known from a constructor call, a parameter
annotation, a return annotation, or a ``self.attr = ...`` assignment.
Anything else is unresolved.
"""

from __future__ import annotations

import ast
import builtins
import io
import logging
import os
import tokenize
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from callograph.core.exceptions import ParseError
from callograph.languages.models import (
    Binding,
    BindingKind,
    Declaration,
    SourceFile,
    Symbol,
)
from callograph.languages.scopes import Scope, ScopeTable, is_classmethod

if TYPE_CHECKING:
    from callograph.core.config import AnalysisConfig

log = logging.getLogger(__name__)

# Directories never loaded (environments, caches, build output)
PRUNED_DIRS = frozenset(
    {
        "__pycache__",
        "site-packages",
        "dist-packages",
        "node_modules",
        "__pypackages__",
        "venv",
        "build",
        "dist",
    }
)

# Directories loaded for resolution but never treated as project code
VENDOR_DIRS = frozenset({"vendor", "_vendor", "vendored", "third_party"})

SOURCE_SUFFIXES = (".py", ".pyi")

# Library calls whose result is awaitable
AWAITABLE_CALLS = frozenset(
    {
        "asyncio.sleep",
        "asyncio.gather",
        "asyncio.wait",
        "asyncio.wait_for",
        "asyncio.shield",
        "asyncio.create_task",
        "asyncio.ensure_future",
        "asyncio.to_thread",
        "asyncio.wrap_future",
        "asyncio.open_connection",
        "asyncio.open_unix_connection",
        "asyncio.start_server",
        "asyncio.create_subprocess_exec",
        "asyncio.create_subprocess_shell",
        "asyncio.AbstractEventLoop.run_in_executor",
        "asyncio.AbstractEventLoop.create_task",
        "asyncio.AbstractEventLoop.sock_recv",
        "asyncio.AbstractEventLoop.sock_sendall",
        "anyio.sleep",
        "trio.sleep",
    }
)

# Library calls with a known (non-awaitable) result type
RETURN_TYPES: Mapping[str, str] = {
    "asyncio.get_event_loop": "asyncio.AbstractEventLoop",
    "asyncio.get_running_loop": "asyncio.AbstractEventLoop",
    "asyncio.new_event_loop": "asyncio.AbstractEventLoop",
}

# Return annotations marking a sync function as returning an awaitable
AWAITABLE_TYPE_NAMES = frozenset({"Awaitable", "Coroutine", "Future", "Task", "Deferred"})

_WRAPPER_ANNOTATIONS = frozenset({"Optional", "Annotated", "Final", "ClassVar"})

_MAX_DEPTH = 24


# ---------------------------------------------------------------------------
# Inferred values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Module:
    name: str


@dataclass(frozen=True)
class _Function:
    node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda
    file: SourceFile


@dataclass(frozen=True)
class _Class:
    node: ast.ClassDef
    file: SourceFile


@dataclass(frozen=True)
class _Instance:
    cls: _Class


@dataclass(frozen=True)
class _External:
    name: str


@dataclass(frozen=True)
class _Awaitable:
    pass


_Value = _Module | _Function | _Class | _Instance | _External | _Awaitable

_AWAITABLE = _Awaitable()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def is_dependency_path(relative: str) -> bool:
    """Check if a project-relative path lies in a dependency or vendor directory."""
    for part in PurePosixPath(relative.replace("\\", "/")).parts[:-1]:
        if part in PRUNED_DIRS or part in VENDOR_DIRS or part.endswith(".egg-info"):
            return True
        if part.startswith(".") and part not in (".", ".."):
            return True
    return False


def module_name(relative: str, source_roots: list[str] | tuple[str, ...] = ("src",)) -> str:
    """Convert a project-relative file path to a dotted module name."""
    path = relative.replace("\\", "/")
    for root in sorted(source_roots, key=len, reverse=True):
        prefix = root.strip("/") + "/"
        if prefix != "/" and path.startswith(prefix):
            path = path[len(prefix) :]
            break
    parts = list(PurePosixPath(path).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def parse_source(
    source: str,
    relative: str,
    source_roots: list[str] | tuple[str, ...] = ("src",),
    path: Path | None = None,
) -> SourceFile:
    """Parse source text into a SourceFile.

    Raises:
        ParseError: The source is not valid Python
    """
    try:
        tree = ast.parse(source, filename=relative)
    except (SyntaxError, ValueError) as e:
        raise ParseError(f"Syntax error in {relative}: {e}") from e
    except (RecursionError, MemoryError) as e:
        raise ParseError(f"Nesting too deep to parse in {relative}") from e

    return SourceFile(
        path=path or Path(relative),
        relative=relative,
        module=module_name(relative, source_roots),
        tree=tree,
        source=source,
        is_declaration=relative.endswith(".pyi"),
        is_dependency=is_dependency_path(relative),
        is_package=PurePosixPath(relative).stem == "__init__",
    )


def parse_file(path: Path, root: Path, source_roots: list[str] | tuple[str, ...]) -> SourceFile:
    """Read and parse a file of the project.

    Raises:
        ParseError: The file cannot be read or is not valid Python
    """
    relative = path.relative_to(root).as_posix()
    try:
        data = path.read_bytes()
        # Honors a UTF-8 BOM or a PEP 263 coding cookie
        encoding, _ = tokenize.detect_encoding(io.BytesIO(data).readline)
        source = data.decode(encoding)
    except (SyntaxError, UnicodeDecodeError, LookupError, OSError) as e:
        raise ParseError(f"Cannot read {relative}: {e}") from e
    return parse_source(source, relative, source_roots, path=path)


def discover_files(root: Path) -> Iterator[Path]:
    """Yield Python sources and stubs under root, skipping hidden and environment directories."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d
            for d in dirnames
            if not d.startswith(".") and d not in PRUNED_DIRS and not d.endswith(".egg-info")
        )
        for filename in sorted(filenames):
            if filename.endswith(SOURCE_SUFFIXES):
                yield Path(dirpath) / filename


# ---------------------------------------------------------------------------
# The model
# ---------------------------------------------------------------------------


class PythonSourceModel:
    """Source model over a set of parsed Python files."""

    def __init__(
        self,
        files: list[SourceFile],
        errors: list[ParseError] | None = None,
        root: Path | None = None,
    ) -> None:
        self.root = root
        self._files: list[SourceFile] = []
        self._errors: list[ParseError] = list(errors or [])

        self._scope_of: dict[ast.AST, Scope] = {}
        self._owned: dict[ast.AST, Scope] = {}
        self._modules: dict[str, ScopeTable] = {}
        self._packages: set[str] = set()
        self._cache: dict[ast.AST, _Value | None] = {}

        for file in sorted(files, key=lambda f: f.relative):
            try:
                table = ScopeTable.build(file)
            except RecursionError:
                error = ParseError(f"Nesting too deep to analyze in {file.relative}")
                log.warning("Skipping file: %s", error)
                self._errors.append(error)
                continue
            self._files.append(file)
            self._scope_of.update(table.scope_of)
            self._owned.update(table.owned)
            self._register_module(file, table)

    @classmethod
    def load(cls, config: AnalysisConfig) -> PythonSourceModel:
        """Discover and parse every source file of a project.

        Unreadable or syntactically invalid files are logged and recorded in
        ``errors``; they do not abort loading.
        """
        root = config.root
        files: list[SourceFile] = []
        errors: list[ParseError] = []

        for path in discover_files(root):
            try:
                files.append(parse_file(path, root, config.source_roots))
            except ParseError as e:
                log.warning("Skipping file: %s", e)
                errors.append(e)

        log.debug("Loaded %d files (%d skipped) from %s", len(files), len(errors), root)
        return cls(files, errors, root=root)

    @classmethod
    def from_sources(
        cls,
        sources: Mapping[str, str],
        source_roots: list[str] | tuple[str, ...] = ("src",),
    ) -> PythonSourceModel:
        """Build a model from in-memory sources keyed by relative path.

        Sources that fail to parse are recorded in ``errors``, as with ``load``.
        """
        files: list[SourceFile] = []
        errors: list[ParseError] = []
        for relative, source in sources.items():
            try:
                files.append(parse_source(source, relative, source_roots))
            except ParseError as e:
                errors.append(e)
        return cls(files, errors)

    def _register_module(self, file: SourceFile, table: ScopeTable) -> None:
        existing = self._modules.get(file.module)
        # Implementation files win over stubs for the same module
        if existing is None or (existing.file.is_declaration and not file.is_declaration):
            self._modules[file.module] = table
        parts = file.module.split(".")
        for i in range(1, len(parts)):
            self._packages.add(".".join(parts[:i]))

    # -- protocol ----------------------------------------------------------

    @property
    def files(self) -> list[SourceFile]:
        return self._files

    @property
    def errors(self) -> list[ParseError]:
        return self._errors

    def file_of(self, node: ast.AST) -> SourceFile | None:
        scope = self._scope_of.get(node)
        return scope.file if scope is not None else None

    def resolve_symbol(self, name: ast.Name) -> Symbol | None:
        return self.resolve_binding(name, name.id)

    def resolve_binding(self, node: ast.AST, name: str) -> Symbol | None:
        scope = self._scope_of.get(node)
        if scope is None:
            return None
        owner = scope.lookup(name)
        if owner is None:
            return None

        bindings = list(owner.bindings.get(name, []))
        if bindings:
            declarations = [Declaration(b.node, owner.file) for b in bindings]
        else:
            # `global x` without a module-level binding: the module declares it
            declarations = [Declaration(owner.node, owner.file)]
        return Symbol(name, declarations, bindings)

    def resolve_call(self, call: ast.Call) -> Declaration | None:
        callee = self._infer_entry(call.func)
        function: _Function | None = None

        if isinstance(callee, _Function):
            function = callee
        elif isinstance(callee, _Class):
            member = self._class_member(callee, "__init__", 0)
            function = member if isinstance(member, _Function) else None
        elif isinstance(callee, _Instance):
            member = self._class_member(callee.cls, "__call__", 0)
            function = member if isinstance(member, _Function) else None

        if function is None:
            return None
        return Declaration(function.node, function.file)

    def qualified_name(self, expr: ast.expr) -> str | None:
        value = self._infer_entry(expr)
        if isinstance(value, _External | _Module):
            return value.name
        if isinstance(value, _Function | _Class) and not isinstance(value.node, ast.Lambda):
            return f"{value.file.module}.{value.node.name}"
        return None

    def is_awaitable(self, expr: ast.expr) -> bool:
        return self._is_awaitable_value(self._infer_entry(expr))

    def is_async_callable(self, expr: ast.expr) -> bool:
        value = self._infer_entry(expr)
        if not isinstance(value, _Function):
            return False
        node = value.node
        if isinstance(node, ast.AsyncFunctionDef):
            return not _is_generator(node)
        if isinstance(node, ast.Lambda):
            return self.is_awaitable(node.body)
        return False

    # -- inference ---------------------------------------------------------

    def _infer_entry(self, expr: ast.expr) -> _Value | None:
        if expr in self._cache:
            return self._cache[expr]
        scope = self._scope_of.get(expr)
        value = self._infer(expr, scope, 0) if scope is not None else None
        self._cache[expr] = value
        return value

    def _is_awaitable_value(self, value: _Value | None) -> bool:
        if isinstance(value, _Awaitable):
            return True
        if isinstance(value, _Instance):
            return self._class_member(value.cls, "__await__", 0) is not None
        return False

    def _infer(self, expr: ast.expr, scope: Scope, depth: int) -> _Value | None:
        if depth > _MAX_DEPTH:
            return None
        if isinstance(expr, ast.Name):
            return self._infer_name(expr.id, scope, depth + 1)
        if isinstance(expr, ast.Attribute):
            base = self._infer(expr.value, scope, depth + 1)
            return self._member(base, expr.attr, depth + 1) if base is not None else None
        if isinstance(expr, ast.Call):
            callee = self._infer(expr.func, scope, depth + 1)
            return self._call_result(callee, depth + 1) if callee is not None else None
        if isinstance(expr, ast.Lambda):
            return _Function(expr, scope.file)
        return None

    def _infer_name(self, name: str, scope: Scope, depth: int) -> _Value | None:
        owner = scope.lookup(name)
        if owner is None:
            if hasattr(builtins, name):
                return _External(f"builtins.{name}")
            return None
        bindings = owner.bindings.get(name)
        if not bindings:
            return None
        return self._infer_binding(bindings[-1], owner, depth + 1)

    def _infer_binding(self, binding: Binding, owner: Scope, depth: int) -> _Value | None:
        if depth > _MAX_DEPTH:
            return None

        node = binding.node
        if binding.kind == BindingKind.FUNCTION and isinstance(
            node, ast.FunctionDef | ast.AsyncFunctionDef
        ):
            return _Function(node, owner.file)

        if binding.kind == BindingKind.CLASS and isinstance(node, ast.ClassDef):
            return _Class(node, owner.file)

        if binding.kind == BindingKind.IMPORT and binding.target:
            return self._resolve_dotted(binding.target, depth + 1)

        if binding.kind == BindingKind.PARAMETER:
            if owner.receiver == binding.name and owner.parent is not None:
                if isinstance(owner.parent.node, ast.ClassDef):
                    cls = _Class(owner.parent.node, owner.file)
                    return cls if is_classmethod(owner.node) else _Instance(cls)
            if binding.annotation is not None:
                return self._infer_annotation(binding.annotation, depth + 1)
            return None

        if binding.kind == BindingKind.ASSIGNMENT:
            if binding.value is not None:
                value_scope = self._scope_of.get(binding.value, owner)
                return self._infer(binding.value, value_scope, depth + 1)
            if binding.annotation is not None:
                return self._infer_annotation(binding.annotation, depth + 1)
        return None

    def _infer_annotation(self, annotation: ast.expr, depth: int) -> _Value | None:
        scope = self._scope_of.get(annotation)
        expr = _unwrap_annotation(annotation)
        if scope is None or expr is None:
            return None
        value = self._infer(expr, scope, depth + 1)
        if isinstance(value, _Class):
            return _Instance(value)
        return None

    def _resolve_dotted(self, dotted: str, depth: int) -> _Value | None:
        """Resolve an absolute dotted name to a project value, or an external name."""
        parts = dotted.split(".")
        for i in range(len(parts), 0, -1):
            prefix = ".".join(parts[:i])
            if prefix in self._modules or prefix in self._packages:
                value: _Value | None = _Module(prefix)
                for attr in parts[i:]:
                    if value is None:
                        return None
                    value = self._member(value, attr, depth + 1)
                return value
        return _External(dotted)

    def _member(self, base: _Value, attr: str, depth: int) -> _Value | None:
        if depth > _MAX_DEPTH:
            return None

        if isinstance(base, _Module):
            table = self._modules.get(base.name)
            if table is not None:
                bindings = table.module.bindings.get(attr)
                if bindings:
                    return self._infer_binding(bindings[-1], table.module, depth + 1)
            submodule = f"{base.name}.{attr}"
            if submodule in self._modules or submodule in self._packages:
                return _Module(submodule)
            return None

        if isinstance(base, _Class):
            return self._class_member(base, attr, depth + 1)

        if isinstance(base, _Instance):
            member = self._class_member(base.cls, attr, depth + 1)
            if member is not None:
                return member
            return self._instance_attribute(base.cls, attr, depth + 1)

        if isinstance(base, _External):
            return _External(f"{base.name}.{attr}")

        return None

    def _class_member(self, cls: _Class, attr: str, depth: int) -> _Value | None:
        for klass in self._mro(cls, depth + 1):
            scope = self._owned.get(klass.node)
            if scope is None:
                continue
            bindings = scope.bindings.get(attr)
            if bindings:
                return self._infer_binding(bindings[-1], scope, depth + 1)
        return None

    def _instance_attribute(self, cls: _Class, attr: str, depth: int) -> _Value | None:
        for klass in self._mro(cls, depth + 1):
            scope = self._owned.get(klass.node)
            if scope is None:
                continue
            for value, method_scope in scope.instance_attrs.get(attr, []):
                inferred = self._infer(value, method_scope, depth + 1)
                if inferred is not None:
                    return inferred
        return None

    def _mro(self, cls: _Class, depth: int) -> Iterator[_Class]:
        """Yield a class then its project base classes, depth first, each once."""
        seen: set[ast.ClassDef] = set()
        stack = [cls]
        while stack:
            klass = stack.pop()
            if klass.node in seen:
                continue
            seen.add(klass.node)
            yield klass
            outer = self._scope_of.get(klass.node)
            if outer is None or depth > _MAX_DEPTH:
                continue
            bases = [self._infer(base, outer, depth + 1) for base in klass.node.bases]
            stack.extend(reversed([b for b in bases if isinstance(b, _Class)]))

    def _call_result(self, callee: _Value, depth: int) -> _Value | None:
        if isinstance(callee, _Class):
            return _Instance(callee)

        if isinstance(callee, _Instance):
            member = self._class_member(callee.cls, "__call__", depth + 1)
            return self._call_result(member, depth + 1) if member is not None else None

        if isinstance(callee, _External):
            if callee.name in AWAITABLE_CALLS:
                return _AWAITABLE
            if callee.name in RETURN_TYPES:
                return _External(RETURN_TYPES[callee.name])
            return None

        if not isinstance(callee, _Function):
            return None

        node = callee.node
        if isinstance(node, ast.Lambda):
            body_scope = self._owned.get(node)
            return self._infer(node.body, body_scope, depth + 1) if body_scope else None
        if isinstance(node, ast.AsyncFunctionDef) and not _is_generator(node):
            return _AWAITABLE
        if node.returns is not None:
            if _annotation_is_awaitable(node.returns):
                return _AWAITABLE
            return self._infer_annotation(node.returns, depth + 1)
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_generator(node: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    """Check for yield in a function's own body (nested scopes excluded)."""
    stack: list[ast.AST] = list(node.body)
    while stack:
        child = stack.pop()
        if isinstance(child, ast.Yield | ast.YieldFrom):
            return True
        if isinstance(child, ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda | ast.ClassDef):
            continue
        stack.extend(ast.iter_child_nodes(child))
    return False


def _parse_string_annotation(annotation: ast.expr) -> ast.expr:
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        try:
            return ast.parse(annotation.value, mode="eval").body
        except SyntaxError:
            return annotation
    return annotation


def _annotation_tail(expr: ast.expr) -> str | None:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        return expr.attr
    if isinstance(expr, ast.Subscript):
        return _annotation_tail(expr.value)
    return None


def _unwrap_annotation(annotation: ast.expr) -> ast.expr | None:
    """Reduce an annotation to the expression naming its class (Optional/union/Annotated stripped)."""
    expr = _parse_string_annotation(annotation)
    if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
        left, right = expr.left, expr.right
        if isinstance(left, ast.Constant) and left.value is None:
            return _unwrap_annotation(right)
        return _unwrap_annotation(left)
    if isinstance(expr, ast.Subscript):
        if _annotation_tail(expr.value) in _WRAPPER_ANNOTATIONS:
            inner = expr.slice
            if isinstance(inner, ast.Tuple) and inner.elts:
                inner = inner.elts[0]
            return _unwrap_annotation(inner)
        return None
    if isinstance(expr, ast.Name | ast.Attribute):
        return expr
    return None


def _annotation_is_awaitable(annotation: ast.expr) -> bool:
    expr = _parse_string_annotation(annotation)
    if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
        return _annotation_is_awaitable(expr.left) or _annotation_is_awaitable(expr.right)
    return _annotation_tail(expr) in AWAITABLE_TYPE_NAMES
