"""Lexical scope analysis over a Python module AST."""

from __future__ import annotations

import ast
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from callograph.languages.models import Binding, BindingKind, SourceFile

FunctionLike = ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda


class ScopeKind(Enum):
    """Types of lexical scopes."""

    MODULE = "module"
    CLASS = "class"
    FUNCTION = "function"
    COMPREHENSION = "comprehension"


@dataclass(eq=False)
class Scope:
    """A lexical scope and the names bound in it."""

    kind: ScopeKind
    node: ast.AST
    file: SourceFile
    parent: Scope | None = None
    bindings: dict[str, list[Binding]] = field(default_factory=lambda: defaultdict(list))
    global_names: set[str] = field(default_factory=set)
    nonlocal_names: set[str] = field(default_factory=set)
    # Class scopes only: attr -> values assigned to `self.attr` inside methods
    instance_attrs: dict[str, list[tuple[ast.expr, Scope]]] = field(
        default_factory=lambda: defaultdict(list)
    )
    receiver: str | None = None

    @property
    def module_scope(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    def bind(self, binding: Binding) -> None:
        self.bindings[binding.name].append(binding)

    def lookup(self, name: str) -> Scope | None:
        """Find the scope that binds a name, following Python's LEGB rules.

        Class scopes are only consulted for code written directly in the
        class body. Returns None for builtins and undefined names.
        """
        if name in self.global_names:
            return self.module_scope
        if name in self.nonlocal_names:
            return self._enclosing_function_binding(name)
        if name in self.bindings:
            return self
        scope = self.parent
        while scope is not None:
            if scope.kind == ScopeKind.CLASS:
                scope = scope.parent
                continue
            if name in scope.global_names:
                return self.module_scope
            if name in scope.bindings or name in scope.nonlocal_names:
                return scope.lookup(name)
            scope = scope.parent
        return None

    def _enclosing_function_binding(self, name: str) -> Scope | None:
        scope = self.parent
        while scope is not None and scope.kind != ScopeKind.MODULE:
            if scope.kind != ScopeKind.CLASS and (
                name in scope.bindings or name in scope.nonlocal_names
            ):
                return scope.lookup(name)
            scope = scope.parent
        return None


def receiver_name(node: FunctionLike, in_class: bool) -> str | None:
    """Name of the implicit receiver parameter (self/cls) of a method, if any."""
    if not in_class:
        return None
    if not isinstance(node, ast.Lambda):
        for decorator in node.decorator_list:
            if isinstance(decorator, ast.Name) and decorator.id == "staticmethod":
                return None
    positional = node.args.posonlyargs + node.args.args
    return positional[0].arg if positional else None


def is_classmethod(node: ast.AST) -> bool:
    if not isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
        return False
    return any(
        isinstance(decorator, ast.Name) and decorator.id == "classmethod"
        for decorator in node.decorator_list
    )


class ScopeTable:
    """Scopes of one module plus the node -> scope index."""

    def __init__(self, file: SourceFile) -> None:
        self.file = file
        self.module = Scope(ScopeKind.MODULE, file.tree, file)
        self.scope_of: dict[ast.AST, Scope] = {}
        # Scope owned by a function, lambda, class or comprehension node
        self.owned: dict[ast.AST, Scope] = {file.tree: self.module}

    @classmethod
    def build(cls, file: SourceFile) -> ScopeTable:
        table = cls(file)
        _ScopeBuilder(table).visit(file.tree)
        return table


class _ScopeBuilder(ast.NodeVisitor):
    """AST visitor that records bindings and the enclosing scope of every node."""

    def __init__(self, table: ScopeTable) -> None:
        self._table = table
        self._scope = table.module

    def visit(self, node: ast.AST) -> None:
        self._table.scope_of[node] = self._scope
        super().visit(node)

    def _visit_all(self, nodes: list[ast.AST] | list[ast.expr] | list[ast.stmt]) -> None:
        for node in nodes:
            self.visit(node)

    def _push(self, kind: ScopeKind, node: ast.AST) -> Scope:
        scope = Scope(kind, node, self._table.file, parent=self._scope)
        self._table.owned[node] = scope
        self._scope = scope
        return scope

    def _pop(self, scope: Scope) -> None:
        self._scope = scope.parent or self._table.module

    def visit_Module(self, node: ast.Module) -> None:
        self._visit_all(node.body)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._visit_all(node.decorator_list)
        self._visit_arguments_outer(node.args)
        if node.returns is not None:
            self.visit(node.returns)
        self._scope.bind(Binding(node.name, BindingKind.FUNCTION, node))

        in_class = self._scope.kind == ScopeKind.CLASS
        scope = self._push(ScopeKind.FUNCTION, node)
        scope.receiver = receiver_name(node, in_class)
        self._bind_arguments(node.args)
        self._visit_all(node.body)
        self._pop(scope)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_arguments_outer(node.args)
        scope = self._push(ScopeKind.FUNCTION, node)
        self._bind_arguments(node.args)
        self.visit(node.body)
        self._pop(scope)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._visit_all(node.decorator_list)
        self._visit_all(node.bases)
        self._visit_all(node.keywords)
        self._scope.bind(Binding(node.name, BindingKind.CLASS, node))

        scope = self._push(ScopeKind.CLASS, node)
        self._visit_all(node.body)
        self._pop(scope)

    def _visit_arguments_outer(self, args: ast.arguments) -> None:
        """Defaults and annotations evaluate in the enclosing scope."""
        self._visit_all(args.defaults)
        self._visit_all([d for d in args.kw_defaults if d is not None])
        for arg in _all_args(args):
            self._table.scope_of[arg] = self._scope
            if arg.annotation is not None:
                self.visit(arg.annotation)

    def _bind_arguments(self, args: ast.arguments) -> None:
        for arg in _all_args(args):
            self._scope.bind(
                Binding(arg.arg, BindingKind.PARAMETER, arg, annotation=arg.annotation)
            )

    def visit_Global(self, node: ast.Global) -> None:
        self._scope.global_names.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._scope.nonlocal_names.update(node.names)

    def visit_Import(self, node: ast.Import) -> None:
        """Handle: import foo, import foo.bar, import foo as f"""
        for alias in node.names:
            self._table.scope_of[alias] = self._scope
            if alias.asname:
                local, target = alias.asname, alias.name
            else:
                local = alias.name.split(".")[0]
                target = local
            self._scope.bind(Binding(local, BindingKind.IMPORT, alias, target=target))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        """Handle: from foo import bar, from . import bar as b (star imports bind nothing)"""
        module = _resolve_relative_import(self._table.file, node.level, node.module or "")
        for alias in node.names:
            self._table.scope_of[alias] = self._scope
            if alias.name == "*":
                continue
            target = f"{module}.{alias.name}" if module else alias.name
            self._scope.bind(
                Binding(alias.asname or alias.name, BindingKind.IMPORT, alias, target=target)
            )

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self._bind_target(target, node.value)
            self._track_self_assignment(target, node.value)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.visit(node.annotation)
        if node.value is not None:
            self.visit(node.value)
        if isinstance(node.target, ast.Name):
            self._table.scope_of[node.target] = self._scope
            self._scope.bind(
                Binding(
                    node.target.id,
                    BindingKind.ASSIGNMENT,
                    node.target,
                    value=node.value,
                    annotation=node.annotation,
                )
            )
        else:
            self._bind_target(node.target, node.value)
        if node.value is not None:
            self._track_self_assignment(node.target, node.value)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        self._bind_target(node.target, None)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        # Walrus targets bind in the nearest enclosing non-comprehension scope
        scope = self._scope
        while scope.kind == ScopeKind.COMPREHENSION and scope.parent is not None:
            scope = scope.parent
        self._table.scope_of[node.target] = self._scope
        scope.bind(Binding(node.target.id, BindingKind.ASSIGNMENT, node.target, value=node.value))

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            self._bind_target(target, None)

    def visit_For(self, node: ast.For) -> None:
        self._visit_loop(node)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._visit_loop(node)

    def _visit_loop(self, node: ast.For | ast.AsyncFor) -> None:
        self.visit(node.iter)
        self._bind_target(node.target, None)
        self._visit_all(node.body)
        self._visit_all(node.orelse)

    def visit_With(self, node: ast.With) -> None:
        self._visit_with(node)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> None:
        self._visit_with(node)

    def _visit_with(self, node: ast.With | ast.AsyncWith) -> None:
        for item in node.items:
            self._table.scope_of[item] = self._scope
            self.visit(item.context_expr)
            if item.optional_vars is not None:
                self._bind_target(item.optional_vars, None)
        self._visit_all(node.body)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name:
            self._scope.bind(Binding(node.name, BindingKind.OTHER, node))
        self._visit_all(node.body)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name:
            self._scope.bind(Binding(node.name, BindingKind.OTHER, node))
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self._scope.bind(Binding(node.name, BindingKind.OTHER, node))

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        if node.rest:
            self._scope.bind(Binding(node.rest, BindingKind.OTHER, node))
        self.generic_visit(node)

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node, [node.elt])

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])

    def _visit_comprehension(
        self,
        node: ast.ListComp | ast.SetComp | ast.GeneratorExp | ast.DictComp,
        elements: list[ast.expr],
    ) -> None:
        # The first iterable is evaluated in the enclosing scope
        first, *rest = node.generators
        self.visit(first.iter)
        scope = self._push(ScopeKind.COMPREHENSION, node)
        for index, generator in enumerate(node.generators):
            self._table.scope_of[generator] = scope
            if index > 0:
                self.visit(generator.iter)
            self._bind_target(generator.target, None)
            self._visit_all(generator.ifs)
        self._visit_all(elements)
        self._pop(scope)

    def _bind_target(self, target: ast.expr, value: ast.expr | None) -> None:
        """Bind plain names in an assignment target and visit the rest of it."""
        self._table.scope_of[target] = self._scope
        if isinstance(target, ast.Name):
            self._scope.bind(Binding(target.id, BindingKind.ASSIGNMENT, target, value=value))
        elif isinstance(target, ast.Tuple | ast.List):
            for element in target.elts:
                self._bind_target(element, None)
        elif isinstance(target, ast.Starred):
            self._bind_target(target.value, None)
        else:
            self.visit(target)

    def _track_self_assignment(self, target: ast.expr, value: ast.expr) -> None:
        """Track self.x = value assignments inside methods for attribute inference."""
        scope = self._scope
        if scope.kind != ScopeKind.FUNCTION or scope.receiver is None:
            return
        if scope.parent is None or scope.parent.kind != ScopeKind.CLASS:
            return
        if not isinstance(target, ast.Attribute):
            return
        if not isinstance(target.value, ast.Name) or target.value.id != scope.receiver:
            return
        scope.parent.instance_attrs[target.attr].append((value, scope))


def _all_args(args: ast.arguments) -> list[ast.arg]:
    result = list(args.posonlyargs) + list(args.args)
    if args.vararg is not None:
        result.append(args.vararg)
    result.extend(args.kwonlyargs)
    if args.kwarg is not None:
        result.append(args.kwarg)
    return result


def parameter_args(node: FunctionLike) -> list[ast.arg]:
    """Declared parameters in signature order."""
    return _all_args(node.args)


def parameter_names(node: FunctionLike) -> list[str]:
    return [arg.arg for arg in parameter_args(node)]


def _resolve_relative_import(file: SourceFile, level: int, module: str) -> str:
    """Resolve a relative import to an absolute module path."""
    if level == 0:
        return module
    parts = file.module.split(".") if file.module else []
    if not file.is_package:
        parts = parts[:-1]
    if level > 1:
        parts = parts[: len(parts) - (level - 1)] if len(parts) >= level - 1 else []
    if module:
        parts.append(module)
    return ".".join(parts)
