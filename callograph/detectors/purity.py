"""Local purity detector.

Each function body (nested functions and lambdas included) is scanned for
side effects. Reasons are recorded once each, in order of first detection.
Findings are local; transitive impurity is added later by
``callograph.core.graph.propagation.propagate_impurity``.
"""

from __future__ import annotations

import ast
import logging
from typing import TYPE_CHECKING

from callograph.core.models import PurityResult
from callograph.detectors import registry
from callograph.languages.scopes import parameter_args

if TYPE_CHECKING:
    from callograph.core.models import FunctionNode
    from callograph.languages.base import SourceModel

log = logging.getLogger(__name__)


def analyze_purity(model: SourceModel, functions: list[FunctionNode]) -> list[PurityResult]:
    """Run the purity rules over every function of the inventory.

    Args:
        model: Source model the functions were collected from
        functions: Function inventory

    Returns:
        One PurityResult per function, in inventory order
    """
    results: list[PurityResult] = []
    for fn in functions:
        result = PurityResult(
            id=fn.id,
            name=fn.name,
            file=fn.file,
            line=fn.line,
            character=fn.character,
            is_pure=True,
        )
        _PurityVisitor(model, fn, result).run()
        results.append(result)

    log.debug(
        "Purity: %d of %d functions locally impure",
        sum(1 for r in results if not r.is_pure),
        len(results),
    )
    return results


class _PurityVisitor(ast.NodeVisitor):
    """AST visitor that records the side effects of one function."""

    def __init__(self, model: SourceModel, fn: FunctionNode, result: PurityResult) -> None:
        self.model = model
        self.fn = fn
        self.result = result
        self._file = model.file_of(fn.node)
        # Parameter declarations, receiver excluded
        self._params: set[ast.arg] = {
            arg for arg in parameter_args(fn.node) if arg.arg != fn.receiver
        }
        self._param_names = {arg.arg for arg in self._params}

    def run(self) -> None:
        node = self.fn.node
        body: list[ast.AST] = [node.body] if isinstance(node, ast.Lambda) else list(node.body)
        try:
            for statement in body:
                self.visit(statement)
        except RecursionError:
            log.warning("Purity analysis of %s stopped early: nesting too deep", self.fn.id)

    def _mark(self, reason: str) -> None:
        self.result.add_reason(reason)

    # -- writes --------------------------------------------------------------

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            self._check_write(target)
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self._check_write(node.target)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self._check_write(node.target)
        self.generic_visit(node)

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            self._check_write(target)
        self.generic_visit(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._check_name_write(node.target, node.target.id)
        self.generic_visit(node)

    def visit_For(self, node: ast.For) -> None:
        self._check_write(node.target)
        self.generic_visit(node)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._check_write(node.target)
        self.generic_visit(node)

    def visit_withitem(self, node: ast.withitem) -> None:
        if node.optional_vars is not None:
            self._check_write(node.optional_vars)
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._check_name_write(alias, alias.asname or alias.name.split(".")[0])

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name != "*":
                self._check_name_write(alias, alias.asname or alias.name)

    def _check_write(self, target: ast.expr) -> None:
        if isinstance(target, ast.Tuple | ast.List):
            for element in target.elts:
                self._check_write(element)
            return
        if isinstance(target, ast.Starred):
            self._check_write(target.value)
            return

        root = _root_name(target)
        if root is not None and self._is_parameter(root):
            self._mark(registry.MUTATES_PARAMETER.format(name=root.id))

        if isinstance(target, ast.Name):
            self._check_name_write(target, target.id)
        elif root is not None and root.id == self.fn.receiver:
            path = _attribute_path(target)
            if path is not None and len(path) > 1:
                self._mark(
                    registry.MUTATES_RECEIVER.format(receiver=path[0], attr=".".join(path[1:]))
                )

    def _check_name_write(self, node: ast.AST, name: str) -> None:
        """Flag a binding of ``name`` whose declarations all lie outside the function."""
        symbol = self.model.resolve_binding(node, name)
        if symbol is None or not symbol.declarations:
            return
        outside = all(
            decl.file is not self._file or not decl.is_inside(self.fn.node)
            for decl in symbol.declarations
        )
        if outside:
            self._mark(registry.WRITES_OUTER_SCOPE.format(name=name))

    def _is_parameter(self, name: ast.Name) -> bool:
        if name.id not in self._param_names:
            return False
        symbol = self.model.resolve_symbol(name)
        if symbol is None:
            return True
        return any(decl.node in self._params for decl in symbol.declarations)

    # -- reads and calls -----------------------------------------------------

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            qualified = self.model.qualified_name(node)
            if qualified in registry.GLOBAL_OBJECTS:
                self._mark(registry.ACCESSES_GLOBAL.format(name=registry.GLOBAL_OBJECTS[qualified]))
            self._check_reference(qualified)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if isinstance(node.ctx, ast.Load):
            self._check_reference(self.model.qualified_name(node))
        self.generic_visit(node)

    def _check_reference(self, qualified: str | None) -> None:
        if qualified is None:
            return
        if qualified in registry.ENVIRON_NAMES:
            self._mark(registry.ACCESSES_ENVIRON)
        if any(
            qualified == stream or qualified.startswith(stream + ".")
            for stream in registry.CONSOLE_STREAMS
        ):
            self._mark(registry.WRITES_CONSOLE)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if isinstance(func, ast.Attribute) and func.attr in registry.MUTATING_METHODS:
            root = _root_name(func.value)
            if root is not None and self._is_parameter(root):
                self._mark(registry.MUTATES_PARAMETER_VIA.format(name=root.id, method=func.attr))

        qualified = self.model.qualified_name(func)
        if qualified is not None:
            if qualified in registry.CONSOLE_CALLS:
                self._mark(registry.WRITES_CONSOLE)
            if qualified in registry.ENVIRON_CALLS:
                self._mark(registry.ACCESSES_ENVIRON)
            if qualified in registry.NONDETERMINISTIC_CALLS:
                self._mark(registry.CALLS_NONDETERMINISTIC.format(name=qualified))
            if qualified in registry.CURRENT_TIME_CONSTRUCTORS:
                self._mark(
                    registry.INSTANTIATES_CURRENT_TIME.format(
                        name=registry.CURRENT_TIME_CONSTRUCTORS[qualified]
                    )
                )

        self.generic_visit(node)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self._check_name_write(node, node.name)
        if all(_is_placeholder(statement) for statement in node.body):
            self._mark(registry.EMPTY_EXCEPT)
        self.generic_visit(node)


def _root_name(expr: ast.expr) -> ast.Name | None:
    """Leftmost identifier of an attribute/subscript chain."""
    while isinstance(expr, ast.Attribute | ast.Subscript | ast.Starred):
        expr = expr.value
    return expr if isinstance(expr, ast.Name) else None


def _attribute_path(expr: ast.expr) -> list[str] | None:
    """Names of an attribute chain, subscripts dropped: self.a[k].b -> [self, a, b]."""
    parts: list[str] = []
    while True:
        if isinstance(expr, ast.Attribute):
            parts.append(expr.attr)
            expr = expr.value
        elif isinstance(expr, ast.Subscript):
            expr = expr.value
        elif isinstance(expr, ast.Name):
            parts.append(expr.id)
            return list(reversed(parts))
        else:
            return None


def _is_placeholder(statement: ast.stmt) -> bool:
    if isinstance(statement, ast.Pass):
        return True
    return (
        isinstance(statement, ast.Expr)
        and isinstance(statement.value, ast.Constant)
        and statement.value.value is Ellipsis
    )
