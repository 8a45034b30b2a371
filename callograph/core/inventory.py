"""Function inventory: every analyzable function-like unit of a project."""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from callograph.core.models import FunctionNode
from callograph.languages.python import is_dependency_path
from callograph.languages.scopes import parameter_names, receiver_name

if TYPE_CHECKING:
    from callograph.languages.base import SourceModel
    from callograph.languages.models import SourceFile

log = logging.getLogger(__name__)


def collect_functions(
    model: SourceModel,
    ignore_patterns: Iterable[str] = (),
) -> list[FunctionNode]:
    """Collect functions, methods, and assigned lambdas of all project files.

    Stubs and files under dependency/vendor directories are always skipped;
    then any file whose path contains one of the ignore patterns.

    Args:
        model: Source model of the project
        ignore_patterns: Substrings matched against forward-slash paths

    Returns:
        FunctionNodes in file order, then source order
    """
    patterns = [p.replace("\\", "/") for p in ignore_patterns if p]
    functions: list[FunctionNode] = []

    for file in model.files:
        if not file.is_project or is_dependency_path(file.relative):
            continue
        normalized = file.relative.replace("\\", "/")
        if any(pattern in normalized for pattern in patterns):
            log.debug("Ignoring %s", normalized)
            continue

        visitor = _FunctionCollector(file)
        visitor.visit(file.tree)
        functions.extend(visitor.functions)

    log.debug("Collected %d functions", len(functions))
    return functions


def anonymous_name(file: SourceFile, node: ast.AST) -> str:
    """Synthesized display name for an unnamed function."""
    line, character = file.position(node)
    return f"<anonymous@{line}:{character}>"


class _FunctionCollector(ast.NodeVisitor):
    """AST visitor that records function-like declarations in source order."""

    def __init__(self, file: SourceFile) -> None:
        self.file = file
        self.functions: list[FunctionNode] = []
        self._in_class = False

    def _add(self, node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda, name: str) -> None:
        line, character = self.file.position(node)
        self.functions.append(
            FunctionNode(
                id=f"{self.file.relative}:{self.file.offset(node)}:{name}",
                name=name,
                file=self.file.relative,
                line=line,
                character=character,
                parameters=parameter_names(node),
                node=node,
                receiver=receiver_name(node, self._in_class),
                is_async=isinstance(node, ast.AsyncFunctionDef),
            )
        )

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        old = self._in_class
        self._in_class = True
        for statement in node.body:
            self.visit(statement)
        self._in_class = old
        for child in node.decorator_list + node.bases:
            self._visit_outside_class(child)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._add(node, node.name)
        old = self._in_class
        self._in_class = False
        self.generic_visit(node)
        self._in_class = old

    def visit_Assign(self, node: ast.Assign) -> None:
        if isinstance(node.value, ast.Lambda) and len(node.targets) == 1:
            self._add_lambda(node.value, node.targets[0])
            self._visit_lambda_body(node.value)
            for target in node.targets:
                self.visit(target)
            return
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if isinstance(node.value, ast.Lambda):
            self._add_lambda(node.value, node.target)
            self._visit_lambda_body(node.value)
            self.visit(node.target)
            return
        self.generic_visit(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        # Lambdas outside assignments are part of their enclosing function
        self._visit_lambda_body(node)

    def _visit_lambda_body(self, node: ast.Lambda) -> None:
        old = self._in_class
        self._in_class = False
        self.generic_visit(node)
        self._in_class = old

    def _visit_outside_class(self, node: ast.AST) -> None:
        old = self._in_class
        self._in_class = False
        self.visit(node)
        self._in_class = old

    def _add_lambda(self, node: ast.Lambda, target: ast.expr) -> None:
        if isinstance(target, ast.Name):
            name = target.id
        elif isinstance(target, ast.Attribute):
            name = target.attr
        else:
            name = anonymous_name(self.file, node)
        self._add(node, name)
