"""Call graph construction through the source model's call resolution."""

from __future__ import annotations

import ast
import logging
from typing import TYPE_CHECKING

from callograph.core.graph.base import CallGraph

if TYPE_CHECKING:
    from callograph.core.models import FunctionNode
    from callograph.languages.base import SourceModel

log = logging.getLogger(__name__)


def build_call_graph(model: SourceModel, functions: list[FunctionNode]) -> CallGraph:
    """Build the project call graph.

    Every call inside a function body (nested functions and lambdas included)
    is resolved through the model. An edge is kept only when the callee is
    declared in a project file and is itself in the inventory; unresolved,
    external, and stub-only targets are dropped silently.

    Args:
        model: Source model of the project
        functions: Function inventory

    Returns:
        CallGraph with one vertex per inventoried function
    """
    graph = CallGraph()
    decl_to_id: dict[ast.AST, str] = {}

    for fn in functions:
        graph.add_function(fn.id)
        decl_to_id[fn.node] = fn.id

    dropped = 0
    for fn in functions:
        for call in _calls_in(fn.node):
            declaration = model.resolve_call(call)
            if declaration is None or not declaration.is_project:
                dropped += 1
                continue
            callee_id = decl_to_id.get(declaration.node)
            if callee_id is None:
                dropped += 1
                continue
            graph.add_edge(fn.id, callee_id)

    log.debug("Built %r (%d calls without a project target)", graph, dropped)
    return graph


def _calls_in(node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda) -> list[ast.Call]:
    """All call expressions in a function body, in source order."""
    body: list[ast.AST] = [node.body] if isinstance(node, ast.Lambda) else list(node.body)
    calls: list[ast.Call] = []
    for statement in body:
        for child in ast.walk(statement):
            if isinstance(child, ast.Call):
                calls.append(child)
    calls.sort(key=lambda c: (c.lineno, c.col_offset))
    return calls
