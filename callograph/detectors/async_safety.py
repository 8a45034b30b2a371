"""Local async-safety detector.

A single depth-first walk per function classifies calls whose result is
awaitable, ``asyncio.gather`` calls, async callbacks handed to iteration
helpers or event-listener registrations, and empty errbacks. Context is
threaded through the walk as explicit parameters:

    parent, grandparent  syntactic context of the current node
    in_loop              inside for / async for / while / a comprehension
    own_scope            not inside a nested function or lambda

Suspension points and try/except boundaries are only counted in the
function's own scope; everything else is reported for nested code too.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from callograph.core.models import AsyncIssue, AsyncResult, Severity
from callograph.detectors import registry

if TYPE_CHECKING:
    from callograph.core.models import FunctionNode
    from callograph.languages.base import SourceModel

log = logging.getLogger(__name__)

_LOOPS = (ast.For, ast.AsyncFor, ast.While)
_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
_FUNCTIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)

# Parents that take ownership of a call's result
_CONSUMERS = (
    ast.Await,
    ast.Return,
    ast.Yield,
    ast.YieldFrom,
    ast.Assign,
    ast.AnnAssign,
    ast.AugAssign,
    ast.NamedExpr,
    ast.Call,
    ast.keyword,
    ast.Lambda,
    ast.List,
    ast.Tuple,
    ast.Set,
    ast.Dict,
    ast.Starred,
    ast.comprehension,
    ast.withitem,
    *_COMPREHENSIONS,
)


@dataclass
class AsyncFlowAnalysis:
    """Local async findings of one function.

    ``returns_awaitable`` and ``awaitable_calls`` describe what the body calls
    rather than what is wrong with it. Propagation and the report do not read
    them; they are kept for library callers that want to walk awaitable edges.
    """

    issues: list[AsyncIssue] = field(default_factory=list)
    # True if the body calls anything whose result is awaitable
    returns_awaitable: bool = False
    awaitable_calls: list[str] = field(default_factory=list)

    def mark(self, message: str, severity: Severity) -> None:
        if any(issue.message == message for issue in self.issues):
            return
        self.issues.append(AsyncIssue(message, severity))


def analyze_async(model: SourceModel, functions: list[FunctionNode]) -> list[AsyncResult]:
    """Run the async-safety rules over every function of the inventory.

    Args:
        model: Source model the functions were collected from
        functions: Function inventory

    Returns:
        One AsyncResult per function (possibly without issues), in inventory order
    """
    ids = {fn.node: fn.id for fn in functions}
    results: list[AsyncResult] = []

    for fn in functions:
        analysis = analyze_function_async(fn, model, ids)
        results.append(
            AsyncResult(
                id=fn.id,
                name=fn.name,
                file=fn.file,
                line=fn.line,
                character=fn.character,
                issues=list(analysis.issues),
                awaitable_calls=list(analysis.awaitable_calls),
            )
        )

    log.debug(
        "Async: %d of %d functions with local issues",
        sum(1 for r in results if r.issues),
        len(results),
    )
    return results


def analyze_function_async(
    fn: FunctionNode,
    model: SourceModel,
    ids: Mapping[ast.AST, str] | None = None,
) -> AsyncFlowAnalysis:
    """Analyze one function.

    Args:
        fn: Function to analyze
        model: Source model providing resolution and awaitable checks
        ids: Declaration node -> inventory id, used to record awaitable callees

    Returns:
        AsyncFlowAnalysis with the function's local findings
    """
    walker = _AsyncWalker(fn, model, ids or {})
    walker.run()
    return walker.analysis


class _AsyncWalker:
    """Depth-first walk over one function body."""

    def __init__(self, fn: FunctionNode, model: SourceModel, ids: Mapping[ast.AST, str]) -> None:
        self.fn = fn
        self.model = model
        self.ids = ids
        self.analysis = AsyncFlowAnalysis()
        self._contains_await = False
        self._has_boundary = False

    def run(self) -> None:
        node = self.fn.node
        body: list[ast.AST] = [node.body] if isinstance(node, ast.Lambda) else list(node.body)
        try:
            for child in body:
                self._visit(child, node, None, in_loop=False, own_scope=True)
        except RecursionError:
            log.warning("Async analysis of %s stopped early: nesting too deep", self.fn.id)

        if (
            isinstance(node, ast.AsyncFunctionDef)
            and self._contains_await
            and not self._has_boundary
        ):
            self.analysis.mark(registry.MISSING_ERROR_BOUNDARY, Severity.WARNING)

    def _visit(
        self,
        node: ast.AST,
        parent: ast.AST | None,
        grandparent: ast.AST | None,
        in_loop: bool,
        own_scope: bool,
    ) -> None:
        if own_scope:
            if _is_suspension_point(node):
                self._contains_await = True
            if isinstance(node, ast.Try | ast.TryStar) and node.handlers:
                self._has_boundary = True

        if isinstance(node, ast.Call):
            self._check_call(node, parent, grandparent, in_loop)

        child_in_loop = in_loop or isinstance(node, _LOOPS + _COMPREHENSIONS)
        child_own_scope = own_scope and not isinstance(node, _FUNCTIONS)
        for child in ast.iter_child_nodes(node):
            self._visit(child, node, parent, child_in_loop, child_own_scope)

    def _check_call(
        self,
        call: ast.Call,
        parent: ast.AST | None,
        grandparent: ast.AST | None,
        in_loop: bool,
    ) -> None:
        consumed = _is_consumed(call, parent, grandparent)

        if self.model.is_awaitable(call):
            self.analysis.returns_awaitable = True
            if not consumed:
                if in_loop:
                    self.analysis.mark(registry.FLOATING_AWAITABLE_IN_LOOP, Severity.WARNING)
                else:
                    self.analysis.mark(registry.FLOATING_AWAITABLE, Severity.ERROR)
            self._record_awaitable_callee(call)

        qualified = self.model.qualified_name(call.func)

        if qualified in registry.GATHER_CALLS and not consumed:
            self.analysis.mark(registry.UNAWAITED_GATHER, Severity.ERROR)
            if any(self.model.is_awaitable(element) for element in _gathered(call)):
                self.analysis.mark(registry.GATHER_UNHANDLED, Severity.ERROR)

        callback = self._iteration_callback(call, qualified)
        if callback is not None and self.model.is_async_callable(callback):
            self.analysis.mark(registry.ASYNC_ITERATION_CALLBACK, Severity.WARNING)

        handler = self._event_handler(call, qualified)
        if handler is not None and self.model.is_async_callable(handler):
            self.analysis.mark(registry.ASYNC_EVENT_LISTENER, Severity.WARNING)

        if isinstance(call.func, ast.Attribute):
            index = registry.REJECTION_HANDLER_METHODS.get(call.func.attr)
            errback = _argument(call, index)
            if errback is not None and _is_empty_handler(errback):
                self.analysis.mark(registry.ERROR_SWALLOWED_ERRBACK, Severity.ERROR)

    def _record_awaitable_callee(self, call: ast.Call) -> None:
        declaration = self.model.resolve_call(call)
        if declaration is None or not declaration.is_project:
            return
        callee_id = self.ids.get(declaration.node)
        if callee_id is not None and callee_id not in self.analysis.awaitable_calls:
            self.analysis.awaitable_calls.append(callee_id)

    def _iteration_callback(self, call: ast.Call, qualified: str | None) -> ast.expr | None:
        if qualified in registry.ITERATION_CALLS:
            return _argument(call, registry.ITERATION_CALLS[qualified])
        if isinstance(call.func, ast.Attribute) and call.func.attr in registry.ITERATION_METHODS:
            return _argument(call, 0)
        return None

    def _event_handler(self, call: ast.Call, qualified: str | None) -> ast.expr | None:
        if qualified in registry.EVENT_LISTENER_CALLS:
            return _argument(call, registry.EVENT_LISTENER_CALLS[qualified])
        if isinstance(call.func, ast.Attribute):
            return _argument(call, registry.EVENT_LISTENER_METHODS.get(call.func.attr))
        return None


def _is_suspension_point(node: ast.AST) -> bool:
    if isinstance(node, ast.Await | ast.AsyncFor | ast.AsyncWith):
        return True
    return isinstance(node, ast.comprehension) and bool(node.is_async)


def _is_consumed(call: ast.Call, parent: ast.AST | None, grandparent: ast.AST | None) -> bool:
    """Check whether something takes ownership of a call's result."""
    if isinstance(parent, _CONSUMERS):
        return True
    # fetch().add_done_callback(...)
    return (
        isinstance(parent, ast.Attribute)
        and parent.attr in registry.CHAIN_METHODS
        and isinstance(grandparent, ast.Call)
        and grandparent.func is parent
    )


def _gathered(call: ast.Call) -> Iterator[ast.expr]:
    """Awaitables handed to gather: direct arguments and literal list/tuple elements."""
    for arg in call.args:
        value = arg.value if isinstance(arg, ast.Starred) else arg
        if isinstance(value, ast.List | ast.Tuple):
            yield from value.elts
        elif not isinstance(arg, ast.Starred):
            yield arg


def _argument(call: ast.Call, index: int | None) -> ast.expr | None:
    if index is None or index >= len(call.args):
        return None
    arg = call.args[index]
    return None if isinstance(arg, ast.Starred) else arg


def _is_empty_handler(expr: ast.expr) -> bool:
    """A lambda that discards its input: ``lambda e: None`` or ``lambda e: ...``."""
    if not isinstance(expr, ast.Lambda):
        return False
    body = expr.body
    return isinstance(body, ast.Constant) and (body.value is None or body.value is Ellipsis)
