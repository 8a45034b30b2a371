"""Fixpoint propagation of local findings over the call graph.

All passes are monotone: facts are only added, and a function is enqueued
only when it gains a fact it did not have. Each (function, fact) pair is
therefore added at most once, which bounds the work even on cyclic graphs.
Ids present in the graph but absent from the result list are skipped.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from callograph.core.models import AsyncResult, PurityResult, Severity
from callograph.detectors.registry import AWAITABLE_MESSAGES

if TYPE_CHECKING:
    from callograph.core.graph.base import CallGraph

CALLS_IMPURE = "Calls impure function"
CALLS_ASYNC_UNSAFE = "Calls async-unsafe function"
CALLS_AWAITABLE_WITHOUT_AWAIT = "Calls awaitable-returning function without await"


def propagate_impurity(graph: CallGraph, purity: list[PurityResult]) -> list[PurityResult]:
    """Mark every transitive caller of an impure function as impure.

    BFS over reverse edges, seeded with the locally impure functions.
    """
    by_id = {r.id: r for r in purity}
    queue: deque[str] = deque(r.id for r in purity if not r.is_pure)

    while queue:
        impure_id = queue.popleft()
        for caller_id in graph.get_callers(impure_id):
            caller = by_id.get(caller_id)
            if caller is None or not caller.is_pure:
                continue
            caller.add_reason(CALLS_IMPURE)
            queue.append(caller_id)

    return purity


def propagate_async_risk(graph: CallGraph, results: list[AsyncResult]) -> list[AsyncResult]:
    """Flag every transitive caller of a function that has an error-severity issue."""
    by_id = {r.id: r for r in results}
    queue: deque[str] = deque(r.id for r in results if r.has_severity(Severity.ERROR))

    while queue:
        unsafe_id = queue.popleft()
        for caller_id in graph.get_callers(unsafe_id):
            caller = by_id.get(caller_id)
            if caller is None:
                continue
            if caller.add_issue(CALLS_ASYNC_UNSAFE, Severity.ERROR):
                queue.append(caller_id)

    return results


def propagate_async_returns(
    graph: CallGraph,
    results: list[AsyncResult],
    awaitable_messages: frozenset[str] = AWAITABLE_MESSAGES,
) -> list[AsyncResult]:
    """Flag direct callers of functions carrying a floating/awaitable finding.

    Iterates all edges until a full pass adds nothing.

    Args:
        graph: Call graph
        results: Async results, updated in place
        awaitable_messages: Messages that count as awaitable-related findings
            (defaults to the floating and gather messages)
    """
    by_id = {r.id: r for r in results}
    changed = True

    while changed:
        changed = False
        for caller_id, callee_id in list(graph.edges()):
            caller = by_id.get(caller_id)
            callee = by_id.get(callee_id)
            if caller is None or callee is None:
                continue
            if not any(issue.message in awaitable_messages for issue in callee.issues):
                continue
            if caller.add_issue(CALLS_AWAITABLE_WITHOUT_AWAIT, Severity.ERROR):
                changed = True

    return results
