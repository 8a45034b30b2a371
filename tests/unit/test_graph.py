"""Unit tests for the call graph and finding propagation."""

import pytest

from callograph.core.graph import (
    CallGraph,
    propagate_async_returns,
    propagate_async_risk,
    propagate_impurity,
)
from callograph.core.graph.propagation import (
    CALLS_ASYNC_UNSAFE,
    CALLS_AWAITABLE_WITHOUT_AWAIT,
    CALLS_IMPURE,
)
from callograph.core.models import AsyncResult, PurityResult, Severity
from callograph.detectors.registry import FLOATING_AWAITABLE, MISSING_ERROR_BOUNDARY


def make_purity(name: str, *reasons: str) -> PurityResult:
    """Create a test purity result."""
    return PurityResult(
        id=f"test.py:0:{name}",
        name=name,
        file="test.py",
        line=1,
        character=1,
        is_pure=not reasons,
        reasons=list(reasons),
    )


def make_async(name: str, *issues: tuple[str, Severity]) -> AsyncResult:
    """Create a test async result."""
    result = AsyncResult(id=f"test.py:0:{name}", name=name, file="test.py", line=1, character=1)
    for message, severity in issues:
        result.add_issue(message, severity)
    return result


def fid(name: str) -> str:
    return f"test.py:0:{name}"


@pytest.fixture
def linear_graph() -> CallGraph:
    """Create a linear graph: A -> B -> C -> D."""
    return CallGraph.from_mapping(
        {fid("A"): [fid("B")], fid("B"): [fid("C")], fid("C"): [fid("D")], fid("D"): []}
    )


@pytest.fixture
def cyclic_graph() -> CallGraph:
    """Create a graph with a cycle: A -> B -> A."""
    return CallGraph.from_mapping({fid("A"): [fid("B")], fid("B"): [fid("A")]})


class TestCallGraph:
    """Tests for the CallGraph class."""

    def test_add_function(self) -> None:
        graph = CallGraph()
        graph.add_function("a")
        assert "a" in graph
        assert graph.num_nodes == 1
        assert graph.get_callees("a") == []

    def test_add_edge(self) -> None:
        graph = CallGraph()
        assert graph.add_edge("a", "b") is True

        assert graph.get_callees("a") == ["b"]
        assert graph.get_callers("b") == ["a"]
        assert graph.num_edges == 1

    def test_duplicate_edges_collapse(self) -> None:
        graph = CallGraph()
        graph.add_edge("a", "b")
        assert graph.add_edge("a", "b") is False
        assert graph.num_edges == 1
        assert graph.out_degree("a") == 1
        assert graph.in_degree("b") == 1

    def test_self_loop_kept(self) -> None:
        graph = CallGraph()
        graph.add_edge("a", "a")
        assert graph.has_edge("a", "a")
        assert graph.get_callers("a") == ["a"]

    def test_unknown_function_lookups(self) -> None:
        graph = CallGraph()
        assert graph.get_callees("missing") == []
        assert graph.get_callers("missing") == []
        assert "missing" not in graph

    def test_edges_keep_insertion_order(self) -> None:
        graph = CallGraph()
        graph.add_edge("a", "c")
        graph.add_edge("a", "b")
        graph.add_edge("b", "c")
        assert list(graph.edges()) == [("a", "c"), ("a", "b"), ("b", "c")]

    def test_to_dict(self, linear_graph: CallGraph) -> None:
        mapping = linear_graph.to_dict()
        assert mapping[fid("A")] == [fid("B")]
        assert mapping[fid("D")] == []

    def test_repr(self, linear_graph: CallGraph) -> None:
        assert repr(linear_graph) == "CallGraph(nodes=4, edges=3)"


class TestImpurityPropagation:
    """Tests for transitive impurity."""

    def test_caller_of_impure_function(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("helper")]})
        purity = [make_purity("caller"), make_purity("helper", "Writes to console")]

        propagate_impurity(graph, purity)

        assert purity[0].is_pure is False
        assert purity[0].reasons == [CALLS_IMPURE]

    def test_transitive_closure(self, linear_graph: CallGraph) -> None:
        purity = [
            make_purity("A"),
            make_purity("B"),
            make_purity("C"),
            make_purity("D", "Writes to console"),
        ]

        propagate_impurity(linear_graph, purity)

        assert all(not r.is_pure for r in purity)
        assert [r.reasons for r in purity[:3]] == [[CALLS_IMPURE]] * 3

    def test_locally_impure_caller_keeps_own_reasons(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("helper")]})
        purity = [
            make_purity("caller", "Accesses global `sys`"),
            make_purity("helper", "Writes to console"),
        ]

        propagate_impurity(graph, purity)

        assert purity[0].reasons == ["Accesses global `sys`"]

    def test_pure_callees_do_not_taint_callers(self, linear_graph: CallGraph) -> None:
        purity = [make_purity(name) for name in "ABCD"]
        propagate_impurity(linear_graph, purity)
        assert all(r.is_pure for r in purity)

    def test_cycle_terminates(self, cyclic_graph: CallGraph) -> None:
        purity = [make_purity("A"), make_purity("B", "Writes to console")]

        propagate_impurity(cyclic_graph, purity)

        assert purity[0].reasons == [CALLS_IMPURE]
        assert purity[1].reasons == ["Writes to console"]

    def test_missing_ids_are_skipped(self) -> None:
        graph = CallGraph.from_mapping({"unknown": [fid("helper")]})
        purity = [make_purity("helper", "Writes to console")]
        propagate_impurity(graph, purity)
        assert len(purity) == 1


class TestAsyncRiskPropagation:
    """Tests for escalation of error-severity issues to callers."""

    def test_mutual_recursion(self, cyclic_graph: CallGraph) -> None:
        """a() calls b() calls a(); b has a local error."""
        results = [
            make_async("A"),
            make_async("B", (FLOATING_AWAITABLE, Severity.ERROR)),
        ]

        propagate_async_risk(cyclic_graph, results)

        for result in results:
            messages = [issue.message for issue in result.issues]
            assert messages.count(CALLS_ASYNC_UNSAFE) == 1
        assert results[0].issues[0].severity == Severity.ERROR

    def test_warnings_do_not_escalate(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("callee")]})
        results = [
            make_async("caller"),
            make_async("callee", (MISSING_ERROR_BOUNDARY, Severity.WARNING)),
        ]

        propagate_async_risk(graph, results)

        assert results[0].issues == []

    def test_transitive(self, linear_graph: CallGraph) -> None:
        results = [
            make_async("A"),
            make_async("B"),
            make_async("C"),
            make_async("D", (FLOATING_AWAITABLE, Severity.ERROR)),
        ]

        propagate_async_risk(linear_graph, results)

        for result in results[:3]:
            assert result.has_issue(CALLS_ASYNC_UNSAFE)
        assert not results[3].has_issue(CALLS_ASYNC_UNSAFE)


class TestAsyncReturnPropagation:
    """Tests for flagging callers of functions that leak awaitables."""

    def test_direct_caller_flagged(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("leaky")]})
        results = [
            make_async("caller"),
            make_async("leaky", (FLOATING_AWAITABLE, Severity.ERROR)),
        ]

        propagate_async_returns(graph, results)

        assert results[0].has_issue(CALLS_AWAITABLE_WITHOUT_AWAIT)
        assert results[0].issues[0].severity == Severity.ERROR

    def test_only_awaitable_messages_count(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("callee")]})
        results = [
            make_async("caller"),
            make_async("callee", (MISSING_ERROR_BOUNDARY, Severity.WARNING)),
        ]

        propagate_async_returns(graph, results)

        assert results[0].issues == []

    def test_added_once_on_cycles(self, cyclic_graph: CallGraph) -> None:
        results = [
            make_async("A", (FLOATING_AWAITABLE, Severity.ERROR)),
            make_async("B", (FLOATING_AWAITABLE, Severity.ERROR)),
        ]

        propagate_async_returns(cyclic_graph, results)

        for result in results:
            messages = [issue.message for issue in result.issues]
            assert messages.count(CALLS_AWAITABLE_WITHOUT_AWAIT) == 1

    def test_risk_then_returns_both_recorded(self) -> None:
        graph = CallGraph.from_mapping({fid("caller"): [fid("leaky")]})
        results = [
            make_async("caller"),
            make_async("leaky", (FLOATING_AWAITABLE, Severity.ERROR)),
        ]

        propagate_async_risk(graph, results)
        propagate_async_returns(graph, results)

        assert [issue.message for issue in results[0].issues] == [
            CALLS_ASYNC_UNSAFE,
            CALLS_AWAITABLE_WITHOUT_AWAIT,
        ]
