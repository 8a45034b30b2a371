"""Core CallGraph class with adjacency list representation."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping


class CallGraph:
    """Directed graph of calls between function ids.

    Keeps forward and reverse adjacency so both callees and callers are
    O(1) lookups. Edges are distinct and keep insertion order; self-loops
    are allowed.
    """

    __slots__ = ("_out", "_in", "_num_edges")

    def __init__(self) -> None:
        # dicts used as ordered sets
        self._out: dict[str, dict[str, None]] = {}
        self._in: dict[str, dict[str, None]] = {}
        self._num_edges = 0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> CallGraph:
        """Build a graph from caller id -> callee ids."""
        graph = cls()
        for caller_id, callee_ids in mapping.items():
            graph.add_function(caller_id)
            for callee_id in callee_ids:
                graph.add_edge(caller_id, callee_id)
        return graph

    def add_function(self, function_id: str) -> None:
        """Add a vertex. O(1)."""
        self._out.setdefault(function_id, {})
        self._in.setdefault(function_id, {})

    def add_edge(self, caller_id: str, callee_id: str) -> bool:
        """Add a call edge. O(1). Returns False if it already existed."""
        self.add_function(caller_id)
        self.add_function(callee_id)
        if callee_id in self._out[caller_id]:
            return False
        self._out[caller_id][callee_id] = None
        self._in[callee_id][caller_id] = None
        self._num_edges += 1
        return True

    def has_edge(self, caller_id: str, callee_id: str) -> bool:
        return callee_id in self._out.get(caller_id, {})

    def get_callees(self, function_id: str) -> list[str]:
        """Get direct callees. O(out-degree)."""
        return list(self._out.get(function_id, ()))

    def get_callers(self, function_id: str) -> list[str]:
        """Get direct callers. O(in-degree)."""
        return list(self._in.get(function_id, ()))

    def edges(self) -> Iterator[tuple[str, str]]:
        """Iterate (caller, callee) pairs in insertion order."""
        for caller_id, callees in self._out.items():
            for callee_id in callees:
                yield caller_id, callee_id

    def to_dict(self) -> dict[str, list[str]]:
        """Plain caller -> callees mapping."""
        return {caller_id: list(callees) for caller_id, callees in self._out.items()}

    def out_degree(self, function_id: str) -> int:
        """Number of callees. O(1)."""
        return len(self._out.get(function_id, ()))

    def in_degree(self, function_id: str) -> int:
        """Number of callers. O(1)."""
        return len(self._in.get(function_id, ()))

    def __contains__(self, function_id: object) -> bool:
        return function_id in self._out

    def __iter__(self) -> Iterator[str]:
        return iter(self._out)

    @property
    def num_nodes(self) -> int:
        return len(self._out)

    @property
    def num_edges(self) -> int:
        return self._num_edges

    def __repr__(self) -> str:
        return f"CallGraph(nodes={self.num_nodes}, edges={self.num_edges})"
