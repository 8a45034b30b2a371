"""
Call graph data structures and algorithms.

Data Structures:
    - CallGraph: Adjacency list representation with O(1) lookups

Construction:
    - build_call_graph(): Resolve every call of the inventory through the
      source model and keep the edges between project functions

Propagation (fixpoints over the graph):
    - propagate_impurity: callers of impure functions become impure
    - propagate_async_risk: callers of async-unsafe functions are flagged
    - propagate_async_returns: callers of functions leaking awaitables are flagged
"""

from callograph.core.graph.base import CallGraph
from callograph.core.graph.builder import build_call_graph
from callograph.core.graph.propagation import (
    propagate_async_returns,
    propagate_async_risk,
    propagate_impurity,
)

__all__ = [
    "CallGraph",
    "build_call_graph",
    "propagate_impurity",
    "propagate_async_risk",
    "propagate_async_returns",
]
