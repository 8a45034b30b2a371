"""
Local detectors: per-function findings before propagation.

Detectors:
    - analyze_purity: side effects (parameter and outer-scope writes,
      global and environment access, console output, nondeterministic
      calls, swallowed exceptions)
    - analyze_async: async-safety hazards (floating awaitables, unawaited
      asyncio.gather, async callbacks, empty errbacks, missing try/except)

Name registries and finding messages live in registry.py.
"""

from callograph.detectors.async_safety import (
    AsyncFlowAnalysis,
    analyze_async,
    analyze_function_async,
)
from callograph.detectors.purity import analyze_purity

__all__ = [
    "analyze_purity",
    "analyze_async",
    "analyze_function_async",
    "AsyncFlowAnalysis",
]
