"""Data models for Callograph."""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from callograph.core.graph.base import CallGraph
    from callograph.core.exceptions import ParseError


class Severity(Enum):
    """Severity of an async-safety issue."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, threshold: Severity) -> bool:
        """Check if this severity is at or above the threshold."""
        return self.rank >= threshold.rank


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


@dataclass
class FunctionNode:
    """An analyzable function-like unit (def, async def, or bound lambda)."""

    id: str
    name: str
    file: str
    line: int
    character: int
    parameters: list[str]
    node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda = field(repr=False, compare=False)
    receiver: str | None = None
    is_async: bool = False


@dataclass
class PurityResult:
    """Purity verdict for one function."""

    id: str
    name: str
    file: str
    line: int
    character: int
    is_pure: bool
    reasons: list[str] = field(default_factory=list)

    def add_reason(self, reason: str) -> bool:
        """Record a reason once, keeping first-seen order. Returns True if added."""
        if reason in self.reasons:
            return False
        self.reasons.append(reason)
        self.is_pure = False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "file": self.file,
            "line": self.line,
            "character": self.character,
            "isPure": self.is_pure,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class AsyncIssue:
    """A single async-safety finding."""

    message: str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "severity": self.severity.value}


@dataclass
class AsyncResult:
    """Async-safety findings for one function."""

    id: str
    name: str
    file: str
    line: int
    character: int
    issues: list[AsyncIssue] = field(default_factory=list)
    # Inventory ids of callees whose result is awaitable. Not serialised and
    # not used by propagation; exposed for library callers.
    awaitable_calls: list[str] = field(default_factory=list, compare=False)

    def has_issue(self, message: str) -> bool:
        return any(issue.message == message for issue in self.issues)

    def add_issue(self, message: str, severity: Severity) -> bool:
        """Record an issue unless one with the same message exists. Returns True if added."""
        if self.has_issue(message):
            return False
        self.issues.append(AsyncIssue(message, severity))
        return True

    def has_severity(self, severity: Severity) -> bool:
        return any(issue.severity == severity for issue in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "file": self.file,
            "line": self.line,
            "character": self.character,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class AnalysisReport:
    """Everything produced by one analysis run."""

    def __init__(
        self,
        functions: list[FunctionNode],
        graph: CallGraph,
        purity: list[PurityResult],
        async_results: list[AsyncResult],
        errors: list[ParseError] | None = None,
    ) -> None:
        self.functions = functions
        self.graph = graph
        self.purity = purity
        self.async_results = async_results
        self.errors: list[ParseError] = errors or []
        self._by_id = {fn.id: fn for fn in functions}

    @property
    def impure(self) -> list[PurityResult]:
        return [r for r in self.purity if not r.is_pure]

    def function(self, function_id: str) -> FunctionNode | None:
        """Look up an inventoried function by id."""
        return self._by_id.get(function_id)

    def __repr__(self) -> str:
        return (
            f"AnalysisReport(functions={len(self.functions)}, "
            f"edges={self.graph.num_edges}, impure={len(self.impure)}, "
            f"errors={len(self.errors)})"
        )
