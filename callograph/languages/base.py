"""Protocol for source models."""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from callograph.core.exceptions import ParseError
    from callograph.languages.models import Declaration, SourceFile, Symbol


class SourceModel(Protocol):
    """Typed, resolvable view of every source file of a project."""

    @property
    def files(self) -> list[SourceFile]:
        """All parsed files, stubs and vendored files included, sorted by path."""
        ...

    @property
    def errors(self) -> list[ParseError]:
        """Files that could not be read or parsed."""
        ...

    def file_of(self, node: ast.AST) -> SourceFile | None:
        """The file a node belongs to."""
        ...

    def resolve_symbol(self, name: ast.Name) -> Symbol | None:
        """Resolve an identifier to the declarations of the scope that binds it."""
        ...

    def resolve_binding(self, node: ast.AST, name: str) -> Symbol | None:
        """Resolve a name bound by a statement (import alias, except clause) to its declarations."""
        ...

    def resolve_call(self, call: ast.Call) -> Declaration | None:
        """Resolve a call expression to its callee's declaration."""
        ...

    def qualified_name(self, expr: ast.expr) -> str | None:
        """Dotted name an expression refers to after import resolution."""
        ...

    def is_awaitable(self, expr: ast.expr) -> bool:
        """Check if an expression statically evaluates to an awaitable."""
        ...

    def is_async_callable(self, expr: ast.expr) -> bool:
        """Check if calling an expression produces an awaitable."""
        ...
