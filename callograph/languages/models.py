"""Data models for the source model (files, bindings, declarations)."""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class BindingKind(Enum):
    """How a name got bound in a scope."""

    FUNCTION = "function"
    CLASS = "class"
    IMPORT = "import"
    PARAMETER = "parameter"
    ASSIGNMENT = "assignment"
    OTHER = "other"


@dataclass(eq=False)
class SourceFile:
    """A parsed file of the project."""

    path: Path
    relative: str
    module: str
    tree: ast.Module = field(repr=False)
    source: str = field(repr=False)
    is_declaration: bool = False
    is_dependency: bool = False
    is_package: bool = False
    _line_starts: list[int] = field(default_factory=list, init=False, repr=False)
    _lines: list[str] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        # ast line numbers count "\n" only, unlike str.splitlines
        pieces = self.source.split("\n")
        self._lines = [piece + "\n" for piece in pieces[:-1]] + [pieces[-1]]
        offset = 0
        self._line_starts = []
        for line in self._lines:
            self._line_starts.append(offset)
            offset += len(line)

    @property
    def is_project(self) -> bool:
        """True for implementation files of the analyzed project (not stubs or vendored code)."""
        return not self.is_declaration and not self.is_dependency

    def _column(self, lineno: int, col_offset: int) -> int:
        """Convert an ast UTF-8 byte column into a character column (0-based)."""
        if lineno - 1 >= len(self._lines):
            return col_offset
        line = self._lines[lineno - 1]
        return len(line.encode("utf-8")[:col_offset].decode("utf-8", errors="replace"))

    def position(self, node: ast.AST) -> tuple[int, int]:
        """1-based (line, character) of a node's start."""
        lineno = getattr(node, "lineno", 1)
        return lineno, self._column(lineno, getattr(node, "col_offset", 0)) + 1

    def offset(self, node: ast.AST) -> int:
        """0-based character offset of a node's start within the file."""
        lineno = getattr(node, "lineno", 1)
        column = self._column(lineno, getattr(node, "col_offset", 0))
        if lineno - 1 >= len(self._line_starts):
            return column
        return self._line_starts[lineno - 1] + column


@dataclass
class Binding:
    """A syntactic site that binds a name in a scope."""

    name: str
    kind: BindingKind
    node: ast.AST
    value: ast.expr | None = None
    # For imports: the dotted name the binding refers to
    target: str | None = None
    # For parameters: the annotation, if any
    annotation: ast.expr | None = None


@dataclass
class Declaration:
    """A declaration site resolved through the source model."""

    node: ast.AST
    file: SourceFile

    @property
    def is_project(self) -> bool:
        return self.file.is_project

    def contains(self, other: ast.AST) -> bool:
        """Check whether this declaration's span encloses another node."""
        return _span_contains(self.node, other)

    def is_inside(self, container: ast.AST) -> bool:
        """Check whether this declaration lies within a container node's span."""
        return _span_contains(container, self.node)


@dataclass
class Symbol:
    """A name resolved to the scope that binds it."""

    name: str
    declarations: list[Declaration]
    bindings: list[Binding] = field(default_factory=list)


def _span_contains(outer: ast.AST, inner: ast.AST) -> bool:
    if isinstance(outer, ast.Module):
        return True
    if isinstance(inner, ast.Module):
        return False
    start = (outer.lineno, outer.col_offset)  # type: ignore[attr-defined]
    end = (outer.end_lineno, outer.end_col_offset)  # type: ignore[attr-defined]
    inner_start = (inner.lineno, inner.col_offset)  # type: ignore[attr-defined]
    inner_end = (inner.end_lineno, inner.end_col_offset)  # type: ignore[attr-defined]
    return start <= inner_start and inner_end <= end
