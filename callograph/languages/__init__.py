"""
Source models: typed, resolvable views of a project's source files.

The analysis engine never looks at files directly; it asks a source model
for the project files, for what a name or a call resolves to, and whether an
expression evaluates to an awaitable.

Components:
    - SourceModel: Protocol the engine depends on
    - PythonSourceModel: ast-based implementation for Python projects
    - SourceFile / Declaration / Symbol: what the model hands back

Resolution covers:
    - Names: Python scoping rules (local, enclosing, global, builtin)
    - Imports: absolute, relative, and re-exported names
    - Attributes: modules, classes and base classes, instances known from
      constructor calls, annotations, and self.attr assignments
"""

from callograph.languages.base import SourceModel
from callograph.languages.models import Binding, BindingKind, Declaration, SourceFile, Symbol
from callograph.languages.python import (
    PythonSourceModel,
    is_dependency_path,
    module_name,
    parse_source,
)

__all__ = [
    "SourceModel",
    "PythonSourceModel",
    "SourceFile",
    "Declaration",
    "Symbol",
    "Binding",
    "BindingKind",
    "is_dependency_path",
    "module_name",
    "parse_source",
]
