"""
Callograph: Purity and async-safety analysis for Python codebases.

Callograph builds a call graph of a project and reports:
- Impure functions (outer-scope writes, global access, console output, ...)
- Async hazards (floating awaitables, unawaited gather, missing try/except)
- Both propagated to every transitive caller

Usage:
    from callograph.core import load_config
    from callograph.core.analyzer import Analyzer

    report = Analyzer(load_config(Path("."))).run()
    for result in report.impure:
        print(result.name, result.reasons)
"""

__version__ = "0.1.0"
