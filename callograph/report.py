"""Result filtering and serialisation."""

from __future__ import annotations

from typing import Any

from callograph.core.models import AnalysisReport, AsyncResult, Severity


def filter_async_results(results: list[AsyncResult], threshold: Severity) -> list[AsyncResult]:
    """Keep issues at or above a severity, dropping results left without issues.

    The input results are not modified.
    """
    filtered: list[AsyncResult] = []
    for result in results:
        issues = [issue for issue in result.issues if issue.severity.at_least(threshold)]
        if not issues:
            continue
        filtered.append(
            AsyncResult(
                id=result.id,
                name=result.name,
                file=result.file,
                line=result.line,
                character=result.character,
                issues=issues,
                awaitable_calls=list(result.awaitable_calls),
            )
        )
    return filtered


def report_to_dict(report: AnalysisReport, threshold: Severity = Severity.INFO) -> dict[str, Any]:
    """Build the JSON document for a report."""
    async_results = filter_async_results(report.async_results, threshold)
    return {
        "graph": report.graph.to_dict(),
        "purity": [result.to_dict() for result in report.purity],
        "async": [result.to_dict() for result in async_results],
        "errors": [str(error) for error in report.errors],
        "summary": {
            "functions": len(report.functions),
            "edges": report.graph.num_edges,
            "impure": len(report.impure),
            "asyncIssues": sum(len(result.issues) for result in async_results),
            "skippedFiles": len(report.errors),
        },
    }
