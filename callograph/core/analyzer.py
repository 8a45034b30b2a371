"""Analyzer that coordinates loading, detection, and propagation."""

from __future__ import annotations

import logging
from collections.abc import Callable

from callograph.core.config import AnalysisConfig
from callograph.core.graph import (
    build_call_graph,
    propagate_async_returns,
    propagate_async_risk,
    propagate_impurity,
)
from callograph.core.inventory import collect_functions
from callograph.core.models import AnalysisReport
from callograph.detectors import analyze_async, analyze_purity
from callograph.languages import PythonSourceModel, SourceModel

PhaseCallback = Callable[[str], None]

log = logging.getLogger(__name__)


class Analyzer:
    """Runs the whole pipeline for one project."""

    def __init__(self, config: AnalysisConfig, model: SourceModel | None = None) -> None:
        """Initialize with a configuration.

        Args:
            config: Analysis settings
            model: Prebuilt source model; loaded from ``config.root`` when omitted
        """
        self.config = config
        self._model = model

    @property
    def model(self) -> SourceModel:
        if self._model is None:
            self._model = PythonSourceModel.load(self.config)
        return self._model

    def run(self, on_phase: PhaseCallback | None = None) -> AnalysisReport:
        """Analyze the project.

        Phases, in order:
        1. Load and parse sources (parse failures are recorded, not raised)
        2. Collect the function inventory (ignore patterns applied here)
        3. Build the call graph
        4. Run the local purity and async-safety detectors
        5. Propagate impurity, then async risk, then unawaited awaitables

        Args:
            on_phase: Optional callback receiving a short description of each phase

        Returns:
            AnalysisReport with the propagated results
        """

        def phase(description: str) -> None:
            log.debug(description)
            if on_phase:
                on_phase(description)

        phase("Loading sources")
        model = self.model

        phase("Collecting functions")
        functions = collect_functions(model, self.config.ignore)

        phase("Building call graph")
        graph = build_call_graph(model, functions)

        phase("Detecting side effects")
        purity = analyze_purity(model, functions)

        phase("Detecting async hazards")
        async_results = analyze_async(model, functions)

        phase("Propagating findings")
        propagate_impurity(graph, purity)
        propagate_async_risk(graph, async_results)
        propagate_async_returns(graph, async_results)

        report = AnalysisReport(
            functions=functions,
            graph=graph,
            purity=purity,
            async_results=async_results,
            errors=list(model.errors),
        )
        log.debug("Finished: %r", report)
        return report
