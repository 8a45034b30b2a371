"""
Core module: data models, exceptions, and configuration.

Models (models.py):
    - FunctionNode: A function, method, or assigned lambda of the project
    - PurityResult / AsyncResult / AsyncIssue: Per-function findings
    - AnalysisReport: Everything produced by one run
    - Severity: error > warning > info

Exceptions (exceptions.py):
    - CallographError: Base exception for all callograph errors
    - ConfigError: Configuration is missing or malformed
    - ParseError: Source file could not be read or parsed

Configuration (config.py):
    - AnalysisConfig / load_config: [tool.callograph] in pyproject.toml
"""

from callograph.core.config import AnalysisConfig, load_config
from callograph.core.exceptions import CallographError, ConfigError, ParseError
from callograph.core.models import (
    AnalysisReport,
    AsyncIssue,
    AsyncResult,
    FunctionNode,
    PurityResult,
    Severity,
)

__all__ = [
    # Models
    "FunctionNode",
    "PurityResult",
    "AsyncIssue",
    "AsyncResult",
    "AnalysisReport",
    "Severity",
    # Exceptions
    "CallographError",
    "ConfigError",
    "ParseError",
    # Configuration
    "AnalysisConfig",
    "load_config",
]
