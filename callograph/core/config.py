"""Project configuration loaded from pyproject.toml."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from callograph.core.exceptions import ConfigError
from callograph.core.models import Severity

log = logging.getLogger(__name__)

PYPROJECT = "pyproject.toml"

_KNOWN_KEYS = {
    "source-roots",
    "ignore",
    "severity",
    "fail-on-impure",
    "fail-on-async",
}


@dataclass
class AnalysisConfig:
    """Settings for one analysis run."""

    root: Path
    source_roots: list[str] = field(default_factory=lambda: ["src"])
    ignore: list[str] = field(default_factory=list)
    severity: Severity = Severity.INFO
    fail_on_impure: bool = False
    fail_on_async: bool = False


def load_config(root: Path, config_file: Path | None = None) -> AnalysisConfig:
    """Load settings for a project.

    Args:
        root: Project root directory
        config_file: Explicit TOML file. Its ``[tool.callograph]`` table is used
            when present, otherwise its top level. When omitted,
            ``<root>/pyproject.toml`` is read if it exists.

    Returns:
        AnalysisConfig populated from the file (defaults for absent keys)

    Raises:
        ConfigError: The file is missing, not valid TOML, or has bad values
    """
    root = root.resolve()
    if not root.is_dir():
        raise ConfigError(f"Project root is not a directory: {root}")

    if config_file is not None:
        if not config_file.is_file():
            raise ConfigError(f"Config file not found: {config_file}")
        data = _read_toml(config_file)
        table = data.get("tool", {}).get("callograph", data)
    else:
        pyproject = root / PYPROJECT
        if not pyproject.is_file():
            log.debug("No %s in %s, using defaults", PYPROJECT, root)
            return AnalysisConfig(root=root)
        data = _read_toml(pyproject)
        table = data.get("tool", {}).get("callograph", {})

    if not isinstance(table, dict):
        raise ConfigError("[tool.callograph] must be a table")

    return _from_table(root, table)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e


def _from_table(root: Path, table: dict[str, Any]) -> AnalysisConfig:
    unknown = sorted(set(table) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown option(s) in [tool.callograph]: {', '.join(unknown)}")

    config = AnalysisConfig(root=root)
    if "source-roots" in table:
        config.source_roots = _string_list(table, "source-roots")
    if "ignore" in table:
        config.ignore = _string_list(table, "ignore")
    if "severity" in table:
        config.severity = parse_severity(table["severity"])
    if "fail-on-impure" in table:
        config.fail_on_impure = _bool(table, "fail-on-impure")
    if "fail-on-async" in table:
        config.fail_on_async = _bool(table, "fail-on-async")
    return config


def parse_severity(value: object) -> Severity:
    """Convert a severity name to a Severity, raising ConfigError if unknown."""
    if isinstance(value, str):
        try:
            return Severity(value.lower())
        except ValueError:
            pass
    choices = ", ".join(s.value for s in Severity)
    raise ConfigError(f"Invalid severity {value!r} (expected one of: {choices})")


def _string_list(table: dict[str, Any], key: str) -> list[str]:
    value = table[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _bool(table: dict[str, Any], key: str) -> bool:
    value = table[key]
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false")
    return value
