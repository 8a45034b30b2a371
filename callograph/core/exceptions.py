"""Callograph custom exceptions."""


class CallographError(Exception):
    """Base exception for Callograph errors."""


class ConfigError(CallographError):
    """Project configuration is missing or malformed."""


class ParseError(CallographError):
    """Error parsing a source file."""
