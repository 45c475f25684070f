"""Exception hierarchy shared by the planner, writer and config loader."""

from __future__ import annotations


class PlanError(Exception):
    """Base class for fatal test-plan errors."""


class PatternError(PlanError):
    """Raised when a glob pattern is syntactically invalid."""


class FilesystemError(PlanError):
    """Raised when the project root cannot be read or artifacts cannot be written."""


class ConfigError(PlanError):
    """Raised when the configuration file cannot be parsed."""
