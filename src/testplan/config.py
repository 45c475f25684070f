"""Configuration parsing from ``.testplan.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from testplan.errors import ConfigError, PatternError
from testplan.sharding.launcher import (
    DEFAULT_ARGS,
    DEFAULT_COMMAND,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_EXIT_CODES,
    LauncherOptions,
)
from testplan.sharding.resolver import validate_pattern

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (".testplan.yml", ".testplan.yaml", "testplan.json")
"""Config files looked up in the project root, first match wins."""

DEFAULT_NODE_COUNT = 4
DEFAULT_GLOB_PATTERNS = ("tests/**/*.test.{ts,tsx}",)
DEFAULT_OUTPUT_DIR = ".testplan"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")
_MAX_EXIT_CODE = 255


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class PlanConfig:
    """Resolved test-plan configuration."""

    root: str
    """Project root directory; glob patterns are resolved against it."""

    node_count: int = DEFAULT_NODE_COUNT
    """Number of parallel CI nodes."""

    glob_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_GLOB_PATTERNS))
    """Ordered glob patterns; earlier patterns claim files first."""

    output_dir: str = DEFAULT_OUTPUT_DIR
    """Directory (relative to root unless absolute) receiving plans and scripts."""

    launcher: LauncherOptions = field(default_factory=LauncherOptions)
    """How the generated node scripts invoke the test runner."""

    config_path: str = ""
    """Config file the values were read from (empty when using defaults)."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Parsed file contents after environment variable resolution."""


def _find_config_file(root: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def _pick(raw: dict[str, Any], key: str, alias: str, default: Any) -> Any:
    """Return ``raw[key]``, falling back to the camelCase *alias*, then *default*."""
    if key in raw:
        return raw[key]
    if alias in raw:
        return raw[alias]
    return default


def _as_int(value: Any, key: str) -> int:
    # int() would silently truncate 2.9 to 2
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        msg = f"{key} must be an integer (got: {value!r})"
        raise ConfigError(msg)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        msg = f"{key} must be an integer (got: {value!r})"
        raise ConfigError(msg) from e


def _as_list(value: Any, key: str) -> list[Any]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        msg = f"{key} must be a list (got: {type(value).__name__})"
        raise ConfigError(msg)
    return list(value)


def _parse_launcher(raw: dict[str, Any]) -> LauncherOptions:
    return LauncherOptions(
        command=str(raw.get("command", DEFAULT_COMMAND)),
        args=[str(arg) for arg in _as_list(raw.get("args", list(DEFAULT_ARGS)), "launcher.args")],
        max_attempts=_as_int(
            _pick(raw, "max_attempts", "maxAttempts", DEFAULT_MAX_ATTEMPTS),
            "launcher.max_attempts",
        ),
        retry_exit_codes=[
            _as_int(code, "launcher.retry_exit_codes")
            for code in _as_list(
                _pick(raw, "retry_exit_codes", "retryExitCodes", list(DEFAULT_RETRY_EXIT_CODES)),
                "launcher.retry_exit_codes",
            )
        ],
    )


def load_config(root: str | Path) -> PlanConfig:
    """Load and parse the project's test-plan configuration.

    Falls back to defaults (and the ``TESTPLAN_NODE_COUNT`` /
    ``TESTPLAN_OUTPUT_DIR`` environment variables) when no config file
    exists or a key is missing.

    Raises:
        ConfigError: If the file is not valid YAML/JSON or a value has the
            wrong type.
    """
    root_path = Path(root).resolve()
    config_file = _find_config_file(root_path)

    raw: dict[str, Any] = {}
    if config_file is None:
        logger.info("No config file found in %s, using default config", root_path)
    else:
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            msg = f"Error reading config file {config_file.name}: {e}"
            raise ConfigError(msg) from e
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
        elif parsed is not None:
            msg = f"{config_file.name} must contain a mapping at the top level"
            raise ConfigError(msg)

    node_count = _as_int(
        _pick(
            raw,
            "node_count",
            "nodeCount",
            os.environ.get("TESTPLAN_NODE_COUNT", DEFAULT_NODE_COUNT),
        ),
        "node_count",
    )
    glob_patterns = _as_list(
        _pick(raw, "glob_patterns", "globPatterns", list(DEFAULT_GLOB_PATTERNS)),
        "glob_patterns",
    )
    output_dir = str(
        _pick(
            raw,
            "output_dir",
            "outputDir",
            os.environ.get("TESTPLAN_OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
        )
    )

    launcher_raw = raw.get("launcher", {})
    if not isinstance(launcher_raw, dict):
        launcher_raw = {}

    return PlanConfig(
        root=str(root_path),
        node_count=node_count,
        glob_patterns=glob_patterns,
        output_dir=output_dir,
        launcher=_parse_launcher(launcher_raw),
        config_path=str(config_file) if config_file else "",
        raw=raw,
    )


def _validate_glob_patterns(patterns: list[Any]) -> list[str]:
    """Validate glob pattern types and syntax."""
    errors: list[str] = []
    for idx, pattern in enumerate(patterns):
        if not isinstance(pattern, str) or not pattern.strip():
            errors.append(f"glob_patterns[{idx}] must be a non-empty string (got: {pattern!r})")
            continue
        try:
            validate_pattern(pattern)
        except PatternError as e:
            errors.append(f"glob_patterns[{idx}]: {e}")
    return errors


def _validate_launcher_config(launcher: LauncherOptions) -> list[str]:
    """Validate launcher script settings."""
    errors: list[str] = []

    if not launcher.command.strip():
        errors.append("launcher.command must not be empty")

    if launcher.max_attempts < 1:
        errors.append(f"launcher.max_attempts must be at least 1 (got: {launcher.max_attempts})")

    for code in launcher.retry_exit_codes:
        if not 1 <= code <= _MAX_EXIT_CODE:
            errors.append(f"launcher.retry_exit_codes must be between 1 and 255 (got: {code})")

    return errors


def validate_config(config: PlanConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if not config.root:
        errors.append("root is required")

    if config.node_count < 1:
        errors.append(f"node_count must be a positive integer (got: {config.node_count})")

    if not config.output_dir.strip():
        errors.append("output_dir must not be empty")

    errors.extend(_validate_glob_patterns(config.glob_patterns))
    errors.extend(_validate_launcher_config(config.launcher))

    return errors
