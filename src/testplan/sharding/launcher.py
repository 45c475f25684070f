"""Per-node bash launcher rendering."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

DEFAULT_COMMAND = "bun test"
DEFAULT_ARGS = ("--timeout", "30000")
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_RETRY_EXIT_CODES = (139, 132)
"""Segmentation fault and illegal instruction."""


@dataclass
class LauncherOptions:
    """How a node launcher invokes the test runner."""

    command: str = DEFAULT_COMMAND
    """Test runner command line; split with shell rules."""

    args: list[str] = field(default_factory=lambda: list(DEFAULT_ARGS))
    """Arguments appended after the test files."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    """Total attempts, including the first run."""

    retry_exit_codes: list[int] = field(default_factory=lambda: list(DEFAULT_RETRY_EXIT_CODES))
    """Exit codes that indicate a runner crash and trigger a retry."""


def _quote_command(command: str) -> str:
    return " ".join(shlex.quote(part) for part in shlex.split(command))


def render_launcher_script(plan_file: str, options: LauncherOptions | None = None) -> str:
    """Render the bash script that runs one node's test plan.

    The script exits 0 on success, exits immediately with any exit code that
    is not a crash code, and retries crash codes until *max_attempts* runs
    have been made, then exits with the last code.
    """
    opts = options or LauncherOptions()
    command = _quote_command(opts.command)
    extra_args = " ".join(shlex.quote(arg) for arg in opts.args)
    invocation = f'{command} "${{test_files[@]}}"'
    if extra_args:
        invocation = f"{invocation} {extra_args}"

    retry_check = " && ".join(f"[ $code -ne {code} ]" for code in opts.retry_exit_codes)
    if not retry_check:
        retry_check = "true"

    max_attempts = opts.max_attempts
    lines = [
        "#!/usr/bin/env bash",
        "",
        f"TESTPLAN_FILE={shlex.quote(plan_file)}",
        "",
        'if [ ! -f "$TESTPLAN_FILE" ]; then',
        '  echo "ERROR: Test plan not found: $TESTPLAN_FILE"',
        "  exit 1",
        "fi",
        "",
        'mapfile -t test_files < "$TESTPLAN_FILE"',
        "",
        "if [ ${#test_files[@]} -eq 0 ]; then",
        '  echo "ERROR: No test files in plan"',
        "  exit 1",
        "fi",
        "",
        'echo "Running ${#test_files[@]} test files..."',
        "",
        "attempt=1",
        f"while [ $attempt -le {max_attempts} ]; do",
        f"  {invocation}",
        "  code=$?",
        "",
        "  if [ $code -eq 0 ]; then",
        "    exit 0",
        "  fi",
        "",
        "  # Retry only on runner crashes",
        f"  if {retry_check}; then",
        "    exit $code",
        "  fi",
        "",
        f"  if [ $attempt -eq {max_attempts} ]; then",
        '    echo "Failed after $attempt attempts (exit=$code)"',
        "    exit $code",
        "  fi",
        "",
        "  attempt=$((attempt + 1))",
        f'  echo "Retrying ($attempt/{max_attempts})..."',
        "done",
        "",
    ]
    return "\n".join(lines)
