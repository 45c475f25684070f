"""testplan CLI — top-level command group."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from testplan import __version__
from testplan.config import PlanConfig, load_config, validate_config
from testplan.errors import ConfigError, PlanError
from testplan.reporter import console, reporter
from testplan.sharding.allocator import AllocationResult, allocate
from testplan.sharding.writer import NodeArtifact, write_test_plans

logger = logging.getLogger(__name__)
log_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, rich_tracebacks=True)],
    )


def _config_to_dict(config: PlanConfig) -> dict[str, Any]:
    """Convert PlanConfig to dictionary for display."""
    result = asdict(config)
    # Remove the raw field as it's redundant
    result.pop("raw", None)
    return result


def _exit_with_json_error(message: str, errors: list[str] | None = None) -> NoReturn:
    """Print a JSON error object for CI mode and exit with status 1."""
    payload: dict[str, Any] = {"error": message}
    if errors:
        payload["errors"] = errors
    click.echo(json.dumps(payload, indent=2))
    # click.Abort would append "Aborted!" to the machine-readable output
    click.get_current_context().exit(1)


def _load_config_or_abort(path: str, *, ci_mode: bool = False) -> PlanConfig:
    try:
        return load_config(path)
    except ConfigError as e:
        if ci_mode:
            _exit_with_json_error(f"Failed to load configuration: {e}")
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e


def _print_config_errors(errors: list[str]) -> None:
    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{escape(error)}[/red]")
    console.print()


def _build_summary_payload(
    result: AllocationResult,
    artifacts: list[NodeArtifact],
) -> dict[str, Any]:
    """Build the machine-readable summary printed in CI mode."""
    by_node = {artifact.node: artifact for artifact in artifacts}
    nodes: list[dict[str, Any]] = []
    for node, plan in enumerate(result.node_plans, start=1):
        entry: dict[str, Any] = {"node": node, "file_count": len(plan), "files": plan}
        artifact = by_node.get(node)
        if artifact is not None:
            entry["plan_path"] = str(artifact.plan_path)
            entry["script_path"] = str(artifact.script_path)
        nodes.append(entry)

    return {
        "node_count": result.node_count,
        "total_files": result.total_files,
        "claimed": result.claimed_count,
        "unclaimed": result.unclaimed,
        "written": bool(artifacts),
        "patterns": [
            {"pattern": claim.pattern, "matched": claim.matched, "claimed": claim.claimed}
            for claim in result.pattern_claims
        ],
        "nodes": nodes,
        "warnings": [warning.message for warning in result.warnings],
    }


def _display_result_console(
    result: AllocationResult,
    artifacts: list[NodeArtifact],
    *,
    dry_run: bool,
) -> None:
    """Display the allocation in rich console format."""
    console.print()
    reporter.print_pattern_claims(result)
    console.print()
    reporter.print_node_plans(result, artifacts)

    if result.warnings:
        console.print()
        reporter.print_plan_warnings(result.warnings)

    console.print()
    if dry_run:
        reporter.print_info("Dry run: no files were written.")
    else:
        reporter.print_success("Test plans generated successfully!")
    reporter.print_totals(result)


@click.group()
@click.option(
    "--ci",
    is_flag=True,
    help="CI mode: machine-readable JSON output.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.version_option(version=__version__, prog_name="testplan")
@click.pass_context
def cli(ctx: click.Context, *, ci: bool, verbose: bool) -> None:
    """testplan — split test files across parallel CI nodes."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["ci"] = ci


@cli.command()
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option(
    "--node-count",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel nodes (default: from config or 4).",
)
@click.option(
    "--output-dir",
    default=None,
    help="Directory for plans and scripts (default: from config or .testplan).",
)
@click.option("--dry-run", is_flag=True, help="Compute the plan without writing any files.")
@click.pass_context
def generate(
    ctx: click.Context,
    path: str,
    node_count: int | None,
    output_dir: str | None,
    *,
    dry_run: bool,
) -> None:
    """Generate per-node test plans and launcher scripts.

    Glob patterns are processed in order: the first pattern that matches a
    file claims it, and each pattern's files are dealt round-robin across
    the nodes.

    Example:
      testplan generate -n 4
    """
    ci_mode = ctx.obj.get("ci", False) if ctx.obj else False

    config = _load_config_or_abort(path, ci_mode=ci_mode)
    logger.debug("Loaded config from %s", config.config_path or "defaults")
    if node_count is not None:
        config.node_count = node_count
    if output_dir is not None:
        config.output_dir = output_dir

    errors = validate_config(config)
    if errors:
        if ci_mode:
            _exit_with_json_error(f"Found {len(errors)} configuration error(s)", errors)
        _print_config_errors(errors)
        raise click.Abort

    if not ci_mode:
        reporter.print_header("testplan")
        reporter.print_info(f"Node count: {config.node_count}")
        reporter.print_info(f"Glob patterns: {len(config.glob_patterns)}")

    try:
        result = allocate(config.glob_patterns, config.node_count, config.root)
    except PlanError as e:
        if ci_mode:
            _exit_with_json_error(f"Failed to resolve test files: {e}")
        reporter.print_error(f"Failed to resolve test files: {e}")
        raise click.Abort from e

    if result.is_empty:
        if ci_mode:
            click.echo(json.dumps(_build_summary_payload(result, []), indent=2))
        else:
            reporter.print_warning("No test files found matching the glob patterns")
        return

    artifacts: list[NodeArtifact] = []
    if not dry_run:
        try:
            artifacts = write_test_plans(
                result,
                config.output_dir,
                root=Path(config.root),
                launcher=config.launcher,
            )
        except PlanError as e:
            if ci_mode:
                _exit_with_json_error(str(e))
            reporter.print_error(str(e))
            raise click.Abort from e

    if ci_mode:
        click.echo(json.dumps(_build_summary_payload(result, artifacts), indent=2))
    else:
        _display_result_console(result, artifacts, dry_run=dry_run)


@cli.group("config")
def config_group() -> None:
    """Inspect and validate the test-plan configuration."""


@config_group.command("show")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option(
    "--json-output",
    "as_json",
    is_flag=True,
    help="Output as JSON instead of YAML.",
)
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration.

    Example:
      testplan config show
      testplan config show --json-output
    """
    config = _load_config_or_abort(path)
    config_dict = _config_to_dict(config)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
def config_validate(path: str) -> None:
    """Validate the configuration file.

    Checks node count, glob pattern syntax and launcher settings.

    Example:
      testplan config validate
    """
    config = _load_config_or_abort(path)
    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        console.print()
        console.print("[dim]All configuration checks passed.[/dim]")
        return

    _print_config_errors(errors)
    console.print("[dim]Fix these errors and run 'testplan config validate' again.[/dim]")
    raise click.Abort
