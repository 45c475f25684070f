"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testplan.sharding.allocator import CoverageGapWarning

if TYPE_CHECKING:
    from testplan.sharding.allocator import AllocationResult, PlanWarning
    from testplan.sharding.writer import NodeArtifact

console = Console()

_MAX_UNCLAIMED_DISPLAY = 20
_SKEW_RATIO = 2.0


def _node_size_color(size: int, mean: float) -> str:
    """Color a node's file count relative to the mean node size."""
    if size == 0:
        return "dim"
    if mean and size >= mean * _SKEW_RATIO:
        return "yellow"
    return "green"


class CLIReporter:
    """Rich terminal output for test-plan generation."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def print_pattern_claims(self, result: AllocationResult) -> None:
        """Print matched/claimed counts for each pattern, in priority order."""
        table = Table(title="Patterns", title_style="bold cyan")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Pattern", style="bold")
        table.add_column("Matched", justify="right")
        table.add_column("Claimed", justify="right")

        for idx, claim in enumerate(result.pattern_claims, start=1):
            claimed_color = "green" if claim.claimed else "dim"
            table.add_row(
                str(idx),
                escape(claim.pattern),
                str(claim.matched),
                f"[{claimed_color}]{claim.claimed}[/{claimed_color}]",
            )

        self.console.print(table)

    def print_node_plans(
        self,
        result: AllocationResult,
        artifacts: list[NodeArtifact] | None = None,
    ) -> None:
        """Print the number of files per node, with written plan paths if any."""
        table = Table(title=f"Nodes ({result.node_count})", title_style="bold cyan")
        table.add_column("Node", justify="right", style="bold")
        table.add_column("Tests", justify="right")
        if artifacts:
            table.add_column("Plan")
            table.add_column("Script")

        mean = result.claimed_count / result.node_count if result.node_count else 0.0
        by_node = {artifact.node: artifact for artifact in artifacts or []}
        for node, plan in enumerate(result.node_plans, start=1):
            color = _node_size_color(len(plan), mean)
            row = [str(node), f"[{color}]{len(plan)}[/{color}]"]
            artifact = by_node.get(node)
            if artifact is not None:
                row.extend([escape(str(artifact.plan_path)), escape(str(artifact.script_path))])
            table.add_row(*row)

        self.console.print(table)

    def print_plan_warnings(self, warnings: list[PlanWarning]) -> None:
        """Print collected allocation warnings."""
        for warning in warnings:
            self.print_warning(warning.message)
            if isinstance(warning, CoverageGapWarning):
                for file_path in warning.files[:_MAX_UNCLAIMED_DISPLAY]:
                    self.console.print(f"  - {escape(file_path)}", style="yellow")
                remaining = len(warning.files) - _MAX_UNCLAIMED_DISPLAY
                if remaining > 0:
                    self.print_info(f"  ... and {remaining} more")

    def print_totals(self, result: AllocationResult) -> None:
        """Print total/claimed/unclaimed counts."""
        self.console.print(f"   Total files: {result.total_files}")
        self.console.print(f"   Claimed: {result.claimed_count}")
        self.console.print(f"   Unclaimed: {len(result.unclaimed)}")


reporter = CLIReporter()
