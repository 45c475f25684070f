"""Test file partitioning across parallel CI nodes."""

from testplan.sharding.allocator import (
    AllocationResult,
    CoverageGapWarning,
    EmptyResultWarning,
    PatternClaim,
    allocate,
    claim_matches,
)
from testplan.sharding.launcher import LauncherOptions, render_launcher_script
from testplan.sharding.resolver import PatternResolver, expand_braces, resolve, resolve_all
from testplan.sharding.writer import NodeArtifact, write_test_plans

__all__ = [
    "AllocationResult",
    "CoverageGapWarning",
    "EmptyResultWarning",
    "LauncherOptions",
    "NodeArtifact",
    "PatternClaim",
    "PatternResolver",
    "allocate",
    "claim_matches",
    "expand_braces",
    "render_launcher_script",
    "resolve",
    "resolve_all",
    "write_test_plans",
]
