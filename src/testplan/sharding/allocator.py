"""Claim-then-distribute allocation of test files to CI nodes.

Patterns are processed in list order.  Each pattern claims the files it
matches that no earlier pattern has claimed, and deals them out round-robin
across the nodes, starting again at node 0 for every pattern.

Restarting the counter per pattern means a run with many small patterns can
load the first nodes more heavily than the last ones.  That skew is accepted:
a file's node depends only on the patterns listed before it and its own
pattern, so adding or reordering later patterns never moves it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from testplan.sharding.resolver import PatternResolver

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


# ── Warnings ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class EmptyResultWarning:
    """No file matched any pattern; there is nothing to write."""

    pattern_count: int
    """Number of patterns that were resolved."""

    @property
    def message(self) -> str:
        return "No test files found matching the glob patterns"


@dataclass(frozen=True)
class CoverageGapWarning:
    """Files matched by the pattern union were never claimed by any pattern."""

    files: tuple[str, ...]
    """The unclaimed files, sorted."""

    @property
    def message(self) -> str:
        return f"{len(self.files)} files were not claimed by any pattern"


PlanWarning = EmptyResultWarning | CoverageGapWarning


# ── Results ───────────────────────────────────────────────────────


@dataclass
class PatternClaim:
    """Diagnostic counts for a single pattern step."""

    pattern: str
    matched: int = 0
    """Files matched by the pattern, claimed or not."""

    claimed: int = 0
    """Files this pattern claimed (matched and not claimed earlier)."""


@dataclass
class AllocationResult:
    """Outcome of :func:`allocate`."""

    node_plans: list[list[str]] = field(default_factory=list)
    """One file list per node, in claim order."""

    unclaimed: list[str] = field(default_factory=list)
    """Files in the pattern union that no node received."""

    pattern_claims: list[PatternClaim] = field(default_factory=list)
    """Per-pattern match/claim counts, in pattern order."""

    total_files: int = 0
    """Size of the union of all pattern matches."""

    warnings: list[PlanWarning] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.node_plans)

    @property
    def claimed_count(self) -> int:
        return sum(len(plan) for plan in self.node_plans)

    @property
    def is_empty(self) -> bool:
        """True when no file matched any pattern."""
        return self.total_files == 0


# ── Allocation ────────────────────────────────────────────────────


def claim_matches(
    matches: Sequence[str],
    claimed: frozenset[str] | set[str],
    node_count: int,
) -> tuple[list[list[str]], frozenset[str]]:
    """Distribute the not-yet-claimed *matches* across *node_count* buckets.

    The round-robin index starts at 0 and follows sorted path order, so the
    result does not depend on the order of *matches*.  *claimed* is not
    modified; the grown claimed set is returned alongside the buckets.

    Args:
        matches: Files matched by one pattern.
        claimed: Files already claimed by earlier patterns.
        node_count: Number of buckets.

    Returns:
        A tuple of (buckets, claimed set including the newly claimed files).

    Raises:
        ValueError: If node_count is less than 1.
    """
    if node_count < 1:
        msg = f"node_count must be >= 1, got {node_count}"
        raise ValueError(msg)

    unclaimed = sorted(set(matches).difference(claimed))
    buckets: list[list[str]] = [[] for _ in range(node_count)]
    for idx, file_path in enumerate(unclaimed):
        buckets[idx % node_count].append(file_path)

    return buckets, frozenset(claimed).union(unclaimed)


def allocate(
    patterns: Sequence[str],
    node_count: int,
    root: str | Path,
    *,
    resolver: PatternResolver | None = None,
) -> AllocationResult:
    """Partition the files matched by *patterns* into *node_count* node plans.

    The first pattern (by list order) that matches a file claims it.  Each
    pattern's newly claimed files are dealt round-robin starting at node 0.
    Files left over in the union of all patterns are reported in
    ``unclaimed`` together with a :class:`CoverageGapWarning`; an empty union
    yields an :class:`EmptyResultWarning`.  Neither is raised.

    Resolver errors (:class:`~testplan.errors.PatternError`,
    :class:`~testplan.errors.FilesystemError`) propagate unchanged.

    Raises:
        ValueError: If node_count is less than 1.
    """
    if node_count < 1:
        msg = f"node_count must be >= 1, got {node_count}"
        raise ValueError(msg)

    pattern_resolver = resolver or PatternResolver(root)
    node_plans: list[list[str]] = [[] for _ in range(node_count)]
    claimed: frozenset[str] = frozenset()
    pattern_claims: list[PatternClaim] = []

    for pattern in patterns:
        matches = pattern_resolver.resolve(pattern)
        buckets, grown = claim_matches(matches, claimed, node_count)
        newly_claimed = len(grown) - len(claimed)
        claimed = grown

        for plan, bucket in zip(node_plans, buckets, strict=True):
            plan.extend(bucket)

        pattern_claims.append(
            PatternClaim(pattern=pattern, matched=len(matches), claimed=newly_claimed)
        )
        logger.debug(
            "Pattern %s: matched %d files, %d unclaimed",
            pattern,
            len(matches),
            newly_claimed,
        )

    all_files = pattern_resolver.resolve_all(patterns)
    unclaimed = [f for f in all_files if f not in claimed]

    warnings: list[PlanWarning] = []
    if not all_files:
        logger.warning("No test files found matching %d glob patterns", len(patterns))
        warnings.append(EmptyResultWarning(pattern_count=len(patterns)))
    if unclaimed:
        logger.warning("%d files were not claimed by any pattern", len(unclaimed))
        warnings.append(CoverageGapWarning(files=tuple(unclaimed)))

    logger.info(
        "Allocated %d of %d test files across %d nodes",
        len(claimed),
        len(all_files),
        node_count,
    )
    return AllocationResult(
        node_plans=node_plans,
        unclaimed=unclaimed,
        pattern_claims=pattern_claims,
        total_files=len(all_files),
        warnings=warnings,
    )
