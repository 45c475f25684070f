"""Persist node plans and launcher scripts for CI nodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from testplan.errors import FilesystemError
from testplan.sharding.launcher import LauncherOptions, render_launcher_script

if TYPE_CHECKING:
    from testplan.sharding.allocator import AllocationResult

logger = logging.getLogger(__name__)

TESTPLANS_DIR = "testplans"
SCRIPTS_DIR = "scripts"
_PLAN_GLOB = "testplan*.txt"
_SCRIPT_GLOB = "run-tests-node*.sh"
_SCRIPT_MODE = 0o755


@dataclass
class NodeArtifact:
    """Files written for a single node."""

    node: int
    """1-based node number."""

    plan_path: Path
    script_path: Path
    file_count: int


def plan_filename(node: int) -> str:
    return f"testplan{node}.txt"


def script_filename(node: int) -> str:
    return f"run-tests-node{node}.sh"


def _plan_reference(plan_path: Path, root: Path) -> str:
    """Path the launcher uses to find its plan: root-relative when possible."""
    try:
        return plan_path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return plan_path.resolve().as_posix()


def _remove_stale(directory: Path, pattern: str) -> None:
    for stale in directory.glob(pattern):
        logger.debug("Removing stale artifact %s", stale)
        stale.unlink()


def write_test_plans(
    result: AllocationResult,
    output_dir: str | Path,
    *,
    root: str | Path,
    launcher: LauncherOptions | None = None,
) -> list[NodeArtifact]:
    """Write one plan file and one launcher script per node.

    Plans are written to ``<output_dir>/testplans/testplan{n}.txt`` as
    newline-joined paths and launchers to
    ``<output_dir>/scripts/run-tests-node{n}.sh`` (mode 755).  Artifacts
    from a previous run with more nodes are removed first.

    Raises:
        FilesystemError: If the output directory cannot be written.
    """
    root_path = Path(root)
    out = Path(output_dir)
    if not out.is_absolute():
        out = root_path / out
    plans_dir = out / TESTPLANS_DIR
    scripts_dir = out / SCRIPTS_DIR

    artifacts: list[NodeArtifact] = []
    try:
        plans_dir.mkdir(parents=True, exist_ok=True)
        scripts_dir.mkdir(parents=True, exist_ok=True)
        _remove_stale(plans_dir, _PLAN_GLOB)
        _remove_stale(scripts_dir, _SCRIPT_GLOB)

        for node, plan in enumerate(result.node_plans, start=1):
            plan_path = plans_dir / plan_filename(node)
            plan_path.write_text("\n".join(plan), encoding="utf-8")

            script_path = scripts_dir / script_filename(node)
            script = render_launcher_script(_plan_reference(plan_path, root_path), launcher)
            script_path.write_text(script, encoding="utf-8")
            script_path.chmod(_SCRIPT_MODE)

            logger.debug("Wrote %s: %d tests", plan_path, len(plan))
            artifacts.append(
                NodeArtifact(
                    node=node,
                    plan_path=plan_path,
                    script_path=script_path,
                    file_count=len(plan),
                )
            )
    except OSError as e:
        msg = f"Failed to write test plans to {out}: {e}"
        raise FilesystemError(msg) from e

    return artifacts
