"""Glob pattern resolution against a project root.

Patterns use the usual filesystem-glob syntax (``*``, ``?``, ``[...]``) plus
``**`` for zero or more directories and ``{a,b}`` brace alternation.  Results
are always returned as sorted, deduplicated, ``/``-separated paths relative to
the root so that downstream consumers never depend on directory traversal
order.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

from testplan.errors import FilesystemError, PatternError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_RECURSIVE_WILDCARD = "**"


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternation into plain glob patterns.

    Groups may nest (``{a,{b,c}}``) and alternatives may be empty
    (``*.{,x}ts``).  Expansion order follows the alternatives left to right;
    duplicate expansions are dropped, keeping the first occurrence.

    Raises:
        PatternError: If the braces are unbalanced.
    """
    group = _find_brace_group(pattern)
    if group is None:
        return [pattern]

    start, end, alternatives = group
    head, tail = pattern[:start], pattern[end + 1 :]

    expanded: list[str] = []
    for alternative in alternatives:
        for candidate in expand_braces(head + alternative + tail):
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def _find_brace_group(pattern: str) -> tuple[int, int, list[str]] | None:
    """Locate the first top-level brace group and split its alternatives."""
    start = pattern.find("{")
    stray = pattern.find("}")
    if stray != -1 and (start == -1 or stray < start):
        msg = f"Unbalanced '}}' in glob pattern: {pattern!r}"
        raise PatternError(msg)
    if start == -1:
        return None

    depth = 0
    alternatives: list[str] = []
    alternative_start = start + 1
    for idx in range(start, len(pattern)):
        char = pattern[idx]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                alternatives.append(pattern[alternative_start:idx])
                return start, idx, alternatives
        elif char == "," and depth == 1:
            alternatives.append(pattern[alternative_start:idx])
            alternative_start = idx + 1

    msg = f"Unbalanced '{{' in glob pattern: {pattern!r}"
    raise PatternError(msg)


def _check_brackets(segment: str, pattern: str) -> None:
    """Ensure every ``[`` character class in *segment* is closed.

    An empty class ``[]`` is rejected rather than matched literally.
    """
    idx = segment.find("[")
    while idx != -1:
        # A ']' directly after '[' or '[!' is a literal member of the class.
        search_from = idx + 2 if segment[idx + 1 : idx + 2] == "!" else idx + 1
        close = segment.find("]", search_from + 1)
        if close == -1:
            msg = f"Unclosed '[' in glob pattern: {pattern!r}"
            raise PatternError(msg)
        idx = segment.find("[", close + 1)


def validate_pattern(pattern: str) -> list[str]:
    """Check *pattern* syntax and return its brace expansion.

    Raises:
        PatternError: If the pattern is empty, absolute, escapes the root,
            has unbalanced braces or brackets (an empty ``[]`` class counts
            as unclosed), or uses ``**`` as part of a larger path segment.
    """
    if not pattern or not pattern.strip():
        msg = "Glob pattern must not be empty"
        raise PatternError(msg)

    if PurePosixPath(pattern).is_absolute() or PureWindowsPath(pattern).is_absolute():
        msg = f"Glob pattern must be relative to the project root: {pattern!r}"
        raise PatternError(msg)

    expanded = expand_braces(pattern)
    for candidate in expanded:
        if not candidate:
            msg = f"Glob pattern expands to an empty alternative: {pattern!r}"
            raise PatternError(msg)
        for segment in candidate.split("/"):
            if segment == "..":
                msg = f"Glob pattern must not leave the project root: {pattern!r}"
                raise PatternError(msg)
            if _RECURSIVE_WILDCARD in segment and segment != _RECURSIVE_WILDCARD:
                msg = f"'**' can only be an entire path segment: {pattern!r}"
                raise PatternError(msg)
            _check_brackets(segment, pattern)
    return expanded


def _glob_form(candidate: str) -> str:
    """Rewrite a trailing ``**`` so it matches files, not only directories."""
    if candidate == _RECURSIVE_WILDCARD or candidate.endswith("/" + _RECURSIVE_WILDCARD):
        return f"{candidate}/*"
    return candidate


def _hidden_segments_allowed(relative: str, pattern: str) -> bool:
    """Return True unless *relative* passes through a dot-prefixed segment
    that no dot-prefixed segment of *pattern* asks for."""
    dot_segments = [seg for seg in pattern.split("/") if seg.startswith(".") and seg != "."]
    for part in relative.split("/"):
        if not part.startswith("."):
            continue
        if not any(fnmatch.fnmatchcase(part, seg) for seg in dot_segments):
            return False
    return True


class PatternResolver:
    """Resolve glob patterns to files under a fixed project root.

    Nothing is cached between calls: each call reflects the filesystem at
    the moment it runs.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _check_root(self) -> None:
        if not self.root.exists():
            msg = f"Project root does not exist: {self.root}"
            raise FilesystemError(msg)
        if not self.root.is_dir():
            msg = f"Project root is not a directory: {self.root}"
            raise FilesystemError(msg)
        if not os.access(self.root, os.R_OK | os.X_OK):
            msg = f"Project root is not readable: {self.root}"
            raise FilesystemError(msg)

    def resolve(self, pattern: str) -> list[str]:
        """Return the sorted, deduplicated files under the root matching *pattern*.

        Raises:
            PatternError: If *pattern* is syntactically invalid.
            FilesystemError: If the root is missing or unreadable.
        """
        expanded = validate_pattern(pattern)
        self._check_root()

        matches: set[str] = set()
        for candidate in expanded:
            try:
                for path in self.root.glob(_glob_form(candidate)):
                    if not path.is_file():
                        continue
                    relative = path.relative_to(self.root).as_posix()
                    if _hidden_segments_allowed(relative, candidate):
                        matches.add(relative)
            except (ValueError, NotImplementedError) as e:
                msg = f"Invalid glob pattern {pattern!r}: {e}"
                raise PatternError(msg) from e
            except OSError as e:
                msg = f"Failed to scan {self.root} for {pattern!r}: {e}"
                raise FilesystemError(msg) from e

        logger.debug("Pattern %s matched %d files", pattern, len(matches))
        return sorted(matches)

    def resolve_all(self, patterns: Iterable[str]) -> list[str]:
        """Return the sorted union of files matched by any of *patterns*."""
        union: set[str] = set()
        for pattern in patterns:
            union.update(self.resolve(pattern))
        return sorted(union)


def resolve(pattern: str, root: str | Path) -> list[str]:
    """Resolve a single pattern under *root*.  See :meth:`PatternResolver.resolve`."""
    return PatternResolver(root).resolve(pattern)


def resolve_all(patterns: Iterable[str], root: str | Path) -> list[str]:
    """Resolve the union of *patterns* under *root*."""
    return PatternResolver(root).resolve_all(patterns)
