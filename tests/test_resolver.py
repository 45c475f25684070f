"""Tests for testplan.sharding.resolver."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from testplan.errors import FilesystemError, PatternError
from testplan.sharding.resolver import (
    PatternResolver,
    expand_braces,
    resolve,
    resolve_all,
    validate_pattern,
)

if TYPE_CHECKING:
    from pathlib import Path

    from tests.conftest import MakeFiles


class TestExpandBraces:
    def test_no_braces_returns_pattern(self) -> None:
        assert expand_braces("tests/**/*.test.ts") == ["tests/**/*.test.ts"]

    def test_simple_alternation(self) -> None:
        assert expand_braces("*.test.{ts,tsx}") == ["*.test.ts", "*.test.tsx"]

    def test_multiple_groups(self) -> None:
        assert expand_braces("{a,b}/*.{js,ts}") == [
            "a/*.js",
            "a/*.ts",
            "b/*.js",
            "b/*.ts",
        ]

    def test_nested_groups(self) -> None:
        assert expand_braces("{a,{b,c}}.ts") == ["a.ts", "b.ts", "c.ts"]

    def test_empty_alternative(self) -> None:
        assert expand_braces("x.{,spec.}ts") == ["x.ts", "x.spec.ts"]

    def test_duplicates_dropped(self) -> None:
        assert expand_braces("{a,a,b}") == ["a", "b"]

    def test_unclosed_brace(self) -> None:
        with pytest.raises(PatternError, match="Unbalanced '\\{'"):
            expand_braces("tests/{a,b/*.ts")

    def test_stray_closing_brace(self) -> None:
        with pytest.raises(PatternError, match="Unbalanced '\\}'"):
            expand_braces("tests/a}/*.ts")

    def test_extra_closing_brace_after_group(self) -> None:
        with pytest.raises(PatternError):
            expand_braces("{a,b}}")


class TestValidatePattern:
    def test_valid_pattern_returns_expansion(self) -> None:
        assert validate_pattern("tests/**/*.{ts,tsx}") == ["tests/**/*.ts", "tests/**/*.tsx"]

    @pytest.mark.parametrize("pattern", ["", "   "])
    def test_empty(self, pattern: str) -> None:
        with pytest.raises(PatternError, match="must not be empty"):
            validate_pattern(pattern)

    def test_absolute(self) -> None:
        with pytest.raises(PatternError, match="relative"):
            validate_pattern("/abs/tests/*.ts")

    def test_parent_segment(self) -> None:
        with pytest.raises(PatternError, match="project root"):
            validate_pattern("../other/*.ts")

    def test_recursive_wildcard_inside_segment(self) -> None:
        with pytest.raises(PatternError, match="entire path segment"):
            validate_pattern("tests/a**/*.ts")

    def test_unclosed_bracket(self) -> None:
        with pytest.raises(PatternError, match="Unclosed"):
            validate_pattern("tests/[ab.ts")

    def test_empty_character_class_rejected(self) -> None:
        with pytest.raises(PatternError, match="Unclosed"):
            validate_pattern("tests/[]x.ts")

    def test_character_class_accepted(self) -> None:
        assert validate_pattern("tests/[ab]*.ts") == ["tests/[ab]*.ts"]

    def test_negated_class_accepted(self) -> None:
        assert validate_pattern("tests/[!_]*.ts") == ["tests/[!_]*.ts"]


class TestResolve:
    def test_returns_sorted_relative_posix_paths(self, make_files: MakeFiles) -> None:
        root = make_files("tests/z.test.ts", "tests/a.test.ts", "tests/m.test.ts")
        assert resolve("tests/*.test.ts", root) == [
            "tests/a.test.ts",
            "tests/m.test.ts",
            "tests/z.test.ts",
        ]

    def test_recursive_wildcard_matches_zero_or_more_dirs(self, make_files: MakeFiles) -> None:
        root = make_files("top.test.ts", "a/one.test.ts", "a/b/c/deep.test.ts", "a/other.ts")
        assert resolve("**/*.test.ts", root) == [
            "a/b/c/deep.test.ts",
            "a/one.test.ts",
            "top.test.ts",
        ]

    def test_trailing_recursive_wildcard_matches_files(self, make_files: MakeFiles) -> None:
        root = make_files("tests/a.test.ts", "tests/sub/b.test.ts", "src/c.ts")
        assert resolve("tests/**", root) == ["tests/a.test.ts", "tests/sub/b.test.ts"]

    def test_bare_recursive_wildcard_matches_every_file(self, make_files: MakeFiles) -> None:
        root = make_files("a.ts", "pkg/b.ts", ".git/config")
        assert resolve("**", root) == ["a.ts", "pkg/b.ts"]

    def test_brace_alternation(self, make_files: MakeFiles) -> None:
        root = make_files("tests/a.test.ts", "tests/b.test.tsx", "tests/c.test.js")
        assert resolve("tests/**/*.test.{ts,tsx}", root) == [
            "tests/a.test.ts",
            "tests/b.test.tsx",
        ]

    def test_overlapping_alternatives_deduplicated(self, make_files: MakeFiles) -> None:
        root = make_files("a/x.test.ts")
        assert resolve("{a/*,**/*}.test.ts", root) == ["a/x.test.ts"]

    def test_directories_never_match(self, make_files: MakeFiles) -> None:
        root = make_files("tests/real.test.ts")
        (root / "tests" / "folder.test.ts").mkdir()
        assert resolve("tests/*.test.ts", root) == ["tests/real.test.ts"]

    def test_hidden_paths_skipped(self, make_files: MakeFiles) -> None:
        root = make_files(
            "tests/a.test.ts",
            "tests/.hidden.test.ts",
            ".cache/tests/b.test.ts",
        )
        assert resolve("**/*.test.ts", root) == ["tests/a.test.ts"]

    def test_hidden_paths_matched_when_pattern_names_them(self, make_files: MakeFiles) -> None:
        root = make_files("tests/.hidden.test.ts", ".cache/b.test.ts")
        assert resolve("tests/.*.test.ts", root) == ["tests/.hidden.test.ts"]
        assert resolve(".cache/*.test.ts", root) == [".cache/b.test.ts"]

    def test_no_matches_returns_empty(self, tmp_path: Path) -> None:
        assert resolve("**/*.test.ts", tmp_path) == []

    def test_reflects_filesystem_at_call_time(self, make_files: MakeFiles) -> None:
        root = make_files("tests/a.test.ts")
        resolver = PatternResolver(root)
        assert resolver.resolve("tests/*.test.ts") == ["tests/a.test.ts"]
        make_files("tests/b.test.ts")
        assert resolver.resolve("tests/*.test.ts") == ["tests/a.test.ts", "tests/b.test.ts"]

    def test_invalid_pattern_raises(self, tmp_path: Path) -> None:
        with pytest.raises(PatternError):
            resolve("tests/{a,b", tmp_path)

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FilesystemError, match="does not exist"):
            resolve("*.ts", tmp_path / "missing")

    def test_root_is_file_raises(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("")
        with pytest.raises(FilesystemError, match="not a directory"):
            resolve("*.ts", target)

    def test_pattern_error_wins_over_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(PatternError):
            resolve("", tmp_path / "missing")


class TestResolveAll:
    def test_union_is_sorted_and_unique(self, make_files: MakeFiles) -> None:
        root = make_files("b/z.test.ts", "a/x.test.ts", "a/y.spec.ts")
        result = resolve_all(["a/*.test.ts", "**/*.test.ts", "a/*.spec.ts"], root)
        assert result == ["a/x.test.ts", "a/y.spec.ts", "b/z.test.ts"]

    def test_empty_pattern_list(self, tmp_path: Path) -> None:
        assert resolve_all([], tmp_path) == []

    def test_deterministic(self, make_files: MakeFiles) -> None:
        root = make_files(*(f"pkg{i % 3}/t{i}.test.ts" for i in range(20)))
        first = resolve_all(["**/*.test.ts"], root)
        second = resolve_all(["**/*.test.ts"], root)
        assert first == second
        assert first == sorted(first)
