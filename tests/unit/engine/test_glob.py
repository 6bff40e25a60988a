"""パス正規化と glob マッチングのテスト。"""

import pytest

from firekeeper.engine._glob import filter_files, match_path, normalize_path


class TestNormalizePath:
    """normalize_path のテスト。"""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("./README.md", "README.md"),
            ("././src/a.py", "src/a.py"),
            ("src\\pkg\\a.py", "src/pkg/a.py"),
            ("src/a.py", "src/a.py"),
        ],
    )
    def test_normalization(self, raw: str, expected: str) -> None:
        assert normalize_path(raw) == expected


class TestMatchPath:
    """match_path のテスト。"""

    def test_dot_slash_equivalence(self) -> None:
        """README.md と ./README.md は同じファイルとして一致する。"""
        assert match_path("README.md", "./README.md")
        assert match_path("./README.md", "README.md")

    def test_double_star_matches_top_level(self) -> None:
        assert match_path("README.md", "**/*")
        assert match_path("src/a/b.py", "**/*")

    def test_double_star_matches_hidden(self) -> None:
        assert match_path(".github/workflows/ci.yml", "**/*.yml")

    def test_single_star_does_not_cross_separator(self) -> None:
        assert not match_path("src/pkg/a.py", "src/*.py")
        assert match_path("src/a.py", "src/*.py")

    def test_basename_pattern(self) -> None:
        """'/' を含まないパターンはファイル名にも一致する。"""
        assert match_path("src/pkg/a.py", "*.py")
        assert not match_path("src/pkg/a.py", "*.rs")

    def test_question_mark_and_class(self) -> None:
        assert match_path("src/a1.py", "src/a?.py")
        assert match_path("src/b.py", "src/[ab].py")
        assert not match_path("src/c.py", "src/[ab].py")


class TestFilterFiles:
    """filter_files のテスト。"""

    def test_scope_minus_exclude(self) -> None:
        files = ["src/a.py", "src/test_a.py", "docs/a.md"]
        assert filter_files(files, ["src/**"], ["**/test_*.py"]) == ["src/a.py"]

    def test_exclude_only_narrows(self) -> None:
        """exclude にだけ一致するファイルは追加されない。"""
        files = ["src/a.py", "docs/a.md"]
        assert filter_files(files, ["src/**"], ["docs/**"]) == ["src/a.py"]

    def test_empty_scope_matches_nothing(self) -> None:
        assert filter_files(["a.py"], []) == []

    def test_preserves_input_order(self) -> None:
        files = ["b.py", "a.py"]
        assert filter_files(files, ["*.py"]) == ["b.py", "a.py"]
