"""作業ツリー探索系ツール。

- list_directory: ディレクトリ内容を木構造で返す。
- glob_files: glob パターンに一致するファイルパスを返す。
- grep: 正規表現に一致する行を返す。

探索は作業ツリー内に限定し、``.git`` は辿らない。
結果は read_file と同じく文字単位でページングする。
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Final

from pydantic import Field

from firekeeper.engine._glob import match_path, normalize_path
from firekeeper.engine._tools._args import ToolArgs
from firekeeper.engine._tools._file import (
    DEFAULT_NUM_CHARS,
    resolve_in_root,
    truncate_with_hint,
)

MAX_LIST_DEPTH: Final[int] = 5
"""list_directory の再帰深さの上限。"""

MAX_MATCHES: Final[int] = 1000
"""glob / grep が収集する一致件数の上限。"""

SKIPPED_DIRS: Final[frozenset[str]] = frozenset({".git"})


class PagedArgs(ToolArgs):
    """結果を文字単位でページングするツールの共通引数。"""

    start: int = Field(
        default=0, ge=0, description="Start character index of the result"
    )
    length: int = Field(
        default=DEFAULT_NUM_CHARS,
        gt=0,
        le=DEFAULT_NUM_CHARS,
        description=f"Number of characters to return (max {DEFAULT_NUM_CHARS})",
    )


class ListDirectoryArgs(PagedArgs):
    """list_directory ツールの引数。"""

    path: str = Field(
        default=".",
        min_length=1,
        description="Directory path relative to the repository",
    )
    depth: int = Field(
        default=0,
        ge=0,
        le=MAX_LIST_DEPTH,
        description="Recursion depth (0 for non-recursive)",
    )


class GlobArgs(PagedArgs):
    """glob ツールの引数。"""

    pattern: str = Field(min_length=1, description="Glob pattern (e.g. **/*.py)")
    path: str = Field(
        default=".", min_length=1, description="Directory path to search in"
    )


class GrepArgs(PagedArgs):
    """grep ツールの引数。"""

    pattern: str = Field(min_length=1, description="Regex pattern")
    path: str = Field(
        default=".", min_length=1, description="File or directory path to search"
    )
    case_sensitive: bool = Field(default=False, description="Case sensitive search")
    glob: str | None = Field(
        default=None, description="Glob pattern to filter files (e.g. *.py)"
    )


LIST_DIRECTORY_DESCRIPTION = (
    "List directory contents in the repository with optional recursive depth. "
    "Entries are prefixed with 'd' (directory) or 'f' (file)."
)
GLOB_DESCRIPTION = "Find files in the repository matching a glob pattern."
GREP_DESCRIPTION = (
    "Search for a regex pattern in a file or directory of the repository. "
    "Results are formatted as path:line:content."
)


def _walk_files(base: Path) -> Iterator[Path]:
    """base 配下のファイルを名前順に列挙する。"""
    for dirpath, dirnames, filenames in base.walk():
        dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRS)
        for name in sorted(filenames):
            yield dirpath / name


def _list_tree(directory: Path, depth: int, prefix: str, lines: list[str]) -> None:
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.name in SKIPPED_DIRS:
            continue
        is_dir = entry.is_dir()
        lines.append(f"{prefix}{'d' if is_dir else 'f'} {entry.name}")
        # シンボリックリンク先のディレクトリには降りない
        if is_dir and depth > 0 and not entry.is_symlink():
            _list_tree(entry, depth - 1, prefix + "  ", lines)


def _paginate(lines: list[str], limited: bool, args: PagedArgs) -> str:
    content = "\n".join(lines)
    if limited:
        content += f"\n(results limited to {MAX_MATCHES} matches)"
    return truncate_with_hint(content, args.start, args.length)


def list_directory(root: Path, args: ListDirectoryArgs) -> str:
    """作業ツリー内のディレクトリ内容を一覧する。

    Args:
        root: 作業ツリーのルート（絶対パス）。
        args: ツール引数。

    Returns:
        ``d name`` / ``f name`` 形式の一覧、またはエラーメッセージ。
        深さが増すごとに 2 文字字下げする。
    """
    target = resolve_in_root(root, args.path)
    if target is None:
        return f"Error: '{args.path}' is outside the repository"
    if not target.is_dir():
        return f"Error: '{args.path}' is not a directory"
    lines: list[str] = []
    try:
        _list_tree(target, args.depth, "", lines)
    except OSError as exc:
        return f"Error listing directory: {exc}"
    if not lines:
        return f"Directory '{args.path}' is empty"
    return _paginate(lines, False, args)


def glob_files(root: Path, args: GlobArgs) -> str:
    """glob パターンに一致するファイルをルート相対パスで返す。

    パターンは検索ディレクトリからの相対パスに対して照合する。
    ``/`` を含まないパターンはファイル名にも一致する。
    """
    base = resolve_in_root(root, args.path)
    if base is None:
        return f"Error: '{args.path}' is outside the repository"
    if not base.is_dir():
        return f"Error: '{args.path}' is not a directory"

    pattern = normalize_path(args.pattern)
    matches: list[str] = []
    for file in _walk_files(base):
        if match_path(file.relative_to(base).as_posix(), pattern):
            matches.append(file.relative_to(root).as_posix())
            if len(matches) >= MAX_MATCHES:
                break
    if not matches:
        return f"No files matching '{args.pattern}'"
    return _paginate(matches, len(matches) >= MAX_MATCHES, args)


def _grep_lines(
    regex: re.Pattern[str], content: str, label: str | None
) -> Iterator[str]:
    for number, line in enumerate(content.splitlines(), start=1):
        if regex.search(line):
            prefix = f"{label}:" if label is not None else ""
            yield f"{prefix}{number}:{line.rstrip()}"


def grep(root: Path, args: GrepArgs) -> str:
    """ファイルまたはディレクトリから正規表現に一致する行を探す。

    ディレクトリ指定時は ``path:line:content``、単一ファイル指定時は
    ``line:content`` 形式で返す。UTF-8 として読めないファイルは対象外とする。

    Args:
        root: 作業ツリーのルート（絶対パス）。
        args: ツール引数。

    Returns:
        一致行の一覧、一致なしの旨、またはエラーメッセージ。
    """
    try:
        regex = re.compile(args.pattern, 0 if args.case_sensitive else re.IGNORECASE)
    except re.error as exc:
        return f"Error: Invalid regex pattern: {exc}"

    target = resolve_in_root(root, args.path)
    if target is None:
        return f"Error: '{args.path}' is outside the repository"

    files: Iterable[Path]
    if target.is_file():
        files, single = (target,), True
    elif target.is_dir():
        files, single = _walk_files(target), False
    else:
        return f"Error: File not found: {args.path}"

    matches: list[str] = []
    for file in files:
        if not single and args.glob is not None:
            if not match_path(file.relative_to(target).as_posix(), args.glob):
                continue
        resolved = file.resolve()
        if not resolved.is_relative_to(root) or not resolved.is_file():
            continue
        try:
            content = resolved.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            continue
        label = None if single else file.relative_to(root).as_posix()
        for line in _grep_lines(regex, content, label):
            matches.append(line)
            if len(matches) >= MAX_MATCHES:
                return _paginate(matches, True, args)
    if not matches:
        return f"No matches found for '{args.pattern}'"
    return _paginate(matches, False, args)
