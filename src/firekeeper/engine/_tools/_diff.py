"""diff ツール — 変更ファイルの差分取得。

差分は変更セット収集時に取得済みのものを返すため、呼び出し時に git は実行しない。
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import Field

from firekeeper.engine._diff_filter import should_include_diff
from firekeeper.engine._glob import normalize_path
from firekeeper.engine._tools._args import ToolArgs


class DiffArgs(ToolArgs):
    """diff ツールの引数。"""

    path: str = Field(min_length=1, description="File path")
    force_read: bool = Field(
        default=False,
        description=(
            "Force read files that are normally excluded (lock files, generated "
            "files). These are usually large and not meaningful to review."
        ),
    )


DIFF_DESCRIPTION = "Get git diff for a changed file."


def diff(diffs: Mapping[str, str], args: DiffArgs) -> str:
    """変更ファイルの unified diff を返す。

    Args:
        diffs: ファイルパス → diff の対応。
        args: ツール引数。

    Returns:
        diff テキスト、または取得できない理由の説明。
    """
    path = normalize_path(args.path)
    if not args.force_read and not should_include_diff(path):
        return (
            f"Skipped '{path}':\n"
            "File is excluded.\n"
            "These files are usually large and not meaningful to review.\n"
            "Use force_read=true to override if necessary."
        )
    found = diffs.get(path)
    if found is None:
        return f"No diff available for file: {path}"
    return found
