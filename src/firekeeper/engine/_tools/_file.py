"""ファイル読み取り系ツール。

read_file は作業ツリー内のファイルを文字単位でページングして読み取る。
read_resource は事前解決済みのリソースブロックを identity で引き直す。
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Final

from pydantic import Field

from firekeeper.engine._tools._args import ToolArgs
from firekeeper.models.resource import ResourceBlock

DEFAULT_NUM_CHARS: Final[int] = 5000
"""1 回の読み取りで返す最大文字数。"""


class ReadFileArgs(ToolArgs):
    """read_file ツールの引数。"""

    path: str = Field(min_length=1, description="File path relative to the repository")
    start: int = Field(default=0, ge=0, description="Start character index")
    length: int = Field(
        default=DEFAULT_NUM_CHARS,
        gt=0,
        le=DEFAULT_NUM_CHARS,
        description=f"Number of characters to read (max {DEFAULT_NUM_CHARS})",
    )


class ReadResourceArgs(ToolArgs):
    """read_resource ツールの引数。"""

    identity: str = Field(
        min_length=1,
        description="Resource identity as shown in its '--- <identity> ---' header",
    )


READ_FILE_DESCRIPTION = (
    "Read a file in the repository with optional character range."
)
READ_RESOURCE_DESCRIPTION = "Read again one of the resources provided for this rule."


def truncate_with_hint(content: str, start: int, length: int) -> str:
    """文字範囲で切り出し、続きがある場合はページングのヒントを付ける。"""
    total = len(content)
    begin = min(start, total)
    end = min(begin + length, total)
    result = content[begin:end]
    if end < total:
        result += (
            f"\n\n---\ntruncated [{end}/{total} chars]\n"
            f"Hint: Use start={end} to read more."
        )
    return result


def resolve_in_root(root: Path, path: str) -> Path | None:
    """作業ツリー内のパスを解決する。ルート外を指す場合は None。"""
    target = (root / path).resolve()
    return target if target.is_relative_to(root) else None


def read_file(root: Path, args: ReadFileArgs) -> str:
    """作業ツリー内のファイルを読み取る。

    作業ツリー外を指すパスや読み取れないファイルは、例外ではなく
    モデル向けのエラーメッセージとして返す。

    Args:
        root: 作業ツリーのルート（絶対パス）。
        args: ツール引数。

    Returns:
        ファイル内容（切り詰め済み）またはエラーメッセージ。
    """
    target = resolve_in_root(root, args.path)
    if target is None:
        return f"Error: '{args.path}' is outside the repository"
    if not target.is_file():
        return f"Error: File not found: {args.path}"
    try:
        content = target.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return f"Error: File '{args.path}' is not a valid UTF-8 text file"
    except OSError as exc:
        return f"Error reading file: {exc}"
    return truncate_with_hint(content, args.start, args.length)


def read_resource(resources: Sequence[ResourceBlock], args: ReadResourceArgs) -> str:
    """identity に一致するリソースブロックの本文を返す。"""
    for block in resources:
        if block.identity == args.identity:
            return block.content
    available = ", ".join(block.identity for block in resources) or "(none)"
    return f"Error: Unknown resource '{args.identity}'. Available: {available}"
