"""ToolCatalog — モデルに提示するツールの閉じた集合。

ツールは ToolKind で表現される閉じたバリアントであり、引数モデルと
ハンドラの対応表（TOOL_CATALOG）から解決される。
モデルの出力したツール呼び出しはここで検証・正規化され、
不正な呼び出しは ProtocolError として会話ループに返る。
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

from pydantic import ValidationError
from pydantic_ai.tools import ToolDefinition

from firekeeper.engine._errors import ProtocolError
from firekeeper.engine._glob import normalize_path
from firekeeper.engine._tools._args import ToolArgs
from firekeeper.engine._tools._diff import DIFF_DESCRIPTION, DiffArgs, diff
from firekeeper.engine._tools._file import (
    READ_FILE_DESCRIPTION,
    READ_RESOURCE_DESCRIPTION,
    ReadFileArgs,
    ReadResourceArgs,
    read_file,
    read_resource,
)
from firekeeper.engine._tools._report import REPORT_DESCRIPTION, ReportArgs, report
from firekeeper.engine._tools._search import (
    GLOB_DESCRIPTION,
    GREP_DESCRIPTION,
    LIST_DIRECTORY_DESCRIPTION,
    GlobArgs,
    GrepArgs,
    ListDirectoryArgs,
    glob_files,
    grep,
    list_directory,
)
from firekeeper.engine._tools._think import THINK_DESCRIPTION, ThinkArgs, think
from firekeeper.models.task import ReviewTask
from firekeeper.models.trace import ToolSpec


class ToolKind(StrEnum):
    """提示するツールの種類。値はモデルに見えるツール名。"""

    REPORT = "report"
    THINK = "think"
    DIFF = "diff"
    READ_RESOURCE = "read_resource"
    READ_FILE = "read_file"
    LIST_DIRECTORY = "list_directory"
    GLOB = "glob"
    GREP = "grep"


@dataclass(frozen=True)
class ToolContext:
    """ツール実行時に参照するタスク固有の状態。

    Attributes:
        task: 実行中のタスク。
        root: 作業ツリーのルート（絶対パス）。
    """

    task: ReviewTask
    root: Path


@dataclass(frozen=True)
class CatalogEntry:
    """ToolKind に対応する引数モデル・説明・ハンドラ。"""

    args_model: type[ToolArgs]
    description: str
    handler: Callable[[Any, ToolContext], Awaitable[str]]


@dataclass(frozen=True)
class ParsedToolCall:
    """検証済みのツール呼び出し。

    Attributes:
        kind: ツールの種類。
        args: 検証済み引数。
        normalized_args: 検証済み引数を正規化した JSON（重複検出キー）。
            既定値の省略や未知のキーの有無では変わらない。
    """

    kind: ToolKind
    args: ToolArgs
    normalized_args: str

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.kind.value, self.normalized_args)


async def _handle_report(args: ReportArgs, ctx: ToolContext) -> str:
    return report(args)


async def _handle_think(args: ThinkArgs, ctx: ToolContext) -> str:
    return think(args)


async def _handle_diff(args: DiffArgs, ctx: ToolContext) -> str:
    return diff(ctx.task.changeset.diffs, args)


async def _handle_read_resource(args: ReadResourceArgs, ctx: ToolContext) -> str:
    return read_resource(ctx.task.resources, args)


async def _handle_read_file(args: ReadFileArgs, ctx: ToolContext) -> str:
    return await asyncio.to_thread(read_file, ctx.root, args)


async def _handle_list_directory(args: ListDirectoryArgs, ctx: ToolContext) -> str:
    return await asyncio.to_thread(list_directory, ctx.root, args)


async def _handle_glob(args: GlobArgs, ctx: ToolContext) -> str:
    return await asyncio.to_thread(glob_files, ctx.root, args)


async def _handle_grep(args: GrepArgs, ctx: ToolContext) -> str:
    return await asyncio.to_thread(grep, ctx.root, args)


TOOL_CATALOG: Final[Mapping[ToolKind, CatalogEntry]] = MappingProxyType(
    {
        ToolKind.REPORT: CatalogEntry(ReportArgs, REPORT_DESCRIPTION, _handle_report),
        ToolKind.THINK: CatalogEntry(ThinkArgs, THINK_DESCRIPTION, _handle_think),
        ToolKind.DIFF: CatalogEntry(DiffArgs, DIFF_DESCRIPTION, _handle_diff),
        ToolKind.READ_RESOURCE: CatalogEntry(
            ReadResourceArgs, READ_RESOURCE_DESCRIPTION, _handle_read_resource
        ),
        ToolKind.READ_FILE: CatalogEntry(
            ReadFileArgs, READ_FILE_DESCRIPTION, _handle_read_file
        ),
        ToolKind.LIST_DIRECTORY: CatalogEntry(
            ListDirectoryArgs, LIST_DIRECTORY_DESCRIPTION, _handle_list_directory
        ),
        ToolKind.GLOB: CatalogEntry(GlobArgs, GLOB_DESCRIPTION, _handle_glob),
        ToolKind.GREP: CatalogEntry(GrepArgs, GREP_DESCRIPTION, _handle_grep),
    }
)
"""ToolKind から CatalogEntry へのマッピング。"""


def tool_specs() -> list[ToolSpec]:
    """全ツールの定義をトレース記録用の ToolSpec として返す。"""
    return [
        ToolSpec(
            name=kind.value,
            description=entry.description,
            parameters=entry.args_model.model_json_schema(),
        )
        for kind, entry in TOOL_CATALOG.items()
    ]


def to_tool_definitions(specs: list[ToolSpec]) -> list[ToolDefinition]:
    """ToolSpec を pydantic-ai の ToolDefinition に変換する。"""
    return [
        ToolDefinition(
            name=spec.name,
            description=spec.description,
            parameters_json_schema=spec.parameters,
        )
        for spec in specs
    ]


def normalize_arguments(args: dict[str, object]) -> str:
    """引数辞書をキー順・区切り文字を固定した JSON 文字列にする。"""
    return json.dumps(args, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _dedup_payload(args: ToolArgs) -> dict[str, object]:
    """重複検出用に、検証済み引数を既定値込みの辞書にしパスを正規化する。"""
    payload: dict[str, object] = args.model_dump(mode="json")
    path = payload.get("path")
    if isinstance(path, str):
        payload["path"] = normalize_path(path)
    return payload


def parse_tool_call(name: str, raw_args: str | dict[str, Any] | None) -> ParsedToolCall:
    """モデルが出力したツール呼び出しを検証する。

    Args:
        name: ツール名。
        raw_args: 引数。JSON 文字列、辞書、または None。

    Returns:
        検証済みの ParsedToolCall。

    Raises:
        ProtocolError: 未知のツール名、JSON として不正な引数、
            オブジェクト以外の引数、引数モデルの検証失敗の場合。
    """
    try:
        kind = ToolKind(name)
    except ValueError:
        known = ", ".join(k.value for k in ToolKind)
        raise ProtocolError(f"Unknown tool '{name}' (available: {known})") from None

    if raw_args is None:
        args_dict: object = {}
    elif isinstance(raw_args, str):
        try:
            args_dict = json.loads(raw_args) if raw_args.strip() else {}
        except json.JSONDecodeError as exc:
            raise ProtocolError(
                f"Malformed arguments for tool '{name}': {exc}"
            ) from exc
    else:
        args_dict = raw_args

    if not isinstance(args_dict, dict):
        raise ProtocolError(
            f"Arguments for tool '{name}' must be a JSON object, "
            f"got {type(args_dict).__name__}"
        )

    entry = TOOL_CATALOG[kind]
    try:
        args = entry.args_model.model_validate(args_dict)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid arguments for tool '{name}': {exc}") from exc

    return ParsedToolCall(
        kind=kind,
        args=args,
        normalized_args=normalize_arguments(_dedup_payload(args)),
    )


async def execute_tool(call: ParsedToolCall, ctx: ToolContext) -> str:
    """検証済みのツール呼び出しを実行し、モデルに返す文字列を得る。"""
    return await TOOL_CATALOG[call.kind].handler(call.args, ctx)
