"""違反レポート・トレースファイルの書き出しと読み込み。

出力形式は拡張子で決まる（.json または .md）。読み込み時はスキーマ
バージョンを検証する。
"""

from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path

from pydantic import ValidationError

from firekeeper.cli._markdown_formatter import (
    format_trace_markdown,
    format_violations_markdown,
)
from firekeeper.models.schema_version import SchemaVersionError, check_schema_version
from firekeeper.models.trace import TraceFile
from firekeeper.models.violation import ViolationFile


class OutputFormat(StrEnum):
    """出力ファイル形式。"""

    JSON = ".json"
    MARKDOWN = ".md"


class OutputError(Exception):
    """出力ファイルの読み書きに失敗した。

    エラーメッセージは解決方法のヒントを含む。
    """


def output_format_for(path: Path) -> OutputFormat:
    """拡張子から出力形式を判定する。

    Raises:
        OutputError: .json / .md 以外の拡張子の場合。
    """
    try:
        return OutputFormat(path.suffix.lower())
    except ValueError:
        raise OutputError(
            f"Unsupported output extension for '{path}'. Use .json or .md."
        ) from None


def render_document(document: ViolationFile | TraceFile, fmt: OutputFormat) -> str:
    """ViolationFile / TraceFile を指定形式の文字列に変換する。"""
    if fmt is OutputFormat.JSON:
        return document.model_dump_json(indent=2, exclude_none=True) + "\n"
    if isinstance(document, TraceFile):
        return format_trace_markdown(document)
    return format_violations_markdown(document)


def write_document(document: ViolationFile | TraceFile, path: Path) -> None:
    """ViolationFile / TraceFile を拡張子に応じた形式で書き出す。

    Args:
        document: 書き出す内容。
        path: 出力先。親ディレクトリが無ければ作成する。

    Raises:
        OutputError: 拡張子が不正、または書き込みに失敗した場合。
    """
    text = render_document(document, output_format_for(path))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise OutputError(
            f"Failed to write '{path}': {e}\n"
            "Check directory permissions and available disk space."
        ) from e


def load_document(path: Path) -> ViolationFile | TraceFile:
    """JSON 形式の違反レポートまたはトレースを読み込む。

    ``entries`` キーを持つファイルをトレース、それ以外を違反レポートとして扱う。

    Args:
        path: 読み込む JSON ファイル。

    Returns:
        ViolationFile または TraceFile。

    Raises:
        OutputError: ファイルが読めない、JSON として不正、または内容が不正な場合。
        SchemaVersionError: メジャーバージョンが一致しない場合。
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise OutputError(f"Cannot read '{path}': {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OutputError(f"'{path}' is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise OutputError(f"'{path}' must contain a JSON object")

    version = data.get("version")
    if not isinstance(version, str):
        raise SchemaVersionError(f"'{path}' has no schema version")
    check_schema_version(version)

    model = TraceFile if "entries" in data else ViolationFile
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise OutputError(f"'{path}' is not a valid {model.__name__}: {e}") from e
