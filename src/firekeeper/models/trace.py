"""実行トレースの定義。

各タスクの会話ログを時刻付きで記録し、成功・失敗にかかわらず
1 タスクにつき 1 エントリを TraceFile に収める。
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import Field, JsonValue

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.rule import RuleBody
from firekeeper.models.schema_version import SCHEMA_VERSION


class MessageRole(StrEnum):
    """トレースメッセージの発話者。"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    ERROR = "error"


class ToolSpec(FirekeeperBaseModel):
    """モデルに提示したツール定義。

    Attributes:
        name: ツール名。
        description: ツールの説明。
        parameters: 引数の JSON Schema。
    """

    name: str = Field(min_length=1)
    description: str
    parameters: dict[str, JsonValue]


class ToolCallRecord(FirekeeperBaseModel):
    """アシスタントが発行したツール呼び出し 1 件。"""

    id: str
    name: str
    arguments: str


class TimedMessage(FirekeeperBaseModel):
    """時刻付きの会話メッセージ。

    Attributes:
        role: 発話者。
        content: 本文。
        timestamp: 記録時刻（UTC）。
        elapsed: セッション開始からの経過秒数。
        tool_calls: アシスタントのツール呼び出し（role=assistant のみ）。
        tool_call_id: 応答対象のツール呼び出し ID（role=tool のみ）。
        tool_name: 応答したツール名（role=tool のみ）。
    """

    role: MessageRole
    content: str
    timestamp: datetime
    elapsed: float = Field(ge=0.0, allow_inf_nan=False)
    tool_calls: list[ToolCallRecord] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None


class TraceEntry(FirekeeperBaseModel):
    """1 タスク分のトレース。

    Attributes:
        task_id: タスク ID。
        rule: ルール定義の完全なスナップショット。
        files: タスクが対象としたファイル。
        status: タスクの最終状態。
        elapsed_secs: タスク所要時間（秒）。
        tools: モデルに提示したツール定義。
        messages: 時系列順の会話メッセージ。
    """

    task_id: str = Field(min_length=1)
    rule: RuleBody
    files: list[str]
    status: Literal["reported", "aborted"]
    elapsed_secs: float = Field(ge=0.0, allow_inf_nan=False)
    tools: list[ToolSpec] = Field(default_factory=list)
    messages: list[TimedMessage] = Field(default_factory=list)


class TraceFile(FirekeeperBaseModel):
    """トレースファイル。

    Attributes:
        version: スキーマバージョン。
        entries: 完了したタスクごとのトレース。
    """

    version: str = SCHEMA_VERSION
    entries: list[TraceEntry] = Field(default_factory=list)
