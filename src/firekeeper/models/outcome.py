"""タスク実行結果の定義。

TaskOutcome 判別共用体。status フィールドの固定値で型を一意に特定する。
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import Field

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.trace import TraceEntry
from firekeeper.models.violation import Violation


class ErrorKind(StrEnum):
    """タスク中断の原因種別。"""

    RESOURCE = "resource"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    DEAD_LOOP = "dead_loop"
    CANCELLED = "cancelled"
    TURN_LIMIT = "turn_limit"
    INTERNAL = "internal"


class TaskReported(FirekeeperBaseModel):
    """タスクの正常終了結果。判別キー: status="reported"。

    Attributes:
        status: 判別キー。固定値 "reported"。
        task_id: タスク ID。
        rule_name: ルール名。
        violations: 報告された違反。
        tips: 報告された助言。
        elapsed_time: 実行所要時間（秒）。
        requests: 発行したモデルリクエスト数。
        trace: タスクのトレース。
    """

    status: Literal["reported"] = "reported"
    task_id: str = Field(min_length=1)
    rule_name: str = Field(min_length=1)
    violations: list[Violation]
    tips: list[str] = Field(default_factory=list)
    elapsed_time: float = Field(ge=0.0, allow_inf_nan=False)
    requests: int = Field(ge=0)
    trace: TraceEntry


class TaskAborted(FirekeeperBaseModel):
    """タスクの中断結果。判別キー: status="aborted"。

    Attributes:
        status: 判別キー。固定値 "aborted"。
        task_id: タスク ID。
        rule_name: ルール名。
        error_type: 中断原因の種別。
        error_message: エラーメッセージ。
        elapsed_time: 実行所要時間（秒）。
        trace: 中断時点までのトレース。
    """

    status: Literal["aborted"] = "aborted"
    task_id: str = Field(min_length=1)
    rule_name: str = Field(min_length=1)
    error_type: ErrorKind
    error_message: str = Field(min_length=1)
    elapsed_time: float = Field(ge=0.0, allow_inf_nan=False)
    trace: TraceEntry


TaskOutcome = Annotated[
    Union[TaskReported, TaskAborted],
    Field(discriminator="status"),
]
"""タスク結果の判別共用体。status フィールドの値で型を自動選択する。"""
