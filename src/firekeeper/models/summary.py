"""ReviewSummary — レビュー実行全体の集計。"""

from __future__ import annotations

from pydantic import Field

from firekeeper.models._base import FirekeeperBaseModel


class ReviewSummary(FirekeeperBaseModel):
    """レビュー実行全体の集計。

    Attributes:
        total_tasks: 分割されたタスクの総数。
        reported: 正常終了したタスク数。
        aborted: 中断したタスク数。
        not_started: キャンセルにより開始されなかったタスク数。
        violations: 違反の総数。
        cancelled: 実行がキャンセルされたか。
    """

    total_tasks: int = Field(ge=0)
    reported: int = Field(ge=0)
    aborted: int = Field(ge=0)
    not_started: int = Field(ge=0)
    violations: int = Field(ge=0)
    cancelled: bool = False
