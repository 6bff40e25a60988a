"""違反レポートの定義。"""

from __future__ import annotations

from pydantic import Field, model_validator

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.schema_version import SCHEMA_VERSION


class Violation(FirekeeperBaseModel):
    """ルール違反 1 件。

    Attributes:
        rule: 違反したルール名。
        file: 対象ファイルのパス。
        description: 違反内容の説明。
        start_line: 開始行（1 始まり、任意）。
        end_line: 終了行（1 始まり、任意）。
    """

    rule: str = Field(min_length=1)
    file: str = Field(min_length=1)
    description: str = Field(min_length=1)
    start_line: int | None = Field(default=None, ge=1)
    end_line: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _validate_line_range(self) -> Violation:
        if (
            self.start_line is not None
            and self.end_line is not None
            and self.end_line < self.start_line
        ):
            raise ValueError(
                f"end_line ({self.end_line}) must not precede "
                f"start_line ({self.start_line})"
            )
        return self


class ViolationFile(FirekeeperBaseModel):
    """違反レポートファイル。

    Attributes:
        version: スキーマバージョン。
        violations: 全タスクで検出された違反。
        tips: 重複を除いた助言のリスト。
    """

    version: str = SCHEMA_VERSION
    violations: list[Violation] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
