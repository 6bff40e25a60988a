"""RuleBody — レビュールールの定義。"""

from __future__ import annotations

from typing import Annotated

from pydantic import Field, StringConstraints, field_validator

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.resource import validate_resource_uris

DEFAULT_SCOPE: tuple[str, ...] = ("**/*",)

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class RuleBody(FirekeeperBaseModel):
    """1 つのレビュールール。

    scope と exclude の差集合がルールのファイル集合を決める。
    exclude はファイル集合を狭めるだけで、広げることはない。

    Attributes:
        name: ルール名。1 回の実行内で一意。
        description: 人間向けの説明。モデルには提示しない。
        instruction: モデルに与える違反判定基準。
        scope: 対象ファイルの glob パターン。
        exclude: 除外する glob パターン。
        resources: ルール固有のリソース URI。
        tip: 違反検出時にレポートへ添える助言。
        max_files_per_task: 1 タスクあたりの最大ファイル数（グローバル設定より優先）。
    """

    name: str = Field(min_length=1)
    description: str = ""
    instruction: str = Field(min_length=1)
    scope: tuple[NonEmptyStr, ...] = DEFAULT_SCOPE
    exclude: tuple[NonEmptyStr, ...] = ()
    resources: tuple[str, ...] = ()
    tip: str | None = None
    max_files_per_task: int | None = Field(default=None, gt=0)

    @field_validator("resources")
    @classmethod
    def _validate_resources(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return validate_resource_uris(v)

    @field_validator("instruction")
    @classmethod
    def _validate_instruction(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("instruction must not be blank")
        return v
