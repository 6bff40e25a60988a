"""設定管理モデル。

firekeeper.toml の [llm] / [review] / [[rules]] セクションに対応する。
全モデルは不変で、実行中に変更されることはない。
"""

from __future__ import annotations

from typing import Final

from pydantic import Field, JsonValue, StrictBool, field_validator

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.resource import validate_resource_uris
from firekeeper.models.rule import RuleBody

DEFAULT_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"
DEFAULT_MODEL: Final[str] = "google/gemini-3-flash-preview"
DEFAULT_TIMEOUT_SECONDS: Final[int] = 600
DEFAULT_MAX_TURNS: Final[int] = 30


class LlmConfig(FirekeeperBaseModel):
    """LLM 接続設定。

    OpenAI 互換エンドポイントを前提とする。

    Attributes:
        base_url: API のベース URL。
        model: モデル名。
        headers: プロバイダ固有の追加 HTTP ヘッダー。
        body: リクエストボディへの追加フィールド。
        parallel_tool_calls: 1 応答内での複数ツール呼び出しを許可するか。
        timeout: 1 リクエストあたりのタイムアウト（秒）。
    """

    base_url: str = Field(default=DEFAULT_BASE_URL, min_length=1)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, JsonValue] = Field(default_factory=dict)
    parallel_tool_calls: StrictBool = True
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)


class ReviewSettings(FirekeeperBaseModel):
    """レビュー実行設定。

    Attributes:
        base: 比較対象のベース ref。空文字列は自動判定。
        resources: 全ルール共通のリソース URI。
        max_parallel_workers: 同時実行タスク数の上限。None または 0 は無制限。
        max_files_per_task: 1 タスクあたりの最大ファイル数。None はルールごとに 1 タスク。
        max_turns: 1 タスクあたりの最大モデルリクエスト数。
    """

    base: str = ""
    resources: tuple[str, ...] = ()
    max_parallel_workers: int | None = Field(default=None, ge=0)
    max_files_per_task: int | None = Field(default=None, gt=0)
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, gt=0)

    @field_validator("resources")
    @classmethod
    def _validate_resources(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return validate_resource_uris(v)

    @property
    def worker_bound(self) -> int | None:
        """実効的な並列数上限。0 は無制限として None に正規化する。"""
        return self.max_parallel_workers or None


class ReviewConfig(FirekeeperBaseModel):
    """全設定項目を統合した不変モデル。

    デフォルト値のみで有効なインスタンスを構築可能（ルールは空）。
    """

    llm: LlmConfig = Field(default_factory=LlmConfig)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    rules: tuple[RuleBody, ...] = ()

    @field_validator("rules")
    @classmethod
    def _validate_unique_rule_names(
        cls, v: tuple[RuleBody, ...]
    ) -> tuple[RuleBody, ...]:
        seen: set[str] = set()
        for rule in v:
            if rule.name in seen:
                raise ValueError(f"Duplicate rule name: '{rule.name}'")
            seen.add(rule.name)
        return v
