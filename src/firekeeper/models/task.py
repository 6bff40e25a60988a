"""レビュータスクと変更セットの定義。"""

from __future__ import annotations

from pydantic import Field

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.resource import ResourceBlock
from firekeeper.models.rule import RuleBody


class ChangeSet(FirekeeperBaseModel):
    """ベース ref からの変更内容。

    Attributes:
        files: 変更されたファイルのパス（リポジトリルート相対、ソート済み）。
        diffs: ファイルパス → unified diff。
        commit_messages: ベースから HEAD までのコミットメッセージ（改行区切り）。
        is_root: リポジトリ全体を空ツリーと比較しているか。
    """

    files: tuple[str, ...] = ()
    diffs: dict[str, str] = Field(default_factory=dict)
    commit_messages: str = ""
    is_root: bool = False


class ReviewTask(FirekeeperBaseModel):
    """1 つのルールと、そのルールが対象とするファイル群の組。

    Attributes:
        task_id: 実行内で一意なタスク ID。
        rule: 適用するルール。
        files: ルールの scope/exclude に一致したファイル（空にならない）。
        changeset: 実行全体の変更セット。
        resources: 事前解決済みのリソースブロック。
        setup_error: リソース解決失敗時のエラーメッセージ。設定時はタスクを即時中断する。
    """

    task_id: str = Field(min_length=1)
    rule: RuleBody
    files: tuple[str, ...] = Field(min_length=1)
    changeset: ChangeSet
    resources: tuple[ResourceBlock, ...] = ()
    setup_error: str | None = None
