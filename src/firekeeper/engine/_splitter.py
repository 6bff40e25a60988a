"""TaskSplitter — ルールと変更ファイルからのタスク分割。

ルールごとに scope/exclude で対象ファイルを絞り込み、1 つ以上の ReviewTask を
生成する。対象ファイルが空のルールはタスクを生成しない。
リソースはこの時点で解決し、解決失敗はそのタスクの setup_error として記録する。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from firekeeper.engine._errors import ResourceError
from firekeeper.engine._glob import filter_files
from firekeeper.engine._resources import ResourceResolver
from firekeeper.models.config import ReviewConfig
from firekeeper.models.resource import ResourceBlock
from firekeeper.models.rule import RuleBody
from firekeeper.models.task import ChangeSet, ReviewTask

logger = logging.getLogger(__name__)


def match_rule_files(rule: RuleBody, files: Sequence[str]) -> list[str]:
    """ルールの scope に一致し exclude に一致しないファイルを返す。"""
    return filter_files(files, rule.scope, rule.exclude)


def split_files(files: Sequence[str], max_files: int | None) -> list[list[str]]:
    """ファイル列を均等な大きさのチャンクに分割する。

    チャンク数を ``ceil(総数 / max_files)`` とし、各チャンクの大きさが
    なるべく揃うように分ける（例: 7 件を上限 5 で分けると 4 件と 3 件）。

    Args:
        files: 分割対象のファイル列。
        max_files: 1 チャンクの上限。None の場合は分割しない。

    Returns:
        チャンクのリスト。files が空なら空リスト。
    """
    if not files:
        return []
    if max_files is None or len(files) <= max_files:
        return [list(files)]
    num_chunks = math.ceil(len(files) / max_files)
    chunk_size = math.ceil(len(files) / num_chunks)
    return [
        list(files[i : i + chunk_size]) for i in range(0, len(files), chunk_size)
    ]


async def split_tasks(
    config: ReviewConfig,
    changeset: ChangeSet,
    resolver: ResourceResolver,
) -> list[ReviewTask]:
    """設定と変更セットからタスク列を生成する。

    タスク ID は生成順の連番文字列。同じ入力に対しては同じタスク列を返す。

    Args:
        config: レビュー設定。
        changeset: 変更セット。
        resolver: リソースリゾルバー。

    Returns:
        ReviewTask のリスト。変更ファイルやルールが空なら空リスト。
    """
    tasks: list[ReviewTask] = []
    for rule in config.rules:
        files = match_rule_files(rule, changeset.files)
        if not files:
            logger.debug("Rule '%s' matched no changed files, skipping", rule.name)
            continue

        resources: tuple[ResourceBlock, ...] = ()
        setup_error: str | None = None
        try:
            resources = tuple(
                await resolver.resolve((*config.review.resources, *rule.resources))
            )
        except ResourceError as exc:
            setup_error = str(exc)
            logger.warning(
                "Failed to resolve resources for rule '%s': %s", rule.name, exc
            )

        max_files = rule.max_files_per_task or config.review.max_files_per_task
        for chunk in split_files(files, max_files):
            tasks.append(
                ReviewTask(
                    task_id=str(len(tasks)),
                    rule=rule,
                    files=tuple(chunk),
                    changeset=changeset,
                    resources=resources,
                    setup_error=setup_error,
                )
            )
    return tasks
