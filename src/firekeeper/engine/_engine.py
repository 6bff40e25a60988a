"""ReviewEngine — レビュー実行パイプライン。

変更セット収集 → タスク分割（リソース事前解決）→ 上限付き並列実行 →
トレース収集・違反集約 → 終了コード決定。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from contextlib import suppress
from pathlib import Path
from typing import Final

from firekeeper.engine._aggregator import Aggregator
from firekeeper.engine._diff_provider import DiffProvider, GitDiffProvider
from firekeeper.engine._progress import (
    ProgressReporter,
    create_progress_reporter,
    report_summary,
)
from firekeeper.engine._resources import ResourceResolver
from firekeeper.engine._scheduler import execute_tasks
from firekeeper.engine._signal import install_signal_handlers, uninstall_signal_handlers
from firekeeper.engine._splitter import split_tasks
from firekeeper.engine._tracer import Tracer
from firekeeper.engine._transport import ModelTransport
from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.config import ReviewConfig
from firekeeper.models.exit_code import ExitCode
from firekeeper.models.outcome import TaskOutcome
from firekeeper.models.summary import ReviewSummary
from firekeeper.models.task import ReviewTask
from firekeeper.models.trace import TraceFile
from firekeeper.models.violation import ViolationFile

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS: Final[float] = 3.0
"""SIGINT/SIGTERM 受信後、実行中タスクを強制キャンセルするまでの猶予時間（秒）。"""


class EngineResult(FirekeeperBaseModel):
    """ReviewEngine の実行結果。

    Attributes:
        violation_file: 違反レポート。
        trace_file: 全タスクのトレース。
        summary: 実行全体の集計。
        exit_code: 終了コード（ExitCode.SUCCESS / FAILURE）。
    """

    violation_file: ViolationFile
    trace_file: TraceFile
    summary: ReviewSummary
    exit_code: ExitCode


async def _execute_with_shutdown_timeout(
    executor_fn: Callable[
        [asyncio.Event, list[TaskOutcome]],
        Coroutine[object, object, list[TaskOutcome]],
    ],
    shutdown_event: asyncio.Event,
) -> list[TaskOutcome]:
    """シャットダウンタイムアウトを適用してエグゼキュータを実行する。

    shutdown_event がセットされた場合、SHUTDOWN_TIMEOUT_SECONDS の猶予の後に
    エグゼキュータタスクをキャンセルし、それまでに完了したタスクの結果を返す。

    完了済みタスクの結果は collected_outcomes 共有リストに蓄積される。
    キャンセルされたタスクもその時点までのトレース付きで共有リストに追加される。

    Args:
        executor_fn: タスク実行関数。(shutdown_event, collected_outcomes) で呼び出す。
        shutdown_event: シグナルハンドラがセットする停止イベント。

    Returns:
        完了したタスクの TaskOutcome リスト。
    """
    collected_outcomes: list[TaskOutcome] = []

    executor_task: asyncio.Task[list[TaskOutcome]] = asyncio.create_task(
        executor_fn(shutdown_event, collected_outcomes)
    )
    shutdown_waiter = asyncio.create_task(shutdown_event.wait())

    done, _ = await asyncio.wait(
        {executor_task, shutdown_waiter},
        return_when=asyncio.FIRST_COMPLETED,
    )

    shutdown_waiter.cancel()
    with suppress(asyncio.CancelledError):
        await shutdown_waiter

    if executor_task in done:
        return await executor_task

    # シャットダウン要求 → 猶予時間内に完了を待つ
    try:
        return await asyncio.wait_for(executor_task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
    except TimeoutError:
        executor_task.cancel()
        with suppress(asyncio.CancelledError):
            await executor_task
        logger.warning(
            "Shutdown timeout (%ss) expired, returning %d partial result(s)",
            SHUTDOWN_TIMEOUT_SECONDS,
            len(collected_outcomes),
        )
        return collected_outcomes


async def plan_review(
    config: ReviewConfig,
    diff_provider: DiffProvider | None = None,
    root: Path | None = None,
    base: str | None = None,
) -> list[ReviewTask]:
    """変更セットを収集し、タスクに分割する。

    Args:
        config: レビュー設定。
        diff_provider: 変更セット提供者。None の場合は GitDiffProvider。
        root: 作業ツリーのルート。None の場合はカレントディレクトリ。
        base: ベース ref。None の場合は設定値を使う。

    Returns:
        ReviewTask のリスト。

    Raises:
        DiffCollectionError: 変更セットの収集に失敗した場合。
    """
    effective_root = root if root is not None else Path.cwd()
    provider = diff_provider if diff_provider is not None else GitDiffProvider(
        effective_root
    )
    changeset = await provider.collect(base if base is not None else config.review.base)
    resolver = ResourceResolver(effective_root)
    return await split_tasks(config, changeset, resolver)


async def run_review(
    config: ReviewConfig,
    transport: ModelTransport,
    *,
    diff_provider: DiffProvider | None = None,
    root: Path | None = None,
    base: str | None = None,
    reporter: ProgressReporter | None = None,
) -> EngineResult:
    """レビュー実行パイプラインを実行する。

    パイプライン:
        1. 変更セット収集とタスク分割（plan_review）
        2. シグナルハンドラ登録・進捗表示開始
        3. 上限付き並列実行（execute_tasks）
        4. トレース収集・違反集約・終了コード決定

    実行中に予期しない例外が発生した場合も、それまでに完了したタスクの
    トレースと違反を含む結果を FAILURE として返す。

    Args:
        config: レビュー設定。
        transport: モデルへのリクエスト手段。
        diff_provider: 変更セット提供者。None の場合は GitDiffProvider。
        root: 作業ツリーのルート。None の場合はカレントディレクトリ。
        base: ベース ref。None の場合は設定値を使う。
        reporter: 進捗レポーター。None の場合は TTY 判定で自動生成する。

    Returns:
        EngineResult: 違反レポート・トレース・集計・終了コード。

    Raises:
        DiffCollectionError: 変更セットの収集に失敗した場合。
    """
    effective_root = root if root is not None else Path.cwd()
    tasks = await plan_review(config, diff_provider, effective_root, base)

    aggregator = Aggregator()
    tracer = Tracer()

    def _record(outcome: TaskOutcome) -> None:
        tracer.record(outcome)
        aggregator.record(outcome)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    progress = reporter if reporter is not None else create_progress_reporter()
    for task in tasks:
        progress.on_task_pending(task.task_id, task.rule.name, len(task.files))

    async def _bound_executor(
        event: asyncio.Event,
        collected: list[TaskOutcome],
    ) -> list[TaskOutcome]:
        return await execute_tasks(
            tasks,
            transport,
            event,
            collected,
            root=effective_root,
            max_workers=config.review.worker_bound,
            max_turns=config.review.max_turns,
            on_complete=_record,
            reporter=progress,
        )

    execution_failed = False
    try:
        install_signal_handlers(shutdown_event, loop)
        progress.start()
        await _execute_with_shutdown_timeout(_bound_executor, shutdown_event)
    except Exception:
        # 完了済みタスクは _record で集約済み
        execution_failed = True
        logger.exception("Review execution failed, returning collected results")
    finally:
        try:
            progress.stop()
        finally:
            uninstall_signal_handlers(loop)

    cancelled = shutdown_event.is_set()
    summary = aggregator.summarize(total_tasks=len(tasks), cancelled=cancelled)
    report_summary(summary)

    return EngineResult(
        violation_file=aggregator.build_violation_file(),
        trace_file=tracer.build_trace_file(),
        summary=summary,
        exit_code=aggregator.exit_code(cancelled=cancelled or execution_failed),
    )
