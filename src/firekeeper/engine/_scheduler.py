"""Scheduler — 上限付き並列でのタスク実行。

上限 N が指定された場合は N 個のワーカーが共有イテレータからタスクを取り出し、
無制限の場合は全タスクを同時に開始する。停止イベントがセットされると
新しいタスクの取り出しをやめる。各タスクの結果は完了次第コールバックへ渡す。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from firekeeper.engine._errors import CancellationError
from firekeeper.engine._loop import AgentLoop
from firekeeper.engine._progress import ProgressReporter
from firekeeper.engine._transport import ModelTransport
from firekeeper.models.config import DEFAULT_MAX_TURNS
from firekeeper.models.outcome import TaskOutcome
from firekeeper.models.task import ReviewTask

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[TaskOutcome], None]


async def execute_tasks(
    tasks: Sequence[ReviewTask],
    transport: ModelTransport,
    shutdown_event: asyncio.Event,
    collected_outcomes: list[TaskOutcome] | None = None,
    *,
    root: Path,
    max_workers: int | None = None,
    max_turns: int = DEFAULT_MAX_TURNS,
    on_complete: OutcomeCallback | None = None,
    reporter: ProgressReporter | None = None,
) -> list[TaskOutcome]:
    """タスクを上限付き並列で実行する。

    各タスクの例外は AgentLoop 内で TaskAborted に変換され、他タスクには伝播しない。
    実行中のワーカーが外部からキャンセルされた場合、そのタスクは
    その時点までの会話を保持した CancellationError の中断結果として記録される。

    collected_outcomes が指定された場合、結果を直接追加する。
    これにより外部からキャンセルされても完了済みタスクの結果が保存される。

    Args:
        tasks: 実行するタスク列。
        transport: モデルへのリクエスト手段（全タスクで共有）。
        shutdown_event: シグナルハンドラがセットする停止イベント。
        collected_outcomes: 外部から結果を参照するための共有リスト。
            None の場合は内部でリストを作成する。
        root: 作業ツリーのルート。
        max_workers: 同時実行数の上限。None は無制限。
        max_turns: 1 タスクあたりのモデルリクエスト数上限。
        on_complete: タスク完了ごとに呼ばれるコールバック。
        reporter: 進捗レポーター。

    Returns:
        完了したタスクの TaskOutcome リスト（完了順）。
    """
    # asyncio は単一スレッドで動作するため、
    # list.append は並列タスク間で安全に使用できる。
    results: list[TaskOutcome] = (
        collected_outcomes if collected_outcomes is not None else []
    )
    if not tasks:
        return results

    def _deliver(outcome: TaskOutcome) -> None:
        results.append(outcome)
        if on_complete is not None:
            on_complete(outcome)
        if reporter is not None:
            try:
                reporter.on_task_complete(outcome.task_id, outcome)
            except Exception:
                logger.debug("Progress reporter failed", exc_info=True)

    async def _run_one(task: ReviewTask) -> None:
        agent_loop = AgentLoop(
            task,
            transport,
            cancel_event=shutdown_event,
            root=root,
            max_turns=max_turns,
        )
        if reporter is not None:
            try:
                reporter.on_task_start(task.task_id)
            except Exception:
                logger.debug("Progress reporter failed", exc_info=True)
        try:
            outcome = await agent_loop.run()
        except asyncio.CancelledError:
            _deliver(
                agent_loop.abort(
                    CancellationError("Task was cancelled before it could finish")
                )
            )
            raise
        _deliver(outcome)

    pending = iter(tasks)

    async def _worker() -> None:
        for task in pending:
            if shutdown_event.is_set():
                return
            await _run_one(task)

    worker_count = len(tasks) if max_workers is None else min(max_workers, len(tasks))
    logger.debug("Starting %d worker(s) for %d task(s)", worker_count, len(tasks))
    async with asyncio.TaskGroup() as tg:
        for _ in range(worker_count):
            tg.create_task(_worker())

    return results
