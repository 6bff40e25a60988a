"""ProgressReporter — stderr 進捗表示。

レビュー実行中の進捗情報を stderr に出力する。
TTY 時は Rich Live テーブル、非 TTY 時はプレーンテキストで自動切替。
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from firekeeper.models.outcome import TaskAborted, TaskOutcome, TaskReported
from firekeeper.models.summary import ReviewSummary


# =============================================================================
# ProgressReporter Protocol
# =============================================================================


@runtime_checkable
class ProgressReporter(Protocol):
    """タスク実行進捗を報告するプロトコル。"""

    def on_task_pending(self, task_id: str, rule_name: str, file_count: int) -> None:
        """タスクを pending 状態として登録する。"""
        ...

    def on_task_start(self, task_id: str) -> None:
        """タスク実行開始を通知する。"""
        ...

    def on_task_complete(self, task_id: str, outcome: TaskOutcome) -> None:
        """タスク実行完了を通知する。"""
        ...

    def start(self) -> None:
        """進捗表示を開始する。"""
        ...

    def stop(self) -> None:
        """進捗表示を停止する。"""
        ...


# =============================================================================
# PlainProgressReporter
# =============================================================================


class PlainProgressReporter:
    """非 TTY 環境向けプレーンテキスト進捗レポーター。"""

    def __init__(self) -> None:
        self._rule_names: dict[str, str] = {}

    def on_task_pending(self, task_id: str, rule_name: str, file_count: int) -> None:
        """ルール名を記憶する。プレーンテキストでは pending 表示しない。"""
        self._rule_names[task_id] = rule_name

    def on_task_start(self, task_id: str) -> None:
        """report_task_start に委譲する。"""
        report_task_start(task_id, self._rule_names.get(task_id, ""))

    def on_task_complete(self, task_id: str, outcome: TaskOutcome) -> None:
        """report_task_complete に委譲する。"""
        report_task_complete(task_id, outcome)

    def start(self) -> None:
        """プレーンテキストでは開始処理なし。"""

    def stop(self) -> None:
        """プレーンテキストでは停止処理なし。"""


# =============================================================================
# ファクトリ関数
# =============================================================================


def create_progress_reporter() -> ProgressReporter:
    """stderr の TTY 状態に基づいて適切な ProgressReporter を生成する。

    TTY の場合は RichProgressReporter、非 TTY の場合は PlainProgressReporter を返す。
    """
    if sys.stderr.isatty():
        from firekeeper.engine._live_progress import RichProgressReporter

        return RichProgressReporter()
    return PlainProgressReporter()


def report_task_start(task_id: str, rule_name: str) -> None:
    """タスク実行開始を stderr に表示する。

    出力フォーマット:
        "Running task {task_id}: {rule_name}..."
    """
    print(f"Running task {task_id}: {rule_name}...", file=sys.stderr)


def report_task_complete(task_id: str, outcome: TaskOutcome) -> None:
    """タスク実行完了を stderr に表示する。

    出力フォーマット:
        正常終了: "Task {task_id} ({rule}): reported ({N} violations)"
        中断: "Task {task_id} ({rule}): aborted ({error_type}: {message})"

    Args:
        task_id: 完了したタスク ID。
        outcome: タスク実行結果。
    """
    if isinstance(outcome, TaskReported):
        msg = (
            f"Task {task_id} ({outcome.rule_name}): "
            f"reported ({len(outcome.violations)} violations)"
        )
    elif isinstance(outcome, TaskAborted):
        msg = (
            f"Task {task_id} ({outcome.rule_name}): "
            f"aborted ({outcome.error_type.value}: {outcome.error_message})"
        )
    else:
        raise TypeError(f"Unknown outcome type: {type(outcome)}")

    print(msg, file=sys.stderr)


def report_summary(summary: ReviewSummary) -> None:
    """全体完了サマリーを stderr に表示する。

    出力フォーマット:
        "Review complete: {total} tasks ({reported} reported, {aborted} aborted,
         {not_started} not started, {violations} violations)"
    """
    prefix = "Review cancelled" if summary.cancelled else "Review complete"
    msg = (
        f"{prefix}: {summary.total_tasks} tasks "
        f"({summary.reported} reported, {summary.aborted} aborted, "
        f"{summary.not_started} not started, {summary.violations} violations)"
    )
    print(msg, file=sys.stderr)
