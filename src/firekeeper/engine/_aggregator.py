"""Aggregator — タスク結果の集約と終了コード決定。

完了したタスク結果を順次受け取り、違反レポート（ViolationFile）と
実行全体の集計、終了コードを構築する。
"""

from __future__ import annotations

import threading

from firekeeper.models.exit_code import ExitCode
from firekeeper.models.outcome import TaskAborted, TaskOutcome, TaskReported
from firekeeper.models.summary import ReviewSummary
from firekeeper.models.violation import Violation, ViolationFile


def task_order(task_id: str) -> tuple[int, int, str]:
    """タスク ID の並び順キー。数値 ID は数値順、それ以外は後ろに文字列順。"""
    if task_id.isdigit():
        return (0, int(task_id), "")
    return (1, 0, task_id)


def determine_exit_code(aborted: int, violations: int, cancelled: bool) -> ExitCode:
    """実行結果から終了コードを決定する。

    中断したタスク・違反・キャンセルのいずれも無い場合のみ SUCCESS。

    Args:
        aborted: 中断したタスク数。
        violations: 違反の総数。
        cancelled: 実行がキャンセルされたか。

    Returns:
        ExitCode.SUCCESS または ExitCode.FAILURE。
    """
    if aborted > 0 or violations > 0 or cancelled:
        return ExitCode.FAILURE
    return ExitCode.SUCCESS


class Aggregator:
    """タスク結果を受け取り違反レポートを構築する。

    record() はロックで直列化され、1 回の呼び出しが 1 タスク分の結果を
    不可分に取り込む。出力はタスク ID 順に並べ替えるため到着順に依存しない。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reported: dict[str, TaskReported] = {}
        self._aborted: dict[str, TaskAborted] = {}

    def record(self, outcome: TaskOutcome) -> None:
        """タスク結果を 1 件取り込む。"""
        with self._lock:
            if isinstance(outcome, TaskReported):
                self._reported[outcome.task_id] = outcome
            else:
                self._aborted[outcome.task_id] = outcome

    def build_violation_file(self) -> ViolationFile:
        """取り込み済みの結果から ViolationFile を構築する。

        助言は出現順を保ったまま重複を除く。
        """
        with self._lock:
            reported = sorted(
                self._reported.values(), key=lambda r: task_order(r.task_id)
            )
        violations: list[Violation] = []
        tips: list[str] = []
        for result in reported:
            violations.extend(result.violations)
            for tip in result.tips:
                if tip not in tips:
                    tips.append(tip)
        return ViolationFile(violations=violations, tips=tips)

    def summarize(self, total_tasks: int, cancelled: bool = False) -> ReviewSummary:
        """実行全体の集計を返す。

        Args:
            total_tasks: 分割されたタスクの総数。
            cancelled: 実行がキャンセルされたか。
        """
        with self._lock:
            reported = len(self._reported)
            aborted = len(self._aborted)
            violations = sum(len(r.violations) for r in self._reported.values())
        return ReviewSummary(
            total_tasks=total_tasks,
            reported=reported,
            aborted=aborted,
            not_started=max(0, total_tasks - reported - aborted),
            violations=violations,
            cancelled=cancelled,
        )

    def exit_code(self, cancelled: bool = False) -> ExitCode:
        """取り込み済みの結果から終了コードを決定する。"""
        with self._lock:
            aborted = len(self._aborted)
            violations = sum(len(r.violations) for r in self._reported.values())
        return determine_exit_code(aborted, violations, cancelled)
