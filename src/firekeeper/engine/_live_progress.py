"""RichProgressReporter — TTY 環境向け Rich Live テーブル進捗表示。

各タスクの状態（待機・実行中・結果）と所要時間を 1 行ずつ表示し、
キャプションに完了数を示す。
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from firekeeper.engine._aggregator import task_order
from firekeeper.models.outcome import TaskAborted, TaskOutcome, TaskReported


class RowState(StrEnum):
    """テーブル行の状態。"""

    PENDING = "pending"
    RUNNING = "running"
    CLEAN = "clean"
    VIOLATIONS = "violations"
    ABORTED = "aborted"


_FINISHED: Final[frozenset[RowState]] = frozenset(
    {RowState.CLEAN, RowState.VIOLATIONS, RowState.ABORTED}
)
_STATE_STYLES: Final[dict[RowState, tuple[str, str]]] = {
    RowState.PENDING: ("⏳", "dim"),
    RowState.CLEAN: ("✓", "green"),
    RowState.VIOLATIONS: ("⚠", "yellow"),
    RowState.ABORTED: ("✗", "red"),
}


@dataclass
class TaskRow:
    """テーブル行。

    Attributes:
        rule_name: ルール名。
        file_count: 対象ファイル数。
        state: 行の状態。
        detail: 状態に添える文字列（違反数や中断種別）。
        elapsed: 完了時の所要時間（秒）。
    """

    rule_name: str
    file_count: int
    state: RowState = RowState.PENDING
    detail: str = ""
    elapsed: float | None = None

    def apply(self, outcome: TaskOutcome) -> None:
        """タスク結果を行に反映する。"""
        self.elapsed = outcome.elapsed_time
        if isinstance(outcome, TaskReported):
            count = len(outcome.violations)
            self.state = RowState.VIOLATIONS if count else RowState.CLEAN
            self.detail = f"{count} violations" if count else ""
        elif isinstance(outcome, TaskAborted):
            self.state = RowState.ABORTED
            self.detail = outcome.error_type.value
        else:
            raise TypeError(f"Unknown outcome type: {type(outcome)}")


def _render_status(row: TaskRow) -> Text | Spinner:
    if row.state is RowState.RUNNING:
        return Spinner("dots", text="running", style="cyan")
    icon, style = _STATE_STYLES[row.state]
    label = row.detail or row.state.value
    return Text(f"{icon} {label}", style=style)


class RichProgressReporter:
    """TTY 環境向け Rich Live テーブル進捗レポーター。

    テーブル列: Task | Rule | Files | Status | Time（タスク ID 順）。
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console: Console = console or Console(file=sys.stderr)
        self._live: Live | None = None
        self.tasks: dict[str, TaskRow] = {}

    def on_task_pending(self, task_id: str, rule_name: str, file_count: int) -> None:
        self.tasks[task_id] = TaskRow(rule_name=rule_name, file_count=file_count)
        self._refresh()

    def on_task_start(self, task_id: str) -> None:
        row = self.tasks.get(task_id)
        if row is not None:
            row.state = RowState.RUNNING
            self._refresh()

    def on_task_complete(self, task_id: str, outcome: TaskOutcome) -> None:
        row = self.tasks.get(task_id)
        if row is not None:
            row.apply(outcome)
            self._refresh()

    def start(self) -> None:
        """Live 表示を開始する。"""
        self._live = Live(
            self.build_table(), console=self._console, refresh_per_second=4
        )
        self._live.start()

    def stop(self) -> None:
        """Live 表示を停止する。二度目以降の呼び出しは何もしない。"""
        live, self._live = self._live, None
        if live is not None:
            live.stop()

    def build_table(self) -> Table:
        """現在の行状態からテーブルを構築する。"""
        finished = sum(row.state in _FINISHED for row in self.tasks.values())
        table = Table(
            title="Review Progress",
            caption=f"{finished}/{len(self.tasks)} tasks finished",
        )
        table.add_column("Task")
        table.add_column("Rule")
        table.add_column("Files", justify="right")
        table.add_column("Status")
        table.add_column("Time", justify="right")

        for task_id in sorted(self.tasks, key=task_order):
            row = self.tasks[task_id]
            elapsed = "" if row.elapsed is None else f"{row.elapsed:.1f}s"
            table.add_row(
                task_id,
                row.rule_name,
                str(row.file_count),
                _render_status(row),
                elapsed,
            )
        return table

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.build_table())
