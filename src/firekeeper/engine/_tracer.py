"""Tracer — タスクごとのトレース収集。"""

from __future__ import annotations

import threading

from firekeeper.engine._aggregator import task_order
from firekeeper.models.outcome import TaskOutcome
from firekeeper.models.trace import TraceEntry, TraceFile


class Tracer:
    """完了したタスクのトレースエントリを蓄積する。

    結果の種別にかかわらず 1 タスクにつき 1 エントリを保持する。
    record() はロックで直列化される。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, TraceEntry] = {}

    def record(self, outcome: TaskOutcome) -> None:
        """タスク結果に含まれるトレースを取り込む。"""
        with self._lock:
            self._entries[outcome.task_id] = outcome.trace

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def build_trace_file(self) -> TraceFile:
        """タスク ID 順に並べた TraceFile を構築する。"""
        with self._lock:
            entries = sorted(
                self._entries.values(), key=lambda e: task_order(e.task_id)
            )
        return TraceFile(entries=entries)
