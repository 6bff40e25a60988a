"""Scheduler（execute_tasks）のテスト。"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import MagicMock

from pydantic_ai.messages import ModelMessage, ModelResponse, ToolCallPart
from pydantic_ai.tools import ToolDefinition

from firekeeper.engine._scheduler import execute_tasks
from firekeeper.models.outcome import ErrorKind, TaskAborted, TaskOutcome, TaskReported
from firekeeper.models.rule import RuleBody
from firekeeper.models.task import ChangeSet, ReviewTask


def _make_tasks(count: int) -> list[ReviewTask]:
    changeset = ChangeSet(files=("a.py",))
    return [
        ReviewTask(
            task_id=str(i),
            rule=RuleBody(name=f"rule-{i}", instruction="x"),
            files=("a.py",),
            changeset=changeset,
        )
        for i in range(count)
    ]


def _empty_report() -> ModelResponse:
    return ModelResponse(
        parts=[ToolCallPart(tool_name="report", args={"violations": []})]
    )


class _ConcurrencyCounter:
    """同時に待機中のリクエスト数の最大値を記録するトランスポート。"""

    def __init__(self, delay: float = 0.02) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.requests = 0

    async def request(
        self, messages: Sequence[ModelMessage], tools: Sequence[ToolDefinition]
    ) -> ModelResponse:
        self.requests += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return _empty_report()


class TestWorkerBound:
    """同時実行数の上限。"""

    async def test_bound_respected(self, tmp_path: Path) -> None:
        counter = _ConcurrencyCounter()
        outcomes = await execute_tasks(
            _make_tasks(6), counter, asyncio.Event(), root=tmp_path, max_workers=2
        )
        assert len(outcomes) == 6
        assert counter.peak == 2

    async def test_unbounded_runs_all_at_once(self, tmp_path: Path) -> None:
        counter = _ConcurrencyCounter()
        await execute_tasks(_make_tasks(5), counter, asyncio.Event(), root=tmp_path)
        assert counter.peak == 5

    async def test_bound_larger_than_tasks(self, tmp_path: Path) -> None:
        counter = _ConcurrencyCounter()
        outcomes = await execute_tasks(
            _make_tasks(2), counter, asyncio.Event(), root=tmp_path, max_workers=8
        )
        assert len(outcomes) == 2
        assert counter.peak == 2

    async def test_no_tasks(self, tmp_path: Path) -> None:
        counter = _ConcurrencyCounter()
        assert await execute_tasks([], counter, asyncio.Event(), root=tmp_path) == []
        assert counter.requests == 0


class TestCallbacks:
    """完了コールバックと進捗通知。"""

    async def test_on_complete_called_per_task(self, tmp_path: Path) -> None:
        seen: list[str] = []
        reporter = MagicMock()
        await execute_tasks(
            _make_tasks(3),
            _ConcurrencyCounter(),
            asyncio.Event(),
            root=tmp_path,
            on_complete=lambda outcome: seen.append(outcome.task_id),
            reporter=reporter,
        )
        assert sorted(seen) == ["0", "1", "2"]
        assert reporter.on_task_start.call_count == 3
        assert reporter.on_task_complete.call_count == 3

    async def test_reporter_failure_does_not_abort(self, tmp_path: Path) -> None:
        reporter = MagicMock()
        reporter.on_task_complete.side_effect = RuntimeError("display broken")
        outcomes = await execute_tasks(
            _make_tasks(2),
            _ConcurrencyCounter(),
            asyncio.Event(),
            root=tmp_path,
            reporter=reporter,
        )
        assert all(isinstance(o, TaskReported) for o in outcomes)


class TestIsolation:
    """1 タスクの失敗が他タスクに影響しないことを検証。"""

    async def test_failing_task_does_not_stop_others(self, tmp_path: Path) -> None:
        class _FlakyTransport:
            async def request(
                self,
                messages: Sequence[ModelMessage],
                tools: Sequence[ToolDefinition],
            ) -> ModelResponse:
                if "rule-1" in str(messages[0]):
                    raise RuntimeError("boom")
                return _empty_report()

        outcomes = await execute_tasks(
            _make_tasks(3), _FlakyTransport(), asyncio.Event(), root=tmp_path
        )
        by_id = {o.task_id: o for o in outcomes}
        assert isinstance(by_id["1"], TaskAborted)
        assert isinstance(by_id["0"], TaskReported)
        assert isinstance(by_id["2"], TaskReported)


class TestShutdown:
    """停止要求とキャンセル。"""

    async def test_shutdown_before_start(self, tmp_path: Path) -> None:
        event = asyncio.Event()
        event.set()
        counter = _ConcurrencyCounter()
        outcomes = await execute_tasks(
            _make_tasks(3), counter, event, root=tmp_path, max_workers=1
        )
        assert outcomes == []
        assert counter.requests == 0

    async def test_shutdown_stops_pulling_new_tasks(self, tmp_path: Path) -> None:
        """停止後に取り出されるタスクは無く、実行中のタスクは CANCELLED になる。"""
        event = asyncio.Event()

        class _StopAfterFirst:
            async def request(
                self,
                messages: Sequence[ModelMessage],
                tools: Sequence[ToolDefinition],
            ) -> ModelResponse:
                event.set()
                return ModelResponse(
                    parts=[ToolCallPart(tool_name="think", args={"reasoning": "x"})]
                )

        outcomes = await execute_tasks(
            _make_tasks(4), _StopAfterFirst(), event, root=tmp_path, max_workers=1
        )
        assert len(outcomes) == 1
        assert isinstance(outcomes[0], TaskAborted)
        assert outcomes[0].error_type is ErrorKind.CANCELLED

    async def test_forced_cancel_records_in_flight_tasks(self, tmp_path: Path) -> None:
        """外部キャンセル時、実行中タスクは部分トレース付きで記録される。"""
        started = asyncio.Event()

        class _Hang:
            async def request(
                self,
                messages: Sequence[ModelMessage],
                tools: Sequence[ToolDefinition],
            ) -> ModelResponse:
                started.set()
                await asyncio.Event().wait()
                raise AssertionError("unreachable")

        collected: list[TaskOutcome] = []
        runner = asyncio.create_task(
            execute_tasks(
                _make_tasks(2), _Hang(), asyncio.Event(), collected, root=tmp_path
            )
        )
        await started.wait()
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass

        assert len(collected) == 2
        for outcome in collected:
            assert isinstance(outcome, TaskAborted)
            assert outcome.error_type is ErrorKind.CANCELLED
            assert outcome.trace.messages[0].content
