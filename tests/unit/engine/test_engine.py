"""ReviewEngine のテスト。

DiffProvider とトランスポートを差し替え、タスク分割から終了コード決定までを
一通り実行する。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    ToolCallPart,
    UserPromptPart,
)
from pydantic_ai.tools import ToolDefinition

from firekeeper.engine._engine import plan_review, run_review
from firekeeper.engine._scheduler import execute_tasks
from firekeeper.models.config import ReviewConfig, ReviewSettings
from firekeeper.models.exit_code import ExitCode
from firekeeper.models.outcome import TaskOutcome
from firekeeper.models.rule import RuleBody
from firekeeper.models.task import ChangeSet
from firekeeper.models.trace import MessageRole

_OK_FILES = ("a_ok.py", "b_ok.py")
_HANG_FILES = ("c_hang.py", "d_hang.py")


class _StaticDiffProvider:
    """固定の変更セットを返す DiffProvider。"""

    def __init__(self, files: tuple[str, ...]) -> None:
        self.changeset = ChangeSet(
            files=files,
            diffs={path: f"+changed {path}" for path in files},
            commit_messages="Update",
        )
        self.bases: list[str] = []

    async def collect(self, base: str) -> ChangeSet:
        self.bases.append(base)
        return self.changeset


def _make_config(max_files_per_task: int | None = 1) -> ReviewConfig:
    return ReviewConfig(
        review=ReviewSettings(base="main", max_files_per_task=max_files_per_task),
        rules=(RuleBody(name="naming", instruction="Use clear names.", tip="Rename."),),
    )


def _focus_file(messages: Sequence[ModelMessage]) -> str:
    """初期ユーザーメッセージから対象ファイル名を取り出す。"""
    first = messages[0]
    assert isinstance(first, ModelRequest)
    for part in first.parts:
        if isinstance(part, UserPromptPart) and isinstance(part.content, str):
            for path in _OK_FILES + _HANG_FILES:
                if f"Focus on these files:\n\n- {path}" in part.content:
                    return path
    raise AssertionError("focus file not found in prompt")


def _report(violations: list[dict[str, object]]) -> ModelResponse:
    return ModelResponse(
        parts=[
            ToolCallPart(
                tool_name="report",
                args={"violations": violations},
                tool_call_id="r1",
            )
        ]
    )


class _ReportingTransport:
    """対象ファイルごとに 1 件の違反を報告するトランスポート。"""

    def __init__(self, with_violation: bool = True) -> None:
        self.with_violation = with_violation

    async def request(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        if len(messages) > 1:
            return ModelResponse(parts=[TextPart(content="Done.")])
        path = _focus_file(messages)
        if not self.with_violation:
            return _report([])
        return _report([{"file": path, "description": "Unclear name", "start_line": 1}])


class _CompletionCounter:
    """完了数を数え、規定数に達したらイベントをセットする進捗レポーター。"""

    def __init__(self, threshold: int) -> None:
        self.threshold = threshold
        self.completed: list[str] = []
        self.reached = asyncio.Event()

    def on_task_pending(self, task_id: str, rule_name: str, file_count: int) -> None:
        pass

    def on_task_start(self, task_id: str) -> None:
        pass

    def on_task_complete(self, task_id: str, outcome: TaskOutcome) -> None:
        self.completed.append(task_id)
        if len(self.completed) >= self.threshold:
            self.reached.set()

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class _StalledTransport:
    """ok ファイルには即時応答し、hang ファイルでは停止要求後も応答しない。"""

    def __init__(
        self, counter: _CompletionCounter, events: list[asyncio.Event]
    ) -> None:
        self.counter = counter
        self.events = events

    async def request(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        if _focus_file(messages) in _OK_FILES:
            return _report([])
        await self.counter.reached.wait()
        self.events[0].set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


@pytest.fixture
def captured_events():
    """シグナルハンドラ登録を差し替え、停止イベントを捕捉する。"""
    events: list[asyncio.Event] = []

    def _install(event: asyncio.Event, loop: object) -> None:
        events.append(event)

    with (
        patch(
            "firekeeper.engine._engine.install_signal_handlers", side_effect=_install
        ),
        patch("firekeeper.engine._engine.uninstall_signal_handlers"),
    ):
        yield events


# =============================================================================
# plan_review
# =============================================================================


class TestPlanReview:
    """変更セット収集とタスク分割。"""

    async def test_uses_config_base(self, tmp_path: Path) -> None:
        provider = _StaticDiffProvider(_OK_FILES)
        tasks = await plan_review(_make_config(), provider, tmp_path)
        assert provider.bases == ["main"]
        assert [task.files for task in tasks] == [("a_ok.py",), ("b_ok.py",)]

    async def test_base_argument_overrides_config(self, tmp_path: Path) -> None:
        provider = _StaticDiffProvider(_OK_FILES)
        await plan_review(_make_config(), provider, tmp_path, base="HEAD~3")
        assert provider.bases == ["HEAD~3"]


# =============================================================================
# run_review
# =============================================================================


class TestRunReview:
    """パイプライン全体の結果と終了コード。"""

    async def test_no_changes_is_success(
        self, tmp_path: Path, captured_events: list[asyncio.Event]
    ) -> None:
        result = await run_review(
            _make_config(),
            _ReportingTransport(),
            diff_provider=_StaticDiffProvider(()),
            root=tmp_path,
            reporter=MagicMock(),
        )
        assert result.exit_code == ExitCode.SUCCESS
        assert result.summary.total_tasks == 0
        assert result.violation_file.violations == []
        assert result.trace_file.entries == []

    async def test_clean_review_is_success(
        self, tmp_path: Path, captured_events: list[asyncio.Event]
    ) -> None:
        result = await run_review(
            _make_config(),
            _ReportingTransport(with_violation=False),
            diff_provider=_StaticDiffProvider(_OK_FILES),
            root=tmp_path,
            reporter=MagicMock(),
        )
        assert result.exit_code == ExitCode.SUCCESS
        assert result.summary.reported == 2
        assert result.violation_file.tips == []

    async def test_violations_are_failure(
        self, tmp_path: Path, captured_events: list[asyncio.Event]
    ) -> None:
        result = await run_review(
            _make_config(),
            _ReportingTransport(),
            diff_provider=_StaticDiffProvider(_OK_FILES),
            root=tmp_path,
            reporter=MagicMock(),
        )
        assert result.exit_code == ExitCode.FAILURE
        assert [v.file for v in result.violation_file.violations] == list(_OK_FILES)
        assert all(v.rule == "naming" for v in result.violation_file.violations)
        assert result.violation_file.tips == ["Rename."]
        assert [e.task_id for e in result.trace_file.entries] == ["0", "1"]
        assert result.summary.violations == 2

    async def test_reporter_sees_every_task(
        self, tmp_path: Path, captured_events: list[asyncio.Event]
    ) -> None:
        reporter = MagicMock()
        await run_review(
            _make_config(),
            _ReportingTransport(),
            diff_provider=_StaticDiffProvider(_OK_FILES),
            root=tmp_path,
            reporter=reporter,
        )
        assert reporter.on_task_pending.call_count == 2
        assert reporter.on_task_complete.call_count == 2
        reporter.start.assert_called_once()
        reporter.stop.assert_called_once()


class TestCancellation:
    """停止要求後、猶予を過ぎても終わらないタスクの扱い。"""

    async def test_in_flight_tasks_recorded_as_cancelled(
        self,
        tmp_path: Path,
        captured_events: list[asyncio.Event],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        counter = _CompletionCounter(threshold=len(_OK_FILES))
        with (
            patch("firekeeper.engine._engine.SHUTDOWN_TIMEOUT_SECONDS", 0.05),
            caplog.at_level(logging.WARNING, logger="firekeeper.engine._engine"),
        ):
            result = await run_review(
                _make_config(),
                _StalledTransport(counter, captured_events),
                diff_provider=_StaticDiffProvider(_OK_FILES + _HANG_FILES),
                root=tmp_path,
                reporter=counter,
            )

        statuses = {e.task_id: e.status for e in result.trace_file.entries}
        assert statuses == {
            "0": "reported",
            "1": "reported",
            "2": "aborted",
            "3": "aborted",
        }
        cancelled_entry = result.trace_file.entries[2]
        assert cancelled_entry.messages[-1].role == MessageRole.ERROR
        assert "CancellationError" in cancelled_entry.messages[-1].content
        assert result.summary.cancelled is True
        assert result.summary.aborted == 2
        assert result.summary.not_started == 0
        assert result.exit_code == ExitCode.FAILURE
        assert "Shutdown timeout (0.05s) expired" in caplog.text


class TestExecutionFailure:
    """実行中の予期しない例外でも完了済みの結果を返す。"""

    async def test_collected_results_returned_as_failure(
        self,
        tmp_path: Path,
        captured_events: list[asyncio.Event],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        async def _crash_after_run(*args: Any, **kwargs: Any) -> list[TaskOutcome]:
            await execute_tasks(*args, **kwargs)
            raise RuntimeError("worker pool crashed")

        reporter = MagicMock()
        with (
            patch("firekeeper.engine._engine.execute_tasks", _crash_after_run),
            caplog.at_level(logging.ERROR, logger="firekeeper.engine._engine"),
        ):
            result = await run_review(
                _make_config(),
                _ReportingTransport(with_violation=False),
                diff_provider=_StaticDiffProvider(_OK_FILES),
                root=tmp_path,
                reporter=reporter,
            )

        assert result.exit_code == ExitCode.FAILURE
        assert [e.task_id for e in result.trace_file.entries] == ["0", "1"]
        assert result.summary.reported == 2
        assert result.summary.cancelled is False
        assert "worker pool crashed" in caplog.text
        reporter.stop.assert_called_once()
