"""AgentLoop — 1 タスク分のツール呼び出し会話ループ。

状態遷移:
    INIT → REQUESTING → TOOL_DISPATCH → {REQUESTING | REPORTED | ABORTED}

- REQUESTING はモデル応答の待機のみを行う唯一の待機点。
- ツール呼び出しの無い応答は終端とみなし REPORTED に遷移する。
- 空の違反リストでの report 呼び出しは、追加のリクエストを行わず REPORTED に遷移する。
- 同一セッション内で (ツール名, 正規化引数) が重複した場合は DeadLoopError で中断する。
- キャンセル要求は状態遷移ごとに確認し、CancellationError で中断する。

会話の全ターンは TimedMessage として記録され、結果にかかわらず TraceEntry を生成する。
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Literal

from pydantic import ValidationError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)

from firekeeper.engine._catalog import (
    ParsedToolCall,
    ToolContext,
    ToolKind,
    execute_tool,
    parse_tool_call,
    to_tool_definitions,
    tool_specs,
)
from firekeeper.engine._errors import (
    CancellationError,
    DeadLoopError,
    ProtocolError,
    ResourceError,
    ReviewError,
    TurnLimitError,
)
from firekeeper.engine._glob import normalize_path
from firekeeper.engine._instruction import build_system_prompt, build_user_message
from firekeeper.engine._tools._report import ReportArgs
from firekeeper.engine._transport import ModelTransport
from firekeeper.models.config import DEFAULT_MAX_TURNS
from firekeeper.models.outcome import TaskAborted, TaskReported
from firekeeper.models.task import ReviewTask
from firekeeper.models.trace import (
    MessageRole,
    TimedMessage,
    ToolCallRecord,
    TraceEntry,
)
from firekeeper.models.violation import Violation

logger = logging.getLogger(__name__)


class LoopState(StrEnum):
    """会話ループの状態。"""

    INIT = "init"
    REQUESTING = "requesting"
    TOOL_DISPATCH = "tool_dispatch"
    REPORTED = "reported"
    ABORTED = "aborted"


class AgentLoop:
    """1 タスクの会話セッションを所有し、状態機械として実行する。

    セッション状態（会話履歴・発行済みツール呼び出し・報告済み違反）は
    このインスタンスだけが所有し、他タスクと共有しない。

    Args:
        task: 実行するタスク。
        transport: モデルへのリクエスト手段。
        cancel_event: 実行全体のキャンセル要求。状態遷移ごとに確認する。
        root: ファイル読み取り・探索系ツールが参照する作業ツリーのルート。
        max_turns: モデルリクエスト数の上限。
    """

    def __init__(
        self,
        task: ReviewTask,
        transport: ModelTransport,
        *,
        cancel_event: asyncio.Event,
        root: Path,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self.task = task
        self.state = LoopState.INIT
        self._transport = transport
        self._cancel_event = cancel_event
        self._max_turns = max_turns
        self._ctx = ToolContext(task=task, root=root.resolve())
        self._specs = tool_specs()
        self._tool_definitions = to_tool_definitions(self._specs)

        self._messages: list[ModelMessage] = []
        self._trace: list[TimedMessage] = []
        self._issued: set[tuple[str, str]] = set()
        self._violations: list[Violation] = []
        self._tips: list[str] = []
        self._requests = 0
        self._started_at = time.monotonic()

    @property
    def requests(self) -> int:
        """発行済みのモデルリクエスト数。"""
        return self._requests

    async def run(self) -> TaskReported | TaskAborted:
        """タスクを終端状態まで実行し、結果を返す。

        ReviewError とその他の想定外の例外は TaskAborted に変換される。
        asyncio.CancelledError のみ呼び出し側へ伝播する。

        Returns:
            TaskReported または TaskAborted。
        """
        self._started_at = time.monotonic()
        try:
            await self._run_until_terminal()
        except ReviewError as exc:
            return self.abort(exc)
        except Exception as exc:
            logger.exception(
                "Task %s (%s) failed unexpectedly",
                self.task.task_id,
                self.task.rule.name,
            )
            return self.abort(
                ReviewError(f"Unexpected error: {type(exc).__name__}: {exc}")
            )
        return self._finish()

    def abort(self, error: ReviewError) -> TaskAborted:
        """エラーをトレースに記録し、ABORTED 状態の結果を返す。

        強制キャンセル時にスケジューラからも呼ばれ、その時点までの会話を保存する。
        """
        self.state = LoopState.ABORTED
        message = str(error) or type(error).__name__
        self._record(MessageRole.ERROR, f"{type(error).__name__}: {message}")
        logger.warning(
            "Task %s (%s) aborted: %s: %s",
            self.task.task_id,
            self.task.rule.name,
            type(error).__name__,
            message,
        )
        return TaskAborted(
            task_id=self.task.task_id,
            rule_name=self.task.rule.name,
            error_type=error.kind,
            error_message=message,
            elapsed_time=self._elapsed(),
            trace=self._build_trace("aborted"),
        )

    async def _run_until_terminal(self) -> None:
        self._check_cancelled()
        if self.task.setup_error is not None:
            raise ResourceError(self.task.setup_error)
        self._seed()

        while True:
            self._transition(LoopState.REQUESTING)
            response = await self._request()
            self._record_response(response)

            calls = [part for part in response.parts if isinstance(part, ToolCallPart)]
            if not calls:
                return

            self._transition(LoopState.TOOL_DISPATCH)
            if await self._dispatch(calls):
                return

    def _transition(self, state: LoopState) -> None:
        self._check_cancelled()
        logger.debug(
            "Task %s: %s -> %s", self.task.task_id, self.state.value, state.value
        )
        self.state = state

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise CancellationError("Review was cancelled")

    def _seed(self) -> None:
        system_prompt = build_system_prompt()
        user_message = build_user_message(self.task)
        self._messages.append(
            ModelRequest(
                parts=[
                    SystemPromptPart(content=system_prompt),
                    UserPromptPart(content=user_message),
                ]
            )
        )
        self._record(MessageRole.SYSTEM, system_prompt)
        self._record(MessageRole.USER, user_message)

    async def _request(self) -> ModelResponse:
        if self._requests >= self._max_turns:
            raise TurnLimitError(
                f"Exceeded the limit of {self._max_turns} model requests"
            )
        self._requests += 1
        response = await self._transport.request(
            self._messages, self._tool_definitions
        )
        self._messages.append(response)
        return response

    async def _dispatch(self, calls: list[ToolCallPart]) -> bool:
        """ツール呼び出しを順に処理する。

        Returns:
            空の report により終端に達した場合 True。

        Raises:
            ProtocolError: 未知のツールや不正な引数の場合。
            DeadLoopError: 同一の呼び出しが既に発行されていた場合。
        """
        returns: list[ToolReturnPart] = []
        for part in calls:
            call = parse_tool_call(part.tool_name, part.args)
            if call.dedup_key in self._issued:
                raise DeadLoopError(call.kind.value, call.normalized_args)
            self._issued.add(call.dedup_key)

            reported = self._collect_report(call)
            content = await execute_tool(call, self._ctx)
            returns.append(
                ToolReturnPart(
                    tool_name=part.tool_name,
                    content=content,
                    tool_call_id=part.tool_call_id,
                )
            )
            self._record(
                MessageRole.TOOL,
                content,
                tool_call_id=part.tool_call_id,
                tool_name=part.tool_name,
            )

            if reported is not None and not reported:
                if len(returns) < len(calls):
                    logger.debug(
                        "Task %s: ignoring %d tool call(s) after empty report",
                        self.task.task_id,
                        len(calls) - len(returns),
                    )
                return True

        self._messages.append(ModelRequest(parts=list(returns)))
        return False

    def _collect_report(self, call: ParsedToolCall) -> list[Violation] | None:
        """report 呼び出しなら違反と助言を記録し、今回報告された違反を返す。"""
        if call.kind is not ToolKind.REPORT or not isinstance(call.args, ReportArgs):
            return None
        try:
            violations = [
                Violation(
                    rule=self.task.rule.name,
                    file=normalize_path(item.file),
                    description=item.description,
                    start_line=item.start_line,
                    end_line=item.end_line,
                )
                for item in call.args.violations
            ]
        except ValidationError as exc:
            raise ProtocolError(f"Invalid violation in report: {exc}") from exc
        self._violations.extend(violations)
        self._tips.extend(tip for tip in call.args.tips if tip.strip())
        return violations

    def _finish(self) -> TaskReported:
        self.state = LoopState.REPORTED
        tips = list(self._tips)
        if self._violations and self.task.rule.tip:
            tips.append(self.task.rule.tip.strip())
        logger.info(
            "Task %s (%s) reported %d violation(s) in %d request(s)",
            self.task.task_id,
            self.task.rule.name,
            len(self._violations),
            self._requests,
        )
        return TaskReported(
            task_id=self.task.task_id,
            rule_name=self.task.rule.name,
            violations=list(self._violations),
            tips=tips,
            elapsed_time=self._elapsed(),
            requests=self._requests,
            trace=self._build_trace("reported"),
        )

    def _record_response(self, response: ModelResponse) -> None:
        text = "".join(
            part.content for part in response.parts if isinstance(part, TextPart)
        )
        tool_calls = [
            ToolCallRecord(
                id=part.tool_call_id,
                name=part.tool_name,
                arguments=part.args_as_json_str(),
            )
            for part in response.parts
            if isinstance(part, ToolCallPart)
        ]
        self._record(MessageRole.ASSISTANT, text, tool_calls=tool_calls or None)

    def _record(
        self,
        role: MessageRole,
        content: str,
        *,
        tool_calls: list[ToolCallRecord] | None = None,
        tool_call_id: str | None = None,
        tool_name: str | None = None,
    ) -> None:
        self._trace.append(
            TimedMessage(
                role=role,
                content=content,
                timestamp=datetime.now(UTC),
                elapsed=self._elapsed(),
                tool_calls=tool_calls,
                tool_call_id=tool_call_id,
                tool_name=tool_name,
            )
        )

    def _elapsed(self) -> float:
        return max(0.0, time.monotonic() - self._started_at)

    def _build_trace(self, status: Literal["reported", "aborted"]) -> TraceEntry:
        return TraceEntry(
            task_id=self.task.task_id,
            rule=self.task.rule,
            files=list(self.task.files),
            status=status,
            elapsed_secs=self._elapsed(),
            tools=list(self._specs),
            messages=list(self._trace),
        )
