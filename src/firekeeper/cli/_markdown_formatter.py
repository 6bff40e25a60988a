"""違反レポート・トレースの Markdown フォーマッタ。

違反はファイル → ルールの順にグループ化し、トレースはタスクごとに
ルール・対象ファイル・ツール定義（YAML）・時刻付きメッセージを並べる。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Final

import yaml

from firekeeper.engine._catalog import ToolKind
from firekeeper.engine._instruction import code_fence
from firekeeper.models.trace import (
    MessageRole,
    TimedMessage,
    ToolCallRecord,
    ToolSpec,
    TraceEntry,
    TraceFile,
)
from firekeeper.models.violation import Violation, ViolationFile

NO_VIOLATIONS_MESSAGE: Final[str] = "No violations found"

_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
_COLLAPSED_ROLES: Final[frozenset[MessageRole]] = frozenset(
    {MessageRole.SYSTEM, MessageRole.USER, MessageRole.TOOL}
)
_FENCE_CHAR: Final[str] = "`"
_MIN_FENCE_LENGTH: Final[int] = 3

_TASK_HEADER_PREFIX: Final[str] = "# Task: "
_RULE_HEADER_PREFIX: Final[str] = "## Rule: "
_MESSAGE_HEADER_PREFIX: Final[str] = "### "


# ── Violations ───────────────────────────────────────────


def format_violations_markdown(violation_file: ViolationFile) -> str:
    """ViolationFile を Markdown 文字列に変換する。

    違反をファイルの初出順、次にルールの初出順でグループ化する。
    違反が無い場合は NO_VIOLATIONS_MESSAGE を返す。

    Args:
        violation_file: 変換対象の違反レポート。

    Returns:
        Markdown 形式の文字列。
    """
    if not violation_file.violations:
        return NO_VIOLATIONS_MESSAGE + "\n"

    grouped: dict[str, dict[str, list[Violation]]] = {}
    for violation in violation_file.violations:
        grouped.setdefault(violation.file, {}).setdefault(violation.rule, []).append(
            violation
        )

    sections: list[str] = []
    for file, rules in grouped.items():
        parts = [f"# Violations in {file}"]
        for rule, violations in rules.items():
            lines = "\n".join(_format_violation(v) for v in violations)
            parts.append(f"## Rule: {rule}\n\n{lines}")
        sections.append("\n\n".join(parts))

    if violation_file.tips:
        tips = "\n".join(f"- {tip.strip()}" for tip in violation_file.tips)
        sections.append(f"# Tips\n\n{tips}")

    return "\n\n".join(sections) + "\n"


def _format_violation(violation: Violation) -> str:
    if violation.start_line is None:
        return f"- {violation.description}"
    end_line = violation.end_line
    if end_line is None or end_line == violation.start_line:
        return f"- Line {violation.start_line}: {violation.description}"
    return f"- Lines {violation.start_line}-{end_line}: {violation.description}"


# ── Trace ────────────────────────────────────────────────


def format_trace_markdown(trace_file: TraceFile) -> str:
    """TraceFile を Markdown 文字列に変換する。

    各エントリは ``---`` で区切られる。メッセージ本文は引用ブロック、
    ツール応答は本文より長いフェンスで囲むため、本文中の見出し行や
    バッククォートが構造を壊さない。

    Args:
        trace_file: 変換対象のトレース。

    Returns:
        Markdown 形式の文字列。
    """
    return "".join(_format_entry(entry) for entry in trace_file.entries)


def _format_entry(entry: TraceEntry) -> str:
    parts: list[str] = [
        f"{_TASK_HEADER_PREFIX}{entry.task_id} "
        f"(Elapsed: {entry.elapsed_secs:.2f}s)\n\n",
        f"Status: {entry.status}\n\n",
        _format_trace_rule(entry),
        _format_focused_files(entry.files),
        _format_tools(entry.tools),
        "## Messages\n\n",
    ]
    for index, message in enumerate(entry.messages, 1):
        parts.append(_format_message(index, message))
    parts.append("---\n\n")
    return "".join(parts)


def _format_trace_rule(entry: TraceEntry) -> str:
    return (
        f"{_RULE_HEADER_PREFIX}{entry.rule.name}\n\n"
        "<details>\n<summary>Show rule</summary>\n\n"
        f"{_quote(entry.rule.instruction)}\n\n"
        "</details>\n\n"
    )


def _format_focused_files(files: list[str]) -> str:
    lines = "".join(f"- {file}\n" for file in files)
    return f"## Focused Files\n\n{lines}\n"


def _format_tools(tools: list[ToolSpec]) -> str:
    tools_yaml = yaml.safe_dump(
        [tool.model_dump(mode="json") for tool in tools],
        sort_keys=False,
        allow_unicode=True,
    ).strip()
    fence = code_fence(tools_yaml)
    return (
        "## Tools\n\n<details>\n<summary>Show tools</summary>\n\n"
        f"{fence}yaml\n{tools_yaml}\n{fence}\n\n"
        "</details>\n\n"
    )


def _format_message(index: int, message: TimedMessage) -> str:
    timestamp = message.timestamp.strftime(_TIMESTAMP_FORMAT)
    header = (
        f"{_MESSAGE_HEADER_PREFIX}{index}. {message.role.value} @ {timestamp} "
        f"(+{message.elapsed:.2f}s)\n\n"
    )
    parts: list[str] = [header]

    if message.content:
        body = _format_content(message)
        if message.role in _COLLAPSED_ROLES:
            parts.append(
                f"<details>\n<summary>Show content</summary>\n\n{body}</details>\n\n"
            )
        else:
            parts.append(body)
    elif not message.tool_calls:
        parts.append("Empty message.\n\n")

    if message.tool_calls:
        parts.append("#### Tool Calls\n\n")
        parts.extend(_format_tool_call(call) for call in message.tool_calls)

    return "".join(parts)


def _format_content(message: TimedMessage) -> str:
    if message.role == MessageRole.TOOL:
        fence = code_fence(message.content)
        return f"{fence}\n{message.content}\n{fence}\n\n"
    return f"{_quote(message.content)}\n\n"


def _format_tool_call(call: ToolCallRecord) -> str:
    try:
        arguments = json.loads(call.arguments)
    except json.JSONDecodeError:
        arguments = None

    if (
        call.name == ToolKind.THINK
        and isinstance(arguments, dict)
        and isinstance(arguments.get("reasoning"), str)
    ):
        return f"- **{call.name}**\n\n{_quote(arguments['reasoning'])}\n\n"

    if arguments is None:
        rendered = call.arguments
    else:
        rendered = yaml.safe_dump(
            arguments, sort_keys=False, allow_unicode=True
        ).strip()
    fence = code_fence(rendered)
    return f"- **{call.name}**\n\n{fence}yaml\n{rendered}\n{fence}\n\n"


def _quote(content: str) -> str:
    return "\n".join(f"> {line}" for line in content.strip().splitlines())


# ── Trace parsing ────────────────────────────────────────


@dataclass(frozen=True)
class TraceOutline:
    """Markdown トレースから読み取ったエントリの概要。

    Attributes:
        task_id: タスク ID。
        rule_name: ルール名。
        message_count: メッセージ数。
    """

    task_id: str
    rule_name: str
    message_count: int


def parse_trace_markdown(text: str) -> list[TraceOutline]:
    """format_trace_markdown の出力からエントリの概要を読み取る。

    コードフェンス内の行は見出しとして扱わない。

    Args:
        text: Markdown トレース。

    Returns:
        出現順の TraceOutline リスト。
    """
    outlines: list[TraceOutline] = []
    task_id: str | None = None
    rule_name = ""
    message_count = 0
    open_fence = 0

    def _flush() -> None:
        if task_id is not None:
            outlines.append(TraceOutline(task_id, rule_name, message_count))

    for line in text.splitlines():
        stripped = line.strip()
        run = len(stripped) - len(stripped.lstrip(_FENCE_CHAR))
        if open_fence:
            if run >= open_fence and stripped == _FENCE_CHAR * run:
                open_fence = 0
            continue
        if run >= _MIN_FENCE_LENGTH:
            open_fence = run
            continue

        if line.startswith(_TASK_HEADER_PREFIX):
            _flush()
            header = line.removeprefix(_TASK_HEADER_PREFIX)
            task_id = header.rsplit(" (Elapsed: ", 1)[0]
            rule_name = ""
            message_count = 0
        elif line.startswith(_RULE_HEADER_PREFIX) and task_id is not None:
            rule_name = line.removeprefix(_RULE_HEADER_PREFIX)
        elif line.startswith(_MESSAGE_HEADER_PREFIX) and task_id is not None:
            message_count += 1
    _flush()
    return outlines
