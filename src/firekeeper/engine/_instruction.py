"""ReviewInstructionBuilder — 会話の初期メッセージ構築。

システムプロンプトは全タスク共通の作業手順（Steps）を示し、
ユーザーメッセージはルール（Violation criteria / Exemptions）、対象ファイル、
コミットメッセージ、対象ファイルの差分、事前解決済みリソースを埋め込む。
"""

from __future__ import annotations

import re
from typing import Final

from firekeeper.engine._diff_filter import should_include_diff
from firekeeper.models.task import ReviewTask

_BACKTICK_RUN_RE: Final[re.Pattern[str]] = re.compile(r"`{3,}")
_MIN_FENCE_LENGTH: Final[int] = 3

SYSTEM_PROMPT: Final[str] = """\
You are a code reviewer. Your task is to review code changes against a specific \
rule. Focus only on the files provided and only check for violations of the given \
rule. You can read related files if needed, but only report issues related to the \
provided files and rule.

## Steps

1. Review the provided diffs to understand what changed
2. Read other related diffs, files or resources if needed for context
3. Use the 'think' tool to reason about whether the changes violate the rule
4. Use the 'report' tool once with all violations found (an empty list if there \
are none), then stop without a summary"""

_EXEMPTIONS: Final[tuple[str, ...]] = (
    "Code outside the focused files, unless a focused change causes the violation",
    "Existing code that the changes do not touch",
    "Anything the rule itself lists as allowed",
)


def code_fence(content: str) -> str:
    """content 内のバッククォート連続より長いフェンス文字列を返す（最低 3 文字）。"""
    longest = max(
        (len(m.group(0)) for m in _BACKTICK_RUN_RE.finditer(content)),
        default=0,
    )
    return "`" * max(_MIN_FENCE_LENGTH, longest + 1)


def build_system_prompt() -> str:
    """全タスク共通のシステムプロンプトを返す。"""
    return SYSTEM_PROMPT


def _bullet_list(items: tuple[str, ...] | list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def build_rule_section(task: ReviewTask) -> str:
    """ルールを Violation criteria / Exemptions の構造で記述する。"""
    return (
        "<rule>\n\n"
        f"# {task.rule.name}\n\n"
        "## Violation criteria\n\n"
        f"{task.rule.instruction.strip()}\n\n"
        "## Exemptions\n\n"
        f"{_bullet_list(_EXEMPTIONS)}\n\n"
        "</rule>"
    )


def build_diffs_section(task: ReviewTask) -> str:
    """対象ファイルの差分セクションを構築する。差分が無ければ空文字列。"""
    blocks: list[str] = []
    for path in task.files:
        if not should_include_diff(path):
            continue
        diff_text = task.changeset.diffs.get(path)
        if not diff_text:
            continue
        fence = code_fence(diff_text)
        blocks.append(f"{fence}diff\n{diff_text.rstrip()}\n{fence}")
    if not blocks:
        return ""
    return (
        "Here are diffs of focused files (no need to call diff tool on them):\n\n"
        + "\n\n".join(blocks)
    )


def build_resources_section(task: ReviewTask) -> str:
    """事前解決済みリソースのセクションを構築する。リソースが無ければ空文字列。"""
    if not task.resources:
        return ""
    rendered = "\n\n".join(block.render() for block in task.resources)
    return f"Here are resources provided for this rule:\n\n{rendered}"


def build_user_message(task: ReviewTask) -> str:
    """タスクの初期ユーザーメッセージを構築する。

    ルートベース（全ファイルレビュー）の場合はコミットメッセージと
    変更ファイル一覧を省略し、対象ファイルだけを示す。対象ファイルが
    変更ファイル全体と一致する場合は一覧を 1 つにまとめる。

    Args:
        task: 対象タスク。

    Returns:
        ユーザーメッセージ本文。
    """
    changeset = task.changeset
    focus_files = list(task.files)
    sections: list[str] = []

    if not changeset.is_root and changeset.commit_messages:
        sections.append(f"Commit messages:\n\n{changeset.commit_messages}")

    covers_all = focus_files == list(changeset.files)
    if changeset.is_root:
        sections.append(f"Focus on these files:\n\n{_bullet_list(focus_files)}")
    elif covers_all:
        sections.append(f"Changed files:\n\n{_bullet_list(focus_files)}")
    else:
        sections.append(
            f"All changed files:\n\n{_bullet_list(list(changeset.files))}"
        )
        sections.append(f"Focus on these files:\n\n{_bullet_list(focus_files)}")
    if not covers_all:
        sections.append("Note: For most cases, only read the focused files.")

    sections.append(f"Rule:\n\n{build_rule_section(task)}")

    diffs_section = build_diffs_section(task)
    if diffs_section:
        sections.append(diffs_section)

    resources_section = build_resources_section(task)
    if resources_section:
        sections.append(resources_section)

    return "\n\n".join(sections)
