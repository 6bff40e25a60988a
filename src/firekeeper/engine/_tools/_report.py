"""report ツール — 違反の報告。"""

from __future__ import annotations

from pydantic import Field

from firekeeper.engine._tools._args import ToolArgs


class ReportedViolation(ToolArgs):
    """モデルが報告する違反 1 件。ルール名はタスクから補完する。"""

    file: str = Field(min_length=1, description="File path of the violation")
    description: str = Field(
        min_length=1, description="What violates the rule and why"
    )
    start_line: int | None = Field(
        default=None, ge=1, description="First line of the violation (1-based)"
    )
    end_line: int | None = Field(
        default=None, ge=1, description="Last line of the violation (1-based)"
    )


class ReportArgs(ToolArgs):
    """report ツールの引数。"""

    violations: list[ReportedViolation] = Field(
        description="All violations found. Pass an empty list when there are none."
    )
    tips: list[str] = Field(
        default_factory=list, description="Optional advice on how to fix them"
    )


REPORT_DESCRIPTION = (
    "Report rule violations found during review. MUST call 'think' tool first. "
    "Report all violations in one call; an empty list ends the review."
)


def report(args: ReportArgs) -> str:
    """報告を受理したことをモデルに返す。違反の記録は会話ループが行う。"""
    if not args.violations:
        return "OK. No violations recorded."
    return f"OK. Recorded {len(args.violations)} violation(s)."
