"""think ツール — 短い推論の記録。"""

from __future__ import annotations

from typing import Final

from pydantic import Field

from firekeeper.engine._tools._args import ToolArgs

MAX_REASONING_LINES: Final[int] = 10
MAX_REASONING_CHARS: Final[int] = 1500


class ThinkArgs(ToolArgs):
    """think ツールの引数。"""

    reasoning: str = Field(
        description=(
            "Brief reasoning (2-4 sentences) about whether the code violates the "
            "rule, considering exceptions and context"
        )
    )


THINK_DESCRIPTION = (
    "Think through whether something is a violation (keep reasoning brief and "
    "focused). MUST be called before reporting any violations."
)


def think(args: ThinkArgs) -> str:
    """推論を受理する。長すぎる推論には簡潔にするよう注意を返す。"""
    line_count = len(args.reasoning.splitlines())
    char_count = len(args.reasoning)
    if line_count > MAX_REASONING_LINES or char_count > MAX_REASONING_CHARS:
        return (
            f"OK. Note: Overthinking detected "
            f"({line_count} lines, {char_count} chars). "
            "Keep reasoning concise and focused."
        )
    return "OK"
