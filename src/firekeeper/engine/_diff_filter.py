"""差分フィルタリング — ロックファイル・生成物の差分除外。

ロックファイルやビルド生成物の差分は巨大で判定に寄与しないため、
プロンプトへの差分埋め込みと diff ツールの既定動作から除外する。
"""

from __future__ import annotations

from typing import Final

_EXCLUDED_SUFFIXES: Final[tuple[str, ...]] = (".lock", "-lock.json")
_EXCLUDED_FRAGMENTS: Final[tuple[str, ...]] = (
    "lock.",
    "generated",
    ".min.",
    "/dist/",
    "/build/",
    "/target/",
    "/.next/",
    "/node_modules/",
)


def should_include_diff(path: str) -> bool:
    """ファイルの差分をモデルに提示すべきか判定する。

    大文字小文字を区別せず、ロックファイル（``*.lock``, ``*-lock.json``,
    ``*lock.*``）、``generated`` を含むパス、minify 済みファイル、
    代表的なビルド出力ディレクトリ配下（ルート直下を含む）を除外する。

    Args:
        path: リポジトリルート相対のファイルパス。

    Returns:
        差分を含めるべきなら True。
    """
    lowered = "/" + path.lower().lstrip("/")
    if lowered.endswith(_EXCLUDED_SUFFIXES):
        return False
    return not any(fragment in lowered for fragment in _EXCLUDED_FRAGMENTS)
