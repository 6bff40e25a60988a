"""パス正規化と glob マッチング。

ルールの scope/exclude とリソースの file:// パターンで共通に使う。
``*``, ``?``, ``[...]`` は ``/`` をまたがず、``**`` は 0 個以上のディレクトリに
一致する。``/`` を含まないパターンはファイル名（basename）にも一致させる。
"""

from __future__ import annotations

import glob
import re
from collections.abc import Iterable
from functools import lru_cache
from posixpath import basename


def normalize_path(path: str) -> str:
    """マッチング用にパスを正規化する。

    区切り文字を ``/`` に統一し、先頭の ``./`` を取り除く。
    """
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(
        glob.translate(pattern, recursive=True, include_hidden=True, seps="/")
    )


def match_path(path: str, pattern: str) -> bool:
    """正規化済みのパスとパターンで glob マッチングを行う。

    Args:
        path: 判定対象のファイルパス。
        pattern: glob パターン。

    Returns:
        一致すれば True。
    """
    normalized_path = normalize_path(path)
    normalized_pattern = normalize_path(pattern)
    if _compile(normalized_pattern).match(normalized_path):
        return True
    if "/" not in normalized_pattern:
        return _compile(normalized_pattern).match(basename(normalized_path)) is not None
    return False


def match_any(path: str, patterns: Iterable[str]) -> bool:
    """いずれかのパターンに一致すれば True。"""
    return any(match_path(path, pattern) for pattern in patterns)


def filter_files(
    files: Iterable[str], scope: Iterable[str], exclude: Iterable[str] = ()
) -> list[str]:
    """scope に一致し exclude に一致しないファイルを入力順で返す。"""
    scope_patterns = tuple(scope)
    exclude_patterns = tuple(exclude)
    return [
        f
        for f in files
        if match_any(f, scope_patterns) and not match_any(f, exclude_patterns)
    ]
