"""TOML 設定ファイルの読み込み。

構文解析のみを行い、スキーマ検証は _resolver.py の ReviewConfig 構築に任せる。
ファイルアクセスや構文のエラーはそのまま呼び出し側へ送出する。
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Final

PYPROJECT_SECTION_PATH: Final[tuple[str, ...]] = ("tool", "firekeeper")
"""pyproject.toml 内で設定を埋め込むテーブルのキーパス。"""


def _read_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as f:
        return tomllib.load(f)


def load_toml_config(path: Path) -> dict[str, object]:
    """firekeeper.toml を辞書として読み込む。

    Raises:
        tomllib.TOMLDecodeError: TOML 構文エラーの場合。
        FileNotFoundError: ファイルが存在しない場合。
        PermissionError: 読み取り権限がない場合。
    """
    return _read_toml(path)


def load_pyproject_config(path: Path) -> dict[str, object] | None:
    """pyproject.toml の ``[tool.firekeeper]`` テーブルを取り出す。

    途中のキーが欠けている、またはテーブルでない場合は None を返す。

    Args:
        path: pyproject.toml のパス。

    Returns:
        ``[tool.firekeeper]`` テーブル。存在しなければ None。

    Raises:
        tomllib.TOMLDecodeError: TOML 構文エラーの場合。
        FileNotFoundError: ファイルが存在しない場合。
        PermissionError: 読み取り権限がない場合。
    """
    node: object = _read_toml(path)
    for key in PYPROJECT_SECTION_PATH:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, dict) else None
