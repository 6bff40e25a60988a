"""設定リゾルバー。

設定ファイルの探索、ドット記法オーバーライドの適用、
ReviewConfig へのバリデーションを行う。
"""

from __future__ import annotations

import copy
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from firekeeper.config._loader import load_pyproject_config, load_toml_config
from firekeeper.models.config import ReviewConfig

DEFAULT_CONFIG_FILE_NAME: Final[str] = "firekeeper.toml"
_PYPROJECT_FILE_NAME: Final[str] = "pyproject.toml"


class ConfigOverrideError(ValueError):
    """``key.path=value`` 形式のオーバーライドが不正。"""


def parse_override(raw: str) -> tuple[list[str], object]:
    """``key.path=value`` をキーパスと値に分解する。

    値は JSON として解釈を試み、失敗した場合は文字列として扱う。

    Args:
        raw: オーバーライド文字列（例: ``llm.model=gpt-4``）。

    Returns:
        (キーパス, 値) のタプル。

    Raises:
        ConfigOverrideError: ``=`` を含まない、またはキーが空の場合。
    """
    key, sep, value_text = raw.partition("=")
    if not sep:
        raise ConfigOverrideError(
            f"Invalid override '{raw}': expected 'key.path=value'"
        )
    keys = [part.strip() for part in key.split(".")]
    if any(not part for part in keys):
        raise ConfigOverrideError(f"Invalid override key '{key}'")
    try:
        value: object = json.loads(value_text)
    except json.JSONDecodeError:
        value = value_text
    return keys, value


def apply_overrides(
    data: dict[str, object], overrides: Sequence[str]
) -> dict[str, object]:
    """設定辞書にドット記法オーバーライドを適用した新しい辞書を返す。

    存在しない中間テーブルは作成する。リスト要素はインデックスで指定する
    （例: ``rules.0.scope``）。

    Args:
        data: TOML から読み込んだ設定辞書。変更されない。
        overrides: ``key.path=value`` 形式の文字列。後のものが優先。

    Returns:
        オーバーライド適用後の設定辞書。

    Raises:
        ConfigOverrideError: 中間要素がテーブル/リストでない、
            またはインデックスが範囲外の場合。
    """
    result = copy.deepcopy(data)
    for raw in overrides:
        keys, value = parse_override(raw)
        node: object = result
        for depth, key in enumerate(keys):
            is_last = depth == len(keys) - 1
            path = ".".join(keys[: depth + 1])
            if isinstance(node, dict):
                if is_last:
                    node[key] = value
                else:
                    node = node.setdefault(key, {})
            elif isinstance(node, list):
                if not key.isdigit() or int(key) >= len(node):
                    raise ConfigOverrideError(
                        f"Invalid list index in override '{raw}': '{path}'"
                    )
                if is_last:
                    node[int(key)] = value
                else:
                    node = node[int(key)]
            else:
                raise ConfigOverrideError(
                    f"Cannot override '{raw}': '{'.'.join(keys[:depth])}' "
                    f"is not a table"
                )
    return result


def _load_layer(config_path: Path | None, start_dir: Path) -> dict[str, object]:
    """設定ファイルを探索して読み込む。見つからなければ空辞書。"""
    if config_path is not None:
        return load_toml_config(config_path)

    default_path = start_dir / DEFAULT_CONFIG_FILE_NAME
    if default_path.is_file():
        return load_toml_config(default_path)

    pyproject_path = start_dir / _PYPROJECT_FILE_NAME
    if pyproject_path.is_file():
        section = load_pyproject_config(pyproject_path)
        if section is not None:
            return section
    return {}


def resolve_config(
    config_path: Path | None = None,
    overrides: Sequence[str] = (),
    start_dir: Path | None = None,
) -> ReviewConfig:
    """設定ソースを解決し ReviewConfig を構築する。

    探索順: ``config_path`` 指定 > ./firekeeper.toml >
    ./pyproject.toml [tool.firekeeper] > デフォルト値。

    Args:
        config_path: 明示的に指定された設定ファイル。
        overrides: ``key.path=value`` 形式のオーバーライド。
        start_dir: 探索ディレクトリ。None の場合はカレントディレクトリ。

    Returns:
        解決済みの ReviewConfig インスタンス。

    Raises:
        pydantic.ValidationError: マージ後の設定が不正な場合。
        tomllib.TOMLDecodeError: 設定ファイルの TOML 構文が不正な場合。
        FileNotFoundError: 明示指定した設定ファイルが存在しない場合。
        PermissionError: 設定ファイルの読み取り権限がない場合。
        ConfigOverrideError: オーバーライド指定が不正な場合。
    """
    effective_start = start_dir if start_dir is not None else Path.cwd()
    data = _load_layer(config_path, effective_start)
    merged = apply_overrides(data, overrides)
    return ReviewConfig.model_validate(merged)
