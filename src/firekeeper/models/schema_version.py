"""出力ファイルのスキーマバージョン管理。

違反レポート・トレースファイルは ``major.minor`` 形式のバージョンを持つ。
メジャーバージョンが異なるファイルは読み込みを拒否し、
より新しいマイナーバージョンは警告のうえ読み込みを続行する。
"""

from __future__ import annotations

import logging
from typing import Final

logger = logging.getLogger(__name__)

SCHEMA_VERSION: Final[str] = "1.0"
"""書き出し時に付与する現行スキーマバージョン。"""


class SchemaVersionError(ValueError):
    """スキーマバージョンが解釈できない、または互換性がない。"""


def parse_version(version: str) -> tuple[int, int]:
    """``major.minor`` 文字列を整数タプルに変換する。

    Raises:
        SchemaVersionError: 形式が不正な場合。
    """
    major, sep, minor = version.partition(".")
    if not sep or not major.isdigit() or not minor.isdigit():
        raise SchemaVersionError(
            f"Invalid schema version '{version}' (expected 'major.minor')"
        )
    return int(major), int(minor)


def check_schema_version(version: str, supported: str = SCHEMA_VERSION) -> None:
    """読み込むファイルのバージョンが現行実装と互換か検証する。

    Args:
        version: ファイルに記録されたバージョン。
        supported: 現行実装が書き出すバージョン。

    Raises:
        SchemaVersionError: メジャーバージョンが一致しない場合。
    """
    file_major, file_minor = parse_version(version)
    major, minor = parse_version(supported)
    if file_major != major:
        raise SchemaVersionError(
            f"Unsupported schema version '{version}' "
            f"(this firekeeper reads {major}.x)"
        )
    if file_minor > minor:
        logger.warning(
            "Schema version %s is newer than supported %s; continuing",
            version,
            supported,
        )
