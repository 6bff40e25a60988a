"""リソース URI とリソースブロックの定義。

ルールやグローバル設定で宣言する補助コンテキストは ``file://``, ``skill://``,
``sh://`` の 3 スキームで表現される。解決後のテキストは ResourceBlock として
タスクに埋め込まれる。
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

from pydantic import Field

from firekeeper.models._base import FirekeeperBaseModel

SCHEME_SEPARATOR: Final[str] = "://"


class ResourceKind(StrEnum):
    """リソース URI のスキーム。"""

    FILE = "file"
    SKILL = "skill"
    SH = "sh"


def parse_resource_uri(uri: str) -> tuple[ResourceKind, str]:
    """リソース URI をスキームと本体に分解する。

    Args:
        uri: ``<scheme>://<body>`` 形式の URI。

    Returns:
        (ResourceKind, 本体文字列) のタプル。

    Raises:
        ValueError: スキームが未知、または本体が空の場合。
    """
    scheme, sep, body = uri.partition(SCHEME_SEPARATOR)
    if not sep:
        raise ValueError(f"Resource URI must have a scheme: '{uri}'")
    try:
        kind = ResourceKind(scheme)
    except ValueError:
        allowed = ", ".join(f"{k.value}://" for k in ResourceKind)
        raise ValueError(
            f"Unknown resource scheme '{scheme}://' in '{uri}' (expected {allowed})"
        ) from None
    if not body.strip():
        raise ValueError(f"Resource URI has an empty body: '{uri}'")
    return kind, body


def validate_resource_uris(uris: tuple[str, ...]) -> tuple[str, ...]:
    """URI リストの各要素を検証し、そのまま返す。pydantic バリデータ用。"""
    for uri in uris:
        parse_resource_uri(uri)
    return uris


class ResourceBlock(FirekeeperBaseModel):
    """解決済みリソースの 1 ブロック。

    Attributes:
        identity: 重複排除キー。file/skill は絶対パス、sh は ``sh://<command>``。
        kind: 解決元のスキーム。
        content: モデルに提示するテキスト本体。
    """

    identity: str = Field(min_length=1)
    kind: ResourceKind
    content: str

    def render(self) -> str:
        """プロンプト埋め込み用のテキストを返す。"""
        return f"--- {self.identity} ---\n{self.content}"
