"""ツール引数モデルの基底クラス。"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ToolArgs(BaseModel):
    """ツール引数モデルの基底クラス。

    モデルが余分なフィールドを付けてもツール呼び出し自体は受理する。
    """

    model_config = ConfigDict(extra="ignore", frozen=True)
