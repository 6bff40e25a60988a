"""レビュー実行中のエラー分類。

タスク内で発生したエラーはすべて ReviewError のサブクラスとして表現され、
TaskAborted の error_type に写像される。スケジューラへ伝播することはない。
"""

from __future__ import annotations

from typing import ClassVar

from firekeeper.models.outcome import ErrorKind


class ReviewError(Exception):
    """タスク中断を引き起こすエラーの基底クラス。"""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL


class ResourceError(ReviewError):
    """リソース URI の解決失敗。

    ファイル読み込み失敗、front matter 不正、シェルコマンドの非ゼロ終了など。

    Attributes:
        stderr: シェルコマンドの標準エラー出力（sh:// の場合のみ）。
    """

    kind: ClassVar[ErrorKind] = ErrorKind.RESOURCE

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr


class TransportError(ReviewError):
    """モデルリクエストの失敗（ネットワーク、HTTP エラー、タイムアウト）。"""

    kind: ClassVar[ErrorKind] = ErrorKind.TRANSPORT


class ProtocolError(ReviewError):
    """モデルが未知のツールや不正な引数でツールを呼び出した。"""

    kind: ClassVar[ErrorKind] = ErrorKind.PROTOCOL


class DeadLoopError(ReviewError):
    """同一セッション内で同じツール呼び出しが繰り返された。

    Attributes:
        tool_name: 重複したツール名。
        arguments: 正規化済みの引数 JSON。
    """

    kind: ClassVar[ErrorKind] = ErrorKind.DEAD_LOOP

    def __init__(self, tool_name: str, arguments: str) -> None:
        super().__init__(
            f"Repeated tool call detected: {tool_name}({arguments}) "
            "was already issued in this session"
        )
        self.tool_name = tool_name
        self.arguments = arguments


class CancellationError(ReviewError):
    """実行全体のキャンセル要求によりタスクが中断された。"""

    kind: ClassVar[ErrorKind] = ErrorKind.CANCELLED


class TurnLimitError(ReviewError):
    """モデルリクエスト数が上限に達した。"""

    kind: ClassVar[ErrorKind] = ErrorKind.TURN_LIMIT
