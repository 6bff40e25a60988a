"""ExitCode — 終了コードの定義。"""

from enum import IntEnum


class ExitCode(IntEnum):
    """プロセス終了コード。

    0-1 はレビュー実行の結果に対応し、2 は実行前の CLI 層固有の入力エラー
    （設定ファイル不正、diff 取得失敗など）。
    """

    SUCCESS = 0
    FAILURE = 1
    INPUT_ERROR = 2
