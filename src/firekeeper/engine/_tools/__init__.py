"""モデルに提示するツールの実装。

ツールごとにモジュールを分割し、_catalog.py 経由で解決される。
各ツールは引数モデル（ToolArgs サブクラス）と、文字列を返す関数の組で構成する。
本パッケージはプライベートであり直接インポートしない。
"""

__all__: list[str] = []
