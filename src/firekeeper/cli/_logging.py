"""ロギング設定。

ルートロガーに rich の RichHandler を 1 つだけ設定し、stderr へ出力する。
レベルは --log-level または FIREKEEPER_LOG 環境変数で指定する。
"""

from __future__ import annotations

import logging
from typing import Final

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_LEVEL: Final[str] = "INFO"
LOG_LEVEL_ENV_VAR: Final[str] = "FIREKEEPER_LOG"

_NOISY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "openai")


def parse_log_level(level: str) -> int:
    """ログレベル名を数値に変換する。

    Raises:
        ValueError: 未知のレベル名の場合。
    """
    value = logging.getLevelNamesMapping().get(level.strip().upper())
    if value is None:
        raise ValueError(
            f"Unknown log level '{level}'. "
            "Use one of: DEBUG, INFO, WARNING, ERROR, CRITICAL."
        )
    return value


def setup_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """ルートロガーを RichHandler で設定する。

    再呼び出し時は既存ハンドラを置き換える。

    Args:
        level: ログレベル名（大文字小文字を区別しない）。

    Raises:
        ValueError: 未知のレベル名の場合。
    """
    numeric_level = parse_log_level(level)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
