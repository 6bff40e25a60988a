"""SignalHandler — SIGINT/SIGTERM ハンドリング。

シグナルハンドラはキャンセルトークン（asyncio.Event）をセットするだけで、
タスクの停止は各会話ループとスケジューラが協調的に行う。
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Final

logger = logging.getLogger(__name__)

_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    loop: asyncio.AbstractEventLoop,
) -> None:
    """SIGINT/SIGTERM シグナルハンドラを登録する。

    シグナル受信時に shutdown_event をセットし、実行中のタスクにキャンセルを通知する。
    add_signal_handler をサポートしないイベントループ（Windows）では何もしない。

    Args:
        shutdown_event: 停止を通知するイベント。
        loop: 現在の asyncio イベントループ。
    """

    def _request_shutdown() -> None:
        if not shutdown_event.is_set():
            logger.warning("Shutdown requested, finishing in-flight tasks")
        shutdown_event.set()

    for sig in _SIGNALS:
        try:
            loop.add_signal_handler(sig, _request_shutdown)
        except NotImplementedError:
            logger.debug("Signal handlers are not supported on this event loop")
            return


def uninstall_signal_handlers(
    loop: asyncio.AbstractEventLoop,
) -> None:
    """シグナルハンドラを解除する。エンジン実行完了後のクリーンアップ。

    Args:
        loop: 現在の asyncio イベントループ。
    """
    for sig in _SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            return
