"""設定管理モジュール。"""

from firekeeper.config._resolver import (
    DEFAULT_CONFIG_FILE_NAME,
    ConfigOverrideError,
    resolve_config,
)

__all__ = [
    "ConfigOverrideError",
    "DEFAULT_CONFIG_FILE_NAME",
    "resolve_config",
]
