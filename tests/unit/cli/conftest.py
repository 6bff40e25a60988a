"""CLI テスト共通フィクスチャ。"""

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

PATCH_SETUP_LOGGING = "firekeeper.cli._app.setup_logging"


@pytest.fixture(autouse=True)
def mock_setup_logging() -> Iterator[MagicMock]:
    """CliRunner の一時ストリームにログハンドラを結び付けないようにする。"""
    with patch(PATCH_SETUP_LOGGING) as mock:
        yield mock
