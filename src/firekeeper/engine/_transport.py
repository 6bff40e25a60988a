"""ModelTransport — モデルへの単発リクエスト。

会話ループは会話履歴とツール定義を渡して 1 応答を受け取るだけで、
エージェントの実行制御（ツール実行・再試行）は持ち込まない。
トランスポート層の失敗はすべて TransportError に変換される。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import anyio
from pydantic_ai.direct import model_request
from pydantic_ai.messages import ModelMessage, ModelResponse
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import ToolDefinition

from firekeeper.engine._errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class ModelTransport(Protocol):
    """モデルに会話を送り 1 応答を得るプロトコル。"""

    async def request(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        """会話履歴とツール定義を送り、モデルの応答を返す。

        Raises:
            TransportError: リクエストが失敗またはタイムアウトした場合。
        """
        ...


class PydanticAITransport:
    """pydantic-ai の直接リクエスト API を使う ModelTransport 実装。

    Args:
        model: リクエスト先のモデル。
        model_settings: リクエストごとに適用する設定。
        timeout: 1 リクエストのタイムアウト秒数。None は無制限。
    """

    def __init__(
        self,
        model: Model,
        model_settings: ModelSettings | None = None,
        timeout: float | None = None,
    ) -> None:
        self._model = model
        self._model_settings = model_settings
        self._timeout = timeout

    async def request(
        self,
        messages: Sequence[ModelMessage],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        params = ModelRequestParameters(
            function_tools=list(tools),
            allow_text_output=True,
        )
        try:
            with anyio.fail_after(self._timeout):
                return await model_request(
                    self._model,
                    list(messages),
                    model_settings=self._model_settings,
                    model_request_parameters=params,
                )
        except TimeoutError as exc:
            raise TransportError(
                f"Model request timed out after {self._timeout}s"
            ) from exc
        except Exception as exc:
            logger.debug("Model request failed", exc_info=True)
            raise TransportError(
                f"Model request failed: {type(exc).__name__}: {exc}"
            ) from exc
