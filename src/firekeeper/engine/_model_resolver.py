"""モデルリゾルバー — LLM 接続設定から pydantic-ai モデルを構築する。

OpenAI 互換エンドポイント（OpenRouter など）を OpenAIChatModel で扱い、
プロバイダ固有ヘッダーやボディ上書きは ModelSettings 経由で渡す。
"""

from __future__ import annotations

from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from firekeeper.models.config import LlmConfig


def resolve_model(llm: LlmConfig, api_key: str | None) -> Model:
    """LlmConfig から pydantic-ai の Model を構築する。

    Args:
        llm: LLM 接続設定。
        api_key: API キー。

    Returns:
        OpenAI 互換エンドポイントに接続する Model。

    Raises:
        ValueError: API キーが未指定の場合。
    """
    if not api_key:
        raise ValueError(
            "LLM API key is not set. "
            "Pass --api-key or set the FIREKEEPER_LLM_API_KEY environment variable."
        )
    provider = OpenAIProvider(base_url=llm.base_url, api_key=api_key)
    return OpenAIChatModel(llm.model, provider=provider)


def build_model_settings(llm: LlmConfig) -> ModelSettings:
    """LlmConfig からリクエストごとの ModelSettings を構築する。"""
    settings = ModelSettings(
        parallel_tool_calls=llm.parallel_tool_calls,
        timeout=float(llm.timeout),
    )
    if llm.headers:
        settings["extra_headers"] = dict(llm.headers)
    if llm.body:
        settings["extra_body"] = dict(llm.body)
    return settings
