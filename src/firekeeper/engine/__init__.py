"""レビュー実行エンジン。

pydantic-ai の直接リクエスト API を使ったルールベースのレビュー実行エンジン。
以下のパイプラインでコードレビューを実行する:

1. 変更セット収集（GitDiffProvider）
2. タスク分割とリソース事前解決（split_tasks / ResourceResolver）
3. 上限付き並列実行（execute_tasks / AgentLoop）
4. トレース収集（Tracer）
5. 違反集約と終了コード決定（Aggregator）
"""

from firekeeper.engine._diff_provider import DiffCollectionError, GitDiffProvider
from firekeeper.engine._engine import EngineResult, plan_review, run_review
from firekeeper.engine._errors import ReviewError
from firekeeper.engine._model_resolver import build_model_settings, resolve_model
from firekeeper.engine._transport import PydanticAITransport

__all__ = [
    "DiffCollectionError",
    "EngineResult",
    "GitDiffProvider",
    "PydanticAITransport",
    "ReviewError",
    "build_model_settings",
    "plan_review",
    "resolve_model",
    "run_review",
]
