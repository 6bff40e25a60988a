"""InitHandler -- init サブコマンドのビジネスロジック。

組み込みルール付きのデフォルト設定ファイルを生成する。
既存ファイルは --force 指定時のみ上書きする。
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.config import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_TURNS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECONDS,
)
from firekeeper.models.rule import RuleBody


class InitError(Exception):
    """init コマンドのエラー。

    エラーメッセージは解決方法のヒントを含む。
    """


class InitResult(FirekeeperBaseModel):
    """init コマンドの実行結果。

    Attributes:
        path: 設定ファイルのパス。
        created: 新規作成（または上書き）した場合 True、既存のためスキップした場合 False。
    """

    path: Path
    created: bool


BUILTIN_RULES: Final[tuple[RuleBody, ...]] = (
    RuleBody(
        name="No Code Duplication",
        description="Prevent duplicate code across files",
        instruction="""\
Ensure modified content does not duplicate code from other files.
- If duplicating an existing function, the code should call that function instead.
- If duplicating a code block, a shared function should be extracted.

Ignore acceptable duplication:
- Trivial code (simple one-liners, common patterns like error handling)
- Test code and test utilities
- Similar but contextually different logic (e.g., different validation rules)
- Common patterns like builder methods, getters/setters
- Standard boilerplate (e.g., CLI argument parsing, config loading)
- Factory methods or templates that intentionally duplicate configuration

Focus on substantial logic duplication:
- Business logic duplicated across multiple files (>30 lines)
- Complex algorithms or calculations repeated
- Data transformation logic that's identical
""",
        tip="Extract common code into shared functions or modules.",
        max_files_per_task=3,
    ),
    RuleBody(
        name="No Magic Numbers",
        description="Prevent hardcoded numeric literals",
        instruction="""\
Reject unexplained numeric literals in production code.

Allowed numbers (not magic):
- 0, 1, -1 in common contexts (indexing, loop increments, exit codes)
- Numbers in test files
- Numbers in configuration files
- Numbers with nearby explanatory comments (within 3 lines)
- HTTP status codes (200, 404, etc.)
- Common time values with clear context (60 for seconds, 24 for hours)

Reject as magic numbers:
- Business logic constants without explanation (thresholds, multipliers, limits)
- Arbitrary timeouts or delays without context
- Numeric configuration values hardcoded in logic
- Calculation constants without explanation
""",
        tip="Define constants with descriptive names or add explanatory comments.",
        max_files_per_task=10,
    ),
    RuleBody(
        name="No Hardcoded Credentials",
        description="Prevent credential leaks",
        instruction="""\
Reject hardcoded credentials in code.

Forbidden:
- API keys, tokens, secrets (e.g., "sk-...", "Bearer ...", actual secret values)
- Passwords or password hashes
- Private keys or certificates
- OAuth client secrets
- Database connection strings with credentials

Allowed:
- Placeholder/example values (e.g., "your-api-key", "sk-xxxxxx", "<API_KEY>")
- Environment variable names (e.g., "API_KEY", "DATABASE_URL")
- Public URLs and endpoints
- Test/mock credentials in test files clearly marked as fake
- Documentation examples with obvious placeholders
""",
        tip=(
            "Use environment variables or configuration files for credentials. "
            "Replace real values with placeholders in examples."
        ),
        max_files_per_task=10,
    ),
)
"""init が生成する組み込みルール。"""


_CONFIG_HEADER: Final[str] = """\
# firekeeper configuration
# Uncomment and modify settings as needed.
# The API key is read from --api-key or FIREKEEPER_LLM_API_KEY.

[llm]
# OpenAI-compatible endpoint
# base_url = "{base_url}"
# model = "{model}"

# Request timeout in seconds
# timeout = {timeout}

# Allow several tool calls in one response
# parallel_tool_calls = true

# Extra HTTP headers / request body fields
# headers = {{ "X-Title" = "firekeeper" }}
# body = {{ reasoning = {{ effort = "low" }} }}

[review]
# Base ref: "" (auto), "ROOT", "main", "^", "~3", ...
# base = ""

# Resources shared by every rule (file:, skill:, sh:)
# resources = ["file://CONTRIBUTING.md"]

# Maximum concurrent tasks (0 = unlimited)
# max_parallel_workers = 0

# Split each rule's files into tasks of at most this many files
# max_files_per_task = 5

# Maximum model requests per task
# max_turns = {max_turns}
"""


def _toml_string(value: str) -> str:
    """基本文字列として TOML に書ける形へエスケープする。"""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _toml_multiline(value: str) -> str:
    """リテラル複数行文字列として書ける場合はそれを使う。"""
    if "'''" in value:
        return _toml_string(value)
    return f"'''\n{value}'''"


def _format_rule(rule: RuleBody) -> str:
    scope = ", ".join(_toml_string(pattern) for pattern in rule.scope)
    lines = [
        "[[rules]]",
        f"name = {_toml_string(rule.name)}",
        f"description = {_toml_string(rule.description)}",
        f"instruction = {_toml_multiline(rule.instruction)}",
        f"scope = [{scope}]",
    ]
    if rule.max_files_per_task is not None:
        lines.append(f"max_files_per_task = {rule.max_files_per_task}")
    if rule.tip is not None:
        lines.append(f"tip = {_toml_string(rule.tip)}")
    return "\n".join(lines)


def generate_config_template() -> str:
    """組み込みルール付きの firekeeper.toml テンプレートを生成する。

    Returns:
        テンプレート文字列。
    """
    header = _CONFIG_HEADER.format(
        base_url=DEFAULT_BASE_URL,
        model=DEFAULT_MODEL,
        timeout=DEFAULT_TIMEOUT_SECONDS,
        max_turns=DEFAULT_MAX_TURNS,
    )
    rules = "\n\n".join(_format_rule(rule) for rule in BUILTIN_RULES)
    return f"{header}\n{rules}\n"


def run_init(config_path: Path, *, force: bool = False) -> InitResult:
    """デフォルト設定ファイルを書き出す。

    Args:
        config_path: 書き出し先のパス。
        force: True の場合、既存ファイルを上書きする。

    Returns:
        InitResult: 作成・スキップの結果。

    Raises:
        InitError: ファイルシステム操作に失敗した場合。
    """
    if config_path.exists() and not force:
        return InitResult(path=config_path, created=False)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_config_template(), encoding="utf-8")
    except OSError as e:
        raise InitError(
            f"Failed to write {config_path}: {e}\n"
            "Check directory permissions and available disk space."
        ) from e
    return InitResult(path=config_path, created=True)
