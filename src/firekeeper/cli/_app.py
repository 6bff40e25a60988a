"""CliApp — Typer アプリケーション定義。

サブコマンド:
    review: 変更セットに対してルールベースのレビューを実行する。
    render: JSON の違反レポート・トレースを Markdown に変換する。
    init: 組み込みルール付きのデフォルト設定を生成する。
    validate: 設定を読み込み検証する。

終了コード: 0 = 成功、1 = 違反・中断・キャンセルあり、2 = 実行前の入力エラー。
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import sys
import tomllib
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from firekeeper.cli._init_handler import InitError, run_init
from firekeeper.cli._logging import DEFAULT_LOG_LEVEL, LOG_LEVEL_ENV_VAR, setup_logging
from firekeeper.cli._markdown_formatter import format_violations_markdown
from firekeeper.cli._output_writer import (
    OutputError,
    OutputFormat,
    load_document,
    output_format_for,
    render_document,
    write_document,
)
from firekeeper.config import (
    DEFAULT_CONFIG_FILE_NAME,
    ConfigOverrideError,
    resolve_config,
)
from firekeeper.engine import (
    DiffCollectionError,
    EngineResult,
    PydanticAITransport,
    build_model_settings,
    plan_review,
    resolve_model,
    run_review,
)
from firekeeper.models.config import ReviewConfig
from firekeeper.models.exit_code import ExitCode
from firekeeper.models.schema_version import SchemaVersionError

API_KEY_ENV_VAR = "FIREKEEPER_LLM_API_KEY"

app = typer.Typer(
    name="firekeeper",
    help="Rule-based LLM code review for changed files.",
    add_completion=False,
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    """--version 指定時にバージョン番号を出力して終了する。"""
    if value:
        print(importlib.metadata.version("firekeeper"))
        raise typer.Exit()


def main() -> None:
    """CLI エントリポイント。pyproject.toml の [project.scripts] から呼び出される。"""
    app()


@app.callback()
def root_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            envvar=LOG_LEVEL_ENV_VAR,
            help="Log level: DEBUG, INFO, WARNING, ERROR or CRITICAL.",
        ),
    ] = DEFAULT_LOG_LEVEL,
) -> None:
    """Rule-based LLM code review for changed files."""
    try:
        setup_logging(log_level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None


# ── Option types ─────────────────────────────────────────

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help=(
            f"Config file. Defaults to ./{DEFAULT_CONFIG_FILE_NAME}, "
            "then [tool.firekeeper] in ./pyproject.toml."
        ),
    ),
]
OverrideOption = Annotated[
    list[str] | None,
    typer.Option(
        "--config-override",
        help="Override a config value with key.path=value (repeatable).",
    ),
]


def _load_config(config_path: Path | None, overrides: list[str] | None) -> ReviewConfig:
    """設定を解決する。失敗時はエラーを表示して INPUT_ERROR で終了する。"""
    try:
        return resolve_config(config_path=config_path, overrides=overrides or ())
    except FileNotFoundError as e:
        print(
            f"Error: Config file not found: {e.filename}\n"
            "Run 'firekeeper init' to create a default configuration.",
            file=sys.stderr,
        )
    except PermissionError as e:
        print(
            f"Error: Cannot read configuration file: {e}\n"
            "Check file permissions for the config file.",
            file=sys.stderr,
        )
    except (ValidationError, tomllib.TOMLDecodeError, ConfigOverrideError) as e:
        print(
            f"Error: Invalid configuration: {e}\n"
            "Check the config file and --config-override values.",
            file=sys.stderr,
        )
    raise typer.Exit(code=ExitCode.INPUT_ERROR)


def _check_output_path(path: Path | None) -> None:
    """出力先の拡張子を実行前に検証する。"""
    if path is None:
        return
    try:
        output_format_for(path)
    except OutputError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None


# ── review ───────────────────────────────────────────────


@app.command()
def review(
    base: Annotated[
        str | None,
        typer.Option(
            "--base",
            help=(
                "Base ref: empty (auto), ROOT, a branch or commit, "
                "or ^/~ relative to HEAD."
            ),
        ),
    ] = None,
    config_path: ConfigOption = None,
    config_override: OverrideOption = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            envvar=API_KEY_ENV_VAR,
            help="API key for the LLM endpoint.",
            show_default=False,
        ),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="List tasks without contacting the model.")
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("--output", help="Write violations to a .json or .md file."),
    ] = None,
    trace: Annotated[
        Path | None,
        typer.Option(
            "--trace", help="Write the execution trace to a .json or .md file."
        ),
    ] = None,
) -> None:
    """Review changed files against the configured rules."""
    # 1. 出力先の検証と設定解決
    _check_output_path(output)
    _check_output_path(trace)
    config = _load_config(config_path, config_override)
    root = Path.cwd()

    # 2. dry-run: タスク一覧のみ
    if dry_run:
        try:
            tasks = asyncio.run(plan_review(config, root=root, base=base))
        except DiffCollectionError as e:
            print(f"Error: {e}", file=sys.stderr)
            raise typer.Exit(code=ExitCode.INPUT_ERROR) from None
        for task in tasks:
            suffix = f" [setup error: {task.setup_error}]" if task.setup_error else ""
            print(
                f"Task {task.task_id}: {task.rule.name} "
                f"({len(task.files)} files){suffix}"
            )
            for path in task.files:
                print(f"  - {path}")
        print(f"{len(tasks)} task(s) planned.", file=sys.stderr)
        raise typer.Exit(code=ExitCode.SUCCESS)

    # 3. モデル構築
    try:
        model = resolve_model(config.llm, api_key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None
    transport = PydanticAITransport(
        model,
        build_model_settings(config.llm),
        timeout=float(config.llm.timeout),
    )

    # 4. run_review() 呼び出し
    try:
        result = asyncio.run(run_review(config, transport, root=root, base=base))
    except DiffCollectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None
    except (KeyboardInterrupt, SystemExit):
        raise
    except Exception as e:
        print(
            f"Error: Review execution failed: {e}\n"
            "Check your configuration and network connection. Use --help for options.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.FAILURE) from e

    # 5. レポート・トレース出力
    exit_code = _write_results(result, output, trace)
    raise typer.Exit(code=exit_code)


def _write_results(
    result: EngineResult, output: Path | None, trace: Path | None
) -> ExitCode:
    """違反レポートとトレースを書き出す。

    片方の書き出しに失敗しても、もう片方は書き出す。

    Returns:
        書き出し失敗があれば FAILURE、なければ実行結果の終了コード。
    """
    exit_code = result.exit_code
    if output is None:
        print(format_violations_markdown(result.violation_file), end="")
    else:
        try:
            write_document(result.violation_file, output)
        except OutputError as e:
            print(f"Error: {e}", file=sys.stderr)
            exit_code = ExitCode.FAILURE

    if trace is not None:
        try:
            write_document(result.trace_file, trace)
        except OutputError as e:
            print(f"Error: {e}", file=sys.stderr)
            exit_code = ExitCode.FAILURE
    return exit_code


# ── render ───────────────────────────────────────────────


@app.command()
def render(
    input_path: Annotated[
        Path,
        typer.Option("--input", help="Violation report or trace JSON file."),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output", help="Write to a .md or .json file instead of stdout."
        ),
    ] = None,
) -> None:
    """Render a violation report or trace JSON file as Markdown."""
    _check_output_path(output)
    try:
        document = load_document(input_path)
    except (OutputError, SchemaVersionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None

    if output is None:
        print(render_document(document, OutputFormat.MARKDOWN), end="")
        return
    try:
        write_document(document, output)
    except OutputError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.FAILURE) from None
    print(f"Rendered {input_path} -> {output}", file=sys.stderr)


# ── init ─────────────────────────────────────────────────


@app.command()
def init(
    config_path: Annotated[
        Path,
        typer.Option("--config", help="Where to write the configuration."),
    ] = Path(DEFAULT_CONFIG_FILE_NAME),
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite an existing file.")
    ] = False,
) -> None:
    """Write a default configuration with built-in rules."""
    try:
        result = run_init(config_path, force=force)
    except InitError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=ExitCode.INPUT_ERROR) from None

    if result.created:
        print(f"  Created: {result.path}", file=sys.stderr)
    else:
        print(
            f"  Skipped (already exists): {result.path}\n"
            "Use --force to overwrite.",
            file=sys.stderr,
        )


# ── validate ─────────────────────────────────────────────


@app.command()
def validate(
    config_path: ConfigOption = None,
    config_override: OverrideOption = None,
) -> None:
    """Load and validate the configuration."""
    config = _load_config(config_path, config_override)
    print(f"Model: {config.llm.model} ({config.llm.base_url})")
    print(f"Rules: {len(config.rules)}")
    for rule in config.rules:
        scope = ", ".join(rule.scope)
        print(f"  - {rule.name} [{scope}]")
    print("Configuration is valid.", file=sys.stderr)
