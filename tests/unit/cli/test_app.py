"""Typer app のテスト。

NOTE: CliRunner の result.output は stdout と stderr の混合出力のため、
stderr への案内メッセージも result.output で検証する。
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from firekeeper.cli._app import API_KEY_ENV_VAR, app
from firekeeper.engine import DiffCollectionError, EngineResult
from firekeeper.models.config import ReviewConfig
from firekeeper.models.exit_code import ExitCode
from firekeeper.models.rule import RuleBody
from firekeeper.models.summary import ReviewSummary
from firekeeper.models.task import ChangeSet, ReviewTask
from firekeeper.models.trace import TraceFile
from firekeeper.models.violation import Violation, ViolationFile

PATCH_RESOLVE_CONFIG = "firekeeper.cli._app.resolve_config"
PATCH_RUN_REVIEW = "firekeeper.cli._app.run_review"
PATCH_PLAN_REVIEW = "firekeeper.cli._app.plan_review"
PATCH_VERSION = "firekeeper.cli._app.importlib.metadata.version"

runner = CliRunner()

_CONFIG_TOML = """\
[llm]
model = "openai/gpt-4o-mini"

[[rules]]
name = "naming"
instruction = "Use clear names."
scope = ["src/**/*.py"]
"""


def _make_engine_result(violations: int = 0) -> EngineResult:
    violation_file = ViolationFile(
        violations=[
            Violation(rule="naming", file="src/a.py", description="Unclear name")
            for _ in range(violations)
        ]
    )
    return EngineResult(
        violation_file=violation_file,
        trace_file=TraceFile(),
        summary=ReviewSummary(
            total_tasks=1,
            reported=1,
            aborted=0,
            not_started=0,
            violations=violations,
        ),
        exit_code=ExitCode.FAILURE if violations else ExitCode.SUCCESS,
    )


def _make_config() -> ReviewConfig:
    return ReviewConfig(rules=(RuleBody(name="naming", instruction="x"),))


@pytest.fixture
def api_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(API_KEY_ENV_VAR, "sk-test")


# =============================================================================
# ルートコマンド
# =============================================================================


class TestAppHelp:
    """--help / --version の動作。"""

    def test_help_exits_with_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Rule-based LLM code review" in result.output

    def test_help_lists_subcommands(self) -> None:
        result = runner.invoke(app, ["--help"])
        for command in ("review", "render", "init", "validate"):
            assert command in result.output

    @patch(PATCH_VERSION, return_value="1.2.3")
    def test_version(self, mock_version: MagicMock) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip() == "1.2.3"
        mock_version.assert_called_once_with("firekeeper")


class TestLogLevel:
    """--log-level の適用。"""

    def test_level_passed_to_setup(
        self, mock_setup_logging: MagicMock, tmp_path: Path
    ) -> None:
        config = tmp_path / "firekeeper.toml"
        runner.invoke(app, ["--log-level", "DEBUG", "init", "--config", str(config)])
        mock_setup_logging.assert_called_once_with("DEBUG")

    def test_invalid_level_is_input_error(self, mock_setup_logging: MagicMock) -> None:
        mock_setup_logging.side_effect = ValueError("Unknown log level: 'LOUD'")
        result = runner.invoke(app, ["--log-level", "LOUD", "validate"])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "Unknown log level" in result.output


# =============================================================================
# validate
# =============================================================================


class TestValidate:
    """validate サブコマンド。"""

    def test_valid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        config.write_text(_CONFIG_TOML)
        result = runner.invoke(app, ["validate", "--config", str(config)])
        assert result.exit_code == 0
        assert "Model: openai/gpt-4o-mini" in result.output
        assert "Rules: 1" in result.output
        assert "  - naming [src/**/*.py]" in result.output
        assert "Configuration is valid." in result.output

    def test_override_applied(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        config.write_text(_CONFIG_TOML)
        result = runner.invoke(
            app,
            [
                "validate",
                "--config",
                str(config),
                "--config-override",
                "llm.model=anthropic/claude-haiku",
            ],
        )
        assert result.exit_code == 0
        assert "Model: anthropic/claude-haiku" in result.output

    def test_missing_config_file(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["validate", "--config", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "Config file not found" in result.output
        assert "firekeeper init" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        config.write_text('[[rules]]\nname = "naming"\n')
        result = runner.invoke(app, ["validate", "--config", str(config)])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "Invalid configuration" in result.output

    def test_broken_toml(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        config.write_text("[llm\n")
        result = runner.invoke(app, ["validate", "--config", str(config)])
        assert result.exit_code == ExitCode.INPUT_ERROR


# =============================================================================
# review
# =============================================================================


class TestReview:
    """review サブコマンド。"""

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_clean_review(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.return_value = _make_engine_result()
        result = runner.invoke(app, ["review"])
        assert result.exit_code == ExitCode.SUCCESS
        assert "No violations found" in result.output

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_violations_exit_one(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.return_value = _make_engine_result(violations=1)
        result = runner.invoke(app, ["review"])
        assert result.exit_code == ExitCode.FAILURE
        assert "# Violations in src/a.py" in result.output
        assert "- Unclear name" in result.output

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_base_forwarded(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.return_value = _make_engine_result()
        runner.invoke(app, ["review", "--base", "HEAD~2"])
        assert mock_run_review.call_args.kwargs["base"] == "HEAD~2"

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_missing_api_key(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
        mock_config.return_value = _make_config()
        result = runner.invoke(app, ["review"])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert API_KEY_ENV_VAR in result.output
        mock_run_review.assert_not_called()

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_unsupported_output_extension(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
        tmp_path: Path,
    ) -> None:
        mock_config.return_value = _make_config()
        result = runner.invoke(app, ["review", "--output", str(tmp_path / "out.txt")])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "Use .json or .md" in result.output
        mock_run_review.assert_not_called()

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_output_and_trace_files(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
        tmp_path: Path,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.return_value = _make_engine_result(violations=1)
        output = tmp_path / "out" / "violations.json"
        trace = tmp_path / "trace.md"
        result = runner.invoke(
            app, ["review", "--output", str(output), "--trace", str(trace)]
        )
        assert result.exit_code == ExitCode.FAILURE
        data = json.loads(output.read_text())
        assert data["version"] == "1.0"
        assert data["violations"][0]["file"] == "src/a.py"
        assert "start_line" not in data["violations"][0]
        assert trace.exists()
        assert "# Violations in" not in result.output

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_diff_collection_error(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.side_effect = DiffCollectionError("unknown revision 'nope'")
        result = runner.invoke(app, ["review", "--base", "nope"])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "unknown revision" in result.output

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_unexpected_error(
        self,
        mock_config: MagicMock,
        mock_run_review: AsyncMock,
        api_key_env: None,
    ) -> None:
        mock_config.return_value = _make_config()
        mock_run_review.side_effect = RuntimeError("boom")
        result = runner.invoke(app, ["review"])
        assert result.exit_code == ExitCode.FAILURE
        assert "Review execution failed: boom" in result.output


class TestReviewDryRun:
    """review --dry-run はモデルに接続せずタスク一覧を出力する。"""

    @patch(PATCH_RUN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_PLAN_REVIEW, new_callable=AsyncMock)
    @patch(PATCH_RESOLVE_CONFIG)
    def test_lists_tasks(
        self,
        mock_config: MagicMock,
        mock_plan_review: AsyncMock,
        mock_run_review: AsyncMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
        mock_config.return_value = _make_config()
        mock_plan_review.return_value = [
            ReviewTask(
                task_id="0",
                rule=RuleBody(name="naming", instruction="x"),
                files=("src/a.py", "src/b.py"),
                changeset=ChangeSet(files=("src/a.py", "src/b.py")),
            )
        ]
        result = runner.invoke(app, ["review", "--dry-run"])
        assert result.exit_code == ExitCode.SUCCESS
        assert "Task 0: naming (2 files)" in result.output
        assert "  - src/b.py" in result.output
        mock_run_review.assert_not_called()


# =============================================================================
# render
# =============================================================================


class TestRender:
    """render サブコマンド。"""

    def _write_violations(self, path: Path, version: str = "1.0") -> None:
        path.write_text(
            json.dumps(
                {
                    "version": version,
                    "violations": [
                        {
                            "rule": "naming",
                            "file": "src/a.py",
                            "description": "Unclear name",
                            "start_line": 3,
                        }
                    ],
                    "tips": [],
                }
            )
        )

    def test_render_to_stdout(self, tmp_path: Path) -> None:
        source = tmp_path / "violations.json"
        self._write_violations(source)
        result = runner.invoke(app, ["render", "--input", str(source)])
        assert result.exit_code == 0
        assert "## Rule: naming" in result.output
        assert "- Line 3: Unclear name" in result.output

    def test_render_to_file(self, tmp_path: Path) -> None:
        source = tmp_path / "violations.json"
        target = tmp_path / "violations.md"
        self._write_violations(source)
        result = runner.invoke(
            app, ["render", "--input", str(source), "--output", str(target)]
        )
        assert result.exit_code == 0
        assert target.read_text().startswith("# Violations in src/a.py")

    def test_incompatible_major_version(self, tmp_path: Path) -> None:
        source = tmp_path / "violations.json"
        self._write_violations(source, version="2.0")
        result = runner.invoke(app, ["render", "--input", str(source)])
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "Unsupported schema version" in result.output

    def test_missing_input(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["render", "--input", str(tmp_path / "missing.json")]
        )
        assert result.exit_code == ExitCode.INPUT_ERROR


# =============================================================================
# init
# =============================================================================


class TestInit:
    """init サブコマンド。"""

    def test_creates_then_skips(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        first = runner.invoke(app, ["init", "--config", str(config)])
        assert first.exit_code == 0
        assert "Created:" in first.output
        assert config.exists()

        config.write_text("# edited\n")
        second = runner.invoke(app, ["init", "--config", str(config)])
        assert second.exit_code == 0
        assert "Skipped (already exists)" in second.output
        assert config.read_text() == "# edited\n"

    def test_force_overwrites(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        config.write_text("# edited\n")
        result = runner.invoke(app, ["init", "--config", str(config), "--force"])
        assert result.exit_code == 0
        assert "[[rules]]" in config.read_text()

    def test_generated_config_validates(self, tmp_path: Path) -> None:
        config = tmp_path / "firekeeper.toml"
        runner.invoke(app, ["init", "--config", str(config)])
        result = runner.invoke(app, ["validate", "--config", str(config)])
        assert result.exit_code == 0
        assert "Rules: 3" in result.output
