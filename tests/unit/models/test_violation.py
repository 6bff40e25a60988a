"""Violation / ViolationFile のテスト。"""

import json

import pytest
from pydantic import ValidationError

from firekeeper.models.schema_version import SCHEMA_VERSION
from firekeeper.models.violation import Violation, ViolationFile


class TestViolation:
    """Violation のバリデーション。"""

    def test_lines_optional(self) -> None:
        v = Violation(rule="r", file="a.py", description="bad")
        assert v.start_line is None
        assert v.end_line is None

    def test_end_before_start_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not precede"):
            Violation(
                rule="r", file="a.py", description="bad", start_line=5, end_line=2
            )

    def test_zero_line_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Violation(rule="r", file="a.py", description="bad", start_line=0)


class TestViolationFileJson:
    """JSON 出力形式を検証。"""

    def test_json_shape(self) -> None:
        vf = ViolationFile(
            violations=[
                Violation(
                    rule="r", file="a.py", description="bad", start_line=1, end_line=2
                )
            ],
            tips=["fix it"],
        )
        data = json.loads(vf.model_dump_json())
        assert data["version"] == SCHEMA_VERSION
        assert data["violations"][0] == {
            "rule": "r",
            "file": "a.py",
            "description": "bad",
            "start_line": 1,
            "end_line": 2,
        }
        assert data["tips"] == ["fix it"]
