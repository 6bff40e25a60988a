"""RuleBody のテスト。"""

import pytest
from pydantic import ValidationError

from firekeeper.models.rule import DEFAULT_SCOPE, RuleBody


class TestRuleBodyDefaults:
    """省略可能フィールドのデフォルト値を検証。"""

    def test_minimal_rule(self) -> None:
        rule = RuleBody(name="r", instruction="Check things.")
        assert rule.scope == DEFAULT_SCOPE
        assert rule.exclude == ()
        assert rule.resources == ()
        assert rule.tip is None
        assert rule.max_files_per_task is None
        assert rule.description == ""


class TestRuleBodyValidation:
    """不正な値の拒否を検証。"""

    def test_blank_instruction_rejected(self) -> None:
        """空白のみの instruction は拒否される。"""
        with pytest.raises(ValidationError, match="instruction must not be blank"):
            RuleBody(name="r", instruction="   \n")

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RuleBody(name="", instruction="x")

    def test_unknown_resource_scheme_rejected(self) -> None:
        """未知のスキームを持つリソース URI は拒否される。"""
        with pytest.raises(ValidationError, match="Unknown resource scheme"):
            RuleBody(name="r", instruction="x", resources=("http://example.com",))

    def test_zero_max_files_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RuleBody(name="r", instruction="x", max_files_per_task=0)

    def test_empty_scope_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RuleBody(name="r", instruction="x", scope=("",))

    def test_unknown_field_rejected(self) -> None:
        """extra="forbid" により未定義キーは拒否される。"""
        with pytest.raises(ValidationError, match="extra_forbidden"):
            RuleBody.model_validate({"name": "r", "instruction": "x", "blocking": True})

    def test_empty_scope_list_allowed(self) -> None:
        """空の scope は許可される（どのファイルにも一致しないルール）。"""
        rule = RuleBody(name="r", instruction="x", scope=())
        assert rule.scope == ()
