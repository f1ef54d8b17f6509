"""Tests for branching condition evaluation."""

import logging

import pytest

from orchestration.errors import ConditionNotImplementedError
from orchestration.graph.conditions import conditions_met, evaluate_condition
from orchestration.schemas.agent import Condition, ConditionType
from orchestration.schemas.run import AgentResult, AgentResultStatus


def _result(status=AgentResultStatus.COMPLETED, output: str = "") -> AgentResult:
    return AgentResult(agent_node_id="prev", status=status, output=output)


class TestStatusConditions:
    def test_agent_succeeded(self):
        condition = Condition(type=ConditionType.AGENT_SUCCEEDED)
        assert evaluate_condition(condition, _result(), 0) is True
        assert evaluate_condition(condition, _result(AgentResultStatus.FAILED), 0) is False

    def test_agent_failed(self):
        condition = Condition(type=ConditionType.AGENT_FAILED)
        assert evaluate_condition(condition, _result(AgentResultStatus.FAILED), 0) is True
        assert evaluate_condition(condition, _result(), 0) is False

    def test_no_previous_result(self):
        assert evaluate_condition(Condition(type=ConditionType.AGENT_SUCCEEDED), None, 0) is False
        assert evaluate_condition(Condition(type=ConditionType.AGENT_FAILED), None, 0) is False


class TestOutputConditions:
    def test_contains_is_case_insensitive(self):
        condition = Condition(type=ConditionType.OUTPUT_CONTAINS, value="ERROR")
        assert evaluate_condition(condition, _result(output="an error occurred"), 0) is True
        assert evaluate_condition(condition, _result(output="all good"), 0) is False

    def test_contains_empty_value_always_matches_with_warning(self, caplog):
        condition = Condition(id="c1", type=ConditionType.OUTPUT_CONTAINS, value="")
        with caplog.at_level(logging.WARNING, logger="orchestration.graph.conditions"):
            assert evaluate_condition(condition, _result(output="anything"), 0) is True
        assert "always match" in caplog.text

    def test_matches_regex(self):
        condition = Condition(type=ConditionType.OUTPUT_MATCHES, value=r"score:\s*\d+")
        assert evaluate_condition(condition, _result(output="final score: 42"), 0) is True
        assert evaluate_condition(condition, _result(output="no score"), 0) is False

    def test_matches_empty_value_is_false(self):
        condition = Condition(type=ConditionType.OUTPUT_MATCHES, value=None)
        assert evaluate_condition(condition, _result(output="x"), 0) is False

    def test_invalid_pattern_is_false_and_logged(self, caplog):
        condition = Condition(type=ConditionType.OUTPUT_MATCHES, value="([unclosed")
        with caplog.at_level(logging.ERROR, logger="orchestration.graph.conditions"):
            assert evaluate_condition(condition, _result(output="([unclosed"), 0) is False
        assert "invalid pattern" in caplog.text


class TestTokenCondition:
    def test_below_threshold(self):
        condition = Condition(type=ConditionType.TOKEN_COUNT_BELOW, threshold=1000)
        assert evaluate_condition(condition, _result(), 999) is True
        assert evaluate_condition(condition, _result(), 1000) is False

    def test_missing_threshold_never_gates(self):
        condition = Condition(type=ConditionType.TOKEN_COUNT_BELOW)
        assert evaluate_condition(condition, _result(), 10**9) is True


class TestCustomExpression:
    def test_raises_not_implemented(self):
        condition = Condition(type=ConditionType.CUSTOM_EXPRESSION, expression="x > 1")
        with pytest.raises(ConditionNotImplementedError):
            evaluate_condition(condition, _result(), 0)

    def test_is_a_not_implemented_error(self):
        assert issubclass(ConditionNotImplementedError, NotImplementedError)


class TestInvertAndCombination:
    def test_invert_flips_result(self):
        condition = Condition(type=ConditionType.AGENT_SUCCEEDED, invert=True)
        assert evaluate_condition(condition, _result(), 0) is False
        assert evaluate_condition(condition, _result(AgentResultStatus.FAILED), 0) is True

    def test_empty_conditions_always_met(self):
        assert conditions_met([], None, 0) is True

    def test_and_semantics(self):
        conditions = [
            Condition(type=ConditionType.AGENT_SUCCEEDED),
            Condition(type=ConditionType.OUTPUT_CONTAINS, value="ready"),
        ]
        assert conditions_met(conditions, _result(output="Ready to ship"), 0) is True
        assert conditions_met(conditions, _result(output="not yet"), 0) is False
