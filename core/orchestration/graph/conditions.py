"""
Condition Evaluation - Branch gates for the conditional strategy.

A condition is tested against the most recently completed agent result
and the run's cumulative token count. Conditions on one agent combine with
AND semantics; an agent without conditions always qualifies.

Condition Types:
- agent-succeeded: previous agent completed
- agent-failed: previous agent failed
- output-contains: case-insensitive substring of the previous output
- output-matches: regular expression searched in the previous output
- token-count-below: run total below ``threshold``
- custom-expression: not implemented, evaluating one is an error
"""

import logging
import re

from orchestration.errors import ConditionNotImplementedError
from orchestration.schemas.agent import Condition, ConditionType
from orchestration.schemas.run import AgentResult, AgentResultStatus

logger = logging.getLogger(__name__)


def _evaluate_raw(
    condition: Condition,
    last_result: AgentResult | None,
    total_tokens: int,
) -> bool:
    output = last_result.output if last_result else ""

    if condition.type == ConditionType.AGENT_SUCCEEDED:
        return last_result is not None and last_result.status == AgentResultStatus.COMPLETED

    if condition.type == ConditionType.AGENT_FAILED:
        return last_result is not None and last_result.status == AgentResultStatus.FAILED

    if condition.type == ConditionType.OUTPUT_CONTAINS:
        if not condition.value:
            logger.warning(
                f"Condition {condition.id or '<unnamed>'}: output-contains has no value, "
                "it will always match"
            )
            return True
        return condition.value.lower() in output.lower()

    if condition.type == ConditionType.OUTPUT_MATCHES:
        if not condition.value:
            return False
        try:
            return re.search(condition.value, output) is not None
        except re.error as e:
            logger.error(
                f"Condition {condition.id or '<unnamed>'}: invalid pattern {condition.value!r}: {e}"
            )
            return False

    if condition.type == ConditionType.TOKEN_COUNT_BELOW:
        if condition.threshold is None:
            return True
        return total_tokens < condition.threshold

    if condition.type == ConditionType.CUSTOM_EXPRESSION:
        raise ConditionNotImplementedError(
            "custom-expression conditions are not yet implemented"
        )

    return False


def evaluate_condition(
    condition: Condition,
    last_result: AgentResult | None,
    total_tokens: int,
) -> bool:
    """
    Evaluate one condition, applying its ``invert`` flag.

    Args:
        condition: The condition to test
        last_result: Result of the most recently finished agent (None before the first)
        total_tokens: Cumulative tokens consumed by the run so far

    Raises:
        ConditionNotImplementedError: for custom-expression conditions
    """
    result = _evaluate_raw(condition, last_result, total_tokens)
    return not result if condition.invert else result


def conditions_met(
    conditions: list[Condition],
    last_result: AgentResult | None,
    total_tokens: int,
) -> bool:
    """True when every condition holds. An empty list always qualifies."""
    return all(evaluate_condition(c, last_result, total_tokens) for c in conditions)
