"""Tests for failure policy decisions and their side effects."""

from unittest.mock import AsyncMock, patch

import pytest

from orchestration.runtime.control import RunControl
from orchestration.runtime.event_bus import EventBus, EventType, RunEmitter
from orchestration.runtime.failure_policy import (
    FailureAction,
    FailurePolicyHandler,
    decide_failure_action,
)
from orchestration.schemas.agent import AgentStatus, ConnectedAgent
from orchestration.schemas.orchestrator import FailurePolicy, FailurePolicyType
from orchestration.schemas.run import Run, RunStatus, Strategy


def _policy(policy_type: FailurePolicyType, max_retries: int = 1, delay_ms: int = 0):
    return FailurePolicy(type=policy_type, max_retries=max_retries, retry_delay_ms=delay_ms)


class TestDecideFailureAction:
    @pytest.mark.parametrize(
        "policy_type,retry_count,expected",
        [
            (FailurePolicyType.RETRY_AND_CONTINUE, 0, FailureAction.RETRY),
            (FailurePolicyType.RETRY_AND_CONTINUE, 1, FailureAction.CONTINUE),
            (FailurePolicyType.ABORT_ALL, 0, FailureAction.RETRY),
            (FailurePolicyType.ABORT_ALL, 1, FailureAction.ABORT),
            (FailurePolicyType.SKIP_FAILED, 0, FailureAction.CONTINUE),
        ],
    )
    def test_decision_table(self, policy_type, retry_count, expected):
        assert decide_failure_action(_policy(policy_type), retry_count) == expected

    def test_zero_retries_never_retries(self):
        policy = _policy(FailurePolicyType.RETRY_AND_CONTINUE, max_retries=0)
        assert decide_failure_action(policy, 0) == FailureAction.CONTINUE

    def test_default_policy(self):
        policy = FailurePolicy()
        assert policy.type == FailurePolicyType.RETRY_AND_CONTINUE
        assert policy.max_retries == 1
        assert policy.retry_delay_ms == 2000


class TestFailurePolicyHandler:
    def _setup(self, policy: FailurePolicy):
        bus = EventBus()
        run = Run(
            id="run-1",
            orchestrator_id="orch-1",
            strategy=Strategy.SEQUENTIAL,
            status=RunStatus.RUNNING,
        )
        control = RunControl(pause_poll_interval=0.01)
        handler = FailurePolicyHandler(policy, run, RunEmitter(bus, run), control)
        agent = ConnectedAgent(node_id="a", status=AgentStatus.FAILED, last_error="boom")
        return bus, run, control, handler, agent

    @pytest.mark.asyncio
    async def test_retry_marks_agent_and_waits_delay(self):
        bus, _, _, handler, agent = self._setup(
            _policy(FailurePolicyType.RETRY_AND_CONTINUE, max_retries=2, delay_ms=1500)
        )

        with patch(
            "orchestration.runtime.failure_policy.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            action = await handler.handle(agent)

        assert action == FailureAction.RETRY
        assert agent.status == AgentStatus.RETRYING
        assert agent.retry_count == 1
        mock_sleep.assert_awaited_once_with(1.5)

        retrying = bus.get_history(event_type=EventType.AGENT_RETRYING)
        assert len(retrying) == 1
        assert retrying[0].agent_id == "a"
        assert retrying[0].data == {"retry_count": 1, "max_retries": 2}

    @pytest.mark.asyncio
    async def test_retry_and_continue_exhausted_marks_failed(self):
        _, run, control, handler, agent = self._setup(
            _policy(FailurePolicyType.RETRY_AND_CONTINUE, max_retries=1)
        )
        agent.retry_count = 1

        action = await handler.handle(agent)

        assert action == FailureAction.CONTINUE
        assert agent.status == AgentStatus.FAILED
        assert run.status == RunStatus.RUNNING
        assert control.aborted is False

    @pytest.mark.asyncio
    async def test_skip_failed_marks_skipped_without_retry(self):
        bus, _, _, handler, agent = self._setup(_policy(FailurePolicyType.SKIP_FAILED))

        action = await handler.handle(agent)

        assert action == FailureAction.CONTINUE
        assert agent.status == AgentStatus.SKIPPED
        assert agent.retry_count == 0
        skipped = bus.get_history(event_type=EventType.AGENT_SKIPPED)
        assert len(skipped) == 1
        assert skipped[0].error == "boom"
        assert bus.get_history(event_type=EventType.AGENT_RETRYING) == []

    @pytest.mark.asyncio
    async def test_abort_all_exhausted_fails_run(self):
        _, run, control, handler, agent = self._setup(
            _policy(FailurePolicyType.ABORT_ALL, max_retries=2)
        )
        agent.retry_count = 2

        action = await handler.handle(agent)

        assert action == FailureAction.ABORT
        assert agent.status == AgentStatus.FAILED
        assert run.status == RunStatus.FAILED
        assert run.error == "Agent a failed after 2 retries (abort-all policy)"
        assert control.aborted is True
