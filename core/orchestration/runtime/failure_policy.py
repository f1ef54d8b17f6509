"""
Failure Policy - What happens after an agent fails.

``decide_failure_action`` is the pure decision; ``FailurePolicyHandler``
applies it to a run: it updates the agent, publishes the matching status
update, waits out the retry delay and, for an exhausted abort-all policy,
fails the run.
"""

import asyncio
import logging
from enum import StrEnum

from orchestration.runtime.control import RunControl
from orchestration.runtime.event_bus import RunEmitter
from orchestration.schemas.agent import AgentStatus, ConnectedAgent
from orchestration.schemas.orchestrator import FailurePolicy, FailurePolicyType
from orchestration.schemas.run import Run, RunStatus

logger = logging.getLogger(__name__)


class FailureAction(StrEnum):
    """What the executor should do next with a failed agent."""

    RETRY = "retry"  # Run the same agent again
    CONTINUE = "continue"  # Move on to the next agent
    ABORT = "abort"  # Stop the run


def decide_failure_action(policy: FailurePolicy, retry_count: int) -> FailureAction:
    """Map a policy and an agent's retry count to the next action."""
    if policy.type == FailurePolicyType.SKIP_FAILED:
        return FailureAction.CONTINUE
    if retry_count < policy.max_retries:
        return FailureAction.RETRY
    if policy.type == FailurePolicyType.ABORT_ALL:
        return FailureAction.ABORT
    return FailureAction.CONTINUE


class FailurePolicyHandler:
    """Apply a failure policy to failed agents of one run."""

    def __init__(
        self,
        policy: FailurePolicy,
        run: Run,
        emitter: RunEmitter,
        control: RunControl,
    ):
        self._policy = policy
        self._run = run
        self._emitter = emitter
        self._control = control

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    async def handle(self, agent: ConnectedAgent) -> FailureAction:
        """
        Resolve one failure of ``agent``.

        Returns:
            RETRY after the retry delay has elapsed, CONTINUE when the run
            should move on, ABORT when the run has been failed
        """
        action = decide_failure_action(self._policy, agent.retry_count)

        if action == FailureAction.RETRY:
            agent.retry_count += 1
            agent.status = AgentStatus.RETRYING
            logger.info(
                f"Retrying agent {agent.node_id} "
                f"({agent.retry_count}/{self._policy.max_retries}) after {agent.last_error}"
            )
            await self._emitter.emit_agent_retrying(
                agent.node_id, agent.retry_count, self._policy.max_retries
            )
            if self._policy.retry_delay_ms:
                await asyncio.sleep(self._policy.retry_delay_ms / 1000)
            return action

        if self._policy.type == FailurePolicyType.SKIP_FAILED:
            agent.status = AgentStatus.SKIPPED
            logger.info(f"Skipping failed agent {agent.node_id}")
            await self._emitter.emit_agent_skipped(agent.node_id, agent.last_error)
            return action

        agent.status = AgentStatus.FAILED

        if action == FailureAction.ABORT:
            error = (
                f"Agent {agent.node_id} failed after {self._policy.max_retries} retries "
                "(abort-all policy)"
            )
            logger.error(error)
            if not self._run.is_terminal:
                self._run.finish(RunStatus.FAILED, error)
            self._control.abort()
            return action

        logger.warning(
            f"Agent {agent.node_id} failed after {agent.retry_count} retries, continuing"
        )
        return action
