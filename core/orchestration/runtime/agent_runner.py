"""
Agent Runner - Executes one connected agent and folds its outcome into the run.

The host application supplies an ``AgentExecutor``; how it talks to a
model or uses tools is opaque here. The runner owns everything around
the call: agent status, run aggregates, status updates, per-agent budget
warnings, checkpoints and the retry loop driven by the failure policy.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from orchestration.config import DEFAULT_MAX_CONTEXT_CHARS
from orchestration.observability.logging import set_trace_context
from orchestration.runtime.budget import can_run_agent, per_agent_overrun
from orchestration.runtime.control import RunControl
from orchestration.runtime.event_bus import RunEmitter
from orchestration.runtime.failure_policy import FailureAction, FailurePolicyHandler
from orchestration.schemas.agent import AgentStatus, ConnectedAgent
from orchestration.schemas.orchestrator import Budget
from orchestration.schemas.run import AgentResult, AgentResultStatus, Run

logger = logging.getLogger(__name__)

# Called whenever an agent starts or finishes (the coordinator checkpoints here)
CheckpointHook = Callable[[], Awaitable[None]]


@dataclass
class PromptContext:
    """What an agent is told about its place in the run."""

    orchestrator_id: str
    run_id: str
    previous_output: str | None = None
    prompt_override: str | None = None


class AgentExecutor(ABC):
    """
    Host-provided capability that runs one agent to completion.

    Implementations may raise; the runner turns any exception into a
    failed AgentResult so the failure policy can handle it.
    """

    @abstractmethod
    async def run(self, agent_node_id: str, prompt_context: PromptContext) -> AgentResult:
        """Execute the agent and report its outcome."""
        ...


def truncate_output(output: str, max_chars: int = DEFAULT_MAX_CONTEXT_CHARS) -> str:
    """Cap output handed to the next agent, noting the original length."""
    if len(output) <= max_chars:
        return output
    return output[:max_chars] + f"\n[Truncated - {len(output)} total characters]"


class AgentRunner:
    """Runs agents for one run. Shared by all strategy executors."""

    def __init__(
        self,
        executor: AgentExecutor,
        run: Run,
        budget: Budget,
        emitter: RunEmitter,
        control: RunControl,
        failure_handler: FailurePolicyHandler,
        checkpoint: CheckpointHook | None = None,
    ):
        self._executor = executor
        self._run = run
        self._budget = budget
        self._emitter = emitter
        self._control = control
        self._failure_handler = failure_handler
        self._checkpoint = checkpoint

    async def execute(
        self,
        agent: ConnectedAgent,
        previous_output: str | None = None,
    ) -> AgentResult:
        """Run ``agent`` once and record the outcome on the run."""
        set_trace_context(agent_id=agent.node_id)
        agent.status = AgentStatus.RUNNING
        await self._emitter.emit_agent_started(agent.node_id)
        if self._checkpoint:
            await self._checkpoint()

        context = PromptContext(
            orchestrator_id=self._run.orchestrator_id,
            run_id=self._run.id,
            previous_output=previous_output,
            prompt_override=agent.prompt_override,
        )
        started_at = datetime.now()
        try:
            result = await self._executor.run(agent.node_id, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Agent {agent.node_id} raised during execution")
            completed_at = datetime.now()
            result = AgentResult(
                agent_node_id=agent.node_id,
                status=AgentResultStatus.FAILED,
                error=str(e) or type(e).__name__,
                started_at=started_at,
                completed_at=completed_at,
                duration_ms=int((completed_at - started_at).total_seconds() * 1000),
            )

        if result.agent_node_id != agent.node_id:
            result = result.model_copy(update={"agent_node_id": agent.node_id})

        self._run.record_result(result)
        if result.status == AgentResultStatus.COMPLETED:
            agent.status = AgentStatus.COMPLETED
        elif result.status == AgentResultStatus.SKIPPED:
            agent.status = AgentStatus.SKIPPED
        else:
            agent.status = AgentStatus.FAILED
            agent.last_error = result.error

        logger.info(
            f"Agent {agent.node_id} {result.status} in {result.duration_ms}ms",
            extra={
                "event": "agent_finished",
                "tokens_used": result.total_tokens,
                "cost_usd": result.cost_usd,
                "duration_ms": result.duration_ms,
            },
        )

        overrun = per_agent_overrun(self._budget, result)
        if overrun:
            logger.warning(overrun)
            await self._emitter.emit_budget_warning(overrun, agent_id=agent.node_id)

        await self._emitter.emit_agent_finished(result)
        if self._checkpoint:
            await self._checkpoint()
        return result

    async def resolve_failure(
        self,
        agent: ConnectedAgent,
        result: AgentResult,
        previous_output: str | None = None,
    ) -> tuple[AgentResult, FailureAction]:
        """
        Apply the failure policy to ``result``, re-running the agent on retry.

        Returns:
            The agent's final result and the action the executor must take
        """
        while result.failed:
            action = await self._failure_handler.handle(agent)
            if action != FailureAction.RETRY:
                return result, action
            if not await self._control.checkpoint():
                agent.status = AgentStatus.FAILED
                return result, FailureAction.CONTINUE

            decision = can_run_agent(self._budget, self._run)
            if not decision.allowed:
                logger.warning(f"Not retrying agent {agent.node_id}: {decision.reason}")
                agent.status = AgentStatus.FAILED
                await self._emitter.emit_budget_exceeded(decision.reason)
                return result, FailureAction.CONTINUE

            result = await self.execute(agent, previous_output)
        return result, FailureAction.CONTINUE

    async def run_with_policy(
        self,
        agent: ConnectedAgent,
        previous_output: str | None = None,
    ) -> tuple[AgentResult, FailureAction]:
        """Execute ``agent`` and resolve any failure."""
        result = await self.execute(agent, previous_output)
        return await self.resolve_failure(agent, result, previous_output)
