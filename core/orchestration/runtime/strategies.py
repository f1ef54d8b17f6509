"""
Strategy Executors - Drive the per-agent loop of a run.

Three interchangeable executors share one contract (``StrategyExecutor``):

- SequentialExecutor: agents in declared order, one at a time, each
  receiving the (truncated) output of the last successful agent.
- ParallelExecutor: agents in batches sized by the budget; a batch always
  runs to completion, failures are resolved once the batch has joined.
- ConditionalExecutor: starts at the lowest order, then picks the first
  pending agent whose conditions all hold against the last result.

Executors only mutate the run and its agent copies. Finalisation (final
status, terminal status update, history) belongs to the coordinator.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from orchestration.config import DEFAULT_MAX_CONTEXT_CHARS
from orchestration.graph.conditions import conditions_met
from orchestration.runtime.agent_runner import AgentRunner, truncate_output
from orchestration.runtime.budget import can_run_agent, validate_parallel_budget
from orchestration.runtime.control import RunControl
from orchestration.runtime.event_bus import RunEmitter
from orchestration.runtime.failure_policy import FailureAction
from orchestration.schemas.agent import AgentStatus, ConnectedAgent
from orchestration.schemas.orchestrator import (
    Budget,
    FailurePolicy,
    FailurePolicyType,
)
from orchestration.schemas.run import AgentResult, Run, RunStatus, Strategy

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Everything an executor needs to drive one run."""

    run: Run
    agents: list[ConnectedAgent]
    budget: Budget
    failure_policy: FailurePolicy
    runner: AgentRunner
    emitter: RunEmitter
    control: RunControl
    max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS


class StrategyExecutor(Protocol):
    """Drives a run's agents until done, aborted or out of budget."""

    async def execute(self, ctx: ExecutionContext) -> None: ...


def determine_final_status(run: Run, policy: FailurePolicy) -> RunStatus:
    """Final status of a run that ended without being aborted."""
    if not run.agent_results:
        return RunStatus.FAILED

    has_succeeded = any(r.succeeded for r in run.agent_results)
    has_failed = any(r.failed for r in run.agent_results)

    if has_failed and policy.type == FailurePolicyType.ABORT_ALL:
        return RunStatus.FAILED
    if has_failed:
        return RunStatus.COMPLETED_WITH_ERRORS
    if has_succeeded:
        return RunStatus.COMPLETED
    # Only skipped results
    return RunStatus.COMPLETED


def _sorted_by_order(agents: list[ConnectedAgent]) -> list[ConnectedAgent]:
    return sorted(agents, key=lambda a: a.order)


async def _skip_for_budget(ctx: ExecutionContext, agent: ConnectedAgent, reason: str | None) -> None:
    agent.status = AgentStatus.SKIPPED
    agent.last_error = reason
    await ctx.emitter.emit_agent_skipped(agent.node_id, reason)


class SequentialExecutor:
    """One agent at a time, in declared order."""

    async def execute(self, ctx: ExecutionContext) -> None:
        previous_output: str | None = None

        for agent in _sorted_by_order(ctx.agents):
            if not await ctx.control.checkpoint():
                break

            decision = can_run_agent(ctx.budget, ctx.run)
            if not decision.allowed:
                logger.warning(f"Skipping agent {agent.node_id}: {decision.reason}")
                await ctx.emitter.emit_budget_exceeded(decision.reason)
                await _skip_for_budget(ctx, agent, decision.reason)
                continue

            result, action = await ctx.runner.run_with_policy(agent, previous_output)
            if action == FailureAction.ABORT:
                break

            if result.succeeded and result.output:
                previous_output = truncate_output(result.output, ctx.max_context_chars)


class ParallelExecutor:
    """Concurrent batches, sized so the budget can cover every member."""

    async def execute(self, ctx: ExecutionContext) -> None:
        agents = _sorted_by_order(ctx.agents)

        validation = validate_parallel_budget(ctx.budget, len(agents))
        if not validation.allowed:
            logger.error(f"Parallel budget rejected: {validation.reason}")
            ctx.run.finish(RunStatus.FAILED, validation.reason)
            return
        if validation.warning:
            await ctx.emitter.emit_budget_warning(validation.warning)

        concurrency = max(validation.effective_concurrency, 1)
        logger.info(f"Running {len(agents)} agents in batches of {concurrency}")

        for start in range(0, len(agents), concurrency):
            if not await ctx.control.checkpoint():
                break

            decision = can_run_agent(ctx.budget, ctx.run)
            if not decision.allowed:
                logger.warning(f"Stopping before batch at {start}: {decision.reason}")
                await ctx.emitter.emit_budget_exceeded(decision.reason)
                for agent in agents[start:]:
                    await _skip_for_budget(ctx, agent, decision.reason)
                break

            batch = agents[start : start + concurrency]
            for agent in batch:
                agent.status = AgentStatus.QUEUED

            results: list[AgentResult] = await asyncio.gather(
                *(ctx.runner.execute(agent) for agent in batch)
            )

            if await self._resolve_batch_failures(ctx, batch, results):
                break

    async def _resolve_batch_failures(
        self,
        ctx: ExecutionContext,
        batch: list[ConnectedAgent],
        results: list[AgentResult],
    ) -> bool:
        """Apply the failure policy per failed member. True if the run must stop."""
        for agent, result in zip(batch, results, strict=True):
            if not result.failed:
                continue
            _, action = await ctx.runner.resolve_failure(agent, result)
            if action == FailureAction.ABORT:
                ctx.control.abort()
                return True
        return False


class ConditionalExecutor:
    """Branches from agent to agent on the previous result."""

    async def execute(self, ctx: ExecutionContext) -> None:
        agents = _sorted_by_order(ctx.agents)
        current: ConnectedAgent | None = agents[0] if agents else None
        last_result: AgentResult | None = None

        while current is not None:
            if not await ctx.control.checkpoint():
                break

            decision = can_run_agent(ctx.budget, ctx.run)
            if not decision.allowed:
                logger.warning(f"Stopping before agent {current.node_id}: {decision.reason}")
                await ctx.emitter.emit_budget_exceeded(decision.reason)
                await _skip_for_budget(ctx, current, decision.reason)
                break

            previous_output = (
                truncate_output(last_result.output, ctx.max_context_chars)
                if last_result and last_result.output
                else None
            )
            last_result, action = await ctx.runner.run_with_policy(current, previous_output)
            if action == FailureAction.ABORT:
                break

            current = self._next_agent(agents, current, last_result, ctx.run.total_tokens)
            if current is None:
                logger.info("No further branch triggered")

    @staticmethod
    def _next_agent(
        agents: list[ConnectedAgent],
        current: ConnectedAgent,
        last_result: AgentResult,
        total_tokens: int,
    ) -> ConnectedAgent | None:
        for candidate in agents:
            if candidate is current or not candidate.is_pending:
                continue
            if conditions_met(candidate.conditions, last_result, total_tokens):
                return candidate
        return None


_EXECUTORS: dict[Strategy, type[StrategyExecutor]] = {
    Strategy.SEQUENTIAL: SequentialExecutor,
    Strategy.PARALLEL: ParallelExecutor,
    Strategy.CONDITIONAL: ConditionalExecutor,
}


def get_strategy_executor(strategy: Strategy) -> StrategyExecutor:
    """Return the executor for ``strategy``."""
    return _EXECUTORS[strategy]()
