"""
Budget Guard - Admission decisions against token and cost ceilings.

Pure functions: nothing here mutates a run or publishes anything. The
strategy executors decide what to do with a rejection.
"""

import logging
import math
from dataclasses import dataclass

from orchestration.schemas.orchestrator import Budget
from orchestration.schemas.run import AgentResult, Run

logger = logging.getLogger(__name__)


@dataclass
class BudgetDecision:
    """Whether another agent (or batch) may start."""

    allowed: bool
    reason: str | None = None


@dataclass
class ParallelBudgetDecision:
    """Outcome of sizing a parallel run against the budget."""

    allowed: bool
    effective_concurrency: int = 0
    reason: str | None = None
    warning: str | None = None  # Advisory only, never blocks the run


def can_run_agent(budget: Budget, run: Run) -> BudgetDecision:
    """Reject once consumed tokens or cost meet or exceed a total ceiling."""
    if budget.max_total_tokens is not None:
        used = run.total_tokens
        if used >= budget.max_total_tokens:
            return BudgetDecision(
                allowed=False,
                reason=f"Total token budget exhausted ({used}/{budget.max_total_tokens})",
            )

    if budget.max_total_cost_usd is not None:
        if run.total_cost_usd >= budget.max_total_cost_usd:
            return BudgetDecision(
                allowed=False,
                reason=(
                    f"Total cost budget exhausted "
                    f"(${run.total_cost_usd:.4f}/${budget.max_total_cost_usd})"
                ),
            )

    return BudgetDecision(allowed=True)


def _per_agent_slots(total: float, per_agent: float) -> int:
    return math.floor(total / per_agent)


def validate_parallel_budget(budget: Budget, agent_count: int) -> ParallelBudgetDecision:
    """
    Compute how many agents may run at once without overrunning the budget.

    Token and cost dimensions are evaluated independently and the more
    restrictive one wins. A total ceiling without a matching per-agent
    ceiling cannot be enforced up front, so it only yields a warning.
    """
    if not budget.has_total_limit:
        return ParallelBudgetDecision(allowed=True, effective_concurrency=agent_count)

    concurrency = agent_count
    warnings: list[str] = []

    if budget.max_total_tokens is not None:
        if budget.max_tokens_per_agent is not None:
            slots = _per_agent_slots(budget.max_total_tokens, budget.max_tokens_per_agent)
            if slots < 1:
                return ParallelBudgetDecision(
                    allowed=False,
                    reason=(
                        f"Per-agent token limit ({budget.max_tokens_per_agent}) exceeds "
                        f"total budget ({budget.max_total_tokens})"
                    ),
                )
            concurrency = min(concurrency, slots)
        else:
            implied = budget.max_total_tokens // max(agent_count, 1)
            warnings.append(
                f"No per-agent token limit set. Total budget {budget.max_total_tokens} / "
                f"{agent_count} agents = ~{implied} tokens each. Budget may be exceeded."
            )

    if budget.max_total_cost_usd is not None:
        if budget.max_cost_per_agent is not None:
            slots = _per_agent_slots(budget.max_total_cost_usd, budget.max_cost_per_agent)
            if slots < 1:
                return ParallelBudgetDecision(
                    allowed=False,
                    reason=(
                        f"Per-agent cost limit (${budget.max_cost_per_agent}) exceeds "
                        f"total budget (${budget.max_total_cost_usd})"
                    ),
                )
            concurrency = min(concurrency, slots)
        else:
            implied_cost = budget.max_total_cost_usd / max(agent_count, 1)
            warnings.append(
                f"No per-agent cost limit set. Total budget ${budget.max_total_cost_usd} / "
                f"{agent_count} agents = ~${implied_cost:.4f} each. Budget may be exceeded."
            )

    warning = " ".join(warnings) or None
    if warning:
        logger.warning(f"Parallel budget advisory: {warning}")

    return ParallelBudgetDecision(
        allowed=True,
        effective_concurrency=concurrency,
        warning=warning,
    )


def per_agent_overrun(budget: Budget, result: AgentResult) -> str | None:
    """Describe how a finished agent overran its per-agent ceiling, if it did."""
    if budget.max_tokens_per_agent is not None and result.total_tokens > budget.max_tokens_per_agent:
        return (
            f"Agent {result.agent_node_id} used {result.total_tokens} tokens "
            f"(per-agent limit {budget.max_tokens_per_agent})"
        )
    if budget.max_cost_per_agent is not None and result.cost_usd > budget.max_cost_per_agent:
        return (
            f"Agent {result.agent_node_id} cost ${result.cost_usd:.4f} "
            f"(per-agent limit ${budget.max_cost_per_agent})"
        )
    return None
