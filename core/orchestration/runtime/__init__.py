"""Runtime: coordinator, strategy executors and the status channel."""

from orchestration.runtime.agent_runner import (
    AgentExecutor,
    AgentRunner,
    PromptContext,
    truncate_output,
)
from orchestration.runtime.budget import (
    BudgetDecision,
    ParallelBudgetDecision,
    can_run_agent,
    validate_parallel_budget,
)
from orchestration.runtime.control import RunControl
from orchestration.runtime.coordinator import RunCoordinator, RunTable
from orchestration.runtime.event_bus import EventBus, EventType, Publisher, StatusUpdate
from orchestration.runtime.failure_policy import (
    FailureAction,
    FailurePolicyHandler,
    decide_failure_action,
)
from orchestration.runtime.publishers import WebhookPublisher, WebhookPublisherConfig
from orchestration.runtime.strategies import (
    ConditionalExecutor,
    ParallelExecutor,
    SequentialExecutor,
    StrategyExecutor,
    determine_final_status,
    get_strategy_executor,
)

__all__ = [
    "AgentExecutor",
    "AgentRunner",
    "PromptContext",
    "truncate_output",
    "BudgetDecision",
    "ParallelBudgetDecision",
    "can_run_agent",
    "validate_parallel_budget",
    "RunControl",
    "RunCoordinator",
    "RunTable",
    "EventBus",
    "EventType",
    "Publisher",
    "StatusUpdate",
    "FailureAction",
    "FailurePolicyHandler",
    "decide_failure_action",
    "WebhookPublisher",
    "WebhookPublisherConfig",
    "StrategyExecutor",
    "SequentialExecutor",
    "ParallelExecutor",
    "ConditionalExecutor",
    "determine_final_status",
    "get_strategy_executor",
]
