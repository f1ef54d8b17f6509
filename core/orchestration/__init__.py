"""
Canvas orchestration engine.

Runs a set of connected agents under a strategy (sequential, parallel or
conditional), a token/cost budget and a failure policy, with pause,
resume and abort control and crash recovery of persisted runs.
"""

from orchestration.config import CoordinatorConfig
from orchestration.errors import (
    AdmissionError,
    AlreadyRunningError,
    BudgetAdmissionError,
    ConditionNotImplementedError,
    CycleError,
    InvalidTransitionError,
    NoAgentsError,
    OrchestrationError,
)
from orchestration.runtime import (
    AgentExecutor,
    EventBus,
    EventType,
    PromptContext,
    Publisher,
    RunCoordinator,
    StatusUpdate,
    WebhookPublisher,
    WebhookPublisherConfig,
)
from orchestration.schemas import (
    AgentResult,
    AgentResultStatus,
    AgentStatus,
    Budget,
    CommandResult,
    Condition,
    ConditionType,
    ConnectedAgent,
    FailurePolicy,
    FailurePolicyType,
    OrchestratorConfig,
    OrchestratorState,
    Run,
    RunStatus,
    Strategy,
)
from orchestration.storage import RunStore

__all__ = [
    # Coordinator
    "RunCoordinator",
    "CoordinatorConfig",
    "AgentExecutor",
    "PromptContext",
    # Status channel
    "EventBus",
    "EventType",
    "Publisher",
    "StatusUpdate",
    "WebhookPublisher",
    "WebhookPublisherConfig",
    # Storage
    "RunStore",
    # Schemas
    "AgentResult",
    "AgentResultStatus",
    "AgentStatus",
    "Budget",
    "CommandResult",
    "Condition",
    "ConditionType",
    "ConnectedAgent",
    "FailurePolicy",
    "FailurePolicyType",
    "OrchestratorConfig",
    "OrchestratorState",
    "Run",
    "RunStatus",
    "Strategy",
    # Errors
    "OrchestrationError",
    "AdmissionError",
    "CycleError",
    "AlreadyRunningError",
    "NoAgentsError",
    "BudgetAdmissionError",
    "ConditionNotImplementedError",
    "InvalidTransitionError",
]
