"""Pydantic records for runs, agents and orchestrator configuration."""

from orchestration.schemas.agent import AgentStatus, Condition, ConditionType, ConnectedAgent
from orchestration.schemas.orchestrator import (
    Budget,
    CommandResult,
    FailurePolicy,
    FailurePolicyType,
    OrchestratorConfig,
    OrchestratorState,
)
from orchestration.schemas.run import AgentResult, AgentResultStatus, Run, RunStatus, Strategy

__all__ = [
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
]
