"""
Agent Schema - Participants bound into an orchestration run.

A ConnectedAgent is one canvas node acting as an agent inside an
orchestrator. Its runtime fields (status, retry_count, last_error) are
mutated in place by the strategy executor that owns the run.
"""

from enum import StrEnum

from pydantic import BaseModel, Field


class AgentStatus(StrEnum):
    """Runtime status of a connected agent."""

    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    RETRYING = "retrying"


# Statuses that imply an executor is driving the agent right now
IN_FLIGHT_AGENT_STATUSES = frozenset({AgentStatus.RUNNING, AgentStatus.QUEUED, AgentStatus.RETRYING})


class ConditionType(StrEnum):
    """Kinds of branching condition for the conditional strategy."""

    AGENT_SUCCEEDED = "agent-succeeded"
    AGENT_FAILED = "agent-failed"
    OUTPUT_CONTAINS = "output-contains"
    OUTPUT_MATCHES = "output-matches"
    TOKEN_COUNT_BELOW = "token-count-below"
    CUSTOM_EXPRESSION = "custom-expression"


class Condition(BaseModel):
    """
    A single branching condition.

    Examples:
        # Run only if the previous agent mentioned an error
        Condition(id="c1", type=ConditionType.OUTPUT_CONTAINS, value="error")

        # Run only while the run is still cheap
        Condition(id="c2", type=ConditionType.TOKEN_COUNT_BELOW, threshold=50_000)

        # Run only if the previous agent did NOT succeed
        Condition(id="c3", type=ConditionType.AGENT_SUCCEEDED, invert=True)
    """

    id: str = ""
    type: ConditionType
    value: str | None = Field(
        default=None,
        description="Substring or regular expression for output-contains/output-matches",
    )
    threshold: int | None = Field(default=None, description="Threshold for token-count-below")
    expression: str | None = Field(default=None, description="Expression for custom-expression")
    invert: bool = False

    model_config = {"extra": "allow"}


class ConnectedAgent(BaseModel):
    """An agent node participating in an orchestrator."""

    node_id: str
    order: int = 0
    prompt_override: str | None = None
    conditions: list[Condition] = Field(default_factory=list)

    # Runtime state, reset for every run
    status: AgentStatus = AgentStatus.IDLE
    retry_count: int = 0
    last_error: str | None = None

    model_config = {"extra": "allow"}

    def snapshot(self) -> "ConnectedAgent":
        """Copy this agent for a new run, with runtime state reset."""
        return self.model_copy(
            update={"status": AgentStatus.IDLE, "retry_count": 0, "last_error": None},
        )

    @property
    def is_pending(self) -> bool:
        """Whether the agent has not been considered yet in the current run."""
        return self.status in (AgentStatus.IDLE, AgentStatus.QUEUED)
