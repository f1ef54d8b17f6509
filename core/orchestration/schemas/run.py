"""
Run Schema - One execution attempt of one orchestrator.

A Run holds the aggregates and per-agent results of an orchestration,
along with the state machine that governs its status.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, computed_field

from orchestration.errors import InvalidTransitionError


class Strategy(StrEnum):
    """Execution shape of an orchestrator."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"


class RunStatus(StrEnum):
    """Status of a run."""

    PLANNING = "planning"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed-with-errors"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_RUN_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.COMPLETED_WITH_ERRORS,
        RunStatus.FAILED,
        RunStatus.ABORTED,
    }
)

ACTIVE_RUN_STATUSES = frozenset({RunStatus.PLANNING, RunStatus.RUNNING, RunStatus.PAUSED})

_VALID_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PLANNING: frozenset({RunStatus.RUNNING, RunStatus.FAILED, RunStatus.ABORTED}),
    RunStatus.RUNNING: frozenset({RunStatus.PAUSED}) | TERMINAL_RUN_STATUSES,
    # A pause can be pending when the executor runs out of agents or crashes
    RunStatus.PAUSED: frozenset({RunStatus.RUNNING}) | TERMINAL_RUN_STATUSES,
    RunStatus.COMPLETED: frozenset(),
    RunStatus.COMPLETED_WITH_ERRORS: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.ABORTED: frozenset(),
}


class AgentResultStatus(StrEnum):
    """Outcome of one agent execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class AgentResult(BaseModel):
    """Immutable record of one agent's execution outcome."""

    agent_node_id: str
    status: AgentResultStatus
    output: str = ""
    error: str | None = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0)
    duration_ms: int = 0
    tool_call_count: int = 0
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime = Field(default_factory=datetime.now)

    model_config = {"extra": "allow", "frozen": True}

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def succeeded(self) -> bool:
        return self.status == AgentResultStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == AgentResultStatus.FAILED


class Run(BaseModel):
    """
    A single execution attempt of an orchestrator.

    Mutated only by the coordinator and the run's own strategy executor.
    Once the run reaches a terminal status and is moved into history it
    is never touched again.
    """

    id: str
    orchestrator_id: str
    parent_orchestration_id: str | None = None
    strategy: Strategy

    status: RunStatus = RunStatus.PLANNING
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    error: str | None = None

    # Aggregates
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    total_duration_ms: int = 0
    agent_results: list[AgentResult] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RUN_STATUSES

    def can_transition(self, target: RunStatus) -> bool:
        return target in _VALID_TRANSITIONS[self.status]

    def transition(self, target: RunStatus) -> None:
        """Move to a new status, validating that the move is legal."""
        if not self.can_transition(target):
            raise InvalidTransitionError(self.status, target)
        self.status = target

    def record_result(self, result: AgentResult) -> None:
        """
        Add an agent outcome to this run.

        Aggregates include every attempt. The result list keeps one entry
        per agent: a retried agent's earlier entry is replaced in place.
        """
        self.total_input_tokens += result.input_tokens
        self.total_output_tokens += result.output_tokens
        self.total_cost_usd += result.cost_usd

        for i, existing in enumerate(self.agent_results):
            if existing.agent_node_id == result.agent_node_id:
                self.agent_results[i] = result
                return
        self.agent_results.append(result)

    def finish(self, status: RunStatus, error: str | None = None) -> None:
        """Move to a terminal status and stamp completion time."""
        if self.status != status:
            self.transition(status)
        if error and not self.error:
            self.error = error
        self.completed_at = datetime.now()
        delta = self.completed_at - self.started_at
        self.total_duration_ms = int(delta.total_seconds() * 1000)
