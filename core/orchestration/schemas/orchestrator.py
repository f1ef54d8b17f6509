"""
Orchestrator Schema - Configuration and persisted state of an orchestrator.

OrchestratorConfig is the point-in-time snapshot a caller hands to
``RunCoordinator.start``. OrchestratorState is what the run store keeps on
disk: the configuration, the active run (if any) and the run history.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from orchestration.schemas.agent import IN_FLIGHT_AGENT_STATUSES, AgentStatus, ConnectedAgent
from orchestration.schemas.run import ACTIVE_RUN_STATUSES, Run, RunStatus, Strategy

DEFAULT_MAX_HISTORY_RUNS = 20
INTERRUPTED_BY_RESTART = "Orchestration interrupted by app restart"


class FailurePolicyType(StrEnum):
    """What to do when an agent fails."""

    RETRY_AND_CONTINUE = "retry-and-continue"
    SKIP_FAILED = "skip-failed"
    ABORT_ALL = "abort-all"


class FailurePolicy(BaseModel):
    """Retry/skip/abort rules for failed agents."""

    type: FailurePolicyType = FailurePolicyType.RETRY_AND_CONTINUE
    max_retries: int = Field(default=1, ge=0, description="Retries per agent per run")
    retry_delay_ms: int = Field(default=2000, ge=0)

    model_config = {"extra": "allow"}


class Budget(BaseModel):
    """Token and cost ceilings for a run. ``None`` means unlimited."""

    max_total_tokens: int | None = Field(default=None, ge=0)
    max_total_cost_usd: float | None = Field(default=None, ge=0)
    max_tokens_per_agent: int | None = Field(default=None, gt=0)
    max_cost_per_agent: float | None = Field(default=None, gt=0)

    model_config = {"extra": "allow"}

    @property
    def has_total_limit(self) -> bool:
        return self.max_total_tokens is not None or self.max_total_cost_usd is not None


class OrchestratorConfig(BaseModel):
    """Pipeline configuration for one orchestrator."""

    strategy: Strategy = Strategy.SEQUENTIAL
    budget: Budget = Field(default_factory=Budget)
    failure_policy: FailurePolicy = Field(default_factory=FailurePolicy)
    connected_agents: list[ConnectedAgent] = Field(default_factory=list)
    max_history_runs: int = Field(default=DEFAULT_MAX_HISTORY_RUNS, ge=1)

    model_config = {"extra": "allow"}

    def snapshot_agents(self) -> list[ConnectedAgent]:
        """Per-run copies of the connected agents with runtime state reset."""
        return [agent.snapshot() for agent in self.connected_agents]


class OrchestratorState(BaseModel):
    """
    Persisted record of one orchestrator.

    ``connected_agents`` mirrors the runtime status of the agents in the
    active run so a restart can tell which agents were mid-flight.
    """

    orchestrator_id: str
    config: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    connected_agents: list[ConnectedAgent] = Field(default_factory=list)
    current_run: Run | None = None
    run_history: list[Run] = Field(default_factory=list)  # Most recent first
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = {"extra": "allow"}

    def archive_current_run(self) -> None:
        """Move the current run to the front of the history, trimming it."""
        if self.current_run is None:
            return
        self.run_history.insert(0, self.current_run)
        del self.run_history[self.config.max_history_runs :]
        self.current_run = None

    def recover_interrupted(self) -> bool:
        """
        Finalize a run left active by a process that is no longer running.

        Returns:
            True if the record was rewritten
        """
        run = self.current_run
        if run is None or run.status not in ACTIVE_RUN_STATUSES:
            return False

        run.finish(RunStatus.FAILED)
        run.error = INTERRUPTED_BY_RESTART
        self.archive_current_run()

        for agent in self.connected_agents:
            if agent.status in IN_FLIGHT_AGENT_STATUSES:
                agent.status = AgentStatus.IDLE
        self.updated_at = datetime.now()
        return True


class CommandResult(BaseModel):
    """Envelope returned by coordinator commands."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "CommandResult":
        return cls(success=True)

    @classmethod
    def fail(cls, error: str) -> "CommandResult":
        return cls(success=False, error=error)
