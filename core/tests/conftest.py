"""Shared fixtures for orchestration tests."""

import asyncio

import pytest

from orchestration.config import CoordinatorConfig
from orchestration.observability.logging import clear_trace_context
from orchestration.runtime.agent_runner import AgentExecutor, PromptContext
from orchestration.runtime.event_bus import EventBus, EventType
from orchestration.schemas.run import AgentResult, AgentResultStatus


class ScriptedExecutor(AgentExecutor):
    """
    Fake AgentExecutor driven by per-agent scripts.

    Each script entry is one attempt: "fail" returns a failed result, an
    exception instance is raised, an AgentResult is returned as-is, any other
    string becomes the output of a completed result. Agents without a
    remaining script entry complete with "<id> done".
    """

    def __init__(
        self,
        scripts: dict[str, list] | None = None,
        input_tokens: int = 10,
        output_tokens: int = 5,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
        gates: dict[str, asyncio.Event] | None = None,
    ):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.delay = delay
        self.gate = gate
        self.gates = gates or {}
        self.calls: list[tuple[str, PromptContext]] = []
        self.active = 0
        self.max_active = 0

    @property
    def called_ids(self) -> list[str]:
        return [agent_id for agent_id, _ in self.calls]

    def context_for(self, agent_id: str) -> PromptContext:
        return [ctx for called, ctx in self.calls if called == agent_id][-1]

    async def run(self, agent_node_id: str, prompt_context: PromptContext) -> AgentResult:
        self.calls.append((agent_node_id, prompt_context))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if agent_node_id in self.gates:
                await self.gates[agent_node_id].wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

        script = self.scripts.get(agent_node_id)
        outcome = script.pop(0) if script else f"{agent_node_id} done"

        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, AgentResult):
            return outcome
        if outcome == "fail":
            return AgentResult(
                agent_node_id=agent_node_id,
                status=AgentResultStatus.FAILED,
                error=f"{agent_node_id} failed",
                input_tokens=self.input_tokens,
                output_tokens=self.output_tokens,
            )
        return AgentResult(
            agent_node_id=agent_node_id,
            status=AgentResultStatus.COMPLETED,
            output=outcome,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost_usd=0.001,
        )


def event_types(bus: EventBus, run_id: str | None = None) -> list[EventType]:
    """Published update types in publication order."""
    return [update.type for update in reversed(bus.get_history(run_id=run_id, limit=10_000))]


@pytest.fixture(autouse=True)
def _reset_trace_context():
    yield
    clear_trace_context()


@pytest.fixture
def scripted():
    """Factory for ScriptedExecutor instances."""
    return ScriptedExecutor


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events():
    """Return the helper that lists published update types in order."""
    return event_types


@pytest.fixture
def coordinator_config() -> CoordinatorConfig:
    """Fast polling, no persistence."""
    return CoordinatorConfig(
        pause_poll_interval=0.01,
        max_context_chars=10_000,
        storage_path=None,
        log_level="DEBUG",
    )
