"""Tests for the in-process status channel."""

import asyncio

import pytest

from orchestration.runtime.event_bus import (
    EventBus,
    EventType,
    Publisher,
    RunEmitter,
    StatusUpdate,
)
from orchestration.schemas.run import AgentResult, AgentResultStatus, Run, RunStatus, Strategy


def _update(event_type=EventType.RUN_STARTED, orchestrator_id="orch-1", run_id="run-1"):
    return StatusUpdate(type=event_type, orchestrator_id=orchestrator_id, run_id=run_id)


class TestEventBus:
    def test_bus_is_a_publisher(self):
        assert isinstance(EventBus(), Publisher)

    @pytest.mark.asyncio
    async def test_subscribe_by_type(self):
        bus = EventBus()
        received: list[StatusUpdate] = []

        async def handler(update: StatusUpdate):
            received.append(update)

        bus.subscribe([EventType.RUN_COMPLETED], handler)
        await bus.publish(_update(EventType.RUN_STARTED))
        await bus.publish(_update(EventType.RUN_COMPLETED))

        assert [u.type for u in received] == [EventType.RUN_COMPLETED]

    @pytest.mark.asyncio
    async def test_filters_by_orchestrator_and_run(self):
        bus = EventBus()
        received: list[StatusUpdate] = []

        async def handler(update: StatusUpdate):
            received.append(update)

        bus.subscribe([EventType.RUN_STARTED], handler, filter_orchestrator="orch-2")
        bus.subscribe([EventType.RUN_STARTED], handler, filter_run="run-9")

        await bus.publish(_update(orchestrator_id="orch-1"))
        await bus.publish(_update(orchestrator_id="orch-2", run_id="run-2"))
        await bus.publish(_update(orchestrator_id="orch-3", run_id="run-9"))

        assert [(u.orchestrator_id, u.run_id) for u in received] == [
            ("orch-2", "run-2"),
            ("orch-3", "run-9"),
        ]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []

        async def handler(update: StatusUpdate):
            received.append(update)

        sub_id = bus.subscribe([EventType.RUN_STARTED], handler)
        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False

        await bus.publish(_update())
        assert received == []

    @pytest.mark.asyncio
    async def test_handler_error_does_not_propagate(self):
        bus = EventBus()
        received = []

        async def broken(update: StatusUpdate):
            raise RuntimeError("consumer bug")

        async def healthy(update: StatusUpdate):
            received.append(update)

        bus.subscribe([EventType.RUN_STARTED], broken)
        bus.subscribe([EventType.RUN_STARTED], healthy)

        await bus.publish(_update())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded_and_most_recent_first(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            await bus.publish(_update(run_id=f"run-{i}"))

        history = bus.get_history()
        assert [u.run_id for u in history] == ["run-4", "run-3", "run-2"]
        assert bus.get_stats()["total_events"] == 3

    @pytest.mark.asyncio
    async def test_wait_for(self):
        bus = EventBus()

        async def publish_later():
            await asyncio.sleep(0.01)
            await bus.publish(_update(EventType.RUN_ABORTED))

        task = asyncio.create_task(publish_later())
        update = await bus.wait_for(EventType.RUN_ABORTED, orchestrator_id="orch-1", timeout=1.0)
        await task

        assert update is not None
        assert update.type == EventType.RUN_ABORTED

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        bus = EventBus()
        assert await bus.wait_for(EventType.RUN_FAILED, timeout=0.01) is None
        assert await bus.wait_for(EventType.RUN_FAILED, timeout=0) is None


class TestStatusUpdate:
    def test_to_dict(self):
        result = AgentResult(
            agent_node_id="a",
            status=AgentResultStatus.COMPLETED,
            output="done",
            input_tokens=3,
            output_tokens=2,
        )
        update = StatusUpdate(
            type=EventType.AGENT_COMPLETED,
            orchestrator_id="orch-1",
            run_id="run-1",
            agent_id="a",
            agent_result=result,
            total_tokens=5,
        )

        data = update.to_dict()
        assert data["type"] == "agent-completed"
        assert data["agent_result"]["status"] == "completed"
        assert data["agent_result"]["total_tokens"] == 5
        assert data["total_tokens"] == 5
        assert isinstance(data["timestamp"], str)


class TestRunEmitter:
    @pytest.mark.asyncio
    async def test_publisher_errors_are_swallowed(self):
        class BrokenPublisher:
            async def publish(self, update: StatusUpdate) -> None:
                raise ConnectionError("transport down")

        run = Run(id="run-1", orchestrator_id="orch-1", strategy=Strategy.SEQUENTIAL)
        emitter = RunEmitter(BrokenPublisher(), run)

        await emitter.emit_agent_started("a")

    @pytest.mark.asyncio
    async def test_run_finished_matches_status(self):
        bus = EventBus()
        run = Run(
            id="run-1",
            orchestrator_id="orch-1",
            strategy=Strategy.SEQUENTIAL,
            status=RunStatus.COMPLETED_WITH_ERRORS,
        )

        await RunEmitter(bus, run).emit_run_finished()

        assert bus.get_history()[0].type == EventType.RUN_COMPLETED_WITH_ERRORS
