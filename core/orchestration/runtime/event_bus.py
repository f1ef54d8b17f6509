"""
Event Bus - Push-only status channel for orchestration runs.

The coordinator and strategy executors publish StatusUpdates through a
Publisher. EventBus is the in-process Publisher: consumers (a UI bridge,
a webhook forwarder, tests) subscribe to the update types they care about.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from orchestration.schemas.run import AgentResult, AgentResultStatus, Run, RunStatus

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of status update that can be published."""

    # Run lifecycle
    RUN_STARTED = "run-started"
    RUN_PAUSED = "run-paused"
    RUN_RESUMED = "run-resumed"
    RUN_COMPLETED = "run-completed"
    RUN_COMPLETED_WITH_ERRORS = "run-completed-with-errors"
    RUN_FAILED = "run-failed"
    RUN_ABORTED = "run-aborted"

    # Agent lifecycle
    AGENT_STARTED = "agent-started"
    AGENT_COMPLETED = "agent-completed"
    AGENT_FAILED = "agent-failed"
    AGENT_RETRYING = "agent-retrying"
    AGENT_SKIPPED = "agent-skipped"

    # Budget
    BUDGET_WARNING = "budget-warning"
    BUDGET_EXCEEDED = "budget-exceeded"


TERMINAL_EVENT_TYPES: dict[RunStatus, EventType] = {
    RunStatus.COMPLETED: EventType.RUN_COMPLETED,
    RunStatus.COMPLETED_WITH_ERRORS: EventType.RUN_COMPLETED_WITH_ERRORS,
    RunStatus.FAILED: EventType.RUN_FAILED,
    RunStatus.ABORTED: EventType.RUN_ABORTED,
}


@dataclass
class StatusUpdate:
    """A status update about one orchestration run."""

    type: EventType
    orchestrator_id: str
    run_id: str
    agent_id: str | None = None
    agent_result: AgentResult | None = None
    total_tokens: int | None = None
    total_cost_usd: float | None = None
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "orchestrator_id": self.orchestrator_id,
            "run_id": self.run_id,
            "agent_id": self.agent_id,
            "agent_result": (
                self.agent_result.model_dump(mode="json") if self.agent_result else None
            ),
            "total_tokens": self.total_tokens,
            "total_cost_usd": self.total_cost_usd,
            "error": self.error,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class Publisher(Protocol):
    """Publish one status update. Fire-and-forget: must not raise."""

    async def publish(self, update: StatusUpdate) -> None: ...


# Type for event handlers
EventHandler = Callable[[StatusUpdate], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to status updates."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_orchestrator: str | None = None  # Only updates for this orchestrator
    filter_run: str | None = None  # Only updates for this run


class EventBus:
    """
    In-process pub/sub for status updates.

    Features:
    - Async event handling
    - Type-based subscriptions
    - Orchestrator/run filtering
    - Bounded history for debugging and late subscribers

    Example:
        bus = EventBus()

        async def on_finished(update: StatusUpdate):
            print(f"Run {update.run_id} finished: {update.type}")

        bus.subscribe(
            event_types=[EventType.RUN_COMPLETED, EventType.RUN_FAILED],
            handler=on_finished,
        )

        coordinator = RunCoordinator(executor=my_executor, publisher=bus)
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_concurrent_handlers: int = 10,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum updates to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[StatusUpdate] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0
        self._lock = asyncio.Lock()

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_orchestrator: str | None = None,
        filter_run: str | None = None,
    ) -> str:
        """
        Subscribe to status updates.

        Args:
            event_types: Types of update to receive
            handler: Async function to call when an update is published
            filter_orchestrator: Only receive updates for this orchestrator
            filter_run: Only receive updates for this run

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_orchestrator=filter_orchestrator,
            filter_run=filter_run,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Unsubscribe from status updates.

        Returns:
            True if subscription was found and removed
        """
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, update: StatusUpdate) -> None:
        """Publish an update to all matching subscribers."""
        async with self._lock:
            self._event_history.append(update)
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            sub.handler for sub in self._subscriptions.values() if self._matches(sub, update)
        ]
        if matching_handlers:
            await self._execute_handlers(update, matching_handlers)

    def _matches(self, subscription: Subscription, update: StatusUpdate) -> bool:
        """Check if a subscription matches an update."""
        if update.type not in subscription.event_types:
            return False
        if (
            subscription.filter_orchestrator
            and subscription.filter_orchestrator != update.orchestrator_id
        ):
            return False
        if subscription.filter_run and subscription.filter_run != update.run_id:
            return False
        return True

    async def _execute_handlers(
        self,
        update: StatusUpdate,
        handlers: list[EventHandler],
    ) -> None:
        """Execute handlers concurrently with rate limiting."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(update)
                except Exception as e:
                    logger.error(f"Handler error for {update.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        orchestrator_id: str | None = None,
        run_id: str | None = None,
        limit: int = 100,
    ) -> list[StatusUpdate]:
        """
        Get update history with optional filtering.

        Returns:
            List of matching updates (most recent first)
        """
        events = self._event_history[::-1]

        if event_type:
            events = [e for e in events if e.type == event_type]
        if orchestrator_id:
            events = [e for e in events if e.orchestrator_id == orchestrator_id]
        if run_id:
            events = [e for e in events if e.run_id == run_id]

        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
        }

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        orchestrator_id: str | None = None,
        run_id: str | None = None,
        timeout: float | None = None,
    ) -> StatusUpdate | None:
        """
        Wait for a specific update to be published.

        Returns:
            The update if received, None on timeout
        """
        result: StatusUpdate | None = None
        received = asyncio.Event()

        async def handler(update: StatusUpdate) -> None:
            nonlocal result
            result = update
            received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_orchestrator=orchestrator_id,
            filter_run=run_id,
        )

        try:
            if timeout is not None:
                try:
                    await asyncio.wait_for(received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await received.wait()
            return result
        finally:
            self.unsubscribe(sub_id)


class RunEmitter:
    """
    Convenience publisher bound to one run.

    Every update carries the run's orchestrator and run ids; agent updates
    also carry the run's running totals.
    """

    def __init__(self, publisher: Publisher, run: Run):
        self._publisher = publisher
        self._run = run

    async def emit(
        self,
        event_type: EventType,
        agent_id: str | None = None,
        agent_result: AgentResult | None = None,
        error: str | None = None,
        with_totals: bool = False,
        **data: Any,
    ) -> None:
        update = StatusUpdate(
            type=event_type,
            orchestrator_id=self._run.orchestrator_id,
            run_id=self._run.id,
            agent_id=agent_id,
            agent_result=agent_result,
            error=error,
            data=data,
        )
        if with_totals:
            update.total_tokens = self._run.total_tokens
            update.total_cost_usd = self._run.total_cost_usd
        try:
            await self._publisher.publish(update)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} for run {self._run.id}: {e}")

    async def emit_agent_started(self, agent_id: str) -> None:
        await self.emit(EventType.AGENT_STARTED, agent_id=agent_id)

    async def emit_agent_finished(self, result: AgentResult) -> None:
        """Emit agent-completed, agent-failed or agent-skipped for a result."""
        event_type = {
            AgentResultStatus.COMPLETED: EventType.AGENT_COMPLETED,
            AgentResultStatus.FAILED: EventType.AGENT_FAILED,
            AgentResultStatus.SKIPPED: EventType.AGENT_SKIPPED,
        }[result.status]
        await self.emit(
            event_type,
            agent_id=result.agent_node_id,
            agent_result=result,
            error=result.error,
            with_totals=True,
        )

    async def emit_agent_retrying(self, agent_id: str, retry_count: int, max_retries: int) -> None:
        await self.emit(
            EventType.AGENT_RETRYING,
            agent_id=agent_id,
            retry_count=retry_count,
            max_retries=max_retries,
        )

    async def emit_agent_skipped(self, agent_id: str, reason: str | None = None) -> None:
        await self.emit(EventType.AGENT_SKIPPED, agent_id=agent_id, error=reason)

    async def emit_budget_warning(self, message: str, agent_id: str | None = None) -> None:
        await self.emit(
            EventType.BUDGET_WARNING, agent_id=agent_id, error=message, with_totals=True
        )

    async def emit_budget_exceeded(self, reason: str | None) -> None:
        await self.emit(EventType.BUDGET_EXCEEDED, error=reason, with_totals=True)

    async def emit_run_status(self, event_type: EventType) -> None:
        """Emit a run lifecycle update (started, paused, resumed)."""
        await self.emit(event_type)

    async def emit_run_finished(self) -> None:
        """Emit the terminal update matching the run's final status."""
        await self.emit(
            TERMINAL_EVENT_TYPES[self._run.status],
            error=self._run.error,
            with_totals=True,
        )
