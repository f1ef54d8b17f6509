"""
Run Coordinator - Owns the in-flight runs of every orchestrator.

Responsibilities:
- Admission: cycle check, single active run per orchestrator, agent
  presence, parallel budget feasibility
- Dispatching the strategy executor as a background task
- Pause / resume / abort flags and resync for consumers
- Finalisation: final status, history, terminal status update (exactly once)
- Checkpointing to the run store and crash recovery on startup
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

from orchestration.config import CoordinatorConfig
from orchestration.errors import (
    AdmissionError,
    AlreadyRunningError,
    BudgetAdmissionError,
    CycleError,
    NoAgentsError,
)
from orchestration.graph.cycle import detect_cycle
from orchestration.observability.logging import set_trace_context
from orchestration.runtime.agent_runner import AgentExecutor, AgentRunner
from orchestration.runtime.budget import validate_parallel_budget
from orchestration.runtime.control import RunControl
from orchestration.runtime.event_bus import EventBus, EventType, Publisher, RunEmitter
from orchestration.runtime.failure_policy import FailurePolicyHandler
from orchestration.runtime.strategies import (
    ExecutionContext,
    determine_final_status,
    get_strategy_executor,
)
from orchestration.schemas.agent import ConnectedAgent
from orchestration.schemas.orchestrator import (
    CommandResult,
    OrchestratorConfig,
    OrchestratorState,
)
from orchestration.schemas.run import Run, RunStatus, Strategy
from orchestration.storage.run_store import RunStore

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Orchestration cancelled during shutdown"


async def recover_interrupted_runs(
    store: RunStore,
    skip: set[str] | frozenset[str] = frozenset(),
) -> list[OrchestratorState]:
    """
    Rewrite every stored record whose run was left active by a dead process.

    Args:
        store: Run store to scan
        skip: Orchestrator ids that are genuinely running in this process

    Returns:
        The rewritten records
    """
    recovered: list[OrchestratorState] = []
    for state in await store.list_states():
        if state.orchestrator_id in skip:
            continue
        if state.recover_interrupted():
            await store.write_state(state)
            recovered.append(state)
            logger.warning(f"Recovered interrupted run for orchestrator {state.orchestrator_id}")
    return recovered


@dataclass
class ActiveRun:
    """Bookkeeping for one in-flight run."""

    run: Run
    config: OrchestratorConfig
    agents: list[ConnectedAgent]
    control: RunControl
    emitter: RunEmitter
    state: OrchestratorState
    task: asyncio.Task | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)
    persist_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class RunTable:
    """Active runs keyed by orchestrator id. At most one per orchestrator."""

    def __init__(self):
        self._runs: dict[str, ActiveRun] = {}
        self._lock = asyncio.Lock()

    def get(self, orchestrator_id: str) -> ActiveRun | None:
        return self._runs.get(orchestrator_id)

    def find_by_run_id(self, run_id: str) -> ActiveRun | None:
        for entry in self._runs.values():
            if entry.run.id == run_id:
                return entry
        return None

    def __contains__(self, orchestrator_id: str) -> bool:
        return orchestrator_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def entries(self) -> list[ActiveRun]:
        return list(self._runs.values())

    async def insert_if_absent(self, entry: ActiveRun) -> bool:
        """Register ``entry`` unless its orchestrator already has a run."""
        async with self._lock:
            orchestrator_id = entry.run.orchestrator_id
            if orchestrator_id in self._runs:
                return False
            self._runs[orchestrator_id] = entry
            return True

    async def remove(self, orchestrator_id: str) -> ActiveRun | None:
        async with self._lock:
            return self._runs.pop(orchestrator_id, None)


class RunCoordinator:
    """
    Starts, controls and finalises orchestration runs.

    Example:
        bus = EventBus()
        coordinator = RunCoordinator(executor=MyExecutor(), publisher=bus)
        await coordinator.recover()

        result = await coordinator.start("orch-1", OrchestratorConfig(...))
        run = await coordinator.wait_for_completion("orch-1")
    """

    def __init__(
        self,
        executor: AgentExecutor,
        publisher: Publisher | None = None,
        config: CoordinatorConfig | None = None,
        store: RunStore | None = None,
    ):
        self._executor = executor
        self._publisher: Publisher = publisher if publisher is not None else EventBus()
        self._config = config or CoordinatorConfig()
        if store is None and self._config.storage_path is not None:
            store = RunStore(self._config.storage_path)
        self._store = store

        self._table = RunTable()
        self._states: dict[str, OrchestratorState] = {}
        self._run_counter = 0

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    @property
    def store(self) -> RunStore | None:
        return self._store

    # === ADMISSION ===

    def _generate_run_id(self) -> str:
        self._run_counter += 1
        return f"orch-run-{int(time.time() * 1000)}-{self._run_counter}"

    def _resolve_parent(self, parent_id: str) -> str | None:
        """Parent of an active orchestration, looked up by orchestrator id then run id."""
        entry = self._table.get(parent_id) or self._table.find_by_run_id(parent_id)
        return entry.run.parent_orchestration_id if entry else None

    async def _load_state(self, orchestrator_id: str) -> OrchestratorState | None:
        state = self._states.get(orchestrator_id)
        if state is None and self._store is not None:
            state = await self._store.read_state(orchestrator_id)
            if state is not None:
                self._states[orchestrator_id] = state
        return state

    async def start_run(
        self,
        orchestrator_id: str,
        config: OrchestratorConfig,
        parent_orchestration_id: str | None = None,
    ) -> Run:
        """
        Admit and dispatch a run. Returns as soon as the executor is scheduled.

        Raises:
            CycleError: the parent chain leads back to this orchestrator
            AlreadyRunningError: the orchestrator already has an active run
            NoAgentsError: no connected agents configured
            BudgetAdmissionError: parallel budget cannot fit a single agent
        """
        cycle = detect_cycle(orchestrator_id, parent_orchestration_id, self._resolve_parent)
        if cycle.has_cycle:
            raise CycleError(cycle.chain)

        if orchestrator_id in self._table:
            raise AlreadyRunningError(orchestrator_id)

        if not config.connected_agents:
            raise NoAgentsError(orchestrator_id)

        if config.strategy == Strategy.PARALLEL:
            validation = validate_parallel_budget(config.budget, len(config.connected_agents))
            if not validation.allowed:
                raise BudgetAdmissionError(validation.reason)

        previous = await self._load_state(orchestrator_id)

        agents = config.snapshot_agents()
        run = Run(
            id=self._generate_run_id(),
            orchestrator_id=orchestrator_id,
            parent_orchestration_id=parent_orchestration_id,
            strategy=config.strategy,
        )
        state = OrchestratorState(
            orchestrator_id=orchestrator_id,
            config=config,
            run_history=list(previous.run_history) if previous else [],
        )
        state.connected_agents = agents
        state.current_run = run

        control = RunControl(pause_poll_interval=self._config.pause_poll_interval)
        entry = ActiveRun(
            run=run,
            config=config,
            agents=agents,
            control=control,
            emitter=RunEmitter(self._publisher, run),
            state=state,
        )

        if not await self._table.insert_if_absent(entry):
            raise AlreadyRunningError(orchestrator_id)
        self._states[orchestrator_id] = state

        entry.task = asyncio.create_task(self._drive(entry))
        run.transition(RunStatus.RUNNING)

        logger.info(
            f"Started run {run.id} for orchestrator {orchestrator_id} "
            f"({config.strategy}, {len(agents)} agents)"
        )
        return run

    async def start(
        self,
        orchestrator_id: str,
        config: OrchestratorConfig,
        parent_orchestration_id: str | None = None,
    ) -> CommandResult:
        """Command-envelope form of ``start_run``."""
        try:
            await self.start_run(orchestrator_id, config, parent_orchestration_id)
        except AdmissionError as e:
            logger.warning(f"Rejected start of orchestrator {orchestrator_id}: {e}")
            return CommandResult.fail(str(e))
        return CommandResult.ok()

    # === EXECUTION ===

    async def _drive(self, entry: ActiveRun) -> None:
        """Run the strategy executor, then finalise whatever happened."""
        run = entry.run
        set_trace_context(
            orchestrator_id=run.orchestrator_id,
            run_id=run.id,
            strategy=str(run.strategy),
        )

        async def checkpoint() -> None:
            await self._checkpoint(entry)

        failure_handler = FailurePolicyHandler(
            entry.config.failure_policy, run, entry.emitter, entry.control
        )
        ctx = ExecutionContext(
            run=run,
            agents=entry.agents,
            budget=entry.config.budget,
            failure_policy=entry.config.failure_policy,
            runner=AgentRunner(
                executor=self._executor,
                run=run,
                budget=entry.config.budget,
                emitter=entry.emitter,
                control=entry.control,
                failure_handler=failure_handler,
                checkpoint=checkpoint,
            ),
            emitter=entry.emitter,
            control=entry.control,
            max_context_chars=self._config.max_context_chars,
        )

        try:
            await entry.emitter.emit_run_status(EventType.RUN_STARTED)
            await self._checkpoint(entry)
            await get_strategy_executor(run.strategy).execute(ctx)
        except asyncio.CancelledError:
            logger.warning(f"Run {run.id} cancelled")
            if not run.is_terminal:
                run.finish(RunStatus.FAILED, CANCELLED_ERROR)
            await self._finalize(entry)
            raise
        except Exception as e:
            logger.exception(f"Run {run.id} failed: {e}")
            if not run.is_terminal:
                run.finish(RunStatus.FAILED, str(e) or type(e).__name__)

        await self._finalize(entry)

    async def _finalize(self, entry: ActiveRun) -> None:
        run = entry.run
        if not run.is_terminal:
            if entry.control.aborted:
                run.finish(RunStatus.ABORTED)
            else:
                run.finish(determine_final_status(run, entry.config.failure_policy))

        logger.info(
            f"Run {run.id} finished: {run.status}",
            extra={
                "event": "run_finished",
                "tokens_used": run.total_tokens,
                "cost_usd": run.total_cost_usd,
                "duration_ms": run.total_duration_ms,
            },
        )

        entry.state.archive_current_run()
        await self._checkpoint(entry)

        await self._table.remove(run.orchestrator_id)
        await entry.emitter.emit_run_finished()
        entry.done.set()

    async def _checkpoint(self, entry: ActiveRun) -> None:
        """Persist the orchestrator record. Storage failures never fail a run."""
        if self._store is None:
            return
        async with entry.persist_lock:
            entry.state.updated_at = datetime.now()
            try:
                await self._store.write_state(entry.state)
            except OSError as e:
                logger.error(f"Failed to persist orchestrator {entry.run.orchestrator_id}: {e}")

    # === COMMANDS ===

    def _controllable(self, orchestrator_id: str) -> ActiveRun | None:
        """Active entry whose run has not yet reached a terminal status."""
        entry = self._table.get(orchestrator_id)
        # Finalisation keeps the entry in the table until the record is persisted
        if entry is None or entry.run.is_terminal:
            return None
        return entry

    async def pause(self, orchestrator_id: str) -> CommandResult:
        entry = self._controllable(orchestrator_id)
        if entry is None:
            return CommandResult.fail("No active orchestration")
        if entry.control.paused:
            return CommandResult.fail("Already paused")

        entry.control.pause()
        if entry.run.can_transition(RunStatus.PAUSED):
            entry.run.transition(RunStatus.PAUSED)
        logger.info(f"Paused run {entry.run.id}")
        await entry.emitter.emit_run_status(EventType.RUN_PAUSED)
        await self._checkpoint(entry)
        return CommandResult.ok()

    async def resume(self, orchestrator_id: str) -> CommandResult:
        entry = self._controllable(orchestrator_id)
        if entry is None:
            return CommandResult.fail("No active orchestration")
        if not entry.control.paused:
            return CommandResult.fail("Not paused")

        entry.control.resume()
        if entry.run.can_transition(RunStatus.RUNNING):
            entry.run.transition(RunStatus.RUNNING)
        logger.info(f"Resumed run {entry.run.id}")
        await entry.emitter.emit_run_status(EventType.RUN_RESUMED)
        await self._checkpoint(entry)
        return CommandResult.ok()

    async def abort(self, orchestrator_id: str) -> CommandResult:
        """Request an abort. The run stops at the executor's next checkpoint."""
        entry = self._table.get(orchestrator_id)
        if entry is None:
            return CommandResult.fail("No active orchestration")

        entry.control.abort()
        logger.info(f"Abort requested for run {entry.run.id}")
        return CommandResult.ok()

    def resync(self) -> dict[str, dict[str, str]]:
        """Current run id and status of every active run, by orchestrator id."""
        return {
            entry.run.orchestrator_id: {"run_id": entry.run.id, "status": str(entry.run.status)}
            for entry in self._table.entries()
        }

    # === RECOVERY AND QUERIES ===

    async def recover(self) -> list[str]:
        """
        Fail every persisted run left active by a previous process.

        Returns:
            Ids of the orchestrators whose records were rewritten
        """
        if self._store is None:
            return []

        active = {entry.run.orchestrator_id for entry in self._table.entries()}
        recovered = await recover_interrupted_runs(self._store, skip=active)
        for state in recovered:
            self._states[state.orchestrator_id] = state
        return [state.orchestrator_id for state in recovered]

    async def history(self, orchestrator_id: str) -> list[Run]:
        """Finished runs of an orchestrator, most recent first."""
        state = await self._load_state(orchestrator_id)
        return list(state.run_history) if state else []

    def get_active_run(self, orchestrator_id: str) -> Run | None:
        entry = self._table.get(orchestrator_id)
        return entry.run if entry else None

    async def wait_for_completion(
        self,
        orchestrator_id: str,
        timeout: float | None = None,
    ) -> Run | None:
        """
        Wait for the active run of an orchestrator to finish.

        Returns:
            The finished run (the latest one if none is active), or None on timeout
        """
        entry = self._table.get(orchestrator_id)
        if entry is None:
            history = await self.history(orchestrator_id)
            return history[0] if history else None

        try:
            if timeout is not None:
                await asyncio.wait_for(entry.done.wait(), timeout=timeout)
            else:
                await entry.done.wait()
        except TimeoutError:
            return None
        return entry.run

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Abort every active run, cancelling those that outlive ``timeout``."""
        entries = self._table.entries()
        for entry in entries:
            entry.control.abort()

        tasks = [entry.task for entry in entries if entry.task and not entry.task.done()]
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"Coordinator shut down ({len(pending)} runs cancelled)")
