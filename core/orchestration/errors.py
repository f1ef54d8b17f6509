"""
Error types raised by the orchestration engine.

Admission errors are raised synchronously by ``RunCoordinator.start_run``
before a run is registered. Agent-level failures never surface as
exceptions; they are handled by the failure policy.
"""

from typing import Any


class OrchestrationError(Exception):
    """Base class for orchestration errors."""


class AdmissionError(OrchestrationError):
    """A start request was rejected before the run entered the run table."""


class CycleError(AdmissionError):
    """Starting the run would create a circular orchestration."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"Circular orchestration detected: {' -> '.join(chain)}")


class AlreadyRunningError(AdmissionError):
    """The orchestrator already has an active run."""

    def __init__(self, orchestrator_id: str) -> None:
        self.orchestrator_id = orchestrator_id
        super().__init__("Orchestration is already running")


class NoAgentsError(AdmissionError):
    """The configuration lists no connected agents."""

    def __init__(self, orchestrator_id: str) -> None:
        self.orchestrator_id = orchestrator_id
        super().__init__("No agents found")


class BudgetAdmissionError(AdmissionError):
    """The budget cannot accommodate even a single agent."""


class ConditionNotImplementedError(NotImplementedError):
    """Raised when evaluating a condition type that has no evaluator."""


class InvalidTransitionError(OrchestrationError):
    """Raised when an invalid run state transition is attempted."""

    def __init__(self, current: Any, target: Any) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current.value} -> {target.value}")
