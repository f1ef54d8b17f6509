"""Graph checks: branching conditions and parent-chain cycle detection."""

from orchestration.graph.conditions import conditions_met, evaluate_condition
from orchestration.graph.cycle import MAX_CYCLE_DEPTH, CycleCheck, detect_cycle

__all__ = [
    "evaluate_condition",
    "conditions_met",
    "detect_cycle",
    "CycleCheck",
    "MAX_CYCLE_DEPTH",
]
