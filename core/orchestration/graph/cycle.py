"""
Cycle Detection - Guard against circular nested orchestrations.

Before a run starts, the chain of parent orchestrations is walked through
the runs that are still active. Reaching the starting orchestrator again
means the new run would (transitively) be its own parent.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

MAX_CYCLE_DEPTH = 20

# Maps a parent-orchestration id to that parent's own parent id, or None
# when the parent is not active or has no parent.
ParentResolver = Callable[[str], str | None]


@dataclass
class CycleCheck:
    """Result of walking a parent chain."""

    has_cycle: bool
    chain: list[str] = field(default_factory=list)


def detect_cycle(
    orchestrator_id: str,
    parent_id: str | None,
    resolve_parent: ParentResolver,
    max_depth: int = MAX_CYCLE_DEPTH,
) -> CycleCheck:
    """
    Walk the parent chain starting at ``parent_id``.

    A chain longer than ``max_depth`` hops is reported as a cycle, so
    malformed data can never cause an unbounded walk.

    Returns:
        CycleCheck with the ids visited, starting with ``orchestrator_id``
    """
    chain = [orchestrator_id]
    current = parent_id

    while current:
        if current == orchestrator_id:
            chain.append(current)
            return CycleCheck(has_cycle=True, chain=chain)
        if len(chain) > max_depth:
            return CycleCheck(has_cycle=True, chain=chain)
        chain.append(current)
        current = resolve_parent(current)

    return CycleCheck(has_cycle=False, chain=chain)
